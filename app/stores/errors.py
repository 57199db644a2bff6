"""
Storage-layer errors.

Kept apart from the auth taxonomy in ``app.core.errors``: a store
failure is an infrastructure problem the caller may retry, not an
authentication verdict.
"""


class StoreError(Exception):
    """Base class for failures raised by a store implementation."""


class StoreUnavailable(StoreError):
    """The backing store could not be reached or timed out.  Retryable."""


class DuplicateKey(StoreError):
    """A uniqueness constraint rejected the write."""

    def __init__(self, fields: list[str]) -> None:
        super().__init__(f"duplicate value for {', '.join(fields)}")
        self.fields = list(fields)
