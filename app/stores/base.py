"""
Store interfaces.

The services depend on these contracts only, so the persistence engine
can be swapped (SQL in production, in-memory for development/tests).

Every mutating method is a single atomic operation against the store:
conditional updates carry their own predicate (e.g. "still unrevoked",
"fingerprint still equals X") instead of relying on a prior read.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from app.models.account import Account
from app.models.session import AccountSession


class AccountStore(ABC):
    """Persistence contract for accounts."""

    @abstractmethod
    async def get_by_id(self, account_id: uuid.UUID) -> Account | None:
        """Return the account or None."""

    @abstractmethod
    async def get_by_email(self, email: str) -> Account | None:
        """Lookup by an already-normalized email."""

    @abstractmethod
    async def find_conflicts(
        self,
        email: str | None,
        phone: str | None,
        *,
        exclude_id: uuid.UUID | None = None,
    ) -> list[str]:
        """Return which of ``["email", "phone"]`` are already taken."""

    @abstractmethod
    async def create(
        self,
        *,
        email: str,
        password_hash: str,
        phone: str | None = None,
        first_name: str = "",
        last_name: str = "",
        date_of_birth: date | None = None,
        role: str = "user",
        is_active: bool = True,
    ) -> Account:
        """Insert an account.

        Raises:
            DuplicateKey: email or phone collides with an existing row.
        """

    @abstractmethod
    async def update(self, account_id: uuid.UUID, values: dict[str, Any]) -> Account | None:
        """Apply ``values`` and return the fresh account (None if gone)."""

    @abstractmethod
    async def delete(self, account_id: uuid.UUID) -> bool:
        """Hard-delete an account.  True if a row was removed."""


class SessionStore(ABC):
    """Persistence contract for device-bound sessions."""

    @abstractmethod
    async def open_in_slot(
        self,
        *,
        session_id: uuid.UUID,
        account_id: uuid.UUID,
        refresh_token_hash: str,
        device_id: str,
        user_agent: str,
        client_ip: str,
        expires_at: datetime,
        now: datetime,
    ) -> tuple[AccountSession, int]:
        """Take over the ``(account_id, device_id)`` slot in one transaction.

        Revokes every unrevoked session in the slot (expired ones
        included) and inserts the new session with its final
        fingerprint.  Returns the new session and the number evicted.
        Raises ``DuplicateKey`` if a concurrent caller claimed the slot
        first; the caller may simply try again.
        """

    @abstractmethod
    async def get_by_id(self, session_id: uuid.UUID) -> AccountSession | None:
        """Return the session or None."""

    @abstractmethod
    async def get_for_account(
        self, session_id: uuid.UUID, account_id: uuid.UUID
    ) -> AccountSession | None:
        """Return the session only if it belongs to ``account_id``."""

    @abstractmethod
    async def list_active(self, account_id: uuid.UUID, now: datetime) -> list[AccountSession]:
        """Active sessions, most recently used first (then newest first)."""

    @abstractmethod
    async def rotate(
        self,
        session_id: uuid.UUID,
        expected_hash: str,
        new_hash: str,
        now: datetime,
    ) -> bool:
        """Compare-and-set the fingerprint and bump ``last_used_at``.

        Succeeds only if the session is still active and its stored
        fingerprint still equals ``expected_hash``.
        """

    @abstractmethod
    async def revoke(
        self,
        session_id: uuid.UUID,
        now: datetime,
        *,
        account_id: uuid.UUID | None = None,
    ) -> bool:
        """Set ``revoked_at`` if still unset.  True if this call revoked it."""

    @abstractmethod
    async def revoke_all(self, account_id: uuid.UUID, now: datetime) -> int:
        """Revoke every active session of an account.  Returns the count."""


@dataclass
class Store:
    """The pair of stores one request works against."""

    accounts: AccountStore
    sessions: SessionStore
