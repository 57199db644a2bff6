"""
Models package — import every model so SQLAlchemy's Base.metadata
knows about all tables (critical for Alembic autogenerate).
"""

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, as_utc, utcnow
from app.models.account import DEFAULT_AVATAR_URL, Account, AccountRole
from app.models.session import DEFAULT_DEVICE_ID, AccountSession

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "as_utc",
    "utcnow",
    "Account",
    "AccountRole",
    "DEFAULT_AVATAR_URL",
    "AccountSession",
    "DEFAULT_DEVICE_ID",
]
