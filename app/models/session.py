"""
Account session model — device-bound session registry.

One row per authenticated device binding, enabling:
- One active session per (account, device) slot
- Multi-device listing & targeted revocation
- Refresh-token rotation with hash-based storage (raw refresh tokens
  are never persisted)

A session is active iff `revoked_at IS NULL AND expires_at > now`.
`revoked_at` is written once and never cleared.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, as_utc, utcnow

DEFAULT_DEVICE_ID = "default"


class AccountSession(Base, TimestampMixin):
    __tablename__ = "account_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    refresh_token_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    device_id: Mapped[str] = mapped_column(String(256), default=DEFAULT_DEVICE_ID, nullable=False)
    user_agent: Mapped[str] = mapped_column(String(512), default="", nullable=False)
    client_ip: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        # one unrevoked session per device slot; expired rows are evicted along
        # with live ones when the slot is taken over
        Index(
            "uq_account_sessions_device_slot",
            "account_id",
            "device_id",
            unique=True,
            postgresql_where=text("revoked_at IS NULL"),
            sqlite_where=text("revoked_at IS NULL"),
        ),
    )

    def is_active(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return self.revoked_at is None and as_utc(self.expires_at) > now

    def __repr__(self) -> str:
        return f"<AccountSession account={self.account_id} device={self.device_id} revoked={self.revoked_at is not None}>"
