"""
Account model.

Design decisions:
- Email is stored normalized (lowercased, trimmed) so the unique
  index doubles as a case-insensitive uniqueness check.
- Phone is optional but unique when present (NULLs never collide).
- `password_hash` is a bcrypt digest and never leaves the service
  layer (see `safe_view`).
- Role is a plain string ENUM; "user" by default.
"""

from __future__ import annotations

import enum
from datetime import date
from typing import Any

from sqlalchemy import Boolean, Date, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

DEFAULT_AVATAR_URL = "https://i.pravatar.cc/300"


class AccountRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class Account(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "accounts"

    email: Mapped[str] = mapped_column(String(256), unique=True, index=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), unique=True, nullable=True)
    password_hash: Mapped[str] = mapped_column(String(512), nullable=False)
    role: Mapped[AccountRole] = mapped_column(
        Enum(AccountRole, name="account_role", values_callable=lambda e: [m.value for m in e]),
        default=AccountRole.USER,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # ── Profile ──────────────────────────────────────────────────────
    first_name: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    last_name: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    avatar_url: Mapped[str] = mapped_column(String(1024), default=DEFAULT_AVATAR_URL, nullable=False)

    # ── Usage stats ──────────────────────────────────────────────────
    stats_giving: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stats_exchanging: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stats_exchanged: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stats_given: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def safe_view(self) -> dict[str, Any]:
        """Client-facing projection: everything except the password hash."""
        return {
            "id": str(self.id),
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "role": AccountRole(self.role).value,
            "is_active": self.is_active,
            "avatar_url": self.avatar_url,
            "stats": {
                "giving": self.stats_giving,
                "exchanging": self.stats_exchanging,
                "exchanged": self.stats_exchanged,
                "given": self.stats_given,
            },
            "date_of_birth": self.date_of_birth,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Account {self.id} role={AccountRole(self.role).value} active={self.is_active}>"
