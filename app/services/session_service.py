"""
Session service — listing & revocation helpers for account sessions.

Handles:
- Listing active sessions (multi-device view)
- Revoking a single session by id (owner only, idempotent)
- Revoking every session of an account (logout-all, password change,
  account deletion, admin deactivation)
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from app.core.errors import SessionNotFound
from app.models.base import as_utc, utcnow
from app.models.session import AccountSession
from app.stores.base import Store

logger = logging.getLogger(__name__)


@dataclass
class SessionView:
    """Non-sensitive projection of a session.  No token material."""

    id: str
    device_id: str
    ip: str
    user_agent: str
    created_at: datetime
    last_used_at: datetime
    expires_at: datetime

    @classmethod
    def from_session(cls, session: AccountSession) -> "SessionView":
        return cls(
            id=str(session.id),
            device_id=session.device_id or "",
            ip=session.client_ip or "",
            user_agent=session.user_agent or "",
            created_at=as_utc(session.created_at),
            last_used_at=as_utc(session.last_used_at),
            expires_at=as_utc(session.expires_at),
        )


async def list_sessions(store: Store, account_id: uuid.UUID) -> list[SessionView]:
    """Active sessions for an account, most recently used first."""
    sessions = await store.sessions.list_active(account_id, utcnow())
    return [SessionView.from_session(s) for s in sessions]


async def revoke_session_by_id(
    store: Store,
    account_id: uuid.UUID,
    session_id: uuid.UUID | str,
) -> None:
    """
    Revoke one of the caller's own sessions.

    A second call on the same session is a no-op; the first
    revocation timestamp is kept.
    """
    try:
        session_uuid = uuid.UUID(str(session_id))
    except ValueError:
        raise SessionNotFound()

    session = await store.sessions.get_for_account(session_uuid, account_id)
    if session is None:
        raise SessionNotFound()

    if session.revoked_at is None:
        if await store.sessions.revoke(session_uuid, utcnow(), account_id=account_id):
            logger.info("Session %s revoked by account %s", session_uuid, account_id)


async def revoke_all_sessions(store: Store, account_id: uuid.UUID) -> int:
    """
    Revoke every active session for a given account.

    Returns the number of sessions affected.
    """
    count = await store.sessions.revoke_all(account_id, utcnow())
    logger.info("Revoked %d session(s) for account %s", count, account_id)
    return count
