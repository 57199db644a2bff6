"""
In-memory implementation of the store interfaces.

Used when ``USE_MEMORY_STORE`` is set (local development) and by the
test suite.  Rows are kept as detached model instances; every read
returns a copy so callers never hold a live reference into the store.

All data operations run under one lock, which makes each method as
atomic as the single-statement SQL equivalent.
"""

import threading
import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import inspect as sa_inspect

from app.models.account import DEFAULT_AVATAR_URL, Account, AccountRole
from app.models.base import as_utc, utcnow
from app.models.session import AccountSession
from app.stores.base import AccountStore, SessionStore, Store
from app.stores.errors import DuplicateKey


def _snapshot(row: Any) -> Any:
    if row is None:
        return None
    columns = sa_inspect(type(row)).column_attrs
    return type(row)(**{attr.key: getattr(row, attr.key) for attr in columns})


class MemoryAccountStore(AccountStore):

    def __init__(self, lock: threading.RLock) -> None:
        self._lock = lock
        self.rows: dict[uuid.UUID, Account] = {}

    def _conflicts(self, email: str | None, phone: str | None, exclude_id: uuid.UUID | None) -> list[str]:
        others = [a for a in self.rows.values() if a.id != exclude_id]
        taken: list[str] = []
        if email and any(a.email == email for a in others):
            taken.append("email")
        if phone and any(a.phone == phone for a in others):
            taken.append("phone")
        return taken

    async def get_by_id(self, account_id: uuid.UUID) -> Account | None:
        with self._lock:
            return _snapshot(self.rows.get(account_id))

    async def get_by_email(self, email: str) -> Account | None:
        with self._lock:
            for account in self.rows.values():
                if account.email == email:
                    return _snapshot(account)
        return None

    async def find_conflicts(
        self,
        email: str | None,
        phone: str | None,
        *,
        exclude_id: uuid.UUID | None = None,
    ) -> list[str]:
        with self._lock:
            return self._conflicts(email, phone, exclude_id)

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
        now = utcnow()
        with self._lock:
            taken = self._conflicts(email, phone, None)
            if taken:
                raise DuplicateKey(taken)
            account = Account(
                id=uuid.uuid4(),
                email=email,
                password_hash=password_hash,
                phone=phone,
                first_name=first_name,
                last_name=last_name,
                date_of_birth=date_of_birth,
                role=AccountRole(role),
                is_active=is_active,
                avatar_url=DEFAULT_AVATAR_URL,
                stats_giving=0,
                stats_exchanging=0,
                stats_exchanged=0,
                stats_given=0,
                created_at=now,
                updated_at=now,
            )
            self.rows[account.id] = account
            return _snapshot(account)

    async def update(self, account_id: uuid.UUID, values: dict[str, Any]) -> Account | None:
        with self._lock:
            account = self.rows.get(account_id)
            if account is None:
                return None
            taken = self._conflicts(values.get("email"), values.get("phone"), account_id)
            if taken:
                raise DuplicateKey(taken)
            for key, value in values.items():
                setattr(account, key, value)
            if values:
                account.updated_at = utcnow()
            return _snapshot(account)

    async def delete(self, account_id: uuid.UUID) -> bool:
        with self._lock:
            return self.rows.pop(account_id, None) is not None


class MemorySessionStore(SessionStore):

    def __init__(self, lock: threading.RLock) -> None:
        self._lock = lock
        self.rows: dict[uuid.UUID, AccountSession] = {}

    def _revoke_matching(self, now: datetime, predicate) -> int:
        count = 0
        for session in self.rows.values():
            if session.revoked_at is None and predicate(session):
                session.revoked_at = now
                session.updated_at = now
                count += 1
        return count

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
        session = AccountSession(
            id=session_id,
            account_id=account_id,
            refresh_token_hash=refresh_token_hash,
            device_id=device_id,
            user_agent=user_agent,
            client_ip=client_ip,
            expires_at=expires_at,
            revoked_at=None,
            last_used_at=now,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            evicted = self._revoke_matching(
                now,
                lambda s: s.account_id == account_id and s.device_id == device_id,
            )
            self.rows[session.id] = session
            return _snapshot(session), evicted

    async def get_by_id(self, session_id: uuid.UUID) -> AccountSession | None:
        with self._lock:
            return _snapshot(self.rows.get(session_id))

    async def get_for_account(
        self, session_id: uuid.UUID, account_id: uuid.UUID
    ) -> AccountSession | None:
        with self._lock:
            session = self.rows.get(session_id)
            if session is None or session.account_id != account_id:
                return None
            return _snapshot(session)

    async def list_active(self, account_id: uuid.UUID, now: datetime) -> list[AccountSession]:
        with self._lock:
            active = [
                _snapshot(s)
                for s in self.rows.values()
                if s.account_id == account_id and s.is_active(now)
            ]
        active.sort(key=lambda s: (as_utc(s.last_used_at), as_utc(s.created_at)), reverse=True)
        return active

    async def rotate(
        self,
        session_id: uuid.UUID,
        expected_hash: str,
        new_hash: str,
        now: datetime,
    ) -> bool:
        with self._lock:
            session = self.rows.get(session_id)
            if session is None or not session.is_active(now):
                return False
            if session.refresh_token_hash != expected_hash:
                return False
            session.refresh_token_hash = new_hash
            session.last_used_at = now
            session.updated_at = now
            return True

    async def revoke(
        self,
        session_id: uuid.UUID,
        now: datetime,
        *,
        account_id: uuid.UUID | None = None,
    ) -> bool:
        with self._lock:
            return self._revoke_matching(
                now,
                lambda s: s.id == session_id
                and (account_id is None or s.account_id == account_id),
            ) == 1

    async def revoke_all(self, account_id: uuid.UUID, now: datetime) -> int:
        with self._lock:
            return self._revoke_matching(
                now,
                lambda s: s.account_id == account_id and as_utc(s.expires_at) > now,
            )


class MemoryStore(Store):
    """Both in-memory stores sharing one lock."""

    def __init__(self) -> None:
        lock = threading.RLock()
        super().__init__(
            accounts=MemoryAccountStore(lock),
            sessions=MemorySessionStore(lock),
        )
