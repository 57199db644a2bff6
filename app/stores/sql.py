"""
SQLAlchemy implementation of the store interfaces.

Each mutating method is one conditional statement committed on its own,
so a failure raised afterwards by the service layer (e.g. the revoke
that precedes ``RefreshTokenReused``) is never rolled back with it.

Reads use ``populate_existing`` so rows changed by a bulk UPDATE are
reloaded instead of served stale from the identity map.
"""

import functools
import logging
import uuid
from datetime import date, datetime
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy import delete, exc as sa_exc, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import Account, AccountRole
from app.models.session import AccountSession
from app.stores.base import AccountStore, SessionStore, Store
from app.stores.errors import DuplicateKey, StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _duplicate_fields(err: sa_exc.IntegrityError) -> list[str]:
    text = str(err.orig).lower()
    if "device" in text:
        # uq_account_sessions_device_slot / account_sessions.device_id
        return ["device_id"]
    fields = [name for name in ("email", "phone") if name in text]
    return fields or ["email"]


def translate_errors(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Map driver exceptions onto the store error hierarchy, rolling back first."""

    @functools.wraps(func)
    async def wrapper(self: "_SqlStoreBase", *args: Any, **kwargs: Any) -> T:
        try:
            return await func(self, *args, **kwargs)
        except sa_exc.IntegrityError as err:
            await self.db.rollback()
            raise DuplicateKey(_duplicate_fields(err)) from err
        except (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError, TimeoutError) as err:
            await self.db.rollback()
            logger.error("Store call %s failed: %s", func.__name__, err.__class__.__name__)
            raise StoreUnavailable(str(err)) from err

    return wrapper


class _SqlStoreBase:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db


class SqlAccountStore(_SqlStoreBase, AccountStore):

    @translate_errors
    async def get_by_id(self, account_id: uuid.UUID) -> Account | None:
        stmt = (
            select(Account)
            .where(Account.id == account_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    @translate_errors
    async def get_by_email(self, email: str) -> Account | None:
        stmt = (
            select(Account)
            .where(Account.email == email)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    @translate_errors
    async def find_conflicts(
        self,
        email: str | None,
        phone: str | None,
        *,
        exclude_id: uuid.UUID | None = None,
    ) -> list[str]:
        clauses = []
        if email:
            clauses.append(Account.email == email)
        if phone:
            clauses.append(Account.phone == phone)
        if not clauses:
            return []

        stmt = select(Account.email, Account.phone).where(or_(*clauses))
        if exclude_id is not None:
            stmt = stmt.where(Account.id != exclude_id)
        rows = (await self.db.execute(stmt)).all()

        taken: list[str] = []
        if email and any(row.email == email for row in rows):
            taken.append("email")
        if phone and any(row.phone == phone for row in rows):
            taken.append("phone")
        return taken

    @translate_errors
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
        )
        self.db.add(account)
        await self.db.commit()
        return account

    @translate_errors
    async def update(self, account_id: uuid.UUID, values: dict[str, Any]) -> Account | None:
        if values:
            stmt = (
                update(Account)
                .where(Account.id == account_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(stmt)
            await self.db.commit()
        return await self.get_by_id(account_id)

    @translate_errors
    async def delete(self, account_id: uuid.UUID) -> bool:
        stmt = delete(Account).where(Account.id == account_id)
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount > 0


class SqlSessionStore(_SqlStoreBase, SessionStore):

    @staticmethod
    def _active(now: datetime):
        return (AccountSession.revoked_at.is_(None), AccountSession.expires_at > now)

    async def _revoke_where(self, now: datetime, *criteria) -> int:
        stmt = (
            update(AccountSession)
            .where(AccountSession.revoked_at.is_(None), *criteria)
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount

    @translate_errors
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
        evict = (
            update(AccountSession)
            .where(
                AccountSession.account_id == account_id,
                AccountSession.device_id == device_id,
                AccountSession.revoked_at.is_(None),
            )
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        evicted = (await self.db.execute(evict)).rowcount

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
        self.db.add(session)
        # eviction and insert commit together; the partial unique index
        # rejects the insert if another login took the slot meanwhile
        await self.db.commit()
        return session, evicted

    @translate_errors
    async def get_by_id(self, session_id: uuid.UUID) -> AccountSession | None:
        stmt = (
            select(AccountSession)
            .where(AccountSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    @translate_errors
    async def get_for_account(
        self, session_id: uuid.UUID, account_id: uuid.UUID
    ) -> AccountSession | None:
        stmt = (
            select(AccountSession)
            .where(
                AccountSession.id == session_id,
                AccountSession.account_id == account_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    @translate_errors
    async def list_active(self, account_id: uuid.UUID, now: datetime) -> list[AccountSession]:
        stmt = (
            select(AccountSession)
            .where(AccountSession.account_id == account_id, *self._active(now))
            .order_by(AccountSession.last_used_at.desc(), AccountSession.created_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    @translate_errors
    async def rotate(
        self,
        session_id: uuid.UUID,
        expected_hash: str,
        new_hash: str,
        now: datetime,
    ) -> bool:
        stmt = (
            update(AccountSession)
            .where(
                AccountSession.id == session_id,
                AccountSession.refresh_token_hash == expected_hash,
                *self._active(now),
            )
            .values(refresh_token_hash=new_hash, last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount == 1

    @translate_errors
    async def revoke(
        self,
        session_id: uuid.UUID,
        now: datetime,
        *,
        account_id: uuid.UUID | None = None,
    ) -> bool:
        criteria = [AccountSession.id == session_id]
        if account_id is not None:
            criteria.append(AccountSession.account_id == account_id)
        return await self._revoke_where(now, *criteria) == 1

    @translate_errors
    async def revoke_all(self, account_id: uuid.UUID, now: datetime) -> int:
        return await self._revoke_where(
            now,
            AccountSession.account_id == account_id,
            AccountSession.expires_at > now,
        )


def sql_store(db: AsyncSession) -> Store:
    return Store(accounts=SqlAccountStore(db), sessions=SqlSessionStore(db))
