"""Unit tests for the authentication service.

Tests for:
- Registration (conflicts, normalization, first session)
- Login with device-slot eviction
- Refresh rotation and reuse detection
- Logout
"""

import asyncio
import uuid
from datetime import timedelta

import pytest
from jose import jwt

from app.core.config import settings
from app.core.errors import (
    Conflict,
    InvalidCredentials,
    InvalidRefreshToken,
    MissingDeviceId,
    MissingRefreshToken,
    RefreshTokenReused,
    SessionExpired,
    UserInactive,
    UserNotFound,
)
from app.core.security import create_access_token, create_refresh_token, hash_token
from app.models.base import utcnow
from app.services import auth_service, session_service
from app.stores.base import Store
from app.stores.errors import DuplicateKey, StoreUnavailable
from app.stores.memory import MemorySessionStore, MemoryStore


class YieldingRotateSessionStore(MemorySessionStore):
    """Suspends before the compare-and-set so concurrent refreshes interleave."""

    def __init__(self, lock):
        super().__init__(lock)
        self.rotations = []

    async def rotate(self, session_id, expected_hash, new_hash, now):
        await asyncio.sleep(0)
        rotated = await super().rotate(session_id, expected_hash, new_hash, now)
        self.rotations.append(rotated)
        return rotated


class FailingRevokeSessionStore(MemorySessionStore):
    """Every revoke fails as if the database went away."""

    def __init__(self, lock):
        super().__init__(lock)
        self.revoke_calls = 0

    async def revoke(self, session_id, now, *, account_id=None):
        self.revoke_calls += 1
        raise StoreUnavailable("connection reset")


class ContendedSlotSessionStore(MemorySessionStore):
    """Loses the device slot to a concurrent login the first ``losses`` times."""

    def __init__(self, lock):
        super().__init__(lock)
        self.losses = 0
        self.attempts = 0

    async def open_in_slot(self, **kwargs):
        self.attempts += 1
        if self.attempts <= self.losses:
            raise DuplicateKey(["device_id"])
        return await super().open_in_slot(**kwargs)


def _with_sessions(store, session_store_cls):
    return Store(accounts=store.accounts, sessions=session_store_cls(store.accounts._lock))


async def _register(store, email="a@x.com", password="secret1", device_id="d1", **extra):
    return await auth_service.register(
        store, email=email, password=password, device_id=device_id, **extra
    )


def _slot_active(store, account_id, device_id):
    now = utcnow()
    return [
        s for s in store.sessions.rows.values()
        if s.account_id == account_id and s.device_id == device_id and s.is_active(now)
    ]


class TestRegister:

    async def test_register_creates_account_and_session(self, store):
        result = await _register(store)

        view = result.account.safe_view()
        assert "password_hash" not in view
        assert "password" not in view
        assert view["role"] == "user"
        assert view["is_active"] is True

        session = store.sessions.rows[result.session_id]
        assert session.revoked_at is None
        assert session.device_id == "d1"
        assert session.refresh_token_hash == hash_token(result.refresh_token)

    async def test_register_normalizes_email(self, store):
        result = await _register(store, email="  Alice@Example.COM ")
        assert result.account.email == "alice@example.com"

    async def test_duplicate_email_conflicts(self, store):
        await _register(store)
        with pytest.raises(Conflict) as exc_info:
            await _register(store, email="A@X.com")

        assert exc_info.value.fields == ["email"]
        assert exc_info.value.status_code == 409

    async def test_conflict_reports_both_fields(self, store):
        await _register(store, phone="+1 555 0100 200")
        with pytest.raises(Conflict) as exc_info:
            await _register(store, phone="+15550100200")

        assert exc_info.value.fields == ["email", "phone"]
        assert exc_info.value.details == {"fields": ["email", "phone"]}

    async def test_register_requires_device_id(self, store):
        with pytest.raises(MissingDeviceId):
            await _register(store, device_id="   ")
        assert store.accounts.rows == {}


class TestLogin:

    async def test_login_on_same_device_revokes_previous_session(self, store):
        registered = await _register(store)

        logged_in = await auth_service.login(
            store, email="a@x.com", password="secret1", device_id="d1"
        )

        assert logged_in.session_id != registered.session_id
        assert store.sessions.rows[registered.session_id].revoked_at is not None
        assert store.sessions.rows[logged_in.session_id].revoked_at is None

    async def test_at_most_one_active_session_per_device(self, store):
        registered = await _register(store)
        account_id = registered.account.id

        for _ in range(5):
            await auth_service.login(store, email="a@x.com", password="secret1", device_id="d1")
            assert len(_slot_active(store, account_id, "d1")) == 1

    async def test_login_on_other_device_keeps_existing_session(self, store):
        registered = await _register(store)

        await auth_service.login(store, email="a@x.com", password="secret1", device_id="d2")

        assert store.sessions.rows[registered.session_id].revoked_at is None
        assert len(_slot_active(store, registered.account.id, "d2")) == 1

    async def test_unknown_email_and_wrong_password_look_identical(self, store):
        await _register(store)

        with pytest.raises(InvalidCredentials) as unknown:
            await auth_service.login(store, email="nobody@x.com", password="secret1", device_id="d1")
        with pytest.raises(InvalidCredentials) as wrong:
            await auth_service.login(store, email="a@x.com", password="wrong-pw", device_id="d1")

        assert unknown.value.code == wrong.value.code
        assert unknown.value.status_code == wrong.value.status_code == 401
        assert unknown.value.message == wrong.value.message

    async def test_login_is_case_insensitive_on_email(self, store):
        await _register(store)
        result = await auth_service.login(
            store, email=" A@X.COM ", password="secret1", device_id="d1"
        )
        assert result.account.email == "a@x.com"

    async def test_login_requires_device_id(self, store):
        await _register(store)
        with pytest.raises(MissingDeviceId):
            await auth_service.login(store, email="a@x.com", password="secret1", device_id="")

    async def test_inactive_account_cannot_login(self, store):
        registered = await _register(store)
        await store.accounts.update(registered.account.id, {"is_active": False})

        with pytest.raises(UserInactive) as exc_info:
            await auth_service.login(store, email="a@x.com", password="secret1", device_id="d1")
        assert exc_info.value.status_code == 403

    async def test_login_retries_when_slot_is_claimed_concurrently(self):
        store = _with_sessions(MemoryStore(), ContendedSlotSessionStore)
        registered = await _register(store)
        store.sessions.losses = store.sessions.attempts + 1

        result = await auth_service.login(
            store, email="a@x.com", password="secret1", device_id="d1"
        )

        active = _slot_active(store, registered.account.id, "d1")
        assert [s.id for s in active] == [result.session_id]
        assert store.sessions.rows[result.session_id].refresh_token_hash == hash_token(
            result.refresh_token
        )

    async def test_login_gives_up_on_a_permanently_contended_slot(self):
        store = _with_sessions(MemoryStore(), ContendedSlotSessionStore)
        await _register(store)
        store.sessions.losses = 100

        with pytest.raises(StoreUnavailable):
            await auth_service.login(store, email="a@x.com", password="secret1", device_id="d1")


class TestRefresh:

    async def test_refresh_rotates_tokens(self, store):
        registered = await _register(store)

        tokens = await auth_service.refresh_access_token(store, registered.refresh_token)

        assert tokens.refresh_token != registered.refresh_token
        assert tokens.session_id == registered.session_id
        session = store.sessions.rows[registered.session_id]
        assert session.refresh_token_hash == hash_token(tokens.refresh_token)
        assert session.revoked_at is None

    async def test_replayed_token_revokes_session(self, store):
        registered = await _register(store)
        rotated = await auth_service.refresh_access_token(store, registered.refresh_token)

        with pytest.raises(RefreshTokenReused):
            await auth_service.refresh_access_token(store, registered.refresh_token)

        assert store.sessions.rows[registered.session_id].revoked_at is not None
        # the legitimate successor is dead too
        with pytest.raises(SessionExpired):
            await auth_service.refresh_access_token(store, rotated.refresh_token)

        sessions = await session_service.list_sessions(store, registered.account.id)
        assert str(registered.session_id) not in [s.id for s in sessions]

    async def test_refresh_chain(self, store):
        registered = await _register(store)
        token = registered.refresh_token
        for _ in range(3):
            token = (await auth_service.refresh_access_token(store, token)).refresh_token

        tokens = await auth_service.refresh_access_token(store, token)
        assert tokens.session_id == registered.session_id

    async def test_concurrent_refresh_with_same_token(self):
        """Both callers read the session before either rotates; the CAS loser is told reuse."""
        store = _with_sessions(MemoryStore(), YieldingRotateSessionStore)
        registered = await _register(store)

        results = await asyncio.gather(
            auth_service.refresh_access_token(store, registered.refresh_token),
            auth_service.refresh_access_token(store, registered.refresh_token),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], RefreshTokenReused)
        assert store.sessions.rotations == [True, False]
        assert store.sessions.rows[registered.session_id].revoked_at is not None

    async def test_reuse_is_reported_even_if_revoke_fails(self):
        store = _with_sessions(MemoryStore(), FailingRevokeSessionStore)
        registered = await _register(store)
        await auth_service.refresh_access_token(store, registered.refresh_token)

        with pytest.raises(RefreshTokenReused):
            await auth_service.refresh_access_token(store, registered.refresh_token)
        assert store.sessions.revoke_calls == 1

    async def test_missing_refresh_token(self, store):
        with pytest.raises(MissingRefreshToken):
            await auth_service.refresh_access_token(store, None)
        with pytest.raises(MissingRefreshToken):
            await auth_service.refresh_access_token(store, "")

    async def test_garbage_refresh_token(self, store):
        with pytest.raises(InvalidRefreshToken):
            await auth_service.refresh_access_token(store, "not-a-token")

    async def test_access_token_cannot_refresh(self, store):
        registered = await _register(store)
        with pytest.raises(InvalidRefreshToken):
            await auth_service.refresh_access_token(store, registered.access_token)

    async def test_expired_refresh_token(self, store):
        registered = await _register(store)
        expired = create_refresh_token(
            registered.account.id, registered.session_id, expires_delta=timedelta(seconds=-30)
        )
        with pytest.raises(InvalidRefreshToken):
            await auth_service.refresh_access_token(store, expired)

    async def test_refresh_token_without_session_claim(self, store):
        token = jwt.encode(
            {"id": str(uuid.uuid4()), "type": "refresh"},
            settings.JWT_REFRESH_SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )
        with pytest.raises(InvalidRefreshToken):
            await auth_service.refresh_access_token(store, token)

    async def test_unknown_session(self, store):
        registered = await _register(store)
        token = create_refresh_token(registered.account.id, uuid.uuid4())
        with pytest.raises(SessionExpired):
            await auth_service.refresh_access_token(store, token)

    async def test_expired_session(self, store):
        registered = await _register(store)
        store.sessions.rows[registered.session_id].expires_at = utcnow() - timedelta(seconds=1)

        with pytest.raises(SessionExpired):
            await auth_service.refresh_access_token(store, registered.refresh_token)

    async def test_refresh_after_revoke_all(self, store):
        registered = await _register(store)
        second = await auth_service.login(store, email="a@x.com", password="secret1", device_id="d2")

        await session_service.revoke_all_sessions(store, registered.account.id)

        for token in (registered.refresh_token, second.refresh_token):
            with pytest.raises(SessionExpired):
                await auth_service.refresh_access_token(store, token)

    async def test_refresh_for_deleted_account(self, store):
        registered = await _register(store)
        await store.accounts.delete(registered.account.id)

        with pytest.raises(UserNotFound):
            await auth_service.refresh_access_token(store, registered.refresh_token)

    async def test_refresh_for_inactive_account(self, store):
        registered = await _register(store)
        await store.accounts.update(registered.account.id, {"is_active": False})

        with pytest.raises(UserInactive):
            await auth_service.refresh_access_token(store, registered.refresh_token)

    async def test_new_access_token_keeps_role(self, store):
        registered = await _register(store)
        await store.accounts.update(registered.account.id, {"role": "admin"})

        tokens = await auth_service.refresh_access_token(store, registered.refresh_token)

        from app.core.security import decode_access_token

        assert decode_access_token(tokens.access_token)["role"] == "admin"


class TestLogout:

    async def test_logout_revokes_session(self, store):
        registered = await _register(store)

        await auth_service.logout(store, registered.refresh_token)

        assert store.sessions.rows[registered.session_id].revoked_at is not None
        with pytest.raises(SessionExpired):
            await auth_service.refresh_access_token(store, registered.refresh_token)

    async def test_logout_never_fails(self, store):
        await auth_service.logout(store, None)
        await auth_service.logout(store, "garbage")
        await auth_service.logout(store, create_access_token(uuid.uuid4(), "user"))
        await auth_service.logout(store, create_refresh_token(uuid.uuid4(), uuid.uuid4()))

    async def test_logout_twice_keeps_first_revocation(self, store):
        registered = await _register(store)

        await auth_service.logout(store, registered.refresh_token)
        first = store.sessions.rows[registered.session_id].revoked_at
        await auth_service.logout(store, registered.refresh_token)

        assert store.sessions.rows[registered.session_id].revoked_at == first

    async def test_logout_survives_store_failure(self):
        store = _with_sessions(MemoryStore(), FailingRevokeSessionStore)
        registered = await _register(store)

        await auth_service.logout(store, registered.refresh_token)

        assert store.sessions.revoke_calls == 1
