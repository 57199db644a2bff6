"""
Authentication service.

Handles:
- Registration & login with device-slot enforcement
- Refresh-token rotation with reuse detection
- Logout of the current session

Session rules:
- One active session per (account, device) slot: a new login on the
  same device revokes the previous one; other devices are untouched.
- One valid refresh token per session.  Presenting an older one is
  treated as theft and revokes the whole session.

Every store mutation is a single conditional write; this module holds
no locks and does no read-modify-write on session rows.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, timedelta

from app.core.config import settings
from app.core.errors import (
    Conflict,
    InvalidCredentials,
    InvalidRefreshToken,
    InvalidToken,
    MissingDeviceId,
    MissingRefreshToken,
    RefreshTokenReused,
    SessionExpired,
    TokenExpired,
    UserInactive,
    UserNotFound,
)
from app.core.security import (
    burn_password_check,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    fingerprints_match,
    hash_password,
    hash_token,
    verify_password,
)
from app.models.account import Account, AccountRole
from app.models.base import utcnow
from app.stores.base import Store
from app.stores.errors import DuplicateKey, StoreError, StoreUnavailable

logger = logging.getLogger(__name__)

_SLOT_CLAIM_ATTEMPTS = 3


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    session_id: uuid.UUID


@dataclass
class AuthResult:
    access_token: str
    refresh_token: str
    session_id: uuid.UUID
    account: Account


# ── Helpers ──────────────────────────────────────────────────────────

def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_phone(phone: str | None) -> str | None:
    if phone is None:
        return None
    cleaned = "".join(phone.split())
    return cleaned or None


def _role_of(account: Account) -> str:
    return AccountRole(account.role).value


def _parse_uuid(value: object) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


async def _open_session(
    store: Store,
    account: Account,
    *,
    device_id: str,
    user_agent: str,
    client_ip: str,
) -> TokenPair:
    """
    Take over the device slot with a fresh session and mint its tokens.

    The session id is allocated here so the refresh token can embed it
    before the row exists; the row is inserted with its real fingerprint
    and never carries a placeholder.  Eviction and insert are one store
    call; losing the slot to a concurrent login just means evicting again.
    """
    access_token = create_access_token(account.id, _role_of(account))

    for attempt in range(1, _SLOT_CLAIM_ATTEMPTS + 1):
        now = utcnow()
        session_id = uuid.uuid4()
        refresh_token = create_refresh_token(account.id, session_id)
        try:
            _, evicted = await store.sessions.open_in_slot(
                session_id=session_id,
                account_id=account.id,
                refresh_token_hash=hash_token(refresh_token),
                device_id=device_id,
                user_agent=user_agent,
                client_ip=client_ip,
                expires_at=now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
                now=now,
            )
        except DuplicateKey:
            logger.info(
                "Device slot of account %s claimed concurrently (attempt %d)",
                account.id,
                attempt,
            )
            continue
        if evicted:
            logger.info("Revoked %d session(s) on device slot for account %s", evicted, account.id)
        return TokenPair(access_token, refresh_token, session_id)

    raise StoreUnavailable(f"device slot of account {account.id} is contended")


def _require_device_id(device_id: str | None) -> str:
    device_id = (device_id or "").strip()
    if not device_id:
        raise MissingDeviceId()
    return device_id


# ── Login ────────────────────────────────────────────────────────────

async def login(
    store: Store,
    *,
    email: str,
    password: str,
    device_id: str | None,
    user_agent: str = "",
    client_ip: str = "",
) -> AuthResult:
    """
    Validate credentials and open a fresh session on ``device_id``.

    Unknown email and wrong password fail identically, and both paths
    spend one bcrypt verification.
    """
    account = await store.accounts.get_by_email(normalize_email(email))
    if account is None:
        burn_password_check(password)
        raise InvalidCredentials()
    if not verify_password(password, account.password_hash):
        raise InvalidCredentials()

    device_id = _require_device_id(device_id)

    if not account.is_active:
        raise UserInactive()

    tokens = await _open_session(
        store, account, device_id=device_id, user_agent=user_agent, client_ip=client_ip,
    )
    logger.info("Login for account %s (session %s)", account.id, tokens.session_id)
    return AuthResult(tokens.access_token, tokens.refresh_token, tokens.session_id, account)


# ── Register ─────────────────────────────────────────────────────────

async def register(
    store: Store,
    *,
    email: str,
    password: str,
    device_id: str | None,
    first_name: str = "",
    last_name: str = "",
    phone: str | None = None,
    date_of_birth: date | None = None,
    user_agent: str = "",
    client_ip: str = "",
) -> AuthResult:
    """Create an account (role "user", active) and open its first session."""
    email = normalize_email(email)
    phone = normalize_phone(phone)

    taken = await store.accounts.find_conflicts(email, phone)
    if taken:
        raise Conflict(taken)

    device_id = _require_device_id(device_id)

    try:
        account = await store.accounts.create(
            email=email,
            password_hash=hash_password(password),
            phone=phone,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            date_of_birth=date_of_birth,
            role=AccountRole.USER.value,
            is_active=True,
        )
    except DuplicateKey as err:
        # lost a race against a concurrent registration
        raise Conflict(err.fields)

    tokens = await _open_session(
        store, account, device_id=device_id, user_agent=user_agent, client_ip=client_ip,
    )
    logger.info("Registered account %s (session %s)", account.id, tokens.session_id)
    return AuthResult(tokens.access_token, tokens.refresh_token, tokens.session_id, account)


# ── Refresh ──────────────────────────────────────────────────────────

async def _revoke_on_reuse(store: Store, session_id: uuid.UUID, account_id: object) -> None:
    """Poison the session.  A store failure here must not mask the reuse error."""
    try:
        await store.sessions.revoke(session_id, utcnow())
    except StoreError:
        logger.exception("Could not revoke session %s after refresh token reuse", session_id)
        return
    logger.warning(
        "Refresh token reuse detected: session %s of account %s revoked",
        session_id,
        account_id,
    )


async def refresh_access_token(store: Store, refresh_token: str | None) -> TokenPair:
    """
    Validate a refresh token, rotate it, and return a new token pair.

    The presented token's fingerprint must equal the one stored on the
    session; a mismatch means an already-rotated token was replayed.
    """
    if not refresh_token:
        raise MissingRefreshToken()

    try:
        payload = decode_refresh_token(refresh_token)
    except (InvalidToken, TokenExpired):
        raise InvalidRefreshToken()

    account_id = _parse_uuid(payload.get("id"))
    session_id = _parse_uuid(payload.get("sid"))
    if account_id is None or session_id is None:
        raise InvalidRefreshToken()

    now = utcnow()
    session = await store.sessions.get_by_id(session_id)
    if session is None or not session.is_active(now):
        raise SessionExpired()
    if session.account_id != account_id:
        raise InvalidRefreshToken()

    presented_hash = hash_token(refresh_token)
    if not fingerprints_match(presented_hash, session.refresh_token_hash):
        await _revoke_on_reuse(store, session.id, account_id)
        raise RefreshTokenReused()

    account = await store.accounts.get_by_id(account_id)
    if account is None:
        raise UserNotFound()
    if not account.is_active:
        raise UserInactive()

    new_access = create_access_token(account.id, _role_of(account))
    new_refresh = create_refresh_token(account.id, session.id)

    rotated = await store.sessions.rotate(session.id, presented_hash, hash_token(new_refresh), utcnow())
    if not rotated:
        # Someone changed the row between our read and our write.
        current = await store.sessions.get_by_id(session.id)
        if current is None or not current.is_active():
            raise SessionExpired()
        await _revoke_on_reuse(store, session.id, account_id)
        raise RefreshTokenReused()

    logger.debug("Rotated refresh token for session %s", session.id)
    return TokenPair(new_access, new_refresh, session.id)


# ── Logout ───────────────────────────────────────────────────────────

async def logout(store: Store, refresh_token: str | None) -> None:
    """Best-effort revoke of the session named by ``refresh_token``.  Never raises."""
    if not refresh_token:
        return
    try:
        payload = decode_refresh_token(refresh_token)
    except (InvalidToken, TokenExpired):
        return

    session_id = _parse_uuid(payload.get("sid"))
    if session_id is None:
        return

    try:
        revoked = await store.sessions.revoke(session_id, utcnow())
    except StoreError:
        logger.warning("Logout could not revoke session %s", session_id)
        return
    if revoked:
        logger.info("Session %s logged out", session_id)
