"""
Password hashing & JWT helpers.

- Passwords are hashed with bcrypt directly (passlib is unmaintained
  and broken with bcrypt>=4.1).
- Access tokens carry `{id, role}` and are signed with the access
  secret; refresh tokens carry `{id, sid}` and are signed with the
  refresh secret, so one can never stand in for the other.
- Every token gets a random `jti`: two tokens minted in the same
  second must still have distinct fingerprints.
- Refresh tokens are stored server-side only as a SHA-256 fingerprint.

Everything here is pure: it touches neither storage nor request state.
"""

import hashlib
import hmac
import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from app.core.config import settings
from app.core.errors import InvalidToken, TokenExpired

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# bcrypt only looks at the first 72 bytes; bcrypt>=5 raises instead of
# truncating, so truncate explicitly.
_BCRYPT_MAX_BYTES = 72

# ── Password hashing ────────────────────────────────────────────────


def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_password_bytes(plain), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password(uuid.uuid4().hex)


def burn_password_check(plain: str) -> None:
    """Spend one bcrypt verification when there is no account to check against."""
    verify_password(plain, _dummy_hash())


# ── Token hashing (for refresh tokens) ──────────────────────────────


def hash_token(token: str) -> str:
    """SHA-256 hash, suitable for high-entropy tokens like JWTs."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def fingerprints_match(presented: str, stored: str) -> bool:
    return hmac.compare_digest(presented.encode("ascii"), stored.encode("ascii"))


# ── JWT ──────────────────────────────────────────────────────────────


def _encode(claims: dict[str, Any], secret: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    to_encode = claims.copy()
    to_encode.update({"iat": now, "exp": now + expires_delta, "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, secret, algorithm=settings.JWT_ALGORITHM)


def create_access_token(
    account_id: uuid.UUID | str,
    role: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Short-lived bearer token authorizing individual API calls."""
    return _encode(
        {"id": str(account_id), "role": role, "type": ACCESS_TOKEN_TYPE},
        settings.JWT_ACCESS_SECRET,
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(
    account_id: uuid.UUID | str,
    session_id: uuid.UUID | str,
    expires_delta: timedelta | None = None,
) -> str:
    """Long-lived token bound to one session; exchanged for new pairs."""
    return _encode(
        {"id": str(account_id), "sid": str(session_id), "type": REFRESH_TOKEN_TYPE},
        settings.JWT_REFRESH_SECRET,
        expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def decode_token(token: str, secret: str, expected_type: str) -> dict[str, Any]:
    """
    Verify signature, expiry and token type.

    Raises ``TokenExpired`` for a well-signed but expired token and
    ``InvalidToken`` for anything else.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpired()
    except JWTError:
        raise InvalidToken()

    if payload.get("type") != expected_type:
        raise InvalidToken()
    return payload


def decode_access_token(token: str) -> dict[str, Any]:
    return decode_token(token, settings.JWT_ACCESS_SECRET, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> dict[str, Any]:
    return decode_token(token, settings.JWT_REFRESH_SECRET, REFRESH_TOKEN_TYPE)
