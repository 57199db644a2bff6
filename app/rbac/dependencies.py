"""
Auth gateway dependencies — bearer-token authentication & role checks.

`get_auth_context` is the gateway every protected route depends on:

1. Extract the bearer token from the Authorization header
   (401 MISSING_TOKEN if absent or not a Bearer scheme).
2. Verify it with the access secret (401 INVALID_TOKEN /
   TOKEN_EXPIRED, no hint about which check failed).
3. Attach `AuthContext(account_id, role)` to `request.state.auth`
   and return it.

The gateway is stateless: it never touches the store.

`require_role` is a *dependency factory* layered on top:

    @router.post("/x", dependencies=[Depends(require_role("admin"))])
    async def x(...): ...

Or inject the context:
    async def x(auth: AuthContext = Depends(require_role("admin"))): ...
"""

import logging
import uuid
from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from app.core.errors import InsufficientRole, InvalidToken, MissingToken
from app.core.security import decode_access_token

logger = logging.getLogger("rbac")

# auto_error=False: a missing/malformed header is reported as MISSING_TOKEN
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Authenticated identity attached to the current request."""

    account_id: uuid.UUID
    role: str


def authenticate_token(token: str | None) -> AuthContext:
    if not token:
        raise MissingToken()

    payload = decode_access_token(token)

    role = payload.get("role")
    try:
        account_id = uuid.UUID(str(payload.get("id")))
    except ValueError:
        raise InvalidToken()
    if not isinstance(role, str) or not role:
        raise InvalidToken()
    return AuthContext(account_id=account_id, role=role)


async def get_auth_context(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
) -> AuthContext:
    """FastAPI dependency: authenticate the bearer token of this request."""
    auth = authenticate_token(token)
    request.state.auth = auth
    return auth


class require_role:
    """
    Dependency factory.

    Can be used as:
        Depends(require_role("admin"))
        Depends(require_role("admin", "support"))
    """

    def __init__(self, *roles: str):
        self.allowed_roles = set(roles)

    async def __call__(self, auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if auth.role not in self.allowed_roles:
            logger.warning(
                "Role check failed for account %s: required one of %s, has %s",
                auth.account_id,
                sorted(self.allowed_roles),
                auth.role,
            )
            # Intentionally vague: do NOT reveal which role is required
            raise InsufficientRole()
        return auth
