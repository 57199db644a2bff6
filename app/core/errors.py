"""
Application error taxonomy.

Every failure the auth core can report is a subclass of ``AppError``
with a stable machine-readable ``code`` and an HTTP-equivalent
``status_code``.  Services raise them; ``register_exception_handlers``
turns them into a uniform JSON envelope:

    {"success": false, "code": "SESSION_EXPIRED", "message": "..."}

Storage failures live in ``app.stores.errors`` and are translated
separately (503 for an unreachable store).
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.stores.errors import StoreUnavailable

logger = logging.getLogger(__name__)

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


class AppError(Exception):
    """Base class for every error surfaced to API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"
    message: str = "Internal server error"
    headers: dict[str, str] | None = None

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        if message is not None:
            self.message = message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": False,
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


# ── Login / registration ─────────────────────────────────────────────
class InvalidCredentials(AppError):
    # Same code and message for unknown email and wrong password.
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_CREDENTIALS"
    message = "Invalid email or password"


class MissingDeviceId(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "MISSING_DEVICE_ID"
    message = "deviceId is required"


class UserInactive(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "USER_INACTIVE"
    message = "Account is disabled"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    message = "Conflict"

    def __init__(self, fields: list[str]) -> None:
        self.fields = list(fields)
        label = " and ".join(f.capitalize() if i == 0 else f for i, f in enumerate(self.fields))
        super().__init__(f"{label} already in use", details={"fields": self.fields})


# ── Refresh / sessions ───────────────────────────────────────────────
class MissingRefreshToken(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "MISSING_REFRESH_TOKEN"
    message = "No refresh token"


class InvalidRefreshToken(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_REFRESH_TOKEN"
    message = "Invalid refresh token"


class SessionExpired(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "SESSION_EXPIRED"
    message = "Session expired"


class RefreshTokenReused(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "REFRESH_TOKEN_REUSED"
    message = "Refresh token invalidated"


class UserNotFound(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "USER_NOT_FOUND"
    message = "User not found"


class SessionNotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "SESSION_NOT_FOUND"
    message = "Session not found"


# ── Gateway ──────────────────────────────────────────────────────────
class MissingToken(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "MISSING_TOKEN"
    message = "Missing token"
    headers = _BEARER_CHALLENGE


class InvalidToken(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_TOKEN"
    message = "Invalid token"
    headers = _BEARER_CHALLENGE


class TokenExpired(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "TOKEN_EXPIRED"
    message = "Token expired"
    headers = _BEARER_CHALLENGE


class InsufficientRole(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    message = "Insufficient permissions"


# ── Account profile ──────────────────────────────────────────────────
class AccountNotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "ACCOUNT_NOT_FOUND"
    message = "Account not found"


class WrongPassword(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "WRONG_PASSWORD"
    message = "Wrong password"


# ── FastAPI wiring ───────────────────────────────────────────────────
def register_exception_handlers(app: FastAPI) -> None:
    """Install the JSON error envelope for domain, storage and validation errors."""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.code)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=exc.headers,
        )

    @app.exception_handler(StoreUnavailable)
    async def handle_store_unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
        logger.error("%s %s -> store unavailable: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "success": False,
                "code": "STORE_UNAVAILABLE",
                "message": "Service temporarily unavailable",
            },
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {
                "path": ".".join(str(part) for part in err.get("loc", ())[1:]),
                "message": err.get("msg", ""),
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "code": "VALIDATION_ERROR",
                "message": "Validation error",
                "errors": errors,
            },
        )
