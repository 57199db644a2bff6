"""
Auth controller — register, login, token refresh, logout & sessions.

Register, login, refresh and logout are PUBLIC (refresh/logout read the
refresh cookie).  Session listing and revocation require a valid access
token.
"""

from fastapi import APIRouter, Depends, Request, Response, status

from app.core.cookies import clear_refresh_cookie, client_ip, read_refresh_token, set_refresh_cookie
from app.core.database import get_store
from app.models.session import DEFAULT_DEVICE_ID
from app.rbac.dependencies import AuthContext, get_auth_context
from app.schemas import (
    AccountOut,
    AuthResponse,
    LoginRequest,
    MessageResponse,
    RefreshResponse,
    RefreshTokenRequest,
    RegisterRequest,
    SessionListResponse,
    SessionOut,
)
from app.services import auth_service, session_service
from app.stores.base import Store

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _user_agent(request: Request) -> str:
    return request.headers.get("user-agent", "")


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    store: Store = Depends(get_store),
):
    """Create an account and sign in on the given device."""
    result = await auth_service.register(
        store,
        email=body.email,
        password=body.password,
        device_id=body.device_id or DEFAULT_DEVICE_ID,
        first_name=body.first_name or "",
        last_name=body.last_name or "",
        phone=body.phone,
        date_of_birth=body.date_of_birth,
        user_agent=_user_agent(request),
        client_ip=client_ip(request),
    )
    set_refresh_cookie(response, result.refresh_token)
    return AuthResponse(
        message="Registration successful",
        access_token=result.access_token,
        user=AccountOut(**result.account.safe_view()),
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    store: Store = Depends(get_store),
):
    """Authenticate with email + password + device_id → access token + refresh cookie."""
    result = await auth_service.login(
        store,
        email=body.email,
        password=body.password,
        device_id=body.device_id or DEFAULT_DEVICE_ID,
        user_agent=_user_agent(request),
        client_ip=client_ip(request),
    )
    set_refresh_cookie(response, result.refresh_token)
    return AuthResponse(message="Login successful", access_token=result.access_token)


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_token(
    request: Request,
    response: Response,
    body: RefreshTokenRequest | None = None,
    store: Store = Depends(get_store),
):
    """Exchange a valid refresh token for a new access token + rotated cookie."""
    presented = read_refresh_token(request, body.refresh_token if body else None)
    tokens = await auth_service.refresh_access_token(store, presented)
    set_refresh_cookie(response, tokens.refresh_token)
    return RefreshResponse(access_token=tokens.access_token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    body: RefreshTokenRequest | None = None,
    store: Store = Depends(get_store),
):
    """Revoke the current session (best-effort) and clear the cookie."""
    presented = read_refresh_token(request, body.refresh_token if body else None)
    await auth_service.logout(store, presented)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_refresh_cookie(response)
    return response


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    auth: AuthContext = Depends(get_auth_context),
    store: Store = Depends(get_store),
):
    """Active sessions of the caller, most recently used first."""
    sessions = await session_service.list_sessions(store, auth.account_id)
    return SessionListResponse(sessions=[SessionOut.model_validate(s) for s in sessions])


@router.post("/sessions/{session_id}/revoke", response_model=MessageResponse)
async def revoke_session(
    session_id: str,
    auth: AuthContext = Depends(get_auth_context),
    store: Store = Depends(get_store),
):
    await session_service.revoke_session_by_id(store, auth.account_id, session_id)
    return MessageResponse(message="Session revoked")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    response: Response,
    auth: AuthContext = Depends(get_auth_context),
    store: Store = Depends(get_store),
):
    """Revoke every session of the caller, on every device."""
    await session_service.revoke_all_sessions(store, auth.account_id)
    # also clear the cookie on this device
    clear_refresh_cookie(response)
    return MessageResponse(message="Logged out from all devices")
