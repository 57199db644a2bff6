"""
Refresh-token cookie transport.

The refresh token never appears in a JSON response: it is set as an
httpOnly cookie scoped to the auth routes.  Production deployments
serve the frontend from another origin, hence `SameSite=None; Secure`
there and `Lax` everywhere else.
"""

from fastapi import Request, Response

from app.core.config import settings


def refresh_cookie_options() -> dict:
    return {
        "httponly": True,
        "secure": settings.IS_PRODUCTION,
        "samesite": "none" if settings.IS_PRODUCTION else "lax",
        "path": settings.REFRESH_COOKIE_PATH,
        "max_age": settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    }


def set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(settings.REFRESH_COOKIE_NAME, refresh_token, **refresh_cookie_options())


def clear_refresh_cookie(response: Response) -> None:
    options = refresh_cookie_options()
    response.delete_cookie(
        settings.REFRESH_COOKIE_NAME,
        path=options["path"],
        secure=options["secure"],
        httponly=True,
        samesite=options["samesite"],
    )


def read_refresh_token(request: Request, body_token: str | None = None) -> str | None:
    """An explicit body token wins over the cookie."""
    return body_token or request.cookies.get(settings.REFRESH_COOKIE_NAME)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""
