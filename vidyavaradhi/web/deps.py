"""Request-scoped helpers shared by routes and middleware."""

from typing import Optional

from fastapi import Request, Response

from ..auth.login import Session
from ..config import Settings
from ..services import AuthServices


def get_services(request: Request) -> AuthServices:
    return request.app.state.services


def client_ip(request: Request, settings: Settings) -> str:
    """
    Best-effort client address.

    Forwarding headers are honoured only when TRUST_PROXY_HEADERS is set,
    otherwise any caller could pick its own rate limit key.
    """
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def session_token(request: Request, settings: Settings) -> Optional[str]:
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def current_session(request: Request, services: AuthServices) -> Optional[Session]:
    """Verified session from the request cookie, or None."""
    return services.login.current_session(session_token(request, services.settings))


def set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.session_ttl_seconds,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )
