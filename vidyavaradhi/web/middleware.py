"""
VidyaVaradhi - HTTP Middleware
Request logging, security headers, API rate limiting, same-origin check and
role-scoped route protection.
"""

import logging
import time
from typing import Callable, Set
from urllib.parse import quote, urlsplit

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from ..errors import DependencyFailure, Forbidden
from ..logging_config import generate_request_id, set_request_id, set_user_id
from ..store import ROLES, StoreError
from .deps import client_ip, current_session


logger = logging.getLogger(__name__)


# Paths that skip per-request logging
SKIP_LOGGING_PATHS: Set[str] = {
    "/health",
    "/favicon.ico",
}

STATE_CHANGING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

PROTECTED_PREFIXES = tuple(f"/{role}/" for role in ROLES)

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; script-src 'self'; style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data: https:; font-src 'self' data:; connect-src 'self'; "
    "frame-ancestors 'none'"
)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every request and tags it with a request id.

    - Reuses an incoming X-Request-ID or generates one
    - Sets the request id context variable for downstream logging
    - Adds X-Request-ID and X-Response-Time to the response
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)

        path = request.url.path
        skip_logging = path in SKIP_LOGGING_PATHS
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start_time) * 1000

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

            if not skip_logging:
                status_code = response.status_code
                if status_code >= 500:
                    log_level = logging.ERROR
                elif status_code >= 400:
                    log_level = logging.WARNING
                else:
                    log_level = logging.INFO
                logger.log(
                    log_level,
                    f"{request.method} {path} - {status_code} ({duration_ms:.2f}ms)",
                    extra={
                        "event_type": "http_request",
                        "http_method": request.method,
                        "http_path": path,
                        "http_status": status_code,
                        "duration_ms": duration_ms,
                    }
                )
            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"{request.method} {path} - Exception ({duration_ms:.2f}ms): {type(exc).__name__}",
                exc_info=True,
                extra={
                    "event_type": "http_request_error",
                    "http_method": request.method,
                    "http_path": path,
                    "duration_ms": duration_ms,
                }
            )
            raise

        finally:
            set_request_id("")
            set_user_id("")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"
        response.headers["Content-Security-Policy"] = CONTENT_SECURITY_POLICY

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """General per-IP limit on /api/ routes."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not request.url.path.startswith("/api/"):
            return await call_next(request)

        services = request.app.state.services
        limiter = services.api_limiter
        ip = client_ip(request, services.settings)

        try:
            allowed = await run_in_threadpool(limiter.allow, ip)
        except StoreError:
            error = DependencyFailure()
            return JSONResponse(status_code=error.http_status, content=error.to_dict())

        if not allowed:
            retry_after = await run_in_threadpool(limiter.retry_after, ip)
            logger.warning(
                "API rate limit exceeded",
                extra={"event_type": "rate_limited", "http_path": request.url.path},
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Too many requests. Please try again later.",
                    "code": "RATE_LIMITED",
                },
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)


class OriginCheckMiddleware(BaseHTTPMiddleware):
    """Rejects cross-origin state-changing requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method in STATE_CHANGING_METHODS:
            origin = request.headers.get("origin")
            host = request.headers.get("host")
            if origin and host and urlsplit(origin).netloc.lower() != host.lower():
                logger.warning(
                    "Cross-origin request rejected",
                    extra={"event_type": "origin_rejected", "http_path": request.url.path},
                )
                error = Forbidden("Cross-origin request rejected")
                return JSONResponse(status_code=error.http_status, content=error.to_dict())

        return await call_next(request)


class RouteProtectionMiddleware(BaseHTTPMiddleware):
    """
    Guards role-scoped pages.

    No valid session: redirect to /login?returnTo=<path>.
    Valid session for another role: redirect to /unauthorized.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if not path.startswith(PROTECTED_PREFIXES):
            return await call_next(request)

        services = request.app.state.services
        session = await run_in_threadpool(current_session, request, services)

        if session is None:
            return RedirectResponse(f"/login?returnTo={quote(path, safe='/')}")

        required_role = path.split("/", 2)[1]
        if session.role != required_role:
            logger.warning(
                "Role mismatch for protected route",
                extra={"event_type": "role_mismatch", "http_path": path},
            )
            return RedirectResponse("/unauthorized")

        set_user_id(session.user_id)
        return await call_next(request)
