"""
FastAPI application factory.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import Settings, get_settings
from ..errors import DependencyFailure, RateLimited, VidyaError
from ..services import AuthServices, build_services
from ..store import StoreError
from .middleware import (
    OriginCheckMiddleware,
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    RouteProtectionMiddleware,
    SecurityHeadersMiddleware,
)
from .routes import router


logger = logging.getLogger(__name__)


async def vidya_error_handler(request: Request, exc: VidyaError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}
    if exc.http_status >= 500:
        logger.warning(f"{exc.code} on {request.url.path}: {exc.__cause__!r}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict(), headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "code": "VALIDATION_ERROR"},
    )


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error(f"Store failure on {request.url.path}: {exc}")
    error = DependencyFailure()
    return JSONResponse(status_code=error.http_status, content=error.to_dict())


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception: {type(exc).__name__}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
    )


def create_app(settings: Optional[Settings] = None,
               services: Optional[AuthServices] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (loaded from the environment when omitted)
        services: Pre-built services (tests inject a memory store and a fake clock)

    Returns:
        FastAPI app
    """
    settings = settings or (services.settings if services else get_settings())
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"{settings.APP_NAME} starting ({settings.ENVIRONMENT})")
        yield
        services.close()
        logger.info(f"{settings.APP_NAME} stopped")

    app = FastAPI(
        title=settings.APP_NAME,
        description="Role-based registration, OTP verification and sessions",
        version=__version__,
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
    )
    app.state.services = services

    app.add_exception_handler(VidyaError, vidya_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # Middleware (order matters - last added runs first)
    app.add_middleware(RouteProtectionMiddleware)
    app.add_middleware(OriginCheckMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(router)
    return app
