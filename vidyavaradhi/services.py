"""
Service wiring.

Builds the auth components from Settings so the HTTP layer, the demo and
the tests share one assembly.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .auth.credentials import CredentialStore
from .auth.login import LoginManager, RateLimiter, SessionManager
from .auth.otp import OtpLedger
from .auth.passwords import PasswordHasher_
from .auth.registration import RegistrationManager
from .config import Settings
from .integration.event_logger import EventLogger
from .integration.mailer import Mailer, build_mailer
from .store import AuthStore, create_store


logger = logging.getLogger(__name__)


@dataclass
class AuthServices:
    settings: Settings
    store: AuthStore
    mailer: Mailer
    events: EventLogger
    hasher: PasswordHasher_
    credentials: CredentialStore
    otp: OtpLedger
    sessions: SessionManager
    login_limiter: RateLimiter
    api_limiter: RateLimiter
    login: LoginManager
    registration: RegistrationManager

    def close(self) -> None:
        self.store.close()


def build_services(settings: Settings, store: Optional[AuthStore] = None,
                   mailer: Optional[Mailer] = None,
                   clock: Callable[[], float] = time.time) -> AuthServices:
    """
    Assemble every auth component.

    Args:
        settings: Application settings
        store: Store to use instead of the one DATABASE_URL names
        mailer: Mailer to use instead of the configured one
        clock: Time source shared by all components

    Returns:
        AuthServices
    """
    store = store or create_store(settings.DATABASE_URL, settings.DB_TIMEOUT_SECONDS)
    mailer = mailer or build_mailer(settings)
    events = EventLogger(clock=clock)

    hasher = PasswordHasher_(
        time_cost=settings.ARGON2_TIME_COST,
        memory_cost=settings.ARGON2_MEMORY_COST,
        parallelism=settings.ARGON2_PARALLELISM,
    )
    credentials = CredentialStore(store, clock=clock)
    otp = OtpLedger(
        store,
        settings.OTP_SECRET_KEY or settings.JWT_SECRET_KEY,
        ttl_seconds=settings.OTP_TTL_MINUTES * 60,
        clock=clock,
    )
    sessions = SessionManager(
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
        ttl_seconds=settings.session_ttl_seconds,
        store=store,
        user_lookup=credentials.find_by_id if settings.CHECK_SESSION_ROLE else None,
        clock=clock,
    )
    login_limiter = RateLimiter(
        store,
        threshold=settings.LOGIN_MAX_ATTEMPTS,
        window_seconds=settings.LOGIN_WINDOW_SECONDS,
        namespace='login',
        fail_open=settings.RATE_LIMIT_FAIL_OPEN,
        clock=clock,
    )
    api_limiter = RateLimiter(
        store,
        threshold=settings.API_RATE_LIMIT,
        window_seconds=settings.API_RATE_WINDOW_SECONDS,
        namespace='api',
        fail_open=settings.RATE_LIMIT_FAIL_OPEN,
        clock=clock,
    )
    login = LoginManager(
        credentials, hasher, sessions, login_limiter,
        event_logger=events, clock=clock,
    )
    registration = RegistrationManager(
        credentials, hasher, otp, sessions, store,
        mailer=mailer,
        event_logger=events,
        ticket_ttl_seconds=settings.REGISTRATION_TICKET_MINUTES * 60,
        expose_codes=settings.is_development,
        app_url=settings.APP_URL,
        clock=clock,
    )

    logger.info("Auth services ready (store=%s)", type(store).__name__)
    return AuthServices(
        settings=settings,
        store=store,
        mailer=mailer,
        events=events,
        hasher=hasher,
        credentials=credentials,
        otp=otp,
        sessions=sessions,
        login_limiter=login_limiter,
        api_limiter=api_limiter,
        login=login,
        registration=registration,
    )
