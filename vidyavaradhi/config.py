"""
Application settings.

All values are configurable via environment variables or a local .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "VidyaVaradhi"
    ENVIRONMENT: str = "development"
    APP_URL: str = "http://localhost:8000"
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000
    TRUST_PROXY_HEADERS: bool = False

    # ==========================================
    # Sessions
    # ==========================================
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    SESSION_COOKIE_NAME: str = "session"
    SESSION_TTL_DAYS: int = 7
    CHECK_SESSION_ROLE: bool = True

    # ==========================================
    # OTP & registration
    # ==========================================
    OTP_SECRET_KEY: Optional[str] = None  # derived from JWT_SECRET_KEY when unset
    OTP_TTL_MINUTES: int = 10
    REGISTRATION_TICKET_MINUTES: int = 30

    # ==========================================
    # Rate limiting
    # ==========================================
    LOGIN_MAX_ATTEMPTS: int = 5
    LOGIN_WINDOW_SECONDS: int = 15 * 60
    API_RATE_LIMIT: int = 100
    API_RATE_WINDOW_SECONDS: int = 15 * 60
    RATE_LIMIT_FAIL_OPEN: bool = False

    # ==========================================
    # Storage
    # ==========================================
    DATABASE_URL: str = "sqlite:///./vidyavaradhi.db"
    DB_TIMEOUT_SECONDS: float = 5.0

    # ==========================================
    # Password hashing (Argon2id)
    # ==========================================
    ARGON2_TIME_COST: int = 3
    ARGON2_MEMORY_COST: int = 65536  # KiB
    ARGON2_PARALLELISM: int = 4

    # ==========================================
    # Email
    # ==========================================
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT_SECONDS: float = 15.0
    EMAIL_FROM: str = "VidyaVaradhi <no-reply@vidyavaradhi.local>"
    MAIL_SUPPRESS_SEND: bool = False

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None
    LOG_JSON: Optional[bool] = None  # defaults to True in production

    @field_validator("ENVIRONMENT")
    @classmethod
    def _normalize_environment(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("development", "production", "testing"):
            raise ValueError("ENVIRONMENT must be development, production or testing")
        return v

    @field_validator("JWT_SECRET_KEY")
    @classmethod
    def _secret_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("JWT_SECRET_KEY must not be empty")
        return v

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def session_ttl_seconds(self) -> int:
        return self.SESSION_TTL_DAYS * 24 * 60 * 60

    @property
    def json_logging(self) -> bool:
        if self.LOG_JSON is None:
            return self.is_production
        return self.LOG_JSON


@lru_cache()
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
