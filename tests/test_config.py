"""
Settings and logging configuration tests.
"""

import json
import logging

import pydantic
import pytest

from vidyavaradhi.config import Settings
from vidyavaradhi.integration.mailer import ConsoleMailer, SmtpMailer, build_mailer
from vidyavaradhi.logging_config import (
    LOGGER_NAME, JSONFormatter, set_request_id, setup_logging,
)

from tests.conftest import TEST_SECRET


def _settings(**overrides):
    values = dict(JWT_SECRET_KEY=TEST_SECRET, _env_file=None)
    values.update(overrides)
    return Settings(**values)


class TestSettings:
    """Environment-driven settings."""

    def test_defaults(self):
        """Defaults match the documented limits."""
        settings = _settings()
        assert settings.session_ttl_seconds == 7 * 24 * 3600
        assert settings.LOGIN_MAX_ATTEMPTS == 5
        assert settings.LOGIN_WINDOW_SECONDS == 900
        assert settings.API_RATE_LIMIT == 100
        assert settings.OTP_TTL_MINUTES == 10
        assert not settings.RATE_LIMIT_FAIL_OPEN

    def test_secret_required(self):
        """A blank signing key is rejected."""
        with pytest.raises(pydantic.ValidationError):
            _settings(JWT_SECRET_KEY="   ")

    def test_environment_normalized(self):
        """Environment names are case-insensitive and checked."""
        assert _settings(ENVIRONMENT=" Production ").is_production
        with pytest.raises(pydantic.ValidationError):
            _settings(ENVIRONMENT="staging")

    def test_from_environment(self, monkeypatch):
        """Values are read from environment variables."""
        monkeypatch.setenv("JWT_SECRET_KEY", "from-env-secret")
        monkeypatch.setenv("LOGIN_MAX_ATTEMPTS", "7")
        settings = Settings(_env_file=None)
        assert settings.JWT_SECRET_KEY == "from-env-secret"
        assert settings.LOGIN_MAX_ATTEMPTS == 7

    def test_json_logging_follows_environment(self):
        """JSON logs by default in production only."""
        assert _settings(ENVIRONMENT="production").json_logging
        assert not _settings(ENVIRONMENT="development").json_logging
        assert _settings(ENVIRONMENT="development", LOG_JSON=True).json_logging


class TestMailerSelection:
    """build_mailer picks the transport."""

    def test_console_without_host(self):
        assert isinstance(build_mailer(_settings()), ConsoleMailer)

    def test_console_when_suppressed(self):
        assert isinstance(build_mailer(_settings(SMTP_HOST="smtp.x.com", MAIL_SUPPRESS_SEND=True)),
                          ConsoleMailer)

    def test_smtp_with_host(self):
        """SMTP settings are passed through."""
        mailer = build_mailer(_settings(SMTP_HOST="smtp.x.com", SMTP_PORT=465, SMTP_USE_SSL=True))
        assert isinstance(mailer, SmtpMailer)
        assert mailer.port == 465
        assert mailer.use_ssl and not mailer.use_tls


class TestLogging:
    """Structured logging."""

    def test_json_formatter_includes_context(self):
        """JSON lines carry the request id and extras."""
        record = logging.LogRecord(LOGGER_NAME, logging.INFO, __file__, 1,
                                   "hello %s", ("world",), None)
        record.event_type = "http_request"
        set_request_id("req-1")
        try:
            data = json.loads(JSONFormatter().format(record))
        finally:
            set_request_id("")
        assert data["message"] == "hello world"
        assert data["request_id"] == "req-1"
        assert data["event_type"] == "http_request"

    def test_setup_logging_file_handler(self, tmp_path):
        """A log file gets its own handler."""
        log_file = tmp_path / "logs" / "auth.log"
        logger = setup_logging(_settings(LOG_FILE=str(log_file), LOG_LEVEL="DEBUG"))
        try:
            assert len(logger.handlers) == 2
            assert log_file.exists()
        finally:
            for handler in logger.handlers:
                handler.close()
            logger.handlers.clear()
