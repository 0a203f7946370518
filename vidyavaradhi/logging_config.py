"""
Logging setup for the auth service.

Every record is tagged with the current request id and, once a protected
route has resolved the session, the user id. Production writes one JSON
object per line; development writes a short readable line.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict


LOGGER_NAME = "vidyavaradhi"

_request_id: ContextVar[str] = ContextVar('request_id', default='')
_user_id: ContextVar[str] = ContextVar('user_id', default='')

# Attributes every LogRecord has; anything else came in through `extra`
_STANDARD_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {
    'message', 'asctime', 'request_id', 'user_id',
}


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def set_user_id(user_id: str) -> None:
    _user_id.set(user_id)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:8]


def _context() -> Dict[str, str]:
    context = {}
    if _request_id.get():
        context['request_id'] = _request_id.get()
    if _user_id.get():
        context['user_id'] = _user_id.get()
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per record, extras and request context included."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_context())
        entry.update({
            key: value for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith('_')
        })
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ContextualFormatter(logging.Formatter):
    """Plain-text formatter exposing %(request_id)s and %(user_id)s."""

    def format(self, record: logging.LogRecord) -> str:
        context = _context()
        record.request_id = context.get('request_id', '-')
        record.user_id = context.get('user_id', '-')
        return super().format(record)


def setup_logging(settings) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        settings: Settings (LOG_LEVEL, LOG_FILE, json_logging)

    Returns:
        The "vidyavaradhi" logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    logger.handlers.clear()

    if settings.json_logging:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = ContextualFormatter(
            "%(asctime)s %(levelname)-7s [%(request_id)s] %(name)s: %(message)s"
        )

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if settings.LOG_FILE:
        path = Path(settings.LOG_FILE)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(path, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    for noisy in ("httpx", "uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.debug("Logging configured (json=%s)", settings.json_logging)
    return logger
