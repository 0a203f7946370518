# Store Module
"""
Storage backends for the auth core.

- MemoryStore: process-local, for tests and development
- SqlStore: SQLAlchemy, survives restarts
"""

from .base import (
    ROLES, AuthStore, DuplicateEmail, OtpRecord, RegistrationTicket,
    SessionRecord, StoreError, User,
)
from .memory import MemoryStore
from .sql import SqlStore


MEMORY_URL = "memory://"


def create_store(url: str, timeout: float = 5.0) -> AuthStore:
    """
    Build a store from a URL.

    Args:
        url: "memory://" or any SQLAlchemy database URL
        timeout: Connection/lock timeout in seconds (SQL only)

    Returns:
        AuthStore instance
    """
    if url == MEMORY_URL:
        return MemoryStore()
    return SqlStore(url, timeout=timeout)


__all__ = [
    'ROLES',
    'AuthStore',
    'DuplicateEmail',
    'OtpRecord',
    'RegistrationTicket',
    'SessionRecord',
    'StoreError',
    'User',
    'MemoryStore',
    'SqlStore',
    'MEMORY_URL',
    'create_store',
]
