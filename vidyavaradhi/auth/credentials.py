"""
Credential Store

User identity records on top of an injected AuthStore.

User ids have the form VV + 2-digit year + 2-digit month + 4-digit sequence
(e.g. VV24010001). The sequence is a store-backed counter per month, so ids
never collide and are never reused.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from ..store import ROLES, AuthStore, User


logger = logging.getLogger(__name__)

USER_ID_PREFIX = "VV"


class CredentialStore:
    """
    Create and look up users.

    Example:
        >>> creds = CredentialStore(MemoryStore())
        >>> user = creds.create("a@x.com", hash_token, "Asha", "learner")
        >>> creds.find_by_id(user.id).email
        'a@x.com'
    """

    def __init__(self, store: AuthStore, clock: Callable[[], float] = time.time):
        self._store = store
        self._clock = clock

    def reserve_id(self) -> str:
        """
        Allocate the next user id for the current month.

        Returns:
            New, never-issued user id
        """
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        period = now.strftime('%y%m')
        seq = self._store.next_sequence(f'user_id:{period}')
        return f'{USER_ID_PREFIX}{period}{seq:04d}'

    def create(self, email: str, password_hash: str, name: str, role: str,
               user_id: Optional[str] = None) -> User:
        """
        Create a user.

        Args:
            email: Unique email (stored as given)
            password_hash: Argon2 hash, never a plaintext password
            name: Display name
            role: learner, trainer or policymaker
            user_id: Previously reserved id; allocated when omitted

        Returns:
            The stored User

        Raises:
            ValueError: Unknown role
            DuplicateEmail: Email already registered
            StoreError: Backend failure
        """
        if role not in ROLES:
            raise ValueError(f"unknown role: {role}")

        user = User(
            id=user_id or self.reserve_id(),
            email=email,
            password_hash=password_hash,
            role=role,
            name=name,
            created_at=self._clock(),
        )
        created = self._store.create_user(user)
        logger.info("User created: %s (%s)", created.id, created.role)
        return created

    def find_by_email(self, email: str) -> Optional[User]:
        return self._store.get_user_by_email(email)

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self._store.get_user_by_id(user_id)

    def touch_last_login(self, user_id: str, timestamp: Optional[float] = None) -> None:
        """Record a login time. Safe to call repeatedly."""
        self._store.touch_last_login(user_id, self._clock() if timestamp is None else timestamp)

    def update_password_hash(self, user_id: str, password_hash: str) -> None:
        self._store.set_password_hash(user_id, password_hash)
