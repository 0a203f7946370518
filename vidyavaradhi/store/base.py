"""
Storage Interface

Everything the auth core persists goes through an AuthStore:
- users (unique id, unique email)
- OTP records, one authoritative record per (email, purpose)
- the server-side session registry
- fixed-window rate limit counters
- monotonic per-name sequences (user id allocation)
- registration tickets binding a verified email to a reserved user id

Backends must make these operations atomic per key:
consume_otp, hit_counter, next_sequence, create_user, take_ticket.

All timestamps are Unix epoch seconds (float).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Tuple


ROLES = ('learner', 'trainer', 'policymaker')


class StoreError(Exception):
    """Backing store unreachable, timed out or otherwise failed."""
    pass


class DuplicateEmail(Exception):
    """A user with this email already exists."""

    def __init__(self, email: str):
        super().__init__("email already registered")
        self.email = email


@dataclass
class User:
    """Registered account."""
    id: str
    email: str
    password_hash: str
    role: str
    name: str
    created_at: float
    last_login: Optional[float] = None

    def public(self) -> Dict[str, str]:
        """Fields safe to return to the client."""
        return {
            'id': self.id,
            'email': self.email,
            'role': self.role,
            'name': self.name,
        }


@dataclass
class OtpRecord:
    """Stored one-time password; only the digest of the code is kept."""
    email: str
    purpose: str
    code_digest: str
    expires_at: float
    created_at: float
    consumed: bool = False

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class SessionRecord:
    """Server-side registry entry keyed by the token's jti."""
    session_id: str
    user_id: str
    issued_at: float
    expires_at: float


@dataclass
class RegistrationTicket:
    """Reserved user id for an email that passed OTP verification."""
    user_id: str
    email: str
    expires_at: float


class AuthStore(ABC):
    """Storage contract shared by the memory and SQL backends."""

    # ---- users ----

    @abstractmethod
    def create_user(self, user: User) -> User:
        """Insert a user. Raises DuplicateEmail if the email is taken."""

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]:
        pass

    @abstractmethod
    def get_user_by_id(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    def touch_last_login(self, user_id: str, timestamp: float) -> None:
        pass

    @abstractmethod
    def set_password_hash(self, user_id: str, password_hash: str) -> None:
        pass

    @abstractmethod
    def next_sequence(self, name: str) -> int:
        """Atomically increment and return the named counter (first value is 1)."""

    # ---- OTPs ----

    @abstractmethod
    def put_otp(self, record: OtpRecord) -> None:
        """Store a record, replacing any prior one for (email, purpose)."""

    @abstractmethod
    def get_otp(self, email: str, purpose: str) -> Optional[OtpRecord]:
        pass

    @abstractmethod
    def consume_otp(self, email: str, purpose: str, code_digest: str) -> bool:
        """
        Mark the record consumed iff it is unconsumed and its digest matches.

        Returns:
            True for exactly one caller per record
        """

    @abstractmethod
    def sweep_otps(self, now: float) -> int:
        """Delete expired and consumed records. Returns the number removed."""

    # ---- sessions ----

    @abstractmethod
    def add_session(self, record: SessionRecord) -> None:
        pass

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        pass

    @abstractmethod
    def delete_session(self, session_id: str) -> bool:
        pass

    @abstractmethod
    def sweep_sessions(self, now: float) -> int:
        pass

    # ---- registration tickets ----

    @abstractmethod
    def put_ticket(self, ticket: RegistrationTicket) -> None:
        pass

    @abstractmethod
    def take_ticket(self, user_id: str, email: str) -> Optional[RegistrationTicket]:
        """Remove and return the ticket iff it matches both user_id and email."""

    @abstractmethod
    def sweep_tickets(self, now: float) -> int:
        """Delete expired tickets. Returns the number removed."""

    # ---- rate limit counters ----

    @abstractmethod
    def hit_counter(self, key: str, window_seconds: float, now: float) -> Tuple[int, float]:
        """
        Fixed-window increment.

        Starts a fresh window (count 1) when none exists or now >= reset_at,
        otherwise increments the count.

        Returns:
            (count, reset_at) after the increment
        """

    @abstractmethod
    def peek_counter(self, key: str) -> Optional[Tuple[int, float]]:
        pass

    @abstractmethod
    def clear_counter(self, key: str) -> None:
        pass

    @abstractmethod
    def sweep_counters(self, now: float) -> int:
        """Delete counters whose window has ended. Returns the number removed."""

    def close(self) -> None:
        """Release backend resources."""
        pass
