"""
In-memory AuthStore.

Process-local dicts guarded by a single re-entrant lock. Nothing survives a
restart; use it for tests and local development.
"""

import threading
from dataclasses import replace
from typing import Dict, Optional, Tuple

from .base import (
    AuthStore, DuplicateEmail, OtpRecord, RegistrationTicket,
    SessionRecord, User,
)


class MemoryStore(AuthStore):
    """Dictionary-backed store."""

    def __init__(self):
        self._lock = threading.RLock()
        self._users: Dict[str, User] = {}
        self._email_index: Dict[str, str] = {}
        self._sequences: Dict[str, int] = {}
        self._otps: Dict[Tuple[str, str], OtpRecord] = {}
        self._sessions: Dict[str, SessionRecord] = {}
        self._tickets: Dict[str, RegistrationTicket] = {}
        self._counters: Dict[str, Tuple[int, float]] = {}

    # Records are copied in and out so callers never share mutable state.

    def create_user(self, user: User) -> User:
        with self._lock:
            if user.email in self._email_index:
                raise DuplicateEmail(user.email)
            if user.id in self._users:
                raise ValueError(f"user id {user.id} already exists")
            self._users[user.id] = replace(user)
            self._email_index[user.email] = user.id
            return replace(user)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            user_id = self._email_index.get(email)
            if user_id is None:
                return None
            return replace(self._users[user_id])

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return replace(user) if user else None

    def touch_last_login(self, user_id: str, timestamp: float) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user:
                user.last_login = timestamp

    def set_password_hash(self, user_id: str, password_hash: str) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user:
                user.password_hash = password_hash

    def next_sequence(self, name: str) -> int:
        with self._lock:
            value = self._sequences.get(name, 0) + 1
            self._sequences[name] = value
            return value

    def put_otp(self, record: OtpRecord) -> None:
        with self._lock:
            self._otps[(record.email, record.purpose)] = replace(record)

    def get_otp(self, email: str, purpose: str) -> Optional[OtpRecord]:
        with self._lock:
            record = self._otps.get((email, purpose))
            return replace(record) if record else None

    def consume_otp(self, email: str, purpose: str, code_digest: str) -> bool:
        with self._lock:
            record = self._otps.get((email, purpose))
            if record is None or record.consumed:
                return False
            if record.code_digest != code_digest:
                return False
            record.consumed = True
            return True

    def sweep_otps(self, now: float) -> int:
        with self._lock:
            stale = [key for key, rec in self._otps.items()
                     if rec.consumed or rec.is_expired(now)]
            for key in stale:
                del self._otps[key]
            return len(stale)

    def add_session(self, record: SessionRecord) -> None:
        with self._lock:
            self._sessions[record.session_id] = replace(record)

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._sessions.get(session_id)
            return replace(record) if record else None

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def sweep_sessions(self, now: float) -> int:
        with self._lock:
            expired = [sid for sid, rec in self._sessions.items()
                       if now >= rec.expires_at]
            for sid in expired:
                del self._sessions[sid]
            return len(expired)

    def put_ticket(self, ticket: RegistrationTicket) -> None:
        with self._lock:
            self._tickets[ticket.user_id] = replace(ticket)

    def take_ticket(self, user_id: str, email: str) -> Optional[RegistrationTicket]:
        with self._lock:
            ticket = self._tickets.get(user_id)
            if ticket is None or ticket.email != email:
                return None
            del self._tickets[user_id]
            return ticket

    def sweep_tickets(self, now: float) -> int:
        with self._lock:
            expired = [uid for uid, t in self._tickets.items() if now >= t.expires_at]
            for uid in expired:
                del self._tickets[uid]
            return len(expired)

    def hit_counter(self, key: str, window_seconds: float, now: float) -> Tuple[int, float]:
        with self._lock:
            current = self._counters.get(key)
            if current is None or now >= current[1]:
                current = (1, now + window_seconds)
            else:
                current = (current[0] + 1, current[1])
            self._counters[key] = current
            return current

    def peek_counter(self, key: str) -> Optional[Tuple[int, float]]:
        with self._lock:
            return self._counters.get(key)

    def clear_counter(self, key: str) -> None:
        with self._lock:
            self._counters.pop(key, None)

    def sweep_counters(self, now: float) -> int:
        with self._lock:
            ended = [key for key, (_, reset_at) in self._counters.items() if now >= reset_at]
            for key in ended:
                del self._counters[key]
            return len(ended)
