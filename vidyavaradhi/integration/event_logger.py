"""
Event Logger Module

Audit trail for security-relevant auth events.

Features:
- Login success / failure / lockout events
- Logout events
- OTP issued / verified / failed events
- Account creation and email delivery failures
- Privacy-preserving hashes (SHA-256) of emails and IPs
- Bounded in-memory tail of recent events for inspection

Events are written as structured records to the "vidyavaradhi.audit"
logger, so the configured handlers (JSON in production) pick them up.
Codes, passwords and tokens are never part of an event.
"""

import hashlib
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional


audit_logger = logging.getLogger("vidyavaradhi.audit")
logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

EVENT_VERSION = "1.0"
DEFAULT_HISTORY = 1000


# ============================================================================
# Privacy Functions
# ============================================================================

def get_user_hash(identifier: str) -> str:
    """
    Compute privacy-preserving hash of an email, user id or IP.

    Identifiers are never written in plaintext, while events for the same
    subject still correlate.

    Args:
        identifier: The plaintext identifier

    Returns:
        Hex-encoded SHA-256 hash
    """
    return hashlib.sha256(identifier.encode('utf-8')).hexdigest()


def get_user_hash_short(identifier: str) -> str:
    """First 16 characters of the hex hash."""
    return get_user_hash(identifier)[:16]


# ============================================================================
# Event Types
# ============================================================================

class EventType(Enum):
    """Types of security events that can be logged."""

    # Login events
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    LOGIN_LOCKED = "login_locked"
    LOGOUT = "logout"

    # Registration events
    OTP_ISSUED = "otp_issued"
    OTP_VERIFIED = "otp_verified"
    OTP_FAILED = "otp_failed"
    ACCOUNT_CREATED = "account_created"

    # Delivery events
    EMAIL_FAILED = "email_failed"


# ============================================================================
# Event Structure
# ============================================================================

@dataclass
class SecurityEvent:
    """
    A security event.

    All subject-identifying information is hashed.
    """
    event_type: EventType
    user_hash: str
    timestamp: int
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'version': EVENT_VERSION,
            'type': self.event_type.value,
            'user': self.user_hash[:16],
            'time': self.timestamp,
            'iso_time': datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat(),
            'details': self.details,
        }

    def __str__(self) -> str:
        dt = datetime.fromtimestamp(self.timestamp, tz=timezone.utc)
        return (
            f"[{dt.strftime('%Y-%m-%d %H:%M:%S')}] "
            f"{self.event_type.value} | "
            f"user:{self.user_hash[:8]}..."
        )


# ============================================================================
# Event Logger
# ============================================================================

class EventLogger:
    """
    Security audit trail.

    Every event goes to the audit logger and into a bounded history.
    """

    def __init__(self, history: int = DEFAULT_HISTORY,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            history: Number of recent events kept in memory
            clock: Time source (epoch seconds)
        """
        self._events: Deque[SecurityEvent] = deque(maxlen=history)
        self._lock = threading.Lock()
        self._clock = clock
        self._callbacks: List[Callable[[SecurityEvent], None]] = []

    def _add_event(self, event: SecurityEvent) -> SecurityEvent:
        with self._lock:
            self._events.append(event)

        level = logging.WARNING if event.event_type in (
            EventType.LOGIN_FAILED, EventType.LOGIN_LOCKED,
            EventType.OTP_FAILED, EventType.EMAIL_FAILED,
        ) else logging.INFO
        audit_logger.log(
            level,
            f"Security event: {event.event_type.value}",
            extra={'event_type': 'security', 'audit': event.to_dict()},
        )

        for callback in self._callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Audit callback failed")
        return event

    def _event(self, event_type: EventType, subject: str,
               details: Optional[Dict[str, Any]] = None) -> SecurityEvent:
        return self._add_event(SecurityEvent(
            event_type=event_type,
            user_hash=get_user_hash(subject),
            timestamp=int(self._clock()),
            details=details or {},
        ))

    def add_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        """Add a callback to be notified of new events."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    # ========================================================================
    # Login Events
    # ========================================================================

    def log_login(
        self,
        identifier: str,
        success: bool,
        ip_address: Optional[str] = None,
        reason: Optional[str] = None
    ) -> SecurityEvent:
        """
        Log a login attempt.

        Args:
            identifier: Email or user id (will be hashed)
            success: Whether login was successful
            ip_address: Optional IP address (will be hashed)
            reason: Optional failure reason for internal diagnosis

        Returns:
            The logged event
        """
        details = {}
        if ip_address:
            details['ip_hash'] = get_user_hash_short(ip_address)
        if reason:
            details['reason'] = reason
        return self._event(
            EventType.LOGIN_SUCCESS if success else EventType.LOGIN_FAILED,
            identifier, details,
        )

    def log_lockout(self, ip_address: str, retry_after: int) -> SecurityEvent:
        """Log a login rejected by the rate limiter."""
        return self._event(EventType.LOGIN_LOCKED, ip_address,
                           {'retry_after': retry_after})

    def log_logout(self, user_id: str) -> SecurityEvent:
        return self._event(EventType.LOGOUT, user_id)

    # ========================================================================
    # Registration Events
    # ========================================================================

    def log_otp_issued(self, email: str, purpose: str = 'registration') -> SecurityEvent:
        return self._event(EventType.OTP_ISSUED, email, {'purpose': purpose})

    def log_otp(self, email: str, success: bool,
                purpose: str = 'registration') -> SecurityEvent:
        """Log an OTP verification attempt."""
        return self._event(
            EventType.OTP_VERIFIED if success else EventType.OTP_FAILED,
            email, {'purpose': purpose},
        )

    def log_account_created(self, email: str, user_id: str, role: str) -> SecurityEvent:
        return self._event(EventType.ACCOUNT_CREATED, email,
                           {'user_id': user_id, 'role': role})

    def log_email_failed(self, email: str, kind: str) -> SecurityEvent:
        """Log a failed email delivery (kind: otp, welcome)."""
        return self._event(EventType.EMAIL_FAILED, email, {'kind': kind})

    # ========================================================================
    # Retrieval
    # ========================================================================

    def get_all_events(self) -> List[SecurityEvent]:
        with self._lock:
            return list(self._events)

    def get_user_events(self, identifier: str) -> List[SecurityEvent]:
        """
        Get all retained events for an email, user id or IP.

        Args:
            identifier: The plaintext identifier

        Returns:
            List of events for that subject
        """
        user_hash = get_user_hash(identifier)
        return [e for e in self.get_all_events() if e.user_hash == user_hash]

    def get_events_by_type(self, event_type: EventType) -> List[SecurityEvent]:
        """Get all retained events of a specific type."""
        return [e for e in self.get_all_events() if e.event_type == event_type]

    def get_recent_events(self, count: int = 10) -> List[SecurityEvent]:
        """Get the most recent events."""
        events = self.get_all_events()
        return events[-count:] if len(events) > count else events
