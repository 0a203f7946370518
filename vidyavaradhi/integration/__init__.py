# Integration Module
"""
Side channels of the auth core: audit events and email delivery.
"""

from .event_logger import (
    EventLogger,
    EventType,
    SecurityEvent,
    get_user_hash,
    get_user_hash_short,
)
from .mailer import (
    ConsoleMailer,
    DeliveryError,
    Mailer,
    OutgoingEmail,
    SmtpMailer,
    build_mailer,
    render_otp_email,
    render_welcome_email,
)

__all__ = [
    'EventLogger',
    'EventType',
    'SecurityEvent',
    'get_user_hash',
    'get_user_hash_short',
    'ConsoleMailer',
    'DeliveryError',
    'Mailer',
    'OutgoingEmail',
    'SmtpMailer',
    'build_mailer',
    'render_otp_email',
    'render_welcome_email',
]
