"""Transactional email: OTP codes and the welcome message carrying the user id."""

import html
import logging
import smtplib
from contextlib import contextmanager
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Iterator, List, Optional, Union

from .event_logger import get_user_hash_short


logger = logging.getLogger(__name__)

SMTPConnection = Union[smtplib.SMTP, smtplib.SMTP_SSL]


class DeliveryError(Exception):
    """The message could not be handed to the mail server."""
    pass


@dataclass
class OutgoingEmail:
    to: str
    subject: str
    text: str
    html: Optional[str] = None


class Mailer:
    """Delivery interface."""

    def send(self, message: OutgoingEmail) -> None:
        raise NotImplementedError


class ConsoleMailer(Mailer):
    """
    Keeps messages in memory instead of sending them.

    Used in development and tests, or when MAIL_SUPPRESS_SEND is set. Only
    the subject and a hash of the recipient are logged.
    """

    def __init__(self):
        self.outbox: List[OutgoingEmail] = []

    def send(self, message: OutgoingEmail) -> None:
        self.outbox.append(message)
        logger.info(
            "Email suppressed",
            extra={"subject": message.subject, "to_hash": get_user_hash_short(message.to)},
        )


class SmtpMailer(Mailer):
    """SMTP delivery with a bounded socket timeout."""

    def __init__(self, host: str, port: int = 587, username: Optional[str] = None,
                 password: Optional[str] = None, sender: str = "no-reply@localhost",
                 use_tls: bool = True, use_ssl: bool = False, timeout: float = 15.0):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_ssl = use_ssl
        self.use_tls = use_tls and not use_ssl
        self.timeout = timeout

    @contextmanager
    def _connection(self) -> Iterator[SMTPConnection]:
        if self.use_ssl:
            server: SMTPConnection = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            yield server
        finally:
            try:
                server.quit()
            except (smtplib.SMTPException, OSError):
                logger.debug("SMTP quit failed", exc_info=True)

    def send(self, message: OutgoingEmail) -> None:
        msg = EmailMessage()
        msg["Subject"] = message.subject
        msg["From"] = self.sender
        msg["To"] = message.to
        msg.set_content(message.text)
        if message.html:
            msg.add_alternative(message.html, subtype="html")

        try:
            with self._connection() as smtp:
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email delivery failed: %s", type(e).__name__)
            raise DeliveryError(type(e).__name__) from e

        logger.info(
            "Email dispatched",
            extra={"subject": message.subject, "to_hash": get_user_hash_short(message.to)},
        )


# ============================================================================
# Templates
# ============================================================================

_HTML_FRAME = (
    '<div style="font-family: Segoe UI, Tahoma, sans-serif; max-width: 600px; margin: 0 auto;">'
    '<div style="background: #1e40af; padding: 24px; text-align: center;">'
    '<h1 style="color: #ffffff; margin: 0;">VidyaVaradhi</h1></div>'
    '<div style="padding: 32px 24px;">{body}</div>'
    '<p style="color: #9ca3af; font-size: 12px; text-align: center;">'
    'This is an automated message. Please do not reply to this email.</p></div>'
)


def render_otp_email(to: str, code: str, ttl_minutes: int = 10) -> OutgoingEmail:
    text = (
        f"Your VidyaVaradhi verification code is {code}.\n\n"
        f"It expires in {ttl_minutes} minutes. If you did not request it, "
        f"you can ignore this email."
    )
    body = (
        '<h2>Verify your email</h2>'
        '<p>Use this code to continue your registration:</p>'
        f'<p style="font-size: 32px; font-weight: 700; letter-spacing: 6px;">{html.escape(code)}</p>'
        f'<p>The code expires in {ttl_minutes} minutes.</p>'
    )
    return OutgoingEmail(
        to=to,
        subject="Your VidyaVaradhi verification code",
        text=text,
        html=_HTML_FRAME.format(body=body),
    )


def render_welcome_email(to: str, user_id: str, user_name: Optional[str],
                         app_url: str) -> OutgoingEmail:
    name = user_name or "Learner"
    login_url = f"{app_url.rstrip('/')}/login"
    text = (
        f"Welcome {name}!\n\n"
        f"Your VidyaVaradhi account has been created.\n"
        f"Your User ID: {user_id}\n\n"
        f"Please save this User ID. You will need it, together with your "
        f"password, to log in at {login_url}"
    )
    body = (
        f'<h2>Welcome {html.escape(name)}!</h2>'
        '<p>Your VidyaVaradhi account has been created.</p>'
        '<p>Your User ID</p>'
        f'<p style="font-size: 28px; font-weight: 700; letter-spacing: 4px;">{html.escape(user_id)}</p>'
        '<p><strong>Important:</strong> save this User ID. You will need it to log in '
        'along with your password.</p>'
        f'<p><a href="{html.escape(login_url)}">Log in to VidyaVaradhi</a></p>'
    )
    return OutgoingEmail(
        to=to,
        subject=f"Welcome to VidyaVaradhi - Your User ID: {user_id}",
        text=text,
        html=_HTML_FRAME.format(body=body),
    )


def build_mailer(settings) -> Mailer:
    """SMTP when a host is configured and sending is not suppressed, console otherwise."""
    if settings.MAIL_SUPPRESS_SEND or not settings.SMTP_HOST:
        return ConsoleMailer()
    return SmtpMailer(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USER,
        password=settings.SMTP_PASSWORD,
        sender=settings.EMAIL_FROM,
        use_tls=settings.SMTP_USE_TLS,
        use_ssl=settings.SMTP_USE_SSL,
        timeout=settings.SMTP_TIMEOUT_SECONDS,
    )
