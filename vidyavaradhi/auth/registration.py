"""
User Registration Module

Implements the register-via-email-OTP flow:

    SurveyCollected -> OtpIssued -> OtpVerified -> AccountCreated -> SessionIssued

Features:
- Email OTP issuance and delivery
- Verified emails get a reserved user id bound to a registration ticket
- Account creation only for an email that passed OTP verification, using
  the reserved id
- Argon2id password storage with strength validation
- Welcome email carrying the user id

Security considerations:
- OTP failures share one generic message whatever the cause
- Tickets are single-use and expire (30 minutes by default)
- Never store plaintext passwords
"""

import logging
import time
from typing import Callable, Optional

from ..errors import (
    AuthFailure, Conflict, DependencyFailure, ValidationError,
)
from ..integration.mailer import DeliveryError, render_otp_email, render_welcome_email
from ..store import ROLES, AuthStore, DuplicateEmail, RegistrationTicket, StoreError
from .login import AuthResult
from .passwords import sanitize_input, validate_email, validate_password_strength


logger = logging.getLogger(__name__)

TICKET_TTL_SECONDS = 30 * 60  # 30 minutes

INVALID_OTP_MESSAGE = "Invalid or expired OTP"
VERIFICATION_REQUIRED_MESSAGE = "Email verification required. Please verify your email again."
EMAIL_DELIVERY_FAILED = "EMAIL_DELIVERY_FAILED"


class RegistrationManager:
    """
    Drives a new account from email verification to its first session.

    Example:
        >>> code = reg.start("b@x.com")               # dev mode returns the code
        >>> temp_id = reg.verify_code("b@x.com", code)
        >>> result = reg.complete(temp_id, "b@x.com", "Passw0rd", "trainer", "Bala")
        >>> result.session.role
        'trainer'
    """

    def __init__(self, credentials, hasher, otp_ledger, session_manager,
                 store: AuthStore, mailer=None, event_logger=None,
                 ticket_ttl_seconds: int = TICKET_TTL_SECONDS,
                 expose_codes: bool = False,
                 app_url: str = "http://localhost:8000",
                 clock: Callable[[], float] = time.time):
        """
        Args:
            credentials: CredentialStore
            hasher: PasswordHasher_
            otp_ledger: OtpLedger
            session_manager: SessionManager
            store: Backing store for registration tickets
            mailer: Optional Mailer; without it nothing is sent
            event_logger: Optional EventLogger
            ticket_ttl_seconds: How long a verified email may take to finish
            expose_codes: Return issued codes to the caller (development only)
            app_url: Public URL used in the welcome email
            clock: Time source (epoch seconds)
        """
        self._credentials = credentials
        self._hasher = hasher
        self._otp = otp_ledger
        self._sessions = session_manager
        self._store = store
        self._mailer = mailer
        self._events = event_logger
        self._ticket_ttl = ticket_ttl_seconds
        self._expose_codes = expose_codes
        self._app_url = app_url
        self._clock = clock

    def start(self, email: str) -> Optional[str]:
        """
        Issue an OTP for email and send it.

        Args:
            email: Address to verify

        Returns:
            The code when codes are exposed (development), otherwise None

        Raises:
            ValidationError: Missing or malformed email
            DependencyFailure: Store unavailable, or delivery failed
                (code EMAIL_DELIVERY_FAILED; the issued code stays valid)
        """
        email = sanitize_input(email)
        if not email:
            raise ValidationError("Email is required")
        if not validate_email(email):
            raise ValidationError("Invalid email format")

        try:
            code = self._otp.issue(email)
        except StoreError as e:
            raise DependencyFailure() from e

        if self._events:
            self._events.log_otp_issued(email)

        if self._mailer is not None:
            ttl_minutes = max(1, self._otp.ttl_seconds // 60)
            try:
                self._mailer.send(render_otp_email(email, code, ttl_minutes))
            except DeliveryError as e:
                if self._events:
                    self._events.log_email_failed(email, 'otp')
                raise DependencyFailure(
                    "Failed to send OTP email. Please try again.",
                    code=EMAIL_DELIVERY_FAILED,
                ) from e

        return code if self._expose_codes else None

    def verify_code(self, email: str, code: str) -> str:
        """
        Check the OTP and reserve the account's user id.

        Args:
            email: Address the code was sent to
            code: Submitted 6-digit code

        Returns:
            Temporary user id, which becomes the account id on completion

        Raises:
            ValidationError: Missing email or code
            AuthFailure: Wrong, expired, consumed or malformed code
            DependencyFailure: Store unavailable
        """
        email = sanitize_input(email)
        code = (code or '').strip()
        if not email or not code:
            raise ValidationError("Email and OTP are required")

        try:
            verified = self._otp.verify(email, code)
        except StoreError as e:
            raise DependencyFailure() from e

        if self._events:
            self._events.log_otp(email, verified)
        if not verified:
            raise AuthFailure(INVALID_OTP_MESSAGE)

        try:
            now = self._clock()
            self._store.sweep_tickets(now)
            user_id = self._credentials.reserve_id()
            self._store.put_ticket(RegistrationTicket(
                user_id=user_id,
                email=email,
                expires_at=now + self._ticket_ttl,
            ))
        except StoreError as e:
            raise DependencyFailure() from e

        logger.info("Email verified, reserved user id %s", user_id)
        return user_id

    def complete(self, temporary_user_id: str, email: str, password: str,
                 role: str, name: str) -> AuthResult:
        """
        Create the account for a verified email and issue its first session.

        Args:
            temporary_user_id: Id returned by verify_code
            email: Verified email
            password: Chosen password
            role: learner, trainer or policymaker
            name: Display name

        Returns:
            AuthResult with the new user, token and session

        Raises:
            ValidationError: Missing fields, unknown role or weak password
            AuthFailure: No valid registration ticket for (id, email)
            Conflict: Email already registered
            DependencyFailure: Store unavailable
        """
        temporary_user_id = sanitize_input(temporary_user_id).upper()
        email = sanitize_input(email)
        name = sanitize_input(name)
        role = sanitize_input(role)

        if not (temporary_user_id and email and password and role and name):
            raise ValidationError("All fields are required")
        if role not in ROLES:
            raise ValidationError("Invalid role specified")

        strength = validate_password_strength(password)
        if not strength['valid']:
            raise ValidationError(strength['errors'][0], details={'errors': strength['errors']})

        try:
            # Nothing about existing accounts is revealed without a valid ticket
            ticket = self._store.take_ticket(temporary_user_id, email)
            if ticket is None or self._clock() >= ticket.expires_at:
                raise AuthFailure(VERIFICATION_REQUIRED_MESSAGE)

            if self._credentials.find_by_email(email) is not None:
                raise Conflict()

            password_hash = self._hasher.hash(password)
            user = self._credentials.create(
                email=email,
                password_hash=password_hash,
                name=name,
                role=role,
                user_id=ticket.user_id,
            )
            token, session = self._sessions.issue(user)
        except DuplicateEmail as e:
            raise Conflict() from e
        except StoreError as e:
            raise DependencyFailure() from e

        if self._events:
            self._events.log_account_created(email, user.id, role)

        try:
            self._send_welcome(email, user.id, name)
        except DeliveryError:
            logger.warning("Welcome email for %s not delivered", user.id)
            if self._events:
                self._events.log_email_failed(email, 'welcome')

        return AuthResult(user=user, token=token, session=session)

    def send_user_id(self, email: str, user_id: str, user_name: Optional[str] = None) -> None:
        """
        Resend the welcome email carrying the user id.

        Raises:
            ValidationError: Missing email or user id
            DependencyFailure: Delivery failed
        """
        email = sanitize_input(email)
        user_id = sanitize_input(user_id)
        if not email or not user_id:
            raise ValidationError("Email and User ID are required")
        try:
            self._send_welcome(email, user_id, sanitize_input(user_name) or None)
        except DeliveryError as e:
            if self._events:
                self._events.log_email_failed(email, 'welcome')
            raise DependencyFailure(
                "Failed to send User ID email", code=EMAIL_DELIVERY_FAILED
            ) from e

    def _send_welcome(self, email: str, user_id: str, user_name: Optional[str]) -> None:
        if self._mailer is None:
            return
        self._mailer.send(render_welcome_email(email, user_id, user_name, self._app_url))
