# Authentication Module
"""
Authentication implementations including:
- Password hashing (Argon2id) - passwords.py
- User identity records and user ids - credentials.py
- Email OTP issue/verify - otp.py
- Rate limiting, signed sessions, login flow - login.py
- Register-via-OTP flow - registration.py

Security features:
- Argon2id for password hashing (PHC winner)
- Constant-time comparison for digests
- Single-use OTPs stored as HMAC digests
- Server-side session registry for revocation
- Rate limiting against brute-force attacks
"""

from .passwords import (
    PasswordHasher_,
    validate_password_strength,
    calculate_password_score,
    validate_email,
    sanitize_input,
)

from .credentials import CredentialStore

from .otp import (
    OtpLedger,
    derive_otp_key,
    generate_code,
)

from .login import (
    AuthResult,
    LoginManager,
    SessionManager,
    RateLimiter,
    Session,
    secure_compare,
)

from .registration import RegistrationManager

__all__ = [
    # Passwords
    'PasswordHasher_',
    'validate_password_strength',
    'calculate_password_score',
    'validate_email',
    'sanitize_input',
    # Credentials
    'CredentialStore',
    # OTP
    'OtpLedger',
    'derive_otp_key',
    'generate_code',
    # Login
    'AuthResult',
    'LoginManager',
    'SessionManager',
    'RateLimiter',
    'Session',
    'secure_compare',
    # Registration
    'RegistrationManager',
]
