"""
Error Taxonomy

Every failure that reaches the HTTP boundary is one of these kinds:
- ValidationError: missing or malformed input (400)
- AuthFailure: bad credentials or OTP, never says which field was wrong (401)
- Forbidden: valid session, wrong role (403)
- Conflict: duplicate email at registration (409)
- RateLimited: caller must wait, carries a retry hint (429)
- DependencyFailure: store or email delivery unavailable, retryable (503)

Usage:
    from vidyavaradhi.errors import AuthFailure, DependencyFailure

    try:
        user = credentials.find_by_email(email)
    except StoreError as e:
        raise DependencyFailure() from e
"""

from typing import Any, Dict, Optional


GENERIC_AUTH_MESSAGE = "Invalid credentials"
GENERIC_RETRY_MESSAGE = "Service temporarily unavailable. Please try again."


class VidyaError(Exception):
    """Base exception for all errors surfaced to callers."""

    http_status = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            data["details"] = self.details
        return data


class ValidationError(VidyaError):
    """Input is missing or malformed; the user can correct it."""

    http_status = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class AuthFailure(VidyaError):
    """Credentials or OTP rejected."""

    http_status = 401

    def __init__(self, message: str = GENERIC_AUTH_MESSAGE):
        super().__init__(message, code="AUTH_FAILED")


class Forbidden(VidyaError):
    """Authenticated, but not allowed here."""

    http_status = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="FORBIDDEN")


class Conflict(VidyaError):
    """Resource already exists."""

    http_status = 409

    def __init__(self, message: str = "An account with this email already exists"):
        super().__init__(message, code="CONFLICT")


class RateLimited(VidyaError):
    """Too many attempts in the current window."""

    http_status = 429

    def __init__(self, retry_after: int,
                 message: str = "Too many attempts. Please try again later."):
        super().__init__(message, code="RATE_LIMITED",
                         details={"retry_after_seconds": retry_after})
        self.retry_after = retry_after


class DependencyFailure(VidyaError):
    """A backing service failed or timed out."""

    http_status = 503
    retryable = True

    def __init__(self, message: str = GENERIC_RETRY_MESSAGE,
                 code: str = "DEPENDENCY_FAILURE"):
        super().__init__(message, code=code)
