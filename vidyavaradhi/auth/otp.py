"""
Email OTP Ledger

Issues and verifies single-use 6-digit codes proving control of an email
address.

Features:
- Uniformly random codes 000000-999999 from the secrets module
- One authoritative code per (email, purpose); issuing again supersedes
- 10 minute lifetime by default
- Lazy sweep of expired and consumed records on every call

Security considerations:
- Only an HMAC-SHA256 digest of the code is stored, keyed with a secret
  derived via HKDF, so a store dump does not reveal live codes
- Digests are compared in constant time
- Consumption is a compare-and-swap in the store: one code verifies
  exactly once, including under concurrent calls
- Malformed codes fail closed
"""

import logging
import re
import secrets
import time
from typing import Callable, Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..store import AuthStore, OtpRecord


logger = logging.getLogger(__name__)

# OTP configuration
OTP_DIGITS = 6
OTP_TTL_SECONDS = 600     # 10 minutes
DEFAULT_PURPOSE = 'registration'
OTP_KEY_INFO = b'vidyavaradhi-otp'

_CODE_PATTERN = re.compile(r'^[0-9]{6}$')


def derive_otp_key(secret: Union[str, bytes], salt: Optional[bytes] = None,
                   length: int = 32) -> bytes:
    """
    Derive the OTP digest key from an application secret using HKDF-SHA256.

    Args:
        secret: Application secret (e.g. the session signing key)
        salt: Optional salt
        length: Output key length in bytes

    Returns:
        Derived key bytes
    """
    if isinstance(secret, str):
        secret = secret.encode('utf-8')
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=OTP_KEY_INFO,
        backend=default_backend()
    )
    return hkdf.derive(secret)


def generate_code(digits: int = OTP_DIGITS) -> str:
    """Random zero-padded numeric code."""
    return f"{secrets.randbelow(10 ** digits):0{digits}d}"


class OtpLedger:
    """
    Issue and consume one-time codes.

    Example:
        >>> ledger = OtpLedger(MemoryStore(), "server-secret")
        >>> code = ledger.issue("a@x.com")
        >>> ledger.verify("a@x.com", code)
        True
        >>> ledger.verify("a@x.com", code)
        False
    """

    def __init__(self, store: AuthStore, secret_key: Union[str, bytes],
                 ttl_seconds: int = OTP_TTL_SECONDS,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            store: Backing store
            secret_key: Application secret the digest key is derived from
            ttl_seconds: Code lifetime
            clock: Time source (epoch seconds)
        """
        self._store = store
        self._key = derive_otp_key(secret_key)
        self._ttl = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def _digest(self, email: str, purpose: str, code: str) -> bytes:
        h = hmac.HMAC(self._key, hashes.SHA256(), backend=default_backend())
        h.update(f"{purpose}:{email}:{code}".encode('utf-8'))
        return h.finalize()

    def _matches(self, email: str, purpose: str, code: str, stored_hex: str) -> bool:
        h = hmac.HMAC(self._key, hashes.SHA256(), backend=default_backend())
        h.update(f"{purpose}:{email}:{code}".encode('utf-8'))
        try:
            h.verify(bytes.fromhex(stored_hex))
            return True
        except (InvalidSignature, ValueError):
            return False

    def issue(self, email: str, purpose: str = DEFAULT_PURPOSE) -> str:
        """
        Issue a new code for an email, superseding any previous one.

        Args:
            email: Address the code is sent to
            purpose: Namespace for the code (registration by default)

        Returns:
            The 6-digit code; the caller is responsible for delivering it
        """
        now = self._clock()
        self._store.sweep_otps(now)

        code = generate_code()
        self._store.put_otp(OtpRecord(
            email=email,
            purpose=purpose,
            code_digest=self._digest(email, purpose, code).hex(),
            expires_at=now + self._ttl,
            created_at=now,
        ))
        logger.debug("OTP issued (purpose=%s)", purpose)
        return code

    def verify(self, email: str, code: str, purpose: str = DEFAULT_PURPOSE) -> bool:
        """
        Verify and consume a code.

        Args:
            email: Address the code was issued for
            code: Submitted code
            purpose: Namespace used at issue time

        Returns:
            True exactly once per issued code; False on missing, expired,
            consumed, malformed or wrong codes
        """
        if not isinstance(code, str):
            return False
        code = code.strip()
        if not _CODE_PATTERN.match(code):
            return False

        now = self._clock()
        self._store.sweep_otps(now)

        record = self._store.get_otp(email, purpose)
        if record is None or record.consumed or record.is_expired(now):
            return False

        if not self._matches(email, purpose, code, record.code_digest):
            return False

        return self._store.consume_otp(email, purpose, record.code_digest)

    def sweep_expired(self) -> int:
        """
        Remove expired and consumed records.

        Returns:
            Number of records removed
        """
        return self._store.sweep_otps(self._clock())
