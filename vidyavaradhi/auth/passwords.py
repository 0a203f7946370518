"""
Password Hashing Module

Implements secure password hashing using Argon2id algorithm.

Features:
- Argon2id password hashing with a fresh random salt per hash
- Configurable cost parameters, old hashes flagged for rehash
- Dummy verification for unknown accounts
- Password strength validation
- Email validation and input sanitizing

Security considerations:
- Never store plaintext passwords
- verify() never raises; malformed hashes simply fail
- The unknown-user path runs a full Argon2 verify so its latency matches
  the wrong-password path
"""

import re
from typing import Dict, Optional

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError


# Argon2id configuration
# - time_cost: number of iterations
# - memory_cost: memory usage in KiB
# - parallelism: number of parallel threads
# - hash_len: length of the hash output
# - salt_len: length of the random salt
ARGON2_CONFIG = {
    'time_cost': 3,          # Number of iterations
    'memory_cost': 65536,    # 64 MiB memory
    'parallelism': 4,        # 4 parallel threads
    'hash_len': 32,          # 256-bit hash
    'salt_len': 16,          # 128-bit salt
    'type': Type.ID          # Argon2id (hybrid)
}


# Password strength requirements
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
PASSWORD_REQUIREMENTS = {
    'min_length': PASSWORD_MIN_LENGTH,
    'max_length': PASSWORD_MAX_LENGTH,
    'require_uppercase': True,
    'require_lowercase': True,
    'require_digit': True,
}

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
EMAIL_MAX_LENGTH = 320

# Never matches a real password; only used to burn the same CPU as a real verify
_DUMMY_PASSWORD = "vidyavaradhi-dummy-password"


class PasswordHasher_:
    """
    Secure password hasher using Argon2id.

    Example:
        >>> hasher = PasswordHasher_()
        >>> token = hasher.hash("SecurePass123")
        >>> hasher.verify("SecurePass123", token)
        True
    """

    def __init__(self, **kwargs):
        """
        Initialize the password hasher with Argon2id.

        Args:
            **kwargs: Override default Argon2 parameters
        """
        config = ARGON2_CONFIG.copy()
        config.update(kwargs)

        self._hasher = PasswordHasher(
            time_cost=config['time_cost'],
            memory_cost=config['memory_cost'],
            parallelism=config['parallelism'],
            hash_len=config['hash_len'],
            salt_len=config['salt_len'],
            type=config['type']
        )
        self._dummy_hash: Optional[str] = None

    def hash(self, password: str) -> str:
        """
        Hash a password using Argon2id.

        The resulting hash contains the algorithm parameters and salt,
        allowing for future parameter upgrades.

        Args:
            password: Plaintext password to hash

        Returns:
            Argon2id hash string (includes salt and parameters)
        """
        return self._hasher.hash(password)

    def verify(self, password: str, hash_token: str) -> bool:
        """
        Verify a password against an Argon2id hash.

        Args:
            password: Plaintext password to verify
            hash_token: Argon2id hash string to verify against

        Returns:
            True if password matches, False otherwise (including malformed hashes)
        """
        try:
            return self._hasher.verify(hash_token, password)
        except VerificationError:
            return False
        except InvalidHashError:
            return False

    def dummy_verify(self, password: str) -> bool:
        """Run a verify against an internal hash. Always False."""
        if self._dummy_hash is None:
            self._dummy_hash = self._hasher.hash(_DUMMY_PASSWORD)
        self.verify(password, self._dummy_hash)
        return False

    def needs_rehash(self, hash_token: str) -> bool:
        """
        Check if a hash was made with different parameters than the current ones.

        Args:
            hash_token: Existing hash to check

        Returns:
            True if hash should be regenerated with new parameters
        """
        try:
            return self._hasher.check_needs_rehash(hash_token)
        except InvalidHashError:
            return False


def validate_password_strength(password: str) -> Dict:
    """
    Validate password against strength requirements.

    Args:
        password: Password to validate

    Returns:
        Dict with 'valid' bool, 'errors' list and 'score'
    """
    errors = []

    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if len(password) > PASSWORD_MAX_LENGTH:
        errors.append(f"Password must be at most {PASSWORD_MAX_LENGTH} characters long")

    if PASSWORD_REQUIREMENTS['require_uppercase'] and not re.search(r'[A-Z]', password):
        errors.append("Password must contain at least one uppercase letter")

    if PASSWORD_REQUIREMENTS['require_lowercase'] and not re.search(r'[a-z]', password):
        errors.append("Password must contain at least one lowercase letter")

    if PASSWORD_REQUIREMENTS['require_digit'] and not re.search(r'\d', password):
        errors.append("Password must contain at least one number")

    return {
        'valid': len(errors) == 0,
        'errors': errors,
        'score': calculate_password_score(password)
    }


def calculate_password_score(password: str) -> int:
    """
    Calculate a password strength score (0-100).

    Args:
        password: Password to score

    Returns:
        Score from 0 (weak) to 100 (strong)
    """
    score = 0

    # Length scoring (up to 30 points)
    score += min(len(password) * 2, 30)

    # Character variety (up to 40 points)
    if re.search(r'[a-z]', password):
        score += 10
    if re.search(r'[A-Z]', password):
        score += 10
    if re.search(r'\d', password):
        score += 10
    if re.search(r'[^A-Za-z0-9]', password):
        score += 10

    # Bonus for length (up to 20 points)
    if len(password) >= 12:
        score += 10
    if len(password) >= 16:
        score += 10

    # Penalty for common patterns
    if re.search(r'(.)\1{2,}', password):  # Repeated characters
        score -= 10
    if re.search(r'(012|123|234|345|456|567|678|789)', password):  # Sequential numbers
        score -= 10
    if re.search(r'(abc|bcd|cde|def|efg)', password.lower()):  # Sequential letters
        score -= 10

    return max(0, min(100, score))


def validate_email(email: str) -> bool:
    """Loose syntactic check: something@something.tld, no whitespace."""
    if not email or len(email) > EMAIL_MAX_LENGTH:
        return False
    return EMAIL_PATTERN.match(email) is not None


def sanitize_input(value: Optional[str]) -> str:
    """Trim surrounding whitespace and strip angle brackets."""
    if not value:
        return ''
    return re.sub(r'[<>]', '', value.strip())
