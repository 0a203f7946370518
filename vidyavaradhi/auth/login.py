"""
User Login Module

Implements secure authentication with:
- Fixed-window rate limiting keyed by client IP
- Signed HS256 session tokens (JWT) with a 7 day lifetime
- Server-side session registry for true logout / revocation
- Stale-role detection against the stored user record
- Login by email or by user id

Security considerations:
- Every failure returns the same generic message
- Unknown accounts run a dummy Argon2 verify so latency does not reveal
  whether an email exists
- The rate limiter fails closed when its store is unavailable, unless
  configured otherwise
- Never log sensitive data (passwords, tokens)
"""

import hmac
import logging
import math
import secrets
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from jose import JWTError, jwt

from ..errors import AuthFailure, DependencyFailure, RateLimited, ValidationError
from ..store import AuthStore, SessionRecord, StoreError, User
from .passwords import sanitize_input


logger = logging.getLogger(__name__)


# Session configuration
SESSION_TTL_SECONDS = 7 * 24 * 60 * 60  # 7 days
SESSION_ALGORITHM = 'HS256'

# Rate limiting configuration
MAX_LOGIN_ATTEMPTS = 5
ATTEMPT_WINDOW_SECONDS = 15 * 60   # 15 minutes
API_RATE_LIMIT = 100
API_RATE_WINDOW_SECONDS = 15 * 60

STORE_RETRIES = 1


@dataclass
class Session:
    """An authenticated session as carried in the token."""
    session_id: str
    user_id: str
    email: str
    role: str
    name: str
    issued_at: int
    expires_at: int

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def user(self) -> Dict[str, str]:
        """Identity fields returned to the client."""
        return {
            'id': self.user_id,
            'email': self.email,
            'role': self.role,
            'name': self.name,
        }

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> 'Session':
        """
        Build a Session from decoded token claims.

        Raises:
            ValueError: Missing or mistyped claim
        """
        strings = {}
        for claim in ('jti', 'userId', 'email', 'role', 'name'):
            value = claims.get(claim)
            if not isinstance(value, str) or (claim != 'name' and not value):
                raise ValueError(f"bad claim: {claim}")
            strings[claim] = value
        iat, exp = claims.get('iat'), claims.get('exp')
        if not isinstance(iat, int) or not isinstance(exp, int):
            raise ValueError("bad timestamps")
        return cls(
            session_id=strings['jti'],
            user_id=strings['userId'],
            email=strings['email'],
            role=strings['role'],
            name=strings['name'],
            issued_at=iat,
            expires_at=exp,
        )


class RateLimiter:
    """
    Fixed-window rate limiter.

    Within a window the count increases with every call; a call is allowed
    iff the count after incrementing is <= threshold. Once the window has
    passed the key behaves as brand new; ended windows are dropped from the
    store on the next call.

    One implementation serves every concern; instances differ by namespace,
    threshold and window (login: 5 / 15 min, API: 100 / 15 min).
    """

    def __init__(self, store: AuthStore,
                 threshold: int = MAX_LOGIN_ATTEMPTS,
                 window_seconds: int = ATTEMPT_WINDOW_SECONDS,
                 namespace: str = 'login',
                 fail_open: bool = False,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            store: Counter storage
            threshold: Allowed calls per window
            window_seconds: Window length
            namespace: Prefix separating this limiter's keys from others
            fail_open: Allow calls when the store is unavailable
            clock: Time source (epoch seconds)
        """
        self._store = store
        self._threshold = threshold
        self._window_seconds = window_seconds
        self._namespace = namespace
        self._fail_open = fail_open
        self._clock = clock

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def allow(self, key: str) -> bool:
        """
        Count a call for key and decide whether it may proceed.

        Args:
            key: Client IP or other identifier

        Returns:
            True if allowed

        Raises:
            StoreError: Store unavailable after a retry (fail-closed mode)
        """
        last_error = None
        for attempt in range(STORE_RETRIES + 1):
            try:
                now = self._clock()
                self._store.sweep_counters(now)
                count, _ = self._store.hit_counter(self._key(key), self._window_seconds, now)
                return count <= self._threshold
            except StoreError as e:
                last_error = e
                logger.warning("Rate limit store error (%s, attempt %d)",
                               self._namespace, attempt + 1)

        if self._fail_open:
            logger.error("Rate limiter %s failing open", self._namespace)
            return True
        raise last_error

    def retry_after(self, key: str) -> int:
        """Seconds until the current window for key resets."""
        try:
            current = self._store.peek_counter(self._key(key))
        except StoreError:
            return self._window_seconds
        if current is None:
            return 0
        return max(0, math.ceil(current[1] - self._clock()))

    def reset(self, key: str) -> None:
        """Forget all attempts for key."""
        try:
            self._store.clear_counter(self._key(key))
        except StoreError:
            logger.warning("Could not reset rate limit counter (%s)", self._namespace)


class SessionManager:
    """
    Issues and verifies signed session tokens.

    Tokens are HS256 JWTs; each carries a jti registered server-side, so a
    token stops verifying as soon as its registry record is deleted.
    """

    def __init__(self, secret_key: str,
                 algorithm: str = SESSION_ALGORITHM,
                 ttl_seconds: int = SESSION_TTL_SECONDS,
                 store: Optional[AuthStore] = None,
                 user_lookup: Optional[Callable[[str], Optional[User]]] = None,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            secret_key: Signing key
            algorithm: JWT algorithm
            ttl_seconds: Session lifetime
            store: Session registry; without it tokens cannot be revoked
            user_lookup: user_id -> User, enables stale-role detection
            clock: Time source (epoch seconds)
        """
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._ttl_seconds = ttl_seconds
        self._store = store
        self._user_lookup = user_lookup
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def issue(self, user: User) -> Tuple[str, Session]:
        """
        Create a session for user.

        Args:
            user: Authenticated user

        Returns:
            Tuple of (token, Session)

        Raises:
            StoreError: Registry unavailable
        """
        now = int(self._clock())
        session = Session(
            session_id=secrets.token_urlsafe(16),
            user_id=user.id,
            email=user.email,
            role=user.role,
            name=user.name,
            issued_at=now,
            expires_at=now + self._ttl_seconds,
        )
        claims = {
            'userId': session.user_id,
            'email': session.email,
            'role': session.role,
            'name': session.name,
            'iat': session.issued_at,
            'exp': session.expires_at,
            'jti': session.session_id,
        }
        token = jwt.encode(claims, self._secret_key, algorithm=self._algorithm)

        if self._store is not None:
            self._store.sweep_sessions(now)
            self._store.add_session(SessionRecord(
                session_id=session.session_id,
                user_id=session.user_id,
                issued_at=session.issued_at,
                expires_at=session.expires_at,
            ))
        return token, session

    def _decode(self, token: Optional[str]) -> Optional[Session]:
        """Signature and shape check only."""
        if not token or not isinstance(token, str):
            return None
        try:
            claims = jwt.decode(
                token, self._secret_key,
                algorithms=[self._algorithm],
                options={'verify_exp': False},
            )
            return Session.from_claims(claims)
        except (JWTError, ValueError, TypeError, AttributeError):
            return None

    def verify(self, token: Optional[str]) -> Optional[Session]:
        """
        Verify a session token.

        Args:
            token: Token from the session cookie

        Returns:
            Session if valid; None for missing, tampered, expired, malformed,
            revoked or stale-role tokens. Never raises.
        """
        session = self._decode(token)
        if session is None:
            return None
        if session.is_expired(self._clock()):
            return None

        try:
            if self._store is not None:
                record = self._store.get_session(session.session_id)
                if record is None or record.user_id != session.user_id:
                    return None
            if self._user_lookup is not None:
                user = self._user_lookup(session.user_id)
                if user is None or user.role != session.role:
                    return None
        except StoreError:
            logger.warning("Session lookup failed, treating as no session")
            return None

        return session

    def destroy(self, token: Optional[str]) -> Optional[Session]:
        """
        Revoke a token's server-side record.

        Args:
            token: Token to revoke (expired tokens are accepted)

        Returns:
            The revoked Session, or None if the token was not valid

        Raises:
            StoreError: Registry unavailable
        """
        session = self._decode(token)
        if session is None:
            return None
        if self._store is not None:
            self._store.delete_session(session.session_id)
        return session

    def cleanup_expired(self) -> int:
        """
        Remove expired registry records.

        Returns:
            Number of sessions removed
        """
        if self._store is None:
            return 0
        return self._store.sweep_sessions(self._clock())


@dataclass
class AuthResult:
    """Outcome of a successful login or registration."""
    user: User
    token: str
    session: Session


class LoginManager:
    """
    Complete login management with rate limiting and session handling.

    Example:
        >>> login_mgr = LoginManager(credentials, hasher, sessions, limiter)
        >>> result = login_mgr.login("a@x.com", "Passw0rd!", "203.0.113.7")
        >>> result.session.role
        'learner'
    """

    def __init__(self, credentials, hasher, session_manager: SessionManager,
                 rate_limiter: RateLimiter, event_logger=None,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            credentials: CredentialStore
            hasher: PasswordHasher_
            session_manager: SessionManager
            rate_limiter: Per-IP login limiter
            event_logger: Optional EventLogger for the audit trail
            clock: Time source (epoch seconds)
        """
        self._credentials = credentials
        self._hasher = hasher
        self._session_manager = session_manager
        self._rate_limiter = rate_limiter
        self._events = event_logger
        self._clock = clock

    def _find_user(self, identifier: str) -> Optional[User]:
        if '@' in identifier:
            return self._credentials.find_by_email(identifier)
        return self._credentials.find_by_id(identifier.upper())

    def login(self, identifier: str, password: str,
              client_ip: Optional[str] = None) -> AuthResult:
        """
        Authenticate a user and create a session.

        Args:
            identifier: Email address or user id
            password: Password to verify
            client_ip: Client IP for rate limiting

        Returns:
            AuthResult with user, token and session

        Raises:
            ValidationError: Missing identifier or password
            RateLimited: Too many attempts from this IP
            AuthFailure: Unknown account or wrong password
            DependencyFailure: Store unavailable
        """
        identifier = sanitize_input(identifier)
        if not identifier or not password:
            raise ValidationError("Email/User ID and password are required")

        ip = client_ip or 'unknown'

        # Rate limiting check comes first
        try:
            allowed = self._rate_limiter.allow(ip)
        except StoreError as e:
            raise DependencyFailure() from e
        if not allowed:
            retry_after = self._rate_limiter.retry_after(ip)
            if self._events:
                self._events.log_lockout(ip, retry_after)
            raise RateLimited(retry_after)

        try:
            user = self._find_user(identifier)
        except StoreError as e:
            raise DependencyFailure() from e

        if user is None:
            # Same cost as a wrong password
            self._hasher.dummy_verify(password)
            if self._events:
                self._events.log_login(identifier, False, ip, reason='unknown_account')
            raise AuthFailure()

        if not self._hasher.verify(password, user.password_hash):
            if self._events:
                self._events.log_login(identifier, False, ip, reason='bad_password')
            raise AuthFailure()

        self._rate_limiter.reset(ip)

        try:
            self._credentials.touch_last_login(user.id, self._clock())
            if self._hasher.needs_rehash(user.password_hash):
                self._credentials.update_password_hash(user.id, self._hasher.hash(password))
                logger.info("Password hash upgraded for %s", user.id)
            token, session = self._session_manager.issue(user)
        except StoreError as e:
            raise DependencyFailure() from e

        if self._events:
            self._events.log_login(user.email, True, ip)
        return AuthResult(user=user, token=token, session=session)

    def logout(self, token: Optional[str]) -> Optional[Session]:
        """
        Log out by revoking the session.

        Returns:
            The revoked Session, or None if there was no valid token

        Raises:
            DependencyFailure: Registry unavailable
        """
        try:
            session = self._session_manager.destroy(token)
        except StoreError as e:
            raise DependencyFailure() from e
        if session and self._events:
            self._events.log_logout(session.user_id)
        return session

    def current_session(self, token: Optional[str]) -> Optional[Session]:
        """Verify a session token; None when there is no valid session."""
        return self._session_manager.verify(token)

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def session_manager(self) -> SessionManager:
        return self._session_manager


def secure_compare(a: str, b: str) -> bool:
    """
    Constant-time string comparison.

    Args:
        a: First string
        b: Second string

    Returns:
        True if strings are equal, False otherwise
    """
    return hmac.compare_digest(a.encode(), b.encode())
