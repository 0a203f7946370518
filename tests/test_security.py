"""
Security Tests

Attack scenarios against the auth core:
- OTP replay and concurrent double-spend
- Registration ticket double use
- Session token forgery
- Account enumeration (messages and timing path)
- Dependency failure (rate limiter store down)
"""

import base64
import json
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from vidyavaradhi.auth.otp import OtpLedger
from vidyavaradhi.config import Settings
from vidyavaradhi.errors import AuthFailure, Conflict, DependencyFailure
from vidyavaradhi.services import build_services
from vidyavaradhi.store import MemoryStore, RegistrationTicket, SqlStore

from tests.conftest import (
    STRONG_PASSWORD, TEST_SECRET, BrokenCounterStore, FakeClock, latest_code,
)


THREADS = 8


def _run_concurrently(func, count=THREADS):
    """Start count calls of func together and collect their results."""
    barrier = threading.Barrier(count)

    def worker(_):
        barrier.wait()
        return func()

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(worker, range(count)))


@pytest.fixture(params=["memory", "sqlite"])
def race_store(request, tmp_path):
    if request.param == "memory":
        backend = MemoryStore()
    else:
        backend = SqlStore(f"sqlite:///{tmp_path / 'race.db'}", timeout=30.0)
    yield backend
    backend.close()


def _b64(data):
    return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b'=').decode()


class TestOtpReplay:
    """A code is spendable once, even under concurrency."""

    def test_concurrent_verify_single_winner(self, race_store):
        """Simultaneous verifications of one code: exactly one succeeds."""
        ledger = OtpLedger(race_store, TEST_SECRET, clock=FakeClock())
        code = ledger.issue("a@x.com")
        results = _run_concurrently(lambda: ledger.verify("a@x.com", code))
        assert results.count(True) == 1

    def test_replay_after_success(self, services, mailer):
        """The same code cannot create a second ticket."""
        services.registration.start("a@x.com")
        code = latest_code(mailer)
        services.registration.verify_code("a@x.com", code)
        with pytest.raises(AuthFailure):
            services.registration.verify_code("a@x.com", code)

    def test_otp_failure_messages_identical(self, services, mailer, clock):
        """Wrong, expired and consumed codes look the same."""
        messages = []

        services.registration.start("a@x.com")
        code = latest_code(mailer)
        wrong = f"{(int(code) + 1) % 1000000:06d}"
        with pytest.raises(AuthFailure) as exc:
            services.registration.verify_code("a@x.com", wrong)
        messages.append(exc.value.to_dict())

        services.registration.verify_code("a@x.com", code)
        with pytest.raises(AuthFailure) as exc:
            services.registration.verify_code("a@x.com", code)
        messages.append(exc.value.to_dict())

        services.registration.start("a@x.com")
        clock.advance(601)
        with pytest.raises(AuthFailure) as exc:
            services.registration.verify_code("a@x.com", latest_code(mailer))
        messages.append(exc.value.to_dict())

        assert messages[0] == messages[1] == messages[2]


class TestTicketDoubleUse:
    """One verified email creates one account."""

    def test_concurrent_take_single_winner(self, race_store):
        """Only one concurrent take_ticket gets the ticket."""
        race_store.put_ticket(RegistrationTicket("VV23110001", "a@x.com", 1e12))
        results = _run_concurrently(lambda: race_store.take_ticket("VV23110001", "a@x.com"))
        assert sum(1 for r in results if r is not None) == 1

    def test_concurrent_complete_single_account(self, services, mailer):
        """Racing completions produce one account; the rest are rejected."""
        services.registration.start("a@x.com")
        temp_id = services.registration.verify_code("a@x.com", latest_code(mailer))

        def attempt():
            try:
                services.registration.complete(temp_id, "a@x.com", STRONG_PASSWORD, "learner", "Asha")
                return "created"
            except (AuthFailure, Conflict) as e:
                return type(e).__name__

        results = _run_concurrently(attempt, count=4)
        assert results.count("created") == 1
        assert services.credentials.find_by_email("a@x.com").id == temp_id


class TestTokenForgery:
    """Session tokens cannot be forged or altered."""

    @pytest.fixture
    def token(self, register_user):
        return register_user(role="learner").token

    def test_payload_swap_rejected(self, services, token):
        """Changing the role in the payload breaks the signature."""
        header, payload, signature = token.split('.')
        claims = json.loads(base64.urlsafe_b64decode(payload + '=' * (-len(payload) % 4)))
        claims['role'] = 'policymaker'
        assert services.sessions.verify('.'.join([header, _b64(claims), signature])) is None

    def test_alg_none_rejected(self, services, token):
        """Unsigned tokens are never accepted."""
        payload = token.split('.')[1]
        forged = '.'.join([_b64({'alg': 'none', 'typ': 'JWT'}), payload, ''])
        assert services.sessions.verify(forged) is None

    def test_logged_out_token_rejected(self, services, token):
        """A copied token stops working after logout."""
        services.login.logout(token)
        assert services.sessions.verify(token) is None


class TestEnumeration:
    """Unknown accounts are indistinguishable from wrong passwords."""

    def test_unknown_user_runs_dummy_verify(self, services, register_user, monkeypatch):
        """The unknown-account path still pays for a hash verification."""
        register_user(email="real@x.com")
        calls = []
        original = services.hasher.dummy_verify

        def spy(password):
            calls.append(password)
            return original(password)

        monkeypatch.setattr(services.hasher, "dummy_verify", spy)
        with pytest.raises(AuthFailure):
            services.login.login("ghost@x.com", STRONG_PASSWORD, "10.0.0.1")
        assert calls == [STRONG_PASSWORD]

        with pytest.raises(AuthFailure):
            services.login.login("real@x.com", "Wrong12345", "10.0.0.1")
        assert len(calls) == 1

    def test_same_error_body(self, services, register_user):
        """Error bodies carry no hint about which check failed."""
        register_user(email="real@x.com")
        bodies = []
        for identifier, password in [("ghost@x.com", STRONG_PASSWORD),
                                     ("real@x.com", "Wrong12345"),
                                     ("VV99999999", STRONG_PASSWORD)]:
            with pytest.raises(AuthFailure) as exc:
                services.login.login(identifier, password, "10.0.0.1")
            bodies.append(exc.value.to_dict())
        assert bodies[0] == bodies[1] == bodies[2] == {
            'error': 'Invalid credentials', 'code': 'AUTH_FAILED',
        }


class TestDependencyFailure:
    """The rate limiter fails closed."""

    def test_login_fails_closed(self, settings, mailer, clock):
        """Counter store down: login is refused with a retryable error."""
        store = BrokenCounterStore()
        services = build_services(settings, store=store, mailer=mailer, clock=clock)
        with pytest.raises(DependencyFailure) as exc:
            services.login.login("a@x.com", STRONG_PASSWORD, "10.0.0.1")
        assert exc.value.retryable
        assert exc.value.http_status == 503

    def test_fail_open_setting(self, mailer, clock):
        """With RATE_LIMIT_FAIL_OPEN the login proceeds to the credential check."""
        settings = Settings(
            JWT_SECRET_KEY=TEST_SECRET, ENVIRONMENT="testing", DATABASE_URL="memory://",
            RATE_LIMIT_FAIL_OPEN=True, MAIL_SUPPRESS_SEND=True,
            ARGON2_TIME_COST=1, ARGON2_MEMORY_COST=1024, ARGON2_PARALLELISM=1,
            _env_file=None,
        )
        services = build_services(settings, store=BrokenCounterStore(), mailer=mailer, clock=clock)
        with pytest.raises(AuthFailure):
            services.login.login("a@x.com", STRONG_PASSWORD, "10.0.0.1")
