"""Shared fixtures: fake clock, fast Argon2 parameters, in-memory services."""

import re

import pytest
from fastapi.testclient import TestClient

from vidyavaradhi.auth.credentials import CredentialStore
from vidyavaradhi.auth.passwords import PasswordHasher_
from vidyavaradhi.config import Settings
from vidyavaradhi.integration.mailer import ConsoleMailer
from vidyavaradhi.services import build_services
from vidyavaradhi.store import MemoryStore, StoreError
from vidyavaradhi.web import create_app


# 2023-11-14 22:13:20 UTC
START_TIME = 1_700_000_000.0

# Cheap Argon2 costs so the suite stays fast
FAST_ARGON2 = {'time_cost': 1, 'memory_cost': 1024, 'parallelism': 1}

TEST_SECRET = "test-secret-key-for-sessions-0123456789"

STRONG_PASSWORD = "Learner2024"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class BrokenCounterStore(MemoryStore):
    """Memory store whose rate counters are unreachable."""

    def __init__(self):
        super().__init__()
        self.counter_calls = 0

    def hit_counter(self, key, window_seconds, now):
        self.counter_calls += 1
        raise StoreError("counter backend down")


def latest_code(mailer: ConsoleMailer) -> str:
    """Pull the 6-digit code out of the most recent OTP email."""
    match = re.search(r'\b(\d{6})\b', mailer.outbox[-1].text)
    assert match, "no OTP in the last email"
    return match.group(1)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def hasher():
    return PasswordHasher_(**FAST_ARGON2)


@pytest.fixture
def credentials(store, clock):
    return CredentialStore(store, clock=clock)


@pytest.fixture
def settings():
    return Settings(
        JWT_SECRET_KEY=TEST_SECRET,
        ENVIRONMENT="testing",
        DATABASE_URL="memory://",
        ARGON2_TIME_COST=FAST_ARGON2['time_cost'],
        ARGON2_MEMORY_COST=FAST_ARGON2['memory_cost'],
        ARGON2_PARALLELISM=FAST_ARGON2['parallelism'],
        MAIL_SUPPRESS_SEND=True,
        _env_file=None,
    )


@pytest.fixture
def mailer():
    return ConsoleMailer()


@pytest.fixture
def services(settings, store, mailer, clock):
    return build_services(settings, store=store, mailer=mailer, clock=clock)


@pytest.fixture
def client(services):
    return TestClient(create_app(services=services))


@pytest.fixture
def register_user(services, mailer):
    """Run the full registration flow through the services and return the AuthResult."""

    def _register(email="learner@example.com", role="learner", name="Asha",
                  password=STRONG_PASSWORD):
        services.registration.start(email)
        temp_id = services.registration.verify_code(email, latest_code(mailer))
        return services.registration.complete(temp_id, email, password, role, name)

    return _register
