"""
Storage backend tests.

The same contract runs against MemoryStore and a SQLite-backed SqlStore.
"""

import pytest

from vidyavaradhi.store import (
    DuplicateEmail, MemoryStore, OtpRecord, RegistrationTicket, SessionRecord,
    SqlStore, StoreError, User, create_store,
)


NOW = 1_700_000_000.0


def _user(user_id="VV23110001", email="a@x.com", role="learner"):
    return User(id=user_id, email=email, password_hash="$argon2id$hash",
                role=role, name="Asha", created_at=NOW)


def _otp(email="a@x.com", digest="ab" * 32, expires_at=NOW + 600, purpose="registration"):
    return OtpRecord(email=email, purpose=purpose, code_digest=digest,
                     expires_at=expires_at, created_at=NOW)


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        backend = MemoryStore()
    else:
        backend = SqlStore(f"sqlite:///{tmp_path / 'auth.db'}")
    yield backend
    backend.close()


class TestUsers:
    """User records."""

    def test_create_and_lookup(self, any_store):
        """Users are retrievable by id and email."""
        any_store.create_user(_user())
        assert any_store.get_user_by_id("VV23110001").email == "a@x.com"
        assert any_store.get_user_by_email("a@x.com").id == "VV23110001"
        assert any_store.get_user_by_email("missing@x.com") is None
        assert any_store.get_user_by_id("VV00000000") is None

    def test_duplicate_email(self, any_store):
        """Email uniqueness is enforced by the store."""
        any_store.create_user(_user())
        with pytest.raises(DuplicateEmail):
            any_store.create_user(_user(user_id="VV23110002"))

    def test_touch_last_login(self, any_store):
        """last_login is updated in place."""
        any_store.create_user(_user())
        any_store.touch_last_login("VV23110001", NOW + 5)
        assert any_store.get_user_by_id("VV23110001").last_login == NOW + 5

    def test_set_password_hash(self, any_store):
        """Password hash can be replaced."""
        any_store.create_user(_user())
        any_store.set_password_hash("VV23110001", "$argon2id$new")
        assert any_store.get_user_by_id("VV23110001").password_hash == "$argon2id$new"

    def test_returned_user_is_a_copy(self, any_store):
        """Mutating a returned record does not change the store."""
        any_store.create_user(_user())
        user = any_store.get_user_by_id("VV23110001")
        user.role = "trainer"
        assert any_store.get_user_by_id("VV23110001").role == "learner"

    def test_sequences(self, any_store):
        """Sequences start at 1 and are independent per name."""
        assert any_store.next_sequence("user_id:2311") == 1
        assert any_store.next_sequence("user_id:2311") == 2
        assert any_store.next_sequence("user_id:2312") == 1


class TestOtps:
    """OTP records."""

    def test_put_replaces(self, any_store):
        """One record per (email, purpose)."""
        any_store.put_otp(_otp(digest="aa" * 32))
        any_store.put_otp(_otp(digest="bb" * 32))
        assert any_store.get_otp("a@x.com", "registration").code_digest == "bb" * 32

    def test_consume_once(self, any_store):
        """consume_otp succeeds for exactly one call."""
        any_store.put_otp(_otp())
        assert any_store.consume_otp("a@x.com", "registration", "ab" * 32)
        assert not any_store.consume_otp("a@x.com", "registration", "ab" * 32)
        assert any_store.get_otp("a@x.com", "registration").consumed

    def test_consume_requires_matching_digest(self, any_store):
        """A stale digest cannot consume a newer record."""
        any_store.put_otp(_otp(digest="aa" * 32))
        any_store.put_otp(_otp(digest="bb" * 32))
        assert not any_store.consume_otp("a@x.com", "registration", "aa" * 32)
        assert any_store.consume_otp("a@x.com", "registration", "bb" * 32)

    def test_consume_missing(self, any_store):
        """Consuming a missing record fails."""
        assert not any_store.consume_otp("a@x.com", "registration", "ab" * 32)

    def test_sweep(self, any_store):
        """Expired and consumed records go, live ones stay."""
        any_store.put_otp(_otp(email="live@x.com", expires_at=NOW + 600))
        any_store.put_otp(_otp(email="old@x.com", expires_at=NOW - 1))
        any_store.put_otp(_otp(email="used@x.com"))
        any_store.consume_otp("used@x.com", "registration", "ab" * 32)
        assert any_store.sweep_otps(NOW) == 2
        assert any_store.get_otp("live@x.com", "registration") is not None


class TestSessions:
    """Session registry."""

    def test_add_get_delete(self, any_store):
        """Sessions are keyed by id and deletable."""
        any_store.add_session(SessionRecord("sid-1", "VV23110001", NOW, NOW + 60))
        assert any_store.get_session("sid-1").user_id == "VV23110001"
        assert any_store.delete_session("sid-1")
        assert not any_store.delete_session("sid-1")
        assert any_store.get_session("sid-1") is None

    def test_sweep(self, any_store):
        """Expired sessions are removed."""
        any_store.add_session(SessionRecord("old", "VV23110001", NOW - 120, NOW - 60))
        any_store.add_session(SessionRecord("new", "VV23110001", NOW, NOW + 60))
        assert any_store.sweep_sessions(NOW) == 1
        assert any_store.get_session("new") is not None


class TestTickets:
    """Registration tickets."""

    def test_take_once(self, any_store):
        """A ticket can be taken exactly once."""
        any_store.put_ticket(RegistrationTicket("VV23110001", "a@x.com", NOW + 1800))
        ticket = any_store.take_ticket("VV23110001", "a@x.com")
        assert ticket.email == "a@x.com"
        assert any_store.take_ticket("VV23110001", "a@x.com") is None

    def test_take_requires_matching_email(self, any_store):
        """A ticket is bound to its email."""
        any_store.put_ticket(RegistrationTicket("VV23110001", "a@x.com", NOW + 1800))
        assert any_store.take_ticket("VV23110001", "b@x.com") is None
        assert any_store.take_ticket("VV23110001", "a@x.com") is not None

    def test_sweep_expired(self, any_store):
        """Only tickets at or past expiry are swept."""
        any_store.put_ticket(RegistrationTicket("VV23110001", "a@x.com", NOW))
        any_store.put_ticket(RegistrationTicket("VV23110002", "b@x.com", NOW + 1800))
        assert any_store.sweep_tickets(NOW) == 1
        assert any_store.take_ticket("VV23110001", "a@x.com") is None
        assert any_store.take_ticket("VV23110002", "b@x.com") is not None


class TestCounters:
    """Fixed-window counters."""

    def test_hit_counts_within_window(self, any_store):
        """Hits increase the count and keep the window end."""
        assert any_store.hit_counter("k", 60, NOW) == (1, NOW + 60)
        assert any_store.hit_counter("k", 60, NOW + 10) == (2, NOW + 60)
        assert any_store.peek_counter("k") == (2, NOW + 60)

    def test_window_restart(self, any_store):
        """A hit at or after reset_at starts a new window."""
        any_store.hit_counter("k", 60, NOW)
        any_store.hit_counter("k", 60, NOW)
        assert any_store.hit_counter("k", 60, NOW + 60) == (1, NOW + 120)

    def test_clear(self, any_store):
        """clear_counter forgets the key."""
        any_store.hit_counter("k", 60, NOW)
        any_store.clear_counter("k")
        assert any_store.peek_counter("k") is None
        assert any_store.hit_counter("k", 60, NOW) == (1, NOW + 60)

    def test_sweep_ended_windows(self, any_store):
        """Counters whose window has ended are swept, live ones stay."""
        any_store.hit_counter("old", 60, NOW)
        any_store.hit_counter("live", 60, NOW + 30)
        assert any_store.sweep_counters(NOW + 60) == 1
        assert any_store.peek_counter("old") is None
        assert any_store.peek_counter("live") == (1, NOW + 90)


class TestSqlStore:
    """SQL-specific behaviour."""

    def test_persists_across_instances(self, tmp_path):
        """Data survives reopening the database."""
        url = f"sqlite:///{tmp_path / 'persist.db'}"
        first = SqlStore(url)
        first.create_user(_user())
        first.next_sequence("user_id:2311")
        first.close()

        second = SqlStore(url)
        assert second.get_user_by_email("a@x.com").id == "VV23110001"
        assert second.next_sequence("user_id:2311") == 2
        second.close()

    def test_unreachable_database(self, tmp_path):
        """Driver errors surface as StoreError."""
        url = f"sqlite:///{tmp_path / 'missing-dir' / 'auth.db'}"
        with pytest.raises(StoreError):
            SqlStore(url)


class TestCreateStore:

    def test_memory_url(self):
        """memory:// builds a MemoryStore."""
        assert isinstance(create_store("memory://"), MemoryStore)

    def test_sql_url(self, tmp_path):
        """Anything else is a SQLAlchemy URL."""
        store = create_store(f"sqlite:///{tmp_path / 'auth.db'}")
        assert isinstance(store, SqlStore)
        store.close()
