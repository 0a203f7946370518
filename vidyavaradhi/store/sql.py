"""
SQLAlchemy AuthStore

Relational backend for anything SQLAlchemy can talk to (SQLite by default).

Atomicity:
- OTP consumption is a conditional UPDATE ... WHERE consumed = false AND
  code_digest = :digest; the row count decides the single winner.
- Rate counters and sequences are single UPDATE statements; the first hit
  for a key inserts the row and retries once if a concurrent insert won.
- User uniqueness is enforced by unique constraints.

Every driver error is re-raised as StoreError so callers can map it to a
retryable dependency failure. Connect and pool waits are bounded by the
configured timeout.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

from sqlalchemy import (
    Boolean, Float, Integer, String, case, create_engine, delete, select, update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .base import (
    AuthStore, DuplicateEmail, OtpRecord, RegistrationTicket,
    SessionRecord, StoreError, User,
)


logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(16), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[float] = mapped_column(Float, nullable=False)
    last_login: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    def to_user(self) -> User:
        return User(
            id=self.id, email=self.email, password_hash=self.password_hash,
            role=self.role, name=self.name, created_at=self.created_at,
            last_login=self.last_login,
        )


class OtpRow(Base):
    __tablename__ = "otps"

    email: Mapped[str] = mapped_column(String(320), primary_key=True)
    purpose: Mapped[str] = mapped_column(String(32), primary_key=True)
    code_digest: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False)
    consumed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def to_record(self) -> OtpRecord:
        return OtpRecord(
            email=self.email, purpose=self.purpose, code_digest=self.code_digest,
            expires_at=self.expires_at, created_at=self.created_at,
            consumed=self.consumed,
        )


class SessionRow(Base):
    __tablename__ = "sessions"

    session_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    issued_at: Mapped[float] = mapped_column(Float, nullable=False)
    expires_at: Mapped[float] = mapped_column(Float, nullable=False, index=True)


class TicketRow(Base):
    __tablename__ = "registration_tickets"

    user_id: Mapped[str] = mapped_column(String(16), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    expires_at: Mapped[float] = mapped_column(Float, nullable=False, index=True)


class CounterRow(Base):
    __tablename__ = "rate_counters"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, nullable=False)
    reset_at: Mapped[float] = mapped_column(Float, nullable=False, index=True)


class SequenceRow(Base):
    __tablename__ = "sequences"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)


class SqlStore(AuthStore):
    """AuthStore on a SQLAlchemy engine."""

    def __init__(self, url: str, timeout: float = 5.0, create_tables: bool = True):
        """
        Args:
            url: SQLAlchemy database URL
            timeout: Seconds to wait for a connection or a database lock
            create_tables: Create missing tables on startup
        """
        kwargs = {'pool_pre_ping': True}
        if url.startswith('sqlite'):
            kwargs['connect_args'] = {'timeout': timeout, 'check_same_thread': False}
        else:
            kwargs['pool_timeout'] = timeout
            if url.startswith(('postgresql', 'mysql')):
                kwargs['connect_args'] = {'connect_timeout': int(max(timeout, 1))}

        try:
            self._engine = create_engine(url, **kwargs)
            if create_tables:
                Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise StoreError(f"database unavailable: {type(e).__name__}") from e

        self._Session = sessionmaker(bind=self._engine, expire_on_commit=False)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """One transaction; IntegrityError passes through, other errors become StoreError."""
        session = self._Session()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Store operation failed: %s", type(e).__name__)
            raise StoreError(f"database error: {type(e).__name__}") from e
        finally:
            session.close()

    # ---- users ----

    def create_user(self, user: User) -> User:
        try:
            with self._session() as s:
                s.add(UserRow(
                    id=user.id, email=user.email, password_hash=user.password_hash,
                    role=user.role, name=user.name, created_at=user.created_at,
                    last_login=user.last_login,
                ))
        except IntegrityError as e:
            if self.get_user_by_email(user.email) is not None:
                raise DuplicateEmail(user.email) from e
            raise StoreError("user insert rejected") from e
        return user

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._session() as s:
            row = s.scalar(select(UserRow).where(UserRow.email == email))
            return row.to_user() if row else None

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        with self._session() as s:
            row = s.get(UserRow, user_id)
            return row.to_user() if row else None

    def touch_last_login(self, user_id: str, timestamp: float) -> None:
        with self._session() as s:
            s.execute(
                update(UserRow).where(UserRow.id == user_id)
                .values(last_login=timestamp)
                .execution_options(synchronize_session=False)
            )

    def set_password_hash(self, user_id: str, password_hash: str) -> None:
        with self._session() as s:
            s.execute(
                update(UserRow).where(UserRow.id == user_id)
                .values(password_hash=password_hash)
                .execution_options(synchronize_session=False)
            )

    def next_sequence(self, name: str) -> int:
        for attempt in range(2):
            try:
                with self._session() as s:
                    result = s.execute(
                        update(SequenceRow).where(SequenceRow.name == name)
                        .values(value=SequenceRow.value + 1)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        s.add(SequenceRow(name=name, value=1))
                        s.flush()
                    return s.scalar(select(SequenceRow.value).where(SequenceRow.name == name))
            except IntegrityError:
                logger.debug("Sequence %s created concurrently, retrying", name)
        raise StoreError(f"could not allocate sequence value for {name}")

    # ---- OTPs ----

    def put_otp(self, record: OtpRecord) -> None:
        for attempt in range(2):
            try:
                with self._session() as s:
                    s.execute(delete(OtpRow).where(
                        OtpRow.email == record.email, OtpRow.purpose == record.purpose
                    ))
                    s.add(OtpRow(
                        email=record.email, purpose=record.purpose,
                        code_digest=record.code_digest, expires_at=record.expires_at,
                        created_at=record.created_at, consumed=record.consumed,
                    ))
                return
            except IntegrityError:
                logger.debug("OTP record replaced concurrently, retrying")
        raise StoreError("could not store OTP record")

    def get_otp(self, email: str, purpose: str) -> Optional[OtpRecord]:
        with self._session() as s:
            row = s.get(OtpRow, (email, purpose))
            return row.to_record() if row else None

    def consume_otp(self, email: str, purpose: str, code_digest: str) -> bool:
        with self._session() as s:
            result = s.execute(
                update(OtpRow)
                .where(
                    OtpRow.email == email,
                    OtpRow.purpose == purpose,
                    OtpRow.consumed.is_(False),
                    OtpRow.code_digest == code_digest,
                )
                .values(consumed=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    def sweep_otps(self, now: float) -> int:
        with self._session() as s:
            result = s.execute(
                delete(OtpRow).where((OtpRow.consumed.is_(True)) | (OtpRow.expires_at <= now))
            )
            return result.rowcount

    # ---- sessions ----

    def add_session(self, record: SessionRecord) -> None:
        with self._session() as s:
            s.add(SessionRow(
                session_id=record.session_id, user_id=record.user_id,
                issued_at=record.issued_at, expires_at=record.expires_at,
            ))

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        with self._session() as s:
            row = s.get(SessionRow, session_id)
            if row is None:
                return None
            return SessionRecord(
                session_id=row.session_id, user_id=row.user_id,
                issued_at=row.issued_at, expires_at=row.expires_at,
            )

    def delete_session(self, session_id: str) -> bool:
        with self._session() as s:
            result = s.execute(delete(SessionRow).where(SessionRow.session_id == session_id))
            return result.rowcount > 0

    def sweep_sessions(self, now: float) -> int:
        with self._session() as s:
            result = s.execute(delete(SessionRow).where(SessionRow.expires_at <= now))
            return result.rowcount

    # ---- registration tickets ----

    def put_ticket(self, ticket: RegistrationTicket) -> None:
        with self._session() as s:
            s.merge(TicketRow(
                user_id=ticket.user_id, email=ticket.email, expires_at=ticket.expires_at,
            ))

    def take_ticket(self, user_id: str, email: str) -> Optional[RegistrationTicket]:
        with self._session() as s:
            row = s.scalar(select(TicketRow).where(
                TicketRow.user_id == user_id, TicketRow.email == email
            ))
            if row is None:
                return None
            ticket = RegistrationTicket(user_id=row.user_id, email=row.email,
                                        expires_at=row.expires_at)
            result = s.execute(
                delete(TicketRow)
                .where(TicketRow.user_id == user_id, TicketRow.email == email)
                .execution_options(synchronize_session=False)
            )
            # Lost the race to a concurrent take
            if result.rowcount != 1:
                return None
            return ticket

    def sweep_tickets(self, now: float) -> int:
        with self._session() as s:
            result = s.execute(delete(TicketRow).where(TicketRow.expires_at <= now))
            return result.rowcount

    # ---- rate limit counters ----

    def hit_counter(self, key: str, window_seconds: float, now: float) -> Tuple[int, float]:
        window_over = CounterRow.reset_at <= now
        for attempt in range(2):
            try:
                with self._session() as s:
                    result = s.execute(
                        update(CounterRow)
                        .where(CounterRow.key == key)
                        .values(
                            count=case((window_over, 1), else_=CounterRow.count + 1),
                            reset_at=case((window_over, now + window_seconds),
                                          else_=CounterRow.reset_at),
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        s.add(CounterRow(key=key, count=1, reset_at=now + window_seconds))
                        s.flush()
                    count, reset_at = s.execute(
                        select(CounterRow.count, CounterRow.reset_at).where(CounterRow.key == key)
                    ).one()
                    return count, reset_at
            except IntegrityError:
                logger.debug("Counter created concurrently, retrying")
        raise StoreError("could not update rate counter")

    def peek_counter(self, key: str) -> Optional[Tuple[int, float]]:
        with self._session() as s:
            row = s.execute(
                select(CounterRow.count, CounterRow.reset_at).where(CounterRow.key == key)
            ).first()
            return (row[0], row[1]) if row else None

    def clear_counter(self, key: str) -> None:
        with self._session() as s:
            s.execute(delete(CounterRow).where(CounterRow.key == key))

    def sweep_counters(self, now: float) -> int:
        with self._session() as s:
            result = s.execute(delete(CounterRow).where(CounterRow.reset_at <= now))
            return result.rowcount

    def close(self) -> None:
        self._engine.dispose()
