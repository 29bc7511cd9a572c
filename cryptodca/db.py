"""
Document storage for users and their embedded transactions.

A user is stored as one document: profile fields plus the ``watchPairs``,
``transactions`` and ``settings`` collections embedded inline. Two adapters
implement the ``UserStore`` interface: an in-memory one for development and
tests, and a SQLAlchemy-backed one that keeps the embedded collections in
JSON columns of a single row.
"""

from __future__ import annotations

import copy
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol, TypeVar

from sqlalchemy import JSON, Column, Float, String, create_engine, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from cryptodca.errors import DuplicateEmailError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Fields update_user_fields may write.
UPDATABLE_USER_FIELDS = ("firstname", "lastname", "email", "settings", "watch_pairs")


def _parse_timestamp(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


@dataclass
class TransactionRecord:
    id: str
    timestamp: datetime
    type: str
    coin: str
    num_coins: float
    currency: str
    total_amount_paid: float
    fee: float
    exchange: str
    notes: str = ""

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": _format_timestamp(self.timestamp),
            "type": self.type,
            "coin": self.coin,
            "numCoins": self.num_coins,
            "currency": self.currency,
            "totalAmountPaid": self.total_amount_paid,
            "fee": self.fee,
            "notes": self.notes,
            "exchange": self.exchange,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TransactionRecord":
        return cls(
            id=data["id"],
            timestamp=_parse_timestamp(data["timestamp"]),
            type=data["type"],
            coin=data["coin"],
            num_coins=data["numCoins"],
            currency=data["currency"],
            total_amount_paid=data["totalAmountPaid"],
            fee=data["fee"],
            notes=data.get("notes") or "",
            exchange=data["exchange"],
        )


@dataclass
class UserRecord:
    user_id: str
    firstname: str
    lastname: str
    email: str
    hashed_password: Optional[str] = None
    watch_pairs: list[str] = field(default_factory=list)
    transactions: list[TransactionRecord] = field(default_factory=list)
    settings: dict = field(default_factory=dict)
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def find_transaction(self, transaction_id: str) -> Optional[TransactionRecord]:
        for transaction in self.transactions:
            if transaction.id == transaction_id:
                return transaction
        return None

    def as_dict(self) -> dict:
        """Public representation; the password hash is never included."""
        return {
            "id": self.user_id,
            "firstname": self.firstname,
            "lastname": self.lastname,
            "email": self.email,
            "watchPairs": list(self.watch_pairs),
            "transactions": [t.as_dict() for t in self.transactions],
            "settings": dict(self.settings),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class UserStore(Protocol):
    """Interface for user document persistence."""

    def insert_user(
        self, firstname: str, lastname: str, email: str, hashed_password: str
    ) -> UserRecord:
        ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    def update_user_fields(self, user_id: str, fields: dict) -> Optional[UserRecord]:
        ...

    def push_transaction(
        self, user_id: str, transaction: TransactionRecord
    ) -> Optional[UserRecord]:
        ...

    def replace_transaction(
        self, user_id: str, transaction: TransactionRecord
    ) -> tuple[Optional[UserRecord], bool]:
        ...

    def pull_transaction(
        self, user_id: str, transaction_id: str
    ) -> Optional[UserRecord]:
        ...


def _check_fields(fields: dict) -> None:
    unknown = set(fields) - set(UPDATABLE_USER_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update user fields: {sorted(unknown)}")


class InMemoryUserStore:
    """Simple in-memory user store for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()

    def _email_taken(self, email: str, exclude_user_id: Optional[str] = None) -> bool:
        return any(
            user.email == email and user.user_id != exclude_user_id
            for user in self.users.values()
        )

    def insert_user(
        self, firstname: str, lastname: str, email: str, hashed_password: str
    ) -> UserRecord:
        if self._email_taken(email):
            raise DuplicateEmailError(email)
        record = UserRecord(
            user_id=uuid.uuid4().hex,
            firstname=firstname,
            lastname=lastname,
            email=email,
            hashed_password=hashed_password,
        )
        self.users[record.user_id] = record
        return copy.deepcopy(record)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        return copy.deepcopy(user) if user else None

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.email == email:
                return copy.deepcopy(user)
        return None

    def update_user_fields(self, user_id: str, fields: dict) -> Optional[UserRecord]:
        _check_fields(fields)
        user = self.users.get(user_id)
        if not user:
            return None
        if "email" in fields and self._email_taken(fields["email"], user_id):
            raise DuplicateEmailError(fields["email"])
        for key, value in fields.items():
            setattr(user, key, copy.deepcopy(value))
        user.updated_at = time.time()
        return copy.deepcopy(user)

    def push_transaction(
        self, user_id: str, transaction: TransactionRecord
    ) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        if not user:
            return None
        if user.find_transaction(transaction.id) is None:
            user.transactions.append(copy.deepcopy(transaction))
            user.updated_at = time.time()
        return copy.deepcopy(user)

    def replace_transaction(
        self, user_id: str, transaction: TransactionRecord
    ) -> tuple[Optional[UserRecord], bool]:
        user = self.users.get(user_id)
        if not user:
            return None, False
        for index, existing in enumerate(user.transactions):
            if existing.id == transaction.id:
                user.transactions[index] = copy.deepcopy(transaction)
                user.updated_at = time.time()
                return copy.deepcopy(user), True
        return copy.deepcopy(user), False

    def pull_transaction(
        self, user_id: str, transaction_id: str
    ) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        if not user:
            return None
        user.transactions = [t for t in user.transactions if t.id != transaction_id]
        user.updated_at = time.time()
        return copy.deepcopy(user)


class SqlUserStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    Every write that touches the embedded transaction list runs inside one
    database transaction holding a row lock on the user, so append, replace
    and remove are atomic per user document.
    """

    def __init__(
        self,
        database_url: str,
        *,
        max_attempts: int = 3,
        retry_backoff_seconds: float = 0.2,
    ):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlUserStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff_seconds = retry_backoff_seconds
        Base.metadata.create_all(self.engine)

    def _run(self, operation: Callable[[Session], T]) -> T:
        """
        Run ``operation`` in a fresh session, retrying with exponential
        backoff when the connection drops.
        """
        attempt = 1
        while True:
            try:
                with self.Session() as session:
                    return operation(session)
            except OperationalError:
                if attempt >= self.max_attempts:
                    raise
                delay = self.retry_backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "Database operation failed (attempt %s/%s); reconnecting in %.2fs",
                    attempt,
                    self.max_attempts,
                    delay,
                )
                self.engine.dispose()
                time.sleep(delay)
                attempt += 1

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            user_id=row.user_id,
            firstname=row.firstname,
            lastname=row.lastname,
            email=row.email,
            hashed_password=row.hashed_password,
            watch_pairs=list(row.watch_pairs or []),
            transactions=[
                TransactionRecord.from_dict(item) for item in (row.transactions or [])
            ],
            settings=dict(row.settings or {}),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def insert_user(
        self, firstname: str, lastname: str, email: str, hashed_password: str
    ) -> UserRecord:
        now = time.time()
        user_id = uuid.uuid4().hex

        def operation(session: Session) -> UserRecord:
            row = UserRow(
                user_id=user_id,
                firstname=firstname,
                lastname=lastname,
                email=email,
                hashed_password=hashed_password,
                watch_pairs=[],
                transactions=[],
                settings={},
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                # A retried attempt finds the row its earlier commit wrote.
                existing = session.get(UserRow, user_id)
                if existing is not None and existing.email == email:
                    return self._to_user_record(existing)
                raise DuplicateEmailError(email) from exc
            session.refresh(row)
            return self._to_user_record(row)

        return self._run(operation)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        def operation(session: Session) -> Optional[UserRecord]:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

        return self._run(operation)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        def operation(session: Session) -> Optional[UserRecord]:
            stmt = select(UserRow).where(UserRow.email == email).limit(1)
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user_record(row) if row else None

        return self._run(operation)

    def update_user_fields(self, user_id: str, fields: dict) -> Optional[UserRecord]:
        _check_fields(fields)

        def operation(session: Session) -> Optional[UserRecord]:
            row = session.get(UserRow, user_id, with_for_update=True)
            if not row:
                return None
            for key, value in fields.items():
                setattr(row, key, copy.deepcopy(value))
            row.updated_at = time.time()
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateEmailError(fields.get("email", "")) from exc
            return self._to_user_record(row)

        return self._run(operation)

    def push_transaction(
        self, user_id: str, transaction: TransactionRecord
    ) -> Optional[UserRecord]:
        def operation(session: Session) -> Optional[UserRecord]:
            row = session.get(UserRow, user_id, with_for_update=True)
            if not row:
                return None
            items = list(row.transactions or [])
            # Already written by an earlier attempt whose commit landed.
            if any(item.get("id") == transaction.id for item in items):
                return self._to_user_record(row)
            # JSON columns only notice reassignment, not in-place mutation.
            row.transactions = items + [transaction.as_dict()]
            row.updated_at = time.time()
            session.commit()
            return self._to_user_record(row)

        return self._run(operation)

    def replace_transaction(
        self, user_id: str, transaction: TransactionRecord
    ) -> tuple[Optional[UserRecord], bool]:
        def operation(session: Session) -> tuple[Optional[UserRecord], bool]:
            row = session.get(UserRow, user_id, with_for_update=True)
            if not row:
                return None, False
            items = list(row.transactions or [])
            for index, item in enumerate(items):
                if item.get("id") == transaction.id:
                    items[index] = transaction.as_dict()
                    row.transactions = items
                    row.updated_at = time.time()
                    session.commit()
                    return self._to_user_record(row), True
            return self._to_user_record(row), False

        return self._run(operation)

    def pull_transaction(
        self, user_id: str, transaction_id: str
    ) -> Optional[UserRecord]:
        def operation(session: Session) -> Optional[UserRecord]:
            row = session.get(UserRow, user_id, with_for_update=True)
            if not row:
                return None
            row.transactions = [
                item
                for item in (row.transactions or [])
                if item.get("id") != transaction_id
            ]
            row.updated_at = time.time()
            session.commit()
            return self._to_user_record(row)

        return self._run(operation)


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True)
    firstname = Column(String, nullable=False)
    lastname = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    hashed_password = Column(String, nullable=True)
    watch_pairs = Column(JSON, nullable=False, default=list)
    transactions = Column(JSON, nullable=False, default=list)
    settings = Column(JSON, nullable=False, default=dict)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)
