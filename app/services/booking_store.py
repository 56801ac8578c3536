"""
Booking Store

The storage contract the booking workflow depends on, with two backends:

- InMemoryBookingStore: process-lifetime storage guarded by a lock so each
  single operation is atomic (multi-step read-then-write sequences are not).
- SqlBookingStore: SQLAlchemy sessions; a partial unique index on
  (date, time) for Paid/Completed rows makes double confirmation impossible.

Both backends enforce the same rules on status changes:
- only one Paid/Completed booking per (date, time)  -> SlotTakenError
- a booking whose payment succeeded never returns to Pending
"""

import logging
import secrets
import string
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from functools import lru_cache
from typing import Dict, Iterable, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..config import settings
from ..database import create_tables, make_engine, make_session_factory
from ..exceptions import SlotTakenError, StoreUnavailableError, ValidationError
from ..models.booking import (
    Booking,
    BookingStatus,
    CONFIRMED_STATUSES,
    PaymentStatus,
    utcnow,
)
from ..utils.db_helpers import acquire_row_lock

logger = logging.getLogger(__name__)

BOOKING_ID_ALPHABET = string.ascii_lowercase + string.digits
BOOKING_ID_LENGTH = 9

COLUMNS = tuple(Booking.__table__.columns.keys())

# Fields a caller may change through update()
UPDATABLE_FIELDS = frozenset(COLUMNS) - {"booking_id", "created_at", "updated_at"}


def generate_booking_id() -> str:
    """Opaque short id, e.g. 'k3j9x0a2m'."""
    return "".join(secrets.choice(BOOKING_ID_ALPHABET) for _ in range(BOOKING_ID_LENGTH))


def check_status_change(current: Optional[Booking], changes: Dict) -> None:
    """Reject a change that would revert a confirmed payment or move a paid booking back to Pending."""
    if (
        current is not None
        and current.payment_status == PaymentStatus.SUCCESS.value
        and changes.get("payment_status", PaymentStatus.SUCCESS.value) != PaymentStatus.SUCCESS.value
    ):
        raise ValidationError("A confirmed payment cannot be reverted")
    payment_status = changes.get(
        "payment_status", current.payment_status if current else PaymentStatus.PENDING.value
    )
    status = changes.get("status", current.status if current else BookingStatus.PENDING.value)
    if payment_status == PaymentStatus.SUCCESS.value and status == BookingStatus.PENDING.value:
        raise ValidationError("A paid booking cannot be moved back to Pending")


def _normalize_values(values: Dict) -> Dict:
    """Coerce enum members to their stored string values."""
    result = {}
    for key, value in values.items():
        if isinstance(value, (BookingStatus, PaymentStatus)):
            value = value.value
        result[key] = value
    return result


def _status_values(statuses: Iterable) -> List[str]:
    return [getattr(s, "value", s) for s in statuses]


def _check_fields(fields: Iterable[str]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown or read-only booking fields: {sorted(unknown)}")


class BookingStore(ABC):
    """Storage contract consumed by intake, availability and reconciliation."""

    @abstractmethod
    def list_all(self) -> List[Booking]:
        ...

    @abstractmethod
    def get(self, booking_id: str) -> Optional[Booking]:
        ...

    @abstractmethod
    def find_by_phone(self, phone: str) -> List[Booking]:
        ...

    @abstractmethod
    def find_by_date(self, booking_date: date, statuses: Iterable[str]) -> List[Booking]:
        ...

    @abstractmethod
    def find_by_date_time(self, booking_date: date, time: str, statuses: Iterable[str]) -> List[Booking]:
        ...

    @abstractmethod
    def find_by_payment_reference(self, reference: str) -> Optional[Booking]:
        ...

    @abstractmethod
    def insert(self, draft: Dict) -> Booking:
        ...

    @abstractmethod
    def update(self, booking_id: str, fields: Dict) -> Optional[Booking]:
        ...

    @abstractmethod
    def delete(self, booking_id: str) -> bool:
        ...

    @abstractmethod
    def mark_paid(self, booking_id: str) -> Optional[Booking]:
        """
        Idempotent compare-and-set of payment_status pending/failed -> success.

        Pending bookings become Paid; Completed/Cancelled bookings keep their
        status. Already-successful bookings are returned unchanged. Raises
        SlotTakenError if a different booking holds the slot.
        """

    @abstractmethod
    def mark_failed(self, booking_id: str) -> Optional[Booking]:
        """
        Compare-and-set of payment_status pending -> failed.

        A booking whose payment already succeeded is returned unchanged, so a
        failure notice racing a confirmation can never revert it.
        """

    @abstractmethod
    def ping(self) -> None:
        """Raise StoreUnavailableError when the store cannot serve requests."""


def paid_changes(booking: Booking) -> Dict:
    """Field changes that confirm payment for ``booking`` (empty when already confirmed)."""
    if booking.payment_status == PaymentStatus.SUCCESS.value and booking.status != BookingStatus.PENDING.value:
        return {}
    changes = {"payment_status": PaymentStatus.SUCCESS.value}
    if booking.status not in (BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value):
        changes["status"] = BookingStatus.PAID.value
    return changes


class InMemoryBookingStore(BookingStore):
    """
    Bookings held in a dict for the lifetime of the process.

    Returned objects are detached copies: mutating them does not change the
    store, callers go through update().
    """

    def __init__(self):
        self._bookings: Dict[str, Booking] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _copy(booking: Booking) -> Booking:
        return Booking(**{column: getattr(booking, column) for column in COLUMNS})

    def _slot_taken_by_other(self, booking_id: str, booking_date: date, time: str) -> bool:
        return any(
            b.booking_id != booking_id
            and b.date == booking_date
            and b.time == time
            and b.status in CONFIRMED_STATUSES
            for b in self._bookings.values()
        )

    def _apply(self, booking: Booking, changes: Dict) -> Booking:
        """Validate and apply changes to the stored booking. Caller holds the lock."""
        check_status_change(booking, changes)
        new_status = changes.get("status", booking.status)
        new_date = changes.get("date", booking.date)
        new_time = changes.get("time", booking.time)
        if new_status in CONFIRMED_STATUSES and self._slot_taken_by_other(booking.booking_id, new_date, new_time):
            raise SlotTakenError()

        for key, value in changes.items():
            setattr(booking, key, value)
        booking.updated_at = utcnow()
        return booking

    def list_all(self) -> List[Booking]:
        with self._lock:
            return [self._copy(b) for b in self._bookings.values()]

    def get(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            return self._copy(booking) if booking else None

    def find_by_phone(self, phone: str) -> List[Booking]:
        with self._lock:
            return [self._copy(b) for b in self._bookings.values() if b.phone == phone]

    def find_by_date(self, booking_date: date, statuses: Iterable[str]) -> List[Booking]:
        statuses = set(_status_values(statuses))
        with self._lock:
            return [
                self._copy(b) for b in self._bookings.values()
                if b.date == booking_date and b.status in statuses
            ]

    def find_by_date_time(self, booking_date: date, time: str, statuses: Iterable[str]) -> List[Booking]:
        statuses = set(_status_values(statuses))
        with self._lock:
            return [
                self._copy(b) for b in self._bookings.values()
                if b.date == booking_date and b.time == time and b.status in statuses
            ]

    def find_by_payment_reference(self, reference: str) -> Optional[Booking]:
        if not reference:
            return None
        with self._lock:
            for booking in self._bookings.values():
                if booking.payment_reference == reference:
                    return self._copy(booking)
        return None

    def insert(self, draft: Dict) -> Booking:
        values = _normalize_values(draft)
        _check_fields(values)
        now = utcnow()
        with self._lock:
            reference = values.get("payment_reference")
            if reference and any(b.payment_reference == reference for b in self._bookings.values()):
                raise ValueError(f"Duplicate payment reference: {reference}")

            booking_id = generate_booking_id()
            while booking_id in self._bookings:
                booking_id = generate_booking_id()

            booking = Booking(
                booking_id=booking_id,
                name=values["name"],
                phone=values["phone"],
                email=values.get("email"),
                service=values["service"],
                date=values["date"],
                time=values["time"],
                status=values.get("status", BookingStatus.PENDING.value),
                payment_status=values.get("payment_status", PaymentStatus.PENDING.value),
                payment_reference=reference,
                amount=Decimal(str(values.get("amount", 0))),
                created_at=now,
                updated_at=now,
            )
            check_status_change(None, values)
            if booking.status in CONFIRMED_STATUSES and self._slot_taken_by_other(
                booking_id, booking.date, booking.time
            ):
                raise SlotTakenError()

            self._bookings[booking_id] = booking
            return self._copy(booking)

    def update(self, booking_id: str, fields: Dict) -> Optional[Booking]:
        changes = _normalize_values(fields)
        _check_fields(changes)
        with self._lock:
            booking = self._bookings.get(booking_id)
            if booking is None:
                return None
            return self._copy(self._apply(booking, changes))

    def delete(self, booking_id: str) -> bool:
        with self._lock:
            return self._bookings.pop(booking_id, None) is not None

    def mark_paid(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            if booking is None:
                return None
            changes = paid_changes(booking)
            if changes:
                self._apply(booking, changes)
            return self._copy(booking)

    def mark_failed(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            if booking is None:
                return None
            if booking.payment_status == PaymentStatus.PENDING.value:
                booking.payment_status = PaymentStatus.FAILED.value
                booking.updated_at = utcnow()
            return self._copy(booking)

    def ping(self) -> None:
        return None

    def clear(self) -> None:
        with self._lock:
            self._bookings.clear()


class SqlBookingStore(BookingStore):
    """Booking store backed by a SQLAlchemy database."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "SqlBookingStore":
        engine = make_engine(database_url, echo=echo)
        create_tables(engine)
        return cls(make_session_factory(engine))

    @contextmanager
    def _session(self):
        db = self.session_factory()
        try:
            yield db
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    def _commit(self, db) -> None:
        """Commit, turning a slot uniqueness violation into SlotTakenError."""
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if "uq_booking_confirmed_slot" in str(e.orig) or "bookings.date, bookings.time" in str(e.orig):
                raise SlotTakenError() from e
            raise

    def _slot_taken_by_other(self, db, booking_id: str, booking_date: date, time: str) -> bool:
        return db.query(Booking).filter(
            Booking.booking_id != booking_id,
            Booking.date == booking_date,
            Booking.time == time,
            Booking.status.in_(CONFIRMED_STATUSES),
        ).first() is not None

    def list_all(self) -> List[Booking]:
        with self._session() as db:
            return db.query(Booking).order_by(Booking.created_at).all()

    def get(self, booking_id: str) -> Optional[Booking]:
        with self._session() as db:
            return db.get(Booking, booking_id)

    def find_by_phone(self, phone: str) -> List[Booking]:
        with self._session() as db:
            return db.query(Booking).filter(Booking.phone == phone).order_by(Booking.created_at).all()

    def find_by_date(self, booking_date: date, statuses: Iterable[str]) -> List[Booking]:
        with self._session() as db:
            return db.query(Booking).filter(
                Booking.date == booking_date,
                Booking.status.in_(_status_values(statuses)),
            ).all()

    def find_by_date_time(self, booking_date: date, time: str, statuses: Iterable[str]) -> List[Booking]:
        with self._session() as db:
            return db.query(Booking).filter(
                Booking.date == booking_date,
                Booking.time == time,
                Booking.status.in_(_status_values(statuses)),
            ).all()

    def find_by_payment_reference(self, reference: str) -> Optional[Booking]:
        if not reference:
            return None
        with self._session() as db:
            return db.query(Booking).filter(Booking.payment_reference == reference).first()

    def insert(self, draft: Dict) -> Booking:
        values = _normalize_values(draft)
        _check_fields(values)
        check_status_change(None, values)
        values["amount"] = Decimal(str(values.get("amount", 0)))
        now = utcnow()
        with self._session() as db:
            booking_id = generate_booking_id()
            while db.get(Booking, booking_id) is not None:
                booking_id = generate_booking_id()
            booking = Booking(booking_id=booking_id, created_at=now, updated_at=now, **values)
            db.add(booking)
            self._commit(db)
            return booking

    def update(self, booking_id: str, fields: Dict) -> Optional[Booking]:
        changes = _normalize_values(fields)
        _check_fields(changes)
        with self._session() as db:
            booking = acquire_row_lock(db, Booking, Booking.booking_id == booking_id)
            if booking is None:
                return None
            check_status_change(booking, changes)
            new_status = changes.get("status", booking.status)
            if new_status in CONFIRMED_STATUSES and self._slot_taken_by_other(
                db, booking_id, changes.get("date", booking.date), changes.get("time", booking.time)
            ):
                raise SlotTakenError()
            for key, value in changes.items():
                setattr(booking, key, value)
            booking.updated_at = utcnow()
            self._commit(db)
            return booking

    def delete(self, booking_id: str) -> bool:
        with self._session() as db:
            booking = db.get(Booking, booking_id)
            if booking is None:
                return False
            db.delete(booking)
            db.commit()
            return True

    def mark_paid(self, booking_id: str) -> Optional[Booking]:
        with self._session() as db:
            booking = acquire_row_lock(db, Booking, Booking.booking_id == booking_id)
            if booking is None:
                return None
            changes = paid_changes(booking)
            if not changes:
                return booking
            if changes.get("status") in CONFIRMED_STATUSES and self._slot_taken_by_other(
                db, booking_id, booking.date, booking.time
            ):
                raise SlotTakenError()
            for key, value in changes.items():
                setattr(booking, key, value)
            booking.updated_at = utcnow()
            self._commit(db)
            return booking

    def mark_failed(self, booking_id: str) -> Optional[Booking]:
        with self._session() as db:
            # Single conditional UPDATE: a concurrent success is never overwritten
            db.query(Booking).filter(
                Booking.booking_id == booking_id,
                Booking.payment_status == PaymentStatus.PENDING.value,
            ).update(
                {"payment_status": PaymentStatus.FAILED.value, "updated_at": utcnow()},
                synchronize_session=False,
            )
            db.commit()
            return db.get(Booking, booking_id)

    def ping(self) -> None:
        try:
            with self._session() as db:
                db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Booking store unavailable: {str(e)[:100]}") from e


def build_booking_store(app_settings=None) -> BookingStore:
    app_settings = app_settings or settings
    if app_settings.booking_store_backend == "sql":
        logger.info("Using SQL booking store")
        return SqlBookingStore.from_url(app_settings.database_url)
    logger.info("Using in-memory booking store (data lives for the process lifetime)")
    return InMemoryBookingStore()


@lru_cache()
def get_booking_store() -> BookingStore:
    """FastAPI dependency: the process-wide booking store."""
    return build_booking_store()
