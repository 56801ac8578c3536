import enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Date, Numeric, DateTime, Index, text

from ..database import Base


class BookingStatus(str, enum.Enum):
    PENDING = "Pending"
    PAID = "Paid"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


# Statuses that occupy a slot
CONFIRMED_STATUSES = (BookingStatus.PAID.value, BookingStatus.COMPLETED.value)

_CONFIRMED_SQL = text("status IN ('Paid', 'Completed')")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Booking(Base):
    __tablename__ = "bookings"

    booking_id = Column(String(16), primary_key=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=False, index=True)
    email = Column(String(255), nullable=True)
    service = Column(String(100), nullable=False)  # service name, not a FK
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)  # "HH:MM", 24-hour
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_reference = Column(String(64), nullable=True, unique=True)
    amount = Column(Numeric(10, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_booking_date_time", "date", "time"),
        # One Paid/Completed booking per slot
        Index(
            "uq_booking_confirmed_slot",
            "date",
            "time",
            unique=True,
            sqlite_where=_CONFIRMED_SQL,
            postgresql_where=_CONFIRMED_SQL,
        ),
    )

    @property
    def is_confirmed(self) -> bool:
        return self.status in CONFIRMED_STATUSES

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.SUCCESS.value

    def __repr__(self):
        return f"<Booking {self.booking_id} {self.date} {self.time} {self.status}/{self.payment_status}>"
