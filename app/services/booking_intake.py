"""
Booking Intake

Validates a booking request and stores it as Pending. Checks run in order:

1. required fields present (and date/time well formed)  -> ValidationError
2. time inside the opening window [open, close)         -> OutOfHoursError
3. slot not held by a Paid/Completed booking            -> SlotTakenError

No slot is reserved here: two Pending bookings may exist for the same slot
until one of them is paid.
"""

import re
import time
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple

from ..exceptions import OutOfHoursError, SlotTakenError, ValidationError
from ..models.booking import Booking, BookingStatus, CONFIRMED_STATUSES, PaymentStatus
from ..schemas.booking import BookingCreate
from ..utils import metrics
from ..utils.logging_config import get_logger
from .booking_store import BookingStore
from .slots import minutes_to_time24, to_time12

logger = get_logger(__name__)

REQUIRED_FIELDS = ("name", "phone", "service", "date", "time")

TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})(?::\d{2})?$')


def parse_time(value: str) -> Tuple[int, int]:
    """'3:05' -> (3, 5). Raises ValidationError for anything that is not a clock time."""
    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise ValidationError(f"Invalid time '{value}', expected HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationError(f"Invalid time '{value}', expected HH:MM")
    return hour, minute


def normalize_time(value: str) -> str:
    hour, minute = parse_time(value)
    return minutes_to_time24(hour * 60 + minute)


def parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD")


def opening_hours_message(settings) -> str:
    return (
        f"Bookings are only available from {to_time12(settings.opening_hour % 24, 0)} "
        f"to {to_time12(settings.closing_hour % 24, 0)}"
    )


def check_required(request: BookingCreate) -> None:
    for field_name in REQUIRED_FIELDS:
        value = getattr(request, field_name, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError("All fields are required")


def check_opening_hours(booking_time: str, settings) -> None:
    hour, minute = parse_time(booking_time)
    total_minutes = hour * 60 + minute
    start_minutes = settings.opening_hour * 60
    end_minutes = settings.closing_hour * 60

    if total_minutes < start_minutes or total_minutes >= end_minutes:
        raise OutOfHoursError(opening_hours_message(settings))


def check_slot_free(store: BookingStore, booking_date: date, booking_time: str) -> None:
    existing = store.find_by_date_time(booking_date, booking_time, CONFIRMED_STATUSES)
    if existing:
        raise SlotTakenError()


def validate_booking_request(store: BookingStore, request: BookingCreate, settings) -> Tuple[date, str]:
    """
    Run intake checks 1-3 and return the normalized (date, "HH:MM").

    Shared by the plain booking path and the payment-integrated path.
    """
    check_required(request)
    booking_date = parse_date(request.date)
    booking_time = normalize_time(request.time)
    check_opening_hours(booking_time, settings)
    check_slot_free(store, booking_date, booking_time)
    return booking_date, booking_time


def create_pending_booking(
    store: BookingStore,
    request: BookingCreate,
    settings,
    amount: Optional[Decimal] = None,
    payment_reference: Optional[str] = None,
) -> Booking:
    """Validate ``request`` and insert it as a Pending booking."""
    start = time.perf_counter()
    booking_date, booking_time = validate_booking_request(store, request, settings)

    booking = store.insert({
        "name": request.name.strip(),
        "phone": request.phone.strip(),
        "email": request.email.strip() if request.email else None,
        "service": request.service.strip(),
        "date": booking_date,
        "time": booking_time,
        "status": BookingStatus.PENDING.value,
        "payment_status": PaymentStatus.PENDING.value,
        "payment_reference": payment_reference,
        "amount": amount if amount is not None else Decimal("0"),
    })

    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    logger.booking_created(booking.booking_id, booking.service, float(booking.amount), duration_ms=duration_ms)
    metrics.record_booking_created(booking.service)
    return booking
