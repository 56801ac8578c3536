"""
Availability Filter

Free slots for a date = the configured day minus the times of Paid/Completed
bookings on that date. The result is a snapshot; intake and payment
confirmation re-check the slot.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import StoreUnavailableError
from ..models.booking import CONFIRMED_STATUSES
from .booking_store import BookingStore
from .slots import TimeSlot, slots_for_day

logger = logging.getLogger(__name__)


@dataclass
class Availability:
    date: date
    slots: List[TimeSlot]
    booked: List[str] = field(default_factory=list)
    # True when the store could not be read and the full day was returned
    degraded: bool = False


def available_slots(store: BookingStore, booking_date: date, settings) -> Availability:
    """
    Compute the free slots for ``booking_date``.

    If the store query fails the full slot set is returned with
    ``degraded=True`` so booking is not blocked on a read failure.
    """
    all_slots = slots_for_day(settings)

    try:
        confirmed = store.find_by_date(booking_date, CONFIRMED_STATUSES)
    except (SQLAlchemyError, StoreUnavailableError, OSError) as e:
        logger.warning(f"Availability for {booking_date} served unfiltered, store read failed: {e}")
        return Availability(date=booking_date, slots=all_slots, degraded=True)

    booked = sorted({b.time for b in confirmed})
    free = [slot for slot in all_slots if slot.time24 not in booked]
    return Availability(date=booking_date, slots=free, booked=booked)
