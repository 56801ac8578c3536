"""
Slot Calculator

Produces the bookable time points of a day from the opening window and the
session length. Only ``time24`` is used for lookups; ``time12`` is for display.
"""

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class TimeSlot:
    time24: str
    time12: str


def minutes_to_time24(total_minutes: int) -> str:
    hour, minute = divmod(total_minutes, 60)
    return f"{hour:02d}:{minute:02d}"


def to_time12(hour: int, minute: int) -> str:
    """14:15 -> '2:15 PM', 00:30 -> '12:30 AM'"""
    display_hour = 12 if hour % 12 == 0 else hour % 12
    period = "PM" if hour >= 12 else "AM"
    return f"{display_hour}:{minute:02d} {period}"


def generate_slots(
    start_hour: int,
    end_hour: int,
    interval_minutes: int,
    max_slots: Optional[int] = None
) -> List[TimeSlot]:
    """
    Generate consecutive slots from ``start_hour:00`` stepping by
    ``interval_minutes``, strictly before ``end_hour:00``.

    ``max_slots`` truncates the sequence; None means no cap.
    """
    if interval_minutes <= 0:
        raise ValueError("interval_minutes must be positive")
    if not (0 <= start_hour < end_hour <= 24):
        raise ValueError("end_hour must be after start_hour, both within 0..24")
    if max_slots is not None and max_slots < 0:
        raise ValueError("max_slots cannot be negative")

    slots = []
    total_minutes = start_hour * 60
    end_minutes = end_hour * 60

    while total_minutes < end_minutes:
        if max_slots is not None and len(slots) >= max_slots:
            break
        hour, minute = divmod(total_minutes, 60)
        slots.append(TimeSlot(time24=minutes_to_time24(total_minutes), time12=to_time12(hour, minute)))
        total_minutes += interval_minutes

    return slots


def slots_for_day(settings) -> List[TimeSlot]:
    """The configured day: opening/closing hours, interval and cap from settings."""
    return generate_slots(
        settings.opening_hour,
        settings.closing_hour,
        settings.slot_interval_minutes,
        settings.slot_cap,
    )
