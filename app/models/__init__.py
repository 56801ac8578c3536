# Models package
from .booking import Booking, BookingStatus, PaymentStatus, CONFIRMED_STATUSES

__all__ = ["Booking", "BookingStatus", "PaymentStatus", "CONFIRMED_STATUSES"]
