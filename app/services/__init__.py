# Services package
from .slots import TimeSlot, generate_slots, slots_for_day
from .booking_store import (
    BookingStore, InMemoryBookingStore, SqlBookingStore,
    build_booking_store, get_booking_store
)
from .availability import Availability, available_slots
from .booking_intake import create_pending_booking, validate_booking_request
from .chapa_client import ChapaClient, ChapaVerification, get_chapa_client
from .payment_initiation import (
    PaymentInitiation, initiate_booking_payment, initiate_payment_for_booking,
    generate_tx_ref, split_name, derive_email, normalize_phone
)
from .payment_reconciliation import (
    ReturnPageResult, confirm_payment, verify_booking_payment,
    handle_payment_webhook, resolve_return_page
)

__all__ = [
    "TimeSlot", "generate_slots", "slots_for_day",
    "BookingStore", "InMemoryBookingStore", "SqlBookingStore",
    "build_booking_store", "get_booking_store",
    "Availability", "available_slots",
    "create_pending_booking", "validate_booking_request",
    "ChapaClient", "ChapaVerification", "get_chapa_client",
    "PaymentInitiation", "initiate_booking_payment", "initiate_payment_for_booking",
    "generate_tx_ref", "split_name", "derive_email", "normalize_phone",
    "ReturnPageResult", "confirm_payment", "verify_booking_payment",
    "handle_payment_webhook", "resolve_return_page",
]
