"""
Payment Initiation

Creates (or reuses) a Pending booking, tags it with a fresh transaction
reference and opens a hosted checkout with the gateway. The booking is
written before the gateway is called, so a webhook can never arrive for a
reference the store does not know.
"""

import logging
import re
import secrets
import string
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Tuple

from ..exceptions import BookingNotFoundError, GatewayError, ValidationError
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..schemas.booking import BookingCreate
from ..utils import metrics
from ..utils.logging_config import get_logger
from .booking_intake import check_required, create_pending_booking
from .booking_store import BookingStore
from .catalogue import find_service_by_name
from .chapa_client import ChapaClient

logger = get_logger(__name__)

NAME_MAX_LENGTH = 50
TX_REF_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
DESCRIPTION_PATTERN = re.compile(r'[^a-zA-Z0-9\s\-_.]')


@dataclass
class PaymentInitiation:
    booking_id: str
    checkout_url: str
    tx_ref: str


def generate_tx_ref(prefix: str = "BOOKING") -> str:
    """'BOOKING-1718000000000-k3j9x0a2m': prefix, epoch millis, random suffix."""
    suffix = "".join(secrets.choice(TX_REF_SUFFIX_ALPHABET) for _ in range(9))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


def split_name(name: str) -> Tuple[str, str]:
    """First token is the first name; the rest (or the first name again) is the last name."""
    parts = name.strip().split()
    if not parts:
        raise ValidationError("All fields are required")
    first_name = parts[0]
    last_name = " ".join(parts[1:]) or first_name
    return first_name[:NAME_MAX_LENGTH], last_name[:NAME_MAX_LENGTH]


def derive_email(email: Optional[str], phone: str, domain: str = "mbshop.com") -> str:
    if email and email.strip():
        return email.strip()
    digits = re.sub(r'\D', '', phone)
    return f"{digits}@{domain}"


def normalize_phone(phone: str, country_code: str = "251") -> str:
    """
    '0911 234 567' -> '251911234567', '+251911234567' -> '251911234567'.

    A single leading trunk '0' is dropped before the country code is added.
    """
    digits = re.sub(r'\D', '', phone)
    if digits.startswith(country_code):
        return digits
    if digits.startswith("0"):
        digits = digits[1:]
    return f"{country_code}{digits}"


def parse_amount(value) -> Decimal:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("All fields are required")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("Amount must be a positive number")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be a positive number")
    return amount


def build_payment_request(booking: Booking, amount: Decimal, tx_ref: str, settings) -> Dict:
    """Gateway initialize payload for ``booking``."""
    first_name, last_name = split_name(booking.name)
    base_url = settings.public_url
    description = f"{DESCRIPTION_PATTERN.sub('', booking.service)} {booking.time.replace(':', '.')}"

    return {
        "amount": str(amount),
        "currency": settings.payment_currency,
        "email": derive_email(booking.email, booking.phone, settings.fallback_email_domain),
        "first_name": first_name,
        "last_name": last_name,
        "phone_number": normalize_phone(booking.phone, settings.phone_country_code),
        "tx_ref": tx_ref,
        "callback_url": f"{base_url}/api/payment/verify-booking?tx_ref={tx_ref}",
        "return_url": f"{base_url}/receipt?ref={tx_ref}",
        "customization": {
            "title": settings.shop_title,
            "description": description,
        },
    }


def _open_checkout(gateway: ChapaClient, booking: Booking, amount: Decimal, tx_ref: str, settings) -> PaymentInitiation:
    payload = build_payment_request(booking, amount, tx_ref, settings)
    try:
        checkout_url = gateway.initialize(payload)
    except GatewayError as e:
        # The booking keeps its reference and stays Pending; the customer may retry.
        metrics.record_payment_initiation(success=False)
        logger.payment_event(tx_ref, "initialize_failed", level=logging.ERROR, booking_id=booking.booking_id, error=e.message)
        raise

    metrics.record_payment_initiation(success=True)
    logger.payment_event(tx_ref, "initialized", booking_id=booking.booking_id, amount=float(amount))
    return PaymentInitiation(booking_id=booking.booking_id, checkout_url=checkout_url, tx_ref=tx_ref)


def initiate_booking_payment(
    store: BookingStore,
    gateway: ChapaClient,
    request: BookingCreate,
    settings,
) -> PaymentInitiation:
    """
    Validate and store a Pending booking, then open a checkout for it.

    ``request`` carries the booking fields plus ``amount``.
    """
    check_required(request)
    amount = parse_amount(getattr(request, "amount", None))
    tx_ref = generate_tx_ref(settings.tx_ref_prefix)

    booking = create_pending_booking(store, request, settings, amount=amount, payment_reference=tx_ref)
    return _open_checkout(gateway, booking, amount, tx_ref, settings)


def initiate_payment_for_booking(
    store: BookingStore,
    gateway: ChapaClient,
    booking_id: str,
    amount,
    settings,
) -> PaymentInitiation:
    """
    Open a (new) checkout for an existing booking that has not been paid.

    Without ``amount`` the stored amount is used, then the catalogue price.
    """
    booking = store.get(booking_id)
    if booking is None:
        raise BookingNotFoundError()
    if booking.payment_status == PaymentStatus.SUCCESS.value or booking.status != BookingStatus.PENDING.value:
        raise ValidationError("This booking is already paid or no longer pending")

    if amount is None:
        amount = booking.amount or None
    if amount is None:
        service = find_service_by_name(booking.service)
        amount = service.price if service else None
    amount = parse_amount(amount)
    tx_ref = generate_tx_ref(settings.tx_ref_prefix)

    booking = store.update(booking_id, {
        "payment_reference": tx_ref,
        "payment_status": PaymentStatus.PENDING.value,
        "amount": amount,
    })
    if booking is None:
        raise BookingNotFoundError()
    return _open_checkout(gateway, booking, amount, tx_ref, settings)
