"""
Payment Reconciliation

Two independent paths settle a booking's payment:

- verify: the client posts a tx_ref, we ask the gateway and trust only
  ``data.status == "success"``.
- webhook: the gateway calls back with tx_ref and status; the notification is
  trusted as-is.

Both may run for the same tx_ref any number of times in any order. They
funnel into ``confirm_payment``, which is backed by the store's atomic
``mark_paid`` compare-and-set, so repeated or concurrent confirmations are
no-ops and a slot can never end up with two paid bookings.

State machine::

    Pending/pending --success--> Paid/success     (terminal for payment)
    Pending/pending --failure--> Pending/failed   (customer may retry)
    Paid/success    --failure--> unchanged        (late failure ignored)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..exceptions import (
    BookingNotFoundError,
    GatewayError,
    GatewayTimeoutError,
    PaymentFailedError,
    ValidationError,
)
from ..models.booking import Booking, PaymentStatus
from ..utils import metrics
from ..utils.logging_config import get_logger
from .booking_store import BookingStore
from .chapa_client import ChapaClient

logger = get_logger(__name__)

SOURCE_VERIFY = "verify"
SOURCE_WEBHOOK = "webhook"
SOURCE_RETURN_PAGE = "return_page"

# Return-page outcomes
RETURN_SUCCESS = "success"
RETURN_PRESUMED_SUCCESS = "presumed_success"
RETURN_FAILED = "failed"
RETURN_ERROR = "error"


@dataclass
class ReturnPageResult:
    status: str
    verified: bool
    message: str
    booking: Optional[Booking] = None


def _require_tx_ref(tx_ref: Optional[str]) -> str:
    if not tx_ref or not tx_ref.strip():
        raise ValidationError("Transaction reference is required")
    return tx_ref.strip()


def _booking_for_reference(store: BookingStore, tx_ref: str) -> Booking:
    booking = store.find_by_payment_reference(tx_ref)
    if booking is None:
        logger.payment_event(tx_ref, "unknown_reference", level=logging.WARNING)
        raise BookingNotFoundError()
    return booking


def confirm_payment(store: BookingStore, booking: Booking, source: str = SOURCE_VERIFY) -> Booking:
    """
    Move ``booking`` to Paid/success. Idempotent.

    Raises SlotTakenError when another booking already holds the slot.
    """
    confirmed = store.mark_paid(booking.booking_id)
    if confirmed is None:
        raise BookingNotFoundError()

    if booking.status != confirmed.status or booking.payment_status != confirmed.payment_status:
        logger.booking_status_changed(
            confirmed.booking_id,
            f"{booking.status}/{booking.payment_status}",
            f"{confirmed.status}/{confirmed.payment_status}",
            source,
        )
        metrics.record_payment_confirmation(source, "confirmed")
    else:
        metrics.record_payment_confirmation(source, "already_paid")
    return confirmed


def verify_booking_payment(
    store: BookingStore,
    gateway: ChapaClient,
    tx_ref: Optional[str],
    timeout: Optional[float] = None,
) -> Booking:
    """
    Verify ``tx_ref`` with the gateway and confirm the matching booking.

    Non-success raises PaymentFailedError and leaves the booking untouched.
    A gateway timeout raises GatewayTimeoutError; it is never read as success.
    """
    tx_ref = _require_tx_ref(tx_ref)
    verification = gateway.verify(tx_ref, timeout=timeout)

    if not verification.is_success:
        logger.payment_event(tx_ref, "verification_failed", level=logging.WARNING,
                             gateway_status=verification.status)
        metrics.record_payment_confirmation(SOURCE_VERIFY, "failed")
        raise PaymentFailedError()

    booking = _booking_for_reference(store, tx_ref)
    return confirm_payment(store, booking, SOURCE_VERIFY)


def handle_payment_webhook(store: BookingStore, tx_ref: Optional[str], status: Optional[str]) -> Optional[Booking]:
    """
    Apply a gateway notification. Returns the booking when it was a success.

    Anything but ``success`` marks the payment failed, unless the booking is
    already paid: a late failure notice never reverts a confirmed payment.
    """
    tx_ref = _require_tx_ref(tx_ref)
    logger.payment_event(tx_ref, "webhook_received", status=status)
    booking = _booking_for_reference(store, tx_ref)

    if status == "success":
        confirmed = confirm_payment(store, booking, SOURCE_WEBHOOK)
        metrics.record_webhook_event(status, "confirmed")
        return confirmed

    updated = store.mark_failed(booking.booking_id)
    if updated is None:
        raise BookingNotFoundError()

    if updated.payment_status == PaymentStatus.SUCCESS.value:
        logger.payment_event(tx_ref, "late_failure_ignored", level=logging.WARNING,
                             booking_id=booking.booking_id, status=status)
        metrics.record_webhook_event(status, "ignored")
        return None

    if booking.payment_status != updated.payment_status:
        logger.booking_status_changed(
            booking.booking_id, booking.payment_status, updated.payment_status, SOURCE_WEBHOOK
        )
    metrics.record_webhook_event(status, "failed")
    return None


def resolve_return_page(
    store: BookingStore,
    gateway: ChapaClient,
    tx_ref: Optional[str],
    timeout: Optional[float] = None,
) -> ReturnPageResult:
    """
    Outcome shown when the customer lands back from checkout.

    Uses a short verify wait. On timeout the payment is reported as presumed
    successful without touching the store; the webhook settles it.
    """
    tx_ref = _require_tx_ref(tx_ref)
    booking = _booking_for_reference(store, tx_ref)

    if booking.is_paid:
        return ReturnPageResult(RETURN_SUCCESS, True, "Payment verified successfully", booking)

    try:
        verification = gateway.verify(tx_ref, timeout=timeout)
    except GatewayTimeoutError:
        logger.payment_event(tx_ref, "return_verify_timeout", level=logging.WARNING,
                             booking_id=booking.booking_id)
        metrics.record_payment_confirmation(SOURCE_RETURN_PAGE, "presumed")
        return ReturnPageResult(
            RETURN_PRESUMED_SUCCESS,
            False,
            "Payment completed! (Verification pending - your booking will be confirmed shortly)",
            booking,
        )
    except GatewayError as e:
        logger.payment_event(tx_ref, "return_verify_error", level=logging.ERROR,
                             booking_id=booking.booking_id, error=e.message)
        return ReturnPageResult(RETURN_ERROR, False, "Error verifying payment", booking)

    if not verification.is_success:
        metrics.record_payment_confirmation(SOURCE_RETURN_PAGE, "failed")
        return ReturnPageResult(RETURN_FAILED, False, "Payment verification failed", booking)

    confirmed = confirm_payment(store, booking, SOURCE_RETURN_PAGE)
    return ReturnPageResult(RETURN_SUCCESS, True, "Payment verified successfully", confirmed)
