"""
Payment Endpoints

- POST /api/payment/initialize-booking       book + open checkout
- POST /api/payment/initialize-booking/{id}  open checkout for an existing booking
- POST /api/payment/verify-booking           client-driven verification
- GET  /api/payment/verify-booking           gateway callback (webhook)
- GET  /api/payment/receipt                  return-page outcome
"""

from fastapi import APIRouter, Body, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from typing import Optional

from ..config import Settings, get_settings
from ..exceptions import PaymentFailedError
from ..schemas.booking import BookingPaymentCreate, BookingSummary, ExistingBookingPayment
from ..schemas.payment import (
    PaymentInitResponse, ReceiptResponse, VerifyPaymentRequest,
    VerifyPaymentResponse, WebhookResponse
)
from ..services.booking_store import BookingStore, get_booking_store
from ..services.chapa_client import ChapaClient, get_chapa_client
from ..services.payment_initiation import initiate_booking_payment, initiate_payment_for_booking
from ..services.payment_reconciliation import (
    handle_payment_webhook, resolve_return_page, verify_booking_payment
)
from ..utils.rate_limiter import get_rate_limit, limiter

router = APIRouter(prefix="/api/payment", tags=["Payments"])


@router.post("/initialize-booking", response_model=PaymentInitResponse)
@limiter.limit(get_rate_limit("payment_initialize"))
def initialize_booking_payment(
    request: Request,
    payment_data: BookingPaymentCreate,
    store: BookingStore = Depends(get_booking_store),
    gateway: ChapaClient = Depends(get_chapa_client),
    app_settings: Settings = Depends(get_settings),
):
    """Create a Pending booking and return the hosted checkout URL."""
    result = initiate_booking_payment(store, gateway, payment_data, app_settings)
    return PaymentInitResponse(
        booking_id=result.booking_id,
        checkout_url=result.checkout_url,
        tx_ref=result.tx_ref,
    )


@router.post("/initialize-booking/{booking_id}", response_model=PaymentInitResponse)
@limiter.limit(get_rate_limit("payment_initialize"))
def initialize_existing_booking_payment(
    request: Request,
    booking_id: str,
    payment_data: Optional[ExistingBookingPayment] = Body(None),
    store: BookingStore = Depends(get_booking_store),
    gateway: ChapaClient = Depends(get_chapa_client),
    app_settings: Settings = Depends(get_settings),
):
    """Retry (or start) payment for a booking made without paying."""
    amount = payment_data.amount if payment_data else None
    result = initiate_payment_for_booking(store, gateway, booking_id, amount, app_settings)
    return PaymentInitResponse(
        booking_id=result.booking_id,
        checkout_url=result.checkout_url,
        tx_ref=result.tx_ref,
    )


@router.post("/verify-booking", response_model=VerifyPaymentResponse)
@limiter.limit(get_rate_limit("payment_verify"))
def verify_booking(
    request: Request,
    verify_data: VerifyPaymentRequest,
    store: BookingStore = Depends(get_booking_store),
    gateway: ChapaClient = Depends(get_chapa_client),
):
    """
    Verify a transaction with the gateway and mark the booking Paid.

    A payment the gateway does not report as successful answers
    400 ``{"status": "failed", "message": ...}`` and changes nothing.
    """
    try:
        booking = verify_booking_payment(store, gateway, verify_data.tx_ref)
    except PaymentFailedError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": "failed", "message": e.message},
        )

    return VerifyPaymentResponse(booking=BookingSummary.model_validate(booking))


@router.get("/verify-booking", response_model=WebhookResponse, response_model_exclude_none=True)
@limiter.limit(get_rate_limit("webhook"))
def payment_webhook(
    request: Request,
    tx_ref: Optional[str] = Query(None),
    trx_ref: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None, alias="status"),
    store: BookingStore = Depends(get_booking_store),
):
    """
    Gateway callback. Chapa sends the reference as ``tx_ref`` or ``trx_ref``.

    Safe to deliver any number of times.
    """
    booking = handle_payment_webhook(store, tx_ref or trx_ref, payment_status)
    if booking is None:
        return WebhookResponse()
    return WebhookResponse(booking=BookingSummary.model_validate(booking))


@router.get("/receipt", response_model=ReceiptResponse, response_model_exclude_none=True)
@limiter.limit(get_rate_limit("receipt"))
def payment_receipt(
    request: Request,
    ref: Optional[str] = Query(None),
    store: BookingStore = Depends(get_booking_store),
    gateway: ChapaClient = Depends(get_chapa_client),
    app_settings: Settings = Depends(get_settings),
):
    """Outcome for the page the customer returns to after checkout."""
    result = resolve_return_page(store, gateway, ref, timeout=app_settings.chapa_return_timeout_seconds)
    return ReceiptResponse(
        status=result.status,
        verified=result.verified,
        message=result.message,
        booking=BookingSummary.model_validate(result.booking) if result.booking else None,
    )
