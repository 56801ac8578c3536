from pydantic import BaseModel
from typing import Optional

from .booking import BookingSummary


class PaymentInitResponse(BaseModel):
    booking_id: str
    checkout_url: str
    tx_ref: str


class VerifyPaymentRequest(BaseModel):
    tx_ref: Optional[str] = None


class VerifyPaymentResponse(BaseModel):
    status: str = "success"
    message: str = "Payment verified successfully"
    booking: BookingSummary


class WebhookResponse(BaseModel):
    status: str = "processed"
    booking: Optional[BookingSummary] = None


class ReceiptResponse(BaseModel):
    """
    Return-page outcome.

    ``verified`` is False for ``presumed_success``: the gateway did not answer
    in time and the booking state was left for the webhook to settle.
    """
    status: str
    verified: bool
    message: str
    booking: Optional[BookingSummary] = None
