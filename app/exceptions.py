"""
Error taxonomy for the booking and payment workflow.

Every error carries the HTTP status it maps to; the handlers registered in
``main.py`` render them as ``{"error": message}``.
"""

from fastapi import status


class BarbershopError(Exception):
    """Base class for errors that reach the API caller."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An unexpected error occurred."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BarbershopError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "All fields are required"


class OutOfHoursError(BarbershopError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bookings are only available from 2:00 AM to 2:00 PM"


class SlotTakenError(BarbershopError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "This time slot is already booked. Please choose another time."


class PaymentFailedError(BarbershopError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Payment verification failed"


class NotFoundError(BarbershopError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class BookingNotFoundError(NotFoundError):
    default_message = "Booking not found"


class GatewayError(BarbershopError):
    """The payment gateway rejected a call or could not be reached."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Failed to reach the payment gateway"

    def __init__(self, message: str = None, gateway_status: int = None):
        super().__init__(message)
        self.gateway_status = gateway_status


class GatewayTimeoutError(GatewayError):
    default_message = "Payment verification timeout - please check your booking status later"


class StoreUnavailableError(BarbershopError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Booking store unavailable"


class InternalError(BarbershopError):
    pass


class UnauthorizedError(BarbershopError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"
