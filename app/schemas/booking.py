from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
import datetime as dt
from decimal import Decimal
import re

from ..models.booking import BookingStatus, PaymentStatus


def sanitize_text(v):
    """Strip script tags and inline event handlers from free text."""
    if isinstance(v, str):
        v = re.sub(r'<script[^>]*>.*?</script>', '', v, flags=re.IGNORECASE | re.DOTALL)
        v = re.sub(r'on\w+\s*=', '', v, flags=re.IGNORECASE)
    return v


class BookingCreate(BaseModel):
    # Presence is checked by booking intake so the caller gets
    # "All fields are required" rather than a schema error.
    name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=255)
    service: Optional[str] = Field(None, max_length=100)
    date: Optional[str] = Field(None, max_length=10, description="YYYY-MM-DD")
    time: Optional[str] = Field(None, max_length=8, description="HH:MM, 24-hour")

    @field_validator('name', 'service', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return sanitize_text(v)


class BookingPaymentCreate(BookingCreate):
    amount: Optional[Decimal] = None


class ExistingBookingPayment(BaseModel):
    amount: Optional[Decimal] = None


class BookingUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, min_length=1, max_length=20)
    email: Optional[str] = Field(None, max_length=255)
    service: Optional[str] = Field(None, min_length=1, max_length=100)
    date: Optional[dt.date] = None
    time: Optional[str] = Field(None, max_length=8)
    status: Optional[BookingStatus] = None
    payment_status: Optional[PaymentStatus] = None
    amount: Optional[Decimal] = Field(None, ge=0)

    @field_validator('name', 'service', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return sanitize_text(v)


class BookingResponse(BaseModel):
    booking_id: str
    name: str
    phone: str
    email: Optional[str] = None
    service: str
    date: dt.date
    time: str
    status: BookingStatus
    payment_status: PaymentStatus
    payment_reference: Optional[str] = None
    amount: float = 0
    created_at: dt.datetime
    updated_at: dt.datetime

    class Config:
        from_attributes = True


class BookingSummary(BaseModel):
    """Booking details shown on the receipt."""
    booking_id: str
    name: str
    service: str
    date: dt.date
    time: str
    amount: float
    phone: Optional[str] = None

    class Config:
        from_attributes = True


class TimeSlotResponse(BaseModel):
    time24: str
    time12: str

    class Config:
        from_attributes = True


class AvailableSlotsResponse(BaseModel):
    date: dt.date
    slots: List[TimeSlotResponse]
    degraded: bool = False
