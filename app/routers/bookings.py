from fastapi import APIRouter, Depends, Query, Request, Response, status
from typing import List, Optional

from ..config import Settings, get_settings
from ..exceptions import BookingNotFoundError, ValidationError
from ..schemas.booking import (
    AvailableSlotsResponse, BookingCreate, BookingResponse, BookingUpdate,
    TimeSlotResponse
)
from ..services.availability import available_slots
from ..services.booking_intake import (
    check_opening_hours, create_pending_booking, normalize_time, parse_date
)
from ..services.booking_store import BookingStore, get_booking_store
from ..utils.dependencies import require_admin
from ..utils.logging_config import get_logger
from ..utils.rate_limiter import get_rate_limit, limiter

logger = get_logger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])

# Columns that may be cleared through PUT
NULLABLE_FIELDS = {"email"}


@router.get("", response_model=List[BookingResponse])
@router.get("/", response_model=List[BookingResponse])
@limiter.limit(get_rate_limit("booking_list"))
def list_bookings(
    request: Request,
    phone: Optional[str] = Query(None, description="Only bookings for this phone number"),
    store: BookingStore = Depends(get_booking_store),
):
    """All bookings, or the ones made with ``phone``."""
    if phone:
        return store.find_by_phone(phone.strip())
    return store.list_all()


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("booking_create"))
def create_booking(
    request: Request,
    booking_data: BookingCreate,
    store: BookingStore = Depends(get_booking_store),
    app_settings: Settings = Depends(get_settings),
):
    """Book a slot without paying. The booking stays Pending."""
    return create_pending_booking(store, booking_data, app_settings)


@router.get("/available-slots", response_model=AvailableSlotsResponse)
@limiter.limit(get_rate_limit("available_slots"))
def get_available_slots(
    request: Request,
    response: Response,
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    store: BookingStore = Depends(get_booking_store),
    app_settings: Settings = Depends(get_settings),
):
    """
    Free slots for a date.

    When the store cannot be read every slot is returned and the response is
    flagged ``degraded`` (also in the ``X-Availability-Degraded`` header).
    """
    if not date:
        raise ValidationError("Date is required")

    availability = available_slots(store, parse_date(date), app_settings)
    if availability.degraded:
        response.headers["X-Availability-Degraded"] = "true"

    return AvailableSlotsResponse(
        date=availability.date,
        slots=[TimeSlotResponse(time24=s.time24, time12=s.time12) for s in availability.slots],
        degraded=availability.degraded,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(booking_id: str, store: BookingStore = Depends(get_booking_store)):
    booking = store.get(booking_id)
    if booking is None:
        raise BookingNotFoundError()
    return booking


@router.put("/{booking_id}", response_model=BookingResponse, dependencies=[Depends(require_admin)])
@limiter.limit(get_rate_limit("booking_update"))
def update_booking(
    request: Request,
    booking_id: str,
    booking_data: BookingUpdate,
    store: BookingStore = Depends(get_booking_store),
    app_settings: Settings = Depends(get_settings),
):
    """
    Edit a booking (shop staff).

    A moved booking must still fall inside opening hours; moving a Paid or
    Completed booking onto an occupied slot fails with the slot-taken error.
    """
    changes = {
        key: value
        for key, value in booking_data.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_FIELDS
    }

    if "time" in changes:
        changes["time"] = normalize_time(changes["time"])
        check_opening_hours(changes["time"], app_settings)

    current = store.get(booking_id)
    if current is None:
        raise BookingNotFoundError()

    booking = store.update(booking_id, changes)
    if booking is None:
        raise BookingNotFoundError()

    if current.status != booking.status or current.payment_status != booking.payment_status:
        logger.booking_status_changed(
            booking_id,
            f"{current.status}/{current.payment_status}",
            f"{booking.status}/{booking.payment_status}",
            "admin",
        )
    return booking


@router.delete("/{booking_id}", dependencies=[Depends(require_admin)])
@limiter.limit(get_rate_limit("booking_delete"))
def delete_booking(
    request: Request,
    booking_id: str,
    store: BookingStore = Depends(get_booking_store),
):
    if not store.delete(booking_id):
        raise BookingNotFoundError()
    logger.info(f"Booking deleted: {booking_id}")
    return {"success": True}
