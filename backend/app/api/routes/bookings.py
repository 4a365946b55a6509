"""
Booking endpoints. The ticket inventory rules live in
app.services.booking_service; these handlers only resolve the caller and
shape the response.
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.booking import (
    BookedEventSummary,
    BookingCreate,
    BookingCreatedResponse,
    BookingResponse,
    UserBookingResponse,
)
from app.services.booking_service import create_booking, cancel_booking, get_user_bookings
from app.services.cache_service import invalidate_event_cache
from app.core.security import get_current_user_id

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post(
    "/",
    response_model=BookingCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"description": "Event not found"},
        409: {"description": "No tickets available or already booked"},
    },
)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Book one ticket for an event.

    The event row is locked for the duration of the transaction, so concurrent
    requests for the same event are granted one at a time and never oversell.
    """
    result = await create_booking(db, user_id, booking_data.event_id)
    await invalidate_event_cache()
    return BookingCreatedResponse(
        booking=BookingResponse.model_validate(result.booking),
        event=BookedEventSummary.model_validate(result.event),
    )


@router.get("/", response_model=list[UserBookingResponse])
async def list_user_bookings(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Confirmed bookings of the authenticated user, newest first."""
    return await get_user_bookings(db, user_id)


@router.delete(
    "/{booking_id}",
    response_model=BookingResponse,
    responses={
        403: {"description": "Booking belongs to another user"},
        404: {"description": "Booking not found"},
        409: {"description": "Booking is already cancelled"},
    },
)
async def cancel_booking_endpoint(
    booking_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a booking and return its ticket to the event."""
    booking = await cancel_booking(db, user_id, booking_id)
    await invalidate_event_cache()
    return booking
