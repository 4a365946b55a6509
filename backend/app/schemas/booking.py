"""
Pydantic schemas for booking-related request/response validation.
"""

import uuid
from datetime import datetime
from typing import Optional

from app.schemas.base import CamelModel


class BookingCreate(CamelModel):
    event_id: uuid.UUID


class BookingResponse(CamelModel):
    id: uuid.UUID
    event_id: uuid.UUID
    user_id: uuid.UUID
    status: str
    created_at: datetime


class BookedEventSummary(CamelModel):
    id: uuid.UUID
    title: str
    remaining_tickets: int


class BookingCreatedResponse(CamelModel):
    booking: BookingResponse
    event: BookedEventSummary


class BookingEventDetails(CamelModel):
    id: uuid.UUID
    title: str
    description: Optional[str]
    date: datetime
    venue: str
    price: float


class UserBookingResponse(BookingResponse):
    event: BookingEventDetails
