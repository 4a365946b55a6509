from app.schemas.user import UserCreate, UserLogin, UserResponse, RefreshRequest, AuthResponse
from app.schemas.event import EventCreate, EventResponse, EventListResponse
from app.schemas.booking import (
    BookingCreate,
    BookingResponse,
    BookingCreatedResponse,
    UserBookingResponse,
)

__all__ = [
    "UserCreate", "UserLogin", "UserResponse", "RefreshRequest", "AuthResponse",
    "EventCreate", "EventResponse", "EventListResponse",
    "BookingCreate", "BookingResponse", "BookingCreatedResponse", "UserBookingResponse",
]
