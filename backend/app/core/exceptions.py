"""
Domain error taxonomy.

Services raise these instead of HTTPException so the booking engine can be
driven outside a request (seed script, tests) and every failure keeps a stable
identity: HTTP status + machine-checkable code. The handlers in
app.api.errors render them as {"message": ..., "code": ...}.
"""

from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"
    message: str = "Internal server error"
    retryable: bool = False

    def __init__(self, message: str | None = None, *, retryable: bool | None = None):
        if message is not None:
            self.message = message
        if retryable is not None:
            self.retryable = retryable
        super().__init__(self.message)


# Booking creation

class EventNotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "EVENT_NOT_FOUND"
    message = "Event not found"


class NoTicketsAvailable(AppError):
    """Inventory exhausted, or contention left availability indeterminate."""

    status_code = status.HTTP_409_CONFLICT
    code = "NO_TICKETS_AVAILABLE"
    message = "No tickets available"


class AlreadyBooked(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "ALREADY_BOOKED"
    message = "Already booked"


# Cancellation

class BookingNotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "BOOKING_NOT_FOUND"
    message = "Booking not found"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    message = "You can only cancel your own bookings"


class AlreadyCancelled(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "ALREADY_CANCELLED"
    message = "Booking is already cancelled"


class TransactionConflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "TRANSACTION_CONFLICT"
    message = "The resource is busy, please retry"
    retryable = True


# Identity

class EmailAlreadyRegistered(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "EMAIL_ALREADY_REGISTERED"
    message = "User with this email already exists"


class InvalidCredentials(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_CREDENTIALS"
    message = "Invalid credentials"


class InactiveAccount(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "ACCOUNT_INACTIVE"
    message = "Account is deactivated"


class InvalidToken(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_TOKEN"
    message = "Invalid or expired token"


# Storage

class StorageError(AppError):
    """Unexpected database failure. The original exception is chained, never rendered."""
