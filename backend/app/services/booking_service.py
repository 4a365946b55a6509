"""
Booking service: the ticket inventory transactions.

CONCURRENCY STRATEGY: Pessimistic Row Lock
==========================================

Problem:
  Two users try to book the last ticket simultaneously.
  Both read remaining_tickets=1, both decrement, both succeed.
  Result: Oversell. The same race lets one user double-book an event.

Solution:
  Every booking runs as one transaction that starts by locking the event row:

  1. SELECT ... FROM events WHERE id = :event_id FOR UPDATE
  2. remaining_tickets <= 0                      -> NoTicketsAvailable
  3. CONFIRMED booking for (user, event) exists  -> AlreadyBooked
  4. INSERT booking, UPDATE events SET remaining_tickets = remaining_tickets - 1
  5. COMMIT

  The lock turns concurrent requests for one event into a queue. Because the
  duplicate check in step 3 also runs under the lock, two requests from the
  same user cannot both pass it. Any exception inside the block rolls the
  whole unit back, so failures never leave a partial decrement or an orphan
  booking row.

  Lock waits are bounded (BOOKING_LOCK_TIMEOUT_SECONDS). A lock timeout,
  deadlock or serialization failure is treated as contention and the whole
  transaction is retried up to BOOKING_MAX_RETRIES times. If contention
  persists the caller gets NoTicketsAvailable flagged retryable: someone else
  may have taken the last ticket.

  Cancellation locks the booking, then its event, flips the status and gives
  the ticket back in one transaction.

Alternatives considered:
  - Optimistic version column with compare-and-swap: needs a retry loop on
    every conflict and does not serialize the duplicate-booking check.
  - In-process mutex: useless across several API processes.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass

from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager

from app.models.event import Event
from app.models.booking import Booking, BookingStatus
from app.core.config import get_settings
from app.core.exceptions import (
    AppError,
    AlreadyBooked,
    AlreadyCancelled,
    BookingNotFound,
    EventNotFound,
    Forbidden,
    NoTicketsAvailable,
    StorageError,
    TransactionConflict,
)
from app.core.logging import get_logger
from app.core.metrics import (
    booking_latency,
    record_booking_attempt,
    record_cancellation_attempt,
    record_db_retry,
)

logger = get_logger(__name__)

# PostgreSQL SQLSTATEs that mean "lost a race, try again"
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
LOCK_NOT_AVAILABLE = "55P03"
CONTENTION_SQLSTATES = {SERIALIZATION_FAILURE, DEADLOCK_DETECTED, LOCK_NOT_AVAILABLE}
UNIQUE_VIOLATION = "23505"

BOOKING_OUTCOMES = {
    EventNotFound: "event_not_found",
    NoTicketsAvailable: "no_tickets",
    AlreadyBooked: "already_booked",
}

CANCELLATION_OUTCOMES = {
    BookingNotFound: "not_found",
    Forbidden: "forbidden",
    AlreadyCancelled: "already_cancelled",
}


@dataclass
class BookingResult:
    booking: Booking
    event: Event


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return code
    return None


def is_contention_error(exc: DBAPIError) -> bool:
    """True for lock timeouts, deadlocks and serialization failures."""
    if isinstance(exc, IntegrityError):
        return False
    if _sqlstate(exc) in CONTENTION_SQLSTATES:
        return True
    # sqlite3 reports busy-timeout expiry as a plain OperationalError
    message = str(exc.orig).lower()
    return "database is locked" in message or "database table is locked" in message


def is_unique_violation(exc: IntegrityError) -> bool:
    if _sqlstate(exc) == UNIQUE_VIOLATION:
        return True
    return "unique constraint failed" in str(exc.orig).lower()


async def _begin_locked_section(db: AsyncSession) -> None:
    """Bound the lock wait for the current transaction."""
    if db.get_bind().dialect.name == "postgresql":
        timeout_ms = int(get_settings().BOOKING_LOCK_TIMEOUT_SECONDS * 1000)
        # SET does not take bind parameters; the value is an int we built
        await db.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))


async def _lock_event(db: AsyncSession, event_id: uuid.UUID) -> Event | None:
    result = await db.execute(
        select(Event)
        .where(Event.id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _reserve_ticket(db: AsyncSession, user_id: uuid.UUID, event_id: uuid.UUID) -> BookingResult:
    async with db.begin():
        await _begin_locked_section(db)

        event = await _lock_event(db, event_id)
        if event is None:
            raise EventNotFound()

        if event.remaining_tickets <= 0:
            raise NoTicketsAvailable()

        existing = await db.execute(
            select(Booking.id)
            .where(
                Booking.user_id == user_id,
                Booking.event_id == event_id,
                Booking.status == BookingStatus.CONFIRMED.value,
            )
            .limit(1)
        )
        if existing.scalar_one_or_none() is not None:
            raise AlreadyBooked()

        booking = Booking(
            user_id=user_id,
            event_id=event_id,
            status=BookingStatus.CONFIRMED.value,
        )
        db.add(booking)
        event.remaining_tickets = event.remaining_tickets - 1
        await db.flush()

    return BookingResult(booking=booking, event=event)


async def _release_ticket(db: AsyncSession, user_id: uuid.UUID, booking_id: uuid.UUID) -> Booking:
    async with db.begin():
        await _begin_locked_section(db)

        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            raise BookingNotFound()

        if booking.user_id != user_id:
            raise Forbidden()

        if booking.status == BookingStatus.CANCELLED.value:
            raise AlreadyCancelled()

        event = await _lock_event(db, booking.event_id)
        if event is None:
            # FK makes this unreachable unless the schema was tampered with
            raise StorageError()

        booking.status = BookingStatus.CANCELLED.value
        event.remaining_tickets = event.remaining_tickets + 1
        await db.flush()

    return booking


async def create_booking(db: AsyncSession, user_id: uuid.UUID, event_id: uuid.UUID) -> BookingResult:
    """
    Book one ticket for `user_id` on `event_id`.

    Raises EventNotFound, NoTicketsAvailable or AlreadyBooked. Storage
    contention is retried; persistent contention surfaces as a retryable
    NoTicketsAvailable. Unexpected storage failures become StorageError.
    """
    settings = get_settings()
    started = time.perf_counter()

    try:
        for attempt in range(1, settings.BOOKING_MAX_RETRIES + 1):
            try:
                result = await _reserve_ticket(db, user_id, event_id)
            except AppError as exc:
                outcome = BOOKING_OUTCOMES.get(type(exc), "error")
                record_booking_attempt(outcome)
                logger.info(
                    "booking_rejected",
                    user_id=str(user_id),
                    event_id=str(event_id),
                    reason=exc.code,
                    attempt=attempt,
                )
                raise
            except IntegrityError as exc:
                if is_unique_violation(exc):
                    record_booking_attempt("already_booked")
                    logger.warning("booking_duplicate_blocked_by_index", user_id=str(user_id), event_id=str(event_id))
                    raise AlreadyBooked() from exc
                record_booking_attempt("error")
                logger.exception("booking_failed_integrity", user_id=str(user_id), event_id=str(event_id))
                raise StorageError() from exc
            except DBAPIError as exc:
                if not is_contention_error(exc):
                    record_booking_attempt("error")
                    logger.exception("booking_failed_storage", user_id=str(user_id), event_id=str(event_id))
                    raise StorageError() from exc

                record_db_retry("create_booking")
                logger.info(
                    "booking_retry",
                    user_id=str(user_id),
                    event_id=str(event_id),
                    attempt=attempt,
                    reason="lock_contention",
                )
                if attempt == settings.BOOKING_MAX_RETRIES:
                    record_booking_attempt("contention")
                    logger.warning(
                        "booking_contention_exhausted",
                        user_id=str(user_id),
                        event_id=str(event_id),
                        attempts=attempt,
                    )
                    raise NoTicketsAvailable(retryable=True) from exc
                await asyncio.sleep(settings.BOOKING_RETRY_BACKOFF_SECONDS * attempt)
                continue

            record_booking_attempt("confirmed")
            logger.info(
                "booking_created",
                booking_id=str(result.booking.id),
                user_id=str(user_id),
                event_id=str(event_id),
                remaining_tickets=result.event.remaining_tickets,
                attempt=attempt,
            )
            return result
    finally:
        booking_latency.observe(time.perf_counter() - started)

    # BOOKING_MAX_RETRIES < 1
    raise StorageError()


async def cancel_booking(db: AsyncSession, user_id: uuid.UUID, booking_id: uuid.UUID) -> Booking:
    """
    Cancel a confirmed booking and return its ticket to the event.

    Raises BookingNotFound, Forbidden or AlreadyCancelled. Persistent lock
    contention surfaces as TransactionConflict.
    """
    settings = get_settings()

    for attempt in range(1, settings.BOOKING_MAX_RETRIES + 1):
        try:
            booking = await _release_ticket(db, user_id, booking_id)
        except AppError as exc:
            record_cancellation_attempt(CANCELLATION_OUTCOMES.get(type(exc), "error"))
            logger.info(
                "cancellation_rejected",
                user_id=str(user_id),
                booking_id=str(booking_id),
                reason=exc.code,
            )
            raise
        except DBAPIError as exc:
            if not is_contention_error(exc):
                record_cancellation_attempt("error")
                logger.exception("cancellation_failed_storage", user_id=str(user_id), booking_id=str(booking_id))
                raise StorageError() from exc

            record_db_retry("cancel_booking")
            logger.info("cancellation_retry", booking_id=str(booking_id), attempt=attempt)
            if attempt == settings.BOOKING_MAX_RETRIES:
                record_cancellation_attempt("contention")
                raise TransactionConflict() from exc
            await asyncio.sleep(settings.BOOKING_RETRY_BACKOFF_SECONDS * attempt)
            continue

        record_cancellation_attempt("cancelled")
        logger.info(
            "booking_cancelled",
            booking_id=str(booking.id),
            user_id=str(user_id),
            event_id=str(booking.event_id),
        )
        return booking

    raise StorageError()


async def get_user_bookings(db: AsyncSession, user_id: uuid.UUID) -> list[Booking]:
    """Confirmed bookings of a user, newest first, with their event loaded."""
    result = await db.execute(
        select(Booking)
        .join(Booking.event)
        .options(contains_eager(Booking.event))
        .where(
            Booking.user_id == user_id,
            Booking.status == BookingStatus.CONFIRMED.value,
        )
        .order_by(Booking.created_at.desc())
    )
    return list(result.scalars().all())
