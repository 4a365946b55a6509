"""
Tests for the booking engine's failure handling: contention retries,
storage-error containment and rollback on every failure path.
"""

import sqlite3
import uuid
from contextlib import asynccontextmanager

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, InvalidRequestError, OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.core.config import get_settings
from app.db.session import build_engine
from app.models.event import Event
from app.core.exceptions import (
    AlreadyBooked,
    EventNotFound,
    NoTicketsAvailable,
    StorageError,
    TransactionConflict,
)
from app.services import booking_service
from app.services.booking_service import (
    cancel_booking,
    create_booking,
    is_contention_error,
    is_unique_violation,
)


class FakePgError(Exception):
    def __init__(self, sqlstate: str):
        super().__init__(f"pg error {sqlstate}")
        self.sqlstate = sqlstate


def _locked() -> OperationalError:
    return OperationalError("BEGIN IMMEDIATE", {}, sqlite3.OperationalError("database is locked"))


@pytest.mark.asyncio
@pytest.mark.parametrize("sqlstate", ["40001", "40P01", "55P03"])
async def test_postgres_contention_codes_are_retryable(sqlstate):
    assert is_contention_error(OperationalError("SELECT", {}, FakePgError(sqlstate)))


@pytest.mark.asyncio
async def test_sqlite_busy_is_contention():
    assert is_contention_error(_locked())


@pytest.mark.asyncio
async def test_other_errors_are_not_contention():
    assert not is_contention_error(ProgrammingError("SELECT", {}, FakePgError("42P01")))
    assert not is_contention_error(IntegrityError("INSERT", {}, FakePgError("23505")))


@pytest.mark.asyncio
async def test_unique_violation_detection():
    assert is_unique_violation(IntegrityError("INSERT", {}, FakePgError("23505")))
    assert is_unique_violation(
        IntegrityError("INSERT", {}, sqlite3.IntegrityError("UNIQUE constraint failed: bookings.user_id, bookings.event_id"))
    )
    assert not is_unique_violation(
        IntegrityError("INSERT", {}, sqlite3.IntegrityError("CHECK constraint failed: check_booking_status"))
    )


@pytest.mark.asyncio
async def test_contention_is_retried_then_succeeds(monkeypatch, db_session, test_user, test_event):
    """A transient lock timeout is retried and the booking goes through."""
    real_reserve = booking_service._reserve_ticket
    calls = {"n": 0}

    async def flaky_reserve(db, user_id, event_id):
        calls["n"] += 1
        if calls["n"] == 1:
            raise _locked()
        return await real_reserve(db, user_id, event_id)

    monkeypatch.setattr(booking_service, "_reserve_ticket", flaky_reserve)

    result = await create_booking(db_session, test_user.id, test_event.id)

    assert calls["n"] == 2
    assert result.event.remaining_tickets == 99


@pytest.mark.asyncio
async def test_persistent_contention_reports_no_tickets(monkeypatch, db_session, test_user, test_event, fetch_event):
    """Exhausted retries surface as a retryable NoTicketsAvailable, nothing written."""
    calls = {"n": 0}

    async def always_locked(db, user_id, event_id):
        calls["n"] += 1
        raise _locked()

    monkeypatch.setattr(booking_service, "_reserve_ticket", always_locked)

    with pytest.raises(NoTicketsAvailable) as exc_info:
        await create_booking(db_session, test_user.id, test_event.id)

    assert exc_info.value.retryable is True
    assert calls["n"] == get_settings().BOOKING_MAX_RETRIES
    assert (await fetch_event(test_event.id)).remaining_tickets == 100


@pytest.mark.asyncio
async def test_persistent_contention_over_http(monkeypatch, client: AsyncClient, auth_headers, test_event):
    async def always_locked(db, user_id, event_id):
        raise _locked()

    monkeypatch.setattr(booking_service, "_reserve_ticket", always_locked)

    response = await client.post("/api/v1/bookings/", json={"eventId": str(test_event.id)}, headers=auth_headers)
    assert response.status_code == 409
    assert response.json()["message"] == "No tickets available"
    assert response.headers["Retry-After"] == "1"


@pytest.mark.asyncio
async def test_unexpected_storage_error_is_not_leaked(monkeypatch, client: AsyncClient, auth_headers, test_event):
    """Raw database text never reaches the client."""

    async def broken(db, user_id, event_id):
        raise ProgrammingError("SELECT", {}, FakePgError("42P01"))

    monkeypatch.setattr(booking_service, "_reserve_ticket", broken)

    response = await client.post("/api/v1/bookings/", json={"eventId": str(test_event.id)}, headers=auth_headers)
    assert response.status_code == 500
    assert response.json() == {"message": "Internal server error", "code": "INTERNAL_ERROR"}
    assert "42P01" not in response.text


@pytest.mark.asyncio
async def test_failure_after_writes_rolls_back(monkeypatch, db_session, test_user, test_event, fetch_event, booking_count):
    """An error after the insert and decrement were flushed leaves no trace."""
    real_flush = db_session.flush

    async def flush_then_fail(*args, **kwargs):
        await real_flush(*args, **kwargs)
        raise ProgrammingError("UPDATE events", {}, FakePgError("XX000"))

    monkeypatch.setattr(db_session, "flush", flush_then_fail)

    with pytest.raises(StorageError):
        await create_booking(db_session, test_user.id, test_event.id)

    assert (await fetch_event(test_event.id)).remaining_tickets == 100
    assert await booking_count(test_event.id) == 0


@pytest.mark.asyncio
async def test_unique_index_backstop_maps_to_already_booked(monkeypatch, db_session, test_user, test_event):
    async def racing_insert(db, user_id, event_id):
        raise IntegrityError("INSERT", {}, FakePgError("23505"))

    monkeypatch.setattr(booking_service, "_reserve_ticket", racing_insert)

    with pytest.raises(AlreadyBooked):
        await create_booking(db_session, test_user.id, test_event.id)


@pytest.mark.asyncio
async def test_domain_errors_are_not_retried(session_factory, test_user, sold_out_event):
    async with session_factory() as session:
        with pytest.raises(NoTicketsAvailable) as exc_info:
            await create_booking(session, test_user.id, sold_out_event.id)
    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_missing_event(session_factory, test_user):
    async with session_factory() as session:
        with pytest.raises(EventNotFound):
            await create_booking(session, test_user.id, uuid.uuid4())


@pytest.mark.asyncio
async def test_cancellation_contention_reports_conflict(monkeypatch, session_factory, test_user, test_event, fetch_event):
    async with session_factory() as session:
        booking = (await create_booking(session, test_user.id, test_event.id)).booking

    async def always_locked(db, user_id, booking_id):
        raise _locked()

    monkeypatch.setattr(booking_service, "_release_ticket", always_locked)

    async with session_factory() as session:
        with pytest.raises(TransactionConflict) as exc_info:
            await cancel_booking(session, test_user.id, booking.id)

    assert exc_info.value.retryable is True
    assert (await fetch_event(test_event.id)).remaining_tickets == 99


@pytest.mark.asyncio
async def test_session_is_reusable_after_rejection(session_factory, test_user, test_event, fetch_event):
    """A rejected attempt rolls back cleanly; the same session keeps working."""
    async with session_factory() as session:
        first_id = (await create_booking(session, test_user.id, test_event.id)).booking.id
        with pytest.raises(AlreadyBooked):
            await create_booking(session, test_user.id, test_event.id)

        await cancel_booking(session, test_user.id, first_id)
        second = await create_booking(session, test_user.id, test_event.id)

    assert second.booking.id != first_id
    assert (await fetch_event(test_event.id)).remaining_tickets == 99


@asynccontextmanager
async def holding_event_lock(event_id):
    """Keep the event row locked (the whole database on SQLite) from another connection."""
    engine = build_engine(get_settings().DATABASE_URL, poolclass=NullPool)
    try:
        async with engine.connect() as conn:
            await conn.begin()
            await conn.execute(select(Event.id).where(Event.id == event_id).with_for_update())
            yield
            await conn.rollback()
    finally:
        await engine.dispose()


@pytest.fixture
def short_lock_engine(monkeypatch):
    """Engine whose lock waits give up after 0.2s."""
    monkeypatch.setattr(get_settings(), "BOOKING_LOCK_TIMEOUT_SECONDS", 0.2)
    return build_engine(get_settings().DATABASE_URL, poolclass=NullPool)


@pytest.mark.asyncio
async def test_lock_wait_timeout_aborts_booking(
    short_lock_engine, test_user, test_event, fetch_event, booking_count
):
    """A booking that cannot get the lock in time changes nothing and asks the caller to retry."""
    sessions = async_sessionmaker(short_lock_engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with holding_event_lock(test_event.id):
            async with sessions() as session:
                with pytest.raises(NoTicketsAvailable) as exc_info:
                    await create_booking(session, test_user.id, test_event.id)
    finally:
        await short_lock_engine.dispose()

    assert exc_info.value.retryable is True
    assert isinstance(exc_info.value.__cause__, OperationalError)
    assert is_contention_error(exc_info.value.__cause__)
    assert (await fetch_event(test_event.id)).remaining_tickets == 100
    assert await booking_count(test_event.id) == 0


@pytest.mark.asyncio
async def test_lock_wait_timeout_aborts_cancellation(
    short_lock_engine, session_factory, test_user, test_event, fetch_event, booking_count
):
    async with session_factory() as session:
        booking_id = (await create_booking(session, test_user.id, test_event.id)).booking.id

    sessions = async_sessionmaker(short_lock_engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with holding_event_lock(test_event.id):
            async with sessions() as session:
                with pytest.raises(TransactionConflict):
                    await cancel_booking(session, test_user.id, booking_id)
    finally:
        await short_lock_engine.dispose()

    assert (await fetch_event(test_event.id)).remaining_tickets == 99
    assert await booking_count(test_event.id, status="CONFIRMED") == 1


@pytest.mark.asyncio
async def test_booking_succeeds_once_lock_is_released(short_lock_engine, test_user, test_event, fetch_event):
    sessions = async_sessionmaker(short_lock_engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with holding_event_lock(test_event.id):
            pass
        async with sessions() as session:
            result = await create_booking(session, test_user.id, test_event.id)
    finally:
        await short_lock_engine.dispose()

    assert result.event.remaining_tickets == 99
    assert (await fetch_event(test_event.id)).remaining_tickets == 99


@pytest.mark.asyncio
async def test_relationships_are_never_loaded_implicitly(session_factory, test_user, test_event):
    async with session_factory() as session:
        result = await create_booking(session, test_user.id, test_event.id)

        with pytest.raises(InvalidRequestError):
            result.booking.event
        with pytest.raises(InvalidRequestError):
            result.event.bookings
