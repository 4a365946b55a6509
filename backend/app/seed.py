"""
Seed the database with demo users, events and bookings.

    python -m app.seed             # expects the schema from `alembic upgrade head`
    python -m app.seed --create    # create tables first (SQLite/dev)
    python -m app.seed --reset     # drop and recreate everything

"Limited Concert" is created with exactly 2 tickets for contention testing
(see locust/locustfile.py). Sample bookings go through the booking engine so
the inventory invariant holds from the start.
"""

import argparse
import asyncio
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select

from app.core.logging import setup_logging, get_logger
from app.db.base import Base
from app.db.session import AsyncSessionLocal, engine
from app.models import User, Event
from app.schemas.event import EventCreate
from app.core.security import hash_password
from app.services.booking_service import create_booking
from app.services.event_service import create_event
from app.services.cache_service import close_redis

logger = get_logger(__name__)

DEMO_PASSWORD = "Password123"

DEMO_USERS = [
    ("john.doe@example.com", "John Doe"),
    ("jane.smith@example.com", "Jane Smith"),
    ("mike.wilson@example.com", "Mike Wilson"),
]

DEMO_EVENTS = [
    EventCreate(
        title="Tech Conference 2025",
        description="Annual technology conference featuring the latest innovations in AI, blockchain, and cloud computing.",
        date=datetime(2025, 3, 15, 10, 0, tzinfo=timezone.utc),
        venue="Convention Center",
        total_tickets=100,
        price=Decimal("49.99"),
    ),
    EventCreate(
        title="Limited Concert",
        description="Exclusive concert with limited seating. First come, first served.",
        date=datetime(2025, 4, 20, 19, 0, tzinfo=timezone.utc),
        venue="Grand Theater",
        total_tickets=2,
        price=Decimal("89.99"),
    ),
    EventCreate(
        title="Business Summit",
        description="Network with industry leaders and learn about the latest business trends.",
        date=datetime(2025, 5, 10, 9, 0, tzinfo=timezone.utc),
        venue="Business Center",
        total_tickets=50,
        price=Decimal("129.99"),
    ),
    EventCreate(
        title="Art Exhibition",
        description="Contemporary art exhibition featuring local and international artists.",
        date=datetime(2025, 6, 1, 14, 0, tzinfo=timezone.utc),
        venue="Art Gallery",
        total_tickets=100,
        price=Decimal("25.00"),
    ),
    EventCreate(
        title="Food Festival",
        description="Taste cuisines from around the world at this annual food festival.",
        date=datetime(2025, 7, 15, 12, 0, tzinfo=timezone.utc),
        venue="City Park",
        total_tickets=200,
        price=Decimal("15.50"),
    ),
]

# (user index, event index)
DEMO_BOOKINGS = [(0, 0), (1, 0), (2, 2)]


async def seed(create: bool = False, reset: bool = False) -> None:
    if reset or create:
        async with engine.begin() as conn:
            if reset:
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        existing = (await db.execute(select(User.id).limit(1))).scalar_one_or_none()
        if existing is not None:
            logger.warning("seed_skipped", reason="database_not_empty")
            return

        users = [
            User(email=email, name=name, hashed_password=hash_password(DEMO_PASSWORD))
            for email, name in DEMO_USERS
        ]
        db.add_all(users)
        await db.commit()

    events: list[Event] = []
    for event_data in DEMO_EVENTS:
        async with AsyncSessionLocal() as db:
            events.append(await create_event(db, event_data))

    for user_index, event_index in DEMO_BOOKINGS:
        async with AsyncSessionLocal() as db:
            await create_booking(db, users[user_index].id, events[event_index].id)

    logger.info(
        "seed_completed",
        users=len(users),
        events=len(events),
        bookings=len(DEMO_BOOKINGS),
        contention_event=str(events[1].id),
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the ticket booking database")
    parser.add_argument("--create", action="store_true", help="create tables before seeding")
    parser.add_argument("--reset", action="store_true", help="drop and recreate tables before seeding")
    args = parser.parse_args()

    setup_logging()

    async def _run() -> None:
        try:
            await seed(create=args.create, reset=args.reset)
        finally:
            await close_redis()
            await engine.dispose()

    asyncio.run(_run())


if __name__ == "__main__":
    main()
