"""
Event service: catalogue reads and administrative creation.

Nothing here writes `remaining_tickets` after creation; that belongs to
app.services.booking_service.
"""

import math
import uuid

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.event import Event
from app.schemas.event import EventCreate
from app.core.exceptions import EventNotFound
from app.services.cache_service import invalidate_event_cache
from app.core.logging import get_logger

logger = get_logger(__name__)

MAX_PAGE_SIZE = 50

SORT_COLUMNS = {
    "date": Event.date,
    "price": Event.price,
    "title": Event.title,
}


async def create_event(db: AsyncSession, event_data: EventCreate) -> Event:
    """Create a new event with every ticket available."""
    event = Event(
        title=event_data.title,
        description=event_data.description,
        date=event_data.date,
        venue=event_data.venue,
        price=event_data.price,
        total_tickets=event_data.total_tickets,
        remaining_tickets=event_data.total_tickets,
    )
    db.add(event)
    await db.commit()
    await invalidate_event_cache()

    logger.info("event_created", event_id=str(event.id), title=event.title, tickets=event.total_tickets)
    return event


async def get_event(db: AsyncSession, event_id: uuid.UUID) -> Event:
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if event is None:
        raise EventNotFound()
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    sort_by: str = "date",
    sort_order: str = "asc",
) -> tuple[list[Event], dict]:
    """
    List events with pagination, case-insensitive title search and sorting.
    Returns the page of events and the pagination meta block.
    """
    take = min(limit, MAX_PAGE_SIZE)
    query = select(Event)

    if search:
        query = query.where(Event.title.icontains(search, autoescape=True))

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar_one()

    sort_column = SORT_COLUMNS.get(sort_by, Event.date)
    ordering = sort_column.desc() if sort_order == "desc" else sort_column.asc()

    events_query = (
        query
        # id as tie-breaker keeps pages stable
        .order_by(ordering, Event.id.asc())
        .offset((page - 1) * take)
        .limit(take)
    )
    result = await db.execute(events_query)
    events = list(result.scalars().all())

    meta = {
        "total": total,
        "page": page,
        "limit": take,
        "total_pages": math.ceil(total / take) if total else 0,
    }
    return events, meta
