"""
Event endpoints with Redis caching on list operations.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.event import EventResponse, EventListResponse, EventListMeta, SortField, SortOrder
from app.services.event_service import get_event, list_events, MAX_PAGE_SIZE
from app.services.cache_service import get_cached_events, set_cached_events, make_event_list_key
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    search: Optional[str] = Query(None, max_length=255),
    sort_by: SortField = Query("date", alias="sortBy"),
    sort_order: SortOrder = Query("asc", alias="sortOrder"),
    db: AsyncSession = Depends(get_db),
):
    """
    List events with pagination, title search and sorting.
    Results are cached in Redis; bookings and cancellations invalidate the cache.
    """
    key = make_event_list_key(page, limit, search, sort_by, sort_order)
    cached = await get_cached_events(key)
    if cached:
        logger.info("events_list_cache_hit", page=page)
        cached["cached"] = True
        return EventListResponse.model_validate(cached)

    events, meta = await list_events(db, page, limit, search, sort_by, sort_order)
    response = EventListResponse(
        data=[EventResponse.model_validate(e) for e in events],
        meta=EventListMeta(**meta),
    )

    await set_cached_events(key, response.model_dump(mode="json"))
    return response


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get a single event by ID. Not cached (needs real-time ticket counts)."""
    return await get_event(db, event_id)
