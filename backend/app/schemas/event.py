"""
Pydantic schemas for event-related request/response validation.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from app.schemas.base import CamelModel

SortField = Literal["date", "price", "title"]
SortOrder = Literal["asc", "desc"]


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    date: datetime
    venue: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    total_tickets: int = Field(..., gt=0, le=100000)


class EventResponse(CamelModel):
    id: uuid.UUID
    title: str
    description: Optional[str]
    date: datetime
    venue: str
    total_tickets: int
    remaining_tickets: int
    price: float
    created_at: datetime
    updated_at: datetime


class EventListMeta(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int


class EventListResponse(CamelModel):
    data: list[EventResponse]
    meta: EventListMeta
    cached: bool = False
