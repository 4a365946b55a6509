"""
Event model: the inventory store.

Key design decisions:
- `remaining_tickets` is the contended counter. Only the booking and
  cancellation transactions in app.services.booking_service write it, each
  while holding the row lock.
- CHECK constraints keep 0 <= remaining_tickets <= total_tickets even if a
  code path forgets the lock
- Index on `date` for the default listing sort
"""

import uuid

from sqlalchemy import Column, String, Integer, Numeric, DateTime, Uuid, Index, CheckConstraint
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(String(2000), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False)
    venue = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    total_tickets = Column(Integer, nullable=False)
    remaining_tickets = Column(Integer, nullable=False)

    bookings = relationship("Booking", back_populates="event", lazy="raise")

    __table_args__ = (
        CheckConstraint("total_tickets > 0", name="check_total_tickets_positive"),
        CheckConstraint("remaining_tickets >= 0", name="check_remaining_tickets_non_negative"),
        CheckConstraint("remaining_tickets <= total_tickets", name="check_remaining_lte_total"),
        CheckConstraint("price >= 0", name="check_price_non_negative"),
        Index("ix_events_date", "date"),
        Index("ix_events_title", "title"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, remaining={self.remaining_tickets}/{self.total_tickets})>"
