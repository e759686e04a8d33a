"""
Event model. Inventory lives on ticket types, not on the event itself.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from boxoffice.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(2000), nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    location = Column(String(255), nullable=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    organizer = relationship("User", back_populates="events", lazy="noload")
    ticket_types = relationship("TicketType", back_populates="event", lazy="noload")

    __table_args__ = (
        Index("ix_events_starts_at", "starts_at"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title})>"
