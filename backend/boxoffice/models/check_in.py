"""
Append-only check-in audit log. Rows are only ever inserted.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey

from boxoffice.db.base import Base, utcnow


class CheckIn(Base):
    __tablename__ = "check_ins"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    checked_in_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    method = Column(String(20), nullable=False, default="qr")
    checked_in_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<CheckIn(ticket={self.ticket_id}, by={self.checked_in_by})>"
