"""
TicketType model: one purchasable category with finite stock.

Key design decisions:
- `capacity_reserved` only moves through guarded UPDATE statements issued by
  the SQL store (never read-modify-write from application memory)
- `version` is bumped on every counter change so readers can detect that a
  snapshot is stale
- CHECK constraints are the final safety net against overselling
"""

from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from boxoffice.db.base import Base, TimestampMixin


class TicketType(Base, TimestampMixin):
    __tablename__ = "ticket_types"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    capacity_total = Column(Integer, nullable=False)
    capacity_reserved = Column(Integer, nullable=False, default=0)
    max_per_order = Column(Integer, nullable=False, default=10)
    sales_start = Column(DateTime(timezone=True), nullable=True)
    sales_end = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    event = relationship("Event", back_populates="ticket_types", lazy="noload")

    __table_args__ = (
        CheckConstraint("price >= 0", name="check_ticket_type_price_non_negative"),
        CheckConstraint("capacity_total >= 1", name="check_capacity_total_positive"),
        CheckConstraint("capacity_reserved >= 0", name="check_capacity_reserved_non_negative"),
        CheckConstraint("capacity_reserved <= capacity_total", name="check_reserved_lte_total"),
        CheckConstraint("max_per_order >= 1", name="check_max_per_order_positive"),
    )

    def __repr__(self) -> str:
        return f"<TicketType(id={self.id}, name={self.name}, reserved={self.capacity_reserved}/{self.capacity_total})>"
