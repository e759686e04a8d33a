"""
Ticket model: one redeemable admission unit.

Key design decisions:
- Unique (purchase_id, sequence_index) makes issuance exactly-once: a
  duplicate webhook can only ever re-insert an index that already exists
- Unique ticket_number, drawn from a CSPRNG
- status moves valid -> used through a guarded UPDATE so two scanners
  cannot both redeem the same ticket
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint, CheckConstraint

from boxoffice.db.base import Base, TimestampMixin


class Ticket(Base, TimestampMixin):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    ticket_number = Column(String(32), unique=True, index=True, nullable=False)
    purchase_id = Column(Integer, ForeignKey("purchases.id"), nullable=False, index=True)
    sequence_index = Column(Integer, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    ticket_type_id = Column(Integer, ForeignKey("ticket_types.id"), nullable=False)
    status = Column(String(20), nullable=False, default="valid")
    validation_payload = Column(Text, nullable=False)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)
    checked_in_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    __table_args__ = (
        UniqueConstraint("purchase_id", "sequence_index", name="uq_ticket_purchase_sequence"),
        CheckConstraint("sequence_index >= 0", name="check_ticket_sequence_non_negative"),
        CheckConstraint("status IN ('valid', 'used', 'cancelled')", name="check_ticket_status"),
    )

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, number={self.ticket_number}, status={self.status})>"
