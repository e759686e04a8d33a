"""
Purchase model: one checkout attempt and its payment lifecycle.

Key design decisions:
- `payment_status` moves pending -> completed | failed through a guarded
  UPDATE (WHERE payment_status = 'pending'), so it transitions exactly once
- `payment_session_id` is unique; processor callbacks are correlated by it
- discount terms are snapshotted so later edits to a code never change a
  paid order
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Index, CheckConstraint

from boxoffice.db.base import Base, TimestampMixin


class Purchase(Base, TimestampMixin):
    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True, index=True)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    buyer_email = Column(String(255), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    ticket_type_id = Column(Integer, ForeignKey("ticket_types.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    fee = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)

    discount_code_id = Column(Integer, ForeignKey("discount_codes.id"), nullable=True)
    discount_type = Column(String(20), nullable=True)
    discount_value = Column(Numeric(10, 2), nullable=True)

    payment_status = Column(String(20), nullable=False, default="pending")
    payment_session_id = Column(String(255), nullable=True, unique=True)
    payment_ref = Column(String(255), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_purchase_quantity_positive"),
        CheckConstraint(
            "payment_status IN ('pending', 'completed', 'failed')",
            name="check_purchase_payment_status",
        ),
        # Sweeper query: pending purchases older than the TTL
        Index("ix_purchases_status_created", "payment_status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Purchase(id={self.id}, buyer={self.buyer_id}, status={self.payment_status})>"
