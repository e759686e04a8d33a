"""
DiscountCode model. Codes are stored upper-cased; `current_uses` is a guarded
counter with the same discipline as ticket-type capacity.
"""

from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, ForeignKey, CheckConstraint

from boxoffice.db.base import Base, TimestampMixin


class DiscountCode(Base, TimestampMixin):
    __tablename__ = "discount_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), unique=True, index=True, nullable=False)
    discount_type = Column(String(20), nullable=False)  # percentage, fixed
    discount_value = Column(Numeric(10, 2), nullable=False)
    max_uses = Column(Integer, nullable=True)  # NULL = unlimited
    current_uses = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=True, index=True)

    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("discount_type IN ('percentage', 'fixed')", name="check_discount_type"),
        CheckConstraint("discount_value >= 0", name="check_discount_value_non_negative"),
        CheckConstraint("current_uses >= 0", name="check_current_uses_non_negative"),
        CheckConstraint("max_uses IS NULL OR current_uses <= max_uses", name="check_uses_lte_max"),
    )

    def __repr__(self) -> str:
        return f"<DiscountCode(id={self.id}, code={self.code}, uses={self.current_uses}/{self.max_uses})>"
