"""
User model. Buyers may be registered accounts or guests created at checkout.
"""

from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint
from sqlalchemy.orm import relationship

from boxoffice.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    hashed_password = Column(String(255), nullable=True)  # guests have none
    role = Column(String(20), nullable=False, default="attendee")
    is_guest = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    events = relationship("Event", back_populates="organizer", lazy="noload")

    __table_args__ = (
        CheckConstraint("role IN ('attendee', 'organizer', 'admin')", name="check_user_role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
