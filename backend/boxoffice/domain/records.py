"""Immutable snapshots of persisted rows."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class TicketStatus(str, Enum):
    VALID = "valid"
    USED = "used"
    CANCELLED = "cancelled"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class EventRecord:
    id: int
    title: str
    organizer_id: int
    starts_at: datetime


@dataclass(frozen=True)
class TicketType:
    id: int
    event_id: int
    name: str
    price: Decimal
    capacity_total: int
    capacity_reserved: int
    max_per_order: int
    is_active: bool
    version: int
    sales_start: Optional[datetime] = None
    sales_end: Optional[datetime] = None

    @property
    def available(self) -> int:
        return self.capacity_total - self.capacity_reserved


@dataclass(frozen=True)
class DiscountCode:
    id: int
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    max_uses: Optional[int]
    current_uses: int
    is_active: bool
    version: int
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    event_id: Optional[int] = None

    @property
    def exhausted(self) -> bool:
        return self.max_uses is not None and self.current_uses >= self.max_uses


@dataclass(frozen=True)
class NewPurchase:
    buyer_id: int
    buyer_email: str
    event_id: int
    ticket_type_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    discount: Decimal
    fee: Decimal
    total: Decimal
    currency: str
    discount_code_id: Optional[int] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None


@dataclass(frozen=True)
class Purchase:
    id: int
    buyer_id: int
    buyer_email: str
    event_id: int
    ticket_type_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    discount: Decimal
    fee: Decimal
    total: Decimal
    currency: str
    payment_status: PaymentStatus
    created_at: datetime
    discount_code_id: Optional[int] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None
    payment_session_id: Optional[str] = None
    payment_ref: Optional[str] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None


@dataclass(frozen=True)
class NewTicket:
    ticket_number: str
    purchase_id: int
    sequence_index: int
    owner_id: int
    event_id: int
    ticket_type_id: int
    validation_payload: str


@dataclass(frozen=True)
class Ticket:
    id: int
    ticket_number: str
    purchase_id: int
    sequence_index: int
    owner_id: int
    event_id: int
    ticket_type_id: int
    status: TicketStatus
    validation_payload: str
    created_at: datetime
    checked_in_at: Optional[datetime] = None
    checked_in_by: Optional[int] = None


@dataclass(frozen=True)
class NewCheckIn:
    ticket_id: int
    event_id: int
    checked_in_by: int
    method: str
    checked_in_at: datetime


@dataclass(frozen=True)
class CheckIn:
    id: int
    ticket_id: int
    event_id: int
    checked_in_by: int
    method: str
    checked_in_at: datetime
