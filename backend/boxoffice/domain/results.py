"""Typed results returned by the core operations on success."""

from dataclasses import dataclass, field
from decimal import Decimal

from boxoffice.domain.records import CheckIn, DiscountType, Purchase, Ticket, TicketType


@dataclass(frozen=True)
class ReservationResult:
    """Stock claimed for one ticket type; `ticket_type` is the post-increment snapshot."""

    ticket_type: TicketType
    quantity: int

    @property
    def reserved_count(self) -> int:
        return self.ticket_type.capacity_reserved


@dataclass(frozen=True)
class DiscountSnapshot:
    """Discount terms frozen at consumption time."""

    discount_code_id: int
    code: str
    discount_type: DiscountType
    discount_value: Decimal


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    discount: Decimal
    fee: Decimal
    total: Decimal


@dataclass(frozen=True)
class IssuanceResult:
    tickets: list[Ticket]
    created: int = 0


@dataclass(frozen=True)
class CompletionResult:
    purchase: Purchase
    tickets: list[Ticket] = field(default_factory=list)
    already_processed: bool = False


@dataclass(frozen=True)
class CheckInResult:
    ticket: Ticket
    check_in: CheckIn
