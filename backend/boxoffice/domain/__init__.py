"""
Domain records exchanged between the ticketing core and its stores.

These are pure, immutable snapshots with no persistence behaviour.
ORM tables live in boxoffice.models.
"""

from boxoffice.domain.records import (
    CheckIn,
    DiscountCode,
    DiscountType,
    EventRecord,
    NewCheckIn,
    NewPurchase,
    NewTicket,
    PaymentStatus,
    Purchase,
    Ticket,
    TicketStatus,
    TicketType,
)
from boxoffice.domain.results import (
    CheckInResult,
    CompletionResult,
    DiscountSnapshot,
    IssuanceResult,
    PriceBreakdown,
    ReservationResult,
)

__all__ = [
    "CheckIn",
    "CheckInResult",
    "CompletionResult",
    "DiscountCode",
    "DiscountSnapshot",
    "DiscountType",
    "EventRecord",
    "IssuanceResult",
    "NewCheckIn",
    "NewPurchase",
    "NewTicket",
    "PaymentStatus",
    "PriceBreakdown",
    "Purchase",
    "ReservationResult",
    "Ticket",
    "TicketStatus",
    "TicketType",
]
