"""
Domain error taxonomy for the ticketing core.

Every failure the core can report is a distinct exception class carrying
typed context, grouped by ErrorKind:

    NOT_FOUND     entity absent                                   -> 404
    CONFLICT      concurrency collision or state-machine violation -> 409
    INVALID       business-rule violation                         -> 400
    UNAUTHORIZED  ownership / role / signature checks             -> 403
    UPSTREAM      payment, email or storage collaborator failure  -> 502

Callers catch the specific class they care about (e.g. ``InsufficientStock``
to show remaining stock, ``AlreadyUsed`` to tell door staff when the ticket
was scanned) and let the rest bubble up to the API exception handler.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID = "invalid"
    UNAUTHORIZED = "unauthorized"
    UPSTREAM = "upstream"


class ErrorCode(Enum):
    TICKET_TYPE_NOT_FOUND = "TICKET_TYPE_NOT_FOUND"
    TICKET_TYPE_INACTIVE = "TICKET_TYPE_INACTIVE"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    ORDER_LIMIT_EXCEEDED = "ORDER_LIMIT_EXCEEDED"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    RESERVATION_FAILED = "RESERVATION_FAILED"

    DISCOUNT_NOT_FOUND = "DISCOUNT_NOT_FOUND"
    DISCOUNT_INACTIVE = "DISCOUNT_INACTIVE"
    DISCOUNT_WRONG_EVENT = "DISCOUNT_WRONG_EVENT"
    DISCOUNT_NOT_YET_VALID = "DISCOUNT_NOT_YET_VALID"
    DISCOUNT_EXPIRED = "DISCOUNT_EXPIRED"
    DISCOUNT_USAGE_LIMIT_REACHED = "DISCOUNT_USAGE_LIMIT_REACHED"
    DISCOUNT_UNAVAILABLE = "DISCOUNT_UNAVAILABLE"

    PURCHASE_NOT_FOUND = "PURCHASE_NOT_FOUND"
    RESERVATION_MISMATCH = "RESERVATION_MISMATCH"
    REFERENCE_MISMATCH = "REFERENCE_MISMATCH"
    PURCHASE_CLOSED = "PURCHASE_CLOSED"
    PURCHASE_NOT_COMPLETED = "PURCHASE_NOT_COMPLETED"
    PAYMENT_NOT_CONFIRMED = "PAYMENT_NOT_CONFIRMED"
    GUEST_DETAILS_REQUIRED = "GUEST_DETAILS_REQUIRED"

    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"
    TICKET_ALREADY_USED = "TICKET_ALREADY_USED"
    TICKET_NOT_VALID = "TICKET_NOT_VALID"
    INVALID_TICKET_PAYLOAD = "INVALID_TICKET_PAYLOAD"
    DUPLICATE_TICKET = "DUPLICATE_TICKET"

    NOT_EVENT_ORGANIZER = "NOT_EVENT_ORGANIZER"
    NOT_PURCHASE_OWNER = "NOT_PURCHASE_OWNER"
    INVALID_WEBHOOK_SIGNATURE = "INVALID_WEBHOOK_SIGNATURE"

    PAYMENT_PROVIDER_ERROR = "PAYMENT_PROVIDER_ERROR"


class DomainError(Exception):
    """Base domain error with a stable code and a user-safe message."""

    kind: ErrorKind = ErrorKind.INVALID
    code: ErrorCode

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        body = {"error": self.code.value, "detail": self.message}
        for key, value in self.context.items():
            body[key] = value.isoformat() if isinstance(value, datetime) else value
        return body


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

class TicketTypeNotFound(DomainError):
    kind = ErrorKind.NOT_FOUND
    code = ErrorCode.TICKET_TYPE_NOT_FOUND

    def __init__(self, ticket_type_id: int) -> None:
        super().__init__("Ticket type not found", ticket_type_id=ticket_type_id)
        self.ticket_type_id = ticket_type_id


class TicketTypeInactive(DomainError):
    """Inactive flag off, or the request falls outside the sales window."""

    code = ErrorCode.TICKET_TYPE_INACTIVE

    def __init__(self, ticket_type_id: int, reason: str = "Ticket type is not available") -> None:
        super().__init__(reason, ticket_type_id=ticket_type_id)
        self.ticket_type_id = ticket_type_id


class InsufficientStock(DomainError):
    code = ErrorCode.INSUFFICIENT_STOCK

    def __init__(self, ticket_type_id: int, requested: int, available: int) -> None:
        super().__init__(
            f"Only {available} tickets available",
            ticket_type_id=ticket_type_id,
            requested=requested,
            available=available,
        )
        self.requested = requested
        self.available = available


class OrderLimitExceeded(DomainError):
    code = ErrorCode.ORDER_LIMIT_EXCEEDED

    def __init__(self, requested: int, max_per_order: int) -> None:
        super().__init__(
            f"Maximum {max_per_order} tickets per order",
            requested=requested,
            max_per_order=max_per_order,
        )
        self.max_per_order = max_per_order


class InvalidQuantity(DomainError):
    code = ErrorCode.INVALID_QUANTITY

    def __init__(self, quantity: int) -> None:
        super().__init__("Quantity must be at least 1", quantity=quantity)


class ReservationFailed(DomainError):
    """Optimistic-concurrency retries exhausted."""

    kind = ErrorKind.CONFLICT
    code = ErrorCode.RESERVATION_FAILED

    def __init__(self, ticket_type_id: int, attempts: int) -> None:
        super().__init__(
            "Failed to reserve tickets due to high demand. Please try again.",
            ticket_type_id=ticket_type_id,
            attempts=attempts,
        )


# ---------------------------------------------------------------------------
# Discounts
# ---------------------------------------------------------------------------

class DiscountNotFound(DomainError):
    kind = ErrorKind.NOT_FOUND
    code = ErrorCode.DISCOUNT_NOT_FOUND

    def __init__(self, code: str) -> None:
        super().__init__("Invalid promo code", code=code)


class DiscountInactive(DomainError):
    code = ErrorCode.DISCOUNT_INACTIVE

    def __init__(self, code: str) -> None:
        super().__init__("Promo code is inactive", code=code)


class DiscountWrongEvent(DomainError):
    code = ErrorCode.DISCOUNT_WRONG_EVENT

    def __init__(self, code: str) -> None:
        super().__init__("Promo code not valid for this event", code=code)


class DiscountNotYetValid(DomainError):
    code = ErrorCode.DISCOUNT_NOT_YET_VALID

    def __init__(self, code: str, valid_from: datetime) -> None:
        super().__init__("Promo code not yet valid", code=code, valid_from=valid_from)


class DiscountExpired(DomainError):
    code = ErrorCode.DISCOUNT_EXPIRED

    def __init__(self, code: str, valid_until: datetime) -> None:
        super().__init__("Promo code expired", code=code, valid_until=valid_until)


class UsageLimitReached(DomainError):
    code = ErrorCode.DISCOUNT_USAGE_LIMIT_REACHED

    def __init__(self, code: str, max_uses: int) -> None:
        super().__init__("Promo code usage limit reached", code=code, max_uses=max_uses)


class DiscountUnavailable(DomainError):
    kind = ErrorKind.CONFLICT
    code = ErrorCode.DISCOUNT_UNAVAILABLE

    def __init__(self, code: str, attempts: int) -> None:
        super().__init__(
            "Promo code could not be applied due to high demand. Please try again.",
            code=code,
            attempts=attempts,
        )


# ---------------------------------------------------------------------------
# Purchases
# ---------------------------------------------------------------------------

class PurchaseNotFound(DomainError):
    kind = ErrorKind.NOT_FOUND
    code = ErrorCode.PURCHASE_NOT_FOUND

    def __init__(self, purchase_id: Optional[int] = None, session_id: Optional[str] = None) -> None:
        super().__init__("Purchase not found", purchase_id=purchase_id, session_id=session_id)


class ReservationMismatch(DomainError):
    code = ErrorCode.RESERVATION_MISMATCH

    def __init__(self, reserved: int, requested: int) -> None:
        super().__init__(
            "Purchase quantity does not match the reservation",
            reserved=reserved,
            requested=requested,
        )


class ReferenceMismatch(DomainError):
    """The payment reference presented does not match the one recorded at checkout."""

    kind = ErrorKind.CONFLICT
    code = ErrorCode.REFERENCE_MISMATCH

    def __init__(self, purchase_id: int) -> None:
        super().__init__("Payment reference does not match this purchase", purchase_id=purchase_id)


class PurchaseClosed(DomainError):
    kind = ErrorKind.CONFLICT
    code = ErrorCode.PURCHASE_CLOSED

    def __init__(self, purchase_id: int, status: str) -> None:
        super().__init__(f"Purchase is already {status}", purchase_id=purchase_id, status=status)
        self.status = status


class PurchaseNotCompleted(DomainError):
    kind = ErrorKind.CONFLICT
    code = ErrorCode.PURCHASE_NOT_COMPLETED

    def __init__(self, purchase_id: int, status: str) -> None:
        super().__init__("Tickets can only be issued for completed purchases", purchase_id=purchase_id, status=status)


class PaymentNotConfirmed(DomainError):
    code = ErrorCode.PAYMENT_NOT_CONFIRMED

    def __init__(self, purchase_id: int, session_status: str) -> None:
        super().__init__(
            "Payment has not been confirmed by the processor",
            purchase_id=purchase_id,
            session_status=session_status,
        )
        self.session_status = session_status


class GuestDetailsRequired(DomainError):
    code = ErrorCode.GUEST_DETAILS_REQUIRED

    def __init__(self) -> None:
        super().__init__("Email and name are required for guest checkout")


# ---------------------------------------------------------------------------
# Tickets / redemption
# ---------------------------------------------------------------------------

class TicketNotFound(DomainError):
    kind = ErrorKind.NOT_FOUND
    code = ErrorCode.TICKET_NOT_FOUND

    def __init__(self, ticket_number: str) -> None:
        super().__init__("Ticket not found", ticket_number=ticket_number)


class AlreadyUsed(DomainError):
    kind = ErrorKind.CONFLICT
    code = ErrorCode.TICKET_ALREADY_USED

    def __init__(self, ticket_number: str, checked_in_at: Optional[datetime], checked_in_by: Optional[int]) -> None:
        super().__init__(
            "Ticket already used",
            ticket_number=ticket_number,
            checked_in_at=checked_in_at,
            checked_in_by=checked_in_by,
        )
        self.checked_in_at = checked_in_at
        self.checked_in_by = checked_in_by


class TicketNotValid(DomainError):
    code = ErrorCode.TICKET_NOT_VALID

    def __init__(self, ticket_number: str, reason: str = "Ticket is not valid") -> None:
        super().__init__(reason, ticket_number=ticket_number)


class InvalidTicketPayload(DomainError):
    code = ErrorCode.INVALID_TICKET_PAYLOAD

    def __init__(self, reason: str = "Ticket code could not be verified") -> None:
        super().__init__(reason)


class DuplicateTicket(DomainError):
    """Uniqueness constraint hit on (purchase_id, sequence_index) or ticket_number."""

    kind = ErrorKind.CONFLICT
    code = ErrorCode.DUPLICATE_TICKET

    def __init__(self, purchase_id: int, sequence_index: int) -> None:
        super().__init__("Ticket already exists", purchase_id=purchase_id, sequence_index=sequence_index)


# ---------------------------------------------------------------------------
# Authorization / upstream
# ---------------------------------------------------------------------------

class NotEventOrganizer(DomainError):
    kind = ErrorKind.UNAUTHORIZED
    code = ErrorCode.NOT_EVENT_ORGANIZER

    def __init__(self, event_id: int) -> None:
        super().__init__("Unauthorized", event_id=event_id)


class NotPurchaseOwner(DomainError):
    kind = ErrorKind.UNAUTHORIZED
    code = ErrorCode.NOT_PURCHASE_OWNER

    def __init__(self, purchase_id: int) -> None:
        super().__init__("Unauthorized", purchase_id=purchase_id)


class InvalidWebhookSignature(DomainError):
    kind = ErrorKind.UNAUTHORIZED
    code = ErrorCode.INVALID_WEBHOOK_SIGNATURE

    def __init__(self, reason: str = "Invalid signature") -> None:
        super().__init__(reason)


class PaymentProviderError(DomainError):
    kind = ErrorKind.UPSTREAM
    code = ErrorCode.PAYMENT_PROVIDER_ERROR

    def __init__(self, reason: str) -> None:
        super().__init__(f"Payment provider error: {reason}")
