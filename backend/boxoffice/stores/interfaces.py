"""
Storage collaborator interface (repository pattern).

The ticketing core only ever talks to persistence through this contract:
point reads, guarded (conditional) updates and inserts that enforce
uniqueness. Every mutating method is atomic on its own; none of them
computes a new counter value from a snapshot held by the caller.

Implementations:
- SqlTicketingStore: SQLAlchemy, one short transaction per call
- MemoryTicketingStore: in-process dictionaries, for tests and demos
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from boxoffice.domain import (
    CheckIn,
    DiscountCode,
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


class TicketingStore(ABC):

    # -- events -------------------------------------------------------------

    @abstractmethod
    async def get_event(self, event_id: int) -> Optional[EventRecord]:
        ...

    # -- ticket types -------------------------------------------------------

    @abstractmethod
    async def get_ticket_type(self, ticket_type_id: int) -> Optional[TicketType]:
        ...

    @abstractmethod
    async def increment_reserved(self, ticket_type_id: int, quantity: int) -> Optional[TicketType]:
        """
        Add `quantity` to capacity_reserved and bump the version, only if the
        row is active and the result stays within capacity_total.

        Returns the post-increment snapshot, or None when the guard did not
        hold (row missing, inactive, or not enough stock at write time).
        """

    @abstractmethod
    async def decrement_reserved(self, ticket_type_id: int, quantity: int) -> Optional[TicketType]:
        """Subtract `quantity` from capacity_reserved, floored at zero."""

    # -- discount codes -----------------------------------------------------

    @abstractmethod
    async def get_discount_code(self, code: str) -> Optional[DiscountCode]:
        """Look up a code by its normalized (upper-case) form."""

    @abstractmethod
    async def increment_uses(self, discount_code_id: int) -> Optional[DiscountCode]:
        """Add one use if the code is active and below max_uses; None otherwise."""

    @abstractmethod
    async def decrement_uses(self, discount_code_id: int) -> Optional[DiscountCode]:
        """Give one use back, floored at zero."""

    # -- purchases ----------------------------------------------------------

    @abstractmethod
    async def insert_purchase(self, purchase: NewPurchase) -> Purchase:
        ...

    @abstractmethod
    async def get_purchase(self, purchase_id: int) -> Optional[Purchase]:
        ...

    @abstractmethod
    async def get_purchase_by_session(self, session_id: str) -> Optional[Purchase]:
        ...

    @abstractmethod
    async def attach_payment_session(self, purchase_id: int, session_id: str) -> Optional[Purchase]:
        """Record the processor session id, only while none is recorded yet."""

    @abstractmethod
    async def transition_purchase(
        self,
        purchase_id: int,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
        at: datetime,
        payment_ref: Optional[str] = None,
    ) -> Optional[Purchase]:
        """Move payment_status from `from_status` to `to_status`; None if it was not `from_status`."""

    @abstractmethod
    async def fail_purchase(self, purchase_id: int, at: datetime) -> Optional[Purchase]:
        """
        Move a pending purchase to failed and give back its reserved units
        and its discount use, all in one transaction. None if it was not
        pending, in which case nothing is released.
        """

    @abstractmethod
    async def list_pending_before(self, cutoff: datetime, limit: int = 100) -> list[Purchase]:
        ...

    # -- tickets ------------------------------------------------------------

    @abstractmethod
    async def insert_ticket(self, ticket: NewTicket) -> Ticket:
        """Insert one ticket; raises DuplicateTicket on either uniqueness constraint."""

    @abstractmethod
    async def list_tickets_for_purchase(self, purchase_id: int) -> list[Ticket]:
        """Tickets of a purchase ordered by sequence_index."""

    @abstractmethod
    async def list_tickets_for_owner(self, owner_id: int) -> list[Ticket]:
        ...

    @abstractmethod
    async def get_ticket_by_number(self, ticket_number: str) -> Optional[Ticket]:
        ...

    @abstractmethod
    async def transition_ticket(
        self, ticket_id: int, from_status: TicketStatus, to_status: TicketStatus
    ) -> Optional[Ticket]:
        """Move status from `from_status` to `to_status`; None if it was not `from_status`."""

    @abstractmethod
    async def redeem_ticket(self, entry: NewCheckIn) -> Optional[tuple[Ticket, CheckIn]]:
        """
        Move a valid ticket to used, stamp who and when, and append the
        check-in entry in one transaction. None if the ticket was not valid.
        """

    @abstractmethod
    async def list_check_ins(self, ticket_id: int) -> list[CheckIn]:
        ...
