"""
Redemption gate: one-time check-in at the door.

    valid ──check_in──> used        (terminal)
      │
      └────cancel────> cancelled    (terminal)

The valid -> used move is a compare-and-set on the ticket status, so when
two scanners read the same QR code at the same moment exactly one of
them checks the guest in and the other gets AlreadyUsed with the
winner's timestamp and scanner id. The audit row is written in the same
store call as the status change, so a used ticket always has one.
"""

from datetime import datetime
from typing import Callable, Optional

from boxoffice.core.config import get_settings
from boxoffice.core.errors import AlreadyUsed, TicketNotFound, TicketNotValid
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_check_in
from boxoffice.core.signing import verify_ticket_payload
from boxoffice.db.base import utcnow
from boxoffice.domain import CheckInResult, NewCheckIn, PaymentStatus, Ticket, TicketStatus
from boxoffice.stores.interfaces import TicketingStore

logger = get_logger(__name__)


class RedemptionGate:

    def __init__(
        self,
        store: TicketingStore,
        signing_key: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.signing_key = signing_key or get_settings().ticket_signing_key
        self.clock = clock

    async def lookup(self, ticket_number: str) -> Ticket:
        ticket = await self.store.get_ticket_by_number(ticket_number)
        if ticket is None:
            raise TicketNotFound(ticket_number)
        return ticket

    def _reject_closed(self, ticket: Ticket) -> None:
        if ticket.status is TicketStatus.USED:
            logger.warning(
                "check_in_rejected_already_used",
                ticket_number=ticket.ticket_number,
                checked_in_at=ticket.checked_in_at.isoformat() if ticket.checked_in_at else None,
                checked_in_by=ticket.checked_in_by,
            )
            record_check_in("already_used")
            raise AlreadyUsed(ticket.ticket_number, ticket.checked_in_at, ticket.checked_in_by)
        if ticket.status is TicketStatus.CANCELLED:
            record_check_in("not_valid")
            raise TicketNotValid(ticket.ticket_number, "Ticket has been cancelled")

    async def check_in(
        self,
        ticket_number: str,
        checked_in_by: int,
        method: str = "qr",
        event_id: Optional[int] = None,
    ) -> CheckInResult:
        """
        Redeem a ticket.

        Raises TicketNotFound, AlreadyUsed (with when/who of the first scan)
        or TicketNotValid (cancelled, unpaid, or scanned at another event).
        """
        ticket = await self.store.get_ticket_by_number(ticket_number)
        if ticket is None:
            record_check_in("not_found")
            raise TicketNotFound(ticket_number)

        if event_id is not None and ticket.event_id != event_id:
            record_check_in("not_valid")
            raise TicketNotValid(ticket_number, "Ticket is for a different event")

        self._reject_closed(ticket)

        purchase = await self.store.get_purchase(ticket.purchase_id)
        if purchase is None or purchase.payment_status is not PaymentStatus.COMPLETED:
            record_check_in("not_valid")
            raise TicketNotValid(ticket_number, "Payment for this ticket is not completed")

        redeemed = await self.store.redeem_ticket(
            NewCheckIn(
                ticket_id=ticket.id,
                event_id=ticket.event_id,
                checked_in_by=checked_in_by,
                method=method,
                checked_in_at=self.clock(),
            )
        )
        if redeemed is None:
            # Another scanner won the transition
            current = await self.lookup(ticket_number)
            self._reject_closed(current)
            raise TicketNotValid(ticket_number)

        updated, entry = redeemed
        logger.info(
            "ticket_checked_in",
            ticket_number=ticket_number,
            event_id=updated.event_id,
            checked_in_by=checked_in_by,
            method=method,
        )
        record_check_in("checked_in")
        return CheckInResult(ticket=updated, check_in=entry)

    async def check_in_by_payload(
        self,
        payload: str,
        checked_in_by: int,
        method: str = "qr",
        event_id: Optional[int] = None,
    ) -> CheckInResult:
        """Verify a scanned code's signature, then redeem the ticket it names."""
        decoded = verify_ticket_payload(payload, self.signing_key)
        if event_id is not None and decoded.event_id != event_id:
            record_check_in("not_valid")
            raise TicketNotValid(decoded.ticket_number, "Ticket is for a different event")
        return await self.check_in(decoded.ticket_number, checked_in_by, method=method, event_id=decoded.event_id)

    async def cancel(self, ticket_number: str) -> Ticket:
        """Void a valid ticket. Cancelling twice is a no-op; used tickets stay used."""
        ticket = await self.lookup(ticket_number)
        if ticket.status is TicketStatus.CANCELLED:
            return ticket
        if ticket.status is TicketStatus.USED:
            raise AlreadyUsed(ticket_number, ticket.checked_in_at, ticket.checked_in_by)

        updated = await self.store.transition_ticket(ticket.id, TicketStatus.VALID, TicketStatus.CANCELLED)
        if updated is None:
            current = await self.lookup(ticket_number)
            if current.status is TicketStatus.CANCELLED:
                return current
            raise AlreadyUsed(ticket_number, current.checked_in_at, current.checked_in_by)

        logger.info("ticket_cancelled", ticket_number=ticket_number, event_id=updated.event_id)
        return updated
