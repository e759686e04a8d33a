"""
Ticket issuance: exactly-once materialization of a completed purchase.

Each ticket of a purchase owns a slot, its sequence_index in
[0, quantity). The (purchase_id, sequence_index) unique constraint makes
a slot fillable only once, so concurrent or repeated issuance for the
same purchase converges on the same `quantity` rows. A caller that loses
the race for a slot simply moves on; a ticket_number collision (random
number already taken) is retried with a fresh number.

Delivery of ticket artifacts happens after the rows exist and only when
this call created at least one of them. It never raises.
"""

import asyncio
import secrets
import string
from datetime import datetime
from typing import Callable, Optional

from boxoffice.core.config import get_settings
from boxoffice.core.errors import DuplicateTicket, PurchaseNotCompleted
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_notification, tickets_issued
from boxoffice.core.signing import sign_ticket_payload
from boxoffice.db.base import utcnow
from boxoffice.domain import IssuanceResult, NewTicket, PaymentStatus, Purchase, Ticket
from boxoffice.services.interfaces.notifier import TicketArtifact, TicketNotifier
from boxoffice.stores.interfaces import TicketingStore

logger = get_logger(__name__)

TICKET_PREFIX = "TKT-"
TICKET_ALPHABET = string.ascii_uppercase + string.digits
TICKET_SUFFIX_LENGTH = 12
MAX_NUMBER_ATTEMPTS = 5


def generate_ticket_number() -> str:
    suffix = "".join(secrets.choice(TICKET_ALPHABET) for _ in range(TICKET_SUFFIX_LENGTH))
    return f"{TICKET_PREFIX}{suffix}"


class TicketIssuer:

    def __init__(
        self,
        store: TicketingStore,
        notifier: Optional[TicketNotifier] = None,
        signing_key: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
        number_factory: Callable[[], str] = generate_ticket_number,
    ):
        self.store = store
        self.notifier = notifier
        self.signing_key = signing_key or get_settings().ticket_signing_key
        self.clock = clock
        self.number_factory = number_factory

    async def issue_for_purchase(self, purchase: Purchase) -> IssuanceResult:
        """
        Ensure exactly `purchase.quantity` tickets exist for a completed purchase.

        Returns every ticket of the purchase ordered by sequence_index, plus
        how many were created by this call (0 on repeat invocations).
        """
        if purchase.payment_status is not PaymentStatus.COMPLETED:
            raise PurchaseNotCompleted(purchase.id, purchase.payment_status.value)

        existing = await self.store.list_tickets_for_purchase(purchase.id)
        filled = {t.sequence_index for t in existing}

        created = 0
        for index in range(purchase.quantity):
            if index in filled:
                continue
            if await self._fill_slot(purchase, index):
                created += 1

        tickets = await self.store.list_tickets_for_purchase(purchase.id)
        if created:
            tickets_issued.inc(created)
            logger.info(
                "tickets_issued",
                purchase_id=purchase.id,
                created=created,
                total=len(tickets),
            )
            await self._notify(purchase, tickets)

        return IssuanceResult(tickets=tickets, created=created)

    async def _fill_slot(self, purchase: Purchase, index: int) -> bool:
        for _ in range(MAX_NUMBER_ATTEMPTS):
            number = self.number_factory()
            payload = sign_ticket_payload(number, purchase.event_id, self.clock(), self.signing_key)
            try:
                await self.store.insert_ticket(
                    NewTicket(
                        ticket_number=number,
                        purchase_id=purchase.id,
                        sequence_index=index,
                        owner_id=purchase.buyer_id,
                        event_id=purchase.event_id,
                        ticket_type_id=purchase.ticket_type_id,
                        validation_payload=payload,
                    )
                )
                return True
            except DuplicateTicket:
                current = await self.store.list_tickets_for_purchase(purchase.id)
                if any(t.sequence_index == index for t in current):
                    # Another issuer filled this slot first
                    return False
                logger.info("ticket_number_collision", purchase_id=purchase.id, sequence_index=index)

        raise DuplicateTicket(purchase.id, index)

    def _render_all(self, tickets: list[Ticket]) -> list[TicketArtifact]:
        return [self.notifier.render(ticket) for ticket in tickets]

    async def _notify(self, purchase: Purchase, tickets: list[Ticket]) -> None:
        if self.notifier is None:
            record_notification("skipped")
            return

        try:
            # QR rendering is CPU-bound
            artifacts = await asyncio.to_thread(self._render_all, tickets)
            sent = await self.notifier.deliver(artifacts, purchase.buyer_email, purchase)
        except Exception as e:
            logger.error("ticket_delivery_error", purchase_id=purchase.id, error=str(e))
            record_notification("failed")
            return

        if sent:
            logger.info("ticket_delivery_sent", purchase_id=purchase.id, tickets=len(artifacts))
            record_notification("sent")
        else:
            logger.warning("ticket_delivery_failed", purchase_id=purchase.id)
            record_notification("failed")
