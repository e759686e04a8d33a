"""
Inventory ledger: atomic reservation and release of ticket-type stock.

CONCURRENCY STRATEGY: Guarded atomic increment with bounded retry
==================================================================

Problem:
  Two buyers try to take the last ticket simultaneously.
  Both read capacity_reserved = total - 1, both write total.
  Result: Overselling.

Solution:
  The increment is a single conditional write evaluated by the store:

    SET capacity_reserved = capacity_reserved + N, version = version + 1
    WHERE id = :id AND is_active AND capacity_reserved + N <= capacity_total

  The new value is never computed from the caller's snapshot. When the
  guard does not hold we re-read the row to tell the caller why:
  sold out, deactivated, or (rarely) a row that changed back in between,
  which is retried up to RESERVATION_MAX_RETRIES times before surfacing
  ReservationFailed. The DB CHECK constraint on capacity_reserved is the
  final safety net.
"""

import time
from datetime import datetime
from typing import Callable, Optional

from boxoffice.core.config import get_settings
from boxoffice.core.errors import (
    InsufficientStock,
    InvalidQuantity,
    OrderLimitExceeded,
    ReservationFailed,
    TicketTypeInactive,
    TicketTypeNotFound,
)
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_reservation, record_retry, reservation_latency
from boxoffice.db.base import utcnow
from boxoffice.domain import ReservationResult, TicketType
from boxoffice.stores.interfaces import TicketingStore

logger = get_logger(__name__)


class InventoryLedger:
    """The only writer of ticket_types.capacity_reserved."""

    def __init__(
        self,
        store: TicketingStore,
        max_retries: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.max_retries = get_settings().RESERVATION_MAX_RETRIES if max_retries is None else max_retries
        self.clock = clock

    def _check(self, ticket_type: Optional[TicketType], ticket_type_id: int, quantity: int) -> TicketType:
        if ticket_type is None:
            raise TicketTypeNotFound(ticket_type_id)
        if not ticket_type.is_active:
            raise TicketTypeInactive(ticket_type_id)

        now = self.clock()
        if ticket_type.sales_start is not None and ticket_type.sales_start > now:
            raise TicketTypeInactive(ticket_type_id, "Sales have not started yet")
        if ticket_type.sales_end is not None and ticket_type.sales_end < now:
            raise TicketTypeInactive(ticket_type_id, "Sales have ended")

        if ticket_type.available < quantity:
            raise InsufficientStock(ticket_type_id, quantity, ticket_type.available)
        if quantity > ticket_type.max_per_order:
            raise OrderLimitExceeded(quantity, ticket_type.max_per_order)
        return ticket_type

    async def reserve(self, ticket_type_id: int, quantity: int) -> ReservationResult:
        """
        Claim `quantity` units of a ticket type.

        Raises TicketTypeNotFound, TicketTypeInactive, InsufficientStock,
        OrderLimitExceeded, InvalidQuantity or ReservationFailed.
        """
        if quantity < 1:
            raise InvalidQuantity(quantity)

        start = time.perf_counter()
        try:
            ticket_type = await self.store.get_ticket_type(ticket_type_id)
            self._check(ticket_type, ticket_type_id, quantity)

            for attempt in range(1, self.max_retries + 1):
                updated = await self.store.increment_reserved(ticket_type_id, quantity)
                if updated is not None:
                    logger.info(
                        "reservation_succeeded",
                        ticket_type_id=ticket_type_id,
                        quantity=quantity,
                        reserved=updated.capacity_reserved,
                        attempt=attempt,
                    )
                    record_reservation("reserved")
                    return ReservationResult(ticket_type=updated, quantity=quantity)

                # Guard failed: find out whether it is final or a transient race
                current = await self.store.get_ticket_type(ticket_type_id)
                self._check(current, ticket_type_id, quantity)

                logger.info(
                    "reservation_retry",
                    ticket_type_id=ticket_type_id,
                    attempt=attempt,
                    reason="concurrent_update",
                )
                record_retry("inventory")

            logger.warning(
                "reservation_failed",
                ticket_type_id=ticket_type_id,
                quantity=quantity,
                attempts=self.max_retries,
            )
            record_reservation("failed")
            raise ReservationFailed(ticket_type_id, self.max_retries)

        except InsufficientStock as exc:
            logger.warning(
                "reservation_rejected_no_stock",
                ticket_type_id=ticket_type_id,
                requested=quantity,
                available=exc.available,
            )
            record_reservation("insufficient_stock")
            raise
        except TicketTypeInactive:
            record_reservation("inactive")
            raise
        except OrderLimitExceeded:
            record_reservation("order_limit")
            raise
        finally:
            reservation_latency.observe(time.perf_counter() - start)

    async def release(self, ticket_type_id: int, quantity: int) -> Optional[TicketType]:
        """Give `quantity` units back, floored at zero. Missing types are ignored."""
        if quantity < 1:
            return None

        updated = await self.store.decrement_reserved(ticket_type_id, quantity)
        if updated is None:
            logger.warning("release_skipped_missing_type", ticket_type_id=ticket_type_id, quantity=quantity)
            return None

        logger.info(
            "reservation_released",
            ticket_type_id=ticket_type_id,
            quantity=quantity,
            reserved=updated.capacity_reserved,
        )
        return updated
