"""
Discount ledger: validity rules and usage counting for promo codes.

Usage is consumed with the same guarded-increment discipline as the
inventory ledger (`current_uses < max_uses` is part of the UPDATE guard),
so a code with max_uses = N accepts exactly N consumptions no matter how
many checkouts race for it.
"""

from datetime import datetime
from typing import Callable, Optional

from boxoffice.core.config import get_settings
from boxoffice.core.errors import (
    DiscountExpired,
    DiscountInactive,
    DiscountNotFound,
    DiscountNotYetValid,
    DiscountUnavailable,
    DiscountWrongEvent,
    UsageLimitReached,
)
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_discount, record_retry
from boxoffice.db.base import utcnow
from boxoffice.domain import DiscountCode, DiscountSnapshot
from boxoffice.stores.interfaces import TicketingStore

logger = get_logger(__name__)


def normalize_code(code: str) -> str:
    return code.strip().upper()


class DiscountLedger:
    """The only writer of discount_codes.current_uses."""

    def __init__(
        self,
        store: TicketingStore,
        max_retries: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.max_retries = get_settings().RESERVATION_MAX_RETRIES if max_retries is None else max_retries
        self.clock = clock

    def _check(self, discount: Optional[DiscountCode], code: str, event_id: Optional[int]) -> DiscountCode:
        # Order matters: callers get the first rule that fails
        if discount is None:
            raise DiscountNotFound(code)
        if not discount.is_active:
            raise DiscountInactive(code)
        if discount.event_id is not None and discount.event_id != event_id:
            raise DiscountWrongEvent(code)

        now = self.clock()
        if discount.valid_from is not None and discount.valid_from > now:
            raise DiscountNotYetValid(code, discount.valid_from)
        if discount.valid_until is not None and discount.valid_until < now:
            raise DiscountExpired(code, discount.valid_until)

        if discount.exhausted:
            raise UsageLimitReached(code, discount.max_uses)
        return discount

    @staticmethod
    def _snapshot(discount: DiscountCode) -> DiscountSnapshot:
        return DiscountSnapshot(
            discount_code_id=discount.id,
            code=discount.code,
            discount_type=discount.discount_type,
            discount_value=discount.discount_value,
        )

    async def preview(self, code: str, event_id: Optional[int]) -> DiscountSnapshot:
        """Run every validity check without consuming a use."""
        code = normalize_code(code)
        discount = self._check(await self.store.get_discount_code(code), code, event_id)
        return self._snapshot(discount)

    async def validate_and_consume(self, code: str, event_id: Optional[int]) -> DiscountSnapshot:
        """
        Validate a code for an event and consume one use.

        Returns the discount terms as they were at consumption time so they
        can be frozen into the purchase.
        """
        code = normalize_code(code)
        try:
            discount = self._check(await self.store.get_discount_code(code), code, event_id)

            for attempt in range(1, self.max_retries + 1):
                updated = await self.store.increment_uses(discount.id)
                if updated is not None:
                    logger.info(
                        "discount_consumed",
                        code=code,
                        discount_code_id=updated.id,
                        current_uses=updated.current_uses,
                        max_uses=updated.max_uses,
                    )
                    record_discount("consumed")
                    return self._snapshot(updated)

                current = await self.store.get_discount_code(code)
                self._check(current, code, event_id)

                logger.info("discount_retry", code=code, attempt=attempt, reason="concurrent_update")
                record_retry("discount")

            record_discount("unavailable")
            raise DiscountUnavailable(code, self.max_retries)

        except UsageLimitReached:
            logger.warning("discount_rejected_usage_limit", code=code)
            record_discount("usage_limit")
            raise
        except (DiscountNotFound, DiscountInactive, DiscountWrongEvent, DiscountNotYetValid, DiscountExpired) as exc:
            logger.info("discount_rejected", code=code, reason=exc.code.value)
            record_discount("rejected")
            raise

    async def release(self, discount_code_id: int) -> Optional[DiscountCode]:
        """Give one use back, floored at zero."""
        updated = await self.store.decrement_uses(discount_code_id)
        if updated is None:
            logger.warning("discount_release_skipped", discount_code_id=discount_code_id)
            return None
        logger.info(
            "discount_released",
            discount_code_id=discount_code_id,
            current_uses=updated.current_uses,
        )
        return updated
