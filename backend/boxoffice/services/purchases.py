"""
Purchase state machine.

    pending ──complete──> completed
       │
       └──────fail──────> failed

Both transitions are compare-and-set on payment_status, so however many
times (and in whatever order) the processor calls back, exactly one
caller wins each transition. Failing is one store call that flips the
status and gives the reserved units and the discount use back together,
so stock is never stranded between the two and never freed twice. The
winner of pending -> completed is the first to run ticket issuance, and
every later `complete` re-runs issuance as a no-op repair before answering.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional

from boxoffice.core.config import get_settings
from boxoffice.core.errors import (
    PaymentNotConfirmed,
    PurchaseClosed,
    PurchaseNotFound,
    ReferenceMismatch,
    ReservationMismatch,
)
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_purchase_transition
from boxoffice.db.base import utcnow
from boxoffice.domain import (
    CompletionResult,
    DiscountSnapshot,
    DiscountType,
    NewPurchase,
    PaymentStatus,
    PriceBreakdown,
    Purchase,
    ReservationResult,
)
from boxoffice.services.interfaces.payment import PaymentGateway
from boxoffice.services.issuance import TicketIssuer
from boxoffice.stores.interfaces import TicketingStore

logger = get_logger(__name__)

CENT = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_totals(
    unit_price: Decimal,
    quantity: int,
    fee_rate: Decimal,
    discount: Optional[DiscountSnapshot] = None,
) -> PriceBreakdown:
    """
    subtotal = unit_price * quantity
    discount = terms applied to subtotal, clamped to [0, subtotal]
    fee      = subtotal * fee_rate
    total    = subtotal - discount + fee
    """
    subtotal = _money(Decimal(unit_price) * quantity)

    amount = Decimal("0")
    if discount is not None:
        if discount.discount_type is DiscountType.PERCENTAGE:
            amount = subtotal * Decimal(discount.discount_value) / Decimal(100)
        else:
            amount = Decimal(discount.discount_value)
        amount = _money(min(max(amount, Decimal("0")), subtotal))

    fee = _money(subtotal * Decimal(fee_rate))
    return PriceBreakdown(
        subtotal=subtotal,
        discount=amount,
        fee=fee,
        total=subtotal - amount + fee,
    )


class PurchaseStateMachine:

    def __init__(
        self,
        store: TicketingStore,
        gateway: PaymentGateway,
        issuer: TicketIssuer,
        fee_rate: Optional[Decimal] = None,
        currency: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        settings = get_settings()
        self.store = store
        self.gateway = gateway
        self.issuer = issuer
        self.fee_rate = settings.PLATFORM_FEE_RATE if fee_rate is None else fee_rate
        self.currency = currency or settings.CURRENCY
        self.clock = clock

    async def _load(self, purchase_id: int) -> Purchase:
        purchase = await self.store.get_purchase(purchase_id)
        if purchase is None:
            raise PurchaseNotFound(purchase_id=purchase_id)
        return purchase

    async def open(
        self,
        buyer_id: int,
        buyer_email: str,
        reservation: ReservationResult,
        quantity: int,
        discount: Optional[DiscountSnapshot] = None,
    ) -> Purchase:
        """Persist a pending purchase backed by an existing reservation."""
        if reservation.quantity != quantity:
            raise ReservationMismatch(reservation.quantity, quantity)

        ticket_type = reservation.ticket_type
        totals = compute_totals(ticket_type.price, quantity, self.fee_rate, discount)

        purchase = await self.store.insert_purchase(
            NewPurchase(
                buyer_id=buyer_id,
                buyer_email=buyer_email,
                event_id=ticket_type.event_id,
                ticket_type_id=ticket_type.id,
                quantity=quantity,
                unit_price=ticket_type.price,
                subtotal=totals.subtotal,
                discount=totals.discount,
                fee=totals.fee,
                total=totals.total,
                currency=self.currency,
                discount_code_id=discount.discount_code_id if discount else None,
                discount_type=discount.discount_type if discount else None,
                discount_value=discount.discount_value if discount else None,
            )
        )
        logger.info(
            "purchase_opened",
            purchase_id=purchase.id,
            buyer_id=buyer_id,
            ticket_type_id=ticket_type.id,
            quantity=quantity,
            total=str(purchase.total),
        )
        record_purchase_transition(PaymentStatus.PENDING.value)
        return purchase

    async def attach_session(self, purchase_id: int, session_id: str) -> Purchase:
        """Record the processor session id; the id is write-once."""
        updated = await self.store.attach_payment_session(purchase_id, session_id)
        if updated is not None:
            logger.info("payment_session_attached", purchase_id=purchase_id, session_id=session_id)
            return updated

        purchase = await self._load(purchase_id)
        if purchase.payment_session_id != session_id:
            raise ReferenceMismatch(purchase_id)
        return purchase

    async def complete(self, purchase_id: int, external_ref: str) -> CompletionResult:
        """
        Mark a purchase as paid and make sure its tickets exist.

        Safe to call any number of times. Raises ReferenceMismatch when
        `external_ref` is not the session recorded for the purchase,
        PaymentNotConfirmed when the processor does not report it paid and
        PurchaseClosed when the purchase already failed.
        """
        purchase = await self._load(purchase_id)
        if not purchase.payment_session_id or purchase.payment_session_id != external_ref:
            logger.warning(
                "purchase_reference_mismatch",
                purchase_id=purchase_id,
                presented=external_ref,
            )
            raise ReferenceMismatch(purchase_id)

        if purchase.payment_status is PaymentStatus.COMPLETED:
            return await self._already_completed(purchase)
        if purchase.payment_status is PaymentStatus.FAILED:
            raise PurchaseClosed(purchase_id, purchase.payment_status.value)

        state = await self.gateway.retrieve_session(external_ref)
        if not state.is_paid:
            logger.info(
                "purchase_payment_not_confirmed",
                purchase_id=purchase_id,
                session_status=state.status.value,
            )
            raise PaymentNotConfirmed(purchase_id, state.status.value)

        updated = await self.store.transition_purchase(
            purchase_id,
            PaymentStatus.PENDING,
            PaymentStatus.COMPLETED,
            at=self.clock(),
            payment_ref=state.payment_ref,
        )
        if updated is None:
            # Lost the race to another caller; report whatever it decided
            current = await self._load(purchase_id)
            if current.payment_status is PaymentStatus.COMPLETED:
                return await self._already_completed(current)
            logger.error(
                "purchase_paid_after_failure",
                purchase_id=purchase_id,
                payment_ref=state.payment_ref,
                action="manual_refund_required",
            )
            raise PurchaseClosed(purchase_id, current.payment_status.value)

        logger.info(
            "purchase_completed",
            purchase_id=purchase_id,
            payment_ref=state.payment_ref,
            quantity=updated.quantity,
        )
        record_purchase_transition(PaymentStatus.COMPLETED.value)

        issuance = await self.issuer.issue_for_purchase(updated)
        return CompletionResult(purchase=updated, tickets=issuance.tickets, already_processed=False)

    async def _already_completed(self, purchase: Purchase) -> CompletionResult:
        # Repairs a batch left short by a crash between transition and issuance
        issuance = await self.issuer.issue_for_purchase(purchase)
        logger.info(
            "purchase_already_completed",
            purchase_id=purchase.id,
            tickets=len(issuance.tickets),
            repaired=issuance.created,
        )
        return CompletionResult(purchase=purchase, tickets=issuance.tickets, already_processed=True)

    async def fail(self, purchase_id: int) -> Purchase:
        """
        Mark a pending purchase as failed and give its stock back.

        Idempotent: a purchase that already failed is returned unchanged and
        nothing is released twice. Raises PurchaseClosed for completed ones.
        """
        purchase = await self._load(purchase_id)
        if purchase.payment_status is PaymentStatus.FAILED:
            return purchase
        if purchase.payment_status is PaymentStatus.COMPLETED:
            raise PurchaseClosed(purchase_id, purchase.payment_status.value)

        updated = await self.store.fail_purchase(purchase_id, at=self.clock())
        if updated is None:
            current = await self._load(purchase_id)
            if current.payment_status is PaymentStatus.FAILED:
                return current
            raise PurchaseClosed(purchase_id, current.payment_status.value)

        logger.info(
            "purchase_failed",
            purchase_id=purchase_id,
            released=updated.quantity,
            ticket_type_id=updated.ticket_type_id,
        )
        record_purchase_transition(PaymentStatus.FAILED.value)
        return updated
