"""
Checkout orchestration: the glue between the HTTP surface, the core
components and the payment processor.

    start_checkout   reserve -> consume discount -> open -> create session -> attach
    verify_session   buyer came back from the hosted page
    handle_webhook   processor callback (at least once, any order)
    expire_pending   abandoned purchases -> expire session at the processor -> fail
                     (or complete, if paid after all)

No database transaction or lock is held across a processor call; each
step is individually atomic and every failure after stock was claimed
goes through `PurchaseStateMachine.fail` or an explicit release.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Mapping, Optional

from boxoffice.core.config import get_settings
from boxoffice.core.errors import (
    DomainError,
    InvalidWebhookSignature,
    PaymentNotConfirmed,
    PaymentProviderError,
    PurchaseClosed,
    PurchaseNotFound,
)
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_webhook
from boxoffice.db.base import utcnow
from boxoffice.domain import PaymentStatus, Purchase, Ticket
from boxoffice.services import cache_service
from boxoffice.services.discounts import DiscountLedger
from boxoffice.services.interfaces.payment import (
    FAILURE_STATUSES,
    SUCCESS_STATUSES,
    PaymentGateway,
    SessionState,
    SessionStatus,
)
from boxoffice.services.inventory import InventoryLedger
from boxoffice.services.purchases import PurchaseStateMachine
from boxoffice.stores.interfaces import TicketingStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class CheckoutStarted:
    purchase: Purchase
    redirect_url: str


@dataclass(frozen=True)
class CheckoutStatus:
    """Outcome of a return-from-checkout: completed or payment_pending."""

    status: str
    purchase: Purchase
    tickets: list[Ticket] = field(default_factory=list)


@dataclass
class SweepResult:
    failed: list[int] = field(default_factory=list)
    completed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)


class CheckoutService:

    def __init__(
        self,
        store: TicketingStore,
        inventory: InventoryLedger,
        discounts: DiscountLedger,
        purchases: PurchaseStateMachine,
        gateway: PaymentGateway,
        frontend_url: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
        session_ttl_minutes: Optional[int] = None,
    ):
        self.store = store
        self.inventory = inventory
        self.discounts = discounts
        self.purchases = purchases
        self.gateway = gateway
        self.frontend_url = (frontend_url or get_settings().FRONTEND_URL).rstrip("/")
        self.clock = clock
        if session_ttl_minutes is None:
            session_ttl_minutes = get_settings().PENDING_PURCHASE_TTL_MINUTES
        self.session_ttl = timedelta(minutes=session_ttl_minutes)

    async def start_checkout(
        self,
        buyer_id: int,
        buyer_email: str,
        ticket_type_id: int,
        quantity: int,
        discount_code: Optional[str] = None,
    ) -> CheckoutStarted:
        """
        Claim stock, open a pending purchase and create its payment session.

        Stock is reserved before the discount is consumed, so a rejected
        code only needs the reservation handed back.
        """
        reservation = await self.inventory.reserve(ticket_type_id, quantity)
        event_id = reservation.ticket_type.event_id

        discount = None
        if discount_code:
            try:
                discount = await self.discounts.validate_and_consume(discount_code, event_id)
            except DomainError:
                await self.inventory.release(ticket_type_id, quantity)
                raise

        try:
            purchase = await self.purchases.open(buyer_id, buyer_email, reservation, quantity, discount)
        except Exception:
            await self.inventory.release(ticket_type_id, quantity)
            if discount is not None:
                await self.discounts.release(discount.discount_code_id)
            raise

        await cache_service.invalidate_ticket_types(event_id)

        try:
            session = await self.gateway.create_checkout_session(
                amount=purchase.total,
                currency=purchase.currency,
                success_url=f"{self.frontend_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{self.frontend_url}/events/{event_id}?payment_cancelled=true",
                metadata={
                    "purchase_id": str(purchase.id),
                    "event_id": str(event_id),
                    "description": f"{quantity} x {reservation.ticket_type.name}",
                    "customer_email": buyer_email,
                },
                expires_at=self.clock() + self.session_ttl,
            )
        except PaymentProviderError:
            logger.error("checkout_session_failed", purchase_id=purchase.id)
            await self.purchases.fail(purchase.id)
            await cache_service.invalidate_ticket_types(event_id)
            raise

        purchase = await self.purchases.attach_session(purchase.id, session.session_id)
        logger.info(
            "checkout_started",
            purchase_id=purchase.id,
            session_id=session.session_id,
            gateway=self.gateway.name,
        )
        return CheckoutStarted(purchase=purchase, redirect_url=session.redirect_url)

    async def verify_session(self, session_id: str) -> CheckoutStatus:
        purchase = await self.store.get_purchase_by_session(session_id)
        if purchase is None:
            raise PurchaseNotFound(session_id=session_id)

        try:
            result = await self.purchases.complete(purchase.id, session_id)
        except PaymentNotConfirmed:
            return CheckoutStatus(status="payment_pending", purchase=purchase)

        return CheckoutStatus(
            status=PaymentStatus.COMPLETED.value,
            purchase=result.purchase,
            tickets=result.tickets,
        )

    async def handle_webhook(self, payload: bytes, headers: Mapping[str, str]) -> str:
        """
        Process one processor callback; returns a short outcome label.

        Only signature failures and collaborator errors propagate. Closed
        purchases and unknown sessions are acknowledged so the processor
        stops retrying.
        """
        try:
            event = self.gateway.verify_webhook(payload, headers)
        except InvalidWebhookSignature:
            logger.warning("webhook_rejected", gateway=self.gateway.name)
            record_webhook("rejected")
            raise

        if not await cache_service.mark_webhook_seen(event.event_id):
            logger.info("webhook_duplicate", event_id=event.event_id)
            record_webhook("duplicate")
            return "duplicate"

        try:
            outcome = await self._apply(event.event_id, event.session_id, event.status.lower())
        except Exception:
            await cache_service.forget_webhook(event.event_id)
            raise

        record_webhook(outcome)
        return outcome

    async def _apply(self, event_id: str, session_id: Optional[str], status: str) -> str:
        if status not in SUCCESS_STATUSES and status not in FAILURE_STATUSES:
            logger.info("webhook_ignored", event_id=event_id, status=status)
            return "ignored"

        purchase = await self.store.get_purchase_by_session(session_id) if session_id else None
        if purchase is None:
            logger.warning("webhook_unknown_session", event_id=event_id, session_id=session_id)
            return "ignored"

        try:
            if status in SUCCESS_STATUSES:
                await self.purchases.complete(purchase.id, session_id)
                return "completed"
            await self.purchases.fail(purchase.id)
            await cache_service.invalidate_ticket_types(purchase.event_id)
            return "failed"
        except PurchaseClosed as exc:
            logger.error(
                "webhook_purchase_closed",
                event_id=event_id,
                purchase_id=purchase.id,
                status=exc.status,
                callback_status=status,
            )
            return "closed"
        except PaymentNotConfirmed:
            logger.info("webhook_payment_not_confirmed", event_id=event_id, purchase_id=purchase.id)
            return "pending"

    async def expire_pending(self, ttl_minutes: Optional[int] = None, limit: int = 100) -> SweepResult:
        """
        Close purchases left pending longer than the TTL.

        A session still open at the processor is expired there first, so
        the buyer cannot pay after the stock went back on sale. A session
        the processor reports as paid is completed instead of failed; one
        whose state cannot be settled is left for the next run.
        """
        ttl = ttl_minutes if ttl_minutes is not None else get_settings().PENDING_PURCHASE_TTL_MINUTES
        cutoff = self.clock() - timedelta(minutes=ttl)
        result = SweepResult()

        for purchase in await self.store.list_pending_before(cutoff, limit=limit):
            try:
                if purchase.payment_session_id:
                    state = await self._close_session(purchase.payment_session_id)
                    if state.is_paid:
                        await self.purchases.complete(purchase.id, purchase.payment_session_id)
                        result.completed.append(purchase.id)
                        continue
                    if state.status not in (SessionStatus.EXPIRED, SessionStatus.FAILED):
                        logger.warning(
                            "expire_pending_session_still_open",
                            purchase_id=purchase.id,
                            session_status=state.status.value,
                        )
                        result.skipped.append(purchase.id)
                        continue
                await self.purchases.fail(purchase.id)
                await cache_service.invalidate_ticket_types(purchase.event_id)
                result.failed.append(purchase.id)
            except (PaymentProviderError, PurchaseClosed) as exc:
                logger.warning("expire_pending_skipped", purchase_id=purchase.id, reason=str(exc))
                result.skipped.append(purchase.id)

        logger.info(
            "expire_pending_finished",
            cutoff=cutoff.isoformat(),
            failed=len(result.failed),
            completed=len(result.completed),
            skipped=len(result.skipped),
        )
        return result

    async def _close_session(self, session_id: str) -> SessionState:
        state = await self.gateway.retrieve_session(session_id)
        if state.status is SessionStatus.OPEN:
            state = await self.gateway.expire_session(session_id)
        return state
