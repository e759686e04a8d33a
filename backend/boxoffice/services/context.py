"""
Explicit wiring of the ticketing components.

Every component receives its collaborators at construction; nothing in
the core reaches for a module-level client. The API builds one context
at startup, tests build their own around a MemoryTicketingStore.
"""

from dataclasses import dataclass
from typing import Optional

from boxoffice.core.config import Settings, get_settings
from boxoffice.services.checkout import CheckoutService
from boxoffice.services.discounts import DiscountLedger
from boxoffice.services.interfaces.notifier import TicketNotifier
from boxoffice.services.interfaces.payment import PaymentGateway
from boxoffice.services.inventory import InventoryLedger
from boxoffice.services.issuance import TicketIssuer
from boxoffice.services.purchases import PurchaseStateMachine
from boxoffice.services.redemption import RedemptionGate
from boxoffice.stores.interfaces import TicketingStore


@dataclass
class TicketingContext:
    store: TicketingStore
    gateway: PaymentGateway
    inventory: InventoryLedger
    discounts: DiscountLedger
    issuer: TicketIssuer
    purchases: PurchaseStateMachine
    redemption: RedemptionGate
    checkout: CheckoutService


def make_gateway(settings: Settings) -> PaymentGateway:
    if settings.PAYMENT_PROVIDER == "stripe":
        from boxoffice.infrastructure.stripe_gateway import StripeGateway

        return StripeGateway(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)
    if settings.PAYMENT_PROVIDER == "mockpay":
        from boxoffice.infrastructure.mockpay import MockPayGateway

        return MockPayGateway(settings.MOCKPAY_SECRET)
    raise ValueError(f"Unknown payment provider: {settings.PAYMENT_PROVIDER}")


def make_notifier(settings: Settings) -> TicketNotifier:
    from boxoffice.infrastructure.email import HttpEmailNotifier, LoggingNotifier

    if settings.EMAIL_ENABLED and settings.EMAIL_API_URL:
        return HttpEmailNotifier(settings.EMAIL_API_URL, settings.EMAIL_API_KEY, settings.EMAIL_FROM)
    return LoggingNotifier()


def build_context(
    store: TicketingStore,
    gateway: Optional[PaymentGateway] = None,
    notifier: Optional[TicketNotifier] = None,
    settings: Optional[Settings] = None,
) -> TicketingContext:
    settings = settings or get_settings()
    gateway = gateway or make_gateway(settings)

    inventory = InventoryLedger(store, max_retries=settings.RESERVATION_MAX_RETRIES)
    discounts = DiscountLedger(store, max_retries=settings.RESERVATION_MAX_RETRIES)
    issuer = TicketIssuer(store, notifier=notifier, signing_key=settings.ticket_signing_key)
    purchases = PurchaseStateMachine(
        store,
        gateway,
        issuer,
        fee_rate=settings.PLATFORM_FEE_RATE,
        currency=settings.CURRENCY,
    )
    return TicketingContext(
        store=store,
        gateway=gateway,
        inventory=inventory,
        discounts=discounts,
        issuer=issuer,
        purchases=purchases,
        redemption=RedemptionGate(store, signing_key=settings.ticket_signing_key),
        checkout=CheckoutService(
            store,
            inventory,
            discounts,
            purchases,
            gateway,
            settings.FRONTEND_URL,
            session_ttl_minutes=settings.PENDING_PURCHASE_TTL_MINUTES,
        ),
    )
