from boxoffice.services.interfaces.notifier import TicketArtifact, TicketNotifier
from boxoffice.services.interfaces.payment import (
    FAILURE_STATUSES,
    SUCCESS_STATUSES,
    CheckoutSession,
    PaymentGateway,
    SessionState,
    SessionStatus,
    WebhookEvent,
)

__all__ = [
    "TicketArtifact",
    "TicketNotifier",
    "FAILURE_STATUSES",
    "SUCCESS_STATUSES",
    "CheckoutSession",
    "PaymentGateway",
    "SessionState",
    "SessionStatus",
    "WebhookEvent",
]
