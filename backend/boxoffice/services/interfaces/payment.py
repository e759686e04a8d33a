"""
Payment processor interface.
Allows swapping between the local MockPay gateway and Stripe.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Mapping, Optional


class SessionStatus(str, Enum):
    OPEN = "open"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"


# Processor vocabulary -> what the purchase state machine should do
SUCCESS_STATUSES = frozenset({"paid", "approved", "succeeded", "complete", "completed"})
FAILURE_STATUSES = frozenset({"failed", "expired", "rejected", "cancelled", "canceled"})


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    redirect_url: str


@dataclass(frozen=True)
class SessionState:
    session_id: str
    status: SessionStatus
    payment_ref: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.status is SessionStatus.PAID


@dataclass(frozen=True)
class WebhookEvent:
    """A processor callback after its signature has been verified."""

    event_id: str
    event_type: str
    session_id: Optional[str]
    status: str
    payment_ref: Optional[str] = None
    raw: Mapping = field(default_factory=dict)


class PaymentGateway(ABC):
    """
    Interface for hosted-checkout payment processors.

    Implementations:
    - MockPayGateway: in-process processor with HMAC-signed webhooks
    - StripeGateway: Stripe Checkout Sessions
    """

    name: str = "gateway"

    @abstractmethod
    async def create_checkout_session(
        self,
        amount: Decimal,
        currency: str,
        success_url: str,
        cancel_url: str,
        metadata: Mapping[str, str],
        expires_at: Optional[datetime] = None,
    ) -> CheckoutSession:
        """
        Create a hosted checkout session.

        After `expires_at` the processor must refuse to take payment for it.

        Raises:
            PaymentProviderError: processor unreachable or rejected the request
        """

    @abstractmethod
    async def retrieve_session(self, session_id: str) -> SessionState:
        """Ask the processor what it currently knows about a session."""

    @abstractmethod
    async def expire_session(self, session_id: str) -> SessionState:
        """
        Close an open session so the buyer can no longer pay for it.

        Returns the session's final state: EXPIRED, or PAID when the buyer
        finished just before the processor closed it.

        Raises:
            PaymentProviderError: processor unreachable
        """

    @abstractmethod
    def verify_webhook(self, payload: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        """
        Authenticate and parse a callback body.

        Raises:
            InvalidWebhookSignature: signature missing, wrong, or body unparsable
        """
