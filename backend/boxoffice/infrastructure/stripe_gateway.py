"""
Stripe Checkout gateway.

The stripe SDK is synchronous, so every API call is pushed to a worker
thread to keep the event loop free.
"""

import asyncio
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional

import stripe

from boxoffice.core.errors import InvalidWebhookSignature, PaymentProviderError
from boxoffice.core.logging import get_logger
from boxoffice.db.base import utcnow
from boxoffice.services.interfaces.payment import (
    CheckoutSession,
    PaymentGateway,
    SessionState,
    SessionStatus,
    WebhookEvent,
)

logger = get_logger(__name__)

SIGNATURE_HEADER = "stripe-signature"

# Stripe accepts expires_at between 30 minutes and 24 hours from now
MIN_SESSION_LIFETIME = timedelta(minutes=31)
MAX_SESSION_LIFETIME = timedelta(hours=23, minutes=59)


def _to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _expires_at_timestamp(expires_at: datetime) -> int:
    now = utcnow()
    expires_at = min(max(expires_at, now + MIN_SESSION_LIFETIME), now + MAX_SESSION_LIFETIME)
    return int(expires_at.timestamp())


def _session_status(session) -> SessionStatus:
    if session.get("payment_status") == "paid":
        return SessionStatus.PAID
    if session.get("status") == "expired":
        return SessionStatus.EXPIRED
    return SessionStatus.OPEN


class StripeGateway(PaymentGateway):

    name = "stripe"

    def __init__(self, secret_key: str, webhook_secret: str):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    async def create_checkout_session(
        self,
        amount: Decimal,
        currency: str,
        success_url: str,
        cancel_url: str,
        metadata: Mapping[str, str],
        expires_at: Optional[datetime] = None,
    ) -> CheckoutSession:
        session_data = dict(  # noqa: C408
            api_key=self.secret_key,
            mode="payment",
            line_items=[
                {
                    "price_data": {
                        "currency": currency.lower(),
                        "product_data": {"name": metadata.get("description", "Tickets")},
                        "unit_amount": _to_minor_units(amount),
                    },
                    "quantity": 1,
                }
            ],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=dict(metadata),
        )
        if metadata.get("customer_email"):
            session_data["customer_email"] = metadata["customer_email"]
        if expires_at is not None:
            session_data["expires_at"] = _expires_at_timestamp(expires_at)

        try:
            session = await asyncio.to_thread(stripe.checkout.Session.create, **session_data)
        except stripe.StripeError as e:
            logger.error("stripe_session_create_failed", error=str(e))
            raise PaymentProviderError(str(e)) from e

        return CheckoutSession(session_id=session.id, redirect_url=session.url)

    async def retrieve_session(self, session_id: str) -> SessionState:
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.retrieve, session_id, api_key=self.secret_key
            )
        except stripe.StripeError as e:
            logger.error("stripe_session_retrieve_failed", session_id=session_id, error=str(e))
            raise PaymentProviderError(str(e)) from e

        return SessionState(
            session_id=session.id,
            status=_session_status(session),
            payment_ref=session.get("payment_intent"),
        )

    async def expire_session(self, session_id: str) -> SessionState:
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.expire, session_id, api_key=self.secret_key
            )
        except stripe.InvalidRequestError as e:
            # Only open sessions can be expired; report whatever it became instead
            logger.info("stripe_session_not_expirable", session_id=session_id, error=str(e))
            return await self.retrieve_session(session_id)
        except stripe.StripeError as e:
            logger.error("stripe_session_expire_failed", session_id=session_id, error=str(e))
            raise PaymentProviderError(str(e)) from e

        logger.info("stripe_session_expired", session_id=session_id)
        return SessionState(
            session_id=session.id,
            status=_session_status(session),
            payment_ref=session.get("payment_intent"),
        )

    def verify_webhook(self, payload: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        sig_header = headers.get(SIGNATURE_HEADER)
        if not sig_header:
            raise InvalidWebhookSignature("Missing Stripe signature")
        try:
            event = stripe.Webhook.construct_event(payload, sig_header, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise InvalidWebhookSignature("Invalid Stripe signature") from e
        except ValueError as e:
            raise InvalidWebhookSignature("Invalid JSON") from e

        obj = event["data"]["object"]
        session_id = obj.get("id") if event["type"].startswith("checkout.session.") else None
        if event["type"] == "checkout.session.completed":
            status = "paid" if obj.get("payment_status") == "paid" else "pending"
        elif event["type"] == "checkout.session.async_payment_succeeded":
            status = "paid"
        elif event["type"] in ("checkout.session.async_payment_failed",):
            status = "failed"
        elif event["type"] == "checkout.session.expired":
            status = "expired"
        else:
            status = event["type"]

        return WebhookEvent(
            event_id=event["id"],
            event_type=event["type"],
            session_id=session_id,
            status=status,
            payment_ref=obj.get("payment_intent"),
            raw=obj,
        )
