"""
Tests for the Stripe gateway's session lifetime handling.
The SDK calls are replaced with monkeypatched functions; nothing leaves the process.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
import stripe

from boxoffice.core.errors import PaymentProviderError
from boxoffice.db.base import utcnow
from boxoffice.infrastructure import stripe_gateway
from boxoffice.infrastructure.stripe_gateway import StripeGateway
from boxoffice.services.interfaces.payment import SessionStatus


class FakeSession(dict):
    @property
    def id(self):
        return self["id"]

    @property
    def url(self):
        return self.get("url")


@pytest.fixture
def gateway():
    return StripeGateway("sk_test", "whsec_test")


def test_expiry_is_clamped_to_what_stripe_accepts():
    now = utcnow()

    soon = stripe_gateway._expires_at_timestamp(now + timedelta(minutes=5))
    later = stripe_gateway._expires_at_timestamp(now + timedelta(hours=2))
    too_late = stripe_gateway._expires_at_timestamp(now + timedelta(days=3))

    assert soon >= int((now + timedelta(minutes=30)).timestamp())
    assert later == int((now + timedelta(hours=2)).timestamp())
    assert too_late <= int((now + timedelta(hours=24)).timestamp())


@pytest.mark.asyncio
async def test_create_passes_expires_at(gateway, monkeypatch):
    seen = {}

    def create(**kwargs):
        seen.update(kwargs)
        return FakeSession(id="cs_1", url="https://checkout.stripe.test/cs_1")

    monkeypatch.setattr(stripe.checkout.Session, "create", create)
    expires_at = utcnow() + timedelta(hours=1)

    await gateway.create_checkout_session(
        amount=Decimal("10.00"),
        currency="USD",
        success_url="https://app.test/ok",
        cancel_url="https://app.test/cancel",
        metadata={"purchase_id": "1"},
        expires_at=expires_at,
    )

    assert seen["expires_at"] == int(expires_at.timestamp())


@pytest.mark.asyncio
async def test_expire_open_session(gateway, monkeypatch):
    def expire(session_id, api_key=None):
        return FakeSession(id=session_id, status="expired", payment_status="unpaid")

    monkeypatch.setattr(stripe.checkout.Session, "expire", expire)

    state = await gateway.expire_session("cs_1")

    assert state.status is SessionStatus.EXPIRED


@pytest.mark.asyncio
async def test_expire_reports_payment_that_beat_it(gateway, monkeypatch):
    def expire(session_id, api_key=None):
        raise stripe.InvalidRequestError("Only open sessions can be expired", "session")

    def retrieve(session_id, api_key=None):
        return FakeSession(id=session_id, status="complete", payment_status="paid", payment_intent="pi_1")

    monkeypatch.setattr(stripe.checkout.Session, "expire", expire)
    monkeypatch.setattr(stripe.checkout.Session, "retrieve", retrieve)

    state = await gateway.expire_session("cs_1")

    assert state.is_paid
    assert state.payment_ref == "pi_1"


@pytest.mark.asyncio
async def test_expire_outage_is_a_provider_error(gateway, monkeypatch):
    def expire(session_id, api_key=None):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.checkout.Session, "expire", expire)

    with pytest.raises(PaymentProviderError):
        await gateway.expire_session("cs_1")
