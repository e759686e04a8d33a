"""
MockPay: an in-process payment processor for local runs, demos and tests.

Sessions live in memory. `settle()` plays the role of the buyer finishing
(or abandoning) the hosted checkout page: it records the outcome and
returns a webhook body signed the way a real processor would sign it, so
the callback goes through the same verification path as production
traffic.
"""

import base64
import hashlib
import hmac
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Optional

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

SIGNATURE_HEADER = "x-mockpay-signature"


@dataclass
class _MockSession:
    session_id: str
    amount: Decimal
    currency: str
    success_url: str
    cancel_url: str
    metadata: dict = field(default_factory=dict)
    status: SessionStatus = SessionStatus.OPEN
    payment_ref: Optional[str] = None
    expires_at: Optional[datetime] = None

    def lapse_if_due(self, now: datetime) -> None:
        if self.status is SessionStatus.OPEN and self.expires_at is not None and now >= self.expires_at:
            self.status = SessionStatus.EXPIRED


class MockPayGateway(PaymentGateway):

    name = "mockpay"

    def __init__(self, secret: str, base_path: str = "/api/v1/mockpay"):
        self.secret = secret
        self.base_path = base_path
        self.sessions: dict[str, _MockSession] = {}

    def sign(self, payload: bytes) -> str:
        mac = hmac.new(self.secret.encode(), payload, hashlib.sha256).digest()
        return base64.b64encode(mac).decode()

    async def create_checkout_session(
        self,
        amount: Decimal,
        currency: str,
        success_url: str,
        cancel_url: str,
        metadata: Mapping[str, str],
        expires_at: Optional[datetime] = None,
    ) -> CheckoutSession:
        session_id = f"mock_{uuid.uuid4().hex}"
        self.sessions[session_id] = _MockSession(
            session_id=session_id,
            amount=amount,
            currency=currency,
            success_url=success_url.replace("{CHECKOUT_SESSION_ID}", session_id),
            cancel_url=cancel_url,
            metadata=dict(metadata),
            expires_at=expires_at,
        )
        logger.info("mockpay_session_created", session_id=session_id, amount=str(amount), currency=currency)
        return CheckoutSession(session_id=session_id, redirect_url=f"{self.base_path}/{session_id}")

    async def retrieve_session(self, session_id: str) -> SessionState:
        session = self.sessions.get(session_id)
        if session is None:
            # Sessions do not survive a restart; treat them as lapsed
            return SessionState(session_id=session_id, status=SessionStatus.EXPIRED)
        session.lapse_if_due(utcnow())
        return SessionState(session_id=session_id, status=session.status, payment_ref=session.payment_ref)

    async def expire_session(self, session_id: str) -> SessionState:
        session = self.sessions.get(session_id)
        if session is None:
            return SessionState(session_id=session_id, status=SessionStatus.EXPIRED)
        if session.status is SessionStatus.OPEN:
            session.status = SessionStatus.EXPIRED
            logger.info("mockpay_session_expired", session_id=session_id)
        return SessionState(session_id=session_id, status=session.status, payment_ref=session.payment_ref)

    def settle(self, session_id: str, outcome: str = "paid") -> tuple[bytes, dict[str, str]]:
        """
        Finish a session and build the signed callback the processor would send.

        `outcome` is one of paid, failed, expired.
        """
        session = self.sessions.get(session_id)
        if session is None:
            raise PaymentProviderError(f"unknown session {session_id}")

        session.lapse_if_due(utcnow())
        if session.status is not SessionStatus.OPEN:
            raise PaymentProviderError(f"session {session_id} is already {session.status.value}")

        session.status = SessionStatus(outcome)
        if session.status is SessionStatus.PAID and session.payment_ref is None:
            session.payment_ref = f"mockpay_pi_{uuid.uuid4().hex[:16]}"

        payload = json.dumps(
            {
                "id": f"evt_{uuid.uuid4().hex}",
                "type": f"checkout.session.{outcome}",
                "payment_session_id": session_id,
                "status": outcome,
                "payment_ref": session.payment_ref,
            }
        ).encode()
        logger.info("mockpay_session_settled", session_id=session_id, outcome=outcome)
        return payload, {SIGNATURE_HEADER: self.sign(payload)}

    def redirect_for(self, session_id: str) -> str:
        session = self.sessions.get(session_id)
        if session is None:
            raise PaymentProviderError(f"unknown session {session_id}")
        return session.success_url if session.status is SessionStatus.PAID else session.cancel_url

    def verify_webhook(self, payload: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        sig = headers.get(SIGNATURE_HEADER)
        if not sig or not hmac.compare_digest(self.sign(payload), sig):
            raise InvalidWebhookSignature()
        try:
            event = json.loads(payload.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidWebhookSignature("Invalid JSON") from exc

        return WebhookEvent(
            event_id=str(event.get("id", "")),
            event_type=str(event.get("type", "")),
            session_id=event.get("payment_session_id"),
            status=str(event.get("status") or event.get("type", "").split(".")[-1]),
            payment_ref=event.get("payment_ref"),
            raw=event,
        )
