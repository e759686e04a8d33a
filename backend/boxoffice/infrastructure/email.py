"""
Ticket delivery through a transactional email HTTP API.

The request body follows the common "JSON message with base64
attachments" shape accepted by most providers:

    {"from": ..., "to": [...], "subject": ..., "text": ...,
     "attachments": [{"filename": ..., "content": <base64>, "content_type": ...}]}
"""

import base64
from typing import Optional

import httpx

from boxoffice.core.logging import get_logger
from boxoffice.domain import Purchase, Ticket
from boxoffice.infrastructure.qr import render_qr_png
from boxoffice.services.interfaces.notifier import TicketArtifact, TicketNotifier

logger = get_logger(__name__)


def _qr_artifact(ticket: Ticket) -> TicketArtifact:
    return TicketArtifact(
        ticket_number=ticket.ticket_number,
        filename=f"{ticket.ticket_number}.png",
        content_type="image/png",
        content=render_qr_png(ticket.validation_payload),
    )


def _message_text(purchase: Purchase, artifacts: list[TicketArtifact]) -> str:
    numbers = "\n".join(f"  - {a.ticket_number}" for a in artifacts)
    return (
        f"Thanks for your purchase #{purchase.id}.\n\n"
        f"Your tickets:\n{numbers}\n\n"
        "Show the attached QR code at the door."
    )


class LoggingNotifier(TicketNotifier):
    """Renders the QR codes but only logs the delivery (email disabled)."""

    def render(self, ticket: Ticket) -> TicketArtifact:
        return _qr_artifact(ticket)

    async def deliver(self, artifacts: list[TicketArtifact], address: str, purchase: Purchase) -> bool:
        logger.info(
            "ticket_delivery_logged",
            purchase_id=purchase.id,
            to=address,
            tickets=[a.ticket_number for a in artifacts],
        )
        return True


class HttpEmailNotifier(TicketNotifier):

    def __init__(
        self,
        api_url: str,
        api_key: str,
        sender: str,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0))
        return self._client

    def render(self, ticket: Ticket) -> TicketArtifact:
        return _qr_artifact(ticket)

    async def deliver(self, artifacts: list[TicketArtifact], address: str, purchase: Purchase) -> bool:
        body = {
            "from": self.sender,
            "to": [address],
            "subject": f"Your tickets - order #{purchase.id}",
            "text": _message_text(purchase, artifacts),
            "attachments": [
                {
                    "filename": a.filename,
                    "content": base64.b64encode(a.content).decode("ascii"),
                    "content_type": a.content_type,
                }
                for a in artifacts
            ],
        }

        try:
            response = await self._get_client().post(
                self.api_url,
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.RequestError as e:
            logger.error("email_request_failed", purchase_id=purchase.id, error=str(e))
            return False

        if response.is_success:
            return True

        logger.error(
            "email_rejected",
            purchase_id=purchase.id,
            status_code=response.status_code,
            body=response.text[:200],
        )
        return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
