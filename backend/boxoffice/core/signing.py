"""
HMAC-signed ticket validation payloads.

The payload is what gets encoded into a ticket's QR code. It binds the
ticket number to its event and issue time so a door scanner can reject
codes that were not minted by this service before touching the database.

Format::

    v1.<base64url(json)>.<hex signature>

The JSON body is ``{"t": ticket_number, "e": event_id, "iat": unix_ts}``.
Signatures are truncated HMAC-SHA256 (128 bits) compared with
``hmac.compare_digest``. The ticket row remains authoritative: a valid
signature only proves provenance, redemption still goes through the
ticket's status transition.
"""

import base64
import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timezone

from boxoffice.core.errors import InvalidTicketPayload

PAYLOAD_VERSION = "v1"
SIGNATURE_LENGTH = 32

_KEY_DOMAIN = b"boxoffice:ticket-payload:v1"


@dataclass(frozen=True)
class TicketPayload:
    ticket_number: str
    event_id: int
    issued_at: datetime


def _derive_key(secret: str) -> bytes:
    return hmac.new(secret.encode(), _KEY_DOMAIN, hashlib.sha256).digest()


def _sign(body: str, secret: str) -> str:
    mac = hmac.new(_derive_key(secret), body.encode(), hashlib.sha256).hexdigest()
    return mac[:SIGNATURE_LENGTH]


def sign_ticket_payload(ticket_number: str, event_id: int, issued_at: datetime, secret: str) -> str:
    raw = json.dumps(
        {"t": ticket_number, "e": event_id, "iat": int(issued_at.timestamp())},
        separators=(",", ":"),
        sort_keys=True,
    )
    body = base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")
    signed = f"{PAYLOAD_VERSION}.{body}"
    return f"{signed}.{_sign(signed, secret)}"


def verify_ticket_payload(payload: str, secret: str) -> TicketPayload:
    """Check the signature and decode the payload, raising InvalidTicketPayload."""
    parts = payload.strip().split(".")
    if len(parts) != 3 or parts[0] != PAYLOAD_VERSION:
        raise InvalidTicketPayload("Unrecognized ticket code")

    signed = f"{parts[0]}.{parts[1]}"
    if not hmac.compare_digest(_sign(signed, secret), parts[2]):
        raise InvalidTicketPayload()

    try:
        padded = parts[1] + "=" * (-len(parts[1]) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode()))
        return TicketPayload(
            ticket_number=str(data["t"]),
            event_id=int(data["e"]),
            issued_at=datetime.fromtimestamp(int(data["iat"]), tz=timezone.utc),
        )
    except (ValueError, KeyError, TypeError) as exc:
        raise InvalidTicketPayload("Malformed ticket code") from exc
