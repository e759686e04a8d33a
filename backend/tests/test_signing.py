"""
Tests for signed ticket payloads.
"""

from datetime import datetime, timezone

import pytest

from boxoffice.core.errors import InvalidTicketPayload
from boxoffice.core.signing import sign_ticket_payload, verify_ticket_payload

ISSUED_AT = datetime(2026, 5, 1, 18, 30, tzinfo=timezone.utc)


def test_verify_decodes_fields():
    payload = sign_ticket_payload("TKT-ABCDEFGHJKLM", 17, ISSUED_AT, "secret")

    decoded = verify_ticket_payload(payload, "secret")

    assert payload.startswith("v1.")
    assert decoded.ticket_number == "TKT-ABCDEFGHJKLM"
    assert decoded.event_id == 17
    assert decoded.issued_at == ISSUED_AT


def test_wrong_key_is_rejected():
    payload = sign_ticket_payload("TKT-ABCDEFGHJKLM", 17, ISSUED_AT, "secret")

    with pytest.raises(InvalidTicketPayload):
        verify_ticket_payload(payload, "another-secret")


def test_body_swap_is_rejected():
    """Re-using a valid signature with another ticket's body must fail."""
    mine = sign_ticket_payload("TKT-AAAAAAAAAAAA", 1, ISSUED_AT, "secret")
    theirs = sign_ticket_payload("TKT-BBBBBBBBBBBB", 1, ISSUED_AT, "secret")
    forged = ".".join([mine.split(".")[0], theirs.split(".")[1], mine.split(".")[2]])

    with pytest.raises(InvalidTicketPayload):
        verify_ticket_payload(forged, "secret")


@pytest.mark.parametrize("payload", ["", "TKT-ABCDEFGHJKLM", "v2.abc.def", "v1.only-two"])
def test_garbage_is_rejected(payload):
    with pytest.raises(InvalidTicketPayload):
        verify_ticket_payload(payload, "secret")
