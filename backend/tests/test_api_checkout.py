"""
Tests for the checkout HTTP flow: start, MockPay hosted page, webhook,
return redirect, purchases and door check-in.
"""

import pytest
from httpx import AsyncClient

from boxoffice.infrastructure.mockpay import SIGNATURE_HEADER


async def _checkout(client: AsyncClient, ticket_type_id: int, quantity: int = 2, headers=None, **extra):
    body = {"ticket_type_id": ticket_type_id, "quantity": quantity, **extra}
    return await client.post("/api/v1/checkout/", json=body, headers=headers or {})


@pytest.mark.asyncio
async def test_checkout_returns_redirect(client: AsyncClient, auth_headers, test_ticket_type):
    response = await _checkout(client, test_ticket_type.id, headers=auth_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["purchase"]["payment_status"] == "pending"
    assert data["purchase"]["total"] == "550.00"
    assert data["redirect_url"] == f"/api/v1/mockpay/{data['session_id']}"

    listed = await client.get(f"/api/v1/events/{test_ticket_type.event_id}/ticket-types")
    assert listed.json()["ticket_types"][0]["available"] == 3


@pytest.mark.asyncio
async def test_guest_checkout_needs_contact_details(client: AsyncClient, test_ticket_type):
    response = await _checkout(client, test_ticket_type.id)

    assert response.status_code == 400
    assert response.json()["error"] == "GUEST_DETAILS_REQUIRED"


@pytest.mark.asyncio
async def test_registered_email_cannot_check_out_as_guest(client: AsyncClient, test_user, test_ticket_type):
    response = await _checkout(
        client, test_ticket_type.id, guest_email="test@example.com", guest_name="Imposter"
    )

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_oversized_order_is_rejected(client: AsyncClient, auth_headers, test_ticket_type):
    response = await _checkout(client, test_ticket_type.id, quantity=6, headers=auth_headers)

    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "INSUFFICIENT_STOCK"
    assert data["available"] == 5


@pytest.mark.asyncio
async def test_guest_pays_on_hosted_page(client: AsyncClient, test_ticket_type):
    started = await _checkout(
        client, test_ticket_type.id, quantity=2, guest_email="guest@example.com", guest_name="Guest"
    )
    session_id = started.json()["session_id"]

    paid = await client.post(f"/api/v1/mockpay/{session_id}", params={"outcome": "paid"})
    assert paid.status_code == 200
    assert paid.json()["webhook"] == "completed"
    assert paid.json()["redirect_url"].endswith(f"session_id={session_id}")

    verified = await client.get(f"/api/v1/checkout/verify/{session_id}")
    assert verified.status_code == 200
    data = verified.json()
    assert data["status"] == "completed"
    assert len(data["tickets"]) == 2
    assert all(t["status"] == "valid" for t in data["tickets"])


@pytest.mark.asyncio
async def test_verify_before_payment_is_pending(client: AsyncClient, auth_headers, test_ticket_type):
    started = await _checkout(client, test_ticket_type.id, headers=auth_headers)

    verified = await client.get(f"/api/v1/checkout/verify/{started.json()['session_id']}")

    assert verified.status_code == 200
    assert verified.json()["status"] == "payment_pending"
    assert verified.json()["tickets"] == []


@pytest.mark.asyncio
async def test_abandoned_payment_frees_stock(client: AsyncClient, auth_headers, test_ticket_type):
    started = await _checkout(client, test_ticket_type.id, quantity=5, headers=auth_headers)
    session_id = started.json()["session_id"]

    failed = await client.post(f"/api/v1/mockpay/{session_id}", params={"outcome": "expired"})
    assert failed.json()["webhook"] == "failed"

    again = await _checkout(client, test_ticket_type.id, quantity=5, headers=auth_headers)
    assert again.status_code == 201


@pytest.mark.asyncio
async def test_signed_webhook_is_accepted_once(client: AsyncClient, api_gateway, auth_headers, test_ticket_type):
    started = await _checkout(client, test_ticket_type.id, quantity=1, headers=auth_headers)
    payload, headers = api_gateway.settle(started.json()["session_id"], "paid")

    first = await client.post("/api/v1/payments/webhook", content=payload, headers=headers)
    second = await client.post("/api/v1/payments/webhook", content=payload, headers=headers)

    assert first.status_code == 200
    assert first.json() == {"received": True, "outcome": "completed"}
    assert second.status_code == 200

    detail = await client.get(f"/api/v1/purchases/{started.json()['purchase']['id']}", headers=auth_headers)
    assert detail.status_code == 200
    assert detail.json()["purchase"]["payment_status"] == "completed"
    assert len(detail.json()["tickets"]) == 1


@pytest.mark.asyncio
async def test_unsigned_webhook_is_rejected(client: AsyncClient, api_gateway, auth_headers, test_ticket_type):
    started = await _checkout(client, test_ticket_type.id, quantity=1, headers=auth_headers)
    payload, _ = api_gateway.settle(started.json()["session_id"], "paid")

    response = await client.post("/api/v1/payments/webhook", content=payload, headers={SIGNATURE_HEADER: "nope"})

    assert response.status_code == 403
    assert response.json()["error"] == "INVALID_WEBHOOK_SIGNATURE"


@pytest.mark.asyncio
async def test_purchase_is_private(client: AsyncClient, auth_headers, organizer_headers, test_ticket_type):
    started = await _checkout(client, test_ticket_type.id, quantity=1, headers=auth_headers)
    purchase_id = started.json()["purchase"]["id"]

    response = await client.get(f"/api/v1/purchases/{purchase_id}", headers=organizer_headers)

    assert response.status_code == 403
    assert response.json()["error"] == "NOT_PURCHASE_OWNER"


@pytest.mark.asyncio
async def test_discounted_checkout(client: AsyncClient, auth_headers, organizer_headers, test_event, test_ticket_type):
    await client.post(f"/api/v1/events/{test_event.id}/discount-codes", json={
        "code": "FIFTY",
        "discount_type": "fixed",
        "discount_value": "50.00",
        "max_uses": 1,
    }, headers=organizer_headers)

    first = await _checkout(client, test_ticket_type.id, quantity=1, headers=auth_headers, discount_code="fifty")
    assert first.status_code == 201
    assert first.json()["purchase"]["discount"] == "50.00"
    assert first.json()["purchase"]["total"] == "225.00"

    second = await _checkout(client, test_ticket_type.id, quantity=1, headers=auth_headers, discount_code="FIFTY")
    assert second.status_code == 400
    assert second.json()["error"] == "DISCOUNT_USAGE_LIMIT_REACHED"


async def _paid_tickets(client: AsyncClient, headers, ticket_type_id: int, quantity: int = 1) -> list:
    started = await _checkout(client, ticket_type_id, quantity=quantity, headers=headers)
    session_id = started.json()["session_id"]
    await client.post(f"/api/v1/mockpay/{session_id}", params={"outcome": "paid"})
    verified = await client.get(f"/api/v1/checkout/verify/{session_id}")
    return verified.json()["tickets"]


@pytest.mark.asyncio
async def test_my_tickets(client: AsyncClient, auth_headers, test_ticket_type):
    await _paid_tickets(client, auth_headers, test_ticket_type.id, quantity=2)

    response = await client.get("/api/v1/tickets/", headers=auth_headers)

    assert response.status_code == 200
    assert len(response.json()) == 2


@pytest.mark.asyncio
async def test_door_check_in_by_qr_payload(
    client: AsyncClient, auth_headers, organizer_headers, organizer, test_event, test_ticket_type
):
    [ticket] = await _paid_tickets(client, auth_headers, test_ticket_type.id)

    first = await client.post("/api/v1/tickets/check-in", json={
        "event_id": test_event.id,
        "payload": ticket["validation_payload"],
    }, headers=organizer_headers)
    assert first.status_code == 200
    assert first.json()["ticket"]["status"] == "used"
    assert first.json()["checked_in_by"] == organizer.id

    second = await client.post("/api/v1/tickets/check-in", json={
        "event_id": test_event.id,
        "ticket_number": ticket["ticket_number"],
        "method": "manual",
    }, headers=organizer_headers)
    assert second.status_code == 409
    body = second.json()
    assert body["error"] == "TICKET_ALREADY_USED"
    assert body["checked_in_by"] == organizer.id

    stats = await client.get(f"/api/v1/events/{test_event.id}/stats/check-ins", headers=organizer_headers)
    assert stats.json()["checked_in"] == 1
    assert stats.json()["percentage"] == 100.0


@pytest.mark.asyncio
async def test_only_organizer_checks_in(client: AsyncClient, auth_headers, test_event, test_ticket_type):
    [ticket] = await _paid_tickets(client, auth_headers, test_ticket_type.id)

    response = await client.post("/api/v1/tickets/check-in", json={
        "event_id": test_event.id,
        "ticket_number": ticket["ticket_number"],
    }, headers=auth_headers)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_check_in_needs_an_identifier(client: AsyncClient, organizer_headers, test_event):
    response = await client.post("/api/v1/tickets/check-in", json={"event_id": test_event.id}, headers=organizer_headers)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_cancelled_ticket_is_refused_at_the_door(
    client: AsyncClient, auth_headers, organizer_headers, test_event, test_ticket_type
):
    [ticket] = await _paid_tickets(client, auth_headers, test_ticket_type.id)

    cancelled = await client.post(f"/api/v1/tickets/{ticket['ticket_number']}/cancel", headers=organizer_headers)
    assert cancelled.json()["status"] == "cancelled"

    response = await client.post("/api/v1/tickets/check-in", json={
        "event_id": test_event.id,
        "ticket_number": ticket["ticket_number"],
    }, headers=organizer_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "TICKET_NOT_VALID"


@pytest.mark.asyncio
async def test_sales_stats(client: AsyncClient, auth_headers, organizer_headers, test_event, test_ticket_type):
    await _paid_tickets(client, auth_headers, test_ticket_type.id, quantity=2)
    await _checkout(client, test_ticket_type.id, quantity=1, headers=auth_headers)

    response = await client.get(f"/api/v1/events/{test_event.id}/stats/sales", headers=organizer_headers)

    data = response.json()
    assert data["completed_purchases"] == 1
    assert data["tickets_sold"] == 2
    assert data["revenue"] == "550.00"
    assert data["pending_purchases"] == 1


@pytest.mark.asyncio
async def test_health_and_metrics(client: AsyncClient):
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"

    metrics = await client.get("/metrics")
    assert metrics.status_code == 200
    assert "boxoffice_" in metrics.text
