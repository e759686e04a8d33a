"""
Tests for ticket issuance and delivery.
"""

import asyncio
import base64
import json
import threading

import httpx
import pytest

from boxoffice.core.errors import DuplicateTicket, PurchaseNotCompleted
from boxoffice.core.signing import verify_ticket_payload
from boxoffice.infrastructure.email import HttpEmailNotifier, LoggingNotifier
from boxoffice.services.interfaces.notifier import TicketArtifact, TicketNotifier
from boxoffice.services.issuance import TICKET_ALPHABET, TicketIssuer, generate_ticket_number


class RecordingNotifier(TicketNotifier):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.deliveries = []
        self.render_threads = []

    def render(self, ticket):
        self.render_threads.append(threading.get_ident())
        return TicketArtifact(ticket.ticket_number, f"{ticket.ticket_number}.png", "image/png", b"png")

    async def deliver(self, artifacts, address, purchase):
        if self.fail:
            raise RuntimeError("smtp down")
        self.deliveries.append((address, [a.ticket_number for a in artifacts]))
        return True


async def _completed(ctx, paid_purchase, quantity=3):
    purchase = await paid_purchase(quantity=quantity)
    result = await ctx.purchases.complete(purchase.id, purchase.payment_session_id)
    return result.purchase


def test_ticket_number_format():
    number = generate_ticket_number()

    assert number.startswith("TKT-")
    assert len(number) == 16
    assert all(c in TICKET_ALPHABET for c in number[4:])


@pytest.mark.asyncio
async def test_issue_is_exactly_once(ctx, store, paid_purchase):
    purchase = await _completed(ctx, paid_purchase)
    issuer = TicketIssuer(store, signing_key="k")

    again = await issuer.issue_for_purchase(purchase)

    assert again.created == 0
    assert len(again.tickets) == 3
    assert len(store.tickets) == 3


@pytest.mark.asyncio
async def test_concurrent_issuers_converge(ctx, store, paid_purchase):
    purchase = await _completed(ctx, paid_purchase, quantity=4)
    store.tickets.clear()
    issuer = TicketIssuer(store, signing_key="k")

    results = await asyncio.gather(*[issuer.issue_for_purchase(purchase) for _ in range(3)])

    assert sum(r.created for r in results) == 4
    assert sorted(t.sequence_index for t in store.tickets.values()) == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_repair_fills_missing_slots(ctx, store, paid_purchase):
    """A crash after the status change left one ticket short; the next completion fixes it."""
    purchase = await _completed(ctx, paid_purchase, quantity=3)
    missing = next(t for t in store.tickets.values() if t.sequence_index == 1)
    del store.tickets[missing.id]

    result = await ctx.purchases.complete(purchase.id, purchase.payment_session_id)

    assert result.already_processed is True
    assert [t.sequence_index for t in result.tickets] == [0, 1, 2]


@pytest.mark.asyncio
async def test_pending_purchase_cannot_be_issued(ctx, store, ticket_type):
    started = await ctx.checkout.start_checkout(7, "buyer@example.com", ticket_type.id, 1)

    with pytest.raises(PurchaseNotCompleted):
        await TicketIssuer(store, signing_key="k").issue_for_purchase(started.purchase)


@pytest.mark.asyncio
async def test_number_collision_is_retried(ctx, store, paid_purchase):
    purchase = await _completed(ctx, paid_purchase, quantity=2)
    store.tickets.clear()

    numbers = iter(["TKT-AAAAAAAAAAAA", "TKT-AAAAAAAAAAAA", "TKT-BBBBBBBBBBBB"])
    issuer = TicketIssuer(store, signing_key="k", number_factory=lambda: next(numbers))
    result = await issuer.issue_for_purchase(purchase)

    assert result.created == 2
    assert [t.ticket_number for t in result.tickets] == ["TKT-AAAAAAAAAAAA", "TKT-BBBBBBBBBBBB"]


@pytest.mark.asyncio
async def test_colliding_number_for_another_purchase_gets_a_new_one(ctx, store, paid_purchase):
    one = await _completed(ctx, paid_purchase, quantity=1)
    two = await paid_purchase(quantity=1, buyer_id=8)
    await ctx.purchases.complete(two.id, two.payment_session_id)
    existing = next(t for t in store.tickets.values() if t.purchase_id == one.id)
    for ticket in [t for t in store.tickets.values() if t.purchase_id == two.id]:
        del store.tickets[ticket.id]
    completed_two = store.purchases[two.id]

    numbers = iter([existing.ticket_number, "TKT-FRESHNUMBER"])
    issuer = TicketIssuer(store, signing_key="k", number_factory=lambda: next(numbers))
    result = await issuer.issue_for_purchase(completed_two)

    assert [t.ticket_number for t in result.tickets] == ["TKT-FRESHNUMBER"]


@pytest.mark.asyncio
async def test_persistent_collisions_raise(ctx, store, paid_purchase):
    one = await _completed(ctx, paid_purchase, quantity=1)
    taken = next(t for t in store.tickets.values() if t.purchase_id == one.id).ticket_number
    two = await paid_purchase(quantity=1, buyer_id=8)
    await ctx.purchases.complete(two.id, two.payment_session_id)
    for ticket in [t for t in store.tickets.values() if t.purchase_id == two.id]:
        del store.tickets[ticket.id]

    issuer = TicketIssuer(store, signing_key="k", number_factory=lambda: taken)

    with pytest.raises(DuplicateTicket):
        await issuer.issue_for_purchase(store.purchases[two.id])


@pytest.mark.asyncio
async def test_payload_is_signed_for_the_event(ctx, store, paid_purchase, event):
    await _completed(ctx, paid_purchase, quantity=1)
    ticket = next(iter(store.tickets.values()))

    decoded = verify_ticket_payload(ticket.validation_payload, ctx.issuer.signing_key)

    assert decoded.ticket_number == ticket.ticket_number
    assert decoded.event_id == event.id


@pytest.mark.asyncio
async def test_notifies_only_when_tickets_are_created(ctx, store, paid_purchase):
    purchase = await _completed(ctx, paid_purchase, quantity=2)
    notifier = RecordingNotifier()
    store.tickets.clear()
    issuer = TicketIssuer(store, notifier=notifier, signing_key="k")

    await issuer.issue_for_purchase(purchase)
    await issuer.issue_for_purchase(purchase)

    assert len(notifier.deliveries) == 1
    address, numbers = notifier.deliveries[0]
    assert address == purchase.buyer_email
    assert len(numbers) == 2


@pytest.mark.asyncio
async def test_delivery_failure_does_not_fail_issuance(ctx, store, paid_purchase):
    purchase = await _completed(ctx, paid_purchase, quantity=2)
    store.tickets.clear()
    issuer = TicketIssuer(store, notifier=RecordingNotifier(fail=True), signing_key="k")

    result = await issuer.issue_for_purchase(purchase)

    assert result.created == 2


@pytest.mark.asyncio
async def test_logging_notifier_renders_png(ctx, store, paid_purchase):
    purchase = await _completed(ctx, paid_purchase, quantity=1)
    ticket = next(iter(store.tickets.values()))
    notifier = LoggingNotifier()

    artifact = notifier.render(ticket)

    assert artifact.content.startswith(b"\x89PNG")
    assert await notifier.deliver([artifact], purchase.buyer_email, purchase) is True


@pytest.mark.asyncio
async def test_http_email_notifier_posts_attachments(ctx, store, paid_purchase):
    purchase = await _completed(ctx, paid_purchase, quantity=1)
    ticket = next(iter(store.tickets.values()))
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(202, json={"id": "msg_1"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    notifier = HttpEmailNotifier("https://mail.test/send", "key-123", "tickets@test", client=client)

    sent = await notifier.deliver([notifier.render(ticket)], "buyer@example.com", purchase)
    await notifier.close()

    assert sent is True
    assert seen["auth"] == "Bearer key-123"
    assert seen["body"]["to"] == ["buyer@example.com"]
    attachment = seen["body"]["attachments"][0]
    assert attachment["filename"] == f"{ticket.ticket_number}.png"
    assert base64.b64decode(attachment["content"]).startswith(b"\x89PNG")


@pytest.mark.asyncio
async def test_http_email_notifier_reports_rejection(ctx, store, paid_purchase):
    purchase = await _completed(ctx, paid_purchase, quantity=1)
    ticket = next(iter(store.tickets.values()))
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500, text="boom")))
    notifier = HttpEmailNotifier("https://mail.test/send", "key", "tickets@test", client=client)

    assert await notifier.deliver([notifier.render(ticket)], "buyer@example.com", purchase) is False
    await notifier.close()


@pytest.mark.asyncio
async def test_artifacts_render_off_the_event_loop(ctx, store, paid_purchase):
    purchase = await _completed(ctx, paid_purchase, quantity=2)
    notifier = RecordingNotifier()
    store.tickets.clear()
    issuer = TicketIssuer(store, notifier=notifier, signing_key="k")

    await issuer.issue_for_purchase(purchase)

    assert len(notifier.render_threads) == 2
    assert threading.get_ident() not in notifier.render_threads
    assert len(notifier.deliveries) == 1
