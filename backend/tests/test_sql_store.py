"""
Tests for the SQL store against SQLite: guarded updates, uniqueness
constraints and the full purchase flow through the ORM models.
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError

from boxoffice.core.errors import DuplicateTicket, InsufficientStock, UsageLimitReached
from boxoffice.db.base import utcnow
from boxoffice.domain import NewCheckIn, NewTicket, PaymentStatus, TicketStatus
from boxoffice.infrastructure.mockpay import MockPayGateway
from boxoffice.models import DiscountCode, TicketType
from boxoffice.services.context import build_context
from boxoffice.stores import SqlTicketingStore
from boxoffice.stores import sql_store as sql_store_module


@pytest.fixture
def sql_store(sessionmaker) -> SqlTicketingStore:
    return SqlTicketingStore(sessionmaker)


@pytest.fixture
def sql_ctx(sql_store):
    return build_context(sql_store, gateway=MockPayGateway("test-secret"))


@pytest_asyncio.fixture
async def promo(db_session, test_event) -> DiscountCode:
    code = DiscountCode(
        code="EARLY",
        discount_type="percentage",
        discount_value=Decimal("20"),
        max_uses=2,
        current_uses=0,
        is_active=True,
        event_id=test_event.id,
        version=1,
    )
    db_session.add(code)
    await db_session.commit()
    await db_session.refresh(code)
    return code


@pytest.mark.asyncio
async def test_guarded_increment(sql_store, test_ticket_type):
    updated = await sql_store.increment_reserved(test_ticket_type.id, 3)
    assert updated.capacity_reserved == 3
    assert updated.version == 2

    # 3 + 3 > 5
    assert await sql_store.increment_reserved(test_ticket_type.id, 3) is None
    assert (await sql_store.get_ticket_type(test_ticket_type.id)).capacity_reserved == 3


@pytest.mark.asyncio
async def test_decrement_is_floored(sql_store, test_ticket_type):
    await sql_store.increment_reserved(test_ticket_type.id, 2)

    updated = await sql_store.decrement_reserved(test_ticket_type.id, 10)

    assert updated.capacity_reserved == 0


@pytest.mark.asyncio
async def test_concurrent_reservations_never_oversell(sql_ctx, sql_store, test_ticket_type):
    """Eight buyers race for five tickets through real SQL connections."""
    results = await asyncio.gather(
        *[sql_ctx.inventory.reserve(test_ticket_type.id, 1) for _ in range(8)],
        return_exceptions=True,
    )

    assert sum(not isinstance(r, Exception) for r in results) == 5
    assert sum(isinstance(r, InsufficientStock) for r in results) == 3
    assert (await sql_store.get_ticket_type(test_ticket_type.id)).capacity_reserved == 5


@pytest.mark.asyncio
async def test_discount_usage_limit(sql_ctx, promo, test_event):
    await sql_ctx.discounts.validate_and_consume("early", test_event.id)
    await sql_ctx.discounts.validate_and_consume("EARLY", test_event.id)

    with pytest.raises(UsageLimitReached):
        await sql_ctx.discounts.validate_and_consume("EARLY", test_event.id)


@pytest.mark.asyncio
async def test_purchase_flow_end_to_end(sql_ctx, sql_store, test_ticket_type, test_user, promo):
    started = await sql_ctx.checkout.start_checkout(
        test_user.id, test_user.email, test_ticket_type.id, 2, discount_code="early"
    )
    purchase = started.purchase
    assert purchase.discount == Decimal("100.00")
    assert purchase.total == Decimal("450.00")

    sql_ctx.gateway.settle(purchase.payment_session_id, "paid")
    first = await sql_ctx.purchases.complete(purchase.id, purchase.payment_session_id)
    second = await sql_ctx.purchases.complete(purchase.id, purchase.payment_session_id)

    assert first.purchase.payment_status is PaymentStatus.COMPLETED
    assert first.purchase.completed_at.tzinfo is not None
    assert second.already_processed is True
    assert [t.ticket_number for t in second.tickets] == [t.ticket_number for t in first.tickets]

    ticket = first.tickets[0]
    result = await sql_ctx.redemption.check_in(ticket.ticket_number, checked_in_by=test_user.id)
    assert result.ticket.status is TicketStatus.USED
    assert len(await sql_store.list_check_ins(ticket.id)) == 1


@pytest.mark.asyncio
async def test_duplicate_slot_is_rejected(sql_ctx, sql_store, test_ticket_type, test_user):
    started = await sql_ctx.checkout.start_checkout(test_user.id, test_user.email, test_ticket_type.id, 1)
    purchase = started.purchase

    def new_ticket(number):
        return NewTicket(
            ticket_number=number,
            purchase_id=purchase.id,
            sequence_index=0,
            owner_id=test_user.id,
            event_id=purchase.event_id,
            ticket_type_id=purchase.ticket_type_id,
            validation_payload="v1.x.y",
        )

    await sql_store.insert_ticket(new_ticket("TKT-AAAAAAAAAAAA"))
    with pytest.raises(DuplicateTicket):
        await sql_store.insert_ticket(new_ticket("TKT-BBBBBBBBBBBB"))


@pytest.mark.asyncio
async def test_purchase_transition_is_compare_and_set(sql_ctx, sql_store, test_ticket_type, test_user):
    started = await sql_ctx.checkout.start_checkout(test_user.id, test_user.email, test_ticket_type.id, 1)
    now = utcnow()

    won = await sql_store.transition_purchase(started.purchase.id, PaymentStatus.PENDING, PaymentStatus.FAILED, at=now)
    lost = await sql_store.transition_purchase(
        started.purchase.id, PaymentStatus.PENDING, PaymentStatus.COMPLETED, at=now
    )

    assert won.payment_status is PaymentStatus.FAILED
    assert lost is None


@pytest.mark.asyncio
async def test_list_pending_before(sql_ctx, sql_store, test_ticket_type, test_user):
    started = await sql_ctx.checkout.start_checkout(test_user.id, test_user.email, test_ticket_type.id, 1)

    assert await sql_store.list_pending_before(utcnow() - timedelta(minutes=5)) == []
    pending = await sql_store.list_pending_before(utcnow() + timedelta(minutes=5))
    assert [p.id for p in pending] == [started.purchase.id]


@pytest.mark.asyncio
async def test_fail_releases_in_the_same_transaction(
    sql_ctx, sql_store, test_ticket_type, test_user, promo, monkeypatch
):
    started = await sql_ctx.checkout.start_checkout(
        test_user.id, test_user.email, test_ticket_type.id, 3, discount_code="EARLY"
    )
    purchase_id = started.purchase.id
    original = sql_store_module._release_stock
    calls = []

    def release_stock_once_broken(*args):
        calls.append(args)
        if len(calls) == 1:
            raise RuntimeError("connection lost")
        return original(*args)

    monkeypatch.setattr(sql_store_module, "_release_stock", release_stock_once_broken)

    with pytest.raises(RuntimeError):
        await sql_ctx.purchases.fail(purchase_id)

    # Rolled back as a whole: still pending, nothing released
    assert (await sql_store.get_purchase(purchase_id)).payment_status is PaymentStatus.PENDING
    assert (await sql_store.get_ticket_type(test_ticket_type.id)).capacity_reserved == 3
    assert (await sql_store.get_discount_code("EARLY")).current_uses == 1

    failed = await sql_ctx.purchases.fail(purchase_id)
    again = await sql_ctx.purchases.fail(purchase_id)

    assert failed.payment_status is PaymentStatus.FAILED
    assert again.payment_status is PaymentStatus.FAILED
    assert (await sql_store.get_ticket_type(test_ticket_type.id)).capacity_reserved == 0
    assert (await sql_store.get_discount_code("EARLY")).current_uses == 0


@pytest.mark.asyncio
async def test_failed_buyer_stock_goes_to_the_next_buyer(sql_ctx, sql_store, db_session, test_event, test_user):
    small = TicketType(
        event_id=test_event.id,
        name="Balcony",
        price=Decimal("80.00"),
        capacity_total=3,
        capacity_reserved=0,
        max_per_order=3,
        is_active=True,
        version=1,
    )
    db_session.add(small)
    await db_session.commit()
    await db_session.refresh(small)

    first = await sql_ctx.checkout.start_checkout(test_user.id, test_user.email, small.id, 3)
    await sql_ctx.purchases.fail(first.purchase.id)
    second = await sql_ctx.inventory.reserve(small.id, 3)

    assert second.quantity == 3
    assert (await sql_store.get_ticket_type(small.id)).capacity_reserved == 3


@pytest.mark.asyncio
async def test_redeem_writes_status_and_audit_row_together(sql_ctx, sql_store, test_ticket_type, test_user):
    started = await sql_ctx.checkout.start_checkout(test_user.id, test_user.email, test_ticket_type.id, 1)
    sql_ctx.gateway.settle(started.purchase.payment_session_id, "paid")
    completed = await sql_ctx.purchases.complete(started.purchase.id, started.purchase.payment_session_id)
    ticket = completed.tickets[0]

    # check_ins.checked_in_by is NOT NULL, so the audit insert fails after the status update
    with pytest.raises(IntegrityError):
        await sql_store.redeem_ticket(
            NewCheckIn(
                ticket_id=ticket.id,
                event_id=ticket.event_id,
                checked_in_by=None,
                method="qr",
                checked_in_at=utcnow(),
            )
        )

    assert (await sql_store.get_ticket_by_number(ticket.ticket_number)).status is TicketStatus.VALID
    assert await sql_store.list_check_ins(ticket.id) == []

    result = await sql_ctx.redemption.check_in(ticket.ticket_number, checked_in_by=test_user.id)

    assert result.ticket.status is TicketStatus.USED
    assert result.ticket.checked_in_by == test_user.id
    assert result.check_in.ticket_id == ticket.id
    assert len(await sql_store.list_check_ins(ticket.id)) == 1
    assert await sql_store.redeem_ticket(
        NewCheckIn(
            ticket_id=ticket.id,
            event_id=ticket.event_id,
            checked_in_by=test_user.id,
            method="qr",
            checked_in_at=utcnow(),
        )
    ) is None
