"""
Tests for promo codes: validity rules, usage limits and pricing.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from boxoffice.core.errors import (
    DiscountExpired,
    DiscountInactive,
    DiscountNotFound,
    DiscountNotYetValid,
    DiscountUnavailable,
    DiscountWrongEvent,
    UsageLimitReached,
)
from boxoffice.domain import DiscountSnapshot, DiscountType
from boxoffice.services.discounts import DiscountLedger, normalize_code
from boxoffice.services.purchases import compute_totals


def test_normalize_code():
    assert normalize_code("  summer25 ") == "SUMMER25"


@pytest.mark.asyncio
async def test_consume_is_case_insensitive(store, event):
    store.add_discount_code("SUMMER25", discount_value=Decimal("25"), event_id=event.id)

    snapshot = await DiscountLedger(store).validate_and_consume(" summer25", event.id)

    assert snapshot.code == "SUMMER25"
    assert snapshot.discount_value == Decimal("25")
    assert next(iter(store.discount_codes.values())).current_uses == 1


@pytest.mark.asyncio
async def test_concurrent_consumption_respects_max_uses(store, event):
    """Ten checkouts race for a code with five uses left: exactly five get it."""
    dc = store.add_discount_code("LIMITED", max_uses=5)
    ledger = DiscountLedger(store, max_retries=3)

    results = await asyncio.gather(
        *[ledger.validate_and_consume("LIMITED", event.id) for _ in range(10)],
        return_exceptions=True,
    )

    assert sum(isinstance(r, DiscountSnapshot) for r in results) == 5
    assert sum(isinstance(r, UsageLimitReached) for r in results) == 5
    assert store.discount_codes[dc.id].current_uses == 5


@pytest.mark.asyncio
async def test_unknown_code(store, event):
    with pytest.raises(DiscountNotFound):
        await DiscountLedger(store).validate_and_consume("NOPE", event.id)


@pytest.mark.asyncio
async def test_inactive_code(store, event):
    store.add_discount_code("OFF", is_active=False)

    with pytest.raises(DiscountInactive):
        await DiscountLedger(store).validate_and_consume("OFF", event.id)


@pytest.mark.asyncio
async def test_code_scoped_to_another_event(store, event):
    other = store.add_event(title="Other")
    store.add_discount_code("ELSEWHERE", event_id=other.id)

    with pytest.raises(DiscountWrongEvent):
        await DiscountLedger(store).validate_and_consume("ELSEWHERE", event.id)


@pytest.mark.asyncio
async def test_validity_window(store, event):
    now = datetime.now(timezone.utc)
    store.add_discount_code("SOON", valid_from=now + timedelta(hours=1))
    store.add_discount_code("GONE", valid_until=now - timedelta(hours=1))
    ledger = DiscountLedger(store)

    with pytest.raises(DiscountNotYetValid):
        await ledger.validate_and_consume("SOON", event.id)
    with pytest.raises(DiscountExpired):
        await ledger.validate_and_consume("GONE", event.id)


@pytest.mark.asyncio
async def test_inactive_reported_before_expiry(store, event):
    store.add_discount_code(
        "BOTH", is_active=False, valid_until=datetime.now(timezone.utc) - timedelta(days=1)
    )

    with pytest.raises(DiscountInactive):
        await DiscountLedger(store).validate_and_consume("BOTH", event.id)


@pytest.mark.asyncio
async def test_preview_does_not_consume(store, event):
    dc = store.add_discount_code("PEEK", max_uses=1)

    await DiscountLedger(store).preview("peek", event.id)

    assert store.discount_codes[dc.id].current_uses == 0


@pytest.mark.asyncio
async def test_release_returns_a_use(store, event):
    dc = store.add_discount_code("ONCE", max_uses=1)
    ledger = DiscountLedger(store)
    await ledger.validate_and_consume("ONCE", event.id)

    await ledger.release(dc.id)
    again = await ledger.validate_and_consume("ONCE", event.id)

    assert again.discount_code_id == dc.id


@pytest.mark.asyncio
async def test_zero_retry_budget_is_honoured(store, event):
    dc = store.add_discount_code("NORETRY", max_uses=3)
    ledger = DiscountLedger(store, max_retries=0)

    assert ledger.max_retries == 0
    with pytest.raises(DiscountUnavailable):
        await ledger.validate_and_consume("NORETRY", event.id)
    assert store.discount_codes[dc.id].current_uses == 0


def _snapshot(discount_type, value):
    return DiscountSnapshot(discount_code_id=1, code="X", discount_type=discount_type, discount_value=Decimal(value))


def test_totals_without_discount():
    totals = compute_totals(Decimal("100.00"), 2, Decimal("0.10"))

    assert totals.subtotal == Decimal("200.00")
    assert totals.discount == Decimal("0.00")
    assert totals.fee == Decimal("20.00")
    assert totals.total == Decimal("220.00")


def test_totals_with_percentage_discount():
    totals = compute_totals(Decimal("100.00"), 2, Decimal("0.10"), _snapshot(DiscountType.PERCENTAGE, "25"))

    assert totals.discount == Decimal("50.00")
    # Fee is charged on the undiscounted subtotal
    assert totals.fee == Decimal("20.00")
    assert totals.total == Decimal("170.00")


def test_fixed_discount_is_clamped_to_subtotal():
    totals = compute_totals(Decimal("30.00"), 1, Decimal("0.10"), _snapshot(DiscountType.FIXED, "50"))

    assert totals.discount == Decimal("30.00")
    assert totals.total == Decimal("3.00")


def test_totals_round_half_up():
    totals = compute_totals(Decimal("0.05"), 1, Decimal("0.10"))

    assert totals.fee == Decimal("0.01")
