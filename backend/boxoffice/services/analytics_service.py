"""
Organizer analytics: door progress and sales per event.
Read-only aggregate queries.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.domain import PaymentStatus, TicketStatus
from boxoffice.models import Purchase, Ticket
from boxoffice.schemas.event import CheckInStats, SalesStats


async def get_check_in_stats(db: AsyncSession, event_id: int) -> CheckInStats:
    result = await db.execute(
        select(Ticket.status, func.count(Ticket.id))
        .where(Ticket.event_id == event_id)
        .group_by(Ticket.status)
    )
    counts = {status: count for status, count in result.all()}

    total = sum(counts.values())
    checked_in = counts.get(TicketStatus.USED.value, 0)
    # Cancelled tickets are not expected at the door
    admissible = total - counts.get(TicketStatus.CANCELLED.value, 0)

    return CheckInStats(
        event_id=event_id,
        total_tickets=total,
        checked_in=checked_in,
        valid=counts.get(TicketStatus.VALID.value, 0),
        cancelled=counts.get(TicketStatus.CANCELLED.value, 0),
        percentage=round(checked_in / admissible * 100, 2) if admissible else 0.0,
    )


async def get_sales_stats(db: AsyncSession, event_id: int) -> SalesStats:
    completed = await db.execute(
        select(
            func.count(Purchase.id),
            func.coalesce(func.sum(Purchase.quantity), 0),
            func.coalesce(func.sum(Purchase.total), 0),
            func.coalesce(func.sum(Purchase.fee), 0),
            func.coalesce(func.sum(Purchase.discount), 0),
        ).where(
            Purchase.event_id == event_id,
            Purchase.payment_status == PaymentStatus.COMPLETED.value,
        )
    )
    purchases, tickets_sold, revenue, fees, discounts = completed.one()

    by_status = await db.execute(
        select(Purchase.payment_status, func.count(Purchase.id))
        .where(Purchase.event_id == event_id)
        .group_by(Purchase.payment_status)
    )
    status_counts = {status: count for status, count in by_status.all()}

    return SalesStats(
        event_id=event_id,
        completed_purchases=purchases,
        tickets_sold=int(tickets_sold),
        revenue=Decimal(str(revenue)).quantize(Decimal("0.01")),
        fees=Decimal(str(fees)).quantize(Decimal("0.01")),
        discounts=Decimal(str(discounts)).quantize(Decimal("0.01")),
        pending_purchases=status_counts.get(PaymentStatus.PENDING.value, 0),
        failed_purchases=status_counts.get(PaymentStatus.FAILED.value, 0),
    )
