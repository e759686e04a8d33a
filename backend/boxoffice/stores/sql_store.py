"""
SQLAlchemy implementation of the TicketingStore.

CONCURRENCY STRATEGY: Guarded UPDATE per call
=============================================

Every mutation runs in its own short transaction and is expressed as a
single UPDATE whose WHERE clause carries the invariant, e.g.

    UPDATE ticket_types
       SET capacity_reserved = capacity_reserved + :q, version = version + 1
     WHERE id = :id AND is_active AND capacity_reserved + :q <= capacity_total

If rowcount == 0 the guard did not hold and the caller decides whether to
retry or report. The database evaluates the guard against the committed
row under its own row lock, so two writers can never both pass it on a
stale value. No row lock outlives the call, which keeps external I/O
(payment provider, email) outside any open transaction.

Two calls bundle dependent writes into that one transaction:
fail_purchase (status flip plus stock and discount release) and
redeem_ticket (status flip plus the check-in row). Either all of it
commits or none of it does.

Uniqueness (ticket_number, (purchase_id, sequence_index),
payment_session_id) is enforced by constraints and surfaced as
DuplicateTicket where the core needs to react to it.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from boxoffice import models
from boxoffice.core.errors import DuplicateTicket
from boxoffice.core.logging import get_logger
from boxoffice.domain import (
    CheckIn,
    DiscountCode,
    DiscountType,
    EventRecord,
    NewCheckIn,
    NewPurchase,
    NewTicket,
    PaymentStatus,
    Purchase,
    Ticket,
    TicketStatus,
    TicketType,
)
from boxoffice.stores.interfaces import TicketingStore

logger = get_logger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _event(row: models.Event) -> EventRecord:
    return EventRecord(
        id=row.id,
        title=row.title,
        organizer_id=row.organizer_id,
        starts_at=_aware(row.starts_at),
    )


def _ticket_type(row: models.TicketType) -> TicketType:
    return TicketType(
        id=row.id,
        event_id=row.event_id,
        name=row.name,
        price=row.price,
        capacity_total=row.capacity_total,
        capacity_reserved=row.capacity_reserved,
        max_per_order=row.max_per_order,
        is_active=row.is_active,
        version=row.version,
        sales_start=_aware(row.sales_start),
        sales_end=_aware(row.sales_end),
    )


def _discount_code(row: models.DiscountCode) -> DiscountCode:
    return DiscountCode(
        id=row.id,
        code=row.code,
        discount_type=DiscountType(row.discount_type),
        discount_value=row.discount_value,
        max_uses=row.max_uses,
        current_uses=row.current_uses,
        is_active=row.is_active,
        version=row.version,
        valid_from=_aware(row.valid_from),
        valid_until=_aware(row.valid_until),
        event_id=row.event_id,
    )


def _purchase(row: models.Purchase) -> Purchase:
    return Purchase(
        id=row.id,
        buyer_id=row.buyer_id,
        buyer_email=row.buyer_email,
        event_id=row.event_id,
        ticket_type_id=row.ticket_type_id,
        quantity=row.quantity,
        unit_price=row.unit_price,
        subtotal=row.subtotal,
        discount=row.discount,
        fee=row.fee,
        total=row.total,
        currency=row.currency,
        payment_status=PaymentStatus(row.payment_status),
        created_at=_aware(row.created_at),
        discount_code_id=row.discount_code_id,
        discount_type=DiscountType(row.discount_type) if row.discount_type else None,
        discount_value=row.discount_value,
        payment_session_id=row.payment_session_id,
        payment_ref=row.payment_ref,
        completed_at=_aware(row.completed_at),
        failed_at=_aware(row.failed_at),
    )


def _ticket(row: models.Ticket) -> Ticket:
    return Ticket(
        id=row.id,
        ticket_number=row.ticket_number,
        purchase_id=row.purchase_id,
        sequence_index=row.sequence_index,
        owner_id=row.owner_id,
        event_id=row.event_id,
        ticket_type_id=row.ticket_type_id,
        status=TicketStatus(row.status),
        validation_payload=row.validation_payload,
        created_at=_aware(row.created_at),
        checked_in_at=_aware(row.checked_in_at),
        checked_in_by=row.checked_in_by,
    )


def _check_in(row: models.CheckIn) -> CheckIn:
    return CheckIn(
        id=row.id,
        ticket_id=row.ticket_id,
        event_id=row.event_id,
        checked_in_by=row.checked_in_by,
        method=row.method,
        checked_in_at=_aware(row.checked_in_at),
    )


def _release_stock(ticket_type_id: int, quantity: int):
    tt = models.TicketType
    return (
        update(tt)
        .where(tt.id == ticket_type_id)
        .values(
            capacity_reserved=case(
                (tt.capacity_reserved >= quantity, tt.capacity_reserved - quantity),
                else_=0,
            ),
            version=tt.version + 1,
        )
        .execution_options(synchronize_session=False)
    )


def _release_use(discount_code_id: int):
    dc = models.DiscountCode
    return (
        update(dc)
        .where(dc.id == discount_code_id)
        .values(
            current_uses=case((dc.current_uses > 0, dc.current_uses - 1), else_=0),
            version=dc.version + 1,
        )
        .execution_options(synchronize_session=False)
    )


class SqlTicketingStore(TicketingStore):
    """PostgreSQL/SQLite-backed store; one transaction per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def _get(self, db: AsyncSession, model, key: int):
        result = await db.execute(
            select(model).where(model.id == key).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # -- events -------------------------------------------------------------

    async def get_event(self, event_id: int) -> Optional[EventRecord]:
        async with self._sessions() as db:
            row = await self._get(db, models.Event, event_id)
            return _event(row) if row else None

    # -- ticket types -------------------------------------------------------

    async def get_ticket_type(self, ticket_type_id: int) -> Optional[TicketType]:
        async with self._sessions() as db:
            row = await self._get(db, models.TicketType, ticket_type_id)
            return _ticket_type(row) if row else None

    async def increment_reserved(self, ticket_type_id: int, quantity: int) -> Optional[TicketType]:
        tt = models.TicketType
        async with self._sessions() as db, db.begin():
            result = await db.execute(
                update(tt)
                .where(
                    tt.id == ticket_type_id,
                    tt.is_active.is_(True),
                    tt.capacity_reserved + quantity <= tt.capacity_total,
                )
                .values(
                    capacity_reserved=tt.capacity_reserved + quantity,
                    version=tt.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
            return _ticket_type(await self._get(db, tt, ticket_type_id))

    async def decrement_reserved(self, ticket_type_id: int, quantity: int) -> Optional[TicketType]:
        tt = models.TicketType
        async with self._sessions() as db, db.begin():
            result = await db.execute(_release_stock(ticket_type_id, quantity))
            if result.rowcount == 0:
                return None
            return _ticket_type(await self._get(db, tt, ticket_type_id))

    # -- discount codes -----------------------------------------------------

    async def get_discount_code(self, code: str) -> Optional[DiscountCode]:
        async with self._sessions() as db:
            result = await db.execute(
                select(models.DiscountCode)
                .where(models.DiscountCode.code == code)
                .execution_options(populate_existing=True)
            )
            row = result.scalar_one_or_none()
            return _discount_code(row) if row else None

    async def increment_uses(self, discount_code_id: int) -> Optional[DiscountCode]:
        dc = models.DiscountCode
        async with self._sessions() as db, db.begin():
            result = await db.execute(
                update(dc)
                .where(
                    dc.id == discount_code_id,
                    dc.is_active.is_(True),
                    (dc.max_uses.is_(None)) | (dc.current_uses < dc.max_uses),
                )
                .values(current_uses=dc.current_uses + 1, version=dc.version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
            return _discount_code(await self._get(db, dc, discount_code_id))

    async def decrement_uses(self, discount_code_id: int) -> Optional[DiscountCode]:
        dc = models.DiscountCode
        async with self._sessions() as db, db.begin():
            result = await db.execute(_release_use(discount_code_id))
            if result.rowcount == 0:
                return None
            return _discount_code(await self._get(db, dc, discount_code_id))

    # -- purchases ----------------------------------------------------------

    async def insert_purchase(self, purchase: NewPurchase) -> Purchase:
        async with self._sessions() as db, db.begin():
            row = models.Purchase(
                buyer_id=purchase.buyer_id,
                buyer_email=purchase.buyer_email,
                event_id=purchase.event_id,
                ticket_type_id=purchase.ticket_type_id,
                quantity=purchase.quantity,
                unit_price=purchase.unit_price,
                subtotal=purchase.subtotal,
                discount=purchase.discount,
                fee=purchase.fee,
                total=purchase.total,
                currency=purchase.currency,
                discount_code_id=purchase.discount_code_id,
                discount_type=purchase.discount_type.value if purchase.discount_type else None,
                discount_value=purchase.discount_value,
                payment_status=PaymentStatus.PENDING.value,
            )
            db.add(row)
            await db.flush()
            return _purchase(row)

    async def get_purchase(self, purchase_id: int) -> Optional[Purchase]:
        async with self._sessions() as db:
            row = await self._get(db, models.Purchase, purchase_id)
            return _purchase(row) if row else None

    async def get_purchase_by_session(self, session_id: str) -> Optional[Purchase]:
        async with self._sessions() as db:
            result = await db.execute(
                select(models.Purchase)
                .where(models.Purchase.payment_session_id == session_id)
                .execution_options(populate_existing=True)
            )
            row = result.scalar_one_or_none()
            return _purchase(row) if row else None

    async def attach_payment_session(self, purchase_id: int, session_id: str) -> Optional[Purchase]:
        p = models.Purchase
        async with self._sessions() as db, db.begin():
            result = await db.execute(
                update(p)
                .where(p.id == purchase_id, p.payment_session_id.is_(None))
                .values(payment_session_id=session_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
            return _purchase(await self._get(db, p, purchase_id))

    async def transition_purchase(
        self,
        purchase_id: int,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
        at: datetime,
        payment_ref: Optional[str] = None,
    ) -> Optional[Purchase]:
        p = models.Purchase
        values = {"payment_status": to_status.value}
        if to_status is PaymentStatus.COMPLETED:
            values["completed_at"] = at
            values["payment_ref"] = payment_ref
        elif to_status is PaymentStatus.FAILED:
            values["failed_at"] = at

        async with self._sessions() as db, db.begin():
            result = await db.execute(
                update(p)
                .where(p.id == purchase_id, p.payment_status == from_status.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
            return _purchase(await self._get(db, p, purchase_id))

    async def fail_purchase(self, purchase_id: int, at: datetime) -> Optional[Purchase]:
        p = models.Purchase
        async with self._sessions() as db, db.begin():
            result = await db.execute(
                update(p)
                .where(p.id == purchase_id, p.payment_status == PaymentStatus.PENDING.value)
                .values(payment_status=PaymentStatus.FAILED.value, failed_at=at)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
            row = await self._get(db, p, purchase_id)
            await db.execute(_release_stock(row.ticket_type_id, row.quantity))
            if row.discount_code_id is not None:
                await db.execute(_release_use(row.discount_code_id))
            return _purchase(row)

    async def list_pending_before(self, cutoff: datetime, limit: int = 100) -> list[Purchase]:
        p = models.Purchase
        async with self._sessions() as db:
            result = await db.execute(
                select(p)
                .where(p.payment_status == PaymentStatus.PENDING.value, p.created_at < cutoff)
                .order_by(p.created_at.asc())
                .limit(limit)
            )
            return [_purchase(row) for row in result.scalars().all()]

    # -- tickets ------------------------------------------------------------

    async def insert_ticket(self, ticket: NewTicket) -> Ticket:
        try:
            async with self._sessions() as db, db.begin():
                row = models.Ticket(
                    ticket_number=ticket.ticket_number,
                    purchase_id=ticket.purchase_id,
                    sequence_index=ticket.sequence_index,
                    owner_id=ticket.owner_id,
                    event_id=ticket.event_id,
                    ticket_type_id=ticket.ticket_type_id,
                    status=TicketStatus.VALID.value,
                    validation_payload=ticket.validation_payload,
                )
                db.add(row)
                await db.flush()
                return _ticket(row)
        except IntegrityError as exc:
            logger.info(
                "ticket_insert_conflict",
                purchase_id=ticket.purchase_id,
                sequence_index=ticket.sequence_index,
            )
            raise DuplicateTicket(ticket.purchase_id, ticket.sequence_index) from exc

    async def list_tickets_for_purchase(self, purchase_id: int) -> list[Ticket]:
        async with self._sessions() as db:
            result = await db.execute(
                select(models.Ticket)
                .where(models.Ticket.purchase_id == purchase_id)
                .order_by(models.Ticket.sequence_index.asc())
            )
            return [_ticket(row) for row in result.scalars().all()]

    async def list_tickets_for_owner(self, owner_id: int) -> list[Ticket]:
        async with self._sessions() as db:
            result = await db.execute(
                select(models.Ticket)
                .where(models.Ticket.owner_id == owner_id)
                .order_by(models.Ticket.created_at.desc(), models.Ticket.id.desc())
            )
            return [_ticket(row) for row in result.scalars().all()]

    async def get_ticket_by_number(self, ticket_number: str) -> Optional[Ticket]:
        async with self._sessions() as db:
            result = await db.execute(
                select(models.Ticket)
                .where(models.Ticket.ticket_number == ticket_number)
                .execution_options(populate_existing=True)
            )
            row = result.scalar_one_or_none()
            return _ticket(row) if row else None

    async def transition_ticket(
        self, ticket_id: int, from_status: TicketStatus, to_status: TicketStatus
    ) -> Optional[Ticket]:
        t = models.Ticket
        async with self._sessions() as db, db.begin():
            result = await db.execute(
                update(t)
                .where(t.id == ticket_id, t.status == from_status.value)
                .values(status=to_status.value)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
            return _ticket(await self._get(db, t, ticket_id))

    async def redeem_ticket(self, entry: NewCheckIn) -> Optional[tuple[Ticket, CheckIn]]:
        t = models.Ticket
        async with self._sessions() as db, db.begin():
            result = await db.execute(
                update(t)
                .where(t.id == entry.ticket_id, t.status == TicketStatus.VALID.value)
                .values(
                    status=TicketStatus.USED.value,
                    checked_in_at=entry.checked_in_at,
                    checked_in_by=entry.checked_in_by,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
            row = models.CheckIn(
                ticket_id=entry.ticket_id,
                event_id=entry.event_id,
                checked_in_by=entry.checked_in_by,
                method=entry.method,
                checked_in_at=entry.checked_in_at,
            )
            db.add(row)
            await db.flush()
            return _ticket(await self._get(db, t, entry.ticket_id)), _check_in(row)

    async def list_check_ins(self, ticket_id: int) -> list[CheckIn]:
        async with self._sessions() as db:
            result = await db.execute(
                select(models.CheckIn)
                .where(models.CheckIn.ticket_id == ticket_id)
                .order_by(models.CheckIn.checked_in_at.asc())
            )
            return [_check_in(row) for row in result.scalars().all()]
