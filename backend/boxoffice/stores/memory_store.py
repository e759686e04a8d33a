"""
In-process TicketingStore.

Keeps every table in a dict and serializes each guarded update behind a
single asyncio.Lock, which gives the same all-or-nothing behavior as the
conditional UPDATEs of the SQL store. Each operation yields to the event
loop before touching state so concurrent callers genuinely interleave.

Used by the core test-suite and by local demos without a database.
"""

import asyncio
import dataclasses
import itertools
from datetime import datetime
from decimal import Decimal
from typing import Optional

from boxoffice.core.errors import DuplicateTicket
from boxoffice.db.base import utcnow
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


class MemoryTicketingStore(TicketingStore):

    def __init__(self):
        self._lock = asyncio.Lock()
        self._ids = itertools.count(1)
        self.events: dict[int, EventRecord] = {}
        self.ticket_types: dict[int, TicketType] = {}
        self.discount_codes: dict[int, DiscountCode] = {}
        self.purchases: dict[int, Purchase] = {}
        self.tickets: dict[int, Ticket] = {}
        self.check_ins: dict[int, CheckIn] = {}

    # -- seeding ------------------------------------------------------------

    def add_event(self, title: str = "Launch Night", organizer_id: int = 1,
                  starts_at: Optional[datetime] = None) -> EventRecord:
        event = EventRecord(
            id=next(self._ids),
            title=title,
            organizer_id=organizer_id,
            starts_at=starts_at or utcnow(),
        )
        self.events[event.id] = event
        return event

    def add_ticket_type(self, event_id: int, capacity_total: int, price: Decimal = Decimal("100.00"),
                        name: str = "General", max_per_order: int = 10, is_active: bool = True,
                        capacity_reserved: int = 0, sales_start: Optional[datetime] = None,
                        sales_end: Optional[datetime] = None) -> TicketType:
        tt = TicketType(
            id=next(self._ids),
            event_id=event_id,
            name=name,
            price=price,
            capacity_total=capacity_total,
            capacity_reserved=capacity_reserved,
            max_per_order=max_per_order,
            is_active=is_active,
            version=1,
            sales_start=sales_start,
            sales_end=sales_end,
        )
        self.ticket_types[tt.id] = tt
        return tt

    def add_discount_code(self, code: str, discount_type: DiscountType = DiscountType.PERCENTAGE,
                          discount_value: Decimal = Decimal("10"), max_uses: Optional[int] = None,
                          is_active: bool = True, valid_from: Optional[datetime] = None,
                          valid_until: Optional[datetime] = None,
                          event_id: Optional[int] = None) -> DiscountCode:
        dc = DiscountCode(
            id=next(self._ids),
            code=code.upper(),
            discount_type=discount_type,
            discount_value=discount_value,
            max_uses=max_uses,
            current_uses=0,
            is_active=is_active,
            version=1,
            valid_from=valid_from,
            valid_until=valid_until,
            event_id=event_id,
        )
        self.discount_codes[dc.id] = dc
        return dc

    # -- events -------------------------------------------------------------

    async def get_event(self, event_id: int) -> Optional[EventRecord]:
        await asyncio.sleep(0)
        return self.events.get(event_id)

    # -- ticket types -------------------------------------------------------

    async def get_ticket_type(self, ticket_type_id: int) -> Optional[TicketType]:
        await asyncio.sleep(0)
        return self.ticket_types.get(ticket_type_id)

    async def increment_reserved(self, ticket_type_id: int, quantity: int) -> Optional[TicketType]:
        await asyncio.sleep(0)
        async with self._lock:
            tt = self.ticket_types.get(ticket_type_id)
            if tt is None or not tt.is_active:
                return None
            if tt.capacity_reserved + quantity > tt.capacity_total:
                return None
            tt = dataclasses.replace(
                tt, capacity_reserved=tt.capacity_reserved + quantity, version=tt.version + 1
            )
            self.ticket_types[tt.id] = tt
            return tt

    async def decrement_reserved(self, ticket_type_id: int, quantity: int) -> Optional[TicketType]:
        await asyncio.sleep(0)
        async with self._lock:
            return self._release_stock(ticket_type_id, quantity)

    def _release_stock(self, ticket_type_id: int, quantity: int) -> Optional[TicketType]:
        # caller holds the lock
        tt = self.ticket_types.get(ticket_type_id)
        if tt is None:
            return None
        tt = dataclasses.replace(
            tt,
            capacity_reserved=max(tt.capacity_reserved - quantity, 0),
            version=tt.version + 1,
        )
        self.ticket_types[tt.id] = tt
        return tt

    # -- discount codes -----------------------------------------------------

    async def get_discount_code(self, code: str) -> Optional[DiscountCode]:
        await asyncio.sleep(0)
        for dc in self.discount_codes.values():
            if dc.code == code:
                return dc
        return None

    async def increment_uses(self, discount_code_id: int) -> Optional[DiscountCode]:
        await asyncio.sleep(0)
        async with self._lock:
            dc = self.discount_codes.get(discount_code_id)
            if dc is None or not dc.is_active or dc.exhausted:
                return None
            dc = dataclasses.replace(dc, current_uses=dc.current_uses + 1, version=dc.version + 1)
            self.discount_codes[dc.id] = dc
            return dc

    async def decrement_uses(self, discount_code_id: int) -> Optional[DiscountCode]:
        await asyncio.sleep(0)
        async with self._lock:
            return self._release_use(discount_code_id)

    def _release_use(self, discount_code_id: int) -> Optional[DiscountCode]:
        dc = self.discount_codes.get(discount_code_id)
        if dc is None:
            return None
        dc = dataclasses.replace(
            dc, current_uses=max(dc.current_uses - 1, 0), version=dc.version + 1
        )
        self.discount_codes[dc.id] = dc
        return dc

    # -- purchases ----------------------------------------------------------

    async def insert_purchase(self, purchase: NewPurchase) -> Purchase:
        await asyncio.sleep(0)
        async with self._lock:
            row = Purchase(
                id=next(self._ids),
                payment_status=PaymentStatus.PENDING,
                created_at=utcnow(),
                **dataclasses.asdict(purchase),
            )
            self.purchases[row.id] = row
            return row

    async def get_purchase(self, purchase_id: int) -> Optional[Purchase]:
        await asyncio.sleep(0)
        return self.purchases.get(purchase_id)

    async def get_purchase_by_session(self, session_id: str) -> Optional[Purchase]:
        await asyncio.sleep(0)
        for purchase in self.purchases.values():
            if purchase.payment_session_id == session_id:
                return purchase
        return None

    async def attach_payment_session(self, purchase_id: int, session_id: str) -> Optional[Purchase]:
        await asyncio.sleep(0)
        async with self._lock:
            purchase = self.purchases.get(purchase_id)
            if purchase is None or purchase.payment_session_id is not None:
                return None
            purchase = dataclasses.replace(purchase, payment_session_id=session_id)
            self.purchases[purchase.id] = purchase
            return purchase

    async def transition_purchase(
        self,
        purchase_id: int,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
        at: datetime,
        payment_ref: Optional[str] = None,
    ) -> Optional[Purchase]:
        await asyncio.sleep(0)
        async with self._lock:
            purchase = self.purchases.get(purchase_id)
            if purchase is None or purchase.payment_status is not from_status:
                return None
            changes = {"payment_status": to_status}
            if to_status is PaymentStatus.COMPLETED:
                changes.update(completed_at=at, payment_ref=payment_ref)
            elif to_status is PaymentStatus.FAILED:
                changes["failed_at"] = at
            purchase = dataclasses.replace(purchase, **changes)
            self.purchases[purchase.id] = purchase
            return purchase

    async def fail_purchase(self, purchase_id: int, at: datetime) -> Optional[Purchase]:
        await asyncio.sleep(0)
        async with self._lock:
            purchase = self.purchases.get(purchase_id)
            if purchase is None or purchase.payment_status is not PaymentStatus.PENDING:
                return None
            purchase = dataclasses.replace(
                purchase, payment_status=PaymentStatus.FAILED, failed_at=at
            )
            self.purchases[purchase.id] = purchase
            self._release_stock(purchase.ticket_type_id, purchase.quantity)
            if purchase.discount_code_id is not None:
                self._release_use(purchase.discount_code_id)
            return purchase

    async def list_pending_before(self, cutoff: datetime, limit: int = 100) -> list[Purchase]:
        await asyncio.sleep(0)
        pending = [
            p for p in self.purchases.values()
            if p.payment_status is PaymentStatus.PENDING and p.created_at < cutoff
        ]
        pending.sort(key=lambda p: p.created_at)
        return pending[:limit]

    # -- tickets ------------------------------------------------------------

    async def insert_ticket(self, ticket: NewTicket) -> Ticket:
        await asyncio.sleep(0)
        async with self._lock:
            for existing in self.tickets.values():
                if existing.ticket_number == ticket.ticket_number or (
                    existing.purchase_id == ticket.purchase_id
                    and existing.sequence_index == ticket.sequence_index
                ):
                    raise DuplicateTicket(ticket.purchase_id, ticket.sequence_index)
            row = Ticket(
                id=next(self._ids),
                status=TicketStatus.VALID,
                created_at=utcnow(),
                **dataclasses.asdict(ticket),
            )
            self.tickets[row.id] = row
            return row

    async def list_tickets_for_purchase(self, purchase_id: int) -> list[Ticket]:
        await asyncio.sleep(0)
        tickets = [t for t in self.tickets.values() if t.purchase_id == purchase_id]
        return sorted(tickets, key=lambda t: t.sequence_index)

    async def list_tickets_for_owner(self, owner_id: int) -> list[Ticket]:
        await asyncio.sleep(0)
        tickets = [t for t in self.tickets.values() if t.owner_id == owner_id]
        return sorted(tickets, key=lambda t: t.id, reverse=True)

    async def get_ticket_by_number(self, ticket_number: str) -> Optional[Ticket]:
        await asyncio.sleep(0)
        for ticket in self.tickets.values():
            if ticket.ticket_number == ticket_number:
                return ticket
        return None

    async def transition_ticket(
        self, ticket_id: int, from_status: TicketStatus, to_status: TicketStatus
    ) -> Optional[Ticket]:
        await asyncio.sleep(0)
        async with self._lock:
            ticket = self.tickets.get(ticket_id)
            if ticket is None or ticket.status is not from_status:
                return None
            ticket = dataclasses.replace(ticket, status=to_status)
            self.tickets[ticket.id] = ticket
            return ticket

    async def redeem_ticket(self, entry: NewCheckIn) -> Optional[tuple[Ticket, CheckIn]]:
        await asyncio.sleep(0)
        async with self._lock:
            ticket = self.tickets.get(entry.ticket_id)
            if ticket is None or ticket.status is not TicketStatus.VALID:
                return None
            ticket = dataclasses.replace(
                ticket,
                status=TicketStatus.USED,
                checked_in_at=entry.checked_in_at,
                checked_in_by=entry.checked_in_by,
            )
            row = CheckIn(id=next(self._ids), **dataclasses.asdict(entry))
            self.tickets[ticket.id] = ticket
            self.check_ins[row.id] = row
            return ticket, row

    async def list_check_ins(self, ticket_id: int) -> list[CheckIn]:
        await asyncio.sleep(0)
        entries = [c for c in self.check_ins.values() if c.ticket_id == ticket_id]
        return sorted(entries, key=lambda c: c.checked_in_at)
