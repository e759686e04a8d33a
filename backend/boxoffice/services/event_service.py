"""
Event catalog service: events, ticket types and discount codes.

Stock counters (capacity_reserved, current_uses) are never written here;
they belong to the inventory and discount ledgers.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.errors import NotEventOrganizer
from boxoffice.core.logging import get_logger
from boxoffice.models import DiscountCode, Event, TicketType, User
from boxoffice.schemas.event import DiscountCodeCreate, EventCreate, TicketTypeCreate
from boxoffice.services.discounts import normalize_code

logger = get_logger(__name__)

ORGANIZER_ROLES = ("organizer", "admin")


async def _get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return user


async def require_organizer(db: AsyncSession, user_id: int) -> User:
    """Only organizers and admins may create events."""
    user = await _get_user(db, user_id)
    if user.role not in ORGANIZER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organizer account required",
        )
    return user


async def is_admin(db: AsyncSession, user_id: int) -> bool:
    user = await _get_user(db, user_id)
    return user.role == "admin"


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if not event:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Event {event_id} not found",
        )
    return event


async def ensure_event_organizer(db: AsyncSession, event_id: int, user_id: int) -> Event:
    """Return the event if `user_id` organizes it or is an admin."""
    event = await get_event(db, event_id)
    if event.organizer_id != user_id and not await is_admin(db, user_id):
        logger.warning("organizer_check_failed", event_id=event_id, user_id=user_id)
        raise NotEventOrganizer(event_id)
    return event


async def create_event(db: AsyncSession, event_data: EventCreate, organizer_id: int) -> Event:
    await require_organizer(db, organizer_id)

    if event_data.starts_at <= datetime.now(timezone.utc):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Event start must be in the future",
        )
    if event_data.ends_at and event_data.ends_at <= event_data.starts_at:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Event end must be after its start",
        )

    event = Event(
        title=event_data.title,
        description=event_data.description,
        starts_at=event_data.starts_at,
        ends_at=event_data.ends_at,
        location=event_data.location,
        organizer_id=organizer_id,
    )
    db.add(event)
    await db.flush()

    logger.info("event_created", event_id=event.id, title=event.title, organizer_id=organizer_id)
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
) -> tuple[list[Event], int]:
    """List events with pagination, soonest first."""
    query = select(Event)

    if upcoming_only:
        query = query.where(Event.starts_at >= datetime.now(timezone.utc))

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.starts_at.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    return list(result.scalars().all()), total


async def create_ticket_type(db: AsyncSession, event_id: int, data: TicketTypeCreate) -> TicketType:
    ticket_type = TicketType(
        event_id=event_id,
        name=data.name,
        description=data.description,
        price=data.price,
        capacity_total=data.capacity_total,
        capacity_reserved=0,
        max_per_order=data.max_per_order,
        sales_start=data.sales_start,
        sales_end=data.sales_end,
        is_active=data.is_active,
        version=1,
    )
    db.add(ticket_type)
    await db.flush()

    logger.info(
        "ticket_type_created",
        ticket_type_id=ticket_type.id,
        event_id=event_id,
        capacity=ticket_type.capacity_total,
        price=str(ticket_type.price),
    )
    return ticket_type


async def get_ticket_type(db: AsyncSession, ticket_type_id: int) -> TicketType:
    result = await db.execute(select(TicketType).where(TicketType.id == ticket_type_id))
    ticket_type = result.scalar_one_or_none()
    if not ticket_type:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Ticket type {ticket_type_id} not found",
        )
    return ticket_type


async def set_ticket_type_active(db: AsyncSession, ticket_type_id: int, is_active: bool) -> TicketType:
    # Only the flag is touched; counters stay with the ledger
    await db.execute(
        update(TicketType)
        .where(TicketType.id == ticket_type_id)
        .values(is_active=is_active, version=TicketType.version + 1)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(
        select(TicketType)
        .where(TicketType.id == ticket_type_id)
        .execution_options(populate_existing=True)
    )
    ticket_type = result.scalar_one()
    logger.info("ticket_type_updated", ticket_type_id=ticket_type_id, is_active=is_active)
    return ticket_type


async def list_available_ticket_types(
    db: AsyncSession,
    event_id: int,
    now: Optional[datetime] = None,
) -> list[TicketType]:
    """Active, not sold out and inside the sales window."""
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(TicketType)
        .where(
            TicketType.event_id == event_id,
            TicketType.is_active.is_(True),
            TicketType.capacity_reserved < TicketType.capacity_total,
            (TicketType.sales_start.is_(None)) | (TicketType.sales_start <= now),
            (TicketType.sales_end.is_(None)) | (TicketType.sales_end >= now),
        )
        .order_by(TicketType.price.asc(), TicketType.id.asc())
    )
    return list(result.scalars().all())


async def create_discount_code(db: AsyncSession, event_id: int, data: DiscountCodeCreate) -> DiscountCode:
    code = normalize_code(data.code)

    existing = await db.execute(select(DiscountCode).where(DiscountCode.code == code))
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Promo code already exists",
        )

    discount = DiscountCode(
        code=code,
        discount_type=data.discount_type.value,
        discount_value=data.discount_value,
        max_uses=data.max_uses,
        current_uses=0,
        is_active=True,
        valid_from=data.valid_from,
        valid_until=data.valid_until,
        event_id=event_id,
        version=1,
    )
    db.add(discount)
    await db.flush()

    logger.info("discount_code_created", code=code, event_id=event_id, max_uses=data.max_uses)
    return discount
