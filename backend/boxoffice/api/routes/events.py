"""
Event catalog endpoints: events, ticket types, discount codes and
organizer analytics. Availability listings are cached in Redis.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.api.deps import get_context
from boxoffice.core.errors import TicketTypeNotFound
from boxoffice.core.logging import get_logger
from boxoffice.core.security import get_current_user_id
from boxoffice.db.session import get_db
from boxoffice.schemas.event import (
    CheckInStats,
    DiscountCodeCreate,
    DiscountCodeResponse,
    DiscountValidateRequest,
    DiscountValidateResponse,
    EventCreate,
    EventListResponse,
    EventResponse,
    SalesStats,
    TicketTypeCreate,
    TicketTypeListResponse,
    TicketTypeResponse,
    TicketTypeUpdate,
)
from boxoffice.services import analytics_service, event_service
from boxoffice.services.cache_service import (
    get_cached_ticket_types,
    invalidate_ticket_types,
    set_cached_ticket_types,
)
from boxoffice.services.context import TicketingContext
from boxoffice.services.purchases import compute_totals

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a new event. Requires an organizer account."""
    return await event_service.create_event(db, event_data, user_id)


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    events, total = await event_service.list_events(db, page, page_size, upcoming_only)
    return EventListResponse(
        events=[EventResponse.model_validate(e) for e in events],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(event_id: int, db: AsyncSession = Depends(get_db)):
    return await event_service.get_event(db, event_id)


@router.post(
    "/{event_id}/ticket-types",
    response_model=TicketTypeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_ticket_type_endpoint(
    event_id: int,
    data: TicketTypeCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await event_service.ensure_event_organizer(db, event_id, user_id)
    ticket_type = await event_service.create_ticket_type(db, event_id, data)
    await invalidate_ticket_types(event_id)
    return ticket_type


@router.patch("/{event_id}/ticket-types/{ticket_type_id}", response_model=TicketTypeResponse)
async def update_ticket_type_endpoint(
    event_id: int,
    ticket_type_id: int,
    data: TicketTypeUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Activate or deactivate a ticket type."""
    await event_service.ensure_event_organizer(db, event_id, user_id)
    ticket_type = await event_service.get_ticket_type(db, ticket_type_id)
    if ticket_type.event_id != event_id:
        raise TicketTypeNotFound(ticket_type_id)
    ticket_type = await event_service.set_ticket_type_active(db, ticket_type_id, data.is_active)
    await invalidate_ticket_types(event_id)
    return ticket_type


@router.get("/{event_id}/ticket-types", response_model=TicketTypeListResponse)
async def list_ticket_types_endpoint(event_id: int, db: AsyncSession = Depends(get_db)):
    """
    Ticket types currently on sale. Cached in Redis; the cache is
    invalidated on every reservation and release for the event.
    """
    cached = await get_cached_ticket_types(event_id)
    if cached is not None:
        logger.info("ticket_types_cache_hit", event_id=event_id)
        return TicketTypeListResponse(event_id=event_id, ticket_types=cached, cached=True)

    await event_service.get_event(db, event_id)
    ticket_types = [
        TicketTypeResponse.model_validate(t)
        for t in await event_service.list_available_ticket_types(db, event_id)
    ]
    await set_cached_ticket_types(event_id, [t.model_dump(mode="json") for t in ticket_types])
    return TicketTypeListResponse(event_id=event_id, ticket_types=ticket_types)


@router.post(
    "/{event_id}/discount-codes",
    response_model=DiscountCodeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_discount_code_endpoint(
    event_id: int,
    data: DiscountCodeCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await event_service.ensure_event_organizer(db, event_id, user_id)
    return await event_service.create_discount_code(db, event_id, data)


@router.post("/{event_id}/discount-codes/validate", response_model=DiscountValidateResponse)
async def validate_discount_code_endpoint(
    event_id: int,
    data: DiscountValidateRequest,
    ctx: TicketingContext = Depends(get_context),
):
    """Check a promo code without using it; prices the order when a ticket type is given."""
    snapshot = await ctx.discounts.preview(data.code, event_id)
    response = DiscountValidateResponse(
        code=snapshot.code,
        discount_type=snapshot.discount_type,
        discount_value=snapshot.discount_value,
    )

    if data.ticket_type_id is not None:
        ticket_type = await ctx.store.get_ticket_type(data.ticket_type_id)
        if ticket_type is None or ticket_type.event_id != event_id:
            raise TicketTypeNotFound(data.ticket_type_id)
        totals = compute_totals(ticket_type.price, data.quantity, ctx.purchases.fee_rate, snapshot)
        response.subtotal = totals.subtotal
        response.discount = totals.discount
        response.fee = totals.fee
        response.total = totals.total

    return response


@router.get("/{event_id}/stats/check-ins", response_model=CheckInStats)
async def check_in_stats_endpoint(
    event_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await event_service.ensure_event_organizer(db, event_id, user_id)
    return await analytics_service.get_check_in_stats(db, event_id)


@router.get("/{event_id}/stats/sales", response_model=SalesStats)
async def sales_stats_endpoint(
    event_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await event_service.ensure_event_organizer(db, event_id, user_id)
    return await analytics_service.get_sales_stats(db, event_id)
