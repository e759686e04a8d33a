"""
Ticket endpoints: the caller's tickets, door check-in and cancellation.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.api.deps import get_context
from boxoffice.core.security import get_current_user_id
from boxoffice.db.session import get_db
from boxoffice.schemas.ticket import CheckInRequest, CheckInResponse, TicketResponse
from boxoffice.services.context import TicketingContext
from boxoffice.services.event_service import ensure_event_organizer

router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.get("/", response_model=list[TicketResponse])
async def my_tickets_endpoint(
    user_id: int = Depends(get_current_user_id),
    ctx: TicketingContext = Depends(get_context),
):
    tickets = await ctx.store.list_tickets_for_owner(user_id)
    return [TicketResponse.model_validate(t) for t in tickets]


@router.post("/check-in", response_model=CheckInResponse)
async def check_in_endpoint(
    data: CheckInRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ctx: TicketingContext = Depends(get_context),
):
    """
    Redeem a ticket at the door. Accepts the scanned QR payload or a typed
    ticket number. A second scan of the same ticket returns 409 with the
    time and scanner of the first one.
    """
    await ensure_event_organizer(db, data.event_id, user_id)

    if data.payload:
        result = await ctx.redemption.check_in_by_payload(
            data.payload, user_id, method=data.method, event_id=data.event_id
        )
    else:
        result = await ctx.redemption.check_in(
            data.ticket_number, user_id, method=data.method, event_id=data.event_id
        )

    return CheckInResponse(
        ticket=TicketResponse.model_validate(result.ticket),
        checked_in_at=result.check_in.checked_in_at,
        checked_in_by=result.check_in.checked_in_by,
        method=result.check_in.method,
    )


@router.post("/{ticket_number}/cancel", response_model=TicketResponse)
async def cancel_ticket_endpoint(
    ticket_number: str,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ctx: TicketingContext = Depends(get_context),
):
    ticket = await ctx.redemption.lookup(ticket_number)
    await ensure_event_organizer(db, ticket.event_id, user_id)
    ticket = await ctx.redemption.cancel(ticket_number)
    return TicketResponse.model_validate(ticket)
