"""
Checkout endpoints: start a purchase, return from the hosted payment page,
processor webhooks and purchase lookup.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.api.deps import get_context
from boxoffice.core.errors import GuestDetailsRequired, NotPurchaseOwner, PurchaseNotFound
from boxoffice.core.security import get_current_user_id, get_optional_user_id
from boxoffice.db.session import get_db
from boxoffice.schemas.purchase import (
    CheckoutRequest,
    CheckoutResponse,
    CheckoutStatusResponse,
    PurchaseDetailResponse,
    PurchaseResponse,
    WebhookAck,
)
from boxoffice.schemas.ticket import TicketResponse
from boxoffice.services.auth_service import get_or_create_guest, get_user
from boxoffice.services.context import TicketingContext
from boxoffice.services.event_service import is_admin

router = APIRouter(tags=["Checkout"])


@router.post("/checkout/", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def start_checkout_endpoint(
    data: CheckoutRequest,
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
    ctx: TicketingContext = Depends(get_context),
):
    """
    Reserve tickets and open a payment session.

    Anonymous callers check out as guests and must supply guest_email and
    guest_name. Returns the processor redirect URL.
    """
    if user_id is None:
        if not data.guest_email or not data.guest_name:
            raise GuestDetailsRequired()
        buyer = await get_or_create_guest(db, data.guest_email, data.guest_name)
    else:
        buyer = await get_user(db, user_id)
    buyer_id, buyer_email = buyer.id, buyer.email
    # The core writes through its own sessions; release our write lock first
    await db.commit()

    started = await ctx.checkout.start_checkout(
        buyer_id=buyer_id,
        buyer_email=buyer_email,
        ticket_type_id=data.ticket_type_id,
        quantity=data.quantity,
        discount_code=data.discount_code,
    )
    return CheckoutResponse(
        purchase=PurchaseResponse.model_validate(started.purchase),
        session_id=started.purchase.payment_session_id,
        redirect_url=started.redirect_url,
    )


@router.get("/checkout/verify/{session_id}", response_model=CheckoutStatusResponse)
async def verify_checkout_endpoint(session_id: str, ctx: TicketingContext = Depends(get_context)):
    """Called when the buyer lands back from the hosted payment page."""
    result = await ctx.checkout.verify_session(session_id)
    return CheckoutStatusResponse(
        status=result.status,
        purchase=PurchaseResponse.model_validate(result.purchase),
        tickets=[TicketResponse.model_validate(t) for t in result.tickets],
    )


@router.post("/payments/webhook", response_model=WebhookAck)
async def payment_webhook_endpoint(request: Request, ctx: TicketingContext = Depends(get_context)):
    """Processor callback. Signature is verified before anything else."""
    payload = await request.body()
    outcome = await ctx.checkout.handle_webhook(payload, request.headers)
    return WebhookAck(outcome=outcome)


@router.get("/purchases/{purchase_id}", response_model=PurchaseDetailResponse)
async def get_purchase_endpoint(
    purchase_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ctx: TicketingContext = Depends(get_context),
):
    purchase = await ctx.store.get_purchase(purchase_id)
    if purchase is None:
        raise PurchaseNotFound(purchase_id=purchase_id)
    if purchase.buyer_id != user_id and not await is_admin(db, user_id):
        raise NotPurchaseOwner(purchase_id)

    tickets = await ctx.store.list_tickets_for_purchase(purchase_id)
    return PurchaseDetailResponse(
        purchase=PurchaseResponse.model_validate(purchase),
        tickets=[TicketResponse.model_validate(t) for t in tickets],
    )
