"""
MockPay hosted-page simulator.

POST /mockpay/{session_id}?outcome=paid plays the buyer finishing checkout:
the session is settled and its signed callback is pushed through the
regular webhook path, exactly as a real processor would deliver it.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from boxoffice.api.deps import get_context
from boxoffice.core.logging import get_logger
from boxoffice.infrastructure.mockpay import MockPayGateway
from boxoffice.services.context import TicketingContext

logger = get_logger(__name__)
router = APIRouter(prefix="/mockpay", tags=["MockPay"])


def _mockpay(ctx: TicketingContext) -> MockPayGateway:
    if not isinstance(ctx.gateway, MockPayGateway):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="MockPay is not enabled")
    return ctx.gateway


@router.get("/{session_id}")
async def mockpay_session(session_id: str, ctx: TicketingContext = Depends(get_context)):
    state = await _mockpay(ctx).retrieve_session(session_id)
    return {"session_id": state.session_id, "status": state.status.value}


@router.post("/{session_id}")
async def mockpay_settle(
    session_id: str,
    outcome: str = Query("paid", pattern="^(paid|failed|expired)$"),
    ctx: TicketingContext = Depends(get_context),
):
    gateway = _mockpay(ctx)
    payload, headers = gateway.settle(session_id, outcome)
    webhook_outcome = await ctx.checkout.handle_webhook(payload, headers)
    logger.info("mockpay_webhook_delivered", session_id=session_id, outcome=webhook_outcome)
    return {
        "session_id": session_id,
        "outcome": outcome,
        "webhook": webhook_outcome,
        "redirect_url": gateway.redirect_for(session_id),
    }
