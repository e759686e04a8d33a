"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter

from boxoffice.api.routes import auth, checkout, events, mockpay, tickets
from boxoffice.core.config import get_settings

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(events.router)
api_router.include_router(checkout.router)
api_router.include_router(tickets.router)

# Hosted-page simulator only exists when MockPay is the processor
if get_settings().PAYMENT_PROVIDER == "mockpay":
    api_router.include_router(mockpay.router)
