"""
Pydantic schemas for checkout, payment verification and purchases.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from boxoffice.domain import PaymentStatus
from boxoffice.schemas.ticket import TicketResponse


class CheckoutRequest(BaseModel):
    ticket_type_id: int
    quantity: int = Field(default=1, ge=1, le=100)
    discount_code: Optional[str] = Field(None, max_length=64)
    guest_email: Optional[EmailStr] = None
    guest_name: Optional[str] = Field(None, max_length=255)


class PurchaseResponse(BaseModel):
    id: int
    buyer_id: int
    event_id: int
    ticket_type_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    discount: Decimal
    fee: Decimal
    total: Decimal
    currency: str
    payment_status: PaymentStatus
    payment_session_id: Optional[str]
    created_at: datetime
    completed_at: Optional[datetime]

    model_config = {"from_attributes": True}


class CheckoutResponse(BaseModel):
    purchase: PurchaseResponse
    session_id: str
    redirect_url: str


class CheckoutStatusResponse(BaseModel):
    status: str
    purchase: PurchaseResponse
    tickets: list[TicketResponse] = []


class PurchaseDetailResponse(BaseModel):
    purchase: PurchaseResponse
    tickets: list[TicketResponse] = []


class WebhookAck(BaseModel):
    received: bool = True
    outcome: str
