"""
Pydantic schemas for the event catalog: events, ticket types, discount codes.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from boxoffice.domain import DiscountType


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    starts_at: datetime
    ends_at: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=255)


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    starts_at: datetime
    ends_at: Optional[datetime]
    location: Optional[str]
    organizer_id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int


class TicketTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    capacity_total: int = Field(..., ge=1, le=1_000_000)
    max_per_order: int = Field(default=10, ge=1, le=100)
    sales_start: Optional[datetime] = None
    sales_end: Optional[datetime] = None
    is_active: bool = True

    @model_validator(mode="after")
    def check_sales_window(self):
        if self.sales_start and self.sales_end and self.sales_end <= self.sales_start:
            raise ValueError("sales_end must be after sales_start")
        return self


class TicketTypeUpdate(BaseModel):
    is_active: bool


class TicketTypeResponse(BaseModel):
    id: int
    event_id: int
    name: str
    price: Decimal
    capacity_total: int
    capacity_reserved: int
    max_per_order: int
    sales_start: Optional[datetime]
    sales_end: Optional[datetime]
    is_active: bool
    available: int = 0

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def fill_available(self):
        self.available = self.capacity_total - self.capacity_reserved
        return self


class TicketTypeListResponse(BaseModel):
    event_id: int
    ticket_types: list[TicketTypeResponse]
    cached: bool = False


class DiscountCodeCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")
    discount_type: DiscountType
    discount_value: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    max_uses: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None

    @model_validator(mode="after")
    def check_percentage(self):
        if self.discount_type is DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("percentage discounts cannot exceed 100")
        return self


class DiscountCodeResponse(BaseModel):
    id: int
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    max_uses: Optional[int]
    current_uses: int
    is_active: bool
    valid_from: Optional[datetime]
    valid_until: Optional[datetime]
    event_id: Optional[int]

    model_config = {"from_attributes": True}


class DiscountValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    ticket_type_id: Optional[int] = None
    quantity: int = Field(default=1, ge=1)


class DiscountValidateResponse(BaseModel):
    valid: bool = True
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    subtotal: Optional[Decimal] = None
    discount: Optional[Decimal] = None
    fee: Optional[Decimal] = None
    total: Optional[Decimal] = None


class CheckInStats(BaseModel):
    event_id: int
    total_tickets: int
    checked_in: int
    valid: int
    cancelled: int
    percentage: float


class SalesStats(BaseModel):
    event_id: int
    completed_purchases: int
    tickets_sold: int
    revenue: Decimal
    fees: Decimal
    discounts: Decimal
    pending_purchases: int
    failed_purchases: int
