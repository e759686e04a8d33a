from boxoffice.schemas.user import UserCreate, UserResponse, UserLogin, Token
from boxoffice.schemas.event import (
    EventCreate, EventResponse, EventListResponse,
    TicketTypeCreate, TicketTypeUpdate, TicketTypeResponse, TicketTypeListResponse,
    DiscountCodeCreate, DiscountCodeResponse, DiscountValidateRequest, DiscountValidateResponse,
    CheckInStats, SalesStats,
)
from boxoffice.schemas.ticket import TicketResponse, CheckInRequest, CheckInResponse
from boxoffice.schemas.purchase import (
    CheckoutRequest, CheckoutResponse, CheckoutStatusResponse,
    PurchaseResponse, PurchaseDetailResponse, WebhookAck,
)

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token",
    "EventCreate", "EventResponse", "EventListResponse",
    "TicketTypeCreate", "TicketTypeUpdate", "TicketTypeResponse", "TicketTypeListResponse",
    "DiscountCodeCreate", "DiscountCodeResponse", "DiscountValidateRequest", "DiscountValidateResponse",
    "CheckInStats", "SalesStats",
    "TicketResponse", "CheckInRequest", "CheckInResponse",
    "CheckoutRequest", "CheckoutResponse", "CheckoutStatusResponse",
    "PurchaseResponse", "PurchaseDetailResponse", "WebhookAck",
]
