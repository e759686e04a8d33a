"""
Pydantic schemas for tickets and door check-in.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from boxoffice.domain import TicketStatus


class TicketResponse(BaseModel):
    id: int
    ticket_number: str
    purchase_id: int
    event_id: int
    ticket_type_id: int
    status: TicketStatus
    validation_payload: str
    created_at: datetime
    checked_in_at: Optional[datetime]
    checked_in_by: Optional[int]

    model_config = {"from_attributes": True}


class CheckInRequest(BaseModel):
    """Either the ticket number typed by staff or the scanned QR payload."""

    event_id: int
    ticket_number: Optional[str] = Field(None, max_length=32)
    payload: Optional[str] = Field(None, max_length=512)
    method: str = Field(default="qr", max_length=20)

    @model_validator(mode="after")
    def one_identifier(self):
        if not self.ticket_number and not self.payload:
            raise ValueError("ticket_number or payload is required")
        return self


class CheckInResponse(BaseModel):
    ticket: TicketResponse
    checked_in_at: datetime
    checked_in_by: int
    method: str
