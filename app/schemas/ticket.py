"""Request/response schemas for tickets."""

from datetime import datetime

from pydantic import Field

from app.schemas.base import APIModel


class TicketCreate(APIModel):
    title: str = Field(..., min_length=1, max_length=512)
    description: str = Field(default="", max_length=20000)
    assigned_to: int | None = None


class TicketOut(APIModel):
    id: int
    title: str
    description: str
    status: str
    created_by: int | None = None
    assigned_to: int | None = None
    created_at: datetime | None = None


class TicketsResponse(APIModel):
    tickets: list[TicketOut]
