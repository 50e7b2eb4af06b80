"""Tickets endpoint: ownership-checked reads and creation."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.api.v1.gate import require_permission
from app.core.database import get_db
from app.core.errors import ForbiddenError, MalformedRequestError
from app.models import Ticket
from app.schemas.auth import CurrentUser
from app.schemas.ticket import TicketCreate, TicketOut, TicketsResponse
from app.services import credential_store
from app.services.permissions import can_access_resource, has_permission

router = APIRouter()

VIEW_ALL = "ticket_view_all"


def _can_view(user: CurrentUser, ticket: Ticket) -> bool:
    return can_access_resource(user, ticket.created_by, VIEW_ALL) or can_access_resource(
        user, ticket.assigned_to, VIEW_ALL
    )


@router.get("", response_model=TicketsResponse)
def list_tickets(
    current_user: Annotated[CurrentUser, Depends(require_permission("ticket_view"))],
    db: Annotated[Session, Depends(get_db)],
) -> TicketsResponse:
    """All tickets for holders of ticket_view_all; otherwise those created by or assigned to the caller."""
    query = db.query(Ticket)
    if not has_permission(current_user, VIEW_ALL):
        query = query.filter(
            or_(Ticket.created_by == current_user.id, Ticket.assigned_to == current_user.id)
        )
    tickets = query.order_by(Ticket.id.desc()).all()
    return TicketsResponse(tickets=[TicketOut.model_validate(t) for t in tickets])


@router.get("/{ticket_id}", response_model=TicketOut)
def get_ticket(
    ticket_id: int,
    current_user: Annotated[CurrentUser, Depends(require_permission("ticket_view"))],
    db: Annotated[Session, Depends(get_db)],
) -> TicketOut:
    ticket = db.query(Ticket).filter(Ticket.id == ticket_id).first()
    if ticket is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    if not _can_view(current_user, ticket):
        raise ForbiddenError("Permission denied")
    return TicketOut.model_validate(ticket)


@router.post("", response_model=TicketOut, status_code=status.HTTP_201_CREATED)
def create_ticket(
    body: TicketCreate,
    current_user: Annotated[CurrentUser, Depends(require_permission("ticket_create"))],
    db: Annotated[Session, Depends(get_db)],
) -> TicketOut:
    """Create a ticket owned by the caller. Assigning to someone else needs ticket_assign."""
    if body.assigned_to is not None and body.assigned_to != current_user.id:
        if not has_permission(current_user, "ticket_assign"):
            raise ForbiddenError("Permission denied")
        if credential_store.get_user_by_id(db, body.assigned_to) is None:
            raise MalformedRequestError("Assignee not found")
    ticket = Ticket(
        title=body.title.strip(),
        description=body.description,
        status="open",
        created_by=current_user.id,
        assigned_to=body.assigned_to,
    )
    db.add(ticket)
    db.commit()
    db.refresh(ticket)
    return TicketOut.model_validate(ticket)
