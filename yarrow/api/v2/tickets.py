from fastapi import APIRouter, Query, status
from typing import Optional
import uuid
import logging

from yarrow.api.deps import DbSession, CurrentActor
from yarrow.schemas.ticket import (
    TicketCreate,
    TicketStatusUpdate,
    TicketAgentAssign,
    TicketResponse,
    TicketListResponse,
)
from yarrow.services.ticket_state import TicketStateMachine

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=TicketListResponse)
async def list_tickets(
    db: DbSession,
    current_actor: CurrentActor,
    property_id: Optional[uuid.UUID] = None,
    tenant_id: Optional[uuid.UUID] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
):
    """List tickets, newest first."""
    tickets = await TicketStateMachine(db).list_tickets(
        property_id=property_id,
        tenant_id=tenant_id,
        status=status_filter,
    )
    return TicketListResponse(
        items=[TicketResponse.model_validate(t) for t in tickets],
        total=len(tickets),
    )


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: uuid.UUID,
    db: DbSession,
    current_actor: CurrentActor,
):
    """Get a single ticket by ID."""
    return await TicketStateMachine(db).get_ticket(ticket_id)


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    ticket_data: TicketCreate,
    db: DbSession,
    current_actor: CurrentActor,
):
    """Open a new ticket."""
    try:
        created_by = uuid.UUID(current_actor.id)
    except ValueError:
        created_by = None

    ticket = await TicketStateMachine(db).create_ticket(
        created_by=created_by,
        **ticket_data.model_dump(),
    )
    return ticket


@router.patch("/{ticket_id}/status", response_model=TicketResponse)
async def update_ticket_status(
    ticket_id: uuid.UUID,
    update: TicketStatusUpdate,
    db: DbSession,
    current_actor: CurrentActor,
):
    """Human status change. Unrecognized statuses are a 422."""
    return await TicketStateMachine(db).set_status(ticket_id, update.status, actor=current_actor.id)


@router.patch("/{ticket_id}/agent", response_model=TicketResponse)
async def assign_agent(
    ticket_id: uuid.UUID,
    assignment: TicketAgentAssign,
    db: DbSession,
    current_actor: CurrentActor,
):
    """Set or clear the handling agent."""
    return await TicketStateMachine(db).assign_agent(ticket_id, assignment.agent_id)
