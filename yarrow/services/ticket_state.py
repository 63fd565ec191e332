"""Ticket entity access and status lifecycle.

Statuses: open, in_progress, resolved, cancelled. Any recognized status may
move to any other one; agents reopen resolved tickets, so resolved -> open is
a legal transition.
"""

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from yarrow.exceptions import InvalidStatusError, NotFoundError
from yarrow.models.ticket import Ticket, TicketStatus, TicketSeverity
from yarrow.models.timestamps import next_after

logger = logging.getLogger(__name__)


ALLOWED_STATUSES = [s.value for s in TicketStatus]
ALLOWED_SEVERITIES = [s.value for s in TicketSeverity]


def normalize_status(value: Any) -> Optional[str]:
    """Case-insensitive match against the recognized statuses, else None.

    Shared by human updates and AI proposals so both paths accept exactly the
    same values.
    """
    if not isinstance(value, str):
        return None
    candidate = value.strip().lower()
    return candidate if candidate in ALLOWED_STATUSES else None


class TicketStateMachine:
    """Reads tickets and applies guarded status changes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_ticket(self, ticket_id: uuid.UUID) -> Ticket:
        ticket = await self.db.get(Ticket, ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket", ticket_id)
        return ticket

    async def create_ticket(
        self,
        tenant_id: uuid.UUID,
        property_id: uuid.UUID,
        landlord_id: uuid.UUID,
        title: str,
        description: str,
        severity: str = "normal",
        agency_id: Optional[uuid.UUID] = None,
        agent_id: Optional[uuid.UUID] = None,
        created_by: Optional[uuid.UUID] = None,
    ) -> Ticket:
        """Open a new ticket. Status always starts as open."""
        severity = (severity or "normal").strip().lower()
        if severity not in ALLOWED_SEVERITIES:
            severity = TicketSeverity.normal.value

        ticket = Ticket(
            agency_id=agency_id,
            tenant_id=tenant_id,
            property_id=property_id,
            landlord_id=landlord_id,
            agent_id=agent_id,
            title=title,
            description=description,
            status=TicketStatus.open.value,
            severity=severity,
            created_by=created_by or tenant_id,
        )
        self.db.add(ticket)
        await self.db.commit()
        await self.db.refresh(ticket)

        logger.info("Created ticket %s (severity=%s)", ticket.id, ticket.severity)
        return ticket

    async def list_tickets(
        self,
        property_id: Optional[uuid.UUID] = None,
        tenant_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
    ) -> list[Ticket]:
        """Newest first, optionally filtered."""
        query = select(Ticket)
        if property_id:
            query = query.where(Ticket.property_id == property_id)
        if tenant_id:
            query = query.where(Ticket.tenant_id == tenant_id)
        if status:
            normalized = normalize_status(status)
            if normalized is None:
                raise InvalidStatusError(status, ALLOWED_STATUSES)
            query = query.where(Ticket.status == normalized)

        result = await self.db.execute(query.order_by(Ticket.created_at.desc()))
        return list(result.scalars().all())

    async def set_status(self, ticket_id: uuid.UUID, new_status: Any, actor: str) -> Ticket:
        """Move a ticket to ``new_status`` and bump ``updated_at``.

        Raises InvalidStatusError (nothing changes) for unrecognized values
        and NotFoundError for unknown tickets. Persistence errors are rolled
        back and re-raised. Notifying anyone is the caller's job.
        """
        normalized = normalize_status(new_status)
        if normalized is None:
            raise InvalidStatusError(new_status, ALLOWED_STATUSES)

        ticket = await self.get_ticket(ticket_id)
        previous = ticket.status

        ticket.status = normalized
        ticket.updated_at = next_after(ticket.updated_at)
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        await self.db.refresh(ticket)

        logger.info(
            "Ticket %s status %s -> %s by %s", ticket_id, previous, normalized, actor
        )
        return ticket

    async def assign_agent(self, ticket_id: uuid.UUID, agent_id: Optional[uuid.UUID]) -> Ticket:
        """Set or clear the handling agent. Status is untouched."""
        ticket = await self.get_ticket(ticket_id)
        ticket.agent_id = agent_id
        await self.db.commit()
        await self.db.refresh(ticket)

        logger.info("Ticket %s assigned to agent %s", ticket_id, agent_id)
        return ticket
