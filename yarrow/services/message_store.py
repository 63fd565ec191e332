"""Append-only, per-ticket ordered message log."""

import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from yarrow.exceptions import NotFoundError
from yarrow.models.message import Message
from yarrow.models.ticket import Ticket
from yarrow.models.timestamps import next_after
from yarrow.schemas.meta import ActionAuditMeta, MessageMeta, dump_meta, load_meta

logger = logging.getLogger(__name__)


class MessageStore:
    """Inserts and reads ``Message`` rows. There is no update or delete.

    Each ``append`` commits on its own, so a message is durable as soon as the
    call returns and a later failure in the same turn cannot take it back.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _ticket(self, ticket_id: uuid.UUID) -> Ticket:
        ticket = await self.db.get(Ticket, ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket", ticket_id)
        return ticket

    async def _last_created_at(self, ticket_id: uuid.UUID):
        result = await self.db.execute(
            select(func.max(Message.created_at)).where(Message.ticket_id == ticket_id)
        )
        return result.scalar()

    async def append(
        self,
        ticket_id: uuid.UUID,
        sender_id: str,
        body: str,
        is_system: bool = False,
        meta: Optional[MessageMeta] = None,
    ) -> Message:
        """Insert at the end of the ticket's log."""
        ticket = await self._ticket(ticket_id)

        message = Message(
            ticket_id=ticket.id,
            agency_id=ticket.agency_id,
            sender_id=str(sender_id),
            body=body,
            is_system=is_system,
            meta=dump_meta(meta),
            created_at=next_after(await self._last_created_at(ticket.id)),
        )
        self.db.add(message)
        await self.db.commit()
        await self.db.refresh(message)

        logger.debug(
            "Appended message %s to ticket %s (system=%s)", message.id, ticket_id, is_system
        )
        return message

    async def list(self, ticket_id: uuid.UUID, limit: Optional[int] = None) -> list[Message]:
        """Messages in ascending order.

        With ``limit`` the most recent ``limit`` messages are returned, still
        oldest first: this is the tail window fed to the reasoning service.
        """
        await self._ticket(ticket_id)

        if limit is not None:
            if limit <= 0:
                return []
            query = (
                select(Message)
                .where(Message.ticket_id == ticket_id)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(limit)
            )
            result = await self.db.execute(query)
            return list(reversed(result.scalars().all()))

        query = (
            select(Message)
            .where(Message.ticket_id == ticket_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def has_action_id(self, ticket_id: uuid.UUID, action_id: Optional[str]) -> bool:
        """Whether an audit message for ``action_id`` already exists.

        Linear scan over the ticket's audit metas. Tickets hold tens of
        messages; an index on meta.action_id is the remedy if that changes.
        """
        if not action_id:
            return False
        result = await self.db.execute(
            select(Message.meta).where(Message.ticket_id == ticket_id)
        )
        metas: Sequence[dict] = result.scalars().all()
        for raw in metas:
            meta = load_meta(raw)
            if isinstance(meta, ActionAuditMeta) and meta.action_id == action_id:
                return True
        return False
