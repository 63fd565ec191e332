"""Rolling per-ticket conversation summary.

The summary only ever grows: each update appends one bullet line to the prior
text. It is a best-effort side channel. A failed append is logged and dropped
and never blocks message delivery or action execution.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from yarrow.exceptions import SummarizerError
from yarrow.models.conversation_summary import ConversationSummary
from yarrow.models.ticket import Ticket
from yarrow.models.timestamps import utcnow

logger = logging.getLogger(__name__)

OBSERVED_BODY_CHARS = 160
LINE_SEPARATOR = "\n- "


def observation_line(body: str, at: Optional[datetime] = None) -> str:
    """One-line description of a human message the assistant did not answer."""
    at = at or utcnow()
    return f"New message at {at.isoformat()}: {body[:OBSERVED_BODY_CHARS]}"


class ConversationSummarizer:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_summary(self, ticket_id: uuid.UUID) -> Optional[ConversationSummary]:
        result = await self.db.execute(
            select(ConversationSummary).where(ConversationSummary.ticket_id == ticket_id)
        )
        return result.scalar_one_or_none()

    async def _append(self, ticket_id: uuid.UUID, new_line: str) -> ConversationSummary:
        now = utcnow()
        summary = await self.get_summary(ticket_id)

        if summary is None:
            ticket = await self.db.get(Ticket, ticket_id)
            if ticket is None:
                raise SummarizerError(f"ticket {ticket_id} does not exist")
            summary = ConversationSummary(
                ticket_id=ticket_id,
                agency_id=ticket.agency_id,
                summary_text=new_line,
                last_message_at=now,
                updated_at=now,
            )
            self.db.add(summary)
        else:
            prior = summary.summary_text or ""
            summary.summary_text = f"{prior}{LINE_SEPARATOR}{new_line}" if prior else new_line
            summary.last_message_at = now
            summary.updated_at = now

        await self.db.commit()
        return summary

    async def append_summary(self, ticket_id: uuid.UUID, new_line: Optional[str]) -> bool:
        """Append ``new_line`` to the ticket's summary, creating it if needed.

        Returns True when the line was stored. Blank lines are ignored and
        errors are swallowed after logging.
        """
        if not new_line or not new_line.strip():
            return False

        try:
            await self._append(ticket_id, new_line.strip())
        except Exception as e:
            logger.warning("Summary append skipped for ticket %s: %s", ticket_id, e)
            try:
                await self.db.rollback()
            except SQLAlchemyError:
                logger.exception("Rollback after summary failure also failed")
            return False

        logger.debug("Summary updated for ticket %s", ticket_id)
        return True
