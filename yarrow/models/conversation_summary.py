from sqlalchemy import Column, Integer, DateTime, Text, ForeignKey, Uuid

from yarrow.database import Base
from yarrow.models.timestamps import utcnow


class ConversationSummary(Base):
    """Rolling, append-only summary of one ticket's conversation."""

    __tablename__ = "ai_conversation_summaries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ticket_id = Column(Uuid(as_uuid=True), ForeignKey("tenant_tickets.id"), nullable=False, unique=True)
    agency_id = Column(Uuid(as_uuid=True), nullable=True)

    summary_text = Column(Text, nullable=False, default="")
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<ConversationSummary ticket {self.ticket_id} - {len(self.summary_text or '')} chars>"
