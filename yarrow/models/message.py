from sqlalchemy import Column, BigInteger, Integer, String, DateTime, Text, Boolean, ForeignKey, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from yarrow.database import Base
from yarrow.models.timestamps import utcnow


class Message(Base):
    """One entry of a ticket's append-only conversation log.

    Rows are inserted and never updated or deleted. ``meta`` holds the
    serialized form of a message-kind variant (see ``yarrow.schemas.meta``).
    """

    __tablename__ = "tenant_messages"

    # Autoincrement id doubles as the insertion-order tie breaker
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    ticket_id = Column(Uuid(as_uuid=True), ForeignKey("tenant_tickets.id"), nullable=False, index=True)
    agency_id = Column(Uuid(as_uuid=True), nullable=True)
    sender_id = Column(String(64), nullable=False)

    body = Column(Text, nullable=False)
    is_system = Column(Boolean, nullable=False, default=False)
    meta = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def __repr__(self):
        origin = "system" if self.is_system else "human"
        return f"<Message {self.id} - ticket {self.ticket_id} - {origin}>"
