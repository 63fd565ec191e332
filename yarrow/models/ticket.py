"""Tenant maintenance ticket model."""

from sqlalchemy import Column, String, DateTime, Text, Uuid
import enum
import uuid

from yarrow.database import Base
from yarrow.models.timestamps import utcnow


class TicketStatus(str, enum.Enum):
    open = "open"
    in_progress = "in_progress"
    resolved = "resolved"
    cancelled = "cancelled"


class TicketSeverity(str, enum.Enum):
    low = "low"
    normal = "normal"
    high = "high"
    urgent = "urgent"


class Ticket(Base):
    """A tenant-raised maintenance issue.

    Tenant, property, landlord and agency are owned by other parts of the
    platform and referenced by id only. ``agent_id`` is the one reference that
    may change after creation. Tickets are never deleted.
    """

    __tablename__ = "tenant_tickets"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)

    agency_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    tenant_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    property_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    landlord_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    agent_id = Column(Uuid(as_uuid=True), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)

    status = Column(String(30), nullable=False, default=TicketStatus.open.value, index=True)
    severity = Column(String(20), nullable=False, default=TicketSeverity.normal.value)

    # Audit
    created_by = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Ticket {self.id} - {self.status} - {self.title[:30] if self.title else ''}>"
