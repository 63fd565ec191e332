"""Ticket schemas for request/response validation."""

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Literal
import uuid

from yarrow.schemas.types import UUIDStr


TicketStatusValue = Literal["open", "in_progress", "resolved", "cancelled"]
TicketSeverityValue = Literal["low", "normal", "high", "urgent"]


class TicketCreate(BaseModel):
    """Schema for creating a ticket. Status always starts as open."""

    tenant_id: uuid.UUID
    property_id: uuid.UUID
    landlord_id: uuid.UUID
    agency_id: Optional[uuid.UUID] = None
    agent_id: Optional[uuid.UUID] = None
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    severity: TicketSeverityValue = "normal"


class TicketStatusUpdate(BaseModel):
    """Human status update. Validated by the state machine, not here, so the
    error shape matches the one the AI action path records."""

    status: str = Field(..., min_length=1, max_length=30)


class TicketAgentAssign(BaseModel):
    agent_id: Optional[uuid.UUID] = None


class TicketResponse(BaseModel):
    """Schema for ticket response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUIDStr
    agency_id: Optional[UUIDStr] = None
    tenant_id: UUIDStr
    property_id: UUIDStr
    landlord_id: UUIDStr
    agent_id: Optional[UUIDStr] = None
    title: str
    description: str
    status: str
    severity: str
    created_by: Optional[UUIDStr] = None
    created_at: datetime
    updated_at: datetime


class TicketListResponse(BaseModel):
    """Ticket list response."""

    items: list[TicketResponse]
    total: int
