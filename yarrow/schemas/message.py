"""Conversation schemas."""

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional

from yarrow.schemas.types import UUIDStr


class MessageResponse(BaseModel):
    """A stored conversation message. ``meta`` is the serialized variant."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: UUIDStr
    sender_id: str
    body: str
    is_system: bool
    meta: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class MessageSubmit(BaseModel):
    """Inbound human message."""

    body: str = Field(..., min_length=1)
    image_url: Optional[str] = Field(None, max_length=2048)
    observe_only: bool = False


class ObserveRequest(BaseModel):
    body: str = Field(..., min_length=1)


class ConversationResponse(BaseModel):
    ticket_id: UUIDStr
    items: list[MessageResponse]


class TurnResponse(BaseModel):
    """Result of one submitted message."""

    message: MessageResponse
    reply: Optional[str] = None
    reply_message: Optional[MessageResponse] = None
    category: Optional[str] = None
    severity: Optional[str] = None
    next_actions: list[str] = Field(default_factory=list)
    escalate: bool = False
    audit_trail: list[MessageResponse] = Field(default_factory=list)


class SummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ticket_id: UUIDStr
    summary_text: str
    last_message_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
