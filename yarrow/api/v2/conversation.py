"""
Ticket conversation endpoints.

Submitting a message runs a full AI turn synchronously: the response carries
the stored inbound message, the assistant reply and any action audit
messages written during the turn.
"""

from fastapi import APIRouter, status
import uuid
import logging

from yarrow.api.deps import CurrentActor, Conversations
from yarrow.schemas.message import (
    ConversationResponse,
    MessageSubmit,
    ObserveRequest,
    SummaryResponse,
    TurnResponse,
)
from yarrow.exceptions import NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{ticket_id}/messages", response_model=ConversationResponse)
async def list_messages(
    ticket_id: uuid.UUID,
    conversations: Conversations,
    current_actor: CurrentActor,
):
    """Full conversation, oldest first."""
    items = await conversations.list_conversation(ticket_id)
    return ConversationResponse(ticket_id=ticket_id, items=items)


@router.post("/{ticket_id}/messages", response_model=TurnResponse, status_code=status.HTTP_201_CREATED)
async def submit_message(
    ticket_id: uuid.UUID,
    submission: MessageSubmit,
    conversations: Conversations,
    current_actor: CurrentActor,
):
    """Post a human message and get the assistant's reply.

    With ``observe_only`` the message is stored and noted in the summary, and
    no reply is generated.
    """
    result = await conversations.submit_message(
        ticket_id,
        sender_id=current_actor.id,
        body=submission.body,
        image_url=submission.image_url,
        observe_only=submission.observe_only,
    )

    response = TurnResponse(
        message=result.message,
        reply=result.reply,
        reply_message=result.reply_message,
        audit_trail=result.audit_trail,
    )
    if result.decision is not None:
        response.category = result.decision.category
        response.severity = result.decision.severity
        response.next_actions = result.decision.next_actions
        response.escalate = result.decision.escalate
    return response


@router.post("/{ticket_id}/observe", status_code=status.HTTP_204_NO_CONTENT)
async def observe_message(
    ticket_id: uuid.UUID,
    observation: ObserveRequest,
    conversations: Conversations,
    current_actor: CurrentActor,
):
    """Note a human message in the rolling summary without an AI turn."""
    await conversations.observe_message(ticket_id, observation.body)


@router.get("/{ticket_id}/summary", response_model=SummaryResponse)
async def get_summary(
    ticket_id: uuid.UUID,
    conversations: Conversations,
    current_actor: CurrentActor,
):
    await conversations.get_ticket(ticket_id)
    summary = await conversations.summarizer.get_summary(ticket_id)
    if summary is None:
        raise NotFoundError("ConversationSummary", ticket_id)
    return summary
