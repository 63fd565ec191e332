"""
AI Triage Engine

Turns (ticket context, recent conversation, new message, optional image) into
one ``TriageDecision``: a reply for the thread, a category/severity
classification, advisory next steps, an escalation flag, an optional summary
delta and zero or more proposed actions.

A triage turn never fails. Transport errors, timeouts and unparseable output
all produce the same well-formed fallback decision so the ticket always gets
a reply.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from yarrow.config import settings
from yarrow.exceptions import ReasoningServiceError
from yarrow.models.message import Message
from yarrow.models.ticket import Ticket
from yarrow.schemas.triage import TriageDecision, fallback_decision
from yarrow.services.ai_gateway import AIGateway

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are a property maintenance troubleshooting assistant working inside a tenant's maintenance ticket.
Goals:
- Help the tenant or agent diagnose and resolve issues quickly.
- Classify the issue category and severity.
- Provide safe, step-by-step instructions.
- If professional help is required, recommend escalation.
- Always prioritize safety and suggest professional help for electrical, gas, or structural issues.

Categories: plumbing, electrical, heating, appliance, structural, pest, general
Severity: low, normal, high, urgent

You can propose ACTIONS for the system to execute. Allowed actions and params:
- update_ticket_status: { "status": "open|in_progress|resolved|cancelled" }
- request_photos: { "prompt": string }
- escalate_to_agent: { "reason"?: string }
Every action MUST include a unique action_id string.

Also maintain a running, concise summary of the conversation so far to help future turns.
Output JSON only with keys: reply, category, severity, next_actions, escalate, reason, summary_update, actions.
Example:
{"reply":"short helpful answer...","category":"plumbing","severity":"normal","next_actions":["turn off water valve","take a clear photo of the leak"],"escalate":false,"reason":"simple fix likely","summary_update":"Tenant reports small leak under sink; advised to shut valve and share photo.","actions":[{"type":"request_photos","params":{"prompt":"Please share a clear photo of the leak and the valve."},"action_id":"req-photos-1"}]}"""


def ticket_context_block(ticket: Ticket, summary_text: Optional[str] = None) -> str:
    """Ticket facts (and the rolling summary) appended to the system prompt."""
    lines = [
        "Ticket context:",
        f"- title: {ticket.title}",
        f"- description: {ticket.description}",
        f"- status: {ticket.status}",
        f"- severity: {ticket.severity}",
    ]
    if summary_text:
        lines.append("Conversation summary so far:")
        lines.append(summary_text)
    return "\n".join(lines)


def speaker_label(sender_id: Optional[str], ticket: Ticket) -> Optional[str]:
    if sender_id is None:
        return None
    if ticket.tenant_id is not None and str(sender_id) == str(ticket.tenant_id):
        return "Tenant"
    if ticket.agent_id is not None and str(sender_id) == str(ticket.agent_id):
        return "Agent"
    return None


def to_chat_history(
    messages: Sequence[Message],
    ticket: Ticket,
    tag_speakers: bool = True,
) -> List[Dict[str, str]]:
    """Map stored messages onto role-tagged turns.

    System messages become assistant turns; every human message (tenant,
    agent, anyone else) is a user turn. With ``tag_speakers`` the content of
    tenant and agent turns is prefixed with who said it.
    """
    history: List[Dict[str, str]] = []
    for message in messages:
        if message.is_system:
            history.append({"role": "assistant", "content": message.body})
            continue
        content = message.body
        if tag_speakers:
            label = speaker_label(message.sender_id, ticket)
            if label:
                content = f"{label}: {content}"
        history.append({"role": "user", "content": content})
    return history


def _unfence(text: str) -> str:
    if text.startswith("```") and text.endswith("```") and len(text) > 6:
        inner = text[3:-3].strip()
        if inner.startswith("json"):
            inner = inner[4:].strip()
        if inner.startswith("{"):
            return inner
    for part in text.split("```"):
        part = part.strip()
        if part.startswith("json"):
            part = part[4:].strip()
        if part.startswith("{"):
            return part
    return text


def extract_json_object(content: str) -> Dict[str, Any]:
    """Parse a JSON object, tolerating a surrounding markdown code fence."""
    text = (content or "").strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        if "```" not in text:
            raise
        parsed = json.loads(_unfence(text))
    if not isinstance(parsed, dict):
        raise ValueError("triage output is not a JSON object")
    return parsed


class TriageEngine:
    """Builds the reasoning request and turns the answer into a decision."""

    def __init__(self, gateway: AIGateway, tag_speakers: Optional[bool] = None):
        self.gateway = gateway
        self.tag_speakers = settings.AI_TAG_SPEAKERS if tag_speakers is None else tag_speakers

    def build_messages(
        self,
        ticket: Ticket,
        history: Sequence[Message],
        message_text: str,
        sender_id: Optional[str] = None,
    ) -> List[Dict[str, str]]:
        turns = to_chat_history(history, ticket, self.tag_speakers)
        latest = message_text
        if self.tag_speakers:
            label = speaker_label(sender_id, ticket)
            if label:
                latest = f"{label}: {message_text}"
        turns.append({"role": "user", "content": latest})
        return turns

    async def triage(
        self,
        ticket: Ticket,
        history: Sequence[Message],
        message_text: str,
        image_url: Optional[str] = None,
        sender_id: Optional[str] = None,
        summary_text: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> TriageDecision:
        """Produce a decision for one turn. Never raises."""
        timeout = settings.AI_TIMEOUT_SECONDS if timeout is None else timeout
        messages = self.build_messages(ticket, history, message_text, sender_id)
        system_prompt = f"{SYSTEM_PROMPT}\n\n{ticket_context_block(ticket, summary_text)}"

        try:
            result = await asyncio.wait_for(
                self.gateway.chat_completion(
                    messages=messages,
                    system_prompt=system_prompt,
                    image_url=image_url,
                    json_mode=True,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Triage for ticket %s timed out after %.1fs", ticket.id, timeout)
            return fallback_decision("Fallback: reasoning service timed out")
        except ReasoningServiceError as e:
            logger.warning("Triage for ticket %s failed: %s", ticket.id, e.detail)
            return fallback_decision("Fallback: reasoning service unavailable")
        except Exception as e:
            logger.error("Unexpected triage error for ticket %s: %s", ticket.id, type(e).__name__)
            return fallback_decision("Fallback: reasoning service error")

        try:
            decision = TriageDecision.model_validate(extract_json_object(result.get("content", "")))
        except (ValueError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.warning("Unusable triage output for ticket %s: %s", ticket.id, type(e).__name__)
            return fallback_decision("Fallback when parsing fails")

        decision.model = result.get("model")
        logger.info(
            "Triage ticket %s: category=%s severity=%s escalate=%s actions=%d",
            ticket.id,
            decision.category,
            decision.severity,
            decision.escalate,
            len(decision.actions),
        )
        return decision
