"""
Conversation Service

Entry point for a ticket's conversation. A turn is:

1. append the inbound human message (durable before anything else happens)
2. ask the triage engine for a decision over the recent history
3. append the assistant reply with its classification meta
4. append the decision's summary line to the rolling summary
5. run the proposed actions through the executor

Each step commits on its own. A later failure never takes back an earlier
message, and only a missing ticket or a failed inbound append fails the turn.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager, nullcontext
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from yarrow.config import Settings, settings as default_settings
from yarrow.middleware.correlation import ticket_context
from yarrow.models.ticket import Ticket
from yarrow.schemas.message import MessageResponse
from yarrow.schemas.meta import AiClassificationMeta, PlainMeta
from yarrow.schemas.triage import TriageDecision
from yarrow.services.action_executor import ActionExecutor
from yarrow.services.ai_gateway import AIGateway
from yarrow.services.conversation_summarizer import ConversationSummarizer, observation_line
from yarrow.services.escalation_webhook import EscalationWebhookService
from yarrow.services.message_store import MessageStore
from yarrow.services.ticket_state import TicketStateMachine
from yarrow.services.triage_engine import TriageEngine

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """Everything one submitted message produced."""

    message: MessageResponse
    reply: Optional[str] = None
    reply_message: Optional[MessageResponse] = None
    decision: Optional[TriageDecision] = None
    audit_trail: list[MessageResponse] = field(default_factory=list)


class TurnLocks:
    """Process-local lock per ticket. Serialises turns on one ticket only.

    A ticket's lock exists only while some turn holds or waits on it, so the
    map stays as small as the number of tickets with a turn in flight.
    """

    def __init__(self):
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._users: dict[uuid.UUID, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, ticket_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(ticket_id, asyncio.Lock())
        self._users[ticket_id] = self._users.get(ticket_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[ticket_id] -= 1
            if not self._users[ticket_id]:
                del self._users[ticket_id]
                del self._locks[ticket_id]


class ConversationService:
    """Runs turns and observations for one database session."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: AIGateway,
        notifier: Optional[EscalationWebhookService] = None,
        config: Optional[Settings] = None,
        locks: Optional[TurnLocks] = None,
    ):
        self.db = db
        self.config = config or default_settings
        self.store = MessageStore(db)
        self.state = TicketStateMachine(db)
        self.summarizer = ConversationSummarizer(db)
        self.engine = TriageEngine(gateway, tag_speakers=self.config.AI_TAG_SPEAKERS)
        self.executor = ActionExecutor(
            db,
            notifier=notifier,
            store=self.store,
            state=self.state,
            system_sender_id=self.config.SYSTEM_SENDER_ID,
        )
        self.locks = locks if locks is not None else TurnLocks()

    def _turn_guard(self, ticket_id: uuid.UUID):
        if self.config.SINGLE_FLIGHT_TURNS:
            return self.locks.hold(ticket_id)
        return nullcontext()

    async def get_ticket(self, ticket_id: uuid.UUID) -> Ticket:
        return await self.state.get_ticket(ticket_id)

    async def list_conversation(self, ticket_id: uuid.UUID) -> list[MessageResponse]:
        messages = await self.store.list(ticket_id)
        return [MessageResponse.model_validate(m) for m in messages]

    async def observe_message(self, ticket_id: uuid.UUID, body: str) -> None:
        """Record a human message in the summary without an AI turn.

        Appends nothing to the message log; callers that also want the
        message stored append it first.
        """
        await self.state.get_ticket(ticket_id)
        await self.summarizer.append_summary(ticket_id, observation_line(body))

    async def submit_message(
        self,
        ticket_id: uuid.UUID,
        sender_id: str,
        body: str,
        image_url: Optional[str] = None,
        timeout: Optional[float] = None,
        observe_only: bool = False,
    ) -> TurnResult:
        """Append a human message and, unless ``observe_only``, run a turn."""
        if observe_only:
            inbound = await self.store.append(
                ticket_id, sender_id, body, meta=PlainMeta(image_url=image_url)
            )
            result = TurnResult(message=MessageResponse.model_validate(inbound))
            await self.summarizer.append_summary(ticket_id, observation_line(body))
            return result

        with ticket_context(ticket_id):
            async with self._turn_guard(ticket_id):
                return await self._run_turn(ticket_id, sender_id, body, image_url, timeout)

    async def _run_turn(
        self,
        ticket_id: uuid.UUID,
        sender_id: str,
        body: str,
        image_url: Optional[str],
        timeout: Optional[float],
    ) -> TurnResult:
        ticket = await self.state.get_ticket(ticket_id)

        inbound = await self.store.append(
            ticket_id, sender_id, body, meta=PlainMeta(image_url=image_url)
        )
        result = TurnResult(message=MessageResponse.model_validate(inbound))

        limit = self.config.AI_HISTORY_LIMIT
        window = await self.store.list(ticket_id, limit=limit + 1)
        history = [m for m in window if m.id != result.message.id][-limit:] if limit > 0 else []

        summary = await self.summarizer.get_summary(ticket_id)
        summary_text = summary.summary_text if summary else None

        decision = await self.engine.triage(
            ticket,
            history,
            body,
            image_url=image_url,
            sender_id=sender_id,
            summary_text=summary_text,
            timeout=timeout,
        )

        reply = await self.store.append(
            ticket_id,
            self.config.SYSTEM_SENDER_ID,
            decision.reply,
            is_system=True,
            meta=AiClassificationMeta(
                category=decision.category,
                severity=decision.severity,
                next_actions=decision.next_actions,
                escalate=decision.escalate,
                reason=decision.reason,
                summary_update=decision.summary_update,
                model=decision.model,
                fallback=decision.fallback,
            ),
        )
        result.reply = decision.reply
        result.reply_message = MessageResponse.model_validate(reply)
        result.decision = decision

        await self.summarizer.append_summary(ticket_id, decision.summary_update)

        if decision.actions:
            result.audit_trail = await self.executor.execute(
                ticket_id, decision.actions, severity=decision.severity
            )

        logger.info(
            "Turn on ticket %s: category=%s fallback=%s actions=%d audited=%d",
            ticket_id,
            decision.category,
            decision.fallback,
            len(decision.actions),
            len(result.audit_trail),
        )
        return result
