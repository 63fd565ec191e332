"""AI Action executor.

Applies actions proposed by the triage engine, at most once per
``action_id``, and leaves an audit message in the thread for every outcome.

Per action, in the order proposed:

1. If a message with the same ``action_id`` already exists, skip silently.
2. Dispatch to the handler registered for the action type.
3. Write exactly one system message whose meta is an ``ActionAuditMeta``
   (``action_type``, ``action_id``, ``params``, ``outcome``).

Handlers report failures through their outcome; nothing raises out of
``execute`` for a single bad action, so later actions in the batch still run.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from yarrow.config import settings
from yarrow.exceptions import ActionPersistenceError
from yarrow.schemas.message import MessageResponse
from yarrow.schemas.meta import (
    ActionAuditMeta,
    OUTCOME_FAILED,
    OUTCOME_OK,
    OUTCOME_SKIPPED_INVALID_STATUS,
)
from yarrow.schemas.triage import ProposedAction
from yarrow.services.escalation_webhook import EscalationWebhookService
from yarrow.services.message_store import MessageStore
from yarrow.services.ticket_state import TicketStateMachine, normalize_status

logger = logging.getLogger(__name__)


DEFAULT_PHOTO_PROMPT = "Please share clear photos of the issue to assist diagnosis."
DEFAULT_ESCALATION_REASON = "Escalation requested by assistant."

ASSISTANT_ACTOR = "assistant"


@dataclass
class ActionResult:
    """What a handler decided: the audit text and its outcome."""

    body: str
    outcome: str
    error: Optional[str] = None


@dataclass
class ActionContext:
    ticket_id: uuid.UUID
    state: TicketStateMachine
    notifier: Optional[EscalationWebhookService]
    severity: Optional[str] = None


# ============================================================================
# Handlers
# ============================================================================

class ActionHandler(ABC):
    """Base class for action handlers."""

    action_type: str = ""

    @abstractmethod
    async def apply(self, action: ProposedAction, ctx: ActionContext) -> ActionResult:
        """Perform the action's effect and describe it for the audit trail."""

    def failure_body(self, detail: str) -> str:
        return f"Failed to apply {self.action_type}: {detail}"


class UpdateTicketStatusHandler(ActionHandler):
    """Move the ticket to a new status."""

    action_type = "update_ticket_status"

    def failure_body(self, detail: str) -> str:
        return f"Failed to update status: {detail}"

    async def apply(self, action: ProposedAction, ctx: ActionContext) -> ActionResult:
        raw = action.params.get("status")
        status = normalize_status(raw)
        if status is None:
            shown = str(raw if raw is not None else "").lower()
            return ActionResult(
                body=f"AI proposed invalid status '{shown}'. Skipped.",
                outcome=OUTCOME_SKIPPED_INVALID_STATUS,
            )

        try:
            await ctx.state.set_status(ctx.ticket_id, status, actor=ASSISTANT_ACTOR)
        except SQLAlchemyError as e:
            raise ActionPersistenceError(self.action_type, _describe(e)) from e

        return ActionResult(body=f"Status updated to {status} by assistant.", outcome=OUTCOME_OK)


class RequestPhotosHandler(ActionHandler):
    """Ask the tenant for photos. No state change."""

    action_type = "request_photos"

    async def apply(self, action: ProposedAction, ctx: ActionContext) -> ActionResult:
        prompt = action.params.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            prompt = DEFAULT_PHOTO_PROMPT
        return ActionResult(body=prompt.strip(), outcome=OUTCOME_OK)


class EscalateToAgentHandler(ActionHandler):
    """Flag the ticket for a human agent and ping the workflow webhook."""

    action_type = "escalate_to_agent"

    async def apply(self, action: ProposedAction, ctx: ActionContext) -> ActionResult:
        reason = action.params.get("reason")
        if not isinstance(reason, str) or not reason.strip():
            reason = DEFAULT_ESCALATION_REASON
        reason = reason.strip()

        if ctx.notifier is not None and ctx.notifier.is_configured():
            # Delivery outcome is logged by the notifier; it never changes the audit
            ctx.notifier.notify_in_background(
                ctx.ticket_id, reason, action_id=action.action_id, severity=ctx.severity
            )

        return ActionResult(body=f"Escalated to agent: {reason}", outcome=OUTCOME_OK)


def _describe(exc: Exception) -> str:
    text = str(getattr(exc, "orig", None) or exc).strip()
    first = text.splitlines()[0] if text else ""
    return f"{type(exc).__name__}: {first}"[:200] if first else type(exc).__name__


HANDLERS: dict[str, ActionHandler] = {
    handler.action_type: handler
    for handler in (
        UpdateTicketStatusHandler(),
        RequestPhotosHandler(),
        EscalateToAgentHandler(),
    )
}


# ============================================================================
# Executor
# ============================================================================

class ActionExecutor:
    """Runs a batch of proposed actions against one ticket."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[EscalationWebhookService] = None,
        store: Optional[MessageStore] = None,
        state: Optional[TicketStateMachine] = None,
        handlers: Optional[dict[str, ActionHandler]] = None,
        system_sender_id: Optional[str] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.store = store or MessageStore(db)
        self.state = state or TicketStateMachine(db)
        self.handlers = handlers or HANDLERS
        self.system_sender_id = system_sender_id or settings.SYSTEM_SENDER_ID

    async def _audit(
        self, ticket_id: uuid.UUID, action: ProposedAction, result: ActionResult
    ) -> MessageResponse:
        meta = ActionAuditMeta(
            action_type=action.type,
            action_id=action.action_id,
            params=action.params,
            outcome=result.outcome,
            error=result.error,
        )
        message = await self.store.append(
            ticket_id, self.system_sender_id, result.body, is_system=True, meta=meta
        )
        # Snapshot now; a rollback in a later action expires the ORM row
        return MessageResponse.model_validate(message)

    async def execute_one(
        self, ctx: ActionContext, action: ProposedAction
    ) -> Optional[MessageResponse]:
        """Apply one action. Returns its audit message, or None when skipped."""
        if await self.store.has_action_id(ctx.ticket_id, action.action_id):
            logger.info(
                "Action %s (%s) already processed for ticket %s, skipping",
                action.action_id, action.type, ctx.ticket_id,
            )
            return None

        handler = self.handlers.get(action.type)
        if handler is None:
            logger.warning("No handler for action type %s", action.type)
            return None

        try:
            result = await handler.apply(action, ctx)
        except ActionPersistenceError as e:
            logger.error(
                "Action %s (%s) failed for ticket %s: %s",
                action.action_id, action.type, ctx.ticket_id, e.detail,
            )
            result = ActionResult(
                body=handler.failure_body(e.detail),
                outcome=OUTCOME_FAILED,
                error=e.detail,
            )

        audit = await self._audit(ctx.ticket_id, action, result)
        logger.info(
            "Action %s (%s) on ticket %s: %s",
            action.action_id, action.type, ctx.ticket_id, result.outcome,
        )
        return audit

    async def execute(
        self,
        ticket_id: uuid.UUID,
        actions: Sequence[ProposedAction],
        severity: Optional[str] = None,
    ) -> list[MessageResponse]:
        """Apply ``actions`` in order and return the audit messages written."""
        ctx = ActionContext(
            ticket_id=ticket_id,
            state=self.state,
            notifier=self.notifier,
            severity=severity,
        )
        trail: list[MessageResponse] = []
        for action in actions:
            try:
                audit = await self.execute_one(ctx, action)
            except Exception:
                # Nothing recorded for this one; the rest of the batch still runs
                logger.exception(
                    "Could not record action %s for ticket %s", action.action_id, ticket_id
                )
                try:
                    await self.db.rollback()
                except SQLAlchemyError:
                    logger.exception("Rollback after action failure also failed")
                continue
            if audit is not None:
                trail.append(audit)
        return trail
