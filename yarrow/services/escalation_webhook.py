"""
Escalation Webhook Service

Posts maintenance escalations to an external workflow endpoint (an n8n
webhook in the default deployment). Delivery is fire-and-forget: the
executor schedules it with ``notify_in_background`` and writes its audit
message without waiting. Outcomes are collected and logged when the task ends.
"""

import asyncio
import httpx
import logging
import uuid
from typing import Optional

from yarrow.config import settings

logger = logging.getLogger(__name__)


class EscalationWebhookService:
    """Send escalation events to the configured workflow webhook."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = settings.ESCALATION_WEBHOOK_URL if url is None else url
        self.timeout = settings.ESCALATION_WEBHOOK_TIMEOUT_SECONDS if timeout is None else timeout
        self._transport = transport
        self._pending: set[asyncio.Task] = set()

    def is_configured(self) -> bool:
        return bool(self.url)

    async def notify_escalation(
        self,
        ticket_id: uuid.UUID,
        reason: str,
        action_id: Optional[str] = None,
        severity: Optional[str] = None,
    ) -> bool:
        """Post a ``maintenance_escalation`` event. Returns delivery success."""
        if not self.is_configured():
            logger.debug("Escalation webhook not configured, skipping")
            return False

        payload = {
            "type": "maintenance_escalation",
            "ticketId": str(ticket_id),
            "reason": reason,
        }
        if action_id:
            payload["actionId"] = action_id
        if severity:
            payload["severity"] = severity

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(self.url, json=payload, timeout=self.timeout)
                resp.raise_for_status()
                logger.info("Escalation webhook sent for ticket %s", ticket_id)
                return True
        except Exception as e:
            logger.error("Escalation webhook failed for ticket %s: %s", ticket_id, e)
            return False

    def notify_in_background(
        self,
        ticket_id: uuid.UUID,
        reason: str,
        action_id: Optional[str] = None,
        severity: Optional[str] = None,
    ) -> asyncio.Task:
        """Schedule ``notify_escalation`` without waiting for it."""
        task = asyncio.create_task(
            self.notify_escalation(ticket_id, reason, action_id=action_id, severity=severity)
        )
        self._pending.add(task)
        task.add_done_callback(lambda t: self._collect(t, ticket_id))
        return task

    def _collect(self, task: asyncio.Task, ticket_id: uuid.UUID) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("Escalation notice for ticket %s cancelled", ticket_id)
        elif task.exception() is not None:
            logger.error("Escalation notifier raised for ticket %s: %s", ticket_id, task.exception())
        elif not task.result():
            logger.warning("Escalation notice for ticket %s not delivered", ticket_id)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for notices still in flight. Called on shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
