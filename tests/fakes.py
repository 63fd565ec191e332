"""Test doubles for the reasoning service and the escalation webhook."""

import asyncio
import json

from yarrow.exceptions import ReasoningServiceError
from yarrow.services.escalation_webhook import EscalationWebhookService


class FakeGateway:
    """Stands in for the reasoning service.

    Each queued item is returned (dicts are JSON-encoded as the message
    content, strings are sent verbatim) or raised if it is an exception.
    Once the queue is empty every call fails like an unreachable service.
    """

    is_configured = True

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    async def chat_completion(self, messages, system_prompt=None, image_url=None, json_mode=False, **kwargs):
        self.calls.append(
            {
                "messages": messages,
                "system_prompt": system_prompt,
                "image_url": image_url,
                "json_mode": json_mode,
            }
        )
        if not self.responses:
            raise ReasoningServiceError("reasoning service unreachable: ConnectError")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        content = item if isinstance(item, str) else json.dumps(item)
        return {"content": content, "usage": {}, "model": "fake-model"}

    async def close(self):
        pass


class RecordingNotifier(EscalationWebhookService):
    """Escalation notifier that remembers what it was asked to send.

    ``delay`` holds each notice back before it is recorded; ``error`` is
    raised instead of delivering.
    """

    def __init__(self, succeed=True, configured=True, delay=0.0, error=None):
        super().__init__(url="https://hooks.test/escalation" if configured else "")
        self.succeed = succeed
        self.delay = delay
        self.error = error
        self.sent = []

    async def notify_escalation(self, ticket_id, reason, action_id=None, severity=None):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.sent.append({"ticket_id": ticket_id, "reason": reason, "action_id": action_id})
        return self.succeed
