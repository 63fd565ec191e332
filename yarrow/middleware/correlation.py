"""
Request and turn correlation for logging.

One submitted message fans out into several log lines (triage call, reply
insert, summary append, one line per action). Every record emitted while a
request is in flight carries its request id, and every record emitted inside
a turn also carries the ticket id, so a turn can be read back from the logs.

Headers:
- X-Correlation-ID: client session id, echoed back
- X-Request-ID: per-request id, generated when absent
"""

import uuid
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
ticket_id_ctx: ContextVar[str] = ContextVar("ticket_id", default="")


def generate_id() -> str:
    return uuid.uuid4().hex[:12]


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind correlation and request ids for the lifetime of a request."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or generate_id()
        request_id = request.headers.get("X-Request-ID") or generate_id()

        tokens = (correlation_id_ctx.set(correlation_id), request_id_ctx.set(request_id))
        request.state.request_id = request_id
        try:
            response = await call_next(request)
        finally:
            correlation_id_ctx.reset(tokens[0])
            request_id_ctx.reset(tokens[1])

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Request-ID"] = request_id
        return response


@contextmanager
def ticket_context(ticket_id) -> Iterator[None]:
    """Tag log records emitted inside the block with ``ticket_id``."""
    token = ticket_id_ctx.set(str(ticket_id))
    try:
        yield
    finally:
        ticket_id_ctx.reset(token)


def get_correlation_id() -> str:
    return correlation_id_ctx.get() or "unknown"


def get_request_id() -> str:
    return request_id_ctx.get() or "unknown"


def get_ticket_id() -> str:
    return ticket_id_ctx.get() or "-"


class CorrelationLogFilter(logging.Filter):
    """Adds ``correlation_id``, ``request_id`` and ``ticket_id`` to records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        record.request_id = get_request_id()
        record.ticket_id = get_ticket_id()
        return True
