"""
Middleware modules for the conversation API.
"""

from .correlation import (
    CorrelationIdMiddleware,
    CorrelationLogFilter,
    ticket_context,
)

__all__ = [
    "CorrelationIdMiddleware",
    "CorrelationLogFilter",
    "ticket_context",
]
