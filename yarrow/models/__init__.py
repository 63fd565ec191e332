from yarrow.models.ticket import Ticket, TicketStatus, TicketSeverity
from yarrow.models.message import Message
from yarrow.models.conversation_summary import ConversationSummary

__all__ = [
    "Ticket",
    "TicketStatus",
    "TicketSeverity",
    "Message",
    "ConversationSummary",
]
