"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation.
"""

from .ticket import TicketFactory, TicketPayloadFactory
from .triage import TriageOutputFactory, ActionProposalFactory

__all__ = [
    "TicketFactory",
    "TicketPayloadFactory",
    "TriageOutputFactory",
    "ActionProposalFactory",
]
