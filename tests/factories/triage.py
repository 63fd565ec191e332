"""
Reasoning-service output factories.

Generates the JSON objects the assistant answers with, so tests can script
a turn without spelling out every key.
"""

import factory
from faker import Faker

fake = Faker()


class ActionProposalFactory(factory.Factory):
    """
    Usage:
        ActionProposalFactory(type="update_ticket_status", params={"status": "in_progress"})
    """

    class Meta:
        model = dict

    type = "request_photos"
    action_id = factory.Sequence(lambda n: f"act-{n}")
    params = factory.LazyFunction(dict)


class TriageOutputFactory(factory.Factory):
    """
    Usage:
        output = TriageOutputFactory()
        output = TriageOutputFactory(actions=[ActionProposalFactory()])
    """

    class Meta:
        model = dict

    reply = factory.LazyFunction(
        lambda: f"Please turn off the water at the stopcock. {fake.sentence()}"
    )
    category = "plumbing"
    severity = "normal"
    next_actions = factory.LazyFunction(lambda: ["turn off water valve", "take a photo of the leak"])
    escalate = False
    reason = "simple fix likely"
    summary_update = factory.LazyFunction(lambda: f"Tenant reports: {fake.sentence()}")
    actions = factory.LazyFunction(list)
