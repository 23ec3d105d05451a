"""Capability providers for response actions, notifications and escalations."""

from actions.base import ActionContext, ActionHandler, ActionOutcome
from actions.simulated import SimulatedActionHandler
from actions.webhook import WebhookActionHandler

__all__ = [
    "ActionContext",
    "ActionHandler",
    "ActionOutcome",
    "SimulatedActionHandler",
    "WebhookActionHandler",
]
