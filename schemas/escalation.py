"""Escalation rule schema.

An EscalationRule maps (signal type, severity, elapsed time) to an ordered
list of levels. When an execution for a matching signal has run longer
than the rule's delay, every level is executed in order: its actions are
invoked and its channels notified.
"""

from pydantic import BaseModel, Field

from schemas.signal import Signal, SignalSeverity, SignalType


class TimeConditions(BaseModel):
    delay: int = Field(default=0, ge=0)  # ms


class EscalationTriggers(BaseModel):
    signal_types: list[SignalType] = Field(default_factory=list)
    severity_levels: list[SignalSeverity] = Field(default_factory=list)
    time_conditions: TimeConditions = Field(default_factory=TimeConditions)


class EscalationLevel(BaseModel):
    """One tier of an escalation.

    Attributes:
        name: Level name (e.g. "CRITICAL"). ESCALATION steps select a level
            by this name.
        actions: Opaque action identifiers passed to the action handler.
        channels: Notification channels to alert when the level runs.
    """

    name: str
    actions: list[str] = Field(default_factory=list)
    channels: list[str] = Field(default_factory=list)


class EscalationRule(BaseModel):
    id: str
    name: str = ""
    active: bool = True
    triggers: EscalationTriggers = Field(default_factory=EscalationTriggers)
    levels: list[EscalationLevel] = Field(default_factory=list)

    def applies_to(self, signal: Signal) -> bool:
        """True if the rule is active and its triggers match the signal."""
        return (
            self.active
            and signal.type in self.triggers.signal_types
            and signal.severity in self.triggers.severity_levels
        )

    def level(self, name: str) -> EscalationLevel | None:
        return next((lvl for lvl in self.levels if lvl.name == name), None)
