"""Signal schema.

Signals are classified observations produced by an external detection
collaborator. They are the only input the orchestration core reacts to:
the intelligence engine analyses them, the generator matches templates
against them, and the execution engine picks a workflow for them.
Signals are frozen once created.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SignalType(str, Enum):
    """Category of an observed event.

    Extends str so values serialize to plain strings ("EMERGENCY") rather
    than "SignalType.EMERGENCY" in JSON output and logs.
    """

    ASSET_CONDITION = "ASSET_CONDITION"
    MAINTENANCE = "MAINTENANCE"
    ENVIRONMENTAL = "ENVIRONMENTAL"
    EMERGENCY = "EMERGENCY"
    PERFORMANCE_DEGRADATION = "PERFORMANCE_DEGRADATION"
    RISK_ESCALATION = "RISK_ESCALATION"
    OPERATIONAL = "OPERATIONAL"
    COMPLIANCE = "COMPLIANCE"


class SignalSeverity(str, Enum):
    """Impact level of a signal, lowest first."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


def utcnow() -> datetime:
    """Timezone-aware current time. Used as the default for every timestamp."""
    return datetime.now(timezone.utc)


class Signal(BaseModel):
    """A single classified observation that can trigger a response.

    Attributes:
        id: Identifier assigned by the producer (e.g. "sig-7781").
        type: Category of the event. Drives workflow and template matching.
        severity: Impact level. Drives matching, escalation and the
            CRITICAL action upgrade applied by the generator.
        strength: Numeric intensity in [0, 100]. Used by the intelligence
            engine for pattern, anomaly and trend analysis.
        asset_id: Optional correlation key naming the affected asset.
            Workflows can filter on it through triggers.asset_categories.
        timestamp: When the event was observed.
        description: Free-text summary from the producer.
        source: Name of the collaborator that produced the signal.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    type: SignalType
    severity: SignalSeverity
    strength: float = Field(ge=0.0, le=100.0)
    asset_id: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    description: str = ""
    source: str = "external"

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are read as UTC so they compare with utcnow().
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
