"""Workflow schema.

A ResponseWorkflow is a reusable execution plan: trigger predicates, an
ordered list of steps and the execution settings (mode, timeouts, retry
policy). Templates and signal-specific instances share this shape;
templates are marked reusable, instances are clones customised for one
signal.

All durations on this module are integer milliseconds.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from schemas.signal import Signal, SignalSeverity, SignalType, utcnow


class StepType(str, Enum):
    """Kind of work a step performs. Selects the dispatch branch."""

    ACTION = "ACTION"
    CONDITION = "CONDITION"
    DELAY = "DELAY"
    NOTIFICATION = "NOTIFICATION"
    ESCALATION = "ESCALATION"


class ExecutionMode(str, Enum):
    """How the steps of one workflow are scheduled relative to each other."""

    SEQUENTIAL = "SEQUENTIAL"
    PARALLEL = "PARALLEL"
    CONDITIONAL = "CONDITIONAL"


class ResponseActionType(str, Enum):
    """Side-effecting operations delegated to the embedding application."""

    IMMEDIATE_RESPONSE = "IMMEDIATE_RESPONSE"
    SCHEDULE_INSPECTION = "SCHEDULE_INSPECTION"
    SCHEDULE_MAINTENANCE = "SCHEDULE_MAINTENANCE"
    NOTIFY = "NOTIFY"
    UPDATE_CONFIG = "UPDATE_CONFIG"
    ENVIRONMENTAL_RESPONSE = "ENVIRONMENTAL_RESPONSE"
    INVESTIGATE_PATTERN = "INVESTIGATE_PATTERN"


class Priority(str, Enum):
    """Priority label shared by workflows and recommended actions."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class NotificationConfig(BaseModel):
    """Fan-out settings for a NOTIFICATION step.

    Attributes:
        recipients: Logical recipient groups (e.g. "emergency-team").
        template: Message text. Placeholders such as {signalType} and
            {assetId} are substituted by the generator.
        channels: Delivery channels (e.g. "email", "sms", "push"). Every
            recipient is notified on every channel.
    """

    recipients: list[str] = Field(default_factory=list)
    template: str = ""
    channels: list[str] = Field(default_factory=list)


class EscalationStepConfig(BaseModel):
    """Names the escalation level an ESCALATION step runs inline."""

    level: str


class StepConfig(BaseModel):
    """Variant payload of a step. Only the field matching the step type is read.

    Attributes:
        action: Action to perform for ACTION steps.
        condition: Expression evaluated by CONDITION steps. The step fails
            when it evaluates false.
        delay: Suspension in milliseconds for DELAY steps.
        notification: Fan-out settings for NOTIFICATION steps.
        escalation: Level selector for ESCALATION steps.
        precondition: Optional expression checked before the step runs in
            CONDITIONAL mode. A false precondition skips the step.
        parameters: Free-form arguments forwarded to the action handler.
    """

    action: ResponseActionType | None = None
    condition: str | None = None
    delay: int | None = Field(default=None, ge=0)
    notification: NotificationConfig | None = None
    escalation: EscalationStepConfig | None = None
    precondition: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)


class SuccessCriteria(BaseModel):
    expected_outcome: str = ""
    validation_rules: list[str] = Field(default_factory=list)


class WorkflowStep(BaseModel):
    """A single unit of work within a workflow.

    Attributes:
        id: Unique within the workflow. Referenced by dependencies.
        name: Human-readable label. Used in error messages.
        description: Free text.
        type: Dispatch branch. See StepType.
        config: Payload matching the type.
        dependencies: Ids of steps that must complete before this one.
            Only ids of the same workflow are allowed.
        order: Sequencing key. Steps are sorted ascending by order in
            SEQUENTIAL and CONDITIONAL mode.
        required_resources: Resource pool ids this step consumes one
            resource from for the lifetime of the execution.
        success_criteria: Expected outcome and validation rule names.
    """

    id: str
    name: str
    description: str = ""
    type: StepType
    config: StepConfig = Field(default_factory=StepConfig)
    dependencies: list[str] = Field(default_factory=list)
    order: int = 0
    required_resources: list[str] = Field(default_factory=list)
    success_criteria: SuccessCriteria = Field(default_factory=SuccessCriteria)


class WorkflowTriggers(BaseModel):
    """Predicates a signal must satisfy for the workflow to apply.

    An empty asset_categories list means "any asset".
    """

    signal_types: list[SignalType] = Field(default_factory=list)
    severity_levels: list[SignalSeverity] = Field(default_factory=list)
    asset_categories: list[str] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)

    def matches(self, signal: Signal) -> bool:
        """Return True if the signal satisfies type, severity and asset filters."""
        if signal.type not in self.signal_types:
            return False
        if signal.severity not in self.severity_levels:
            return False
        return not self.asset_categories or signal.asset_id in self.asset_categories


class RetryPolicy(BaseModel):
    max_retries: int = Field(default=3, ge=0)
    delay: int = Field(default=5000, ge=0)


class ExecutionSettings(BaseModel):
    """Scheduling, timeout and retry settings for one workflow.

    Attributes:
        mode: SEQUENTIAL, PARALLEL or CONDITIONAL.
        step_timeout: Per-step limit in milliseconds.
        overall_timeout: Limit for the whole run in milliseconds. Also
            used as the expected resource hold time.
        retry: Retry policy for failed steps.
    """

    mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    step_timeout: int = Field(default=30_000, gt=0)
    overall_timeout: int = Field(default=300_000, gt=0)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)


class ResponseWorkflow(BaseModel):
    """A reusable execution plan matched against incoming signals.

    Attributes:
        id: Registry key. Re-adding the same id replaces the entry.
        name: Human-readable name.
        description: Free text.
        triggers: Predicates deciding whether the workflow applies.
        steps: Ordered steps. Dependencies may only reference steps in
            this list.
        execution: Mode, timeouts and retry policy.
        priority: Priority label.
        active: Inactive workflows are never matched.
        reusable: True for templates, False for signal-specific clones.
        template_id: Id of the template this workflow was generated from.
        created_at: Creation time.
        updated_at: Last modification time.
    """

    id: str
    name: str
    description: str = ""
    triggers: WorkflowTriggers = Field(default_factory=WorkflowTriggers)
    steps: list[WorkflowStep] = Field(default_factory=list)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    priority: Priority = Priority.MEDIUM
    active: bool = True
    reusable: bool = False
    template_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _dependencies_are_local(self) -> "ResponseWorkflow":
        step_ids = {step.id for step in self.steps}
        for step in self.steps:
            unknown = [dep for dep in step.dependencies if dep not in step_ids]
            if unknown:
                raise ValueError(
                    f"Step '{step.id}' depends on unknown steps: {', '.join(unknown)}"
                )
        return self

    def required_resource_types(self) -> list[str]:
        """Union of every step's required resources, in first-seen order."""
        seen: dict[str, None] = {}
        for step in self.steps:
            for resource_type in step.required_resources:
                seen.setdefault(resource_type, None)
        return list(seen)
