"""Orchestration event schema.

Events are emitted by the engines so embedding code (logging, metrics, the
live terminal display) can follow what happens. The engines work the same
whether or not anything is listening.

Every event name maps to exactly one payload model (EVENT_PAYLOADS), so a
listener subscribed to EventType.STEP_FAILED always receives a StepPayload.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from schemas.execution import ExecutionStatus
from schemas.signal import utcnow


class EventType(str, Enum):
    """Every event name the core can emit.

    Extends str so values serialize to the plain camelCase names embedding
    code subscribes to ("executionStarted", "stepFailed", ...).
    """

    INITIALIZED = "initialized"
    SHUTDOWN = "shutdown"
    EXECUTION_STARTED = "executionStarted"
    EXECUTION_QUEUED = "executionQueued"
    EXECUTION_COMPLETED = "executionCompleted"
    EXECUTION_FAILED = "executionFailed"
    EXECUTION_CANCELLED = "executionCancelled"
    STEP_COMPLETED = "stepCompleted"
    STEP_FAILED = "stepFailed"
    STEP_SKIPPED = "stepSkipped"
    ESCALATION_EXECUTED = "escalationExecuted"
    PERFORMANCE_ALERT = "performanceAlert"
    WORKFLOW_REGISTERED = "workflowRegistered"
    WORKFLOW_UPDATED = "workflowUpdated"
    WORKFLOW_GENERATED = "workflowGenerated"
    WORKFLOW_OPTIMIZED = "workflowOptimized"
    AUTOMATED_RESPONSE_EXECUTED = "automatedResponseExecuted"
    ANALYSIS_COMPLETED = "analysisCompleted"
    PATTERNS_DETECTED = "patternsDetected"
    ANOMALIES_DETECTED = "anomaliesDetected"
    PREDICTIONS_GENERATED = "predictionsGenerated"
    CORRELATIONS_ANALYZED = "correlationsAnalyzed"
    TRENDS_ANALYZED = "trendsAnalyzed"
    RECOMMENDATIONS_GENERATED = "recommendationsGenerated"


class EnginePayload(BaseModel):
    """Lifecycle of an engine (initialized, shutdown, performance alerts)."""

    engine_id: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ExecutionPayload(BaseModel):
    """State change of one execution.

    Attributes:
        execution_id: The execution's id. For executionQueued this is the
            admission ticket instead.
        workflow_id: Workflow being run.
        signal_id: Id of the triggering signal.
        status: Status after the change.
        error: Error text for failed or rejected executions.
        total_time: Elapsed milliseconds, set on terminal events.
    """

    execution_id: str
    workflow_id: str
    signal_id: str
    status: ExecutionStatus
    error: str | None = None
    total_time: float = 0.0


class StepPayload(BaseModel):
    """Outcome of one step inside an execution.

    Attributes:
        execution_id: Owning execution.
        step_id: The step.
        step_name: Display name of the step.
        duration_ms: Measured step duration.
        error: Error text for failed steps, skip reason for skipped ones.
        timed_out: True when the failure was a step timeout.
    """

    execution_id: str
    step_id: str
    step_name: str
    duration_ms: float = 0.0
    error: str | None = None
    timed_out: bool = False


class EscalationPayload(BaseModel):
    execution_id: str
    rule_id: str
    levels: list[str] = Field(default_factory=list)


class WorkflowPayload(BaseModel):
    workflow_id: str
    name: str
    template_id: str | None = None
    signal_id: str | None = None
    detail: dict[str, Any] = Field(default_factory=dict)


class AnalysisPayload(BaseModel):
    """Summary of one analyzer's (or the whole analysis') output.

    Attributes:
        count: Number of items produced (patterns, anomalies, ...).
        score: The analyzer's aggregate confidence or score.
        detail: Extra context such as the overall trend direction.
        result_id: Id of the SignalIntelligenceResult, on analysisCompleted.
    """

    count: int = 0
    score: float = 0.0
    detail: dict[str, Any] = Field(default_factory=dict)
    result_id: str | None = None


EventPayload = (
    EnginePayload
    | ExecutionPayload
    | StepPayload
    | EscalationPayload
    | WorkflowPayload
    | AnalysisPayload
)

EVENT_PAYLOADS: dict[EventType, type[BaseModel]] = {
    EventType.INITIALIZED: EnginePayload,
    EventType.SHUTDOWN: EnginePayload,
    EventType.PERFORMANCE_ALERT: EnginePayload,
    EventType.EXECUTION_STARTED: ExecutionPayload,
    EventType.EXECUTION_QUEUED: ExecutionPayload,
    EventType.EXECUTION_COMPLETED: ExecutionPayload,
    EventType.EXECUTION_FAILED: ExecutionPayload,
    EventType.EXECUTION_CANCELLED: ExecutionPayload,
    EventType.STEP_COMPLETED: StepPayload,
    EventType.STEP_FAILED: StepPayload,
    EventType.STEP_SKIPPED: StepPayload,
    EventType.ESCALATION_EXECUTED: EscalationPayload,
    EventType.WORKFLOW_REGISTERED: WorkflowPayload,
    EventType.WORKFLOW_UPDATED: WorkflowPayload,
    EventType.WORKFLOW_GENERATED: WorkflowPayload,
    EventType.WORKFLOW_OPTIMIZED: WorkflowPayload,
    EventType.AUTOMATED_RESPONSE_EXECUTED: WorkflowPayload,
    EventType.ANALYSIS_COMPLETED: AnalysisPayload,
    EventType.PATTERNS_DETECTED: AnalysisPayload,
    EventType.ANOMALIES_DETECTED: AnalysisPayload,
    EventType.PREDICTIONS_GENERATED: AnalysisPayload,
    EventType.CORRELATIONS_ANALYZED: AnalysisPayload,
    EventType.TRENDS_ANALYZED: AnalysisPayload,
    EventType.RECOMMENDATIONS_GENERATED: AnalysisPayload,
}


class EngineEvent(BaseModel):
    """A single event emitted by one of the engines.

    Attributes:
        event_type: Event name. Determines the payload model.
        source: Name of the emitting component (e.g. "orchestrator",
            "generator", "intelligence").
        timestamp: Emission time.
        payload: Typed payload. See EVENT_PAYLOADS.
    """

    event_type: EventType
    source: str
    timestamp: datetime = Field(default_factory=utcnow)
    payload: EventPayload
