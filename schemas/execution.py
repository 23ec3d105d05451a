"""Execution record schema.

ResponseExecutionStatus is the run record for one workflow invocation. The
orchestration engine owns it for the lifetime of the run: it is created
PENDING, moves to RUNNING once steps begin and ends COMPLETED, FAILED or
CANCELLED. Once terminal the record is archived to history and never
mutated again.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from schemas.intelligence import ResponseAction
from schemas.resources import ResourceAllocation
from schemas.signal import Signal, utcnow


class ExecutionStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({
    ExecutionStatus.COMPLETED,
    ExecutionStatus.FAILED,
    ExecutionStatus.CANCELLED,
})


class ExecutionMetrics(BaseModel):
    """Aggregate numbers written at finalisation.

    Attributes:
        steps_executed: Number of completed steps.
        steps_failed: Number of failed steps, timeouts included.
        avg_step_time: Mean measured step duration in milliseconds.
        resource_utilization: Engine-wide average pool utilization (percent)
            at the moment the run finished.
    """

    steps_executed: int = 0
    steps_failed: int = 0
    avg_step_time: float = 0.0
    resource_utilization: float = 0.0


class ExecutionResults(BaseModel):
    success: bool = False
    errors: list[str] = Field(default_factory=list)
    output: dict[str, Any] = Field(default_factory=dict)
    metrics: ExecutionMetrics = Field(default_factory=ExecutionMetrics)


class ResponseExecutionStatus(BaseModel):
    """The run record for one workflow invocation.

    Attributes:
        execution_id: "execution-{signal_id}-{epoch_ms}-{n}".
        workflow_id: Id of the workflow being run.
        trigger_signal: The signal that started the execution.
        status: Lifecycle state. See ExecutionStatus.
        current_step: Id of the step most recently started.
        completed_steps: Ids of steps that finished successfully.
        failed_steps: Ids of steps that failed, timeouts included.
        skipped_steps: Ids of CONDITIONAL steps whose precondition was not met.
        timed_out_steps: Ids of steps that exceeded the step timeout.
        start_time: When the record was created.
        end_time: When the record reached a terminal state.
        total_time: end_time - start_time in milliseconds.
        results: Success flag, error strings, per-step output and metrics.
        resource_allocations: Resources held by this execution.
        requested_actions: Actions passed in with the request.
        escalated_rules: Ids of escalation rules that already fired for
            this execution. A rule never fires twice for one execution.
        metadata: Free-form context (e.g. the workflow name).
    """

    execution_id: str
    workflow_id: str
    trigger_signal: Signal
    status: ExecutionStatus = ExecutionStatus.PENDING
    current_step: str | None = None
    completed_steps: list[str] = Field(default_factory=list)
    failed_steps: list[str] = Field(default_factory=list)
    skipped_steps: list[str] = Field(default_factory=list)
    timed_out_steps: list[str] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=utcnow)
    end_time: datetime | None = None
    total_time: float = 0.0
    results: ExecutionResults = Field(default_factory=ExecutionResults)
    resource_allocations: list[ResourceAllocation] = Field(default_factory=list)
    requested_actions: list[ResponseAction] = Field(default_factory=list)
    escalated_rules: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def escalated(self) -> bool:
        return bool(self.escalated_rules)
