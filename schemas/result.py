"""Result schemas.

Every public entry point of the engines returns an OperationResult so
embedding code can treat orchestration failures as ordinary control flow
instead of exceptions. Only programmer errors (calling an engine before
initialize()) raise.
"""

from typing import Any

from pydantic import BaseModel, Field


class OperationResult(BaseModel):
    """Uniform {success, data, error} envelope.

    Attributes:
        success: True if the operation did what was asked.
        data: Operation-specific payload (e.g. {"execution_id": ...}).
        error: Human-readable reason when success is False.
    """

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def ok(cls, **data: Any) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, **data: Any) -> "OperationResult":
        return cls(success=False, error=error, data=data or None)


class StepOutput(BaseModel):
    """Recorded outcome of one step in an automated response run.

    Attributes:
        step_id: The step.
        success: Whether the step completed.
        duration_ms: Measured wall-clock time.
        output: Whatever the action handler returned.
        error: Failure reason, if any.
    """

    step_id: str
    success: bool
    duration_ms: float = 0.0
    output: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class AutomatedResponseResult(BaseModel):
    """Outcome of AutomatedWorkflowGenerator.execute_automated_response()."""

    execution_id: str
    workflow_id: str
    success: bool
    steps: list[StepOutput] = Field(default_factory=list)
    total_time: float = 0.0
