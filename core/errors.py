"""Orchestration error types.

Most failures inside the core are recorded on the execution record rather
than raised to the caller. These exceptions carry failures between layers:
the step executor raises them, the workflow runner catches and classifies
them, and the engine turns the outcome into an OperationResult.

NotInitializedError is the exception that does reach callers: it means an
engine method was called before initialize(), which is a programming error.
"""


class OrchestrationError(Exception):
    """Base class for every error raised by the orchestration core."""


class NotInitializedError(OrchestrationError):
    """An engine method was called before initialize() succeeded."""

    def __init__(self, engine: str):
        super().__init__(f"{engine} not initialized")
        self.engine = engine


class ResourceExhaustedError(OrchestrationError):
    """A required resource type ran out during allocation.

    Attributes:
        missing: Pool ids that could not supply a resource.
    """

    def __init__(self, missing: list[str]):
        super().__init__(f"Insufficient resources: {', '.join(missing)}")
        self.missing = missing


class StepExecutionError(OrchestrationError):
    """A step failed. The message is recorded on the execution record."""

    def __init__(self, step_id: str, message: str):
        super().__init__(message)
        self.step_id = step_id


class StepTimeoutError(StepExecutionError):
    """A step did not finish within the workflow's step timeout."""

    def __init__(self, step_id: str, timeout_ms: int):
        super().__init__(step_id, f"timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class ConditionNotMetError(StepExecutionError):
    """A CONDITION step's expression evaluated false."""

    def __init__(self, step_id: str, condition: str):
        super().__init__(step_id, f"Condition not met: {condition}")
        self.condition = condition


class CriticalStepError(OrchestrationError):
    """An IMMEDIATE_RESPONSE step failed in SEQUENTIAL mode.

    Aborts the remaining steps. The execution finalizes as FAILED.
    """

    def __init__(self, step_id: str, cause: Exception):
        super().__init__(f"Critical step {step_id} failed: {cause}")
        self.step_id = step_id
        self.cause = cause


class WorkflowTimeoutError(OrchestrationError):
    """The whole workflow did not finish within its overall timeout."""

    def __init__(self, workflow_id: str, timeout_ms: int):
        super().__init__(f"Workflow {workflow_id} exceeded overall timeout of {timeout_ms}ms")
        self.workflow_id = workflow_id
        self.timeout_ms = timeout_ms
