"""Workflow optimiser.

optimize() returns a tuned copy of a workflow:

    1. Duplicate ACTION steps are removed. The first step with a given
       action type is kept; dependencies on removed steps are dropped.
    2. Steps whose action is IMMEDIATE_RESPONSE move to the front. The
       rest keep their relative order by `order` (the sort is stable).
       Orders are then renumbered from 1.
    3. DELAY steps are capped at MAX_DELAY_MS.
    4. overall_timeout becomes max(2 × average execution time, 60 s).
    5. When the error rate is above 10 %, max_retries goes up by one, to at
       most MAX_RETRIES.

The input workflow is never modified.
"""

from generation.performance import PerformanceProfile
from schemas.signal import utcnow
from schemas.workflow import ResponseActionType, ResponseWorkflow, StepType, WorkflowStep

MAX_DELAY_MS = 10_000
MIN_OVERALL_TIMEOUT_MS = 60_000
MAX_RETRIES = 5
ERROR_RATE_RETRY_THRESHOLD = 0.1


def remove_redundant_steps(steps: list[WorkflowStep]) -> list[WorkflowStep]:
    seen: set[ResponseActionType] = set()
    kept: list[WorkflowStep] = []
    for step in steps:
        action = step.config.action
        if step.type == StepType.ACTION and action is not None:
            if action in seen:
                continue
            seen.add(action)
        kept.append(step)

    kept_ids = {step.id for step in kept}
    return [
        step.model_copy(update={"dependencies": [d for d in step.dependencies if d in kept_ids]})
        for step in kept
    ]


def reorder_steps(steps: list[WorkflowStep]) -> list[WorkflowStep]:
    """Sort IMMEDIATE_RESPONSE steps first, then renumber `order` 1..n.

    The executor sorts by `order`, so the new sequence has to be written
    back into the steps for it to take effect.
    """
    ordered = sorted(
        steps,
        key=lambda s: (0 if s.config.action == ResponseActionType.IMMEDIATE_RESPONSE else 1, s.order),
    )
    return [step.model_copy(update={"order": i}) for i, step in enumerate(ordered, start=1)]


def cap_delays(steps: list[WorkflowStep]) -> list[WorkflowStep]:
    capped: list[WorkflowStep] = []
    for step in steps:
        delay = step.config.delay
        if step.type == StepType.DELAY and delay is not None and delay > MAX_DELAY_MS:
            step = step.model_copy(
                update={"config": step.config.model_copy(update={"delay": MAX_DELAY_MS})}
            )
        capped.append(step)
    return capped


def optimize(workflow: ResponseWorkflow, profile: PerformanceProfile) -> ResponseWorkflow:
    """Return an optimised deep copy of workflow.

    Args:
        workflow: The workflow to tune. Left untouched.
        profile: Historical performance to size timeouts and retries from.
    """
    source = workflow.model_copy(deep=True)

    steps = cap_delays(reorder_steps(remove_redundant_steps(source.steps)))

    execution = source.execution
    retry = execution.retry
    if profile.error_rate > ERROR_RATE_RETRY_THRESHOLD:
        retry = retry.model_copy(update={"max_retries": min(retry.max_retries + 1, MAX_RETRIES)})

    update: dict = {"retry": retry}
    if profile.avg_execution_time:
        update["overall_timeout"] = int(
            max(profile.avg_execution_time * 2, MIN_OVERALL_TIMEOUT_MS)
        )
    execution = execution.model_copy(update=update)

    return source.model_copy(
        update={"steps": steps, "execution": execution, "updated_at": utcnow()}
    )
