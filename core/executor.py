"""Workflow step executor.

WorkflowExecutor runs the steps of one workflow against one execution
record. It owns scheduling (sequential, parallel, conditional), per-step
dispatch, per-step and overall timeouts and step retries. It does not own
the record's lifecycle: the orchestration engine moves the record between
states, releases resources and archives it.

Failure policy:
    - A failed step is recorded (failed_steps, results.errors, stepFailed)
      and the workflow carries on.
    - In SEQUENTIAL mode a failed IMMEDIATE_RESPONSE step raises
      CriticalStepError, which aborts the remaining steps.
    - A step that exceeds step_timeout fails with StepTimeoutError and is
      also listed in timed_out_steps.
    - A run that exceeds overall_timeout raises WorkflowTimeoutError.

Once the engine has cancelled the record, the executor stops writing to
it: steps still in flight finish, but their outcomes are discarded.
"""

import asyncio
import logging
import time
from typing import Any

from actions.base import ActionContext, ActionHandler
from core.conditions import build_scope, evaluate_condition
from core.errors import (
    ConditionNotMetError,
    CriticalStepError,
    StepExecutionError,
    StepTimeoutError,
    WorkflowTimeoutError,
)
from core.escalation import EscalationEngine
from core.events import EventBus
from schemas.events import EventType, StepPayload
from schemas.execution import ResponseExecutionStatus
from schemas.workflow import (
    ExecutionMode,
    ResponseActionType,
    ResponseWorkflow,
    StepType,
    WorkflowStep,
)
from utils.templating import render_template

logger = logging.getLogger(__name__)

DEFAULT_DELAY_MS = 1000

_SOURCE = "executor"


class WorkflowExecutor:
    """Runs a workflow's steps and records their outcomes on the execution.

    Attributes:
        retry_failed_steps: When True, a failed step is retried up to the
            workflow's retry.max_retries times, waiting retry.delay
            milliseconds between attempts.
    """

    def __init__(
        self,
        handler: ActionHandler,
        escalation: EscalationEngine,
        events: EventBus | None = None,
        retry_failed_steps: bool = False,
    ) -> None:
        """Initialise the executor.

        Args:
            handler: Capability provider for actions and notifications.
            escalation: Engine ESCALATION steps delegate to.
            events: Bus step events are emitted on.
            retry_failed_steps: See class attributes.
        """
        self._handler = handler
        self._escalation = escalation
        self._events = events or EventBus()
        self.retry_failed_steps = retry_failed_steps

    async def run(
        self,
        workflow: ResponseWorkflow,
        execution: ResponseExecutionStatus,
        timeout_ms: int | None = None,
    ) -> None:
        """Run every step of the workflow according to its execution mode.

        Args:
            workflow: The workflow to run.
            execution: The RUNNING record to write outcomes into.
            timeout_ms: Cap on the whole run. Defaults to the workflow's
                overall_timeout; the smaller of the two applies.

        Raises:
            CriticalStepError: A SEQUENTIAL IMMEDIATE_RESPONSE step failed.
            WorkflowTimeoutError: The run exceeded overall_timeout.
        """
        settings = workflow.execution
        ordered = sorted(workflow.steps, key=lambda s: s.order)

        if settings.mode == ExecutionMode.PARALLEL:
            runner = self._run_parallel(workflow, ordered, execution)
        elif settings.mode == ExecutionMode.CONDITIONAL:
            runner = self._run_conditional(workflow, ordered, execution)
        else:
            runner = self._run_sequential(workflow, ordered, execution)

        limit = min(settings.overall_timeout, timeout_ms or settings.overall_timeout)
        try:
            await asyncio.wait_for(runner, timeout=limit / 1000)
        except asyncio.TimeoutError:
            raise WorkflowTimeoutError(workflow.id, limit) from None

    # ── Modes ─────────────────────────────────────────────────────────────────

    async def _run_sequential(
        self,
        workflow: ResponseWorkflow,
        steps: list[WorkflowStep],
        execution: ResponseExecutionStatus,
    ) -> None:
        for step in steps:
            if execution.is_terminal:
                return
            error = await self._run_step_safely(workflow, step, execution)
            if error is not None and step.config.action == ResponseActionType.IMMEDIATE_RESPONSE:
                logger.error(
                    "Critical step '%s' failed in %s. Aborting remaining steps.",
                    step.id,
                    execution.execution_id,
                )
                raise CriticalStepError(step.id, error)

    async def _run_parallel(
        self,
        workflow: ResponseWorkflow,
        steps: list[WorkflowStep],
        execution: ResponseExecutionStatus,
    ) -> None:
        # _run_step_safely never raises, so one failure cannot cancel siblings.
        async with asyncio.TaskGroup() as tg:
            for step in steps:
                tg.create_task(self._run_step_safely(workflow, step, execution), name=step.id)

    async def _run_conditional(
        self,
        workflow: ResponseWorkflow,
        steps: list[WorkflowStep],
        execution: ResponseExecutionStatus,
    ) -> None:
        for step in steps:
            if execution.is_terminal:
                return
            reason = self._precondition_failure(step, execution)
            if reason is not None:
                self._record_skip(step, execution, reason)
                continue
            await self._run_step_safely(workflow, step, execution)

    def _precondition_failure(
        self, step: WorkflowStep, execution: ResponseExecutionStatus
    ) -> str | None:
        """Return why a step should be skipped, or None if it may run."""
        unmet = [dep for dep in step.dependencies if dep not in execution.completed_steps]
        if unmet:
            return f"dependencies not completed: {', '.join(unmet)}"
        precondition = step.config.precondition
        if precondition:
            scope = build_scope(execution.trigger_signal, execution)
            if not evaluate_condition(precondition, scope):
                return f"precondition not met: {precondition}"
        return None

    # ── Single step ───────────────────────────────────────────────────────────

    async def _run_step_safely(
        self,
        workflow: ResponseWorkflow,
        step: WorkflowStep,
        execution: ResponseExecutionStatus,
    ) -> StepExecutionError | None:
        """Run one step with timeout and retries and record the outcome.

        This method never raises a step failure. It returns the final error
        instead, so the calling mode decides whether the failure matters.

        Returns:
            None on success, otherwise the error of the last attempt.
        """
        settings = workflow.execution
        attempts = 1 + (settings.retry.max_retries if self.retry_failed_steps else 0)
        error: StepExecutionError | None = None
        step_start = time.perf_counter()

        for attempt in range(1, attempts + 1):
            if execution.is_terminal:
                return None
            execution.current_step = step.id
            try:
                output = await asyncio.wait_for(
                    self.dispatch_step(step, execution),
                    timeout=settings.step_timeout / 1000,
                )
            except asyncio.TimeoutError:
                error = StepTimeoutError(step.id, settings.step_timeout)
            except StepExecutionError as exc:
                error = exc
            except Exception as exc:
                error = StepExecutionError(step.id, str(exc))
            else:
                elapsed_ms = (time.perf_counter() - step_start) * 1000
                self._record_success(step, execution, output, elapsed_ms, attempt)
                return None

            if attempt < attempts:
                logger.info(
                    "Step '%s' attempt %d/%d failed (%s). Retrying in %dms.",
                    step.id,
                    attempt,
                    attempts,
                    error,
                    settings.retry.delay,
                )
                await asyncio.sleep(settings.retry.delay / 1000)

        elapsed_ms = (time.perf_counter() - step_start) * 1000
        self._record_failure(step, execution, error, elapsed_ms)
        return error

    async def dispatch_step(
        self, step: WorkflowStep, execution: ResponseExecutionStatus
    ) -> dict[str, Any]:
        """Perform one step's work once, with no timeout, retry or recording.

        Raises:
            StepExecutionError: The step could not be carried out.
        """
        context = ActionContext(
            execution_id=execution.execution_id,
            workflow_id=execution.workflow_id,
            signal=execution.trigger_signal,
            step_id=step.id,
        )
        config = step.config

        if step.type == StepType.ACTION:
            if config.action is None:
                raise StepExecutionError(step.id, "Action step missing action configuration")
            outcome = await self._handler.execute_action(config.action, context, config.parameters)
            if not outcome.success:
                raise StepExecutionError(step.id, outcome.error or f"{config.action.value} failed")
            return {"action": config.action.value, **outcome.output}

        if step.type == StepType.CONDITION:
            if not config.condition:
                raise StepExecutionError(step.id, "Condition step missing condition configuration")
            scope = build_scope(execution.trigger_signal, execution)
            if not evaluate_condition(config.condition, scope):
                raise ConditionNotMetError(step.id, config.condition)
            return {"condition": config.condition, "result": True}

        if step.type == StepType.DELAY:
            delay_ms = config.delay if config.delay is not None else DEFAULT_DELAY_MS
            await asyncio.sleep(delay_ms / 1000)
            return {"delay_ms": delay_ms}

        if step.type == StepType.NOTIFICATION:
            if config.notification is None:
                raise StepExecutionError(
                    step.id, "Notification step missing notification configuration"
                )
            return await self._notify(step, context)

        if step.type == StepType.ESCALATION:
            if config.escalation is None:
                raise StepExecutionError(step.id, "Escalation step missing escalation configuration")
            errors = await self._escalation.execute_level(config.escalation.level, context)
            if errors:
                raise StepExecutionError(step.id, "; ".join(errors))
            return {"level": config.escalation.level}

        raise StepExecutionError(step.id, f"Unknown step type: {step.type}")

    async def _notify(self, step: WorkflowStep, context: ActionContext) -> dict[str, Any]:
        """Send the step's message to every recipient on every channel."""
        notification = step.config.notification
        message = render_template(notification.template, context.signal)
        failures: list[str] = []
        sent = 0

        for recipient in notification.recipients:
            for channel in notification.channels:
                outcome = await self._handler.send_notification(recipient, channel, message, context)
                if outcome.success:
                    sent += 1
                else:
                    failures.append(f"{recipient}/{channel}: {outcome.error}")

        if failures:
            raise StepExecutionError(step.id, "Notification failed for " + ", ".join(failures))
        return {"sent": sent, "message": message}

    # ── Recording ─────────────────────────────────────────────────────────────

    def _record_success(
        self,
        step: WorkflowStep,
        execution: ResponseExecutionStatus,
        output: dict[str, Any],
        elapsed_ms: float,
        attempts: int,
    ) -> None:
        if execution.is_terminal:
            return
        execution.completed_steps.append(step.id)
        execution.results.metrics.steps_executed += 1
        execution.results.output[step.id] = {
            "status": "completed",
            "duration_ms": elapsed_ms,
            "attempts": attempts,
            "output": output,
        }
        logger.debug("Step '%s' completed in %.0fms.", step.id, elapsed_ms)
        self._events.emit(
            EventType.STEP_COMPLETED,
            _SOURCE,
            StepPayload(
                execution_id=execution.execution_id,
                step_id=step.id,
                step_name=step.name,
                duration_ms=elapsed_ms,
            ),
        )

    def _record_failure(
        self,
        step: WorkflowStep,
        execution: ResponseExecutionStatus,
        error: StepExecutionError,
        elapsed_ms: float,
    ) -> None:
        if execution.is_terminal:
            return
        timed_out = isinstance(error, StepTimeoutError)
        execution.failed_steps.append(step.id)
        if timed_out:
            execution.timed_out_steps.append(step.id)
        execution.results.metrics.steps_failed += 1
        execution.results.errors.append(f"Step {step.name}: {error}")
        execution.results.output[step.id] = {
            "status": "timed_out" if timed_out else "failed",
            "duration_ms": elapsed_ms,
            "error": str(error),
        }
        logger.error("Step '%s' failed in %s: %s", step.id, execution.execution_id, error)
        self._events.emit(
            EventType.STEP_FAILED,
            _SOURCE,
            StepPayload(
                execution_id=execution.execution_id,
                step_id=step.id,
                step_name=step.name,
                duration_ms=elapsed_ms,
                error=str(error),
                timed_out=timed_out,
            ),
        )

    def _record_skip(self, step: WorkflowStep, execution: ResponseExecutionStatus, reason: str) -> None:
        execution.skipped_steps.append(step.id)
        execution.results.output[step.id] = {"status": "skipped", "reason": reason}
        logger.info("Step '%s' skipped: %s", step.id, reason)
        self._events.emit(
            EventType.STEP_SKIPPED,
            _SOURCE,
            StepPayload(
                execution_id=execution.execution_id,
                step_id=step.id,
                step_name=step.name,
                error=reason,
            ),
        )
