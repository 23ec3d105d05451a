"""Automated workflow generator.

Turns a signal into a ready-to-run workflow:

    find_best_template()  score every active template, keep the best
    _from_template()      clone it, narrow the triggers to this signal and
                          customise each step
    optimize_workflow()   dedupe, reorder and retune the clone

Generated workflows can be registered with the orchestration engine or run
directly with execute_automated_response(), which executes the steps one
after another through the shared ActionHandler and feeds the outcome back
into the template's performance history.
"""

import asyncio
import logging
import time
from typing import Any

from actions.base import ActionHandler
from actions.simulated import SimulatedActionHandler
from core.errors import NotInitializedError
from core.escalation import EscalationEngine
from core.events import EventBus
from core.executor import WorkflowExecutor
from generation import optimizer
from generation.performance import PerformanceTracker
from generation.templates import create_workflow_template, default_templates
from generation.validation import validate_workflow
from schemas.events import EnginePayload, EventType, WorkflowPayload
from schemas.execution import ExecutionStatus, ResponseExecutionStatus
from schemas.result import AutomatedResponseResult, OperationResult, StepOutput
from schemas.signal import Signal, SignalSeverity, SignalType, utcnow
from schemas.workflow import ResponseActionType, ResponseWorkflow, StepType, WorkflowStep
from utils.templating import render_template

logger = logging.getLogger(__name__)

_SOURCE = "generator"

# Score weights for template matching.
TYPE_MATCH = 0.4
SEVERITY_MATCH = 0.3
ASSET_MATCH = 0.2
HISTORY_BONUS = 0.1
HISTORY_SUCCESS_RATE = 0.8


class AutomatedWorkflowGenerator:
    """Generates, optimises and runs workflows from templates.

    Attributes:
        _templates: Template id to template, in scoring order.
        _generated: Generated workflow id to the optimised workflow.
        _workflow_perf: Automated run history per generated workflow.
        _template_perf: The same history rolled up per template. Drives
            the scoring bonus and the optimiser.
    """

    def __init__(
        self,
        action_handler: ActionHandler | None = None,
        event_bus: EventBus | None = None,
        escalation: EscalationEngine | None = None,
        load_default_templates: bool = True,
    ) -> None:
        self._events = event_bus or EventBus()
        handler = action_handler or SimulatedActionHandler()
        self._executor = WorkflowExecutor(
            handler,
            escalation or EscalationEngine(handler, self._events),
            self._events,
        )
        self._load_defaults = load_default_templates
        self._templates: dict[str, ResponseWorkflow] = {}
        self._generated: dict[str, ResponseWorkflow] = {}
        self._workflow_perf = PerformanceTracker()
        self._template_perf = PerformanceTracker()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> OperationResult:
        if not self._initialized and self._load_defaults:
            for template in default_templates():
                self.add_workflow_template(template)
        self._initialized = True
        logger.info("Workflow generator initialised with %d templates.", len(self._templates))
        self._events.emit(
            EventType.INITIALIZED,
            _SOURCE,
            EnginePayload(engine_id=_SOURCE, detail={"templates": len(self._templates)}),
        )
        return OperationResult.ok(templates=len(self._templates))

    # ── Generation ────────────────────────────────────────────────────────────

    async def generate_workflow(
        self,
        signal: Signal,
        context: dict[str, Any] | None = None,
    ) -> ResponseWorkflow | None:
        """Build an optimised workflow for one signal.

        Args:
            signal: The signal to respond to.
            context: Extra placeholder values for notification templates.

        Returns:
            The generated workflow, or None when no template matches or
            generation fails.

        Raises:
            NotInitializedError: If initialize() has not been called.
        """
        if not self._initialized:
            raise NotInitializedError("Automated Workflow Generator")

        try:
            template = self.find_best_template(signal)
            if template is None:
                logger.warning("No suitable template for signal %s.", signal.id)
                return None

            workflow = self._from_template(template, signal, context)
            optimized = await self.optimize_workflow(workflow, signal)
            self._generated[optimized.id] = optimized
        except Exception:
            logger.exception("Workflow generation failed for signal %s.", signal.id)
            return None

        logger.info("Generated workflow '%s' from template %s.", optimized.name, template.id)
        self._events.emit(
            EventType.WORKFLOW_GENERATED,
            _SOURCE,
            WorkflowPayload(
                workflow_id=optimized.id,
                name=optimized.name,
                template_id=template.id,
                signal_id=signal.id,
                detail={"steps": [step.id for step in optimized.steps]},
            ),
        )
        return optimized

    def find_best_template(self, signal: Signal) -> ResponseWorkflow | None:
        """Return the highest-scoring active template, or None if all score zero.

        Ties keep the template that was registered first.
        """
        best: ResponseWorkflow | None = None
        best_score = 0.0
        for template in self._templates.values():
            if not template.active:
                continue
            score = self.score_template(template, signal)
            if score > best_score:
                best, best_score = template, score
        if best is not None:
            logger.debug("Template %s scored %.2f for signal %s.", best.id, best_score, signal.id)
        return best

    def score_template(self, template: ResponseWorkflow, signal: Signal) -> float:
        """Score a template against a signal.

        +0.4 if the signal type is a trigger type, +0.3 if the severity is a
        trigger severity, +0.2 if the asset filter is empty or contains the
        asset, +0.1 if the template's automated runs succeed more than 80 %
        of the time.
        """
        triggers = template.triggers
        score = 0.0
        if signal.type in triggers.signal_types:
            score += TYPE_MATCH
        if signal.severity in triggers.severity_levels:
            score += SEVERITY_MATCH
        if not triggers.asset_categories or (signal.asset_id or "") in triggers.asset_categories:
            score += ASSET_MATCH
        history = self._template_perf.get(template.id)
        if history is not None and history.executions and history.success_rate > HISTORY_SUCCESS_RATE:
            score += HISTORY_BONUS
        return score

    def _from_template(
        self,
        template: ResponseWorkflow,
        signal: Signal,
        context: dict[str, Any] | None,
    ) -> ResponseWorkflow:
        now = utcnow()
        triggers = template.triggers.model_copy(
            update={
                "signal_types": [signal.type],
                "severity_levels": [signal.severity],
                "asset_categories": [signal.asset_id] if signal.asset_id else [],
            }
        )
        return template.model_copy(
            deep=True,
            update={
                "id": f"workflow-{signal.id}-{int(now.timestamp() * 1000)}",
                "name": f"{template.name} - {signal.type.value}",
                "description": f"Generated workflow for {signal.type.value} signal",
                "triggers": triggers,
                "steps": [_customize_step(step, signal, context) for step in template.steps],
                "reusable": False,
                "template_id": template.id,
                "created_at": now,
                "updated_at": now,
            },
        )

    async def optimize_workflow(
        self,
        workflow: ResponseWorkflow,
        signal: Signal | None = None,
    ) -> ResponseWorkflow:
        """Return an optimised copy, or the input unchanged if optimisation fails.

        Timeouts and retries are sized from the history of the template the
        workflow came from. Without history the defaults apply.
        """
        try:
            profile = self._template_perf.profile(workflow.template_id or workflow.id)
            optimized = optimizer.optimize(workflow, profile)
        except Exception:
            logger.exception("Optimisation of workflow %s failed. Using it unoptimised.", workflow.id)
            return workflow

        logger.debug(
            "Workflow %s optimised: %d → %d steps, overall timeout %dms, %d retries.",
            workflow.id,
            len(workflow.steps),
            len(optimized.steps),
            optimized.execution.overall_timeout,
            optimized.execution.retry.max_retries,
        )
        self._events.emit(
            EventType.WORKFLOW_OPTIMIZED,
            _SOURCE,
            WorkflowPayload(
                workflow_id=optimized.id,
                name=optimized.name,
                template_id=optimized.template_id,
                signal_id=signal.id if signal else None,
                detail={
                    "steps_before": len(workflow.steps),
                    "steps_after": len(optimized.steps),
                    "overall_timeout": optimized.execution.overall_timeout,
                    "max_retries": optimized.execution.retry.max_retries,
                },
            ),
        )
        return optimized

    # ── Automated execution ───────────────────────────────────────────────────

    async def execute_automated_response(
        self,
        signal: Signal,
        workflow: ResponseWorkflow,
    ) -> OperationResult:
        """Validate a workflow and run its steps one after another.

        Unlike the orchestration engine this path allocates no resources and
        never aborts: every step runs and every outcome is recorded.

        Returns:
            success=True with {"execution_id", "results"} once every step
            has run, where results is an AutomatedResponseResult.
            success=False with "Workflow validation failed: ..." if the
            workflow is structurally unusable.
        """
        validation = validate_workflow(workflow)
        if not validation.valid:
            logger.warning("Workflow %s rejected: %s", workflow.id, "; ".join(validation.errors))
            return OperationResult.fail(
                f"Workflow validation failed: {', '.join(validation.errors)}"
            )

        millis = int(utcnow().timestamp() * 1000)
        record = ResponseExecutionStatus(
            execution_id=f"auto-{workflow.id}-{millis}",
            workflow_id=workflow.id,
            trigger_signal=signal,
            status=ExecutionStatus.RUNNING,
        )
        logger.info("Running automated response %s (%d steps).", record.execution_id, len(workflow.steps))

        start = time.perf_counter()
        outputs = [
            await self._run_step(step, record, workflow.execution.step_timeout)
            for step in sorted(workflow.steps, key=lambda s: s.order)
        ]
        total_time = (time.perf_counter() - start) * 1000

        success = all(out.success for out in outputs)
        self._workflow_perf.record(workflow.id, total_time, success)
        if workflow.template_id:
            self._template_perf.record(workflow.template_id, total_time, success)

        result = AutomatedResponseResult(
            execution_id=record.execution_id,
            workflow_id=workflow.id,
            success=success,
            steps=outputs,
            total_time=total_time,
        )
        logger.info(
            "Automated response %s finished in %.0fms (%d/%d steps succeeded).",
            record.execution_id,
            total_time,
            sum(out.success for out in outputs),
            len(outputs),
        )
        self._events.emit(
            EventType.AUTOMATED_RESPONSE_EXECUTED,
            _SOURCE,
            WorkflowPayload(
                workflow_id=workflow.id,
                name=workflow.name,
                template_id=workflow.template_id,
                signal_id=signal.id,
                detail={"execution_id": record.execution_id, "success": success},
            ),
        )
        return OperationResult.ok(execution_id=record.execution_id, results=result)

    async def _run_step(
        self,
        step: WorkflowStep,
        record: ResponseExecutionStatus,
        timeout_ms: int,
    ) -> StepOutput:
        start = time.perf_counter()
        try:
            output = await asyncio.wait_for(
                self._executor.dispatch_step(step, record), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            error = f"timed out after {timeout_ms}ms"
        except Exception as exc:
            error = str(exc)
        else:
            record.completed_steps.append(step.id)
            return StepOutput(
                step_id=step.id,
                success=True,
                duration_ms=(time.perf_counter() - start) * 1000,
                output=output,
            )

        logger.error("Automated step '%s' failed: %s", step.name, error)
        record.failed_steps.append(step.id)
        return StepOutput(
            step_id=step.id,
            success=False,
            duration_ms=(time.perf_counter() - start) * 1000,
            error=error,
        )

    # ── Template management ───────────────────────────────────────────────────

    def create_workflow_template(
        self,
        name: str,
        description: str,
        signal_types: list[SignalType],
        severity_levels: list[SignalSeverity],
        steps: list[WorkflowStep],
    ) -> ResponseWorkflow:
        template = create_workflow_template(name, description, signal_types, severity_levels, steps)
        self.add_workflow_template(template)
        return template

    def add_workflow_template(self, template: ResponseWorkflow) -> None:
        self._templates[template.id] = template
        logger.info("Workflow template added: %s", template.name)

    def update_workflow_template(self, template_id: str, **fields: Any) -> ResponseWorkflow | None:
        """Merge fields into a template. Returns None for unknown ids.

        Raises:
            pydantic.ValidationError: If the merged template is invalid.
        """
        template = self._templates.get(template_id)
        if template is None:
            return None
        data = template.model_dump()
        data.update(fields)
        data["updated_at"] = utcnow()
        updated = ResponseWorkflow.model_validate(data)
        self._templates[template_id] = updated
        logger.info("Workflow template updated: %s", updated.name)
        return updated

    # ── Queries ───────────────────────────────────────────────────────────────

    def get_workflow_templates(self) -> dict[str, ResponseWorkflow]:
        return dict(self._templates)

    def get_generated_workflows(self) -> dict[str, ResponseWorkflow]:
        return dict(self._generated)

    def get_workflow_performance(self) -> dict[str, dict[str, float]]:
        return self._workflow_perf.snapshot()

    def get_template_performance(self) -> dict[str, dict[str, float]]:
        return self._template_perf.snapshot()

    def get_statistics(self) -> dict[str, Any]:
        executions, successes = self._workflow_perf.totals()
        return {
            "templates_count": len(self._templates),
            "generated_workflows_count": len(self._generated),
            "total_executions": executions,
            "average_success_rate": successes / executions if executions else 0.0,
        }


def _customize_step(step: WorkflowStep, signal: Signal, context: dict[str, Any] | None) -> WorkflowStep:
    """Fit one template step to a signal.

    NOTIFICATION templates get signal fields substituted. ACTION steps are
    raised to IMMEDIATE_RESPONSE for CRITICAL signals. ESCALATION steps
    escalate at the signal's severity.
    """
    config = step.config
    if step.type == StepType.NOTIFICATION and config.notification is not None:
        notification = config.notification.model_copy(
            update={"template": render_template(config.notification.template, signal, context)}
        )
        config = config.model_copy(update={"notification": notification})

    elif step.type == StepType.ACTION and config.action is not None:
        if signal.severity == SignalSeverity.CRITICAL:
            config = config.model_copy(update={"action": ResponseActionType.IMMEDIATE_RESPONSE})

    elif step.type == StepType.ESCALATION and config.escalation is not None:
        escalation = config.escalation.model_copy(update={"level": signal.severity.value})
        config = config.model_copy(update={"escalation": escalation})

    return step.model_copy(deep=True, update={"config": config})
