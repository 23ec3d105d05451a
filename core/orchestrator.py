"""Response orchestration engine.

ResponseOrchestrationEngine is the entry point embedding code talks to.
Given a signal it picks the applicable workflow, checks and allocates the
resources the workflow needs, and starts the workflow in the background.
The call returns as soon as the execution is registered; callers that
need the outcome await await_completion(execution_id).

Lifecycle of one execution:
    execute_response()
        → find applicable workflow        (else: no applicable workflow)
        → concurrency cap                 (else: reject or park)
        → resource availability check     (else: reject or park)
        → PENDING record + atomic allocation
        → executionStarted, background task spawned, return
    background task:
        → RUNNING, WorkflowExecutor.run()
        → finalise: COMPLETED / FAILED, metrics
        → release resources, archive to history
        → executionCompleted / executionFailed
        → escalation check
        → retry parked admission requests

All engine state lives on the instance. Build as many engines as needed
with create_engine(); they share nothing.
"""

import asyncio
import itertools
import logging
from typing import Any

from actions.base import ActionHandler
from actions.simulated import SimulatedActionHandler
from core.admission import AdmissionQueue
from core.errors import NotInitializedError, ResourceExhaustedError
from core.escalation import EscalationEngine
from core.events import EventBus, Listener
from core.executor import WorkflowExecutor
from core.registry import WorkflowRegistry
from core.resources import ResourcePoolManager
from schemas.config import ResponseOrchestrationConfig
from schemas.escalation import EscalationRule
from schemas.events import EnginePayload, EventType, ExecutionPayload
from schemas.execution import ExecutionStatus, ResponseExecutionStatus
from schemas.intelligence import ResponseAction
from schemas.resources import AvailabilityCheck, ResourcePool
from schemas.result import OperationResult
from schemas.signal import Signal, utcnow
from schemas.workflow import ResponseWorkflow

logger = logging.getLogger(__name__)

_SOURCE = "orchestrator"


def validate_config(config: ResponseOrchestrationConfig) -> list[str]:
    """Return every semantic problem with an orchestration config.

    Returns:
        Error strings. Empty when the config is usable.
    """
    errors: list[str] = []
    if not config.id or not config.name:
        errors.append("Configuration must have id and name")
    if config.resource_allocation.max_concurrent <= 0:
        errors.append("resource_allocation.max_concurrent must be positive")
    if config.performance.response_timeout <= 0:
        errors.append("performance.response_timeout must be positive")
    if not 0.0 <= config.monitoring.thresholds.success_rate <= 1.0:
        errors.append("monitoring.thresholds.success_rate must be within [0, 1]")
    if config.monitoring.enabled and config.monitoring.interval <= 0:
        errors.append("monitoring.interval must be positive when monitoring is enabled")
    return errors


class ResponseOrchestrationEngine:
    """Matches signals to workflows and runs them against bounded resources.

    Attributes:
        config: The configuration the engine was built with.
        _events: Bus every component of this engine emits on.
        _pools: Resource pool state.
        _registry: Registered workflows, in match order.
        _escalation: Escalation rules and their execution.
        _executor: Step scheduling and dispatch.
        _admission: Parked requests waiting for capacity.
        _active: Execution id to non-terminal record.
        _history: Terminal records, oldest first. Append-only.
        _tasks: Execution id to the background task running it.
        _tickets: Admission ticket id to the future resolved when the
            parked request is started or dropped. Entries are removed as
            soon as the future resolves.
    """

    def __init__(
        self,
        config: ResponseOrchestrationConfig,
        action_handler: ActionHandler | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        """Build an engine. Nothing is loaded until initialize().

        Args:
            config: Engine configuration.
            action_handler: Capability provider. Defaults to a
                SimulatedActionHandler.
            event_bus: Bus to emit on. Defaults to a private bus.
        """
        self.config = config
        self._events = event_bus or EventBus()
        self._handler = action_handler or SimulatedActionHandler()
        self._pools = ResourcePoolManager()
        self._registry = WorkflowRegistry(self._events)
        self._escalation = EscalationEngine(self._handler, self._events)
        self._executor = WorkflowExecutor(
            self._handler,
            self._escalation,
            self._events,
            retry_failed_steps=config.performance.retry_failed_steps,
        )
        self._admission = AdmissionQueue(config.resource_allocation.admission)
        self._active: dict[str, ResponseExecutionStatus] = {}
        self._history: list[ResponseExecutionStatus] = []
        self._tasks: dict[str, asyncio.Task] = {}
        self._tickets: dict[str, asyncio.Future] = {}
        self._monitor_task: asyncio.Task | None = None
        self._initialized = False
        self._seq = itertools.count(1)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> OperationResult:
        """Validate the config, load pools, workflows and rules, start monitoring.

        Returns:
            success=True with counts of what was loaded, or success=False
            with every configuration problem. A failed initialize leaves
            the engine unusable.
        """
        if self._initialized:
            return OperationResult.ok(already_initialized=True)

        errors = validate_config(self.config)
        if errors:
            logger.error("Orchestration config rejected: %s", "; ".join(errors))
            return OperationResult.fail("Invalid configuration: " + "; ".join(errors))

        for pool in self.config.resource_allocation.resource_pools:
            self._pools.add_pool(pool)
        for workflow in self.config.workflows:
            self._registry.add(workflow)
        for rule in self.config.escalation_rules:
            self._escalation.add_rule(rule)

        if self.config.monitoring.enabled:
            self._monitor_task = asyncio.create_task(
                self._monitor_performance(), name=f"{self.config.id}-monitor"
            )

        self._initialized = True
        logger.info(
            "Engine '%s' initialised: %d workflows, %d pools, %d escalation rules.",
            self.config.id,
            len(self._registry),
            len(self._pools),
            len(self._escalation),
        )
        self._events.emit(
            EventType.INITIALIZED,
            _SOURCE,
            EnginePayload(engine_id=self.config.id, detail={"name": self.config.name}),
        )
        return OperationResult.ok(
            workflows=len(self._registry),
            resource_pools=len(self._pools),
            escalation_rules=len(self._escalation),
        )

    async def shutdown(self) -> OperationResult:
        """Cancel every active execution, reset all pools and stop monitoring.

        Unlike cancel_execution(), shutdown also cancels the background
        tasks of the executions it cancels, since the engine is going away.
        """
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None

        cancelled = 0
        for execution_id in list(self._active):
            result = await self.cancel_execution(execution_id, drain=False)
            cancelled += int(result.success)

        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        dropped = self._admission.clear("Engine shutting down")
        self._pools.release_all()
        self._initialized = False

        logger.info(
            "Engine '%s' shut down. %d executions cancelled, %d parked requests dropped.",
            self.config.id,
            cancelled,
            dropped,
        )
        self._events.emit(
            EventType.SHUTDOWN,
            _SOURCE,
            EnginePayload(engine_id=self.config.id, detail={"cancelled": cancelled}),
        )
        return OperationResult.ok(cancelled=cancelled, dropped=dropped)

    def update_config(self, **fields: Any) -> OperationResult:
        """Merge top-level config fields and re-validate.

        Only settings are applied (concurrency cap, retry, admission,
        monitoring thresholds). Workflows, pools and rules are managed
        through their own add/update methods once the engine is running.
        """
        data = self.config.model_dump()
        data.update(fields)
        try:
            candidate = ResponseOrchestrationConfig.model_validate(data)
        except ValueError as exc:
            return OperationResult.fail(f"Invalid configuration: {exc}")
        errors = validate_config(candidate)
        if errors:
            return OperationResult.fail("Invalid configuration: " + "; ".join(errors))

        self.config = candidate
        self._executor.retry_failed_steps = candidate.performance.retry_failed_steps
        self._admission.settings = candidate.resource_allocation.admission
        logger.info("Engine '%s' config updated: %s", candidate.id, ", ".join(sorted(fields)))
        return OperationResult.ok(updated=sorted(fields))

    # ── Execution ─────────────────────────────────────────────────────────────

    async def execute_response(
        self,
        signal: Signal,
        actions: list[ResponseAction] | None = None,
    ) -> OperationResult:
        """Start the applicable workflow for a signal.

        Returns once the execution is registered and its resources are
        allocated. The workflow itself runs in a background task.

        Args:
            signal: The triggering signal.
            actions: Recommended actions to attach to the execution record.

        Returns:
            success=True with {"execution_id", "status"} when started, or
            {"queued": True, "ticket", "position"} when parked in the
            admission queue. success=False with the reason otherwise, e.g.
            "No applicable workflow found for signal" or
            "Insufficient resources: inspector".

        Raises:
            NotInitializedError: If initialize() has not succeeded.
        """
        self._require_initialized()
        requested = list(actions or [])
        logger.info(
            "Executing response for signal %s (%s/%s) with %d actions.",
            signal.id,
            signal.type.value,
            signal.severity.value,
            len(requested),
        )

        result, retryable = self._try_start(signal, requested)
        if result.success or not retryable:
            return result

        ticket = self._admission.offer(signal, requested)
        if ticket is None:
            return result

        self._tickets[ticket.ticket] = ticket.future
        ticket.future.add_done_callback(lambda _f, t=ticket.ticket: self._tickets.pop(t, None))
        position = self._admission.position(ticket.ticket)
        logger.info("Signal %s parked as %s (position %s).", signal.id, ticket.ticket, position)
        self._events.emit(
            EventType.EXECUTION_QUEUED,
            _SOURCE,
            ExecutionPayload(
                execution_id=ticket.ticket,
                workflow_id="",
                signal_id=signal.id,
                status=ExecutionStatus.PENDING,
                error=result.error,
            ),
        )
        return OperationResult.ok(queued=True, ticket=ticket.ticket, position=position)

    async def await_completion(
        self,
        execution_id: str,
        timeout: float | None = None,
    ) -> ResponseExecutionStatus | None:
        """Wait for an execution's background task to finish.

        Args:
            execution_id: Id returned by execute_response().
            timeout: Seconds to wait. None waits indefinitely.

        Returns:
            The execution record: terminal if the task finished in time,
            still active if the timeout elapsed first. None if the id is
            unknown.
        """
        task = self._tasks.get(execution_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return self.get_execution(execution_id)

    async def await_admission(self, ticket: str, timeout: float | None = None) -> OperationResult:
        """Wait until a parked request is started or dropped.

        Returns:
            The execute_response-style result of the eventual start attempt.
            success=False if the ticket is unknown or the timeout elapsed.
            A ticket that has already been resolved is unknown, so start
            waiting before the request can be admitted.
        """
        future = self._tickets.get(ticket)
        if future is None:
            return OperationResult.fail(f"Unknown admission ticket: {ticket}")
        try:
            result = await asyncio.wait_for(asyncio.shield(future), timeout=timeout)
        except asyncio.TimeoutError:
            return OperationResult.fail("Timed out waiting for admission", ticket=ticket)
        return result

    async def cancel_execution(self, execution_id: str, drain: bool = True) -> OperationResult:
        """Force an active execution to CANCELLED and free its resources.

        The background task is not interrupted. Steps already in flight run
        to completion, but their outcomes are no longer recorded.

        Args:
            execution_id: The execution to cancel.
            drain: Retry parked admission requests afterwards.

        Returns:
            success=False if the execution is not active.
        """
        execution = self._active.get(execution_id)
        if execution is None:
            return OperationResult.fail(f"Execution not active: {execution_id}")

        now = utcnow()
        execution.status = ExecutionStatus.CANCELLED
        execution.end_time = now
        execution.total_time = (now - execution.start_time).total_seconds() * 1000
        execution.results.success = False
        execution.results.errors.append("Execution cancelled")

        self._pools.release(execution_id)
        self._archive(execution)
        logger.warning("Execution %s cancelled.", execution_id)
        self._emit_execution(EventType.EXECUTION_CANCELLED, execution)

        if drain:
            self._drain_admissions()
        return OperationResult.ok(execution_id=execution_id, status=ExecutionStatus.CANCELLED.value)

    def _try_start(self, signal: Signal, actions: list[ResponseAction]) -> tuple[OperationResult, bool]:
        """Attempt to start an execution without waiting.

        Runs synchronously from the first check to the task spawn, so no
        other execution can take the resources in between.

        Returns:
            (result, retryable). retryable is True when the failure is a
            capacity problem that parking could solve.
        """
        try:
            workflow = self.find_applicable_workflow(signal)
            if workflow is None:
                logger.warning("No applicable workflow for signal %s.", signal.id)
                return OperationResult.fail("No applicable workflow found for signal"), False

            unservable = self._pools.unservable(workflow)
            if unservable:
                logger.warning(
                    "Workflow '%s' can never be served for signal %s: %s",
                    workflow.id,
                    signal.id,
                    ", ".join(unservable),
                )
                return OperationResult.fail(f"Insufficient resources: {', '.join(unservable)}"), False

            limit = self.config.resource_allocation.max_concurrent
            if len(self._active) >= limit:
                logger.warning("Concurrency cap %d reached. Signal %s not started.", limit, signal.id)
                return OperationResult.fail(f"Maximum concurrent executions reached ({limit})"), True

            check = self.check_resource_availability(workflow)
            if not check.available:
                logger.warning(
                    "Insufficient resources for signal %s: %s", signal.id, ", ".join(check.missing)
                )
                return OperationResult.fail(f"Insufficient resources: {', '.join(check.missing)}"), True

            execution_id = self._new_execution_id(signal)
            try:
                allocation = self._pools.allocate(workflow, execution_id)
            except ResourceExhaustedError as exc:
                return OperationResult.fail(str(exc)), True

            execution = ResponseExecutionStatus(
                execution_id=execution_id,
                workflow_id=workflow.id,
                trigger_signal=signal,
                resource_allocations=[allocation],
                requested_actions=actions,
                metadata={"workflow_name": workflow.name, "mode": workflow.execution.mode.value},
            )
            self._active[execution_id] = execution
            task = asyncio.create_task(self._execute_workflow(execution, workflow), name=execution_id)
            self._tasks[execution_id] = task
            task.add_done_callback(lambda _t, eid=execution_id: self._tasks.pop(eid, None))

        except Exception as exc:
            logger.exception("Failed to start response for signal %s.", signal.id)
            return OperationResult.fail(str(exc)), False

        logger.info("Execution %s started for workflow '%s'.", execution_id, workflow.id)
        self._emit_execution(EventType.EXECUTION_STARTED, execution)
        return OperationResult.ok(execution_id=execution_id, status=execution.status.value), False

    async def _execute_workflow(
        self,
        execution: ResponseExecutionStatus,
        workflow: ResponseWorkflow,
    ) -> None:
        """Background task body. Never raises except on task cancellation."""
        if execution.is_terminal:
            return
        execution.status = ExecutionStatus.RUNNING

        error: Exception | None = None
        try:
            await self._executor.run(
                workflow, execution, timeout_ms=self.config.performance.response_timeout
            )
        except Exception as exc:
            error = exc

        if execution.is_terminal:
            # Cancelled while running. Cancellation already finalised the record.
            return

        self._finalize(execution, error)
        await self._escalation.check(execution)
        self._drain_admissions()

    def _finalize(self, execution: ResponseExecutionStatus, error: Exception | None) -> None:
        now = utcnow()
        execution.end_time = now
        execution.total_time = (now - execution.start_time).total_seconds() * 1000

        durations = [
            out["duration_ms"]
            for out in execution.results.output.values()
            if isinstance(out, dict) and "duration_ms" in out
        ]
        metrics = execution.results.metrics
        metrics.avg_step_time = sum(durations) / len(durations) if durations else 0.0
        metrics.resource_utilization = self._pools.average_utilization()

        if error is not None:
            execution.status = ExecutionStatus.FAILED
            execution.results.success = False
            execution.results.errors.append(str(error))
        elif not execution.failed_steps or execution.completed_steps:
            execution.status = ExecutionStatus.COMPLETED
            execution.results.success = True
        else:
            execution.status = ExecutionStatus.FAILED
            execution.results.success = False

        self._pools.release(execution.execution_id)
        self._archive(execution)

        if execution.status == ExecutionStatus.COMPLETED:
            logger.info(
                "Execution %s completed in %.0fms (%d completed, %d failed).",
                execution.execution_id,
                execution.total_time,
                len(execution.completed_steps),
                len(execution.failed_steps),
            )
            self._emit_execution(EventType.EXECUTION_COMPLETED, execution)
        else:
            logger.error(
                "Execution %s failed after %.0fms: %s",
                execution.execution_id,
                execution.total_time,
                "; ".join(execution.results.errors) or "all steps failed",
            )
            self._emit_execution(
                EventType.EXECUTION_FAILED,
                execution,
                error=str(error) if error is not None else "All steps failed",
            )

    def _archive(self, execution: ResponseExecutionStatus) -> None:
        self._active.pop(execution.execution_id, None)
        self._history.append(execution)

    def _drain_admissions(self) -> None:
        """Start parked requests in FIFO order until one still cannot start."""
        while (ticket := self._admission.peek()) is not None:
            if ticket.future.done():
                self._admission.pop()
                continue
            result, retryable = self._try_start(ticket.signal, ticket.actions)
            if not result.success and retryable:
                return
            self._admission.pop()
            ticket.future.set_result(result)
            logger.info("Parked request %s resolved (success=%s).", ticket.ticket, result.success)

    # ── Matching and resources ────────────────────────────────────────────────

    def find_applicable_workflow(self, signal: Signal) -> ResponseWorkflow | None:
        return self._registry.find_applicable(signal)

    def check_resource_availability(self, workflow: ResponseWorkflow) -> AvailabilityCheck:
        return self._pools.check_availability(workflow.required_resource_types())

    # ── Registry management ───────────────────────────────────────────────────

    def add_workflow(self, workflow: ResponseWorkflow) -> OperationResult:
        self._registry.add(workflow)
        return OperationResult.ok(workflow_id=workflow.id)

    def update_workflow(self, workflow_id: str, **fields: Any) -> OperationResult:
        try:
            updated = self._registry.update(workflow_id, **fields)
        except ValueError as exc:
            return OperationResult.fail(f"Invalid workflow update: {exc}")
        if updated is None:
            return OperationResult.fail(f"Workflow not found: {workflow_id}")
        return OperationResult.ok(workflow_id=workflow_id)

    def add_resource_pool(self, pool: ResourcePool) -> OperationResult:
        self._pools.add_pool(pool)
        self._drain_admissions()
        return OperationResult.ok(pool_id=pool.id)

    def update_resource_pool(self, pool_id: str, **fields: Any) -> OperationResult:
        updated = self._pools.update_pool(pool_id, **fields)
        if updated is None:
            return OperationResult.fail(f"Resource pool not found: {pool_id}")
        self._drain_admissions()
        return OperationResult.ok(pool_id=pool_id)

    def add_escalation_rule(self, rule: EscalationRule) -> OperationResult:
        self._escalation.add_rule(rule)
        return OperationResult.ok(rule_id=rule.id)

    # ── Events ────────────────────────────────────────────────────────────────

    def subscribe(self, event_type: EventType, listener: Listener) -> None:
        self._events.subscribe(event_type, listener)

    def unsubscribe(self, event_type: EventType, listener: Listener) -> bool:
        return self._events.unsubscribe(event_type, listener)

    @property
    def events(self) -> EventBus:
        return self._events

    # ── Queries ───────────────────────────────────────────────────────────────

    def get_active_executions(self) -> list[ResponseExecutionStatus]:
        return list(self._active.values())

    def get_execution(self, execution_id: str) -> ResponseExecutionStatus | None:
        if execution_id in self._active:
            return self._active[execution_id]
        return next((e for e in reversed(self._history) if e.execution_id == execution_id), None)

    def get_execution_history(self) -> list[ResponseExecutionStatus]:
        return list(self._history)

    def get_resource_pools(self) -> list[ResourcePool]:
        return self._pools.pools()

    def get_workflows(self) -> list[ResponseWorkflow]:
        return self._registry.get_all()

    def get_workflow(self, workflow_id: str) -> ResponseWorkflow | None:
        return self._registry.get(workflow_id)

    def get_escalation_rules(self) -> list[EscalationRule]:
        return self._escalation.rules()

    def get_performance_metrics(self) -> dict[str, Any]:
        """Aggregate outcome and timing numbers over the execution history."""
        total = len(self._history)
        by_status = {status: 0 for status in ExecutionStatus}
        for execution in self._history:
            by_status[execution.status] += 1
        times = [e.total_time for e in self._history]
        return {
            "total_executions": total,
            "completed": by_status[ExecutionStatus.COMPLETED],
            "failed": by_status[ExecutionStatus.FAILED],
            "cancelled": by_status[ExecutionStatus.CANCELLED],
            "success_rate": by_status[ExecutionStatus.COMPLETED] / total if total else 0.0,
            "average_response_time": sum(times) / total if total else 0.0,
            "active_executions": len(self._active),
            "resource_utilization": self._pools.average_utilization(),
        }

    def get_statistics(self) -> dict[str, Any]:
        metrics = self.get_performance_metrics()
        return {
            "active_executions": len(self._active),
            "total_executions": metrics["total_executions"],
            "success_rate": metrics["success_rate"],
            "resource_utilization": metrics["resource_utilization"],
            "workflows": len(self._registry),
            "resource_pools": len(self._pools),
            "escalation_rules": len(self._escalation),
            "queued_requests": len(self._admission),
        }

    # ── Monitoring ────────────────────────────────────────────────────────────

    async def _monitor_performance(self) -> None:
        interval = self.config.monitoring.interval / 1000
        while True:
            await asyncio.sleep(interval)
            self.check_performance()

    def check_performance(self) -> list[str]:
        """Compare history metrics against the monitoring thresholds.

        Emits performanceAlert for each breached threshold.

        Returns:
            The alert messages raised by this check.
        """
        metrics = self.get_performance_metrics()
        if not metrics["total_executions"]:
            return []

        thresholds = self.config.monitoring.thresholds
        alerts: list[str] = []
        if metrics["average_response_time"] > thresholds.response_time:
            alerts.append(
                f"Average response time {metrics['average_response_time']:.0f}ms "
                f"exceeds {thresholds.response_time}ms"
            )
        if metrics["success_rate"] < thresholds.success_rate:
            alerts.append(
                f"Success rate {metrics['success_rate']:.0%} below {thresholds.success_rate:.0%}"
            )

        for alert in alerts:
            logger.warning("Performance alert on '%s': %s", self.config.id, alert)
            self._events.emit(
                EventType.PERFORMANCE_ALERT,
                _SOURCE,
                EnginePayload(engine_id=self.config.id, detail={"alert": alert, **metrics}),
            )
        return alerts

    # ── Private helpers ───────────────────────────────────────────────────────

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError("Response Orchestration Engine")

    def _new_execution_id(self, signal: Signal) -> str:
        millis = int(utcnow().timestamp() * 1000)
        return f"execution-{signal.id}-{millis}-{next(self._seq)}"

    def _emit_execution(
        self,
        event_type: EventType,
        execution: ResponseExecutionStatus,
        error: str | None = None,
    ) -> None:
        self._events.emit(
            event_type,
            _SOURCE,
            ExecutionPayload(
                execution_id=execution.execution_id,
                workflow_id=execution.workflow_id,
                signal_id=execution.trigger_signal.id,
                status=execution.status,
                error=error,
                total_time=execution.total_time,
            ),
        )


def create_engine(
    config: ResponseOrchestrationConfig,
    action_handler: ActionHandler | None = None,
    event_bus: EventBus | None = None,
) -> ResponseOrchestrationEngine:
    """Build an independent engine. Call initialize() before use."""
    return ResponseOrchestrationEngine(config, action_handler=action_handler, event_bus=event_bus)
