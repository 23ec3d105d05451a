"""WorkflowExecutor tests: modes, failure policy, timeouts and retries.

Every test runs against the SimulatedActionHandler with zero latency, or a
small inline handler that fails or stalls on purpose.
"""

import asyncio

import pytest

from actions.base import ActionOutcome
from actions.simulated import SimulatedActionHandler
from core.errors import ConditionNotMetError, CriticalStepError, WorkflowTimeoutError
from core.escalation import EscalationEngine
from core.events import EventBus
from core.executor import WorkflowExecutor
from schemas.escalation import EscalationLevel, EscalationRule
from schemas.events import EventType
from schemas.execution import ExecutionStatus, ResponseExecutionStatus
from schemas.signal import Signal
from schemas.workflow import (
    EscalationStepConfig,
    ExecutionMode,
    ExecutionSettings,
    NotificationConfig,
    ResponseActionType,
    ResponseWorkflow,
    RetryPolicy,
    StepConfig,
    StepType,
    WorkflowStep,
)


def make_signal(**overrides) -> Signal:
    data = dict(id="sig-1", type="ASSET_CONDITION", severity="HIGH", strength=70, asset_id="bridge-12")
    data.update(overrides)
    return Signal(**data)


def action_step(step_id, action=ResponseActionType.NOTIFY, order=0, **overrides) -> WorkflowStep:
    data = dict(id=step_id, name=step_id, type=StepType.ACTION, config=StepConfig(action=action), order=order)
    data.update(overrides)
    return WorkflowStep(**data)


def delay_step(step_id, delay=0, order=0, **overrides) -> WorkflowStep:
    data = dict(id=step_id, name=step_id, type=StepType.DELAY, config=StepConfig(delay=delay), order=order)
    data.update(overrides)
    return WorkflowStep(**data)


def make_workflow(steps, mode=ExecutionMode.SEQUENTIAL, step_timeout=5000, overall_timeout=10_000,
                  retry=None) -> ResponseWorkflow:
    return ResponseWorkflow(
        id="wf",
        name="Test workflow",
        steps=steps,
        execution=ExecutionSettings(
            mode=mode,
            step_timeout=step_timeout,
            overall_timeout=overall_timeout,
            retry=retry or RetryPolicy(max_retries=2, delay=0),
        ),
    )


def make_execution(signal=None) -> ResponseExecutionStatus:
    return ResponseExecutionStatus(
        execution_id="e1",
        workflow_id="wf",
        trigger_signal=signal or make_signal(),
        status=ExecutionStatus.RUNNING,
    )


def make_executor(handler=None, rules=None, events=None, **kwargs) -> WorkflowExecutor:
    handler = handler or SimulatedActionHandler(latency_scale=0)
    return WorkflowExecutor(handler, EscalationEngine(handler, rules=rules), events, **kwargs)


class FlakyHandler(SimulatedActionHandler):
    """Fails the first `failures` calls of every listed action, then succeeds."""

    def __init__(self, failing: set[ResponseActionType], failures: int = 1_000):
        super().__init__(latency_scale=0)
        self.failing = failing
        self.remaining = {action: failures for action in failing}

    async def execute_action(self, action, context, parameters):
        self.calls.append(("action", action.value, context.execution_id))
        if action in self.failing and self.remaining[action] > 0:
            self.remaining[action] -= 1
            return ActionOutcome(success=False, error=f"{action.value} unavailable")
        return ActionOutcome(success=True, output={"action": action.value})


# ── Sequential ────────────────────────────────────────────────────────────────

class TestSequential:
    async def test_runs_steps_in_order(self):
        handler = SimulatedActionHandler(latency_scale=0)
        workflow = make_workflow([
            action_step("third", ResponseActionType.UPDATE_CONFIG, order=3),
            action_step("first", ResponseActionType.NOTIFY, order=1),
            action_step("second", ResponseActionType.SCHEDULE_INSPECTION, order=2),
        ])
        execution = make_execution()

        await make_executor(handler).run(workflow, execution)

        assert execution.completed_steps == ["first", "second", "third"]
        assert [name for _, name, _ in handler.calls] == ["NOTIFY", "SCHEDULE_INSPECTION", "UPDATE_CONFIG"]

    async def test_non_critical_failure_does_not_abort(self):
        handler = FlakyHandler({ResponseActionType.SCHEDULE_INSPECTION})
        workflow = make_workflow([
            action_step("step1", ResponseActionType.NOTIFY, order=1),
            action_step("step2", ResponseActionType.SCHEDULE_INSPECTION, order=2),
            action_step("step3", ResponseActionType.UPDATE_CONFIG, order=3),
        ])
        execution = make_execution()

        await make_executor(handler).run(workflow, execution)

        assert execution.completed_steps == ["step1", "step3"]
        assert execution.failed_steps == ["step2"]
        assert execution.results.errors == ["Step step2: SCHEDULE_INSPECTION unavailable"]
        assert execution.results.metrics.steps_executed == 2
        assert execution.results.metrics.steps_failed == 1

    async def test_immediate_response_failure_aborts(self):
        handler = FlakyHandler({ResponseActionType.IMMEDIATE_RESPONSE})
        workflow = make_workflow([
            action_step("notify", ResponseActionType.NOTIFY, order=1),
            action_step("respond", ResponseActionType.IMMEDIATE_RESPONSE, order=2),
            action_step("after", ResponseActionType.UPDATE_CONFIG, order=3),
        ])
        execution = make_execution()

        with pytest.raises(CriticalStepError) as exc_info:
            await make_executor(handler).run(workflow, execution)

        assert exc_info.value.step_id == "respond"
        assert execution.completed_steps == ["notify"]
        assert execution.failed_steps == ["respond"]
        assert "after" not in execution.results.output

    async def test_terminal_record_stops_the_run(self):
        execution = make_execution()
        execution.status = ExecutionStatus.CANCELLED
        await make_executor().run(make_workflow([delay_step("wait")]), execution)
        assert execution.completed_steps == []


# ── Parallel ──────────────────────────────────────────────────────────────────

class TestParallel:
    async def test_all_steps_settle_despite_failure(self):
        handler = FlakyHandler({ResponseActionType.IMMEDIATE_RESPONSE})
        workflow = make_workflow(
            [
                action_step("a", ResponseActionType.IMMEDIATE_RESPONSE),
                action_step("b", ResponseActionType.NOTIFY),
                delay_step("c", delay=10),
            ],
            mode=ExecutionMode.PARALLEL,
        )
        execution = make_execution()

        await make_executor(handler).run(workflow, execution)

        assert sorted(execution.completed_steps) == ["b", "c"]
        assert execution.failed_steps == ["a"]

    async def test_steps_overlap_in_time(self):
        workflow = make_workflow(
            [delay_step(f"d{i}", delay=200) for i in range(3)],
            mode=ExecutionMode.PARALLEL,
        )
        execution = make_execution()
        loop = asyncio.get_running_loop()

        start = loop.time()
        await make_executor().run(workflow, execution)

        assert loop.time() - start < 0.5
        assert len(execution.completed_steps) == 3


# ── Conditional ───────────────────────────────────────────────────────────────

class TestConditional:
    async def test_unmet_dependency_skips(self):
        handler = FlakyHandler({ResponseActionType.SCHEDULE_INSPECTION})
        workflow = make_workflow(
            [
                action_step("inspect", ResponseActionType.SCHEDULE_INSPECTION, order=1),
                action_step("notify", ResponseActionType.NOTIFY, order=2, dependencies=["inspect"]),
            ],
            mode=ExecutionMode.CONDITIONAL,
        )
        execution = make_execution()
        events = EventBus()
        skipped = []
        events.subscribe(EventType.STEP_SKIPPED, skipped.append)

        await make_executor(handler, events=events).run(workflow, execution)

        assert execution.failed_steps == ["inspect"]
        assert execution.skipped_steps == ["notify"]
        assert execution.results.output["notify"]["status"] == "skipped"
        assert skipped[0].payload.error == "dependencies not completed: inspect"

    async def test_false_precondition_skips(self):
        workflow = make_workflow(
            [
                action_step(
                    "escalate-crew",
                    ResponseActionType.IMMEDIATE_RESPONSE,
                    order=1,
                    config=StepConfig(
                        action=ResponseActionType.IMMEDIATE_RESPONSE,
                        precondition="signal.strength > 90",
                    ),
                ),
                action_step("notify", ResponseActionType.NOTIFY, order=2),
            ],
            mode=ExecutionMode.CONDITIONAL,
        )
        execution = make_execution(make_signal(strength=70))

        await make_executor().run(workflow, execution)

        assert execution.skipped_steps == ["escalate-crew"]
        assert execution.completed_steps == ["notify"]

    async def test_true_precondition_runs(self):
        workflow = make_workflow(
            [
                action_step(
                    "notify",
                    order=1,
                    config=StepConfig(action=ResponseActionType.NOTIFY, precondition='signal.severity == "HIGH"'),
                ),
            ],
            mode=ExecutionMode.CONDITIONAL,
        )
        execution = make_execution()
        await make_executor().run(workflow, execution)
        assert execution.completed_steps == ["notify"]


# ── Timeouts and retries ──────────────────────────────────────────────────────

class TestTimeouts:
    async def test_step_timeout_is_distinct_failure(self):
        events = EventBus()
        failed = []
        events.subscribe(EventType.STEP_FAILED, failed.append)
        workflow = make_workflow([delay_step("stall", delay=2000)], step_timeout=50)
        execution = make_execution()

        await make_executor(events=events).run(workflow, execution)

        assert execution.failed_steps == ["stall"]
        assert execution.timed_out_steps == ["stall"]
        assert execution.results.output["stall"]["status"] == "timed_out"
        assert failed[0].payload.timed_out is True
        assert "timed out after 50ms" in failed[0].payload.error

    async def test_overall_timeout_raises(self):
        workflow = make_workflow(
            [delay_step("a", delay=400, order=1), delay_step("b", delay=400, order=2)],
            step_timeout=1000,
            overall_timeout=500,
        )
        with pytest.raises(WorkflowTimeoutError) as exc_info:
            await make_executor().run(workflow, make_execution())
        assert exc_info.value.timeout_ms == 500

    async def test_engine_cap_below_workflow_timeout_applies(self):
        workflow = make_workflow([delay_step("a", delay=400)], step_timeout=1000, overall_timeout=5000)
        with pytest.raises(WorkflowTimeoutError) as exc_info:
            await make_executor().run(workflow, make_execution(), timeout_ms=100)
        assert exc_info.value.timeout_ms == 100


class TestRetries:
    async def test_no_retry_by_default(self):
        handler = FlakyHandler({ResponseActionType.NOTIFY}, failures=1)
        execution = make_execution()
        await make_executor(handler).run(make_workflow([action_step("notify")]), execution)
        assert execution.failed_steps == ["notify"]
        assert len(handler.calls) == 1

    async def test_retry_recovers(self):
        handler = FlakyHandler({ResponseActionType.NOTIFY}, failures=1)
        execution = make_execution()

        await make_executor(handler, retry_failed_steps=True).run(
            make_workflow([action_step("notify")]), execution
        )

        assert execution.completed_steps == ["notify"]
        assert execution.results.output["notify"]["attempts"] == 2

    async def test_retries_are_bounded(self):
        handler = FlakyHandler({ResponseActionType.NOTIFY})
        execution = make_execution()

        await make_executor(handler, retry_failed_steps=True).run(
            make_workflow([action_step("notify")], retry=RetryPolicy(max_retries=2, delay=0)), execution
        )

        assert execution.failed_steps == ["notify"]
        assert len(handler.calls) == 3


# ── Step dispatch ─────────────────────────────────────────────────────────────

class TestDispatch:
    async def test_false_condition_fails_step(self):
        step = WorkflowStep(id="check", name="Check", type=StepType.CONDITION,
                            config=StepConfig(condition="signal.strength > 90"))
        with pytest.raises(ConditionNotMetError):
            await make_executor().dispatch_step(step, make_execution())

    async def test_notification_fans_out(self):
        handler = SimulatedActionHandler(latency_scale=0)
        step = WorkflowStep(
            id="notify",
            name="Notify",
            type=StepType.NOTIFICATION,
            config=StepConfig(notification=NotificationConfig(
                recipients=["crew", "supervisor"],
                template="Alert for {assetId}",
                channels=["email", "sms"],
            )),
        )

        output = await make_executor(handler).dispatch_step(step, make_execution())

        assert output == {"sent": 4, "message": "Alert for bridge-12"}
        assert [name for _, name, _ in handler.calls] == [
            "crew:email", "crew:sms", "supervisor:email", "supervisor:sms",
        ]

    async def test_escalation_step_runs_level(self):
        handler = SimulatedActionHandler(latency_scale=0)
        rule = EscalationRule(id="r", levels=[EscalationLevel(name="HIGH", actions=["page"])])
        step = WorkflowStep(id="esc", name="Escalate", type=StepType.ESCALATION,
                            config=StepConfig(escalation=EscalationStepConfig(level="HIGH")))

        output = await make_executor(handler, rules=[rule]).dispatch_step(step, make_execution())

        assert output == {"level": "HIGH"}
        assert handler.calls[0][:2] == ("escalation", "page")

    async def test_action_without_action_fails(self):
        step = WorkflowStep(id="a", name="A", type=StepType.ACTION)
        execution = make_execution()
        await make_executor().run(make_workflow([step]), execution)
        assert execution.failed_steps == ["a"]
        assert "missing action" in execution.results.errors[0]
