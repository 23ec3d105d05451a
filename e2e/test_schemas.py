"""Schema validation tests.

Only the rules the models enforce themselves are covered here: enum
coercion, bounds, frozen signals and local step dependencies. Semantic
config checks live with the engines.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from schemas.config import PerformanceConfig, ResourceAllocationConfig
from schemas.events import EVENT_PAYLOADS, EventType
from schemas.execution import ExecutionStatus, ResponseExecutionStatus
from schemas.result import OperationResult
from schemas.signal import Signal, SignalSeverity, SignalType
from schemas.workflow import (
    ResponseWorkflow,
    StepConfig,
    StepType,
    WorkflowStep,
    WorkflowTriggers,
)


def make_signal(**overrides) -> Signal:
    data = dict(id="sig-1", type=SignalType.EMERGENCY, severity=SignalSeverity.HIGH, strength=80)
    data.update(overrides)
    return Signal(**data)


# ── Signal ────────────────────────────────────────────────────────────────────

class TestSignal:
    def test_strength_above_100_rejected(self):
        with pytest.raises(ValidationError):
            make_signal(strength=101)

    def test_negative_strength_rejected(self):
        with pytest.raises(ValidationError):
            make_signal(strength=-1)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            make_signal(type="WEATHER")

    def test_signal_is_frozen(self):
        signal = make_signal()
        with pytest.raises(ValidationError):
            signal.strength = 10

    def test_naive_timestamp_read_as_utc(self):
        signal = make_signal(timestamp=datetime(2026, 3, 1, 7, 30))
        assert signal.timestamp.tzinfo is not None
        assert signal.timestamp.utcoffset().total_seconds() == 0

    def test_aware_timestamp_kept(self):
        ts = datetime(2026, 3, 1, 7, 30, tzinfo=timezone.utc)
        assert make_signal(timestamp=ts).timestamp == ts

    def test_enum_serializes_as_plain_string(self):
        assert make_signal().model_dump(mode="json")["type"] == "EMERGENCY"


# ── Workflow ──────────────────────────────────────────────────────────────────

class TestWorkflow:
    def _step(self, step_id, deps=None, resources=None):
        return WorkflowStep(
            id=step_id,
            name=step_id,
            type=StepType.DELAY,
            config=StepConfig(delay=0),
            dependencies=deps or [],
            required_resources=resources or [],
        )

    def test_dangling_dependency_rejected(self):
        with pytest.raises(ValidationError, match="unknown steps"):
            ResponseWorkflow(id="wf", name="wf", steps=[self._step("a", deps=["ghost"])])

    def test_local_dependency_accepted(self):
        wf = ResponseWorkflow(id="wf", name="wf", steps=[self._step("a"), self._step("b", deps=["a"])])
        assert wf.steps[1].dependencies == ["a"]

    def test_required_resource_types_is_union_in_first_seen_order(self):
        wf = ResponseWorkflow(
            id="wf",
            name="wf",
            steps=[
                self._step("a", resources=["inspector", "notification-service"]),
                self._step("b", resources=["inspector", "analyst"]),
            ],
        )
        assert wf.required_resource_types() == ["inspector", "notification-service", "analyst"]

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            StepConfig(delay=-5)


class TestTriggers:
    def test_matches_type_severity_and_any_asset(self):
        triggers = WorkflowTriggers(signal_types=["EMERGENCY"], severity_levels=["HIGH"])
        assert triggers.matches(make_signal(asset_id="anything"))

    def test_wrong_severity_does_not_match(self):
        triggers = WorkflowTriggers(signal_types=["EMERGENCY"], severity_levels=["CRITICAL"])
        assert not triggers.matches(make_signal())

    def test_asset_filter(self):
        triggers = WorkflowTriggers(
            signal_types=["EMERGENCY"], severity_levels=["HIGH"], asset_categories=["pump-7"]
        )
        assert triggers.matches(make_signal(asset_id="pump-7"))
        assert not triggers.matches(make_signal(asset_id="pump-8"))
        assert not triggers.matches(make_signal(asset_id=None))


# ── Execution record and results ──────────────────────────────────────────────

class TestExecutionRecord:
    def test_defaults(self):
        record = ResponseExecutionStatus(execution_id="e1", workflow_id="wf", trigger_signal=make_signal())
        assert record.status == ExecutionStatus.PENDING
        assert not record.is_terminal
        assert not record.escalated
        assert record.results.success is False

    def test_terminal_statuses(self):
        record = ResponseExecutionStatus(execution_id="e1", workflow_id="wf", trigger_signal=make_signal())
        for status in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED):
            record.status = status
            assert record.is_terminal


class TestOperationResult:
    def test_ok_carries_data(self):
        result = OperationResult.ok(execution_id="e1")
        assert result.success and result.data == {"execution_id": "e1"} and result.error is None

    def test_fail_without_data(self):
        result = OperationResult.fail("nope")
        assert not result.success and result.error == "nope" and result.data is None


def test_every_event_type_has_a_payload_model():
    assert set(EVENT_PAYLOADS) == set(EventType)


# ── Engine config ─────────────────────────────────────────────────────────────

class TestOrchestrationSettings:
    def test_allocation_settings(self):
        assert set(ResourceAllocationConfig.model_fields) == {"max_concurrent", "resource_pools", "admission"}

    def test_performance_settings(self):
        settings = PerformanceConfig()
        assert set(PerformanceConfig.model_fields) == {"response_timeout", "retry_failed_steps"}
        assert settings.response_timeout == 300_000
        assert settings.retry_failed_steps is False
