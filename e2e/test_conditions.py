"""Condition expression tests. No eval(), only whitelisted syntax."""

import pytest

from core.conditions import ConditionSyntaxError, build_scope, evaluate_condition, safe_eval
from schemas.execution import ResponseExecutionStatus
from schemas.signal import Signal


def make_signal(**overrides) -> Signal:
    data = dict(id="sig-1", type="EMERGENCY", severity="CRITICAL", strength=85, asset_id="pump-7")
    data.update(overrides)
    return Signal(**data)


@pytest.fixture
def scope():
    signal = make_signal()
    record = ResponseExecutionStatus(execution_id="e1", workflow_id="wf", trigger_signal=signal)
    record.completed_steps = ["notify"]
    record.failed_steps = ["respond"]
    return build_scope(signal, record)


class TestEvaluateCondition:
    def test_attribute_and_comparison(self, scope):
        assert evaluate_condition('signal.severity == "CRITICAL" and signal.strength > 80', scope)

    def test_subscript_access(self, scope):
        assert evaluate_condition("signal['asset_id'] == 'pump-7'", scope)

    def test_membership_in_completed_steps(self, scope):
        assert evaluate_condition('"notify" in completed_steps', scope)
        assert not evaluate_condition('"respond" in completed_steps', scope)

    def test_counts(self, scope):
        assert evaluate_condition("completed == 1 and failed == 1", scope)

    def test_chained_comparison(self, scope):
        assert evaluate_condition("50 < signal.strength <= 85", scope)

    def test_arithmetic_and_not(self, scope):
        assert evaluate_condition("not signal.strength * 2 < 100", scope)

    def test_empty_expression_is_false(self, scope):
        assert evaluate_condition("", scope) is False
        assert evaluate_condition(None, scope) is False

    def test_unknown_name_is_false(self, scope):
        assert evaluate_condition("weather == 'rain'", scope) is False

    def test_function_calls_are_rejected(self, scope):
        with pytest.raises(ConditionSyntaxError):
            safe_eval("__import__('os').getcwd()", scope)
        assert evaluate_condition("len(completed_steps) > 0", scope) is False

    def test_syntax_error_raises_condition_error(self, scope):
        with pytest.raises(ConditionSyntaxError):
            safe_eval("signal.strength >", scope)

    def test_scope_without_execution(self):
        scope = build_scope(make_signal())
        assert scope["completed_steps"] == []
        assert scope["elapsed_ms"] == 0.0
