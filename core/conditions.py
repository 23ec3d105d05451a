"""Condition expression evaluation.

CONDITION steps and CONDITIONAL-mode preconditions carry small boolean
expressions such as:

    signal.severity == "CRITICAL" and signal.strength > 80
    "condition-assessment" in completed_steps
    failed == 0

Expressions are parsed with the ast module and evaluated by walking a
whitelist of node types. Nothing is ever passed to eval(), and names only
resolve against the scope built for the execution.

Scope names:
    signal           the triggering signal as a dict (type, severity,
                     strength, asset_id, id, source)
    completed_steps  ids of steps completed so far
    failed_steps     ids of steps failed so far
    completed        number of completed steps
    failed           number of failed steps
    elapsed_ms       milliseconds since the execution started
    true / false     boolean literals
"""

import ast
import logging
import operator
from typing import Any

from schemas.execution import ResponseExecutionStatus
from schemas.signal import Signal, utcnow

logger = logging.getLogger(__name__)


class ConditionSyntaxError(ValueError):
    """The expression uses syntax outside the supported subset."""


_COMPARE_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}


def build_scope(signal: Signal, execution: ResponseExecutionStatus | None = None) -> dict[str, Any]:
    """Build the name scope for one evaluation.

    Args:
        signal: The triggering signal.
        execution: The execution record, if the expression runs inside an
            orchestrated execution. Automated responses pass None and get
            empty step lists.
    """
    completed = list(execution.completed_steps) if execution else []
    failed = list(execution.failed_steps) if execution else []
    elapsed = 0.0
    if execution is not None:
        elapsed = (utcnow() - execution.start_time).total_seconds() * 1000
    return {
        "signal": signal.model_dump(mode="json"),
        "completed_steps": completed,
        "failed_steps": failed,
        "completed": len(completed),
        "failed": len(failed),
        "elapsed_ms": elapsed,
        "true": True,
        "false": False,
    }


def safe_eval(expr: str, scope: dict[str, Any]) -> Any:
    """Evaluate an expression against a scope.

    Raises:
        ConditionSyntaxError: If the expression cannot be parsed or uses an
            unsupported construct.
        KeyError: If a name is not in scope.
    """
    try:
        tree = ast.parse(expr.strip(), mode="eval")
    except SyntaxError as exc:
        raise ConditionSyntaxError(f"Invalid expression {expr!r}: {exc.msg}") from exc
    return _eval(tree.body, scope)


def evaluate_condition(expr: str | None, scope: dict[str, Any]) -> bool:
    """Evaluate a condition to a bool. Empty or broken expressions are False."""
    if not expr:
        return False
    try:
        return bool(safe_eval(expr, scope))
    except Exception as exc:
        logger.warning("Condition %r could not be evaluated: %s", expr, exc)
        return False


# ── Private helpers ────────────────────────────────────────────────────────────

def _eval(node: ast.AST, scope: dict[str, Any]) -> Any:
    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, ast.Name):
        if node.id not in scope:
            raise KeyError(f"Unknown name '{node.id}'")
        return scope[node.id]

    if isinstance(node, ast.Attribute):
        return _lookup(_eval(node.value, scope), node.attr)

    if isinstance(node, ast.Subscript):
        return _lookup(_eval(node.value, scope), _eval(node.slice, scope))

    if isinstance(node, (ast.List, ast.Tuple, ast.Set)):
        return [_eval(elt, scope) for elt in node.elts]

    if isinstance(node, ast.BoolOp):
        if isinstance(node.op, ast.And):
            return all(_eval(v, scope) for v in node.values)
        return any(_eval(v, scope) for v in node.values)

    if isinstance(node, ast.UnaryOp):
        operand = _eval(node.operand, scope)
        if isinstance(node.op, ast.Not):
            return not operand
        if isinstance(node.op, ast.USub):
            return -operand
        if isinstance(node.op, ast.UAdd):
            return +operand

    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        return _BIN_OPS[type(node.op)](_eval(node.left, scope), _eval(node.right, scope))

    if isinstance(node, ast.Compare):
        left = _eval(node.left, scope)
        for op, comparator in zip(node.ops, node.comparators):
            compare = _COMPARE_OPS.get(type(op))
            if compare is None:
                raise ConditionSyntaxError(f"Unsupported comparison: {type(op).__name__}")
            right = _eval(comparator, scope)
            if not compare(left, right):
                return False
            left = right
        return True

    raise ConditionSyntaxError(f"Unsupported expression element: {type(node).__name__}")


def _lookup(container: Any, key: Any) -> Any:
    if isinstance(container, dict):
        return container.get(key)
    if isinstance(container, (list, tuple)) and isinstance(key, int):
        return container[key]
    raise ConditionSyntaxError(f"Cannot look up {key!r} on {type(container).__name__}")
