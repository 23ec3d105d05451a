"""Escalation rule engine.

EscalationEngine holds the escalation rules and runs them in two places:

1. After an execution is finalised, check() compares the execution's total
   time against every applicable rule's delay and runs every level of each
   rule that is exceeded.
2. ESCALATION steps call execute_level() to run one named level inline.

Each rule fires at most once per execution. The rule id is written into
the execution's escalated_rules before its levels run, so a second check()
for the same execution is a no-op for that rule.
"""

import logging

from actions.base import ActionContext, ActionHandler
from core.events import EventBus
from schemas.escalation import EscalationLevel, EscalationRule
from schemas.events import EscalationPayload, EventType
from schemas.execution import ResponseExecutionStatus

logger = logging.getLogger(__name__)

_SOURCE = "escalation"


class EscalationEngine:
    """Stores escalation rules and executes their levels.

    Attributes:
        _rules: Rule id to rule, in insertion order.
        _handler: Capability provider for escalation actions and channel
            notifications.
        _events: Bus escalationExecuted is emitted on.
    """

    def __init__(
        self,
        handler: ActionHandler,
        events: EventBus | None = None,
        rules: list[EscalationRule] | None = None,
    ) -> None:
        self._handler = handler
        self._events = events or EventBus()
        self._rules: dict[str, EscalationRule] = {}
        for rule in rules or []:
            self.add_rule(rule)

    def add_rule(self, rule: EscalationRule) -> None:
        self._rules[rule.id] = rule

    def get(self, rule_id: str) -> EscalationRule | None:
        return self._rules.get(rule_id)

    def rules(self) -> list[EscalationRule]:
        return list(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    async def check(self, execution: ResponseExecutionStatus) -> list[str]:
        """Run every applicable rule whose delay the execution exceeded.

        A rule applies when it is active and its triggers contain the
        triggering signal's type and severity. It fires when
        execution.total_time is strictly greater than its delay and it has
        not already fired for this execution.

        Args:
            execution: A finalised execution record.

        Returns:
            Ids of the rules that fired during this call.
        """
        fired: list[str] = []
        signal = execution.trigger_signal

        for rule in self._rules.values():
            if not rule.applies_to(signal):
                continue
            if rule.id in execution.escalated_rules:
                logger.debug(
                    "Rule %s already fired for %s. Skipping.", rule.id, execution.execution_id
                )
                continue
            if execution.total_time <= rule.triggers.time_conditions.delay:
                continue

            execution.escalated_rules.append(rule.id)
            logger.warning(
                "Escalating %s via rule %s (%.0fms > %dms).",
                execution.execution_id,
                rule.id,
                execution.total_time,
                rule.triggers.time_conditions.delay,
            )
            context = _context_for(execution)
            for level in rule.levels:
                errors = await self._run_level(level, context)
                for error in errors:
                    logger.error("Escalation level %s of rule %s: %s", level.name, rule.id, error)

            fired.append(rule.id)
            self._events.emit(
                EventType.ESCALATION_EXECUTED,
                _SOURCE,
                EscalationPayload(
                    execution_id=execution.execution_id,
                    rule_id=rule.id,
                    levels=[lvl.name for lvl in rule.levels],
                ),
            )

        return fired

    def find_level(self, level_name: str) -> tuple[EscalationRule, EscalationLevel] | None:
        """Return the first active rule owning a level with this name."""
        for rule in self._rules.values():
            if not rule.active:
                continue
            level = rule.level(level_name)
            if level is not None:
                return rule, level
        return None

    async def execute_level(self, level_name: str, context: ActionContext) -> list[str]:
        """Run one named level inline, for an ESCALATION step.

        When no active rule owns the level there is nothing to run; that is
        logged and treated as done.

        Returns:
            Error strings for every capability call that failed. Empty when
            the level ran cleanly or no level matched.
        """
        found = self.find_level(level_name)
        if found is None:
            logger.warning("No active escalation rule defines level '%s'.", level_name)
            return []
        rule, level = found
        logger.info(
            "Running escalation level '%s' of rule %s for %s.",
            level_name,
            rule.id,
            context.execution_id,
        )
        return await self._run_level(level, context)

    async def _run_level(self, level: EscalationLevel, context: ActionContext) -> list[str]:
        """Invoke every action, then notify every channel. Returns failures."""
        errors: list[str] = []
        message = (
            f"Escalation {level.name}: {context.signal.type.value} "
            f"({context.signal.severity.value}) for asset {context.signal.asset_id or 'Unknown'}"
        )

        for action in level.actions:
            try:
                outcome = await self._handler.run_escalation_action(action, context)
            except Exception as exc:
                errors.append(f"action {action}: {exc}")
                continue
            if not outcome.success:
                errors.append(f"action {action}: {outcome.error}")

        for channel in level.channels:
            try:
                outcome = await self._handler.send_notification(
                    f"escalation-{level.name}", channel, message, context
                )
            except Exception as exc:
                errors.append(f"channel {channel}: {exc}")
                continue
            if not outcome.success:
                errors.append(f"channel {channel}: {outcome.error}")

        return errors


def _context_for(execution: ResponseExecutionStatus) -> ActionContext:
    return ActionContext(
        execution_id=execution.execution_id,
        workflow_id=execution.workflow_id,
        signal=execution.trigger_signal,
    )
