"""Simulated action handler.

Stands in for the real capability providers in demos and local runs. Each
action type sleeps for its own expected latency, so a workflow's timing in
the live display looks like it would against real systems, and then
reports success. latency_scale shrinks or stretches every latency at once
(0 makes every call instantaneous).
"""

import asyncio
import logging
import time
from typing import Any

from actions.base import ActionContext, ActionHandler, ActionOutcome
from schemas.workflow import ResponseActionType

logger = logging.getLogger(__name__)

# Expected latency of each action, in milliseconds.
ACTION_LATENCY_MS: dict[ResponseActionType, int] = {
    ResponseActionType.IMMEDIATE_RESPONSE: 100,
    ResponseActionType.SCHEDULE_INSPECTION: 200,
    ResponseActionType.SCHEDULE_MAINTENANCE: 300,
    ResponseActionType.NOTIFY: 150,
    ResponseActionType.UPDATE_CONFIG: 250,
    ResponseActionType.ENVIRONMENTAL_RESPONSE: 400,
    ResponseActionType.INVESTIGATE_PATTERN: 500,
}

NOTIFICATION_LATENCY_MS = 50
ESCALATION_LATENCY_MS = 100


class SimulatedActionHandler(ActionHandler):
    """ActionHandler that sleeps instead of calling out.

    Attributes:
        latency_scale: Multiplier applied to every latency.
        fail_actions: Action types that report failure instead of success.
            Lets demos show partial-success and critical-abort behaviour.
        calls: Every call made, as (kind, name, execution_id) tuples, in
            call order.
    """

    def __init__(
        self,
        latency_scale: float = 1.0,
        fail_actions: set[ResponseActionType] | None = None,
    ) -> None:
        self.latency_scale = latency_scale
        self.fail_actions = set(fail_actions or ())
        self.calls: list[tuple[str, str, str]] = []

    async def execute_action(
        self,
        action: ResponseActionType,
        context: ActionContext,
        parameters: dict[str, Any],
    ) -> ActionOutcome:
        self.calls.append(("action", action.value, context.execution_id))
        elapsed = await self._sleep(ACTION_LATENCY_MS.get(action, 100))

        if action in self.fail_actions:
            logger.info("Simulated %s failed for %s.", action.value, context.execution_id)
            return ActionOutcome(
                success=False,
                duration_ms=elapsed,
                error=f"{action.value} rejected by simulated provider",
            )

        logger.debug("Simulated %s for %s (%.0fms).", action.value, context.execution_id, elapsed)
        return ActionOutcome(
            success=True,
            duration_ms=elapsed,
            output={
                "action": action.value,
                "asset_id": context.signal.asset_id,
                "parameters": parameters,
            },
        )

    async def send_notification(
        self,
        recipient: str,
        channel: str,
        message: str,
        context: ActionContext,
    ) -> ActionOutcome:
        self.calls.append(("notification", f"{recipient}:{channel}", context.execution_id))
        elapsed = await self._sleep(NOTIFICATION_LATENCY_MS)
        return ActionOutcome(
            success=True,
            duration_ms=elapsed,
            output={"recipient": recipient, "channel": channel, "message": message},
        )

    async def run_escalation_action(self, action: str, context: ActionContext) -> ActionOutcome:
        self.calls.append(("escalation", action, context.execution_id))
        elapsed = await self._sleep(ESCALATION_LATENCY_MS)
        return ActionOutcome(success=True, duration_ms=elapsed, output={"action": action})

    async def _sleep(self, latency_ms: int) -> float:
        start = time.perf_counter()
        await asyncio.sleep(latency_ms * self.latency_scale / 1000)
        return (time.perf_counter() - start) * 1000
