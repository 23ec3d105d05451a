"""Webhook action handler.

Forwards every capability call to the embedding application over HTTP.
The application exposes three endpoints and does the real work behind
them (ticketing, paging, configuration management):

    POST {base_url}/actions/{action}     body: context + parameters
    POST {base_url}/notifications        body: context + recipient/channel/message
    POST {base_url}/escalations          body: context + action

A 2xx response is a success; its JSON body (if any) becomes the step
output. Any other status, or a transport error, is a failed call.

Optional environment variables (read by main.py):
    ACTION_WEBHOOK_URL:   Base URL. When unset the simulated handler is used.
    ACTION_WEBHOOK_TOKEN: Sent as a Bearer token when set.
"""

import logging
import time
from typing import Any

import httpx

from actions.base import ActionContext, ActionHandler, ActionOutcome
from schemas.workflow import ResponseActionType

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15


class WebhookActionHandler(ActionHandler):
    """ActionHandler backed by the embedding application's HTTP endpoints.

    Attributes:
        base_url: Root URL of the capability endpoints.
        timeout_seconds: Per-request timeout.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialise the handler.

        Args:
            base_url: Root URL, e.g. "https://ops.internal/api/capabilities".
            token: Optional bearer token.
            timeout_seconds: Per-request timeout.
            transport: Optional httpx transport. Tests pass an
                httpx.MockTransport here.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._transport = transport

    async def execute_action(
        self,
        action: ResponseActionType,
        context: ActionContext,
        parameters: dict[str, Any],
    ) -> ActionOutcome:
        return await self._post(
            f"/actions/{action.value}",
            {**_context_body(context), "parameters": parameters},
        )

    async def send_notification(
        self,
        recipient: str,
        channel: str,
        message: str,
        context: ActionContext,
    ) -> ActionOutcome:
        return await self._post(
            "/notifications",
            {
                **_context_body(context),
                "recipient": recipient,
                "channel": channel,
                "message": message,
            },
        )

    async def run_escalation_action(self, action: str, context: ActionContext) -> ActionOutcome:
        return await self._post("/escalations", {**_context_body(context), "action": action})

    async def _post(self, path: str, body: dict) -> ActionOutcome:
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                resp = await client.post(path, json=body)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            elapsed = (time.perf_counter() - start) * 1000
            logger.error("Capability call %s failed after %.0fms: %s", path, elapsed, exc)
            return ActionOutcome(success=False, duration_ms=elapsed, error=str(exc))

        elapsed = (time.perf_counter() - start) * 1000
        output = resp.json() if resp.content else {}
        if not isinstance(output, dict):
            output = {"response": output}
        return ActionOutcome(success=True, duration_ms=elapsed, output=output)


# ── Private helpers ────────────────────────────────────────────────────────────

def _context_body(context: ActionContext) -> dict:
    return {
        "execution_id": context.execution_id,
        "workflow_id": context.workflow_id,
        "step_id": context.step_id,
        "signal": context.signal.model_dump(mode="json"),
    }
