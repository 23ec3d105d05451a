"""Rich live display: one panel per execution, updating in real time.

The display layer is fully decoupled from the engines. It reads an
asyncio.Queue of EngineEvents (attach the queue to the engine's EventBus)
and renders them into a live terminal layout. The engines run whether or
not a display is attached.

Usage:
    event_queue = asyncio.Queue()
    engine.events.attach_queue(event_queue)
    display = LiveDisplay()

    with display.make_live() as live:
        consumer = asyncio.create_task(display.consume(event_queue, live))
        ...                                # run signals through the engine
        await event_queue.put(None)        # sentinel: tells consume() to stop
        await consumer
"""

import asyncio
from dataclasses import dataclass, field

from rich.columns import Columns
from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from schemas.events import (
    EngineEvent,
    EscalationPayload,
    EventType,
    ExecutionPayload,
    StepPayload,
)

MAX_LINES = 5


# ── Per-execution state ───────────────────────────────────────────────────────

@dataclass
class _ExecutionState:
    """Mutable state for one execution's panel.

    Updated by _apply() each time an event arrives. The display reads this
    to re-render the panel on every refresh tick.
    """
    execution_id: str
    workflow_id: str
    status: str = "running"    # queued | running | completed | failed | cancelled
    elapsed_ms: float = 0.0
    messages: list[str] = field(default_factory=list)


# ── Display ───────────────────────────────────────────────────────────────────

class LiveDisplay:
    """Manages the Rich live layout and consumes the event queue.

    Attributes:
        _states: Execution id → _ExecutionState, created on executionStarted
            or executionQueued.
        _order: Execution ids in arrival order, which preserves panel layout.
    """

    def __init__(self) -> None:
        self._states: dict[str, _ExecutionState] = {}
        self._order: list[str] = []

    def make_live(self) -> Live:
        """Return a Rich Live context manager ready to use with `with`."""
        return Live(self._render(), refresh_per_second=12, transient=False)

    async def consume(self, queue: asyncio.Queue, live: Live) -> None:
        """Read events from the queue and update the display until sentinel.

        Args:
            queue: The asyncio.Queue attached to the engine's EventBus.
            live: The active Rich Live context to update on each event.
        """
        while True:
            event = await queue.get()
            if event is None:
                break
            self._apply(event)
            live.update(self._render())

    # ── Private ───────────────────────────────────────────────────────────────

    def _apply(self, event: EngineEvent) -> None:
        """Update execution state from an incoming event."""
        payload = event.payload

        if isinstance(payload, ExecutionPayload):
            state = self._states.get(payload.execution_id)
            if state is None:
                state = _ExecutionState(payload.execution_id, payload.workflow_id)
                self._states[payload.execution_id] = state
                self._order.append(payload.execution_id)

            if event.event_type == EventType.EXECUTION_QUEUED:
                state.status = "queued"
                state.messages.append(f"⧗ parked: {payload.error}")
            elif event.event_type == EventType.EXECUTION_STARTED:
                state.status = "running"
                state.messages.append(f"signal {payload.signal_id}")
            elif event.event_type == EventType.EXECUTION_COMPLETED:
                state.status = "completed"
                state.elapsed_ms = payload.total_time
            elif event.event_type == EventType.EXECUTION_FAILED:
                state.status = "failed"
                state.elapsed_ms = payload.total_time
                state.messages.append(f"✗ {payload.error}")
            elif event.event_type == EventType.EXECUTION_CANCELLED:
                state.status = "cancelled"
                state.elapsed_ms = payload.total_time

        elif isinstance(payload, StepPayload):
            state = self._states.get(payload.execution_id)
            if state is None:
                return
            state.elapsed_ms += payload.duration_ms
            if event.event_type == EventType.STEP_COMPLETED:
                state.messages.append(f"✓ {payload.step_name}")
            elif event.event_type == EventType.STEP_FAILED:
                mark = "⏱" if payload.timed_out else "✗"
                state.messages.append(f"{mark} {payload.step_name}: {payload.error}")
            elif event.event_type == EventType.STEP_SKIPPED:
                state.messages.append(f"↷ {payload.step_name}")

        elif isinstance(payload, EscalationPayload):
            state = self._states.get(payload.execution_id)
            if state is None:
                return
            state.messages.append(f"⚠ escalated via {payload.rule_id}")

        else:
            return

        # Keep only the last few lines so panels don't grow unbounded
        state.messages = state.messages[-MAX_LINES:]

    def _render_panel(self, state: _ExecutionState) -> Panel:
        """Build a Rich Panel for one execution from its current state."""
        icons = {
            "queued":    "[dim]○[/dim]",
            "running":   "[bold yellow]●[/bold yellow]",
            "completed": "[bold green]✓[/bold green]",
            "failed":    "[bold red]✗[/bold red]",
            "cancelled": "[bold magenta]■[/bold magenta]",
        }
        border_styles = {
            "queued":    "dim",
            "running":   "yellow",
            "completed": "green",
            "failed":    "red",
            "cancelled": "magenta",
        }

        icon = icons.get(state.status, "○")
        elapsed = f"[dim][{state.elapsed_ms / 1000:.2f}s][/dim]"
        header = Text.from_markup(f"{elapsed}  {icon}  [dim]{state.workflow_id}[/dim]")

        lines: list[Text] = [header]
        for msg in state.messages:
            lines.append(Text(f"  {msg}", style="dim"))

        return Panel(
            Group(*lines),
            title=f"[bold]{state.execution_id}[/bold]",
            border_style=border_styles.get(state.status, "dim"),
            width=52,
        )

    def _render(self) -> Group:
        """Build the full layout: panels arranged in rows of two."""
        panels = [self._render_panel(self._states[eid]) for eid in self._order]
        rows = []
        for i in range(0, len(panels), 2):
            rows.append(Columns(panels[i : i + 2], equal=True))
        return Group(*rows)
