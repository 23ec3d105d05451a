"""Response orchestration: CLI demo runner.

Loads the fixture configuration, fires a burst of signals at the engine
and renders one live panel per execution in the terminal using Rich.
Prints an execution table and the engine statistics when every execution
has finished.

The burst is sized to show the interesting paths: two asset-condition
signals compete for the single inspector, so the second is parked in the
admission queue and starts when the first releases it; the environmental
signal has no configured workflow, so one is generated from a template.

Usage:
    uv run python cli.py
"""

import asyncio
import pathlib

from rich.console import Console
from rich.table import Table

from actions.simulated import SimulatedActionHandler
from core.events import EventBus
from core.orchestrator import create_engine
from display.live import LiveDisplay
from generation.generator import AutomatedWorkflowGenerator
from intelligence.engine import SignalIntelligenceEngine
from schemas.config import ResponseOrchestrationConfig, SignalIntelligenceConfig
from schemas.execution import ExecutionStatus
from schemas.signal import Signal, SignalSeverity, SignalType
from utils.parse import load_config

console = Console()

_FIXTURE = pathlib.Path(__file__).parent / "fixtures" / "orchestration.json"

# Slows the simulated actions down enough to watch the panels update.
_LATENCY_SCALE = 4.0


# ── Demo signals ──────────────────────────────────────────────────────────────

def _demo_signals() -> list[Signal]:
    return [
        Signal(id="sig-001", type=SignalType.EMERGENCY, severity=SignalSeverity.CRITICAL,
               strength=95, asset_id="pump-7", description="Pressure relief valve stuck open"),
        Signal(id="sig-002", type=SignalType.ASSET_CONDITION, severity=SignalSeverity.HIGH,
               strength=72, asset_id="bridge-12", description="Bearing vibration above limit"),
        Signal(id="sig-003", type=SignalType.ASSET_CONDITION, severity=SignalSeverity.MEDIUM,
               strength=40, asset_id="bridge-14", description="Surface corrosion reported"),
        Signal(id="sig-004", type=SignalType.MAINTENANCE, severity=SignalSeverity.LOW,
               strength=20, asset_id="hvac-3", description="Filter due for replacement"),
        Signal(id="sig-005", type=SignalType.ENVIRONMENTAL, severity=SignalSeverity.HIGH,
               strength=81, asset_id="site-north", description="Particulate level rising"),
    ]


# ── Results table ─────────────────────────────────────────────────────────────

def _print_results(engine) -> None:
    """Render one row per finished execution and the engine totals."""
    history = engine.get_execution_history()
    if not history:
        console.print("\n[yellow]No executions ran.[/yellow]")
        return

    table = Table(title="Executions", show_lines=True, border_style="bright_black")
    table.add_column("Signal",    style="bold",  min_width=8)
    table.add_column("Workflow",  min_width=26)
    table.add_column("Status",    width=11,      justify="center")
    table.add_column("Steps",     width=9,       justify="center")
    table.add_column("Time",      width=9,       justify="right")
    table.add_column("Escalated", style="dim",   min_width=10)

    colors = {
        ExecutionStatus.COMPLETED: "green",
        ExecutionStatus.FAILED: "red",
        ExecutionStatus.CANCELLED: "magenta",
    }
    for execution in history:
        color = colors.get(execution.status, "dim")
        done = len(execution.completed_steps)
        total = done + len(execution.failed_steps) + len(execution.skipped_steps)
        table.add_row(
            execution.trigger_signal.id,
            execution.metadata.get("workflow_name", execution.workflow_id),
            f"[{color}]{execution.status.value}[/{color}]",
            f"{done}/{total}",
            f"{execution.total_time / 1000:.2f}s",
            ", ".join(execution.escalated_rules) or "-",
        )

    console.print()
    console.print(table)

    metrics = engine.get_performance_metrics()
    console.print(
        f"\n  success rate  [cyan]{metrics['success_rate']:.0%}[/cyan]"
        f"   avg response  [cyan]{metrics['average_response_time'] / 1000:.2f}s[/cyan]\n"
    )


# ── Entry point ───────────────────────────────────────────────────────────────

async def _respond(engine, generator, intelligence, signal: Signal) -> str | None:
    """Analyse, generate if needed and start one signal. Returns the execution id."""
    analysis = await intelligence.analyze_signals([signal])
    if engine.find_applicable_workflow(signal) is None:
        workflow = await generator.generate_workflow(signal)
        if workflow is not None:
            engine.add_workflow(workflow)

    result = await engine.execute_response(signal, actions=analysis.recommendations.actions)
    if not result.success:
        console.print(f"[red]✗ {signal.id}: {result.error}[/red]")
        return None
    if result.data.get("queued"):
        result = await engine.await_admission(result.data["ticket"])
        if not result.success:
            console.print(f"[red]✗ {signal.id}: {result.error}[/red]")
            return None
    return result.data["execution_id"]


async def _run() -> None:
    config = load_config(_FIXTURE, ResponseOrchestrationConfig)
    handler = SimulatedActionHandler(latency_scale=_LATENCY_SCALE)
    event_queue: asyncio.Queue = asyncio.Queue()
    events = EventBus(event_queue)

    engine = create_engine(config, action_handler=handler, event_bus=events)
    generator = AutomatedWorkflowGenerator(action_handler=handler, event_bus=events)
    intelligence = SignalIntelligenceEngine(
        SignalIntelligenceConfig(id="intelligence", name="Signal Intelligence"),
        event_bus=events,
    )
    for component in (engine, generator, intelligence):
        await component.initialize()

    signals = _demo_signals()
    display = LiveDisplay()

    console.rule("[bold]Response Orchestration[/bold]")
    console.print(f"  config      [cyan]{config.name}[/cyan]")
    console.print(f"  workflows   [cyan]{len(engine.get_workflows())} registered[/cyan]")
    console.print(f"  signals     [cyan]{len(signals)} incoming[/cyan]")
    console.print()

    with display.make_live() as live:
        consumer = asyncio.create_task(display.consume(event_queue, live))

        execution_ids = await asyncio.gather(
            *(_respond(engine, generator, intelligence, signal) for signal in signals)
        )
        for execution_id in execution_ids:
            if execution_id is not None:
                await engine.await_completion(execution_id)

        await event_queue.put(None)   # sentinel: tell consumer to stop
        await consumer

    _print_results(engine)
    await engine.shutdown()


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
