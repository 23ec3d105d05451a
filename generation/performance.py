"""Per-workflow execution history used for scoring and optimisation."""

from dataclasses import dataclass

DEFAULT_AVG_EXECUTION_TIME = 30_000.0
DEFAULT_SUCCESS_RATE = 0.8
DEFAULT_ERROR_RATE = 0.2


@dataclass
class WorkflowPerformance:
    """Running totals for one workflow or template.

    Attributes:
        executions: Automated runs recorded.
        total_time: Sum of run times in milliseconds.
        successes: Runs in which no step failed.
        failures: Runs with at least one failed step.
    """

    executions: int = 0
    total_time: float = 0.0
    successes: int = 0
    failures: int = 0

    @property
    def avg_execution_time(self) -> float:
        return self.total_time / self.executions if self.executions else 0.0

    @property
    def success_rate(self) -> float:
        return self.successes / self.executions if self.executions else 0.0

    @property
    def error_rate(self) -> float:
        return self.failures / self.executions if self.executions else 0.0

    def record(self, total_time: float, success: bool) -> None:
        self.executions += 1
        self.total_time += total_time
        if success:
            self.successes += 1
        else:
            self.failures += 1

    def as_dict(self) -> dict[str, float]:
        return {
            "executions": self.executions,
            "total_time": self.total_time,
            "successes": self.successes,
            "failures": self.failures,
            "avg_execution_time": self.avg_execution_time,
            "success_rate": self.success_rate,
            "error_rate": self.error_rate,
        }


@dataclass(frozen=True)
class PerformanceProfile:
    """The three numbers the optimiser reads.

    Built from a WorkflowPerformance with at least one run, or from the
    defaults when there is no history yet.
    """

    avg_execution_time: float = DEFAULT_AVG_EXECUTION_TIME
    success_rate: float = DEFAULT_SUCCESS_RATE
    error_rate: float = DEFAULT_ERROR_RATE

    @classmethod
    def from_history(cls, performance: WorkflowPerformance | None) -> "PerformanceProfile":
        if performance is None or performance.executions == 0:
            return cls()
        return cls(
            avg_execution_time=performance.avg_execution_time,
            success_rate=performance.success_rate,
            error_rate=performance.error_rate,
        )


class PerformanceTracker:
    """Workflow or template id to its WorkflowPerformance."""

    def __init__(self) -> None:
        self._stats: dict[str, WorkflowPerformance] = {}

    def get(self, workflow_id: str) -> WorkflowPerformance | None:
        return self._stats.get(workflow_id)

    def track(self, workflow_id: str) -> WorkflowPerformance:
        """Return the entry for workflow_id, creating an empty one if needed."""
        return self._stats.setdefault(workflow_id, WorkflowPerformance())

    def record(self, workflow_id: str, total_time: float, success: bool) -> None:
        self.track(workflow_id).record(total_time, success)

    def profile(self, workflow_id: str | None) -> PerformanceProfile:
        return PerformanceProfile.from_history(self._stats.get(workflow_id) if workflow_id else None)

    def snapshot(self) -> dict[str, dict[str, float]]:
        return {workflow_id: perf.as_dict() for workflow_id, perf in self._stats.items()}

    def totals(self) -> tuple[int, int]:
        """(executions, successes) summed over every tracked id."""
        executions = sum(p.executions for p in self._stats.values())
        successes = sum(p.successes for p in self._stats.values())
        return executions, successes
