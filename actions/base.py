"""ActionHandler abstract base class.

Defines the capability interface the orchestration core uses for every
side effect: performing a response action, sending a notification and
running an escalation action. The core depends only on this interface.
Which system actually schedules the inspection or pages the team is the
embedding application's decision, made by passing a concrete handler to
the engines.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from schemas.signal import Signal
from schemas.workflow import ResponseActionType


@dataclass
class ActionContext:
    """What a handler knows about the run that is calling it.

    A dataclass rather than a Pydantic model because it is an internal
    call argument. It is never serialized by the core itself.

    Attributes:
        execution_id: The execution (or automated response) making the call.
        workflow_id: The workflow being run.
        signal: The signal that triggered the run.
        step_id: The step making the call, if any.
    """

    execution_id: str
    workflow_id: str
    signal: Signal
    step_id: str | None = None


@dataclass
class ActionOutcome:
    """Result of one capability call.

    Attributes:
        success: Whether the side effect happened.
        duration_ms: How long the call took, as measured by the handler.
        output: Handler-specific result data, recorded on the execution.
        error: Failure reason when success is False.
    """

    success: bool
    duration_ms: float = 0.0
    output: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


class ActionHandler(ABC):
    """Abstract base class for every capability provider.

    To plug the core into a real system, subclass ActionHandler and
    implement the three coroutines. A handler reports failure either by
    returning an ActionOutcome with success=False or by raising; the
    executor treats both as a failed step.
    """

    @abstractmethod
    async def execute_action(
        self,
        action: ResponseActionType,
        context: ActionContext,
        parameters: dict[str, Any],
    ) -> ActionOutcome:
        """Perform one response action.

        Args:
            action: The action to perform.
            context: The calling run.
            parameters: The step's configured parameters.

        Returns:
            The outcome of the action.
        """
        ...

    @abstractmethod
    async def send_notification(
        self,
        recipient: str,
        channel: str,
        message: str,
        context: ActionContext,
    ) -> ActionOutcome:
        """Deliver one message to one recipient on one channel."""
        ...

    @abstractmethod
    async def run_escalation_action(self, action: str, context: ActionContext) -> ActionOutcome:
        """Run an opaque escalation action identifier (e.g. "page-on-call")."""
        ...
