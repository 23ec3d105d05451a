"""Bounded admission queue.

When an execution request cannot start because the engine is at its
concurrency cap or a required resource is busy, the engine can park the
request here instead of rejecting it. Parked requests are retried in FIFO
order every time an execution releases its resources.

The queue is bounded. When it is full the overflow policy decides:
REJECT refuses the new request, DROP_OLDEST evicts the request that has
waited longest (its waiter receives a failure result) and parks the new
one. A queue size of zero disables queueing entirely, which gives the
plain reject-on-exhaustion behaviour.
"""

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime

from schemas.config import AdmissionSettings, OverflowPolicy
from schemas.intelligence import ResponseAction
from schemas.result import OperationResult
from schemas.signal import Signal, utcnow

logger = logging.getLogger(__name__)

_ticket_seq = itertools.count(1)


@dataclass
class AdmissionTicket:
    """A parked execution request.

    Attributes:
        ticket: Ticket id handed back to the caller.
        signal: The signal to execute for.
        actions: Requested actions passed with the original request.
        future: Resolved with the eventual execute_response result.
        enqueued_at: When the request was parked.
    """

    ticket: str
    signal: Signal
    actions: list[ResponseAction]
    future: asyncio.Future
    enqueued_at: datetime = field(default_factory=utcnow)


class AdmissionQueue:
    """FIFO of parked requests with an explicit overflow policy."""

    def __init__(self, settings: AdmissionSettings | None = None) -> None:
        self.settings = settings or AdmissionSettings()
        self._items: deque[AdmissionTicket] = deque()

    @property
    def enabled(self) -> bool:
        return self.settings.max_queued > 0

    def offer(self, signal: Signal, actions: list[ResponseAction]) -> AdmissionTicket | None:
        """Park a request.

        Must be called from a running event loop: the ticket's future is
        created on it.

        Returns:
            The new ticket, or None if the queue is disabled or full under
            the REJECT policy.
        """
        if not self.enabled:
            return None

        if len(self._items) >= self.settings.max_queued:
            if self.settings.overflow == OverflowPolicy.REJECT:
                logger.warning("Admission queue full (%d). Rejecting %s.", len(self._items), signal.id)
                return None
            dropped = self._items.popleft()
            logger.warning("Admission queue full. Dropping oldest request %s.", dropped.ticket)
            if not dropped.future.done():
                dropped.future.set_result(
                    OperationResult.fail(
                        "Dropped from admission queue",
                        ticket=dropped.ticket,
                    )
                )

        now = utcnow()
        ticket = AdmissionTicket(
            ticket=f"admission-{signal.id}-{int(now.timestamp() * 1000)}-{next(_ticket_seq)}",
            signal=signal,
            actions=list(actions),
            future=asyncio.get_running_loop().create_future(),
            enqueued_at=now,
        )
        self._items.append(ticket)
        return ticket

    def peek(self) -> AdmissionTicket | None:
        return self._items[0] if self._items else None

    def pop(self) -> AdmissionTicket | None:
        return self._items.popleft() if self._items else None

    def get(self, ticket: str) -> AdmissionTicket | None:
        return next((t for t in self._items if t.ticket == ticket), None)

    def position(self, ticket: str) -> int | None:
        """1-based position of a ticket, or None if it is not queued."""
        for i, item in enumerate(self._items, start=1):
            if item.ticket == ticket:
                return i
        return None

    def clear(self, reason: str) -> int:
        """Fail every parked request. Returns how many were failed."""
        count = 0
        while self._items:
            item = self._items.popleft()
            if not item.future.done():
                item.future.set_result(OperationResult.fail(reason, ticket=item.ticket))
            count += 1
        return count

    def __len__(self) -> int:
        return len(self._items)
