"""Typed event bus.

EventBus is the observability surface of the core. Each engine emits
EngineEvents through a bus; embedding code subscribes listeners per event
name. A listener that raises is logged and skipped: it never stops the
other listeners or the operation that emitted the event.

The bus can also mirror every event into an asyncio.Queue. The live display
reads from that queue, the same way it would read from any producer.
"""

import asyncio
import logging
from collections.abc import Callable

from pydantic import BaseModel

from schemas.events import EVENT_PAYLOADS, EngineEvent, EventType

logger = logging.getLogger(__name__)

Listener = Callable[[EngineEvent], None]


class EventBus:
    """Per-engine publish/subscribe hub keyed by EventType.

    Attributes:
        _listeners: Event name to the listeners subscribed to it, in
            subscription order.
        _queue: Optional queue every emitted event is also put into.
    """

    def __init__(self, queue: asyncio.Queue | None = None) -> None:
        self._listeners: dict[EventType, list[Listener]] = {}
        self._queue = queue

    def subscribe(self, event_type: EventType, listener: Listener) -> None:
        """Register a listener for one event name.

        Args:
            event_type: The event to listen for.
            listener: Called synchronously with the EngineEvent each time
                the event is emitted.
        """
        self._listeners.setdefault(event_type, []).append(listener)

    def unsubscribe(self, event_type: EventType, listener: Listener) -> bool:
        """Remove a listener. Returns False if it was not subscribed."""
        listeners = self._listeners.get(event_type, [])
        if listener not in listeners:
            return False
        listeners.remove(listener)
        return True

    def attach_queue(self, queue: asyncio.Queue | None) -> None:
        self._queue = queue

    def emit(self, event_type: EventType, source: str, payload: BaseModel) -> EngineEvent:
        """Build an event and deliver it to every listener.

        Args:
            event_type: The event name.
            source: Name of the emitting component.
            payload: Must be an instance of EVENT_PAYLOADS[event_type].

        Returns:
            The emitted event.

        Raises:
            TypeError: If the payload model does not match the event name.
        """
        expected = EVENT_PAYLOADS[event_type]
        if not isinstance(payload, expected):
            raise TypeError(
                f"Event '{event_type.value}' expects {expected.__name__}, "
                f"got {type(payload).__name__}"
            )

        event = EngineEvent(event_type=event_type, source=source, payload=payload)

        for listener in list(self._listeners.get(event_type, [])):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Listener %r for event '%s' raised. Continuing.",
                    listener,
                    event_type.value,
                )

        if self._queue is not None:
            self._queue.put_nowait(event)

        return event

    def listener_count(self, event_type: EventType) -> int:
        return len(self._listeners.get(event_type, []))
