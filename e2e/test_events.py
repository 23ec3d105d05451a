"""EventBus tests: typed payloads, listener isolation and queue mirroring."""

import asyncio

import pytest

from core.events import EventBus
from schemas.events import EnginePayload, EventType, StepPayload


def make_payload(**overrides) -> EnginePayload:
    data = dict(engine_id="engine-1")
    data.update(overrides)
    return EnginePayload(**data)


class TestEventBus:
    def test_listener_receives_event(self):
        bus = EventBus()
        received = []
        bus.subscribe(EventType.INITIALIZED, received.append)

        bus.emit(EventType.INITIALIZED, "test", make_payload())

        assert len(received) == 1
        assert received[0].source == "test"
        assert received[0].payload.engine_id == "engine-1"

    def test_listener_only_gets_its_event(self):
        bus = EventBus()
        received = []
        bus.subscribe(EventType.SHUTDOWN, received.append)
        bus.emit(EventType.INITIALIZED, "test", make_payload())
        assert received == []

    def test_raising_listener_does_not_stop_others(self):
        bus = EventBus()
        received = []

        def broken(_event):
            raise RuntimeError("listener bug")

        bus.subscribe(EventType.INITIALIZED, broken)
        bus.subscribe(EventType.INITIALIZED, received.append)

        event = bus.emit(EventType.INITIALIZED, "test", make_payload())

        assert received == [event]

    def test_wrong_payload_type_raises(self):
        bus = EventBus()
        with pytest.raises(TypeError, match="expects StepPayload"):
            bus.emit(EventType.STEP_COMPLETED, "test", make_payload())

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        bus.subscribe(EventType.INITIALIZED, received.append)

        assert bus.unsubscribe(EventType.INITIALIZED, received.append) is True
        assert bus.unsubscribe(EventType.INITIALIZED, received.append) is False

        bus.emit(EventType.INITIALIZED, "test", make_payload())
        assert received == []
        assert bus.listener_count(EventType.INITIALIZED) == 0

    def test_emit_with_no_listeners_is_fine(self):
        event = EventBus().emit(
            EventType.STEP_SKIPPED,
            "test",
            StepPayload(execution_id="e1", step_id="s1", step_name="Step"),
        )
        assert event.event_type == EventType.STEP_SKIPPED

    async def test_attached_queue_gets_every_event(self):
        queue: asyncio.Queue = asyncio.Queue()
        bus = EventBus()
        bus.attach_queue(queue)

        bus.emit(EventType.INITIALIZED, "test", make_payload())
        bus.emit(EventType.SHUTDOWN, "test", make_payload())

        assert queue.qsize() == 2
        assert (await queue.get()).event_type == EventType.INITIALIZED
