"""
Unit tests for EventBus
"""

import pytest
import asyncio
from backend.agentcore.runtime.event_bus import EventBus
from backend.agentcore.runtime.types import (
    StreamEvent,
    StateEvent,
    TurnEvent,
    TurnEventData,
    TurnStage,
    SessionState,
    EventType,
)


@pytest.mark.asyncio
async def test_event_bus_publish_consume():
    """Test basic publish and consume"""
    bus = EventBus(maxsize=10)
    event = StreamEvent(session_id="test-session", data="Hello World\n")

    await bus.publish(event)
    assert bus.qsize() == 1

    async for consumed in bus.consume():
        assert consumed.type == EventType.STREAM
        assert consumed.session_id == "test-session"
        assert consumed.data == "Hello World\n"
        break


@pytest.mark.asyncio
async def test_event_bus_subscribe():
    """Test event subscription with async handlers"""
    bus = EventBus()
    received_events = []

    async def handler(event):
        received_events.append(event)

    await bus.subscribe(EventType.TURN, handler)
    await bus.start()

    await bus.publish(TurnEvent("test-session", TurnEventData(stage=TurnStage.DEQUEUED, message_id="m1")))

    await asyncio.sleep(0.1)
    await bus.stop()

    assert len(received_events) == 1
    assert received_events[0].data.stage == TurnStage.DEQUEUED


@pytest.mark.asyncio
async def test_event_bus_sync_handler_and_session_filter():
    """Sync handlers work and the session filter drops other sessions"""
    bus = EventBus()
    received = []

    await bus.subscribe(EventType.STATE, lambda event: received.append(event.session_id), session_id="s1")
    await bus.start()

    await bus.publish(StateEvent("s2", SessionState.ACTIVE))
    await bus.publish(StateEvent("s1", SessionState.ACTIVE))

    await asyncio.sleep(0.1)
    await bus.stop()

    assert received == ["s1"]


@pytest.mark.asyncio
async def test_event_bus_unsubscribe():
    bus = EventBus()
    received = []

    def handler(event):
        received.append(event)

    await bus.subscribe(EventType.STREAM, handler)
    await bus.unsubscribe(EventType.STREAM, handler)
    await bus.start()

    await bus.publish(StreamEvent(session_id="s1", data="ignored"))
    await asyncio.sleep(0.1)
    await bus.stop()

    assert received == []


@pytest.mark.asyncio
async def test_event_bus_failing_handler_does_not_stop_dispatch():
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    await bus.subscribe(EventType.STREAM, broken)
    await bus.subscribe(EventType.STREAM, lambda event: received.append(event.data))
    await bus.start()

    await bus.publish(StreamEvent(session_id="s1", data="a"))
    await bus.publish(StreamEvent(session_id="s1", data="b"))
    await asyncio.sleep(0.1)
    await bus.stop()

    assert received == ["a", "b"]


@pytest.mark.asyncio
async def test_event_bus_filter_by_type():
    """Test filtering events by type"""
    bus = EventBus()

    await bus.publish(StateEvent(session_id="s1", data=SessionState.ACTIVE))
    await bus.publish(StreamEvent(session_id="s1", data="stream"))

    count = 0
    async for event in bus.consume(event_types=[EventType.STREAM]):
        assert event.type == EventType.STREAM
        count += 1
        if count >= 1:
            break

    assert count == 1


@pytest.mark.asyncio
async def test_event_bus_backpressure():
    """Test bounded queue with backpressure"""
    bus = EventBus(maxsize=2, publish_timeout=0.1)

    await bus.publish(StreamEvent(session_id="s1", data="1"))
    await bus.publish(StreamEvent(session_id="s1", data="2"))

    assert bus.qsize() == 2

    # Next publish should timeout (queue full)
    with pytest.raises(asyncio.QueueFull):
        await bus.publish(StreamEvent(session_id="s1", data="3"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
