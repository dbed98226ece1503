"""Tests for EventBus — async pub/sub."""

import asyncio

import pytest

from chatrelay.kernel.event_bus import TRANSPORT_TOPIC, EventBus
from chatrelay.transport.events import QRReady, Ready


def drain(queue: asyncio.Queue) -> list:
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


async def collect(bus: EventBus, queue: asyncio.Queue, count: int) -> list:
    received = []
    async for event in bus.listen(queue):
        received.append(event)
        if len(received) == count:
            break
    return received


@pytest.mark.asyncio
async def test_publish_and_listen():
    bus = EventBus()
    queue = bus.subscribe(TRANSPORT_TOPIC)

    await bus.publish(TRANSPORT_TOPIC, Ready())

    events = await asyncio.wait_for(collect(bus, queue, 1), timeout=1)
    assert events == [Ready()]


@pytest.mark.asyncio
async def test_multiple_subscribers():
    bus = EventBus()
    q1 = bus.subscribe(TRANSPORT_TOPIC)
    q2 = bus.subscribe(TRANSPORT_TOPIC)

    delivered = await bus.publish(TRANSPORT_TOPIC, QRReady("code"))
    assert delivered == 2

    assert drain(q1) == [QRReady("code")]
    assert drain(q2) == [QRReady("code")]


@pytest.mark.asyncio
async def test_topic_isolation():
    bus = EventBus()
    q_a = bus.subscribe("topic.a")
    q_b = bus.subscribe("topic.b")

    await bus.publish("topic.a", "event-a")

    assert drain(q_a) == ["event-a"]
    assert drain(q_b) == []


@pytest.mark.asyncio
async def test_publish_without_subscribers():
    bus = EventBus()
    assert await bus.publish(TRANSPORT_TOPIC, Ready()) == 0


@pytest.mark.asyncio
async def test_full_queue_drops_event():
    bus = EventBus()
    queue = bus.subscribe(TRANSPORT_TOPIC, maxsize=1)

    assert await bus.publish(TRANSPORT_TOPIC, "first") == 1
    assert await bus.publish(TRANSPORT_TOPIC, "second") == 0
    assert drain(queue) == ["first"]


@pytest.mark.asyncio
async def test_unsubscribe_idempotent():
    bus = EventBus()
    queue = bus.subscribe(TRANSPORT_TOPIC)
    assert bus.subscriber_count(TRANSPORT_TOPIC) == 1

    bus.unsubscribe(TRANSPORT_TOPIC, queue)
    bus.unsubscribe(TRANSPORT_TOPIC, queue)  # Should not raise
    assert bus.subscriber_count(TRANSPORT_TOPIC) == 0


@pytest.mark.asyncio
async def test_listener_waits_for_events_until_cancelled():
    bus = EventBus()
    queue = bus.subscribe(TRANSPORT_TOPIC)
    received = []

    async def consume():
        async for event in bus.listen(queue):
            received.append(event)

    task = asyncio.create_task(consume())
    await asyncio.sleep(0)
    await bus.publish(TRANSPORT_TOPIC, "late")
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=1)

    assert received == ["late"]


@pytest.mark.asyncio
async def test_listener_on_full_queue_can_be_cancelled():
    bus = EventBus()
    queue = bus.subscribe(TRANSPORT_TOPIC, maxsize=1)
    await bus.publish(TRANSPORT_TOPIC, Ready())
    assert queue.full()

    async def consume():
        async for _ in bus.listen(queue):
            await asyncio.Event().wait()

    task = asyncio.create_task(consume())
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=0.5)
