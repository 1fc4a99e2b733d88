import pytest

from upswatch.core.bus import SNAPSHOT_UPDATED, STATS_UPDATED, EventBus


@pytest.mark.asyncio
async def test_publish_reaches_subscribers():
    bus = EventBus()
    received = []

    async def first(data):
        received.append(("first", data))

    async def second(data):
        received.append(("second", data))

    bus.subscribe(SNAPSHOT_UPDATED, first)
    bus.subscribe(SNAPSHOT_UPDATED, second)
    await bus.publish(SNAPSHOT_UPDATED, 42)
    await bus.publish(STATS_UPDATED, 0)

    assert sorted(received) == [("first", 42), ("second", 42)]
    assert bus.subscriber_count(SNAPSHOT_UPDATED) == 2


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_others():
    bus = EventBus()
    received = []

    async def broken(data):
        raise RuntimeError("boom")

    async def healthy(data):
        received.append(data)

    bus.subscribe(SNAPSHOT_UPDATED, broken)
    bus.subscribe(SNAPSHOT_UPDATED, healthy)
    await bus.publish(SNAPSHOT_UPDATED, "x")

    assert received == ["x"]


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventBus()
    received = []

    async def callback(data):
        received.append(data)

    bus.subscribe(SNAPSHOT_UPDATED, callback)
    bus.unsubscribe(SNAPSHOT_UPDATED, callback)
    bus.unsubscribe(SNAPSHOT_UPDATED, callback)
    await bus.publish(SNAPSHOT_UPDATED, 1)

    assert received == []
    assert bus.subscriber_count(SNAPSHOT_UPDATED) == 0
