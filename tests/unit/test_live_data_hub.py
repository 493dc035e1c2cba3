import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import pytest

from app.infra.realtime.connection import Connection
from app.infra.realtime.hub import LiveDataHub


class StaticSnapshotSource:
    def __init__(self, entities: list[Any] | None = None, ready: bool = True) -> None:
        self.entities = entities if entities is not None else [{"id": "IC-1"}]
        self.ready = ready
        self.snapshot_calls = 0

    def is_ready(self) -> bool:
        return self.ready

    def get_snapshot(self) -> list[Any]:
        self.snapshot_calls += 1
        return list(self.entities)


class ExplodingSnapshotSource(StaticSnapshotSource):
    def get_snapshot(self) -> list[Any]:
        self.snapshot_calls += 1
        raise RuntimeError("timetable unavailable")


class IdleTransport:
    async def receive(self) -> str:
        await asyncio.Event().wait()
        return ""

    async def send(self, message: str) -> None:
        return None

    async def ping(self) -> None:
        return None

    async def close(self, code: int = 1000) -> None:
        return None


@asynccontextmanager
async def running_hub(source: StaticSnapshotSource, **kwargs: Any) -> AsyncIterator[LiveDataHub]:
    hub = LiveDataHub(source, **kwargs)
    task = asyncio.create_task(hub.run())
    try:
        yield hub
    finally:
        hub.stop()
        await asyncio.wait_for(task, timeout=1)


def make_connection(hub: LiveDataHub, send_buffer_size: int = 256) -> Connection:
    return Connection(hub, IdleTransport(), send_buffer_size=send_buffer_size)


def pending_types(connection: Connection) -> list[str]:
    return [json.loads(frame)["type"] for frame in connection.outbound.drain_nowait()]


@pytest.mark.asyncio
async def test_register_adds_connection_and_sends_welcome_first() -> None:
    async with running_hub(StaticSnapshotSource(ready=True)) as hub:
        connection = make_connection(hub)
        await hub.register(connection)
        await hub.broadcast('{"type":"live_trains_update"}')
        await hub.join()

        assert hub.is_registered(connection)
        assert hub.client_count == 1
        frames = connection.outbound.drain_nowait()
        welcome = json.loads(frames[0])
        assert welcome["type"] == "connection"
        assert welcome["gtfs_loaded"] is True
        assert "Swiss Railway" in welcome["message"]
        assert json.loads(frames[1])["type"] == "live_trains_update"


@pytest.mark.asyncio
async def test_welcome_reports_source_not_ready() -> None:
    async with running_hub(StaticSnapshotSource(ready=False)) as hub:
        connection = make_connection(hub)
        await hub.register(connection)
        await hub.join()

        welcome = json.loads(connection.outbound.drain_nowait()[0])
        assert welcome["gtfs_loaded"] is False


@pytest.mark.asyncio
async def test_broadcast_reaches_every_connection_once_in_order() -> None:
    async with running_hub(StaticSnapshotSource()) as hub:
        connections = [make_connection(hub) for _ in range(3)]
        for connection in connections:
            await hub.register(connection)
        await hub.broadcast("first")
        await hub.broadcast("second")
        await hub.join()

        for connection in connections:
            frames = connection.outbound.drain_nowait()
            assert frames[1:] == ["first", "second"]


@pytest.mark.asyncio
async def test_saturated_connection_is_evicted_without_affecting_others() -> None:
    async with running_hub(StaticSnapshotSource()) as hub:
        slow = make_connection(hub)
        healthy = make_connection(hub)
        await hub.register(slow)
        await hub.register(healthy)
        await hub.join()

        while not slow.outbound.full():
            slow.outbound.put_nowait("stale")
        assert len(slow.outbound) == 256

        await hub.broadcast("update")
        await hub.join()

        assert not hub.is_registered(slow)
        assert slow.outbound.closed
        assert hub.is_registered(healthy)
        assert healthy.outbound.drain_nowait()[-1] == "update"


@pytest.mark.asyncio
async def test_unregister_is_idempotent(caplog: pytest.LogCaptureFixture) -> None:
    async with running_hub(StaticSnapshotSource()) as hub:
        connection = make_connection(hub)
        stranger = make_connection(hub)
        await hub.register(connection)
        await hub.join()

        with caplog.at_level(logging.ERROR):
            await hub.unregister(connection)
            await hub.unregister(connection)
            await hub.unregister(stranger)
            await hub.join()

        assert hub.client_count == 0
        assert connection.outbound.closed
        assert not stranger.outbound.closed
        assert "Live data hub event failed" not in caplog.text


@pytest.mark.asyncio
async def test_tick_without_clients_does_not_sample_source() -> None:
    source = StaticSnapshotSource(ready=True)
    async with running_hub(source, tick_interval=0.01):
        await asyncio.sleep(0.05)

    assert source.snapshot_calls == 0


@pytest.mark.asyncio
async def test_tick_skips_unready_source() -> None:
    source = StaticSnapshotSource(ready=False)
    async with running_hub(source, tick_interval=0.01) as hub:
        connection = make_connection(hub)
        await hub.register(connection)
        await asyncio.sleep(0.05)

        assert source.snapshot_calls == 0
        assert pending_types(connection) == ["connection"]


@pytest.mark.asyncio
async def test_tick_broadcasts_live_update() -> None:
    source = StaticSnapshotSource(entities=[{"id": "IC-5", "delay": 2}])
    async with running_hub(source, tick_interval=0.01) as hub:
        connection = make_connection(hub)
        await hub.register(connection)
        await asyncio.sleep(0.05)

        frames = [json.loads(frame) for frame in connection.outbound.drain_nowait()]

    updates = [frame for frame in frames if frame["type"] == "live_trains_update"]
    assert updates
    assert updates[0]["data"] == [{"id": "IC-5", "delay": 2}]
    assert updates[0]["timestamp"].endswith("Z")
    assert "gtfs_loaded" not in updates[0]


@pytest.mark.asyncio
async def test_failing_tick_does_not_stop_the_loop(caplog: pytest.LogCaptureFixture) -> None:
    source = ExplodingSnapshotSource()
    with caplog.at_level(logging.ERROR):
        async with running_hub(source, tick_interval=0.01) as hub:
            connection = make_connection(hub)
            await hub.register(connection)
            await asyncio.sleep(0.05)
            await hub.broadcast("still-alive")
            await hub.join()

            assert connection.outbound.drain_nowait()[-1] == "still-alive"

    assert source.snapshot_calls >= 1
    assert "Live data hub event failed" in caplog.text


@pytest.mark.asyncio
async def test_unserializable_snapshot_is_skipped(caplog: pytest.LogCaptureFixture) -> None:
    source = StaticSnapshotSource(entities=[object()])
    hub = LiveDataHub(source)
    connection = make_connection(hub)
    hub._add(connection)

    with caplog.at_level(logging.ERROR):
        hub.tick()

    assert source.snapshot_calls == 1
    assert pending_types(connection) == ["connection"]
    assert "Failed to serialize live train snapshot" in caplog.text


@pytest.mark.asyncio
async def test_stop_drains_registry_and_ignores_late_events() -> None:
    hub = LiveDataHub(StaticSnapshotSource())
    task = asyncio.create_task(hub.run())
    connection = make_connection(hub)
    await hub.register(connection)
    await hub.join()
    assert hub.running

    hub.stop()
    await asyncio.wait_for(task, timeout=1)

    assert hub.stopped
    assert not hub.running
    assert hub.client_count == 0
    assert connection.outbound.closed

    late = make_connection(hub)
    assert await hub.register(late) is False
    await hub.unregister(connection)
    assert hub.client_count == 0
    assert not late.outbound.closed


@pytest.mark.asyncio
async def test_register_returns_after_welcome_is_queued() -> None:
    async with running_hub(StaticSnapshotSource()) as hub:
        connection = make_connection(hub)

        assert await hub.register(connection) is True
        assert pending_types(connection) == ["connection"]


@pytest.mark.asyncio
async def test_duplicate_register_sends_single_welcome() -> None:
    async with running_hub(StaticSnapshotSource()) as hub:
        connection = make_connection(hub)
        await hub.register(connection)
        await hub.register(connection)

        assert hub.client_count == 1
        assert pending_types(connection) == ["connection"]


@pytest.mark.asyncio
async def test_register_rejected_when_hub_stops_first() -> None:
    hub = LiveDataHub(StaticSnapshotSource())
    task = asyncio.create_task(hub.run())
    hub.stop()
    connection = make_connection(hub)

    accepted = await asyncio.wait_for(hub.register(connection), timeout=1)
    await asyncio.wait_for(task, timeout=1)

    assert accepted is False
    assert not hub.is_registered(connection)
    assert len(connection.outbound) == 0
    assert not connection.outbound.closed
