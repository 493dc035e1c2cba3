import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from app.infra.realtime.connection import Connection
from app.infra.realtime.protocol import (
    encode_message,
    live_update_message,
    welcome_message,
)
from app.infra.realtime.source import SnapshotSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Register:
    connection: Connection
    accepted: asyncio.Future[bool]


@dataclass(frozen=True, slots=True)
class _Unregister:
    connection: Connection


@dataclass(frozen=True, slots=True)
class _Broadcast:
    message: str


class _Wakeup:
    pass


_HubEvent = _Register | _Unregister | _Broadcast | _Wakeup


class LiveDataHub:
    """Single-writer coordinator for websocket fanout.

    Registry changes and fanout only happen inside :meth:`run`, which consumes
    one bounded intake queue and fires a periodic tick that samples the
    snapshot source. Callers never touch the registry directly.
    """

    def __init__(
        self,
        source: SnapshotSource,
        *,
        tick_interval: float = 5.0,
        intake_size: int = 256,
    ) -> None:
        self.source = source
        self.tick_interval = tick_interval
        self._events: asyncio.Queue[_HubEvent] = asyncio.Queue(maxsize=intake_size)
        self._connections: set[Connection] = set()
        self._stop_requested = False
        self._running = False
        self._stopped = False

    @property
    def client_count(self) -> int:
        return len(self._connections)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def stopped(self) -> bool:
        return self._stopped

    def is_registered(self, connection: Connection) -> bool:
        return connection in self._connections

    async def register(self, connection: Connection) -> bool:
        """Add a connection and wait until its welcome frame is queued.

        Returns ``False`` when the hub stopped before handling the request; the
        connection then has no welcome and its buffer stays open.
        """
        if self._stopped:
            return False
        accepted: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        await self._events.put(_Register(connection, accepted))
        if self._stopped and not accepted.done():
            # Queued after the loop drained its intake.
            return False
        return await accepted

    async def unregister(self, connection: Connection) -> None:
        await self._submit(_Unregister(connection))

    async def broadcast(self, message: str) -> None:
        await self._submit(_Broadcast(message))

    async def join(self) -> None:
        """Wait until every event submitted so far has been handled."""
        await self._events.join()

    def stop(self) -> None:
        if self._stop_requested:
            return
        self._stop_requested = True
        try:
            self._events.put_nowait(_Wakeup())
        except asyncio.QueueFull:
            # A full intake means the loop is busy and checks the flag next iteration.
            pass

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.tick_interval
        self._running = True
        logger.info("Live data hub started (tick every %.1fs)", self.tick_interval)
        try:
            while not self._stop_requested:
                now = loop.time()
                if now >= next_tick:
                    next_tick = now + self.tick_interval
                    self._dispatch(self.tick)
                    continue

                try:
                    async with asyncio.timeout(next_tick - now):
                        event = await self._events.get()
                except TimeoutError:
                    continue

                try:
                    if not self._stop_requested:
                        self._dispatch(self._handle, event)
                finally:
                    self._settle(event)
                    self._events.task_done()
        finally:
            self._running = False
            self._stopped = True
            self._drain_registry()
            self._discard_pending_events()
            logger.info("Live data hub stopped")

    def tick(self) -> None:
        if not self._connections or not self.source.is_ready():
            return

        try:
            message = encode_message(live_update_message(self.source.get_snapshot()))
        except (TypeError, ValueError):
            logger.exception("Failed to serialize live train snapshot, skipping tick")
            return
        self._fan_out(message)

    async def _submit(self, event: _HubEvent) -> None:
        if self._stopped:
            return
        await self._events.put(event)

    def _dispatch(self, handler: Callable[..., None], *args: Any) -> None:
        try:
            handler(*args)
        except Exception:
            logger.exception("Live data hub event failed")

    def _handle(self, event: _HubEvent) -> None:
        match event:
            case _Register(connection, _):
                self._add(connection)
            case _Unregister(connection):
                self._remove(connection)
            case _Broadcast(message):
                self._fan_out(message)
            case _Wakeup():
                pass

    def _settle(self, event: _HubEvent) -> None:
        if isinstance(event, _Register) and not event.accepted.done():
            event.accepted.set_result(event.connection in self._connections)

    def _add(self, connection: Connection) -> None:
        if connection in self._connections:
            return
        self._connections.add(connection)
        welcome = encode_message(welcome_message(self.source.is_ready()))
        connection.outbound.put_nowait(welcome)
        logger.info("WebSocket client connected (%d total)", len(self._connections))

    def _remove(self, connection: Connection) -> None:
        if connection not in self._connections:
            return
        self._connections.discard(connection)
        connection.outbound.close()
        logger.info("WebSocket client disconnected (%d total)", len(self._connections))

    def _fan_out(self, message: str) -> None:
        evicted: list[Connection] = []
        for connection in self._connections:
            try:
                connection.outbound.put_nowait(message)
            except asyncio.QueueFull:
                evicted.append(connection)

        for connection in evicted:
            self._connections.discard(connection)
            connection.outbound.close()
        if evicted:
            logger.warning(
                "Evicted %d slow websocket client(s) (%d remaining)",
                len(evicted),
                len(self._connections),
            )

    def _drain_registry(self) -> None:
        for connection in self._connections:
            connection.outbound.close()
        self._connections.clear()

    def _discard_pending_events(self) -> None:
        while True:
            try:
                event = self._events.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._settle(event)
            self._events.task_done()
