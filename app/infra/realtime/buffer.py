import asyncio

from app.infra.realtime.errors import BufferClosedError

_CLOSED = None


class OutboundBuffer:
    """Bounded FIFO of serialized frames waiting for a connection's write loop.

    Closing is one-way: frames queued before ``close()`` are still delivered,
    after which ``get()`` returns ``None`` forever.
    """

    def __init__(self, capacity: int = 256) -> None:
        if capacity < 1:
            raise ValueError("Outbound buffer capacity must be at least 1")
        self._capacity = capacity
        # The close marker lives in the same queue so it is ordered after pending frames.
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = False
        self._exhausted = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        pending = self._queue.qsize()
        if self._closed and not self._exhausted:
            pending -= 1
        return pending

    def full(self) -> bool:
        return len(self) >= self._capacity

    def put_nowait(self, message: str) -> None:
        if self._closed:
            raise BufferClosedError()
        if self.full():
            raise asyncio.QueueFull
        self._queue.put_nowait(message)

    def close(self) -> None:
        if self._closed:
            raise BufferClosedError()
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def get(self) -> str | None:
        if self._exhausted:
            return None
        message = await self._queue.get()
        if message is _CLOSED:
            self._exhausted = True
        return message

    def drain_nowait(self) -> list[str]:
        batch: list[str] = []
        while not self._exhausted:
            try:
                message = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if message is _CLOSED:
                self._exhausted = True
                break
            batch.append(message)
        return batch
