from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from app.core.config import Settings
from app.domain.enums import ClientMessageType
from app.infra.realtime.buffer import OutboundBuffer
from app.infra.realtime.errors import (
    BufferClosedError,
    FrameTooLargeError,
    MalformedMessageError,
    TransportClosedError,
)
from app.infra.realtime.protocol import (
    client_message_type,
    decode_client_message,
    echo_message,
    encode_message,
    live_reply_message,
    pong_message,
)
from app.infra.realtime.transport import Transport
from app.schemas.realtime import RealtimeMessage

if TYPE_CHECKING:
    from app.infra.realtime.hub import LiveDataHub

logger = logging.getLogger(__name__)

CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_MESSAGE_TOO_BIG = 1009


class Connection:
    """One live websocket client.

    The read loop owns inbound frames and is the only path that unregisters
    from the hub. The write loop drains :attr:`outbound` and stops once the hub
    closes that buffer. Either loop ending releases the transport.
    """

    def __init__(
        self,
        hub: LiveDataHub,
        transport: Transport,
        *,
        send_buffer_size: int = 256,
        max_message_bytes: int = 512 * 1024,
        read_timeout: float = 60.0,
        ping_interval: float = 54.0,
        write_timeout: float = 10.0,
    ) -> None:
        self.hub = hub
        self.transport = transport
        self.outbound = OutboundBuffer(send_buffer_size)
        self.max_message_bytes = max_message_bytes
        self.read_timeout = read_timeout
        self.ping_interval = ping_interval
        self.write_timeout = write_timeout
        self.read_deadline: float | None = None
        self._transport_released = False

    @classmethod
    def from_settings(
        cls, hub: LiveDataHub, transport: Transport, settings: Settings
    ) -> Connection:
        return cls(
            hub,
            transport,
            send_buffer_size=settings.ws_send_buffer_size,
            max_message_bytes=settings.ws_max_message_bytes,
            read_timeout=settings.ws_read_timeout_seconds,
            ping_interval=settings.ws_ping_interval_seconds,
            write_timeout=settings.ws_write_timeout_seconds,
        )

    @property
    def transport_released(self) -> bool:
        return self._transport_released

    async def serve(self) -> None:
        writer = asyncio.create_task(self.write_loop(), name="ws-write-loop")
        try:
            await self.read_loop()
        except asyncio.CancelledError:
            writer.cancel()
            raise
        await writer

    async def read_loop(self) -> None:
        loop = asyncio.get_running_loop()
        close_code = CLOSE_NORMAL
        try:
            while True:
                self.read_deadline = loop.time() + self.read_timeout
                async with asyncio.timeout_at(self.read_deadline):
                    frame = await self.transport.receive()
                self._check_frame_size(frame)
                self.handle_frame(frame)
        except TransportClosedError as exc:
            logger.debug("WebSocket read side closed (code=%s)", exc.code)
        except TimeoutError:
            logger.info(
                "WebSocket client idle for %.0fs, dropping connection",
                self.read_timeout,
            )
            close_code = CLOSE_GOING_AWAY
        except FrameTooLargeError as exc:
            logger.warning("Closing websocket: %s", exc)
            close_code = CLOSE_MESSAGE_TOO_BIG
        finally:
            await self.hub.unregister(self)
            await self.release_transport(close_code)

    async def write_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_ping = loop.time() + self.ping_interval
        try:
            while True:
                remaining = next_ping - loop.time()
                if remaining <= 0:
                    next_ping = loop.time() + self.ping_interval
                    async with asyncio.timeout(self.write_timeout):
                        await self.transport.ping()
                    continue

                try:
                    async with asyncio.timeout(remaining):
                        message = await self.outbound.get()
                except TimeoutError:
                    continue

                if message is None:
                    await self.release_transport(CLOSE_NORMAL)
                    return

                batch = [message, *self.outbound.drain_nowait()]
                async with asyncio.timeout(self.write_timeout):
                    for frame in batch:
                        await self.transport.send(frame)
        except TransportClosedError as exc:
            logger.debug("WebSocket write side closed (code=%s)", exc.code)
        except TimeoutError:
            logger.warning(
                "WebSocket write exceeded %.0fs deadline, closing", self.write_timeout
            )
        finally:
            await self.release_transport(CLOSE_NORMAL)

    def handle_frame(self, frame: str | bytes) -> None:
        try:
            payload = decode_client_message(frame)
        except MalformedMessageError as exc:
            logger.warning("Dropping websocket message: %s", exc.reason)
            return

        message_type = client_message_type(payload)
        logger.debug("Received websocket message type=%r", message_type)

        if message_type == ClientMessageType.REQUEST_LIVE_DATA:
            source = self.hub.source
            if not source.is_ready():
                return
            try:
                snapshot = source.get_snapshot()
            except Exception:
                logger.exception(
                    "Live train snapshot failed, skipping request_live_data reply"
                )
                return
            self.send_direct(live_reply_message(snapshot))
        elif message_type == ClientMessageType.PING:
            self.send_direct(pong_message())
        else:
            self.send_direct(echo_message(payload))

    def send_direct(self, message: RealtimeMessage) -> bool:
        """Queue a reply for this client only; never blocks the read loop."""
        try:
            frame = encode_message(message)
        except (TypeError, ValueError):
            logger.exception("Failed to serialize %s reply", message.type.value)
            return False

        try:
            self.outbound.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("Outbound buffer full, dropping %s reply", message.type.value)
            return False
        except BufferClosedError:
            logger.debug("Connection closing, dropping %s reply", message.type.value)
            return False
        return True

    async def release_transport(self, code: int = CLOSE_NORMAL) -> None:
        if self._transport_released:
            return
        self._transport_released = True
        try:
            async with asyncio.timeout(self.write_timeout):
                await self.transport.close(code)
        except (TransportClosedError, TimeoutError) as exc:
            logger.debug("WebSocket transport already gone: %s", exc)

    def _check_frame_size(self, frame: str | bytes) -> None:
        size = len(frame) if isinstance(frame, bytes) else len(frame.encode("utf-8"))
        if size > self.max_message_bytes:
            raise FrameTooLargeError(size, self.max_message_bytes)
