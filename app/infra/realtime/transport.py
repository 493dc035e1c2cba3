from typing import Protocol

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

from app.infra.realtime.errors import TransportClosedError
from app.infra.realtime.protocol import encode_message, heartbeat_message

_TRANSPORT_ERRORS = (RuntimeError, WebSocketDisconnect, OSError)


class Transport(Protocol):
    async def receive(self) -> str | bytes: ...

    async def send(self, message: str) -> None: ...

    async def ping(self) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class StarletteTransport:
    """Adapts an accepted Starlette/FastAPI websocket to :class:`Transport`.

    ASGI has no way to emit control frames, so ``ping()`` sends a ``heartbeat``
    text frame; protocol-level ping/pong is left to the ASGI server.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def receive(self) -> str | bytes:
        try:
            message = await self.websocket.receive()
        except _TRANSPORT_ERRORS as exc:
            raise TransportClosedError(reason=str(exc)) from exc

        if message["type"] == "websocket.disconnect":
            raise TransportClosedError(
                code=message.get("code", 1000), reason=message.get("reason") or ""
            )
        text = message.get("text")
        if text is not None:
            return text
        return message.get("bytes") or b""

    async def send(self, message: str) -> None:
        try:
            await self.websocket.send_text(message)
        except _TRANSPORT_ERRORS as exc:
            raise TransportClosedError(reason=str(exc)) from exc

    async def ping(self) -> None:
        await self.send(encode_message(heartbeat_message()))

    async def close(self, code: int = 1000) -> None:
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close(code=code)
        except _TRANSPORT_ERRORS as exc:
            raise TransportClosedError(code=code, reason=str(exc)) from exc
