from fastapi import APIRouter, WebSocket

from app.core.config import get_settings
from app.infra.realtime import Connection, LiveDataHub, StarletteTransport

CLOSE_INTERNAL_ERROR = 1011

router = APIRouter()


@router.websocket("/ws")
async def live_trains_ws(websocket: WebSocket) -> None:
    hub: LiveDataHub | None = getattr(websocket.app.state, "live_hub", None)
    if hub is None or hub.stopped:
        await websocket.close(code=CLOSE_INTERNAL_ERROR, reason="Realtime hub not initialized")
        return

    settings = getattr(websocket.app.state, "settings", None) or get_settings()
    await websocket.accept()

    connection = Connection.from_settings(hub, StarletteTransport(websocket), settings)
    # The welcome is queued once register returns, ahead of any reply from serve().
    if not await hub.register(connection):
        await connection.release_transport(CLOSE_INTERNAL_ERROR)
        return
    await connection.serve()
