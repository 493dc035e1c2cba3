"""Live-data websocket fanout: hub, per-client connections and wire protocol."""

from app.infra.realtime.connection import Connection
from app.infra.realtime.hub import LiveDataHub
from app.infra.realtime.transport import StarletteTransport

__all__ = ["Connection", "LiveDataHub", "StarletteTransport"]
