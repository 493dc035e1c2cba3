from datetime import datetime

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    uptime_seconds: int
    gtfs_loaded: bool
    websocket_clients: int


class ProbeResponse(BaseModel):
    status: str
    message: str | None = None
