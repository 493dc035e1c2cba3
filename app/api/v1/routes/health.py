import time
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request, Response, status

from app.api.dependencies import get_gtfs_service, get_live_hub
from app.infra.realtime import LiveDataHub
from app.schemas.health import HealthResponse, ProbeResponse
from app.services.gtfs_service import GtfsService

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(
    request: Request,
    gtfs: GtfsService = Depends(get_gtfs_service),
    hub: LiveDataHub = Depends(get_live_hub),
) -> HealthResponse:
    started_at = getattr(request.app.state, "started_at", time.monotonic())
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=request.app.version,
        uptime_seconds=int(time.monotonic() - started_at),
        gtfs_loaded=gtfs.is_ready(),
        websocket_clients=hub.client_count,
    )


@router.get("/health/ready", response_model=ProbeResponse)
async def ready(
    response: Response,
    gtfs: GtfsService = Depends(get_gtfs_service),
) -> ProbeResponse:
    if not gtfs.is_ready():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ProbeResponse(status="not_ready", message="GTFS data is still loading")
    return ProbeResponse(status="ready")


@router.get("/health/live", response_model=ProbeResponse)
async def live() -> ProbeResponse:
    return ProbeResponse(status="alive")
