from fastapi import Depends, HTTPException, Request, status

from app.core.config import Settings, get_settings
from app.infra.realtime import LiveDataHub
from app.services.gtfs_service import GtfsService


def get_gtfs_service(request: Request) -> GtfsService:
    service = getattr(request.app.state, "gtfs_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="GTFS service is not initialized",
        )
    return service


def get_live_hub(request: Request) -> LiveDataHub:
    hub = getattr(request.app.state, "live_hub", None)
    if hub is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Realtime hub is not initialized",
        )
    return hub


def get_loaded_gtfs_service(
    service: GtfsService = Depends(get_gtfs_service),
) -> GtfsService:
    if not service.is_ready():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="GTFS data is still loading. Please try again later.",
        )
    return service


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()
