from fastapi import APIRouter, Depends, HTTPException, status

from app.api.dependencies import get_loaded_gtfs_service
from app.schemas.api import ApiMeta, ApiResponse
from app.schemas.train import Station
from app.services.errors import StationNotFoundError
from app.services.gtfs_service import GtfsService

router = APIRouter()


@router.get("", response_model=ApiResponse[list[Station]], response_model_exclude_none=True)
async def list_stations(
    gtfs: GtfsService = Depends(get_loaded_gtfs_service),
) -> ApiResponse[list[Station]]:
    stations = gtfs.get_stations()
    return ApiResponse(data=stations, meta=ApiMeta(total=len(stations), count=len(stations)))


@router.get(
    "/{station_id}",
    response_model=ApiResponse[Station],
    response_model_exclude_none=True,
)
async def get_station(
    station_id: str,
    gtfs: GtfsService = Depends(get_loaded_gtfs_service),
) -> ApiResponse[Station]:
    try:
        station = gtfs.get_station(station_id)
    except StationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ApiResponse(data=station)
