from fastapi import APIRouter, Depends, HTTPException, status

from app.api.dependencies import get_app_settings, get_loaded_gtfs_service
from app.core.config import Settings
from app.schemas.api import ApiMeta, ApiResponse
from app.schemas.train import LiveTrain, TrainStats
from app.services.errors import TrainNotFoundError
from app.services.gtfs_service import GtfsService

router = APIRouter()


@router.get(
    "/live",
    response_model=ApiResponse[list[LiveTrain]],
    response_model_exclude_none=True,
)
async def list_live_trains(
    gtfs: GtfsService = Depends(get_loaded_gtfs_service),
    settings: Settings = Depends(get_app_settings),
) -> ApiResponse[list[LiveTrain]]:
    trains = gtfs.get_live_trains()
    return ApiResponse(
        data=trains,
        meta=ApiMeta(
            count=len(trains),
            note="Live train positions from Swiss GTFS data",
            update_interval=int(settings.ws_update_interval_seconds * 1000),
        ),
    )


@router.get("/stats/summary", response_model=ApiResponse[TrainStats])
async def train_stats(
    gtfs: GtfsService = Depends(get_loaded_gtfs_service),
) -> ApiResponse[TrainStats]:
    return ApiResponse(data=gtfs.get_train_stats())


@router.get(
    "/{train_id}",
    response_model=ApiResponse[LiveTrain],
    response_model_exclude_none=True,
)
async def get_train(
    train_id: str,
    gtfs: GtfsService = Depends(get_loaded_gtfs_service),
) -> ApiResponse[LiveTrain]:
    try:
        train = gtfs.get_train(train_id)
    except TrainNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ApiResponse(data=train)
