from fastapi import APIRouter

from app.api.v1.routes import health, stations, trains

api_router = APIRouter()
api_router.include_router(health.router, prefix="/v1", tags=["health"])
api_router.include_router(trains.router, prefix="/v1/trains", tags=["trains"])
api_router.include_router(stations.router, prefix="/v1/stations", tags=["stations"])
