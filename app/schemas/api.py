from datetime import UTC, datetime
from typing import Generic, TypeVar

from pydantic import Field

from app.schemas.train import CamelModel

DataT = TypeVar("DataT")

GTFS_SOURCE = "swiss_gtfs_data"


class ApiMeta(CamelModel):
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    source: str = GTFS_SOURCE
    total: int | None = None
    count: int | None = None
    note: str | None = None
    update_interval: int | None = None


class ApiResponse(CamelModel, Generic[DataT]):
    data: DataT
    meta: ApiMeta = Field(default_factory=ApiMeta)
