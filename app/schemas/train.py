from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Coordinate(CamelModel):
    x: float
    y: float


class Station(CamelModel):
    id: str
    name: str
    coordinate: Coordinate


class Position(CamelModel):
    lat: float
    lng: float


class TrainStop(CamelModel):
    station: Station | None = None
    arrival_time: str | None = None
    departure_time: str | None = None
    platform: str | None = None
    is_current_station: bool = False
    is_passed: bool = False
    is_skipped: bool = False


class LiveTrain(CamelModel):
    id: str
    name: str
    category: str
    number: str
    operator: str
    from_: str = Field(alias="from")
    to: str
    position: Position | None = None
    current_station: Station | None = None
    delay: int = 0
    cancelled: bool = False
    speed: int = 0
    direction: int = 0
    last_update: str
    departure_time: str | None = None
    arrival_time: str | None = None
    timetable: list[TrainStop] = []


class GtfsStats(CamelModel):
    agencies: int
    stops: int
    routes: int
    trips: int
    stop_times: int
    data_loaded: bool
    timestamp: str


class TrainStats(CamelModel):
    total: int
    by_category: dict[str, int]
    by_operator: dict[str, int]
    delayed: int
    on_time: int
    cancelled: int
    average_delay: float
    average_speed: float
