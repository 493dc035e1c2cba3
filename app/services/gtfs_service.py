import csv
import logging
import math
import time
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.schemas.train import (
    Coordinate,
    GtfsStats,
    LiveTrain,
    Position,
    Station,
    TrainStats,
    TrainStop,
)
from app.services.errors import GtfsLoadError, StationNotFoundError, TrainNotFoundError

logger = logging.getLogger(__name__)

Row = dict[str, str]

GTFS_FILES = (
    "agency.txt",
    "stops.txt",
    "routes.txt",
    "trips.txt",
    "stop_times.txt",
)
DEFAULT_OPERATOR = "SBB"
UNKNOWN_STOP_NAME = "Unknown"


@dataclass(frozen=True, slots=True)
class GtfsDataset:
    agencies: list[Row]
    stops: list[Row]
    routes: list[Row]
    trips: list[Row]
    stop_times: list[Row]
    stops_index: dict[str, Row]
    trips_index: dict[str, Row]
    routes_index: dict[str, Row]
    agencies_index: dict[str, Row]
    trip_stop_times: dict[str, list[Row]]


def read_gtfs_csv(path: Path) -> list[Row]:
    if not path.exists():
        logger.warning("GTFS file not found: %s", path)
        return []

    try:
        with path.open(newline="", encoding="utf-8-sig") as handle:
            reader = csv.DictReader(handle, skipinitialspace=True)
            if reader.fieldnames is None:
                return []
            reader.fieldnames = [name.strip() for name in reader.fieldnames]
            return [
                {key: (value or "").strip() for key, value in row.items() if key is not None}
                for row in reader
            ]
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise GtfsLoadError(path, str(exc)) from exc


def parse_time_to_minutes(value: str) -> int:
    parts = value.split(":")
    if len(parts) < 2:
        return -1
    try:
        return int(parts[0]) * 60 + int(parts[1])
    except ValueError:
        return -1


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    earth_radius_km = 6371.0
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    return earth_radius_km * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bearing_degrees(lat1: float, lon1: float, lat2: float, lon2: float) -> int:
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    d_lon = math.radians(lon2 - lon1)
    y = math.sin(d_lon) * math.cos(lat2_rad)
    x = math.cos(lat1_rad) * math.sin(lat2_rad) - math.sin(lat1_rad) * math.cos(
        lat2_rad
    ) * math.cos(d_lon)
    return int(math.fmod(math.degrees(math.atan2(y, x)) + 360, 360))


def _to_float(value: str | None) -> float:
    try:
        return float(value or 0)
    except ValueError:
        return 0.0


def _to_int(value: str | None) -> int:
    try:
        return int(value or 0)
    except ValueError:
        return 0


def _load_timezone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        logger.warning("Timezone %s unavailable, falling back to UTC", name)
        return UTC


def _index_by(rows: list[Row], key: str) -> dict[str, Row]:
    return {row[key]: row for row in rows if key in row}


class GtfsService:
    """In-memory GTFS timetable that doubles as the live-train snapshot source."""

    def __init__(
        self,
        data_path: str | Path,
        *,
        timezone: str = "Europe/Zurich",
        live_trains_limit: int = 30,
    ) -> None:
        self.data_path = Path(data_path)
        self.timezone = _load_timezone(timezone)
        self.live_trains_limit = live_trains_limit
        self._dataset: GtfsDataset | None = None

    def load_data(self) -> None:
        logger.info("Loading Swiss GTFS data from %s", self.data_path)
        started = time.perf_counter()

        tables = {name: read_gtfs_csv(self.data_path / name) for name in GTFS_FILES}

        trip_stop_times: dict[str, list[Row]] = {}
        for stop_time in tables["stop_times.txt"]:
            trip_stop_times.setdefault(stop_time.get("trip_id", ""), []).append(stop_time)
        for stop_times in trip_stop_times.values():
            stop_times.sort(key=lambda row: _to_int(row.get("stop_sequence")))

        dataset = GtfsDataset(
            agencies=tables["agency.txt"],
            stops=tables["stops.txt"],
            routes=tables["routes.txt"],
            trips=tables["trips.txt"],
            stop_times=tables["stop_times.txt"],
            stops_index=_index_by(tables["stops.txt"], "stop_id"),
            trips_index=_index_by(tables["trips.txt"], "trip_id"),
            routes_index=_index_by(tables["routes.txt"], "route_id"),
            agencies_index=_index_by(tables["agency.txt"], "agency_id"),
            trip_stop_times=trip_stop_times,
        )
        # Published in one assignment so readers never see a partial dataset.
        self._dataset = dataset

        logger.info(
            "Swiss GTFS data loaded: %d stops, %d routes, %d trips, %d stop times in %.2fs",
            len(dataset.stops),
            len(dataset.routes),
            len(dataset.trips),
            len(dataset.stop_times),
            time.perf_counter() - started,
        )

    def is_ready(self) -> bool:
        return self._dataset is not None

    def get_stats(self) -> GtfsStats:
        dataset = self._dataset
        now = datetime.now(self.timezone)
        return GtfsStats(
            agencies=len(dataset.agencies) if dataset else 0,
            stops=len(dataset.stops) if dataset else 0,
            routes=len(dataset.routes) if dataset else 0,
            trips=len(dataset.trips) if dataset else 0,
            stop_times=len(dataset.stop_times) if dataset else 0,
            data_loaded=dataset is not None,
            timestamp=f"{now.month}/{now.day}/{now.year}, {now:%H:%M:%S}",
        )

    def get_snapshot(self) -> list[dict[str, Any]]:
        return [
            train.model_dump(mode="json", by_alias=True, exclude_none=True)
            for train in self.get_live_trains()
        ]

    def get_live_trains(self, now: datetime | None = None) -> list[LiveTrain]:
        dataset = self._dataset
        if dataset is None or not dataset.trips:
            return []

        current = now.astimezone(self.timezone) if now else datetime.now(self.timezone)
        trains: list[LiveTrain] = []
        for trip_id, stop_times in dataset.trip_stop_times.items():
            if len(trains) >= self.live_trains_limit:
                break
            train = self._build_live_train(dataset, trip_id, stop_times, current)
            if train is not None:
                trains.append(train)

        trains.sort(key=lambda train: train.name)
        return trains

    def get_train(self, train_id: str, now: datetime | None = None) -> LiveTrain:
        for train in self.get_live_trains(now):
            if train.id == train_id:
                return train
        raise TrainNotFoundError(train_id)

    def get_train_stats(self, now: datetime | None = None) -> TrainStats:
        trains = self.get_live_trains(now)
        by_category: dict[str, int] = {}
        by_operator: dict[str, int] = {}
        for train in trains:
            by_category[train.category] = by_category.get(train.category, 0) + 1
            by_operator[train.operator] = by_operator.get(train.operator, 0) + 1

        delayed = sum(1 for train in trains if train.delay > 0)
        return TrainStats(
            total=len(trains),
            by_category=by_category,
            by_operator=by_operator,
            delayed=delayed,
            on_time=len(trains) - delayed,
            cancelled=sum(1 for train in trains if train.cancelled),
            average_delay=sum(train.delay for train in trains) / len(trains) if trains else 0.0,
            average_speed=sum(train.speed for train in trains) / len(trains) if trains else 0.0,
        )

    def get_stations(self) -> list[Station]:
        dataset = self._dataset
        if dataset is None:
            return []
        return [self._station(stop) for stop in dataset.stops]

    def get_station(self, station_id: str) -> Station:
        dataset = self._dataset
        stop = dataset.stops_index.get(station_id) if dataset else None
        if stop is None:
            raise StationNotFoundError(station_id)
        return self._station(stop)

    def _station(self, stop: Row) -> Station:
        return Station(
            id=stop.get("stop_id", ""),
            name=stop.get("stop_name", ""),
            coordinate=Coordinate(
                x=_to_float(stop.get("stop_lon")), y=_to_float(stop.get("stop_lat"))
            ),
        )

    def _build_live_train(
        self,
        dataset: GtfsDataset,
        trip_id: str,
        stop_times: list[Row],
        now: datetime,
    ) -> LiveTrain | None:
        if len(stop_times) < 2:
            return None
        trip = dataset.trips_index.get(trip_id)
        if trip is None:
            return None
        route = dataset.routes_index.get(trip.get("route_id", ""))
        if route is None:
            return None

        first_departure = stop_times[0].get("departure_time", "")
        last_arrival = stop_times[-1].get("arrival_time", "")
        if not first_departure or not last_arrival:
            return None

        trip_start = parse_time_to_minutes(first_departure)
        trip_end = parse_time_to_minutes(last_arrival)
        if trip_start < 0 or trip_end < 0:
            return None

        minutes = now.hour * 60 + now.minute
        if minutes < trip_start or minutes > trip_end:
            return None

        from_index, to_index = 0, 0
        from_minutes, to_minutes = 0, 0
        for index in range(len(stop_times) - 1):
            departure = stop_times[index].get("departure_time") or stop_times[index].get(
                "arrival_time", ""
            )
            next_arrival = stop_times[index + 1].get("arrival_time") or stop_times[
                index + 1
            ].get("departure_time", "")
            segment_start = parse_time_to_minutes(departure)
            segment_end = parse_time_to_minutes(next_arrival)
            if 0 <= segment_start <= minutes <= segment_end:
                from_index, to_index = index, index + 1
                from_minutes, to_minutes = segment_start, segment_end
                break

        from_stop = dataset.stops_index.get(stop_times[from_index].get("stop_id", ""))
        to_stop = dataset.stops_index.get(stop_times[to_index].get("stop_id", ""))
        if from_stop is None or to_stop is None:
            return None

        from_lat = _to_float(from_stop.get("stop_lat"))
        from_lon = _to_float(from_stop.get("stop_lon"))
        to_lat = _to_float(to_stop.get("stop_lat"))
        to_lon = _to_float(to_stop.get("stop_lon"))

        progress = 0.0
        segment_duration = to_minutes - from_minutes
        if segment_duration > 0:
            progress = (minutes - from_minutes) / segment_duration
            progress += now.second / 60.0 / segment_duration
            progress = min(progress, 1.0)

        trip_hash = sum(ord(char) for char in trip_id)
        speed = 0
        if segment_duration > 0:
            distance = haversine_km(from_lat, from_lon, to_lat, to_lon)
            speed = int(distance / (segment_duration / 60.0))
        if speed < 20:
            speed = 60 + trip_hash % 40
        if speed > 200:
            speed = 160 + trip_hash % 40

        timetable = self._build_timetable(dataset, stop_times, minutes * 60 + now.second)
        current_station = (
            timetable[from_index].station if progress < 0.5 else timetable[to_index].station
        )

        first_stop = dataset.stops_index.get(stop_times[0].get("stop_id", ""))
        last_stop = dataset.stops_index.get(stop_times[-1].get("stop_id", ""))
        route_name = route.get("route_short_name") or "Train"
        agency = dataset.agencies_index.get(route.get("agency_id", ""))

        return LiveTrain(
            id=trip_id,
            name=route_name,
            category=route_name.split(" ")[0],
            number=trip_id,
            operator=agency.get("agency_name", DEFAULT_OPERATOR) if agency else DEFAULT_OPERATOR,
            from_=first_stop.get("stop_name", UNKNOWN_STOP_NAME) if first_stop else UNKNOWN_STOP_NAME,
            to=last_stop.get("stop_name", UNKNOWN_STOP_NAME) if last_stop else UNKNOWN_STOP_NAME,
            position=Position(
                lat=from_lat + (to_lat - from_lat) * progress,
                lng=from_lon + (to_lon - from_lon) * progress,
            ),
            current_station=current_station,
            delay=trip_hash % 7,
            speed=speed,
            direction=bearing_degrees(from_lat, from_lon, to_lat, to_lon),
            last_update=now.isoformat(timespec="seconds"),
            departure_time=first_departure,
            arrival_time=last_arrival,
            timetable=timetable,
        )

    def _build_timetable(
        self, dataset: GtfsDataset, stop_times: list[Row], now_seconds: int
    ) -> list[TrainStop]:
        timetable: list[TrainStop] = []
        for index, stop_time in enumerate(stop_times):
            stop_row = dataset.stops_index.get(stop_time.get("stop_id", ""))
            arrival = parse_time_to_minutes(stop_time.get("arrival_time", ""))
            departure = parse_time_to_minutes(stop_time.get("departure_time", ""))
            # Origin has no arrival and terminus has no departure.
            if arrival < 0 <= departure:
                arrival = departure
            if departure < 0 <= arrival:
                departure = arrival

            is_passed = False
            is_current = False
            if departure >= 0:
                if now_seconds > departure * 60:
                    is_passed = True
                elif arrival >= 0 and arrival * 60 <= now_seconds <= departure * 60:
                    is_current = True

            timetable.append(
                TrainStop(
                    station=self._station(stop_row) if stop_row else None,
                    arrival_time=stop_time.get("arrival_time") or None,
                    departure_time=stop_time.get("departure_time") or None,
                    platform=str(index % 10 + 1),
                    is_current_station=is_current,
                    is_passed=is_passed,
                )
            )

        if not any(stop.is_current_station for stop in timetable):
            for stop in timetable:
                if not stop.is_passed:
                    stop.is_current_station = True
                    break
        return timetable
