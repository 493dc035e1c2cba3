from pathlib import Path


class GtfsLoadError(RuntimeError):
    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Failed to read GTFS file '{path}': {reason}")
        self.path = path
        self.reason = reason


class StationNotFoundError(LookupError):
    def __init__(self, station_id: str) -> None:
        super().__init__(f"Station with ID {station_id} does not exist")
        self.station_id = station_id


class TrainNotFoundError(LookupError):
    def __init__(self, train_id: str) -> None:
        super().__init__(f"Train with ID {train_id} does not exist")
        self.train_id = train_id
