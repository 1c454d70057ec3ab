"""Data models for normalized ViaggiaTreno records."""

from pydantic import BaseModel, ConfigDict


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


class Station(_Record):
    """Represents an Italian railway station."""

    station_id: str
    name: str
    city: str
    location: tuple[float, float]  # (lat, lon)


class Segment(_Record):
    """A physical track between two stations, with one id per direction."""

    station_id_a: str
    station_id_b: str
    segment_id_ab: int
    segment_id_ba: int
    location_a: tuple[float, float]
    location_b: tuple[float, float]
    busy: bool  # as reported upstream, may be stale

    @property
    def unique_key(self) -> str:
        """Identity shared by both records of a bidirectional track."""
        return f"{self.segment_id_ab}-{self.segment_id_ba}"


class Train(_Record):
    """A train currently known to be running on the network."""

    departed: bool
    arrived: bool
    travelling: bool
    in_station: bool
    departure_time: int  # Unix timestamp (ms)
    segment_id: str
    region_id: int
    train_category: str
    train_number: int
    changing_number: bool
    station_a: str
    station_id_a: str
    station_b: str
    station_id_b: str
    travel_duration: int  # minutes
    delay: int  # minutes
    latest_detection: int | None = None  # Unix timestamp (ms)

    @property
    def key(self) -> tuple[int, int]:
        """Train numbers are only unique within a region."""
        return (self.train_number, self.region_id)


class TrainStopInfo(_Record):
    """One stop of a train's itinerary."""

    station_id: str
    name: str
    is_first_stop: bool
    is_last_stop: bool
    is_current_stop: bool
    expected_arrival: int | None = None
    actual_arrival: int | None = None
    expected_departure: int | None = None
    actual_departure: int | None = None
    delay_at_arrival: int | None = None
    delay_at_departure: int | None = None
    expected_platform: str | None = None
    actual_platform: str | None = None


class TrainAutocompleteMatch(_Record):
    """A candidate (train number, departure station) resolution."""

    train_number: int
    station_a: str
    station_id_a: str


class TrainInfo(_Record):
    """Full itinerary and progress of a single train."""

    train_type: str | None = None
    suppressed_stops: list | None = None
    last_detection: int | None = None
    last_detection_station_name: str | None = None
    station_id_a: str
    station_id_b: str
    name_a: str
    name_b: str
    has_arrived: bool
    stops: list[TrainStopInfo]

    @property
    def current_stop(self) -> TrainStopInfo | None:
        for stop in self.stops:
            if stop.is_current_stop:
                return stop
        return None
