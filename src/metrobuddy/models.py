"""Data models for the Metro Buddy journey engine."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


@dataclass(frozen=True)
class Station:
    """Represents a metro station."""
    stop_id: str
    name: str
    latitude: Optional[float]
    longitude: Optional[float]

    @property
    def coordinates(self) -> Optional[Tuple[float, float]]:
        """Return (latitude, longitude), or None when either is missing."""
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class Line:
    """One directed traversal of a physical route."""
    route_id: str
    direction_id: str
    station_ids: Tuple[str, ...]
    trip_id: Optional[str] = None  # Trip the sequence was derived from


@dataclass(frozen=True)
class Segment:
    """A maximal run of consecutive path edges ridden on one route."""
    route: str
    route_label: str
    stop_ids: Tuple[str, ...]
    from_name: str
    to_name: str

    @property
    def from_id(self) -> str:
        return self.stop_ids[0]

    @property
    def to_id(self) -> str:
        return self.stop_ids[-1]


@dataclass(frozen=True)
class Transfer:
    """A change of route between two adjacent segments."""
    at_station_id: str
    at_name: str
    from_route: str
    to_route: str
    from_route_label: str
    to_route_label: str


@dataclass(frozen=True)
class RouteOption:
    """One planning result for a (from, to) pair."""
    path: Tuple[str, ...]
    segments: Tuple[Segment, ...]
    transfers: Tuple[Transfer, ...]
    stops_count: int
    distance_km: float  # Unrounded sum of hop distances

    @property
    def display_distance_km(self) -> float:
        return round(self.distance_km, 2)


@dataclass(frozen=True)
class Journey:
    """A committed trip between two stations, alive until completed or cancelled."""
    from_id: str
    to_id: str
    start_time: datetime
    chosen_path: Tuple[str, ...] = ()
    planned_distance_km: float = 0.0
    planned_stops_count: int = 0
    planned_segments: Tuple[Segment, ...] = ()
    planned_transfers: Tuple[Transfer, ...] = ()

    @classmethod
    def from_option(cls, option: RouteOption, start_time: datetime) -> "Journey":
        """Create a journey that follows a planned route option."""
        return cls(
            from_id=option.path[0],
            to_id=option.path[-1],
            start_time=start_time,
            chosen_path=option.path,
            planned_distance_km=option.distance_km,
            planned_stops_count=option.stops_count,
            planned_segments=option.segments,
            planned_transfers=option.transfers,
        )


@dataclass(frozen=True)
class PositionSample:
    """A single location fix delivered by a position source."""
    latitude: float
    longitude: float
    timestamp: datetime
    accuracy_meters: Optional[float] = None


class PositionError(Enum):
    """User-facing categories of position-source failure."""
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"
    INSECURE_CONTEXT = "insecure_context"


@dataclass(frozen=True)
class Trip:
    """A completed journey, ready to be stored in trip history."""
    from_id: str
    to_id: str
    start_time: datetime
    end_time: datetime
    duration_minutes: float
    distance_km: float
    simulated: bool = False
    planned_stops_count: int = 0
    planned_distance_km: float = 0.0
    transfer_count: int = 0
    path: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SoundProfile:
    """Tone used for the audible proximity alert."""
    name: str
    waveform: str
    base_frequency_hz: int


SOUND_PROFILES = {
    "sine": SoundProfile(name="sine", waveform="sine", base_frequency_hz=880),
    "chime": SoundProfile(name="chime", waveform="triangle", base_frequency_hz=660),
}

MUTE = "mute"


@dataclass(frozen=True)
class Preferences:
    """Traveller preferences that shape alerting."""
    alarm_distance_meters: float = 500
    notification_sound: str = "sine"  # "sine", "chime" or "mute"

    @property
    def muted(self) -> bool:
        return self.notification_sound == MUTE

    @property
    def sound_profile(self) -> Optional[SoundProfile]:
        if self.muted:
            return None
        return SOUND_PROFILES.get(self.notification_sound, SOUND_PROFILES["sine"])

