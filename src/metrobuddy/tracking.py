"""
Live journey tracking as a pure state machine.

``transition(context, state, event)`` returns the next ``TrackingState`` and
the effects to carry out. It never touches clocks, timers or devices; the
``JourneyTracker`` actor feeds it events one at a time and applies the
effects it returns.
"""

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Mapping, Optional, Tuple, Union

from .eta import predicted_eta
from .geo import AVERAGE_SPEED_KMH, find_nearest_station, haversine_km, round_half_up
from .models import (
    Journey,
    PositionError,
    PositionSample,
    Preferences,
    SoundProfile,
    Station,
    Transfer,
    Trip,
)
from .routes import path_stations

logger = logging.getLogger(__name__)

ARRIVAL_RADIUS_METERS = 120
OUTLIER_THRESHOLD_KM = 5.0

ALERT_VIBRATION = (300, 120, 300, 120, 600)
ARRIVAL_VIBRATION = (400, 140, 600, 140, 800)
ALERT_SOUND_DURATION_MS = 4000


class TrackingStatus(Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    ALERTED = "alerted"
    COMPLETED = "completed"
    COMPLETED_OFFLINE = "completed_offline"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (TrackingStatus.COMPLETED, TrackingStatus.COMPLETED_OFFLINE, TrackingStatus.CANCELLED)


@dataclass(frozen=True)
class TrackingConfig:
    """Thresholds for arrival detection and GPS outlier rejection."""
    arrival_radius_meters: float = ARRIVAL_RADIUS_METERS
    outlier_threshold_km: float = OUTLIER_THRESHOLD_KM
    average_speed_kmh: float = AVERAGE_SPEED_KMH


@dataclass(frozen=True)
class JourneyContext:
    """Read-only inputs the state machine needs for one journey."""
    journey: Journey
    path_stations: Tuple[Station, ...]
    destination: Optional[Station]
    preferences: Preferences = Preferences()
    config: TrackingConfig = TrackingConfig()

    @classmethod
    def build(
        cls,
        journey: Journey,
        station_lookup: Mapping[str, Station],
        preferences: Optional[Preferences] = None,
        config: Optional[TrackingConfig] = None,
    ) -> "JourneyContext":
        return cls(
            journey=journey,
            path_stations=path_stations(journey.chosen_path, station_lookup),
            destination=station_lookup.get(journey.to_id),
            preferences=preferences or Preferences(),
            config=config or TrackingConfig(),
        )

    @property
    def path_ids(self) -> Tuple[str, ...]:
        return tuple(station.stop_id for station in self.path_stations)


# Events


@dataclass(frozen=True)
class StartTracking:
    now: datetime
    historical_eta_minutes: Optional[float] = None


@dataclass(frozen=True)
class PositionReceived:
    sample: PositionSample
    now: datetime


@dataclass(frozen=True)
class PositionFailed:
    error: PositionError
    message: str = ""


@dataclass(frozen=True)
class HistoricalEtaLoaded:
    minutes: Optional[float]


@dataclass(frozen=True)
class OfflineTimerElapsed:
    now: datetime


@dataclass(frozen=True)
class CancelJourney:
    now: datetime


Event = Union[StartTracking, PositionReceived, PositionFailed, HistoricalEtaLoaded, OfflineTimerElapsed, CancelJourney]


# Effects


@dataclass(frozen=True)
class LiveMetrics:
    """Progress of the traveller along the planned path."""
    nearest_station_id: Optional[str]
    previous_station_id: Optional[str]
    next_station_id: Optional[str]
    remaining_stops: int
    distance_to_destination_m: Optional[int]
    distance_travelled_km: float
    predicted_eta_minutes: Optional[float]
    active_segment_index: Optional[int]
    upcoming_transfer: Optional[Transfer]


@dataclass(frozen=True)
class Vibrate:
    pattern: Tuple[int, ...]


@dataclass(frozen=True)
class PlayAlert:
    profile: SoundProfile
    duration_ms: int = ALERT_SOUND_DURATION_MS


@dataclass(frozen=True)
class StopAlert:
    pass


@dataclass(frozen=True)
class ArmOfflineTimer:
    fire_at: datetime


@dataclass(frozen=True)
class CancelOfflineTimer:
    pass


@dataclass(frozen=True)
class ProgressUpdate:
    metrics: LiveMetrics


@dataclass(frozen=True)
class TripCompleted:
    trip: Trip


Effect = Union[Vibrate, PlayAlert, StopAlert, ArmOfflineTimer, CancelOfflineTimer, ProgressUpdate, TripCompleted]


@dataclass(frozen=True)
class TrackingState:
    """Everything the state machine remembers about the active journey."""
    journey_start: datetime
    status: TrackingStatus = TrackingStatus.PLANNED
    nearest_station_id: Optional[str] = None
    distance_travelled_km: float = 0.0
    alert_fired: bool = False
    completed: bool = False
    last_position: Optional[PositionSample] = None
    historical_eta_minutes: Optional[float] = None
    offline_timer_armed: bool = False
    position_error: Optional[PositionError] = None

    @classmethod
    def initial(cls, journey: Journey) -> "TrackingState":
        return cls(journey_start=journey.start_time)


def transition(context: JourneyContext, state: TrackingState, event: Event) -> Tuple[TrackingState, List[Effect]]:
    """Apply one event to the tracking state."""
    if state.status.terminal:
        logger.debug(f"Ignoring {type(event).__name__} after journey ended ({state.status.value})")
        return state, []

    if isinstance(event, StartTracking):
        return _on_start(context, state, event)
    if isinstance(event, PositionReceived):
        return _on_position(context, state, event)
    if isinstance(event, PositionFailed):
        return _on_position_failed(context, state, event)
    if isinstance(event, HistoricalEtaLoaded):
        return _on_historical_eta(context, state, event)
    if isinstance(event, OfflineTimerElapsed):
        return _on_offline_timer(context, state, event)
    if isinstance(event, CancelJourney):
        return _on_cancel(context, state, event)

    raise TypeError(f"Unsupported tracking event: {event!r}")


def _on_start(context, state, event):
    if state.status is not TrackingStatus.PLANNED:
        return state, []

    historical = event.historical_eta_minutes
    if historical is None:
        historical = state.historical_eta_minutes
    state = replace(state, status=TrackingStatus.ACTIVE, historical_eta_minutes=historical)
    return _arm_offline_timer(context, state)


def _on_historical_eta(context, state, event):
    if state.offline_timer_armed:
        # The armed timer already committed to the earlier estimate
        return state, []
    state = replace(state, historical_eta_minutes=event.minutes)
    if state.status is TrackingStatus.PLANNED:
        return state, []
    return _arm_offline_timer(context, state)


def _arm_offline_timer(context, state):
    """Arm the offline fallback once, and only while no live fix has arrived; the first fix disarms it."""
    if state.last_position is not None or state.offline_timer_armed or not state.historical_eta_minutes:
        return state, []

    fire_at = context.journey.start_time + timedelta(minutes=state.historical_eta_minutes)
    logger.info(f"No live position yet; offline completion armed for {fire_at.isoformat()}")
    return replace(state, offline_timer_armed=True), [ArmOfflineTimer(fire_at=fire_at)]


def _on_position_failed(context, state, event):
    logger.warning(f"Position source error ({event.error.value}): {event.message or 'no details'}")
    state = replace(state, position_error=event.error)
    if state.status is TrackingStatus.PLANNED:
        return state, []
    return _arm_offline_timer(context, state)


def _on_position(context, state, event):
    sample = event.sample
    config = context.config
    position = (sample.latitude, sample.longitude)

    nearest, _ = find_nearest_station(position, context.path_stations)
    nearest_id = nearest.stop_id if nearest is not None else state.nearest_station_id

    travelled = state.distance_travelled_km
    if state.last_position is not None:
        previous = (state.last_position.latitude, state.last_position.longitude)
        delta_km = haversine_km(previous, position)
        if delta_km < config.outlier_threshold_km:
            travelled += delta_km
        else:
            logger.warning(f"Ignoring {delta_km:.2f} km jump between samples")

    effects: List[Effect] = []
    if state.offline_timer_armed and not state.completed:
        # A live fix means the offline fallback is no longer needed
        logger.info("Live position received; offline completion disarmed")
        effects.append(CancelOfflineTimer())

    status = TrackingStatus.ACTIVE if state.status is TrackingStatus.PLANNED else state.status
    state = replace(
        state,
        status=status,
        nearest_station_id=nearest_id,
        distance_travelled_km=travelled,
        last_position=sample,
        position_error=None,
        offline_timer_armed=False,
    )

    distance_to_destination_m = None
    if context.destination is not None:
        destination_km = haversine_km(position, context.destination.coordinates)
        if not math.isinf(destination_km):
            distance_to_destination_m = round_half_up(destination_km * 1000)

    metrics = _live_metrics(context, state, distance_to_destination_m)
    effects.append(ProgressUpdate(metrics=metrics))

    if not state.alert_fired:
        near_destination = (
            distance_to_destination_m is not None
            and distance_to_destination_m <= context.preferences.alarm_distance_meters
        )
        one_stop_away = metrics.next_station_id is not None and metrics.next_station_id == context.journey.to_id
        if near_destination or one_stop_away:
            logger.info(f"Approaching {context.journey.to_id}; firing proximity alert")
            effects.append(Vibrate(pattern=ALERT_VIBRATION))
            profile = context.preferences.sound_profile
            if profile is not None:
                effects.append(PlayAlert(profile=profile))
            state = replace(state, alert_fired=True, status=TrackingStatus.ALERTED)

    if (
        not state.completed
        and nearest_id == context.journey.to_id
        and distance_to_destination_m is not None
        and distance_to_destination_m <= config.arrival_radius_meters
    ):
        state, completion = _complete(context, state, event.now)
        effects.extend(completion)

    return state, effects


def _live_metrics(context, state, distance_to_destination_m):
    journey = context.journey
    path_ids = context.path_ids
    nearest_id = state.nearest_station_id
    index = path_ids.index(nearest_id) if nearest_id in path_ids else -1

    previous_id = path_ids[index - 1] if index > 0 else None
    next_id = path_ids[index + 1] if 0 <= index < len(path_ids) - 1 else None

    planned_stops = journey.planned_stops_count or max(len(path_ids) - 1, 0)
    remaining_stops = max(planned_stops - index, 0) if index >= 0 else planned_stops

    active_segment_index = None
    for position, segment in enumerate(journey.planned_segments):
        if nearest_id in segment.stop_ids:
            active_segment_index = position
            break

    upcoming_transfer = None
    for transfer in journey.planned_transfers:
        if transfer.at_station_id in path_ids and path_ids.index(transfer.at_station_id) > index:
            upcoming_transfer = transfer
            break

    predicted = None
    if distance_to_destination_m is not None:
        predicted = predicted_eta(
            distance_to_destination_m / 1000,
            state.historical_eta_minutes,
            context.config.average_speed_kmh,
        )

    return LiveMetrics(
        nearest_station_id=nearest_id,
        previous_station_id=previous_id,
        next_station_id=next_id,
        remaining_stops=remaining_stops,
        distance_to_destination_m=distance_to_destination_m,
        distance_travelled_km=round(state.distance_travelled_km, 2),
        predicted_eta_minutes=predicted,
        active_segment_index=active_segment_index,
        upcoming_transfer=upcoming_transfer,
    )


def _build_trip(context, state, end_time, duration_minutes, simulated):
    journey = context.journey
    return Trip(
        from_id=journey.from_id,
        to_id=journey.to_id,
        start_time=journey.start_time,
        end_time=end_time,
        duration_minutes=duration_minutes,
        distance_km=round(state.distance_travelled_km, 2),
        simulated=simulated,
        planned_stops_count=journey.planned_stops_count,
        planned_distance_km=round(journey.planned_distance_km, 2),
        transfer_count=len(journey.planned_transfers),
        path=journey.chosen_path,
    )


def _complete(context, state, now):
    elapsed_minutes = (now - context.journey.start_time).total_seconds() / 60
    duration = max(1, round_half_up(elapsed_minutes))
    trip = _build_trip(context, state, now, duration, simulated=False)

    effects: List[Effect] = []
    if state.alert_fired:
        effects.append(StopAlert())
    if state.offline_timer_armed:
        effects.append(CancelOfflineTimer())
    effects.append(Vibrate(pattern=ARRIVAL_VIBRATION))
    effects.append(TripCompleted(trip=trip))

    logger.info(f"Arrived at {trip.to_id} after {duration} min")
    return replace(state, completed=True, status=TrackingStatus.COMPLETED), effects


def _on_offline_timer(context, state, event):
    if (
        state.completed
        or state.last_position is not None
        or not state.offline_timer_armed
        or not state.historical_eta_minutes
    ):
        return state, []

    eta_minutes = state.historical_eta_minutes
    end_time = context.journey.start_time + timedelta(minutes=eta_minutes)
    trip = _build_trip(context, state, end_time, eta_minutes, simulated=True)

    effects: List[Effect] = []
    if state.alert_fired:
        effects.append(StopAlert())
    effects.append(TripCompleted(trip=trip))

    logger.info(f"No arrival detected; recording simulated trip of {eta_minutes} min")
    return replace(state, completed=True, status=TrackingStatus.COMPLETED_OFFLINE), effects


def _on_cancel(context, state, event):
    effects: List[Effect] = []
    if state.alert_fired:
        effects.append(StopAlert())
    if state.offline_timer_armed:
        effects.append(CancelOfflineTimer())

    logger.info(f"Journey {context.journey.from_id} -> {context.journey.to_id} cancelled")
    return replace(state, status=TrackingStatus.CANCELLED), effects
