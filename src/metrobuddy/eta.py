"""Trip history and ETA estimation."""

import logging
from dataclasses import asdict
from typing import List, Optional

import pandas as pd

from .geo import AVERAGE_SPEED_KMH, estimate_duration_minutes, round_half_up
from .models import Trip

logger = logging.getLogger(__name__)

TRIP_COLUMNS = [
    "from_id",
    "to_id",
    "start_time",
    "end_time",
    "duration_minutes",
    "distance_km",
    "simulated",
    "planned_stops_count",
    "planned_distance_km",
    "transfer_count",
    "path",
]


class TripHistory:
    """In-memory store of completed trips, queried for historical ETAs."""

    def __init__(self, trips: Optional[List[Trip]] = None):
        self._frame = pd.DataFrame(columns=TRIP_COLUMNS)
        for trip in trips or []:
            self.add_trip(trip)

    def add_trip(self, trip: Trip) -> None:
        """Record a completed trip."""
        row = pd.DataFrame([asdict(trip)], columns=TRIP_COLUMNS)
        if self._frame.empty:
            self._frame = row
        else:
            self._frame = pd.concat([self._frame, row], ignore_index=True)
        logger.info(f"Recorded trip {trip.from_id} -> {trip.to_id} ({trip.duration_minutes} min)")

    def __len__(self) -> int:
        return len(self._frame)

    def trips(self) -> List[Trip]:
        """All trips, most recent start time first."""
        if self._frame.empty:
            return []
        ordered = self._frame.sort_values("start_time", ascending=False, kind="stable")
        return [Trip(**record) for record in ordered.to_dict("records")]

    def average_duration(self, from_id: str, to_id: str) -> Optional[float]:
        """Mean duration in minutes of past trips for the exact (from, to) pair."""
        if self._frame.empty:
            return None
        mask = (self._frame["from_id"] == from_id) & (self._frame["to_id"] == to_id)
        durations = self._frame.loc[mask, "duration_minutes"].astype(float)
        if durations.empty:
            return None
        return float(durations.mean())

    def historical_eta(self, from_id: str, to_id: str) -> Optional[int]:
        """
        Rounded average duration for a station pair.

        Returns None when either id is unset or no trip between them exists.
        """
        if not from_id or not to_id:
            return None
        average = self.average_duration(from_id, to_id)
        if not average:
            return None
        return round_half_up(average)


def predicted_eta(
    remaining_distance_km: Optional[float],
    historical_minutes: Optional[float] = None,
    average_speed_kmh: float = AVERAGE_SPEED_KMH,
) -> float:
    """
    ETA in minutes for the displayed default.

    A known historical value takes precedence unchanged; otherwise the
    remaining distance is projected at the average operating speed.
    """
    if historical_minutes is not None:
        return historical_minutes
    return estimate_duration_minutes(remaining_distance_km, average_speed_kmh)
