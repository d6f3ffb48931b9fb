"""Great-circle distance helpers."""

import math
from typing import Iterable, Optional, Tuple

from .models import Station

EARTH_RADIUS_KM = 6371.0

# Assumed average operating speed for distance-based estimates
AVERAGE_SPEED_KMH = 32.0

Coordinate = Tuple[float, float]


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values."""
    return int(math.floor(value + 0.5))


def haversine_km(coord_a: Optional[Coordinate], coord_b: Optional[Coordinate]) -> float:
    """
    Great-circle distance between two (latitude, longitude) pairs in kilometres.

    A missing coordinate yields infinity so that comparisons stay total-ordered.
    """
    if coord_a is None or coord_b is None:
        return math.inf

    lat1, lon1 = coord_a
    lat2, lon2 = coord_b
    if None in (lat1, lon1, lat2, lon2):
        return math.inf

    lat_diff = math.radians(lat2 - lat1)
    lon_diff = math.radians(lon2 - lon1)

    a = (
        math.sin(lat_diff / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(lon_diff / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def station_distance_km(station_a: Optional[Station], station_b: Optional[Station]) -> float:
    """Distance between two stations, infinite if either is unknown or unplaced."""
    if station_a is None or station_b is None:
        return math.inf
    return haversine_km(station_a.coordinates, station_b.coordinates)


def find_nearest_station(
    position: Optional[Coordinate], stations: Iterable[Station]
) -> Tuple[Optional[Station], float]:
    """
    Find the station closest to a position.

    Returns:
        (station, distance_km). Station is None when there is no position or no
        candidate with coordinates; distance is then infinite. Ties keep the
        earliest station.
    """
    nearest: Optional[Station] = None
    nearest_km = math.inf
    if position is None:
        return nearest, nearest_km

    for station in stations:
        distance_km = haversine_km(position, station.coordinates)
        if distance_km < nearest_km:
            nearest, nearest_km = station, distance_km

    return nearest, nearest_km


def estimate_duration_minutes(distance_km: Optional[float], average_speed_kmh: float = AVERAGE_SPEED_KMH) -> int:
    """Minutes needed to cover a distance at the assumed average speed."""
    if not distance_km or math.isinf(distance_km):
        return 0
    return round_half_up(distance_km / average_speed_kmh * 60)
