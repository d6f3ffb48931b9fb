"""Tests for the geodesic helpers."""

import math
import unittest

from network_fixtures import STATION_LOOKUP, STATIONS

from metrobuddy.geo import (
    estimate_duration_minutes,
    find_nearest_station,
    haversine_km,
    round_half_up,
    station_distance_km,
)
from metrobuddy.models import Station


class TestHaversine(unittest.TestCase):
    """Test great-circle distance."""

    def test_one_degree_of_latitude(self):
        """One degree of latitude is about 111.19 km."""
        self.assertAlmostEqual(haversine_km((0.0, 0.0), (1.0, 0.0)), 111.195, places=2)

    def test_zero_distance(self):
        self.assertEqual(haversine_km((17.4, 78.5), (17.4, 78.5)), 0.0)

    def test_symmetric(self):
        a, b = (17.43, 78.44), (17.36, 78.52)
        self.assertAlmostEqual(haversine_km(a, b), haversine_km(b, a))

    def test_missing_coordinate_is_infinite(self):
        """Missing input never fails, it is just infinitely far away."""
        self.assertTrue(math.isinf(haversine_km(None, (17.0, 78.0))))
        self.assertTrue(math.isinf(haversine_km((17.0, 78.0), None)))

    def test_station_without_coordinates(self):
        unplaced = Station(stop_id="X", name="Nowhere", latitude=None, longitude=78.0)
        self.assertTrue(math.isinf(station_distance_km(unplaced, STATION_LOOKUP["A"])))
        self.assertTrue(math.isinf(station_distance_km(None, STATION_LOOKUP["A"])))


class TestNearestStation(unittest.TestCase):
    """Test nearest-station matching."""

    def test_picks_closest(self):
        station, distance_km = find_nearest_station((17.019, 78.0), STATIONS)
        self.assertEqual(station.stop_id, "C")
        self.assertLess(distance_km, 0.2)

    def test_no_position(self):
        station, distance_km = find_nearest_station(None, STATIONS)
        self.assertIsNone(station)
        self.assertTrue(math.isinf(distance_km))

    def test_no_candidates(self):
        station, _ = find_nearest_station((17.0, 78.0), [])
        self.assertIsNone(station)

    def test_tie_keeps_first(self):
        twins = [
            Station(stop_id="P", name="P", latitude=17.0, longitude=78.0),
            Station(stop_id="Q", name="Q", latitude=17.0, longitude=78.0),
        ]
        station, _ = find_nearest_station((17.0, 78.0), twins)
        self.assertEqual(station.stop_id, "P")


class TestDurationEstimate(unittest.TestCase):
    """Test distance-based duration estimates."""

    def test_average_speed(self):
        self.assertEqual(estimate_duration_minutes(32.0), 60)
        self.assertEqual(estimate_duration_minutes(8.0), 15)

    def test_no_distance(self):
        self.assertEqual(estimate_duration_minutes(0), 0)
        self.assertEqual(estimate_duration_minutes(None), 0)

    def test_round_half_up(self):
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(0.5), 1)
        self.assertEqual(round_half_up(2.49), 2)


if __name__ == "__main__":
    unittest.main()
