"""Tests for JourneyPlanner."""

import asyncio
import unittest
from datetime import timedelta

from network_fixtures import LOOP_LINES, SHARED_EDGE_LINES, START, STATIONS, sample_at

from metrobuddy.eta import TripHistory
from metrobuddy.journey_planner import JourneyPlanner
from metrobuddy.journey_tracker import RecordingEffectSink
from metrobuddy.models import Line, Station, Trip
from metrobuddy.network_loader import NetworkLoader
from metrobuddy.position_source import ManualPositionSource
from metrobuddy.routes import describe_path
from metrobuddy.tracking import ArmOfflineTimer, TrackingStatus, TripCompleted


def make_loader(lines):
    loader = NetworkLoader()
    for station in STATIONS:
        loader._add_station(station)
    loader.lines.extend(lines)
    return loader


class TestJourneyPlanner(unittest.TestCase):
    """Test station lookup, planning and starting journeys."""

    def setUp(self):
        self.planner = JourneyPlanner(make_loader(LOOP_LINES))

    def test_get_station_by_stop_id(self):
        station = self.planner.get_station("C")
        self.assertEqual(station.name, "Charminar")

    def test_get_station_by_name(self):
        station = self.planner.get_station("dilsukh")
        self.assertEqual(station.stop_id, "D")

    def test_get_station_not_found(self):
        with self.assertRaises(ValueError):
            self.planner.get_station("NONEXISTENT")

    def test_find_stations_by_name(self):
        results = self.planner.find_stations_by_name("pet")
        self.assertEqual([station.stop_id for station in results], ["A", "B"])

    def test_plan(self):
        options = self.planner.plan("A", "D")
        self.assertEqual([option.path for option in options], [("A", "B", "C", "D"), ("A", "B", "E", "C", "D")])
        self.assertEqual(options[1].segments[1].route_label, "Blue Line")

        self.assertEqual(len(self.planner.plan("A", "D", max_paths=1)), 1)
        self.assertEqual(self.planner.plan("A", "Z"), [])

    def test_route_labels_from_network(self):
        self.planner.loader.route_labels["BLUE"] = "Line 2"
        options = self.planner.plan("B", "C", max_paths=2)
        self.assertEqual(options[1].segments[0].route_label, "Line 2")

    def test_graph_rebuilt_after_reload(self):
        graph = self.planner.graph
        self.assertIs(self.planner.graph, graph)

        self.planner._graph = None
        self.planner.loader.lines.append(Line(route_id="GREEN", direction_id="0", station_ids=("A", "E")))
        self.assertEqual(self.planner.plan("A", "E", max_paths=1)[0].path, ("A", "E"))

    def test_start_journey_with_option(self):
        option = self.planner.plan("A", "D")[1]
        journey = self.planner.start_journey("A", "D", option=option, start_time=START)

        self.assertEqual(journey.chosen_path, ("A", "B", "E", "C", "D"))
        self.assertEqual(journey.planned_stops_count, 4)
        self.assertEqual(len(journey.planned_transfers), 2)
        self.assertEqual(journey.planned_distance_km, option.distance_km)
        self.assertEqual(journey.start_time, START)

    def test_start_journey_shortest_path_fallback(self):
        planner = JourneyPlanner(make_loader(SHARED_EDGE_LINES))
        journey = planner.start_journey("A", "D", start_time=START)

        self.assertEqual(journey.chosen_path, ("A", "B", "C", "D"))
        self.assertEqual([segment.route for segment in journey.planned_segments], ["R1", "R2"])

    def test_start_journey_without_path(self):
        loader = make_loader(LOOP_LINES)
        loader._add_station(Station(stop_id="Z", name="Zoo Park", latitude=17.1, longitude=78.1))
        journey = JourneyPlanner(loader).start_journey("A", "Z", start_time=START)

        self.assertEqual(journey.chosen_path, ())
        self.assertEqual(journey.planned_stops_count, 0)
        self.assertEqual(journey.to_id, "Z")

    def test_start_journey_rejects_same_station(self):
        with self.assertRaises(ValueError):
            self.planner.start_journey("A", "A")
        with self.assertRaises(ValueError):
            self.planner.start_journey("", "D")

    def test_start_journey_rejects_mismatched_option(self):
        option = self.planner.plan("A", "C")[0]
        with self.assertRaises(ValueError):
            self.planner.start_journey("A", "D", option=option)

    def test_start_journey_rejects_empty_option(self):
        empty = describe_path([], {}, {})
        with self.assertRaises(ValueError):
            self.planner.start_journey("A", "D", option=empty)

    def test_historical_eta(self):
        history = TripHistory([
            Trip(
                from_id="A",
                to_id="D",
                start_time=START,
                end_time=START + timedelta(minutes=7),
                duration_minutes=7,
                distance_km=3.3,
            )
        ])
        planner = JourneyPlanner(make_loader(LOOP_LINES), trip_history=history)
        self.assertEqual(planner.historical_eta("A", "D"), 7)
        self.assertIsNone(planner.historical_eta("D", "A"))


class TestJourneyPlannerTracking(unittest.IsolatedAsyncioTestCase):
    """Test tracking a started journey end to end."""

    async def test_track_records_trip_in_history(self):
        planner = JourneyPlanner(make_loader(LOOP_LINES))
        journey = planner.start_journey("A", "D", start_time=START)
        source = ManualPositionSource()

        tracker = planner.create_tracker(journey, position_source=source, clock=lambda: START + timedelta(minutes=8))
        await tracker.start()
        source.push(sample_at("D", 8))
        await asyncio.wait_for(tracker.wait_closed(), timeout=2)

        self.assertEqual(tracker.state.status, TrackingStatus.COMPLETED)
        self.assertEqual(len(planner.trip_history), 1)
        self.assertEqual(planner.historical_eta("A", "D"), 8)

    async def test_track_uses_historical_eta(self):
        planner = JourneyPlanner(make_loader(LOOP_LINES))
        planner.trip_history.add_trip(
            Trip(
                from_id="A",
                to_id="D",
                start_time=START,
                end_time=START + timedelta(minutes=11),
                duration_minutes=11,
                distance_km=3.3,
            )
        )
        journey = planner.start_journey("A", "D")
        sink = RecordingEffectSink()

        tracker = await planner.track(journey, sink=sink)
        await tracker.idle()

        self.assertTrue(tracker.state.offline_timer_armed)
        self.assertEqual(tracker.state.historical_eta_minutes, 11)
        self.assertEqual(sink.of_type(ArmOfflineTimer), [])
        await tracker.cancel()
        self.assertEqual(sink.of_type(TripCompleted), [])


if __name__ == "__main__":
    unittest.main()
