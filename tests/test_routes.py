"""Tests for route planning and path description."""

import unittest

from network_fixtures import LOOP_LINES, SHARED_EDGE_LINES, SINGLE_LINE, STATION_LOOKUP, STATIONS

from metrobuddy.geo import haversine_km
from metrobuddy.graph import TransitGraph
from metrobuddy.models import Line
from metrobuddy.routes import (
    UNKNOWN_ROUTE,
    analyse_path,
    describe_path,
    find_k_shortest_paths,
    find_route_options,
)


def hop_sum(path):
    total = 0.0
    for from_id, to_id in zip(path, path[1:]):
        total += haversine_km(STATION_LOOKUP[from_id].coordinates, STATION_LOOKUP[to_id].coordinates)
    return total


def rebuild_path(segments):
    """Concatenate segment stops, dropping the shared boundary station."""
    path = list(segments[0].stop_ids)
    for segment in segments[1:]:
        path.extend(segment.stop_ids[1:])
    return path


class TestKShortestPaths(unittest.TestCase):
    """Test breadth-first path enumeration."""

    def setUp(self):
        self.graph = TransitGraph.from_lines(LOOP_LINES)

    def test_paths_in_length_order(self):
        paths = find_k_shortest_paths(self.graph, "A", "D", 3)
        self.assertEqual(paths, [["A", "B", "C", "D"], ["A", "B", "E", "C", "D"]])

    def test_paths_are_simple_and_bounded(self):
        for max_paths in (1, 2, 5):
            paths = find_k_shortest_paths(self.graph, "B", "C", max_paths)
            self.assertLessEqual(len(paths), max_paths)
            for path in paths:
                self.assertEqual(len(path), len(set(path)))
                self.assertEqual(path[0], "B")
                self.assertEqual(path[-1], "C")
            lengths = [len(path) for path in paths]
            self.assertEqual(lengths, sorted(lengths))

    def test_max_paths_limits_results(self):
        self.assertEqual(find_k_shortest_paths(self.graph, "A", "D", 1), [["A", "B", "C", "D"]])
        self.assertEqual(find_k_shortest_paths(self.graph, "A", "D", 0), [])

    def test_same_station(self):
        self.assertEqual(find_k_shortest_paths(self.graph, "C", "C", 3), [["C"]])

    def test_invalid_input_returns_nothing(self):
        self.assertEqual(find_k_shortest_paths(self.graph, "", "D"), [])
        self.assertEqual(find_k_shortest_paths(self.graph, "A", None), [])
        self.assertEqual(find_k_shortest_paths(self.graph, "A", "Z"), [])

    def test_queue_cap(self):
        paths = find_k_shortest_paths(self.graph, "A", "D", 3, max_queue_size=1)
        self.assertEqual(paths, [["A", "B", "C", "D"]])

    def test_results_are_reproducible(self):
        first = find_k_shortest_paths(TransitGraph.from_lines(LOOP_LINES), "A", "D", 3)
        second = find_k_shortest_paths(TransitGraph.from_lines(LOOP_LINES), "A", "D", 3)
        self.assertEqual(first, second)


class TestDescribePath(unittest.TestCase):
    """Test segment, transfer and distance breakdown."""

    def test_single_route(self):
        graph = TransitGraph.from_lines(SINGLE_LINE)
        option = describe_path(["A", "B", "C", "D"], graph.edge_routes, STATION_LOOKUP)

        self.assertEqual(len(option.segments), 1)
        segment = option.segments[0]
        self.assertEqual(segment.route, "R1")
        self.assertEqual(segment.route_label, "R1")
        self.assertEqual(segment.stop_ids, ("A", "B", "C", "D"))
        self.assertEqual(segment.from_name, "Ameerpet")
        self.assertEqual(segment.to_name, "Dilsukhnagar")
        self.assertEqual(option.transfers, ())
        self.assertEqual(option.stops_count, 3)

    def test_continuity_prefers_current_route(self):
        """B-C lists R2 first, but the traveller stays on R1 from A."""
        graph = TransitGraph.from_lines(SHARED_EDGE_LINES)
        option = describe_path(["A", "B", "C", "D"], graph.edge_routes, STATION_LOOKUP)

        self.assertEqual([segment.route for segment in option.segments], ["R1", "R2"])
        self.assertEqual(option.segments[0].stop_ids, ("A", "B", "C"))
        self.assertEqual(option.segments[1].stop_ids, ("C", "D"))

        self.assertEqual(len(option.transfers), 1)
        transfer = option.transfers[0]
        self.assertEqual(transfer.at_station_id, "C")
        self.assertEqual(transfer.at_name, "Charminar")
        self.assertEqual((transfer.from_route, transfer.to_route), ("R1", "R2"))

    def test_first_candidate_without_continuity(self):
        graph = TransitGraph.from_lines(SHARED_EDGE_LINES)
        option = describe_path(["B", "C", "D"], graph.edge_routes, STATION_LOOKUP)
        self.assertEqual([segment.route for segment in option.segments], ["R2"])

    def test_missing_edge_uses_unknown_route(self):
        graph = TransitGraph.from_lines(SINGLE_LINE)
        option = describe_path(["A", "B", "D"], graph.edge_routes, STATION_LOOKUP)

        self.assertEqual([segment.route for segment in option.segments], ["R1", UNKNOWN_ROUTE])
        self.assertEqual(option.transfers[0].at_station_id, "B")

    def test_route_labels(self):
        graph = TransitGraph.from_lines(LOOP_LINES)
        option = describe_path(["A", "B", "E", "C", "D"], graph.edge_routes, STATION_LOOKUP)

        self.assertEqual([segment.route_label for segment in option.segments], ["Red Line", "Blue Line", "Red Line"])
        self.assertEqual(option.transfers[0].to_route_label, "Blue Line")

        custom = describe_path(["A", "B"], graph.edge_routes, STATION_LOOKUP, {"RED": "Corridor I"})
        self.assertEqual(custom.segments[0].route_label, "Corridor I")

    def test_segments_rebuild_path_and_count_transfers(self):
        graph = TransitGraph.from_lines(LOOP_LINES)
        for path in find_k_shortest_paths(graph, "A", "D", 5):
            option = describe_path(path, graph.edge_routes, STATION_LOOKUP)
            self.assertEqual(rebuild_path(option.segments), path)
            self.assertEqual(len(option.transfers), len(option.segments) - 1)

    def test_distance_is_sum_of_hops(self):
        graph = TransitGraph.from_lines(LOOP_LINES)
        path = ["A", "B", "E", "C", "D"]
        option = describe_path(path, graph.edge_routes, STATION_LOOKUP)
        self.assertAlmostEqual(option.distance_km, hop_sum(path), places=9)
        self.assertEqual(option.display_distance_km, round(hop_sum(path), 2))

    def test_unknown_stations_add_no_distance(self):
        graph = TransitGraph.from_lines([Line(route_id="R1", direction_id="0", station_ids=("A", "X", "B"))])
        option = describe_path(["A", "X", "B"], graph.edge_routes, STATION_LOOKUP)
        self.assertEqual(option.distance_km, 0.0)
        self.assertEqual(option.segments[0].stop_ids, ("A", "X", "B"))

    def test_empty_path(self):
        option = describe_path([], {}, STATION_LOOKUP)
        self.assertEqual(option.stops_count, 0)
        self.assertEqual(option.distance_km, 0.0)
        self.assertEqual(option.segments, ())
        self.assertEqual(option.transfers, ())


class TestRouteOptions(unittest.TestCase):
    """Test the composed planner."""

    def test_single_line_scenario(self):
        options = find_route_options(SINGLE_LINE, STATIONS, "A", "D", 2)

        self.assertEqual(len(options), 1)
        option = options[0]
        self.assertEqual(option.path, ("A", "B", "C", "D"))
        self.assertEqual(len(option.segments), 1)
        self.assertEqual(option.segments[0].route, "R1")
        self.assertEqual(option.transfers, ())
        self.assertEqual(option.stops_count, 3)
        self.assertAlmostEqual(option.distance_km, hop_sum(["A", "B", "C", "D"]))

    def test_shared_edge_scenario(self):
        options = find_route_options(SHARED_EDGE_LINES, STATIONS, "A", "D")
        self.assertEqual(len(options[0].segments), 2)
        self.assertEqual(options[0].transfers[0].at_station_id, "C")

    def test_options_ordered_shortest_first(self):
        options = find_route_options(LOOP_LINES, STATIONS, "A", "D")
        self.assertEqual([option.stops_count for option in options], [3, 4])

    def test_no_options_for_bad_input(self):
        self.assertEqual(find_route_options(LOOP_LINES, STATIONS, "", "D"), [])
        self.assertEqual(find_route_options(LOOP_LINES, STATIONS, "A", "Nowhere"), [])

    def test_analyse_path(self):
        option = analyse_path(["A", "B", "C"], SHARED_EDGE_LINES, STATIONS)
        self.assertEqual([segment.route for segment in option.segments], ["R1"])
        self.assertEqual(option.stops_count, 2)


if __name__ == "__main__":
    unittest.main()
