"""Route planning: alternative paths and their segment/transfer breakdown."""

import logging
import math
from collections import deque
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .geo import station_distance_km
from .graph import Edge, TransitGraph
from .models import Line, RouteOption, Segment, Station, Transfer

logger = logging.getLogger(__name__)

DEFAULT_MAX_PATHS = 3
UNKNOWN_ROUTE = "Unknown route"

ROUTE_LABELS = {
    "BLUE": "Blue Line",
    "RED": "Red Line",
    "GREEN": "Green Line",
}


def find_k_shortest_paths(
    graph: TransitGraph,
    start: str,
    destination: str,
    max_paths: int = DEFAULT_MAX_PATHS,
    max_queue_size: Optional[int] = None,
) -> List[List[str]]:
    """
    Enumerate up to ``max_paths`` simple paths in non-decreasing length order.

    Partial paths are expanded breadth-first, neighbours in graph insertion
    order, so equal-length paths come out in a reproducible order. The
    enumeration is exponential on dense graphs; ``max_queue_size`` bounds the
    number of pending partial paths when set.

    Returns:
        List of paths (lists of station ids). Empty when either station is
        unset or not part of the graph.
    """
    if not start or not destination or max_paths < 1:
        return []
    if start not in graph or destination not in graph:
        return []

    results: List[List[str]] = []
    queue = deque([[start]])
    seen_paths = set()

    while queue and len(results) < max_paths:
        path = queue.popleft()
        current = path[-1]

        if current == destination:
            results.append(path)
            continue

        for next_id in graph.neighbours(current):
            if next_id in path:
                continue
            candidate = path + [next_id]
            key = tuple(candidate)
            if key in seen_paths:
                continue
            if max_queue_size is not None and len(queue) >= max_queue_size:
                logger.warning(f"Path queue capped at {max_queue_size} while searching {start} -> {destination}")
                break
            seen_paths.add(key)
            queue.append(candidate)

    logger.debug(f"Found {len(results)} path(s) from {start} to {destination}")
    return results


def _route_label(route: str, route_labels: Mapping[str, str]) -> str:
    return route_labels.get(route) or ROUTE_LABELS.get(route) or route


def _station_name(station_id: str, station_lookup: Mapping[str, Station]) -> str:
    station = station_lookup.get(station_id)
    return station.name if station else station_id


def describe_path(
    path: Sequence[str],
    edge_routes: Mapping[Edge, Sequence[str]],
    station_lookup: Mapping[str, Station],
    route_labels: Optional[Mapping[str, str]] = None,
) -> RouteOption:
    """
    Split a path into per-route segments, transfers and total distance.

    Each edge keeps the previous edge's route when that route also serves it,
    otherwise takes the first route recorded for the edge. This continuity
    rule is a heuristic: on trackage shared by three or more routes it can
    label a segment with a route the traveller would not actually ride.

    Args:
        path: Ordered station ids.
        edge_routes: (from_id, to_id) -> route ids serving that edge.
        station_lookup: stop_id -> Station, used for names and distances.
        route_labels: Optional display labels overriding the built-in ones.

    Returns:
        RouteOption. A zeroed option for an empty path.
    """
    route_labels = route_labels or {}
    if not path:
        return RouteOption(path=(), segments=(), transfers=(), stops_count=0, distance_km=0.0)

    segments: List[Segment] = []
    current_route: Optional[str] = None
    current_stops: List[str] = []
    previous_route: Optional[str] = None
    total_distance = 0.0

    def close_segment() -> None:
        segments.append(
            Segment(
                route=current_route,
                route_label=_route_label(current_route, route_labels),
                stop_ids=tuple(current_stops),
                from_name=_station_name(current_stops[0], station_lookup),
                to_name=_station_name(current_stops[-1], station_lookup),
            )
        )

    for from_id, to_id in zip(path, path[1:]):
        candidates = list(edge_routes.get((from_id, to_id), ()))

        if previous_route is not None and previous_route in candidates:
            chosen_route = previous_route
        elif candidates:
            chosen_route = candidates[0]
        else:
            logger.warning(f"No route recorded for edge {from_id} -> {to_id}")
            chosen_route = UNKNOWN_ROUTE

        if chosen_route != current_route:
            if current_stops:
                close_segment()
            current_route = chosen_route
            current_stops = [from_id, to_id]
        else:
            current_stops.append(to_id)

        previous_route = chosen_route

        hop_km = station_distance_km(station_lookup.get(from_id), station_lookup.get(to_id))
        if not math.isinf(hop_km):
            total_distance += hop_km

    if current_stops:
        close_segment()

    transfers = [
        Transfer(
            at_station_id=current.from_id,
            at_name=current.from_name,
            from_route=previous.route,
            to_route=current.route,
            from_route_label=previous.route_label,
            to_route_label=current.route_label,
        )
        for previous, current in zip(segments, segments[1:])
    ]

    return RouteOption(
        path=tuple(path),
        segments=tuple(segments),
        transfers=tuple(transfers),
        stops_count=max(len(path) - 1, 0),
        distance_km=total_distance,
    )


def station_lookup_for(stations: Iterable[Station]) -> Dict[str, Station]:
    """Index stations by stop_id."""
    return {station.stop_id: station for station in stations}


def find_route_options(
    lines: Iterable[Line],
    stations: Iterable[Station],
    start: str,
    destination: str,
    max_paths: int = DEFAULT_MAX_PATHS,
    route_labels: Optional[Mapping[str, str]] = None,
) -> List[RouteOption]:
    """
    Plan up to ``max_paths`` route options between two stations.

    The first option is the default recommendation. An empty list means no
    route could be found, which callers should display as such.
    """
    graph = TransitGraph.from_lines(lines)
    return plan_on_graph(graph, station_lookup_for(stations), start, destination, max_paths, route_labels)


def plan_on_graph(
    graph: TransitGraph,
    station_lookup: Mapping[str, Station],
    start: str,
    destination: str,
    max_paths: int = DEFAULT_MAX_PATHS,
    route_labels: Optional[Mapping[str, str]] = None,
) -> List[RouteOption]:
    """Plan route options on an already built graph."""
    paths = find_k_shortest_paths(graph, start, destination, max_paths)
    return [describe_path(path, graph.edge_routes, station_lookup, route_labels) for path in paths]


def analyse_path(
    path: Sequence[str],
    lines: Iterable[Line],
    stations: Iterable[Station],
    route_labels: Optional[Mapping[str, str]] = None,
) -> RouteOption:
    """Describe an arbitrary path against a freshly built route index."""
    graph = TransitGraph.from_lines(lines)
    return describe_path(path, graph.edge_routes, station_lookup_for(stations), route_labels)


def path_stations(path: Sequence[str], station_lookup: Mapping[str, Station]) -> Tuple[Station, ...]:
    """Resolve a path to Station objects, skipping unknown ids."""
    return tuple(station_lookup[stop_id] for stop_id in path if stop_id in station_lookup)
