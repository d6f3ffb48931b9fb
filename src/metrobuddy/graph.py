"""Routable station graph built from ordered line sequences."""

import logging
from collections import deque
from typing import Dict, Iterable, List, Optional, Tuple

from .models import Line

logger = logging.getLogger(__name__)

Edge = Tuple[str, str]


class TransitGraph:
    """
    Undirected station adjacency with per-edge route attribution.

    Neighbour lists and edge route lists keep first-insertion order (order of
    lines, then order of stations within each line). Path search relies on
    this order to break ties reproducibly.
    """

    def __init__(self):
        self.adjacency: Dict[str, List[str]] = {}
        self.edge_routes: Dict[Edge, List[str]] = {}

    @classmethod
    def from_lines(cls, lines: Iterable[Line]) -> "TransitGraph":
        """Build a graph from every consecutive station pair of every line."""
        graph = cls()
        for line in lines:
            station_ids = line.station_ids or ()
            for current_id, next_id in zip(station_ids, station_ids[1:]):
                if not current_id or not next_id:
                    continue
                graph.add_edge(current_id, next_id, line.route_id)

        logger.debug(f"Built graph with {len(graph.adjacency)} stations and {len(graph.edge_routes) // 2} edges")
        return graph

    def add_edge(self, station_a: str, station_b: str, route_id: Optional[str] = None) -> None:
        """Connect two stations in both directions and attribute the edge to a route."""
        self._link(station_a, station_b)
        self._link(station_b, station_a)

        for key in ((station_a, station_b), (station_b, station_a)):
            routes = self.edge_routes.setdefault(key, [])
            if route_id and route_id not in routes:
                routes.append(route_id)

    def _link(self, from_id: str, to_id: str) -> None:
        neighbours = self.adjacency.setdefault(from_id, [])
        if to_id not in neighbours:
            neighbours.append(to_id)

    def __contains__(self, station_id: str) -> bool:
        return station_id in self.adjacency

    def neighbours(self, station_id: str) -> List[str]:
        """Neighbouring station ids in insertion order."""
        return self.adjacency.get(station_id, [])

    def routes_for(self, from_id: str, to_id: str) -> List[str]:
        """Routes known to run over the edge from_id -> to_id."""
        return self.edge_routes.get((from_id, to_id), [])


def find_shortest_path(graph: TransitGraph, start: str, destination: str) -> List[str]:
    """
    Plain unweighted shortest path by breadth-first search.

    Used for journeys that were started without a planned route option.
    Returns an empty list when either station is unset or unknown.
    """
    if not start or not destination:
        return []
    if start == destination:
        return [start]
    if start not in graph or destination not in graph:
        return []

    queue = deque([[start]])
    visited = {start}

    while queue:
        path = queue.popleft()
        current = path[-1]

        if current == destination:
            return path

        for next_id in graph.neighbours(current):
            if next_id not in visited:
                visited.add(next_id)
                queue.append(path + [next_id])

    return []
