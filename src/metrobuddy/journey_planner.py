"""Main Metro Buddy journey planner class."""

import logging
from datetime import datetime
from typing import List, Optional

from .eta import TripHistory
from .graph import TransitGraph, find_shortest_path
from .journey_tracker import EffectSink, JourneyTracker, LoggingEffectSink, utc_now
from .models import Journey, Preferences, RouteOption, Station
from .network_loader import NetworkLoader
from .position_source import PositionSource
from .routes import DEFAULT_MAX_PATHS, describe_path, plan_on_graph
from .tracking import JourneyContext, TrackingConfig

logger = logging.getLogger(__name__)


class JourneyPlanner:
    """
    Plans and tracks metro journeys.

    This class provides methods to:
    - Find stations by name or ID
    - Plan alternative routes between two stations
    - Start a journey and track it live until arrival
    """

    def __init__(self, loader: Optional[NetworkLoader] = None, trip_history: Optional[TripHistory] = None):
        """
        Initialize the planner.

        Args:
            loader: Network loader with stations and lines. If omitted, an empty
                    loader is created; call load_from_json() or load_from_files().
            trip_history: Completed trips used for historical ETAs.
        """
        self.loader = loader or NetworkLoader()
        self.trip_history = trip_history if trip_history is not None else TripHistory()
        self._graph: Optional[TransitGraph] = None

    def load_from_json(self, stations_path: str, lines_path: str) -> None:
        """Load the network from static JSON arrays."""
        self.loader.load_from_json(stations_path, lines_path)
        self._graph = None

    def load_from_files(self, stops_path: str, routes_path: str, trips_path: str, stop_times_path: str) -> None:
        """Load the network from local GTFS files."""
        self.loader.load_from_files(stops_path, routes_path, trips_path, stop_times_path)
        self._graph = None

    @property
    def graph(self) -> TransitGraph:
        """Station graph, built once per loaded network."""
        if self._graph is None:
            self._graph = TransitGraph.from_lines(self.loader.lines)
        return self._graph

    def get_station(self, station_input: str) -> Station:
        """
        Get a station by ID or name.

        Args:
            station_input: Either a stop ID or a station name.

        Returns:
            Station object.

        Raises:
            ValueError: If station not found.
        """
        # Try as stop ID first
        try:
            return self.loader.get_station(station_input)
        except ValueError:
            pass

        # Try as name
        stations = self.loader.find_stations_by_name(station_input)
        if not stations:
            raise ValueError(f"No station found matching '{station_input}'")

        return stations[0]

    def find_stations_by_name(self, name: str) -> List[Station]:
        """Find all stations matching a name (partial match)."""
        return self.loader.find_stations_by_name(name)

    def plan(self, from_id: str, to_id: str, max_paths: int = DEFAULT_MAX_PATHS) -> List[RouteOption]:
        """
        Plan route options between two stations.

        Returns:
            Up to max_paths options, shortest first. Empty when either id is
            unset or unknown, or no route connects them.
        """
        options = plan_on_graph(
            self.graph, self.loader.stations, from_id, to_id, max_paths, self.loader.route_labels
        )
        if not options:
            logger.warning(f"No route found from {from_id} to {to_id}")
        return options

    def start_journey(
        self,
        from_id: str,
        to_id: str,
        option: Optional[RouteOption] = None,
        start_time: Optional[datetime] = None,
    ) -> Journey:
        """
        Commit to a journey.

        Without a planned option the path falls back to the plain shortest
        path; an unreachable destination gives a journey with no path, which
        can still be tracked by distance and completed offline.

        Raises:
            ValueError: If origin and destination are missing or identical, or the
                option is empty or runs between other stations.
        """
        if not from_id or not to_id or from_id == to_id:
            raise ValueError("A journey needs two different stations")

        start_time = start_time or utc_now()
        if option is None:
            path = find_shortest_path(self.graph, from_id, to_id)
            if not path:
                logger.warning(f"Unable to map a path from {from_id} to {to_id}; tracking by distance only")
                return Journey(from_id=from_id, to_id=to_id, start_time=start_time)
            option = describe_path(path, self.graph.edge_routes, self.loader.stations, self.loader.route_labels)

        if not option.path:
            raise ValueError(f"Route option from {from_id} to {to_id} has no path")
        if option.path[0] != from_id or option.path[-1] != to_id:
            raise ValueError(f"Route option does not run from {from_id} to {to_id}")

        journey = Journey.from_option(option, start_time)
        logger.info(
            f"Journey started {from_id} -> {to_id}: {journey.planned_stops_count} stops, "
            f"{len(journey.planned_transfers)} transfer(s)"
        )
        return journey

    def historical_eta(self, from_id: str, to_id: str) -> Optional[int]:
        """Average past duration in minutes for the pair, or None if never travelled."""
        return self.trip_history.historical_eta(from_id, to_id)

    def create_tracker(
        self,
        journey: Journey,
        preferences: Optional[Preferences] = None,
        sink: Optional[EffectSink] = None,
        position_source: Optional[PositionSource] = None,
        config: Optional[TrackingConfig] = None,
        clock=utc_now,
    ) -> JourneyTracker:
        """Build a tracker for a journey; completed trips go to the trip history by default."""
        context = JourneyContext.build(journey, self.loader.stations, preferences, config)
        return JourneyTracker(
            context,
            sink=sink or LoggingEffectSink(self.trip_history),
            position_source=position_source,
            clock=clock,
        )

    async def track(
        self,
        journey: Journey,
        preferences: Optional[Preferences] = None,
        sink: Optional[EffectSink] = None,
        position_source: Optional[PositionSource] = None,
    ) -> JourneyTracker:
        """Create a tracker and start it with the journey's historical ETA."""
        tracker = self.create_tracker(journey, preferences, sink, position_source)
        await tracker.start(self.historical_eta(journey.from_id, journey.to_id))
        return tracker
