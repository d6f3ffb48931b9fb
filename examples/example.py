"""Example usage of JourneyPlanner: plan a trip and replay it through the tracker."""

import asyncio
import logging
import sys
from pathlib import Path

# Add src to path so we can import metrobuddy
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from metrobuddy.journey_planner import JourneyPlanner
from metrobuddy.journey_tracker import LoggingEffectSink
from metrobuddy.models import Line, PositionSample, Preferences, Station
from metrobuddy.network_loader import NetworkLoader
from metrobuddy.position_source import ManualPositionSource
from metrobuddy.tracking import ProgressUpdate, TripCompleted

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

DEMO_STATIONS = [
    Station(stop_id="MYP", name="Miyapur", latitude=17.4968, longitude=78.3614),
    Station(stop_id="KUK", name="KPHB Colony", latitude=17.4937, longitude=78.4009),
    Station(stop_id="BLN", name="Balanagar", latitude=17.4771, longitude=78.4477),
    Station(stop_id="AMP", name="Ameerpet", latitude=17.4375, longitude=78.4482),
    Station(stop_id="JBS", name="JBS Parade Ground", latitude=17.4446, longitude=78.4980),
    Station(stop_id="SEC", name="Secunderabad East", latitude=17.4349, longitude=78.5038),
    Station(stop_id="MGB", name="MG Bus Station", latitude=17.3784, longitude=78.4867),
]

DEMO_LINES = [
    Line(route_id="RED", direction_id="0", station_ids=("MYP", "KUK", "BLN", "AMP", "MGB")),
    Line(route_id="GREEN", direction_id="0", station_ids=("JBS", "SEC", "MGB")),
    Line(route_id="BLUE", direction_id="0", station_ids=("AMP", "JBS")),
]


class ConsoleSink(LoggingEffectSink):
    """Prints progress and completion, records trips like the logging sink."""

    def handle(self, effect):
        if isinstance(effect, ProgressUpdate):
            metrics = effect.metrics
            print(
                f"  at {metrics.nearest_station_id}: {metrics.remaining_stops} stop(s) left, "
                f"{metrics.distance_to_destination_m} m to go, ETA {metrics.predicted_eta_minutes} min"
            )
            return
        if isinstance(effect, TripCompleted):
            trip = effect.trip
            print(f"  arrived: {trip.duration_minutes} min, {trip.distance_km} km travelled")
        super().handle(effect)


def build_planner(args) -> JourneyPlanner:
    """Load a network from JSON arrays when given, otherwise use the demo network."""
    planner = JourneyPlanner()
    if len(args) >= 2:
        planner.load_from_json(args[0], args[1])
        return planner

    loader = NetworkLoader()
    for station in DEMO_STATIONS:
        loader._add_station(station)
    loader.lines.extend(DEMO_LINES)
    return JourneyPlanner(loader)


def print_options(planner: JourneyPlanner, from_id: str, to_id: str):
    options = planner.plan(from_id, to_id)
    if not options:
        print("No route found")
        return []

    for index, option in enumerate(options, start=1):
        print(f"\nOption {index}: {option.stops_count} stops, {option.display_distance_km} km")
        for segment in option.segments:
            print(f"  {segment.route_label}: {segment.from_name} → {segment.to_name}")
        for transfer in option.transfers:
            print(f"  change at {transfer.at_name} ({transfer.from_route_label} → {transfer.to_route_label})")
    return options


async def replay_journey(planner: JourneyPlanner, from_id: str, to_id: str):
    """Start the first planned option and feed it one fix per station."""
    options = print_options(planner, from_id, to_id)
    if not options:
        return

    journey = planner.start_journey(from_id, to_id, option=options[0])
    source = ManualPositionSource()
    tracker = await planner.track(
        journey,
        preferences=Preferences(alarm_distance_meters=800, notification_sound="chime"),
        sink=ConsoleSink(planner.trip_history),
        position_source=source,
    )

    print(f"\nTracking {journey.from_id} → {journey.to_id}")
    for stop_id in journey.chosen_path:
        station = planner.loader.get_station(stop_id)
        source.push(PositionSample(latitude=station.latitude, longitude=station.longitude, timestamp=journey.start_time))
        await tracker.idle()

    if tracker.state.status.terminal:
        await tracker.wait_closed()
    else:
        logger.warning("Arrival not detected from the replayed fixes; cancelling")
        await tracker.cancel()
    print(f"Historical ETA now {planner.historical_eta(from_id, to_id)} min\n")


if __name__ == "__main__":
    try:
        # Usage: example.py [stations.json lines.json FROM_ID TO_ID]
        args = sys.argv[1:]
        planner = build_planner(args)
        from_id, to_id = (args[2], args[3]) if len(args) >= 4 else ("MYP", "SEC")
        asyncio.run(replay_journey(planner, from_id, to_id))
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Demo failed: {e}", exc_info=True)
        sys.exit(1)
