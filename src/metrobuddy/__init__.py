"""Metro Buddy - journey planning and live arrival alerts for metro networks."""

__version__ = "0.1.0"

from .models import Station, Line, Segment, Transfer, RouteOption, Journey, PositionSample, PositionError, Trip, Preferences
from .graph import TransitGraph, find_shortest_path
from .routes import find_k_shortest_paths, describe_path, find_route_options, analyse_path
from .eta import TripHistory, predicted_eta
from .tracking import JourneyContext, TrackingConfig, TrackingState, TrackingStatus, transition
from .journey_tracker import JourneyTracker, LoggingEffectSink
from .journey_planner import JourneyPlanner
from .network_loader import NetworkLoader
from .position_source import ManualPositionSource, FeedPositionSource
from .feed_client import VehicleFeedClient

__all__ = [
    "JourneyPlanner",
    "JourneyTracker",
    "NetworkLoader",
    "VehicleFeedClient",
    "ManualPositionSource",
    "FeedPositionSource",
    "LoggingEffectSink",
    "TripHistory",
    "TransitGraph",
    "JourneyContext",
    "TrackingConfig",
    "TrackingState",
    "TrackingStatus",
    "transition",
    "find_shortest_path",
    "find_k_shortest_paths",
    "describe_path",
    "find_route_options",
    "analyse_path",
    "predicted_eta",
    "Station",
    "Line",
    "Segment",
    "Transfer",
    "RouteOption",
    "Journey",
    "PositionSample",
    "PositionError",
    "Trip",
    "Preferences",
]
