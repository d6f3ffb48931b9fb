"""GTFS-Realtime vehicle position fetcher and parser."""

import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import requests

from .models import PositionSample

logger = logging.getLogger(__name__)


# Seconds a fetched feed is reused before hitting the server again
FEED_CACHE_TTL = 30.0


class VehicleFeedClient:
    """Fetches a GTFS-Realtime VehiclePositions feed and extracts position samples."""

    def __init__(
        self,
        feed_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 10,
        cache_ttl: float = FEED_CACHE_TTL,
    ):
        """
        Initialize the feed client.

        Args:
            feed_url: Full URL of the VehiclePositions feed.
            headers: Optional HTTP headers (e.g. an API key).
            timeout: HTTP timeout in seconds.
            cache_ttl: Seconds a fetched feed is reused; 0 disables caching.
        """
        self.feed_url = feed_url
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self._session = requests.Session()
        if headers:
            self._session.headers.update(headers)
        self._cached: Optional[Tuple[bytes, float]] = None  # (data, monotonic fetch time)

    def get_vehicle_position(
        self,
        vehicle_id: Optional[str] = None,
        trip_id: Optional[str] = None,
    ) -> Optional[PositionSample]:
        """
        Get the latest position of one vehicle.

        Args:
            vehicle_id: Vehicle descriptor id to match.
            trip_id: Trip id to match when the vehicle id is unknown.

        Returns:
            The most recent matching PositionSample, or None if the vehicle is
            not in the feed.
        """
        feed_data = self._fetch_feed()
        samples = self._parse_positions(feed_data, vehicle_id, trip_id)
        if not samples:
            return None
        return max(samples, key=lambda sample: sample.timestamp)

    def _fetch_feed(self) -> bytes:
        """
        Return the feed bytes, refetching once the cached copy is older than the TTL.

        Raises:
            requests.RequestException: If the request fails or returns an error status.
        """
        now = time.monotonic()
        if self._cached is not None:
            data, fetched_at = self._cached
            if now - fetched_at < self.cache_ttl:
                logger.debug(f"Using feed fetched {now - fetched_at:.1f}s ago")
                return data

        logger.debug(f"Fetching {self.feed_url}")
        try:
            response = self._session.get(self.feed_url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to fetch {self.feed_url}: {e}")
            raise

        self._cached = (response.content, now)
        return response.content

    def clear_cache(self) -> None:
        """Drop the cached feed so the next call fetches it again."""
        self._cached = None

    def _parse_positions(
        self,
        feed_data: bytes,
        vehicle_id: Optional[str],
        trip_id: Optional[str],
    ) -> List[PositionSample]:
        """
        Parse vehicle positions from a GTFS-Realtime feed.

        Args:
            feed_data: Raw protobuf bytes.
            vehicle_id: Vehicle id to filter by, if given.
            trip_id: Trip id to filter by, if given.

        Returns:
            List of PositionSample objects for the matching vehicle.
        """
        try:
            from google.transit import gtfs_realtime_pb2
        except ImportError:
            logger.error("google.transit.gtfs_realtime_pb2 not installed")
            raise

        try:
            feed = gtfs_realtime_pb2.FeedMessage()
            feed.ParseFromString(feed_data)
        except Exception as e:
            logger.error(f"Failed to parse vehicle feed: {e}")
            return []

        header_timestamp = feed.header.timestamp if feed.header.HasField("timestamp") else None
        samples: List[PositionSample] = []

        for entity in feed.entity:
            if not entity.HasField("vehicle"):
                continue

            vehicle = entity.vehicle
            if not vehicle.HasField("position"):
                continue

            entity_vehicle_id = vehicle.vehicle.id if vehicle.HasField("vehicle") else ""
            entity_trip_id = vehicle.trip.trip_id if vehicle.HasField("trip") else ""

            if vehicle_id and entity_vehicle_id != vehicle_id:
                continue
            if trip_id and entity_trip_id != trip_id:
                continue

            if vehicle.HasField("timestamp"):
                seconds = vehicle.timestamp
            elif header_timestamp is not None:
                seconds = header_timestamp
            else:
                logger.debug(f"Skipping vehicle {entity_vehicle_id or entity.id} without timestamp")
                continue

            samples.append(
                PositionSample(
                    latitude=vehicle.position.latitude,
                    longitude=vehicle.position.longitude,
                    timestamp=datetime.fromtimestamp(seconds, tz=timezone.utc),
                )
            )

        logger.debug(f"Parsed {len(samples)} matching vehicle position(s)")
        return samples
