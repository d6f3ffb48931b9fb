"""Station and line data loader (static JSON arrays or a GTFS static feed)."""

import csv
import io
import json
import logging
import zipfile
from typing import Dict, List, Optional

import requests

from .models import Line, Station

logger = logging.getLogger(__name__)


def _parse_coordinate(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class NetworkLoader:
    """Loads and indexes the stations and lines of a metro network."""

    def __init__(self):
        """Initialize the network loader."""
        self.stations: Dict[str, Station] = {}
        self.stations_by_name: Dict[str, List[str]] = {}  # name -> [stop_ids]
        self.lines: List[Line] = []
        self.route_labels: Dict[str, str] = {}  # route_id -> display name
        self.stop_to_parent: Dict[str, str] = {}

    def load_from_json(self, stations_path: str, lines_path: str) -> None:
        """
        Load the station and line arrays shipped with the app.

        Args:
            stations_path: JSON array of {stop_id, stop_name, stop_lat, stop_lon}.
            lines_path: JSON array of {route_id, direction_id, trip_id, stations: [{stop_id, stop_name}]}.
        """
        logger.info(f"Loading network from {stations_path} and {lines_path}")
        with open(stations_path, "r", encoding="utf-8") as f:
            station_records = json.load(f)
        with open(lines_path, "r", encoding="utf-8") as f:
            line_records = json.load(f)

        self.clear()
        for record in station_records:
            stop_id = record.get("stop_id")
            if not stop_id:
                continue
            self._add_station(
                Station(
                    stop_id=stop_id,
                    name=record.get("stop_name") or stop_id,
                    latitude=_parse_coordinate(record.get("stop_lat")),
                    longitude=_parse_coordinate(record.get("stop_lon")),
                )
            )

        for record in line_records:
            station_ids = tuple(
                entry.get("stop_id") for entry in record.get("stations", []) if entry.get("stop_id")
            )
            self.lines.append(
                Line(
                    route_id=str(record.get("route_id", "")),
                    direction_id=str(record.get("direction_id", "")),
                    station_ids=station_ids,
                    trip_id=record.get("trip_id"),
                )
            )

        logger.info(f"Loaded {len(self.stations)} stations and {len(self.lines)} lines")

    def load_from_url(self, url: str) -> None:
        """Download a GTFS static zip and derive stations and lines from it."""
        logger.info(f"Downloading GTFS data from {url}")
        try:
            response = requests.get(url, timeout=60)
            response.raise_for_status()
            with zipfile.ZipFile(io.BytesIO(response.content)) as zip_file:
                self._load_gtfs(
                    zip_file.read("stops.txt").decode("utf-8-sig"),
                    zip_file.read("routes.txt").decode("utf-8-sig"),
                    zip_file.read("trips.txt").decode("utf-8-sig"),
                    zip_file.read("stop_times.txt").decode("utf-8-sig"),
                )
        except Exception as e:
            logger.error(f"Failed to load GTFS data: {e}")
            raise

    def load_from_files(self, stops_path: str, routes_path: str, trips_path: str, stop_times_path: str) -> None:
        """Load GTFS data from local CSV files."""
        logger.info("Loading GTFS data from local files")
        contents = []
        for path in (stops_path, routes_path, trips_path, stop_times_path):
            with open(path, "r", encoding="utf-8-sig") as f:
                contents.append(f.read())
        self._load_gtfs(*contents)

    def _load_gtfs(self, stops_csv: str, routes_csv: str, trips_csv: str, stop_times_csv: str) -> None:
        self.clear()
        self._load_stops(stops_csv)
        self._load_routes(routes_csv)
        self._build_lines(trips_csv, stop_times_csv)
        logger.info(f"Loaded {len(self.stations)} stations and {len(self.lines)} lines")

    def _add_station(self, station: Station) -> None:
        self.stations[station.stop_id] = station
        self.stations_by_name.setdefault(station.name, []).append(station.stop_id)

    def _load_stops(self, csv_content: str) -> None:
        """Parse stops.txt; parent stations (or stops without a parent) become Stations."""
        reader = csv.DictReader(io.StringIO(csv_content))

        for row in reader:
            stop_id = row["stop_id"]
            parent_station = row.get("parent_station") or ""
            location_type = row.get("location_type") or ""

            # Platforms map to their parent; everything else is its own parent
            self.stop_to_parent[stop_id] = parent_station or stop_id

            if parent_station and location_type != "1":
                continue

            self._add_station(
                Station(
                    stop_id=stop_id,
                    name=row.get("stop_name") or stop_id,
                    latitude=_parse_coordinate(row.get("stop_lat")),
                    longitude=_parse_coordinate(row.get("stop_lon")),
                )
            )

    def _load_routes(self, csv_content: str) -> None:
        """Parse routes.txt into display labels."""
        reader = csv.DictReader(io.StringIO(csv_content))
        for row in reader:
            route_id = row["route_id"]
            self.route_labels[route_id] = row.get("route_short_name") or row.get("route_long_name") or route_id

    def _build_lines(self, trips_csv: str, stop_times_csv: str) -> None:
        """
        Derive one Line per (route_id, direction_id).

        The trip with the most stop_times represents its route and direction.
        Its stops are ordered by stop_sequence, mapped to parent stations and
        de-duplicated; sequences of a single station are dropped.
        """
        stop_times_by_trip: Dict[str, List[dict]] = {}
        for row in csv.DictReader(io.StringIO(stop_times_csv)):
            trip_id = row.get("trip_id")
            if trip_id:
                stop_times_by_trip.setdefault(trip_id, []).append(row)

        best_trips: Dict[tuple, tuple] = {}  # (route_id, direction_id) -> (trip_id, stop_count)
        for row in csv.DictReader(io.StringIO(trips_csv)):
            key = (row["route_id"], row.get("direction_id") or "")
            stop_count = len(stop_times_by_trip.get(row["trip_id"], []))
            current = best_trips.get(key)
            if current is None or stop_count > current[1]:
                best_trips[key] = (row["trip_id"], stop_count)

        for (route_id, direction_id), (trip_id, _) in best_trips.items():
            sequence = stop_times_by_trip.get(trip_id)
            if not sequence:
                continue
            sequence = sorted(sequence, key=lambda record: int(record["stop_sequence"]))

            station_ids: List[str] = []
            for record in sequence:
                parent_id = self.stop_to_parent.get(record["stop_id"], record["stop_id"])
                if parent_id not in station_ids:
                    station_ids.append(parent_id)

            if len(station_ids) > 1:
                self.lines.append(
                    Line(
                        route_id=route_id,
                        direction_id=direction_id,
                        station_ids=tuple(station_ids),
                        trip_id=trip_id,
                    )
                )

        logger.debug(f"Derived {len(self.lines)} line sequences from {len(best_trips)} route directions")

    def get_station(self, station_id: str) -> Station:
        """Get station by stop_id."""
        if station_id not in self.stations:
            raise ValueError(f"Station {station_id} not found")
        return self.stations[station_id]

    def find_stations_by_name(self, name: str) -> List[Station]:
        """Find stations by name (partial match)."""
        results = []
        name_lower = name.lower()

        for station_name, stop_ids in self.stations_by_name.items():
            if name_lower in station_name.lower():
                for stop_id in stop_ids:
                    results.append(self.stations[stop_id])

        return results

    def dump_lines(self, path: str) -> None:
        """Write the lines as a JSON array in the format load_from_json() reads."""
        records = [
            {
                "route_id": line.route_id,
                "direction_id": line.direction_id,
                "trip_id": line.trip_id,
                "stations": [
                    {
                        "stop_id": stop_id,
                        "stop_name": self.stations[stop_id].name if stop_id in self.stations else stop_id,
                    }
                    for stop_id in line.station_ids
                ],
            }
            for line in self.lines
        ]
        with open(path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2)
            f.write("\n")
        logger.info(f"Wrote {len(records)} line sequences to {path}")

    def clear(self) -> None:
        """Clear all loaded data to free memory."""
        self.stations.clear()
        self.stations_by_name.clear()
        self.lines.clear()
        self.route_labels.clear()
        self.stop_to_parent.clear()
