"""OpenRailRouting client for track geometry between stations."""

import logging
from typing import List, Optional, Sequence

import requests

from .cache import TTLCache
from .models import Coordinate, RailwaySegment, Station

logger = logging.getLogger(__name__)

OPENRAILROUTING_URL = "https://routing.openrailrouting.org/route"
DEFAULT_TIMEOUT = 30  # seconds
DEFAULT_PROFILE = "all_tracks"


def parse_route(payload: dict) -> List[RailwaySegment]:
    """One segment from the first returned path, or [] when there is none."""
    paths = payload.get("paths") or []
    if not paths:
        return []

    # Points come back as GeoJSON [lon, lat]
    points = paths[0].get("points", {}).get("coordinates", [])
    coordinates = [Coordinate(float(lat), float(lon)) for lon, lat, *_ in points]
    return [RailwaySegment(coordinates=coordinates)]


class OpenRailRoutingService:
    """Fetches railway track geometry from an OpenRailRouting server."""

    def __init__(
        self,
        base_url: str = OPENRAILROUTING_URL,
        profile: str = DEFAULT_PROFILE,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url
        self.profile = profile
        self.timeout = timeout
        self._session = session or requests.Session()
        self._cache: TTLCache[List[RailwaySegment]] = TTLCache(max_size=50)  # (start, end) -> segments

    def fetch_route(self, start: Coordinate, end: Coordinate) -> List[RailwaySegment]:
        """
        Fetch the railway route between two points.

        Args:
            start: Route start.
            end: Route end.

        Returns:
            A single-element list with the track geometry, or [] when the
            server finds no path.

        Raises:
            requests.RequestException: If the routing request fails.
        """
        key = (start, end)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug(f"Using cached route {start} -> {end}")
            return list(cached)

        params = [
            ("point", f"{start.latitude},{start.longitude}"),
            ("point", f"{end.latitude},{end.longitude}"),
            ("profile", self.profile),
            ("locale", "en"),
            ("elevation", "false"),
            ("instructions", "false"),
            ("points_encoded", "false"),
        ]

        logger.debug(f"Fetching railway route {start} -> {end}")
        try:
            response = self._session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            segments = parse_route(response.json())
        except requests.RequestException as e:
            logger.error(f"Railway route request failed: {e}")
            raise

        self._cache.put(key, segments)
        return list(segments)

    def fetch_routes_between(self, stations: Sequence[Station]) -> List[RailwaySegment]:
        """
        Fetch track geometry between each consecutive pair of stations.

        Pairs that fail are logged and skipped.
        """
        if len(stations) < 2:
            return []

        segments: List[RailwaySegment] = []
        for first, second in zip(stations, stations[1:]):
            try:
                segments.extend(self.fetch_route(first.coordinate, second.coordinate))
            except requests.RequestException as e:
                logger.warning(f"Skipping route {first.name} -> {second.name}: {e}")

        logger.info(f"Fetched {len(segments)} railway segments for {len(stations)} stations")
        return segments

    def clear_cache(self) -> None:
        """Manually clear the cache."""
        self._cache.clear()
