"""OpenStreetMap Overpass client for train stations near a trajectory."""

import logging
from typing import List, Optional, Sequence

import requests

from .cache import TTLCache
from .catalog import deduplicate_by_name
from .geo import bounding_box
from .models import Coordinate, Station

logger = logging.getLogger(__name__)

OVERPASS_URL = "https://overpass-api.de/api/interpreter"
DEFAULT_TIMEOUT = 30  # seconds
DEFAULT_SEARCH_RADIUS = 500.0  # meters

QUERY_TEMPLATE = """
[out:json][timeout:30];
(
  node["railway"="station"]({bbox});
  node["railway"="halt"]({bbox});
  node["public_transport"="station"]["train"="yes"]({bbox});
  way["railway"="station"]({bbox});
);
out center;
"""


def build_query(coordinates: Sequence[Coordinate], radius_meters: float) -> Optional[str]:
    """Overpass QL query for stations inside the buffered bounding box, or None."""
    box = bounding_box(coordinates, buffer_m=radius_meters)
    if box is None:
        return None
    bbox = ",".join(str(value) for value in box)
    return QUERY_TEMPLATE.format(bbox=bbox)


def parse_elements(elements: List[dict]) -> List[Station]:
    """
    Convert Overpass elements to stations.

    Nodes carry lat/lon directly, ways carry a center. Elements without a
    name or position are dropped.
    """
    stations: List[Station] = []
    for element in elements:
        tags = element.get("tags") or {}
        center = element.get("center") or {}
        latitude = element.get("lat", center.get("lat"))
        longitude = element.get("lon", center.get("lon"))
        name = tags.get("name")

        if latitude is None or longitude is None or not name:
            continue

        stations.append(
            Station(
                id=str(element["id"]),
                name=name,
                latitude=float(latitude),
                longitude=float(longitude),
                type=tags.get("railway") or tags.get("station"),
                operator=tags.get("operator"),
            )
        )
    return stations


class OverpassStationService:
    """Looks up train stations along a route from the Overpass API."""

    def __init__(
        self,
        base_url: str = OVERPASS_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the station service.

        Args:
            base_url: Overpass interpreter endpoint.
            timeout: Request timeout in seconds.
            session: Optional requests session to reuse.
        """
        self.base_url = base_url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._cache: TTLCache[List[Station]] = TTLCache(max_size=10)  # query -> stations

    def fetch_stations_along_route(
        self,
        coordinates: Sequence[Coordinate],
        radius_meters: float = DEFAULT_SEARCH_RADIUS,
    ) -> List[Station]:
        """
        Fetch train stations near a route.

        Args:
            coordinates: Route coordinates.
            radius_meters: Buffer around the route's bounding box.

        Returns:
            Stations deduplicated by name. Empty for an empty route.

        Raises:
            requests.RequestException: If the Overpass request fails.
        """
        query = build_query(coordinates, radius_meters)
        if query is None:
            return []

        cached = self._cache.get(query)
        if cached is not None:
            logger.debug("Using cached Overpass response")
            return list(cached)

        logger.debug(f"Querying Overpass for stations ({len(coordinates)} route points)")
        try:
            response = self._session.post(self.base_url, data=query, timeout=self.timeout)
            response.raise_for_status()
            elements = response.json().get("elements", [])
        except requests.RequestException as e:
            logger.error(f"Overpass request failed: {e}")
            raise

        stations = deduplicate_by_name(parse_elements(elements))
        self._cache.put(query, stations)
        logger.info(f"Found {len(stations)} stations from {len(elements)} Overpass elements")
        return list(stations)

    def clear_cache(self) -> None:
        """Manually clear the cache."""
        self._cache.clear()
