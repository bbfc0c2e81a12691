"""Geospatial helpers shared by simplification, analysis and playback."""

import math
from typing import Optional, Sequence, Tuple

from .models import Coordinate

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_DEGREE = 111_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance in meters between two lat/lon points.

    Args:
        lat1: Latitude 1 in degrees.
        lon1: Longitude 1 in degrees.
        lat2: Latitude 2 in degrees.
        lon2: Longitude 2 in degrees.

    Returns:
        Distance in meters.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def distance_between(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in meters between two coordinates."""
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def euclidean_degrees(a: Coordinate, b: Coordinate) -> float:
    """Flat distance between two coordinates, in decimal degrees."""
    dx = b.longitude - a.longitude
    dy = b.latitude - a.latitude
    return math.sqrt(dx * dx + dy * dy)


def perpendicular_distance(point: Coordinate, line_start: Coordinate, line_end: Coordinate) -> float:
    """
    Distance in decimal degrees from a point to the line through two endpoints.

    Treats lat/lon as a plane, which is close enough for the short spans
    a route simplifier works on.
    """
    dx = line_end.longitude - line_start.longitude
    dy = line_end.latitude - line_start.latitude

    if dx == 0 and dy == 0:
        return euclidean_degrees(point, line_start)

    numerator = abs(
        dy * point.longitude
        - dx * point.latitude
        + line_end.longitude * line_start.latitude
        - line_end.latitude * line_start.longitude
    )
    return numerator / math.sqrt(dx * dx + dy * dy)


def bounding_box(
    coordinates: Sequence[Coordinate], buffer_m: float = 0.0
) -> Optional[Tuple[float, float, float, float]]:
    """
    Bounding box (south, west, north, east) around coordinates.

    The buffer is converted to degrees with ~111 km per degree of latitude,
    and longitude scaled by the cosine of the southern edge.
    """
    if not coordinates:
        return None

    min_lat = min(c.latitude for c in coordinates)
    max_lat = max(c.latitude for c in coordinates)
    min_lon = min(c.longitude for c in coordinates)
    max_lon = max(c.longitude for c in coordinates)

    lat_buffer = buffer_m / METERS_PER_DEGREE
    lon_buffer = buffer_m / (METERS_PER_DEGREE * math.cos(math.radians(min_lat)))

    return (min_lat - lat_buffer, min_lon - lon_buffer, max_lat + lat_buffer, max_lon + lon_buffer)


def region_for(coordinates: Sequence[Coordinate]) -> Optional[Tuple[Coordinate, float, float]]:
    """
    Map region framing a set of coordinates.

    Returns:
        (center, latitude_span, longitude_span), spans padded by 30% and never
        smaller than 0.01 degrees. None for an empty sequence.
    """
    box = bounding_box(coordinates)
    if box is None:
        return None

    south, west, north, east = box
    center = Coordinate((south + north) / 2, (west + east) / 2)
    return center, max(0.01, (north - south) * 1.3), max(0.01, (east - west) * 1.3)
