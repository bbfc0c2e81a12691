"""Tests for the Overpass and OpenRailRouting clients."""

import unittest
from unittest.mock import MagicMock, patch
import sys
from pathlib import Path

import requests

# Add src to path so we can import railreplay
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from railreplay.models import Coordinate, RailwaySegment, Station
from railreplay.railway_service import OpenRailRoutingService, parse_route
from railreplay.station_service import OverpassStationService, build_query, parse_elements

OVERPASS_PAYLOAD = {
    "elements": [
        {
            "type": "node",
            "id": 101,
            "lat": 51.5154,
            "lon": -0.1755,
            "tags": {"name": "London Paddington", "railway": "station", "operator": "Network Rail"},
        },
        {
            "type": "node",
            "id": 102,
            "lat": 51.5160,
            "lon": -0.1770,
            "tags": {"name": "London Paddington", "railway": "halt"},
        },
        {
            "type": "way",
            "id": 201,
            "center": {"lat": 51.4588, "lon": -0.9718},
            "tags": {"name": "Reading", "public_transport": "station", "station": "train"},
        },
        {"type": "node", "id": 301, "lat": 51.0, "lon": -1.0, "tags": {"railway": "station"}},
        {"type": "way", "id": 401, "tags": {"name": "No Position"}},
    ]
}

ROUTE_PAYLOAD = {
    "paths": [
        {
            "points": {
                "type": "LineString",
                "coordinates": [[-0.1755, 51.5154], [-0.5, 51.49], [-0.9718, 51.4588]],
            }
        }
    ]
}


def mock_response(payload=None, status_error=None):
    response = MagicMock()
    response.json.return_value = payload
    if status_error is not None:
        response.raise_for_status.side_effect = status_error
    return response


class TestOverpassParsing(unittest.TestCase):
    """Test query building and element parsing."""

    def test_build_query_uses_buffered_bbox(self):
        """Test the bounding box grows by the search radius."""
        query = build_query([Coordinate(51.0, -1.0), Coordinate(51.5, -0.5)], 1110.0)

        self.assertIn('node["railway"="station"](50.99,', query)
        self.assertIn('way["railway"="station"]', query)
        self.assertIn('node["public_transport"="station"]["train"="yes"]', query)
        self.assertIn("out center;", query)

    def test_build_query_empty(self):
        """Test an empty route has no query."""
        self.assertIsNone(build_query([], 500.0))

    def test_parse_elements(self):
        """Test nodes and way centers become stations."""
        stations = parse_elements(OVERPASS_PAYLOAD["elements"])

        self.assertEqual([s.id for s in stations], ["101", "102", "201"])
        self.assertEqual(stations[0].operator, "Network Rail")
        self.assertEqual(stations[0].type, "station")
        self.assertEqual(stations[2].latitude, 51.4588)
        self.assertEqual(stations[2].type, "train")


class TestOverpassStationService(unittest.TestCase):
    """Test the Overpass station client."""

    def setUp(self):
        self.session = MagicMock()
        self.service = OverpassStationService(session=self.session)
        self.route = [Coordinate(51.5, -0.2), Coordinate(51.45, -1.0)]

    def test_fetch_stations(self):
        """Test stations are fetched and deduplicated by name."""
        self.session.post.return_value = mock_response(OVERPASS_PAYLOAD)

        stations = self.service.fetch_stations_along_route(self.route)

        self.assertEqual([s.name for s in stations], ["London Paddington", "Reading"])
        self.assertEqual(stations[0].id, "101")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://overpass-api.de/api/interpreter")
        self.assertIn("[out:json]", kwargs["data"])
        self.assertEqual(kwargs["timeout"], 30)

    def test_empty_route(self):
        """Test no request is made for an empty route."""
        self.assertEqual(self.service.fetch_stations_along_route([]), [])
        self.session.post.assert_not_called()

    def test_cache(self):
        """Test repeated lookups reuse the cached response."""
        self.session.post.return_value = mock_response(OVERPASS_PAYLOAD)

        self.service.fetch_stations_along_route(self.route)
        self.service.fetch_stations_along_route(self.route)
        self.assertEqual(self.session.post.call_count, 1)

        self.service.clear_cache()
        self.service.fetch_stations_along_route(self.route)
        self.assertEqual(self.session.post.call_count, 2)

    @patch("railreplay.cache.time.time")
    def test_cache_expires(self, mock_time):
        """Test cached responses expire after the TTL."""
        self.session.post.return_value = mock_response(OVERPASS_PAYLOAD)
        mock_time.return_value = 1000.0
        self.service.fetch_stations_along_route(self.route)

        mock_time.return_value = 1000.0 + self.service._cache.ttl + 1
        self.service.fetch_stations_along_route(self.route)
        self.assertEqual(self.session.post.call_count, 2)

    def test_http_error_propagates(self):
        """Test server errors are raised to the caller."""
        self.session.post.return_value = mock_response(status_error=requests.HTTPError("504"))

        with self.assertRaises(requests.HTTPError):
            self.service.fetch_stations_along_route(self.route)

    def test_custom_base_url(self):
        """Test the endpoint can be overridden."""
        service = OverpassStationService(base_url="http://localhost:12345/api/interpreter", session=self.session)
        self.session.post.return_value = mock_response({"elements": []})

        self.assertEqual(service.fetch_stations_along_route(self.route), [])
        self.assertEqual(self.session.post.call_args.args[0], "http://localhost:12345/api/interpreter")


class TestOpenRailRoutingService(unittest.TestCase):
    """Test the railway routing client."""

    def setUp(self):
        self.session = MagicMock()
        self.service = OpenRailRoutingService(session=self.session)
        self.start = Coordinate(51.5154, -0.1755)
        self.end = Coordinate(51.4588, -0.9718)

    def test_parse_route_swaps_axes(self):
        """Test [lon, lat] pairs become coordinates."""
        segments = parse_route(ROUTE_PAYLOAD)
        self.assertEqual(len(segments), 1)
        self.assertEqual(segments[0].coordinates[0], Coordinate(51.5154, -0.1755))
        self.assertEqual(segments[0].end, Coordinate(51.4588, -0.9718))

    def test_parse_route_without_paths(self):
        """Test no path gives no segments."""
        self.assertEqual(parse_route({"paths": []}), [])
        self.assertEqual(parse_route({}), [])

    def test_fetch_route_params(self):
        """Test the request asks for unencoded all-track routing."""
        self.session.get.return_value = mock_response(ROUTE_PAYLOAD)

        segments = self.service.fetch_route(self.start, self.end)

        self.assertEqual(len(segments), 1)
        args, kwargs = self.session.get.call_args
        self.assertEqual(args[0], "https://routing.openrailrouting.org/route")
        params = kwargs["params"]
        self.assertIn(("point", "51.5154,-0.1755"), params)
        self.assertIn(("point", "51.4588,-0.9718"), params)
        self.assertIn(("profile", "all_tracks"), params)
        self.assertIn(("points_encoded", "false"), params)

    def test_fetch_route_cached(self):
        """Test the same pair is fetched once."""
        self.session.get.return_value = mock_response(ROUTE_PAYLOAD)
        self.service.fetch_route(self.start, self.end)
        self.service.fetch_route(self.start, self.end)
        self.assertEqual(self.session.get.call_count, 1)

    def test_fetch_route_error(self):
        """Test a failed request is raised."""
        self.session.get.side_effect = requests.ConnectionError("offline")
        with self.assertRaises(requests.ConnectionError):
            self.service.fetch_route(self.start, self.end)

    def test_fetch_routes_between_skips_failures(self):
        """Test one failing pair does not lose the others."""
        stations = [
            Station(id="1", name="Paddington", latitude=51.5154, longitude=-0.1755),
            Station(id="2", name="Reading", latitude=51.4588, longitude=-0.9718),
            Station(id="3", name="Didcot Parkway", latitude=51.6110, longitude=-1.2428),
        ]
        self.session.get.side_effect = [
            mock_response(ROUTE_PAYLOAD),
            requests.ConnectionError("offline"),
        ]

        segments = self.service.fetch_routes_between(stations)

        self.assertEqual(len(segments), 1)
        self.assertIsInstance(segments[0], RailwaySegment)
        self.assertEqual(self.session.get.call_count, 2)

    def test_fetch_routes_between_too_few(self):
        """Test fewer than two stations need no routing."""
        self.assertEqual(self.service.fetch_routes_between([]), [])
        self.session.get.assert_not_called()


if __name__ == "__main__":
    unittest.main()
