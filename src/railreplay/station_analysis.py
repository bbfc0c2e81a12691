"""Station pass detection along a recorded trajectory."""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .geo import haversine_m
from .models import Coordinate, PassEvent, Station, TrajectoryPoint

logger = logging.getLogger(__name__)

DEFAULT_PROXIMITY_THRESHOLD = 200.0  # meters
STATION_SEARCH_RADIUS = 500.0  # meters around the trajectory

ProgressCallback = Callable[[float], None]


def _scan_station(
    points: Sequence[TrajectoryPoint], station: Station, threshold: float
) -> List[PassEvent]:
    """Walk the trajectory once and emit one event per stay inside the radius."""
    events: List[PassEvent] = []
    inside_since: Optional[int] = None
    closest_distance = math.inf
    closest_timestamp: Optional[float] = None

    for index, point in enumerate(points):
        distance = haversine_m(point.latitude, point.longitude, station.latitude, station.longitude)

        if distance <= threshold:
            if inside_since is None:
                inside_since = index
            if distance < closest_distance:
                closest_distance = distance
                closest_timestamp = point.timestamp
        elif inside_since is not None:
            events.append(
                PassEvent(
                    timestamp=closest_timestamp,
                    distance_from_station=closest_distance,
                    entry_index=inside_since,
                    exit_index=index,
                    station_id=station.id,
                )
            )
            # Reset so a later re-entry produces its own event
            inside_since = None
            closest_distance = math.inf
            closest_timestamp = None

    # Trajectory ended inside the radius
    if inside_since is not None:
        events.append(
            PassEvent(
                timestamp=closest_timestamp,
                distance_from_station=closest_distance,
                entry_index=inside_since,
                exit_index=len(points) - 1,
                station_id=station.id,
            )
        )

    return events


def detect_passes(
    points: Sequence[TrajectoryPoint],
    stations: Sequence[Station],
    proximity_threshold: float = DEFAULT_PROXIMITY_THRESHOLD,
    progress: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> List[PassEvent]:
    """
    Detect when the trajectory passed by stations.

    Args:
        points: Trajectory samples, ordered by timestamp.
        stations: Station catalog to test against.
        proximity_threshold: Radius in meters that counts as "at" a station.
        progress: Optional callback receiving the fraction of stations scanned.
        cancel_event: Optional event; when set, scanning stops before the next
            station and only fully scanned stations contribute events.

    Returns:
        Pass events sorted by timestamp, with display_order set to their
        position in that order.
    """
    events: List[PassEvent] = []
    total = len(stations)

    for scanned, station in enumerate(stations):
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Station scan cancelled after {scanned}/{total} stations")
            break

        events.extend(_scan_station(points, station, proximity_threshold))

        if progress is not None:
            progress((scanned + 1) / total)

    # Stable sort keeps catalog order for identical timestamps
    events.sort(key=lambda event: event.timestamp)
    for order, event in enumerate(events):
        event.display_order = order

    return events


@dataclass
class AnalysisResult:
    """Stations found near a trajectory and the passes detected against them."""
    stations: List[Station]
    events: List[PassEvent]


class StationAnalysisService:
    """
    Runs the full station analysis for a recorded trajectory.

    Station lookup is delegated to a provider exposing
    fetch_stations_along_route(coordinates, radius_meters), such as
    OverpassStationService.
    """

    def __init__(self, station_provider, proximity_threshold: float = DEFAULT_PROXIMITY_THRESHOLD):
        """
        Initialize the service.

        Args:
            station_provider: Object that looks up stations near a list of coordinates.
            proximity_threshold: Radius in meters used for pass detection.
        """
        self.station_provider = station_provider
        self.proximity_threshold = proximity_threshold

    def analyze(
        self,
        points: Sequence[TrajectoryPoint],
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> AnalysisResult:
        """
        Fetch stations along the trajectory and detect passes.

        Args:
            points: Trajectory samples, ordered by timestamp.
            progress: Optional callback receiving coarse progress (0.2, 0.5, 0.8, 1.0).
            cancel_event: Optional event checked between stations.

        Returns:
            AnalysisResult with the fetched stations and detected events.
        """
        report = progress if progress is not None else (lambda _fraction: None)

        report(0.2)
        coordinates: List[Coordinate] = [point.coordinate for point in points]
        try:
            stations = self.station_provider.fetch_stations_along_route(
                coordinates, radius_meters=STATION_SEARCH_RADIUS
            )
        except Exception as e:
            logger.error(f"Failed to fetch stations along route: {e}")
            raise

        report(0.5)
        events = detect_passes(
            points,
            stations,
            proximity_threshold=self.proximity_threshold,
            cancel_event=cancel_event,
        )

        report(0.8)
        logger.info(f"Detected {len(events)} passes across {len(stations)} stations")
        report(1.0)

        return AnalysisResult(stations=list(stations), events=events)
