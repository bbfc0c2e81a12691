"""Data models for trajectory playback and station analysis."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import List, NamedTuple, Optional


class Coordinate(NamedTuple):
    """A latitude/longitude pair in decimal degrees."""
    latitude: float
    longitude: float


@dataclass(frozen=True)
class TrajectoryPoint:
    """A single recorded GPS sample."""
    timestamp: float  # Unix timestamp (seconds)
    latitude: float
    longitude: float
    altitude: float = 0.0  # meters
    speed: float = 0.0  # m/s
    course: float = 0.0  # degrees
    horizontal_accuracy: float = 0.0  # meters
    vertical_accuracy: float = 0.0  # meters

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    @property
    def recorded_at(self) -> datetime:
        """Timestamp as a timezone-aware UTC datetime."""
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)


@dataclass(frozen=True)
class Station:
    """Represents a train station from an external catalog."""
    id: str  # Stable external identifier (e.g. OSM id, GTFS stop_id)
    name: str
    latitude: float
    longitude: float
    type: Optional[str] = None  # station, halt, subway, ...
    operator: Optional[str] = None

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    @property
    def display_type(self) -> str:
        return self.type.capitalize() if self.type else "Station"


@dataclass
class PassEvent:
    """A detected pass of a station, timestamped at the closest approach."""
    timestamp: float  # Unix timestamp of the closest sample
    distance_from_station: float  # meters
    entry_index: int  # Trajectory index where the proximity radius was entered
    exit_index: int  # Trajectory index where it was left (or the last index)
    station_id: str
    display_order: int = 0

    @property
    def formatted_distance(self) -> str:
        return f"{self.distance_from_station:.0f} m"


@dataclass(frozen=True)
class RailwaySegment:
    """Track geometry between two stations, as supplied by a routing service."""
    coordinates: List[Coordinate]

    @property
    def start(self) -> Optional[Coordinate]:
        return self.coordinates[0] if self.coordinates else None

    @property
    def end(self) -> Optional[Coordinate]:
        return self.coordinates[-1] if self.coordinates else None


class RouteSourceMode(Enum):
    """Where the playback position comes from."""
    GPS = "GPS"
    RAILWAY = "Railway"


class PlaybackStatus(Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    COMPLETED = "completed"
