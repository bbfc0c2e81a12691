"""RailReplay - Replay recorded train journeys with station pass detection."""

__version__ = "0.1.0"

from .models import (
    Coordinate,
    TrajectoryPoint,
    Station,
    PassEvent,
    RailwaySegment,
    RouteSourceMode,
    PlaybackStatus,
)
from .simplification import PathSimplifier, ZoomTier, simplify
from .station_analysis import StationAnalysisService, AnalysisResult, detect_passes
from .playback import PlaybackSource, PlaybackState
from .playback_clock import PlaybackClock, StationStepper, ManualTickSource, TimerTickSource
from .catalog import StationCatalog
from .station_service import OverpassStationService
from .railway_service import OpenRailRoutingService
from .session_import import ImportedSession, SessionImportError, import_session

__all__ = [
    "PlaybackClock",
    "StationStepper",
    "ManualTickSource",
    "TimerTickSource",
    "PlaybackSource",
    "PlaybackState",
    "PathSimplifier",
    "ZoomTier",
    "simplify",
    "StationAnalysisService",
    "AnalysisResult",
    "detect_passes",
    "StationCatalog",
    "OverpassStationService",
    "OpenRailRoutingService",
    "ImportedSession",
    "SessionImportError",
    "import_session",
    "Coordinate",
    "TrajectoryPoint",
    "Station",
    "PassEvent",
    "RailwaySegment",
    "RouteSourceMode",
    "PlaybackStatus",
]
