"""Import recorded sessions from the JSON export format."""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from .models import TrajectoryPoint

logger = logging.getLogger(__name__)

REQUIRED_LOCATION_FIELDS = [
    "timestamp",
    "latitude",
    "longitude",
    "altitude",
    "speed",
    "course",
    "horizontalAccuracy",
    "verticalAccuracy",
]

# 2024-05-01T08:30:00Z, 2024-05-01T08:30:00.123Z, 2024-05-01T08:30:00+02:00
_ISO8601 = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:?\d{2})$"
)


class SessionImportError(ValueError):
    """Raised when a session document cannot be imported."""

    INVALID_FORMAT = "invalid format"
    MISSING_FIELD = "missing field"
    INVALID_TIMESTAMP = "invalid timestamp"
    NO_LOCATIONS = "no locations"

    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        self.detail = detail
        message = f"{reason}: {detail}" if detail else reason
        super().__init__(message)


@dataclass
class ImportedSession:
    """A recorded session read back from an export."""
    name: str
    start_time: float  # Unix timestamp
    end_time: Optional[float]
    total_distance: Optional[float]  # meters
    average_speed: Optional[float]  # m/s
    points: List[TrajectoryPoint]


def parse_timestamp(value: str) -> Optional[float]:
    """
    Parse an internet date-time string to a Unix timestamp.

    Fractional seconds are optional. Returns None when the string does not parse.
    """
    if not isinstance(value, str):
        return None

    match = _ISO8601.match(value.strip())
    if not match:
        return None

    base, fraction, offset = match.groups()
    # fromisoformat needs exactly six fractional digits and a colon in the offset
    micros = (fraction or "").ljust(6, "0")[:6]
    if offset == "Z":
        offset = "+00:00"
    elif ":" not in offset:
        offset = f"{offset[:3]}:{offset[3:]}"

    try:
        parsed = datetime.fromisoformat(f"{base}.{micros}{offset}")
    except ValueError:
        return None
    return parsed.astimezone(timezone.utc).timestamp()


def _load_document(source: Union[str, Path]) -> object:
    if isinstance(source, Path) or not source.lstrip().startswith(("{", "[")):
        text = Path(source).read_text(encoding="utf-8")
    else:
        text = source

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise SessionImportError(SessionImportError.INVALID_FORMAT, str(e)) from e


def _require(document: dict, field: str):
    if field not in document or document[field] is None:
        raise SessionImportError(SessionImportError.MISSING_FIELD, field)
    return document[field]


def _optional_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def _parse_location(location: object) -> TrajectoryPoint:
    if not isinstance(location, dict):
        raise SessionImportError(SessionImportError.INVALID_FORMAT, "location entry is not an object")

    for field in REQUIRED_LOCATION_FIELDS:
        _require(location, field)

    timestamp = parse_timestamp(location["timestamp"])
    if timestamp is None:
        raise SessionImportError(SessionImportError.INVALID_TIMESTAMP, str(location["timestamp"]))

    try:
        return TrajectoryPoint(
            timestamp=timestamp,
            latitude=float(location["latitude"]),
            longitude=float(location["longitude"]),
            altitude=float(location["altitude"]),
            speed=float(location["speed"]),
            course=float(location["course"]),
            horizontal_accuracy=float(location["horizontalAccuracy"]),
            vertical_accuracy=float(location["verticalAccuracy"]),
        )
    except (TypeError, ValueError) as e:
        raise SessionImportError(SessionImportError.INVALID_FORMAT, str(e)) from e


def import_session(source: Union[str, Path]) -> ImportedSession:
    """
    Import a recorded session.

    Args:
        source: Path to a JSON export, or the JSON text itself.

    Returns:
        ImportedSession with points sorted by timestamp.

    Raises:
        SessionImportError: If the document is malformed or has no locations.
        OSError: If the file cannot be read.
    """
    document = _load_document(source)
    if not isinstance(document, dict):
        raise SessionImportError(SessionImportError.INVALID_FORMAT, "document is not an object")

    name = str(_require(document, "sessionName"))
    start_raw = _require(document, "startTime")
    locations = _require(document, "locations")

    if not isinstance(locations, list):
        raise SessionImportError(SessionImportError.INVALID_FORMAT, "locations is not a list")
    if not locations:
        raise SessionImportError(SessionImportError.NO_LOCATIONS)

    start_time = parse_timestamp(start_raw)
    if start_time is None:
        raise SessionImportError(SessionImportError.INVALID_TIMESTAMP, str(start_raw))

    # An unreadable end time is dropped rather than rejected
    end_raw = document.get("endTime")
    end_time = parse_timestamp(end_raw) if end_raw is not None else None

    points = [_parse_location(location) for location in locations]
    points.sort(key=lambda point: point.timestamp)

    logger.info(f"Imported session '{name}' with {len(points)} points")

    return ImportedSession(
        name=name,
        start_time=start_time,
        end_time=end_time,
        total_distance=_optional_float(document.get("totalDistance")),
        average_speed=_optional_float(document.get("averageSpeed")),
        points=points,
    )
