"""
Time-based playback of a recorded trajectory.

Playback state is an immutable PlaybackState value. Every operation here is a
pure transition taking the current state plus the read-only PlaybackSource and
returning the next state; PlaybackClock (playback_clock.py) owns the timer and
stores the results.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .geo import distance_between
from .models import (
    Coordinate,
    PassEvent,
    PlaybackStatus,
    RailwaySegment,
    RouteSourceMode,
    Station,
    TrajectoryPoint,
)
from .simplification import PathSimplifier

logger = logging.getLogger(__name__)

DEFAULT_PLAYBACK_DURATION = 30.0  # seconds of animation for the whole journey
DEFAULT_UPDATE_FREQUENCY = 1.0  # seconds per fixed tick
DEFAULT_CAMERA_DISTANCE = 1000.0  # meters
DEFAULT_CAMERA_ANIMATION_DURATION = 0.5  # seconds
PATH_REFRESH_INTERVAL = 0.2  # wall seconds between traveled-path rebuilds
CAMERA_REFRESH_MARGIN = 0.1  # added to the camera animation duration
RAILWAY_MATCH_RADIUS = 500.0  # meters from a passed station to a segment endpoint

# Relative slack for decimal durations and frequencies that are not exact in
# binary (three 0.3 s ticks make 0.8999999999999999, not 0.9)
_TICK_TOLERANCE = 1e-12


class PlaybackSource:
    """Read-only inputs for one playback session."""

    def __init__(
        self,
        points: Sequence[TrajectoryPoint],
        events: Iterable[PassEvent] = (),
        stations: Iterable[Station] = (),
        segments: Iterable[RailwaySegment] = (),
        simplifier: Optional[PathSimplifier] = None,
    ):
        """
        Build a playback source.

        Args:
            points: Raw trajectory, non-decreasing by timestamp.
            events: Station pass events; sorted chronologically here.
            stations: Stations the events refer to (any iterable of Station,
                including a StationCatalog).
            segments: Railway geometry between consecutive stations.
            simplifier: Simplifier over the trajectory; one is created if omitted.
        """
        self.points: Tuple[TrajectoryPoint, ...] = tuple(points)
        self.events: Tuple[PassEvent, ...] = tuple(sorted(events, key=lambda e: e.timestamp))
        self.stations: Dict[str, Station] = {station.id: station for station in stations}
        self.segments: Tuple[RailwaySegment, ...] = tuple(segments)
        self.simplifier = simplifier or PathSimplifier([p.coordinate for p in self.points])

    @property
    def journey_duration(self) -> float:
        """Real duration of the recording in seconds."""
        if not self.points:
            return 0.0
        return self.points[-1].timestamp - self.points[0].timestamp

    @property
    def is_degenerate(self) -> bool:
        """True when there is no time span to map playback onto."""
        return len(self.points) < 2 or self.journey_duration <= 0

    def station_coordinate(self, station_id: str) -> Optional[Coordinate]:
        station = self.stations.get(station_id)
        return station.coordinate if station else None


@dataclass(frozen=True)
class PlaybackState:
    """Everything the host reads each frame. Replace, never mutate."""
    elapsed: float = 0.0
    duration: float = DEFAULT_PLAYBACK_DURATION
    mode: RouteSourceMode = RouteSourceMode.GPS
    update_frequency: float = DEFAULT_UPDATE_FREQUENCY
    status: PlaybackStatus = PlaybackStatus.IDLE
    interpolated_position: Optional[Coordinate] = None
    traveled_path: Tuple[Coordinate, ...] = ()
    current_station_pass_index: int = 0
    camera_distance: float = DEFAULT_CAMERA_DISTANCE
    marker_visible: bool = False
    camera_refresh_count: int = 0
    # Real seconds fed to advance() since start, and when the throttled
    # outputs were last refreshed on that clock
    wall_time: float = 0.0
    last_path_refresh: float = 0.0
    last_camera_refresh: float = 0.0
    # Fixed ticks count from tick_origin so elapsed never accumulates rounding
    tick_origin: float = 0.0
    fixed_ticks: int = 0

    @property
    def is_playing(self) -> bool:
        return self.status is PlaybackStatus.PLAYING

    @property
    def formatted_time(self) -> str:
        """Elapsed and total playback time, e.g. "0:15 / 0:30"."""
        elapsed = int(self.elapsed)
        total = int(self.duration)
        return f"{elapsed // 60}:{elapsed % 60:02d} / {total // 60}:{total % 60:02d}"

    @property
    def animation_duration(self) -> float:
        """Transition length for smooth marker movement between fixed ticks."""
        return self.update_frequency * 0.8


def progress(state: PlaybackState, source: PlaybackSource) -> float:
    """Playback progress in [0, 1]; 0 whenever there is nothing to divide by."""
    if state.duration <= 0 or source.is_degenerate:
        return 0.0
    return min(1.0, max(0.0, state.elapsed / state.duration))


def target_timestamp(state: PlaybackState, source: PlaybackSource) -> Optional[float]:
    """Map compressed playback time onto the recording's time range."""
    if not source.points:
        return None
    return source.points[0].timestamp + progress(state, source) * source.journey_duration


def compression_ratio(state: PlaybackState, source: PlaybackSource) -> float:
    """Real journey seconds shown per playback second."""
    if state.duration <= 0:
        return 0.0
    return source.journey_duration / state.duration


def format_journey_duration(seconds: float) -> str:
    """Format a duration as "1h 2m 3s", "2m 3s" or "3s"."""
    total = int(seconds)
    hours = total // 3600
    minutes = (total % 3600) // 60
    secs = total % 60
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


# Position sources

def _gps_frame(
    state: PlaybackState, source: PlaybackSource, include_path: bool
) -> Tuple[Optional[Coordinate], Optional[Tuple[Coordinate, ...]]]:
    """
    Position along the display-simplified polyline.

    The marker advances uniformly in simplified-vertex index, not in distance
    or recorded time.
    """
    if source.is_degenerate:
        position = source.points[0].coordinate if source.points else None
        return position, ()

    simplified = source.simplifier.get_simplified(state.camera_distance)
    count = len(simplified)
    if count == 0:
        return None, ()
    if count == 1:
        return simplified[0], (simplified[0],)

    exact_index = progress(state, source) * (count - 1)
    lower = int(math.floor(exact_index))
    upper = min(int(math.ceil(exact_index)), count - 1)
    fraction = exact_index - lower

    start = simplified[lower]
    end = simplified[upper]
    position = Coordinate(
        start.latitude + (end.latitude - start.latitude) * fraction,
        start.longitude + (end.longitude - start.longitude) * fraction,
    )

    if not include_path:
        return position, None

    path: List[Coordinate] = list(simplified[: lower + 1])
    if path[-1] != position:
        path.append(position)
    return position, tuple(path)


def _current_pass_index(events: Sequence[PassEvent], target: Optional[float]) -> int:
    """Index of the last event at or before the target time; 0 before the first."""
    if target is None:
        return 0
    index = 0
    for i, event in enumerate(events):
        if event.timestamp <= target:
            index = i
        else:
            break
    return index


def _railway_path(source: PlaybackSource, pass_index: int) -> Tuple[Coordinate, ...]:
    """Concatenate segments whose both ends lie near stations already passed."""
    passed = [
        coordinate
        for coordinate in (source.station_coordinate(e.station_id) for e in source.events[: pass_index + 1])
        if coordinate is not None
    ]
    if not passed:
        return ()

    def near_passed(point: Optional[Coordinate]) -> bool:
        return point is not None and any(
            distance_between(point, station) <= RAILWAY_MATCH_RADIUS for station in passed
        )

    path: List[Coordinate] = []
    for segment in source.segments:
        if near_passed(segment.start) and near_passed(segment.end):
            path.extend(segment.coordinates)
    return tuple(path)


def _railway_frame(
    state: PlaybackState, source: PlaybackSource, include_path: bool
) -> Tuple[int, Optional[Coordinate], Optional[Tuple[Coordinate, ...]]]:
    """Snap to the most recently passed station; no interpolation along track."""
    if not source.events:
        return 0, None, ()

    pass_index = _current_pass_index(source.events, target_timestamp(state, source))
    position = source.station_coordinate(source.events[pass_index].station_id)
    path = _railway_path(source, pass_index) if include_path else None
    return pass_index, position, path


def recompute(state: PlaybackState, source: PlaybackSource, include_path: bool = True) -> PlaybackState:
    """Refresh position (and optionally the traveled path) for the current elapsed time."""
    if state.mode is RouteSourceMode.RAILWAY:
        pass_index, position, path = _railway_frame(state, source, include_path)
    else:
        pass_index = state.current_station_pass_index
        position, path = _gps_frame(state, source, include_path)

    if path is None:
        path = state.traveled_path
    return replace(
        state,
        interpolated_position=position,
        traveled_path=path,
        current_station_pass_index=pass_index,
    )


# Transitions

def start(
    state: PlaybackState, source: PlaybackSource, update_frequency: Optional[float] = None
) -> PlaybackState:
    """
    Begin playing from the current elapsed time.

    Playback at or past the end restarts from zero. An empty trajectory
    or a non-positive update frequency leaves the state untouched.
    """
    if not source.points:
        logger.debug("Ignoring start: trajectory is empty")
        return state

    frequency = state.update_frequency if update_frequency is None else update_frequency
    if not frequency > 0:
        logger.debug(f"Ignoring start: update frequency {frequency} is not positive")
        return state

    elapsed = 0.0 if state.elapsed >= state.duration else state.elapsed
    state = replace(
        state,
        elapsed=elapsed,
        update_frequency=frequency,
        status=PlaybackStatus.PLAYING,
        marker_visible=True,
        camera_refresh_count=state.camera_refresh_count + 1,
        wall_time=0.0,
        last_path_refresh=0.0,
        last_camera_refresh=0.0,
    )
    return recompute(state, source)


def pause(state: PlaybackState) -> PlaybackState:
    if not state.is_playing:
        return state
    return replace(state, status=PlaybackStatus.PAUSED)


def resume(state: PlaybackState, source: PlaybackSource) -> PlaybackState:
    """Continue a paused playback; from Idle or Completed this behaves like start."""
    if state.status is PlaybackStatus.PAUSED:
        return replace(state, status=PlaybackStatus.PLAYING, marker_visible=True)
    if state.is_playing:
        return state
    return start(state, source)


def toggle(state: PlaybackState, source: PlaybackSource) -> PlaybackState:
    if state.is_playing:
        return pause(state)
    return start(state, source)


def _complete(state: PlaybackState, source: PlaybackSource) -> PlaybackState:
    state = recompute(replace(state, elapsed=state.duration), source)
    return replace(
        state,
        status=PlaybackStatus.COMPLETED,
        marker_visible=False,
        camera_refresh_count=state.camera_refresh_count + 1,
        last_path_refresh=state.wall_time,
        last_camera_refresh=state.wall_time,
    )


def advance(
    state: PlaybackState,
    source: PlaybackSource,
    delta: float,
    camera_animation_duration: float = DEFAULT_CAMERA_ANIMATION_DURATION,
) -> PlaybackState:
    """
    Real-time tick: add wall-clock seconds to the elapsed time.

    Position is recomputed every call. The traveled path is rebuilt at most
    every PATH_REFRESH_INTERVAL wall seconds, and the camera refresh counter
    moves at most every camera_animation_duration + CAMERA_REFRESH_MARGIN.
    Reaching the duration clamps, does one full recompute and refresh, and
    completes.
    """
    if not state.is_playing:
        return state

    delta = max(0.0, delta)
    state = replace(state, elapsed=state.elapsed + delta, wall_time=state.wall_time + delta)

    if state.elapsed >= state.duration:
        return _complete(state, source)

    refresh_path = state.wall_time - state.last_path_refresh >= PATH_REFRESH_INTERVAL
    state = recompute(state, source, include_path=refresh_path)
    if refresh_path:
        state = replace(state, last_path_refresh=state.wall_time)

    if state.wall_time - state.last_camera_refresh >= camera_animation_duration + CAMERA_REFRESH_MARGIN:
        state = replace(
            state,
            camera_refresh_count=state.camera_refresh_count + 1,
            last_camera_refresh=state.wall_time,
        )
    return state


def tick(state: PlaybackState, source: PlaybackSource) -> PlaybackState:
    """
    Fixed-frequency tick: add exactly update_frequency seconds.

    Completes after ceil(duration / update_frequency) ticks.
    """
    if not state.is_playing:
        return state

    origin, ticks = state.tick_origin, state.fixed_ticks
    if state.elapsed != origin + ticks * state.update_frequency:
        # Elapsed was moved by a seek, restart or real-time advance
        origin, ticks = state.elapsed, 0
    ticks += 1
    elapsed = origin + ticks * state.update_frequency

    state = replace(state, elapsed=elapsed, tick_origin=origin, fixed_ticks=ticks)
    tolerance = _TICK_TOLERANCE * max(state.duration, state.update_frequency)
    if elapsed >= state.duration - tolerance:
        return _complete(state, source)

    state = recompute(state, source)
    return replace(state, camera_refresh_count=state.camera_refresh_count + 1)


def seek(state: PlaybackState, source: PlaybackSource, time: float) -> PlaybackState:
    """
    Jump to a playback time, clamped into [0, duration].

    The marker is shown, except at exactly the end of the journey.
    """
    elapsed = max(0.0, min(time, state.duration))
    state = recompute(replace(state, elapsed=elapsed), source)
    return replace(
        state,
        marker_visible=elapsed < state.duration,
        camera_refresh_count=state.camera_refresh_count + 1,
    )


def seek_to_progress(state: PlaybackState, source: PlaybackSource, fraction: float) -> PlaybackState:
    return seek(state, source, fraction * state.duration)


def set_duration(state: PlaybackState, source: PlaybackSource, duration: float) -> PlaybackState:
    duration = max(0.0, duration)
    state = replace(state, duration=duration, elapsed=min(state.elapsed, duration))
    return recompute(state, source)


def set_mode(state: PlaybackState, source: PlaybackSource, mode: RouteSourceMode) -> PlaybackState:
    return recompute(replace(state, mode=mode), source)


def set_camera_distance(state: PlaybackState, source: PlaybackSource, distance: float) -> PlaybackState:
    return recompute(replace(state, camera_distance=max(0.0, distance)), source)
