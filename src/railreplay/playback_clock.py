"""Host-facing playback driver: tick sources, listeners and station stepping."""

import logging
import threading
from dataclasses import replace
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from . import playback
from .models import (
    Coordinate,
    PassEvent,
    PlaybackStatus,
    RailwaySegment,
    RouteSourceMode,
    Station,
    TrajectoryPoint,
)
from .playback import PlaybackSource, PlaybackState

logger = logging.getLogger(__name__)

DEFAULT_STATION_STEP_INTERVAL = 2.0  # seconds per station

StateListener = Callable[[PlaybackState], None]


class TickSource:
    """Delivers repeated ticks to a callback until cancelled."""

    def arm(self, callback: Callable[[], None], interval: float) -> None:
        raise NotImplementedError

    def cancel(self) -> None:
        raise NotImplementedError

    @property
    def is_armed(self) -> bool:
        raise NotImplementedError


class ManualTickSource(TickSource):
    """
    Tick source driven by the host.

    The host's frame loop (or a test) calls fire() to deliver one tick.
    """

    def __init__(self):
        self._callback: Optional[Callable[[], None]] = None
        self.interval: Optional[float] = None

    def arm(self, callback: Callable[[], None], interval: float) -> None:
        self._callback = callback
        self.interval = interval

    def cancel(self) -> None:
        self._callback = None

    @property
    def is_armed(self) -> bool:
        return self._callback is not None

    def fire(self) -> bool:
        """Deliver one tick. Returns False if the source is not armed."""
        if self._callback is None:
            return False
        self._callback()
        return True


class TimerTickSource(TickSource):
    """
    Fixed-interval background timer.

    Every arm() starts a fresh generation; a timer from an older generation
    that fires late is dropped, so no tick is delivered after cancel().
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._callback: Optional[Callable[[], None]] = None
        self._interval = 0.0
        self._generation = 0

    def arm(self, callback: Callable[[], None], interval: float) -> None:
        if interval <= 0:
            raise ValueError(f"Tick interval must be positive, got {interval}")
        with self._lock:
            self._stop_timer()
            self._generation += 1
            self._callback = callback
            self._interval = interval
            self._schedule(self._generation)

    def cancel(self) -> None:
        with self._lock:
            self._stop_timer()
            self._generation += 1
            self._callback = None

    @property
    def is_armed(self) -> bool:
        return self._callback is not None

    def _schedule(self, generation: int) -> None:
        self._timer = threading.Timer(self._interval, self._fire, args=(generation,))
        self._timer.daemon = True
        self._timer.start()

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._callback is None:
                return
            callback = self._callback

        callback()

        with self._lock:
            if generation == self._generation and self._callback is not None:
                self._schedule(generation)


class PlaybackClock:
    """
    Owns playback state for one trajectory and drives it from ticks.

    All mutations are serialized under one lock, so a timer tick can never
    interleave with a seek or pause. Listeners run while the lock is held
    and must not block on other threads that use the clock.
    """

    def __init__(
        self,
        points: Sequence[TrajectoryPoint],
        events: Iterable[PassEvent] = (),
        stations: Iterable[Station] = (),
        segments: Iterable[RailwaySegment] = (),
        duration: float = playback.DEFAULT_PLAYBACK_DURATION,
        mode: RouteSourceMode = RouteSourceMode.GPS,
        camera_distance: float = playback.DEFAULT_CAMERA_DISTANCE,
        camera_animation_duration: float = playback.DEFAULT_CAMERA_ANIMATION_DURATION,
        tick_source: Optional[TickSource] = None,
        on_update: Optional[StateListener] = None,
        on_camera_refresh: Optional[StateListener] = None,
        on_complete: Optional[StateListener] = None,
    ):
        """
        Initialize the clock.

        Args:
            points: Raw trajectory, non-decreasing by timestamp.
            events: Station pass events (used in Railway mode).
            stations: Stations referenced by the events.
            segments: Railway geometry between stations.
            duration: Compressed playback length in seconds.
            mode: Initial route source mode.
            camera_distance: Initial camera distance in meters.
            camera_animation_duration: Host camera animation length; real-time
                camera refreshes are spaced at least this plus 0.1 s apart.
            tick_source: Where fixed-frequency ticks come from. Without one the
                host calls advance() or update_playback_frame() itself.
            on_update: Called with the new state after every change.
            on_camera_refresh: Called when the camera refresh counter moves.
            on_complete: Called once when playback reaches the end.
        """
        self._lock = threading.RLock()
        self._tick_generation = 0
        self.source = PlaybackSource(points, events, stations, segments)
        self.camera_animation_duration = camera_animation_duration
        self.tick_source = tick_source
        self.on_update = on_update
        self.on_camera_refresh = on_camera_refresh
        self.on_complete = on_complete
        self._state = playback.recompute(
            PlaybackState(duration=max(0.0, duration), mode=mode, camera_distance=max(0.0, camera_distance)),
            self.source,
        )

    # Published state

    @property
    def state(self) -> PlaybackState:
        with self._lock:
            return self._state

    @property
    def elapsed(self) -> float:
        return self.state.elapsed

    @property
    def duration(self) -> float:
        return self.state.duration

    @property
    def is_playing(self) -> bool:
        return self.state.is_playing

    @property
    def status(self) -> PlaybackStatus:
        return self.state.status

    @property
    def interpolated_position(self) -> Optional[Coordinate]:
        return self.state.interpolated_position

    @property
    def traveled_path(self) -> Tuple[Coordinate, ...]:
        return self.state.traveled_path

    @property
    def current_station_pass_index(self) -> int:
        return self.state.current_station_pass_index

    @property
    def marker_visible(self) -> bool:
        return self.state.marker_visible

    @property
    def camera_refresh_count(self) -> int:
        return self.state.camera_refresh_count

    @property
    def formatted_time(self) -> str:
        return self.state.formatted_time

    @property
    def journey_duration(self) -> float:
        return self.source.journey_duration

    @property
    def formatted_journey_duration(self) -> str:
        return playback.format_journey_duration(self.source.journey_duration)

    @property
    def compression_ratio(self) -> float:
        return playback.compression_ratio(self.state, self.source)

    @property
    def progress(self) -> float:
        return playback.progress(self.state, self.source)

    @property
    def simplified_route(self) -> Tuple[Coordinate, ...]:
        """Route line for the current camera distance."""
        return self.source.simplifier.get_simplified(self.state.camera_distance)

    # Lifecycle

    def load(
        self,
        points: Sequence[TrajectoryPoint],
        events: Iterable[PassEvent] = (),
        stations: Iterable[Station] = (),
        segments: Iterable[RailwaySegment] = (),
    ) -> None:
        """Swap in a new trajectory and reset playback, keeping duration, mode and camera."""
        with self._lock:
            self._cancel_ticks()
            previous = self._state
            self.source = PlaybackSource(points, events, stations, segments)
            self._apply(
                playback.recompute(
                    PlaybackState(
                        duration=previous.duration,
                        mode=previous.mode,
                        update_frequency=previous.update_frequency,
                        camera_distance=previous.camera_distance,
                    ),
                    self.source,
                )
            )
        logger.info(f"Loaded trajectory with {len(self.source.points)} points")

    def start(self, update_frequency: float = playback.DEFAULT_UPDATE_FREQUENCY) -> None:
        """Start playback, arming the tick source at the given frequency."""
        with self._lock:
            new_state = playback.start(self._state, self.source, update_frequency)
            self._apply(new_state)
            if new_state.is_playing:
                self._arm_ticks()
                logger.info(
                    f"Playback started at {new_state.elapsed:.1f}s of {new_state.duration:.1f}s "
                    f"({new_state.mode.value} mode)"
                )

    def pause(self) -> None:
        with self._lock:
            self._cancel_ticks()
            self._apply(playback.pause(self._state))

    def resume(self) -> None:
        with self._lock:
            new_state = playback.resume(self._state, self.source)
            self._apply(new_state)
            if new_state.is_playing:
                self._arm_ticks()

    def toggle(self) -> None:
        with self._lock:
            if self._state.is_playing:
                self.pause()
            else:
                self.start(self._state.update_frequency)

    def reset(self) -> None:
        """Stop and rewind to the beginning."""
        with self._lock:
            self._cancel_ticks()
            state = replace(self._state, status=PlaybackStatus.IDLE, marker_visible=False, elapsed=0.0)
            self._apply(playback.recompute(state, self.source))

    # Ticking

    def advance(self, delta: float) -> None:
        """Real-time tick with the wall-clock seconds since the previous frame."""
        with self._lock:
            self._apply(
                playback.advance(self._state, self.source, delta, self.camera_animation_duration)
            )

    def update_playback_frame(self) -> None:
        """Fixed-frequency tick: advances exactly update_frequency seconds."""
        with self._lock:
            if not self._state.is_playing:
                self._cancel_ticks()
                return
            self._apply(playback.tick(self._state, self.source))

    def _on_tick(self, generation: int) -> None:
        with self._lock:
            # A tick already in flight when ticks were cancelled or re-armed
            if generation != self._tick_generation:
                return
            self.update_playback_frame()

    # Seeking and configuration

    def seek(self, time: float) -> None:
        with self._lock:
            self._apply(playback.seek(self._state, self.source, time))

    def seek_to_progress(self, fraction: float) -> None:
        with self._lock:
            self._apply(playback.seek_to_progress(self._state, self.source, fraction))

    def seek_to_beginning(self) -> None:
        self.seek(0.0)

    def seek_to_end(self) -> None:
        with self._lock:
            self.seek(self._state.duration)

    def set_duration(self, duration: float) -> None:
        with self._lock:
            self._apply(playback.set_duration(self._state, self.source, duration))

    def set_mode(self, mode: RouteSourceMode) -> None:
        with self._lock:
            self._apply(playback.set_mode(self._state, self.source, mode))

    def set_camera_distance(self, distance: float) -> None:
        with self._lock:
            self._apply(playback.set_camera_distance(self._state, self.source, distance))

    # Internals

    def _arm_ticks(self) -> None:
        self._tick_generation += 1
        if self.tick_source is not None:
            generation = self._tick_generation
            self.tick_source.arm(lambda: self._on_tick(generation), self._state.update_frequency)

    def _cancel_ticks(self) -> None:
        self._tick_generation += 1
        if self.tick_source is not None:
            self.tick_source.cancel()

    def _apply(self, new_state: PlaybackState) -> None:
        previous = self._state
        if new_state is previous:
            return
        self._state = new_state

        completed = (
            new_state.status is PlaybackStatus.COMPLETED
            and previous.status is not PlaybackStatus.COMPLETED
        )
        if completed:
            self._cancel_ticks()
            logger.info("Playback completed")

        if self.on_update is not None:
            self.on_update(new_state)
        if self.on_camera_refresh is not None and new_state.camera_refresh_count != previous.camera_refresh_count:
            self.on_camera_refresh(new_state)
        if completed and self.on_complete is not None:
            self.on_complete(new_state)


class StationStepper:
    """Steps through pass events one station at a time."""

    def __init__(
        self,
        events: Iterable[PassEvent],
        interval: float = DEFAULT_STATION_STEP_INTERVAL,
        tick_source: Optional[TickSource] = None,
        on_change: Optional[Callable[[Optional[PassEvent]], None]] = None,
    ):
        self.events: List[PassEvent] = sorted(events, key=lambda e: (e.display_order, e.timestamp))
        self.interval = interval
        self.tick_source = tick_source
        self.on_change = on_change
        self.selected_index = 0
        self.is_playing = False

    @property
    def current_event(self) -> Optional[PassEvent]:
        if self.selected_index < len(self.events):
            return self.events[self.selected_index]
        return None

    def start(self) -> None:
        if not self.events:
            return
        self.is_playing = True
        if self.tick_source is not None:
            self.tick_source.arm(self.advance, self.interval)

    def pause(self) -> None:
        self.is_playing = False
        if self.tick_source is not None:
            self.tick_source.cancel()

    def toggle(self) -> None:
        if self.is_playing:
            self.pause()
        else:
            self.start()

    def seek_to_station(self, index: int) -> None:
        self.selected_index = max(0, min(index, len(self.events) - 1))
        self._notify()

    def seek_to_first(self) -> None:
        self.seek_to_station(0)

    def seek_to_last(self) -> None:
        self.seek_to_station(len(self.events) - 1)

    def advance(self) -> None:
        """Move to the next station; after the last one, stop and rewind."""
        if self.selected_index < len(self.events) - 1:
            self.selected_index += 1
            self._notify()
        else:
            self.pause()
            self.selected_index = 0

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.current_event)
