"""Example usage of RailReplay: import a session, find stations, replay it."""

import logging
import sys
import time
from pathlib import Path

import requests

# Add src to path so we can import railreplay
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from railreplay import (
    OpenRailRoutingService,
    OverpassStationService,
    PlaybackClock,
    RouteSourceMode,
    SessionImportError,
    StationAnalysisService,
    StationCatalog,
    TimerTickSource,
    import_session,
)

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def print_progress(fraction: float) -> None:
    print(f"  analysis {fraction * 100:3.0f}%")


def replay_session(path: str, railway: bool = False):
    """
    Import a recorded session, detect station passes and play it back.

    Args:
        path: Path to a session JSON export.
        railway: Snap playback to stations along fetched railway geometry.
    """
    print(f"\n{'='*70}")
    print(f"Replaying: {path}")
    print(f"{'='*70}\n")

    try:
        session = import_session(Path(path))
    except (SessionImportError, OSError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Session: {session.name} ({len(session.points)} points)")

    try:
        result = StationAnalysisService(OverpassStationService()).analyze(
            session.points, progress=print_progress
        )
    except requests.RequestException as e:
        logger.error(f"Station lookup failed: {e}")
        print("Continuing without stations")
        result = None

    catalog = StationCatalog(result.stations if result else [])
    events = result.events if result else []

    print("\nSTATION PASSES:")
    print("-" * 70)
    if events:
        for event in events:
            station = catalog.get_station(event.station_id)
            passed_at = time.strftime("%H:%M:%S", time.gmtime(event.timestamp))
            print(f"  {event.display_order + 1:2d}. {station.name:<30} {passed_at}  {event.formatted_distance}")
    else:
        print("  No stations passed")

    segments = []
    if railway and events:
        passed = [catalog.get_station(event.station_id) for event in events]
        segments = OpenRailRoutingService().fetch_routes_between(passed)

    clock = PlaybackClock(
        session.points,
        events=events,
        stations=catalog,
        segments=segments,
        duration=10.0,
        mode=RouteSourceMode.RAILWAY if railway else RouteSourceMode.GPS,
        tick_source=TimerTickSource(),
        on_update=lambda state: print(f"  {state.formatted_time}  {state.interpolated_position}"),
    )

    print(f"\nPLAYBACK ({clock.formatted_journey_duration} at {clock.compression_ratio:.0f}x):")
    print("-" * 70)
    clock.start(update_frequency=0.5)
    while clock.is_playing:
        time.sleep(0.1)

    print("\n" + "=" * 70 + "\n")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python example.py SESSION.json [--railway]")
        sys.exit(1)
    replay_session(sys.argv[1], railway="--railway" in sys.argv[2:])
