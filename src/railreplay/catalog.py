"""Station catalog: id/name indexed station lookup and GTFS stops loading."""

import logging
from typing import IO, Dict, Iterable, Iterator, List, Optional, Union

import pandas as pd

from .models import Coordinate, Station

logger = logging.getLogger(__name__)

GTFS_REQUIRED_COLUMNS = ["stop_id", "stop_name", "stop_lat", "stop_lon"]


def deduplicate_by_name(stations: Iterable[Station]) -> List[Station]:
    """
    Keep the first station for each unique name.

    Large stations show up as several map nodes (platforms, entrances) that
    share a name.
    """
    unique: Dict[str, Station] = {}
    for station in stations:
        if station.name not in unique:
            unique[station.name] = station
    return list(unique.values())


class StationCatalog:
    """Indexes stations by id and name."""

    def __init__(self, stations: Iterable[Station] = ()):
        self.stations: Dict[str, Station] = {}
        self.stations_by_name: Dict[str, List[str]] = {}  # name -> [station ids]
        self.add(stations)

    def add(self, stations: Iterable[Station]) -> None:
        """Add stations, replacing any existing entry with the same id."""
        for station in stations:
            previous = self.stations.get(station.id)
            if previous is not None:
                ids = self.stations_by_name[previous.name]
                ids.remove(station.id)
                if not ids:
                    del self.stations_by_name[previous.name]
            self.stations[station.id] = station
            self.stations_by_name.setdefault(station.name, []).append(station.id)

    def load_from_gtfs_stops(self, stops: Union[str, IO[str]]) -> int:
        """
        Load stations from a GTFS stops.txt table.

        Args:
            stops: Path or open text buffer with stops.txt content.

        Returns:
            Number of stations added.

        Raises:
            ValueError: If a required column is missing.
        """
        frame = pd.read_csv(stops, dtype={"stop_id": str, "parent_station": str})

        missing = [column for column in GTFS_REQUIRED_COLUMNS if column not in frame.columns]
        if missing:
            raise ValueError(f"stops.txt is missing required columns: {', '.join(missing)}")

        # Platforms (location_type 0 with a parent) duplicate their parent station
        if "parent_station" in frame.columns:
            frame = frame[frame["parent_station"].isna() | (frame["parent_station"] == "")]

        valid = frame.dropna(subset=["stop_lat", "stop_lon"])
        skipped = len(frame) - len(valid)
        if skipped:
            logger.warning(f"Skipped {skipped} stops without coordinates")

        stations = [
            Station(
                id=str(row.stop_id),
                name=str(row.stop_name),
                latitude=float(row.stop_lat),
                longitude=float(row.stop_lon),
                type="station" if getattr(row, "location_type", 0) == 1 else "stop",
            )
            for row in valid.itertuples(index=False)
        ]
        self.add(stations)
        logger.info(f"Loaded {len(stations)} stations from GTFS stops")
        return len(stations)

    def get_station(self, station_id: str) -> Station:
        """Get station by id."""
        if station_id not in self.stations:
            raise ValueError(f"Station {station_id} not found")
        return self.stations[station_id]

    def coordinate_for(self, station_id: str) -> Optional[Coordinate]:
        station = self.stations.get(station_id)
        return station.coordinate if station else None

    def find_stations_by_name(self, name: str) -> List[Station]:
        """Find stations by name (case-insensitive partial match)."""
        results = []
        name_lower = name.lower()

        for station_name, station_ids in self.stations_by_name.items():
            if name_lower in station_name.lower():
                for station_id in station_ids:
                    results.append(self.stations[station_id])

        return results

    def clear(self) -> None:
        """Clear all loaded stations."""
        self.stations.clear()
        self.stations_by_name.clear()
        logger.info("Cleared station catalog")

    def __len__(self) -> int:
        return len(self.stations)

    def __contains__(self, station_id: object) -> bool:
        return station_id in self.stations

    def __iter__(self) -> Iterator[Station]:
        return iter(self.stations.values())
