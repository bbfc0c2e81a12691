"""Zoom-aware Douglas-Peucker simplification of route polylines."""

import logging
import math
import threading
from concurrent.futures import Executor, Future
from enum import IntEnum
from typing import Dict, List, NamedTuple, Sequence, Tuple

from .geo import perpendicular_distance
from .models import Coordinate

logger = logging.getLogger(__name__)


class ZoomTier(IntEnum):
    """Display zoom bands, nearest first."""
    VERY_CLOSE = 0
    CLOSE = 1
    MEDIUM = 2
    FAR = 3
    VERY_FAR = 4


class TierConfig(NamedTuple):
    max_distance: float  # camera distance in meters
    epsilon: float  # tolerance in decimal degrees
    tier: ZoomTier


# Ascending by camera distance; the last tier is unbounded.
# Lower epsilon keeps more points.
ZOOM_TIERS: List[TierConfig] = [
    TierConfig(500.0, 0.00001, ZoomTier.VERY_CLOSE),
    TierConfig(2000.0, 0.00005, ZoomTier.CLOSE),
    TierConfig(5000.0, 0.0001, ZoomTier.MEDIUM),
    TierConfig(10000.0, 0.0002, ZoomTier.FAR),
    TierConfig(math.inf, 0.0005, ZoomTier.VERY_FAR),
]

TIER_EPSILON: Dict[ZoomTier, float] = {config.tier: config.epsilon for config in ZOOM_TIERS}


def tier_for_distance(camera_distance: float) -> ZoomTier:
    """Return the first tier whose max distance covers the camera distance."""
    for config in ZOOM_TIERS:
        if camera_distance <= config.max_distance:
            return config.tier
    # NaN compares false against every bound
    return ZOOM_TIERS[-1].tier


def epsilon_for_distance(camera_distance: float) -> float:
    """
    Get the simplification tolerance for a camera distance.

    Args:
        camera_distance: Current camera distance in meters.

    Returns:
        Epsilon in decimal degrees.
    """
    return TIER_EPSILON[tier_for_distance(camera_distance)]


def simplify(coordinates: Sequence[Coordinate], epsilon: float) -> List[Coordinate]:
    """
    Simplify a polyline with the Douglas-Peucker algorithm.

    Args:
        coordinates: Points to simplify, in order.
        epsilon: Maximum perpendicular deviation to tolerate (decimal degrees).

    Returns:
        The retained points, in order. First and last input points are
        always kept; sequences of two points or fewer come back unchanged.
    """
    count = len(coordinates)
    if count <= 2:
        return list(coordinates)

    keep = [False] * count
    keep[0] = keep[-1] = True

    # Explicit stack instead of recursion so long traces can't hit the recursion limit.
    # Each range is split at its farthest point exactly as the recursive form would.
    stack: List[Tuple[int, int]] = [(0, count - 1)]
    while stack:
        start, end = stack.pop()
        if end - start < 2:
            continue

        max_distance = 0.0
        max_index = start
        for i in range(start + 1, end):
            distance = perpendicular_distance(coordinates[i], coordinates[start], coordinates[end])
            if distance > max_distance:
                max_distance = distance
                max_index = i

        if max_distance > epsilon:
            keep[max_index] = True
            stack.append((max_index, end))
            stack.append((start, max_index))

    return [coord for coord, kept in zip(coordinates, keep) if kept]


class PathSimplifier:
    """
    Caches simplified versions of one route, one entry per zoom tier.

    Entries are immutable tuples published under a lock, so a result computed
    on a worker thread is never partially visible to readers. Replacing the
    route invalidates every entry; results computed for an older route are
    returned to their caller but never cached.
    """

    def __init__(self, coordinates: Sequence[Coordinate] = ()):
        self._lock = threading.Lock()
        self._coordinates: Tuple[Coordinate, ...] = tuple(coordinates)
        self._cache: Dict[ZoomTier, Tuple[Coordinate, ...]] = {}
        self._generation = 0

    @property
    def coordinates(self) -> Tuple[Coordinate, ...]:
        return self._coordinates

    def set_coordinates(self, coordinates: Sequence[Coordinate]) -> None:
        """Replace the source route and drop every cached result."""
        with self._lock:
            self._coordinates = tuple(coordinates)
            self._cache.clear()
            self._generation += 1
        logger.debug(f"Route replaced ({len(self._coordinates)} points), simplification cache cleared")

    def invalidate(self) -> None:
        """Drop every cached result without changing the route."""
        with self._lock:
            self._cache.clear()
            self._generation += 1

    def is_cached(self, camera_distance: float) -> bool:
        with self._lock:
            return tier_for_distance(camera_distance) in self._cache

    def get_simplified(self, camera_distance: float) -> Tuple[Coordinate, ...]:
        """
        Get the route simplified for a camera distance.

        Distances that fall in the same zoom tier share one cached result.

        Args:
            camera_distance: Current camera distance in meters.

        Returns:
            Simplified coordinates.
        """
        tier = tier_for_distance(camera_distance)
        with self._lock:
            cached = self._cache.get(tier)
            coordinates = self._coordinates
            generation = self._generation

        if cached is not None:
            return cached

        result = tuple(simplify(coordinates, TIER_EPSILON[tier]))
        logger.debug(f"Simplified {len(coordinates)} -> {len(result)} points for tier {tier.name}")
        return self._publish(tier, generation, result)

    def prefetch(self, camera_distance: float, executor: Executor) -> "Future[Tuple[Coordinate, ...]]":
        """Compute the result for a camera distance on an executor."""
        return executor.submit(self.get_simplified, camera_distance)

    def _publish(
        self, tier: ZoomTier, generation: int, result: Tuple[Coordinate, ...]
    ) -> Tuple[Coordinate, ...]:
        with self._lock:
            if generation != self._generation:
                return result
            # Another worker may have finished the same tier first; keep its entry.
            return self._cache.setdefault(tier, result)
