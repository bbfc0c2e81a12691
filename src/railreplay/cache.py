"""Time-limited response cache shared by the network services."""

import time
from typing import Dict, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")

DEFAULT_TTL = 300  # Cache for 5 minutes


class TTLCache(Generic[V]):
    """
    Bounded cache whose entries expire after ttl seconds.

    When full, the oldest entry is dropped to make room.
    """

    def __init__(self, max_size: int, ttl: float = DEFAULT_TTL):
        self.max_size = max_size
        self.ttl = ttl
        self._entries: Dict[Hashable, Tuple[V, float]] = {}  # key -> (value, timestamp)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def get(self, key: Hashable) -> Optional[V]:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, timestamp = entry
        if time.time() - timestamp >= self.ttl:
            return None
        return value

    def put(self, key: Hashable, value: V) -> None:
        now = time.time()
        self.evict_expired(now)
        if self._entries and key not in self._entries and len(self._entries) >= self.max_size:
            oldest_key = min(self._entries, key=lambda k: self._entries[k][1])
            del self._entries[oldest_key]
        self._entries[key] = (value, now)

    def evict_expired(self, current_time: Optional[float] = None) -> None:
        """Remove expired entries."""
        if current_time is None:
            current_time = time.time()
        expired_keys = [
            key for key, (_, timestamp) in self._entries.items()
            if current_time - timestamp >= self.ttl
        ]
        for key in expired_keys:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()
