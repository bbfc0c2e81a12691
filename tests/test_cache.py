"""Tests for the shared response cache."""

import unittest
from unittest.mock import patch
import sys
from pathlib import Path

# Add src to path so we can import railreplay
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from railreplay.cache import DEFAULT_TTL, TTLCache


class TestTTLCache(unittest.TestCase):
    """Test expiry and size bounds."""

    @patch("railreplay.cache.time.time")
    def test_entries_expire(self, mock_time):
        """Test a value is served until the TTL passes."""
        cache = TTLCache(max_size=5)
        self.assertEqual(cache.ttl, DEFAULT_TTL)
        mock_time.return_value = 1000.0
        cache.put("a", [1])

        mock_time.return_value = 1000.0 + DEFAULT_TTL - 1
        self.assertEqual(cache.get("a"), [1])

        mock_time.return_value = 1000.0 + DEFAULT_TTL
        self.assertIsNone(cache.get("a"))
        self.assertNotIn("a", cache)

    @patch("railreplay.cache.time.time")
    def test_full_cache_drops_oldest(self, mock_time):
        """Test adding past max_size removes the oldest entry."""
        cache = TTLCache(max_size=2)
        for i, key in enumerate(["a", "b", "c"]):
            mock_time.return_value = 1000.0 + i
            cache.put(key, key.upper())

        self.assertEqual(len(cache), 2)
        self.assertIsNone(cache.get("a"))
        self.assertEqual(cache.get("c"), "C")

    @patch("railreplay.cache.time.time")
    def test_replacing_key_keeps_others(self, mock_time):
        """Test updating an existing key at capacity evicts nothing."""
        mock_time.return_value = 1000.0
        cache = TTLCache(max_size=2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("a", 3)

        self.assertEqual(cache.get("a"), 3)
        self.assertEqual(cache.get("b"), 2)

    @patch("railreplay.cache.time.time")
    def test_put_evicts_expired(self, mock_time):
        """Test stale entries are purged on insert."""
        cache = TTLCache(max_size=5, ttl=10)
        mock_time.return_value = 1000.0
        cache.put("old", 1)
        mock_time.return_value = 1020.0
        cache.put("new", 2)

        self.assertEqual(len(cache), 1)

    def test_empty_value_is_cached(self):
        """Test an empty result still counts as a hit."""
        cache = TTLCache(max_size=5)
        cache.put("route", [])
        self.assertEqual(cache.get("route"), [])

    def test_clear(self):
        cache = TTLCache(max_size=5)
        cache.put("a", 1)
        cache.clear()
        self.assertEqual(len(cache), 0)


if __name__ == "__main__":
    unittest.main()
