from __future__ import annotations

import unittest

from PHARMALINK.server.utils.services.cache import CACHE_MISS, TTLCache


###############################################################################
class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TTLCacheTests(unittest.TestCase):
    # ------------------------------------------------------------------
    def test_entries_expire_after_their_ttl(self) -> None:
        clock = _Clock()
        cache: TTLCache[str, int] = TTLCache(limit=4, default_ttl=10, clock=clock)
        cache.put("short", 1, ttl=5)
        cache.put("default", 2)
        clock.now = 6
        self.assertIs(cache.get("short"), CACHE_MISS)
        self.assertEqual(cache.get("default"), 2)
        clock.now = 10
        self.assertIs(cache.get("default"), CACHE_MISS)

    # ------------------------------------------------------------------
    def test_eviction_follows_lru_order(self) -> None:
        cache: TTLCache[str, int] = TTLCache(limit=2, default_ttl=60)
        cache.put("first", 1)
        cache.put("second", 2)
        cache.get("first")
        cache.put("third", 3)
        self.assertEqual(cache.get("first"), 1)
        self.assertIs(cache.get("second"), CACHE_MISS)
        self.assertEqual(len(cache), 2)

    # ------------------------------------------------------------------
    def test_expired_entries_are_purged_before_evicting_live_ones(self) -> None:
        clock = _Clock()
        cache: TTLCache[str, int] = TTLCache(limit=2, default_ttl=60, clock=clock)
        cache.put("live", 1)
        cache.put("stale", 2, ttl=1)
        clock.now = 2
        cache.put("new", 3)
        self.assertEqual(cache.get("live"), 1)
        self.assertEqual(cache.get("new"), 3)

    # ------------------------------------------------------------------
    def test_none_is_a_cacheable_value(self) -> None:
        cache: TTLCache[str, None] = TTLCache(limit=1, default_ttl=60)
        cache.put("key", None)
        self.assertIsNone(cache.get("key"))
        cache.invalidate("key")
        self.assertIs(cache.get("key"), CACHE_MISS)

    # ------------------------------------------------------------------
    def test_non_positive_ttl_is_not_stored(self) -> None:
        cache: TTLCache[str, int] = TTLCache(limit=2, default_ttl=60)
        cache.put("key", 1)
        cache.put("key", 2, ttl=0)
        self.assertIs(cache.get("key"), CACHE_MISS)
        cache.put("other", 3)
        cache.clear()
        self.assertEqual(len(cache), 0)


if __name__ == "__main__":
    unittest.main()
