from __future__ import annotations

import unittest

from PHARMALINK.server.utils.services.sources.ratelimit import SlidingWindowRateLimiter


###############################################################################
class _Clock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


class SlidingWindowRateLimiterTests(unittest.TestCase):
    # ------------------------------------------------------------------
    def test_minute_quota_is_enforced_and_restored(self) -> None:
        clock = _Clock()
        limiter = SlidingWindowRateLimiter(per_minute=3, per_hour=100, clock=clock)
        self.assertTrue(all(limiter.try_acquire() for _ in range(3)))
        self.assertFalse(limiter.try_acquire())
        self.assertTrue(limiter.is_limited())
        self.assertEqual(limiter.status()["minute"]["used"], 3)

        clock.now += 60
        self.assertFalse(limiter.is_limited())
        self.assertTrue(limiter.try_acquire())

    # ------------------------------------------------------------------
    def test_refused_attempts_do_not_consume_quota(self) -> None:
        clock = _Clock()
        limiter = SlidingWindowRateLimiter(per_minute=2, per_hour=100, clock=clock)
        for _ in range(10):
            limiter.try_acquire()
        status = limiter.status()
        self.assertEqual(status["minute"]["used"], 2)
        self.assertEqual(status["minute"]["remaining"], 0)
        self.assertEqual(status["hour"]["used"], 2)

    # ------------------------------------------------------------------
    def test_hour_window_blocks_after_minutes_elapse(self) -> None:
        clock = _Clock()
        limiter = SlidingWindowRateLimiter(per_minute=2, per_hour=3, clock=clock)
        self.assertTrue(limiter.try_acquire())
        self.assertTrue(limiter.try_acquire())
        clock.now += 61
        self.assertTrue(limiter.try_acquire())
        self.assertFalse(limiter.try_acquire())
        self.assertAlmostEqual(limiter.status()["hour"]["reset_in"], 3_600 - 61)

    # ------------------------------------------------------------------
    def test_zero_limits_disable_the_window(self) -> None:
        limiter = SlidingWindowRateLimiter(per_minute=0, per_hour=0)
        self.assertTrue(all(limiter.try_acquire() for _ in range(500)))
        self.assertFalse(limiter.is_limited())
        self.assertIsNone(limiter.status()["minute"]["limit"])


if __name__ == "__main__":
    unittest.main()
