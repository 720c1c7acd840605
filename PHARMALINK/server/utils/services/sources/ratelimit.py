from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable

MINUTE_SECONDS = 60.0
HOUR_SECONDS = 3_600.0


###############################################################################
class SlidingWindowRateLimiter:
    """Independent per-minute and per-hour sliding windows.

    A request is admitted only when every window has room, and only then is
    it recorded, so refused attempts never consume quota. A limit of 0
    disables that window.

    """

    def __init__(
        self,
        per_minute: int,
        per_hour: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.clock = clock
        self.limits: dict[float, int] = {
            MINUTE_SECONDS: max(int(per_minute), 0),
            HOUR_SECONDS: max(int(per_hour), 0),
        }
        self.windows: dict[float, deque[float]] = {
            span: deque() for span in self.limits
        }

    # -------------------------------------------------------------------------
    def evict_expired(self, now: float) -> None:
        for span, window in self.windows.items():
            while window and window[0] <= now - span:
                window.popleft()

    # -------------------------------------------------------------------------
    def try_acquire(self) -> bool:
        now = self.clock()
        self.evict_expired(now)
        for span, limit in self.limits.items():
            if limit and len(self.windows[span]) >= limit:
                return False
        for span, limit in self.limits.items():
            if limit:
                self.windows[span].append(now)
        return True

    # -------------------------------------------------------------------------
    def status(self) -> dict[str, dict[str, float | int | None]]:
        now = self.clock()
        self.evict_expired(now)
        report: dict[str, dict[str, float | int | None]] = {}
        for span, limit in self.limits.items():
            window = self.windows[span]
            label = "minute" if span == MINUTE_SECONDS else "hour"
            if not limit:
                report[label] = {"limit": None, "used": 0, "remaining": None, "reset_in": 0.0}
                continue
            reset_in = max(window[0] + span - now, 0.0) if window else 0.0
            report[label] = {
                "limit": limit,
                "used": len(window),
                "remaining": max(limit - len(window), 0),
                "reset_in": round(reset_in, 3),
            }
        return report

    # -------------------------------------------------------------------------
    def is_limited(self) -> bool:
        now = self.clock()
        self.evict_expired(now)
        return any(
            limit and len(self.windows[span]) >= limit
            for span, limit in self.limits.items()
        )


__all__ = ["SlidingWindowRateLimiter"]
