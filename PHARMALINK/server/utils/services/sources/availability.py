from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from enum import Enum

from PHARMALINK.server.utils.logger import logger


###############################################################################
class AvailabilityState(str, Enum):
    UNKNOWN = "unknown"
    CHECKING = "checking"
    UP = "up"
    DOWN = "down"


###############################################################################
class SourceAvailability:
    """Health state of one external source.

    The probe result is reused for ``interval`` seconds; concurrent callers
    share the in-flight probe. A probe that raises or times out marks the
    source as down.

    """

    def __init__(
        self,
        name: str,
        probe: Callable[[], Awaitable[bool]],
        interval: float = 60.0,
        timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.probe = probe
        self.interval = interval
        self.timeout = timeout
        self.clock = clock
        self.state = AvailabilityState.UNKNOWN
        self.settled = AvailabilityState.UNKNOWN
        self.checked_at: float | None = None
        self.task: asyncio.Task[AvailabilityState] | None = None

    # -------------------------------------------------------------------------
    def is_stale(self) -> bool:
        if self.checked_at is None:
            return True
        return self.clock() - self.checked_at >= self.interval

    # -------------------------------------------------------------------------
    async def is_available(self) -> bool:
        if self.state in (AvailabilityState.UP, AvailabilityState.DOWN) and not self.is_stale():
            return self.state is AvailabilityState.UP
        return await self.check() is AvailabilityState.UP

    # -------------------------------------------------------------------------
    async def check(self) -> AvailabilityState:
        if self.task is None or self.task.done():
            self.state = AvailabilityState.CHECKING
            self.task = asyncio.ensure_future(self.run_probe())
        return await asyncio.shield(self.task)

    # -------------------------------------------------------------------------
    async def run_probe(self) -> AvailabilityState:
        try:
            healthy = await asyncio.wait_for(self.probe(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Health check for %s timed out", self.name)
            healthy = False
        except Exception as exc:  # noqa: BLE001
            logger.warning("Health check for %s failed: %s", self.name, exc)
            healthy = False
        state = AvailabilityState.UP if healthy else AvailabilityState.DOWN
        if state is not self.settled:
            logger.info("Source %s is %s", self.name, state.value)
        self.state = self.settled = state
        self.checked_at = self.clock()
        return self.state

    # -------------------------------------------------------------------------
    def mark_down(self) -> None:
        self.state = self.settled = AvailabilityState.DOWN
        self.checked_at = self.clock()

    # -------------------------------------------------------------------------
    def status(self) -> dict[str, str | float | None]:
        return {
            "state": self.state.value,
            "checked_at": self.checked_at,
        }


__all__ = ["AvailabilityState", "SourceAvailability"]
