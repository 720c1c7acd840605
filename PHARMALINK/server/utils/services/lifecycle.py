from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum

from PHARMALINK.server.utils.logger import logger


###############################################################################
class LifecycleState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


###############################################################################
class ServiceLifecycle:
    """Single entry point for background loads.

    Every caller awaits ``ensure_ready``; concurrent callers share the one
    in-flight load. A failing loader is logged and the service still becomes
    ready so callers see an empty dataset instead of an exception.

    """

    def __init__(self, name: str, loader: Callable[[], Awaitable[None]]) -> None:
        self.name = name
        self.loader = loader
        self.state = LifecycleState.UNINITIALIZED
        self.task: asyncio.Task[None] | None = None
        self.load_error: str | None = None

    # -------------------------------------------------------------------------
    @property
    def is_ready(self) -> bool:
        return self.state is LifecycleState.READY

    # -------------------------------------------------------------------------
    async def ensure_ready(self) -> None:
        if self.state is LifecycleState.READY:
            return
        if self.task is None or self.task.done():
            self.state = LifecycleState.LOADING
            self.task = asyncio.ensure_future(self.run())
        # shield so a cancelled caller does not abort the shared load
        await asyncio.shield(self.task)

    # -------------------------------------------------------------------------
    async def run(self) -> None:
        try:
            await self.loader()
            self.load_error = None
        except Exception as exc:  # noqa: BLE001
            self.load_error = str(exc)
            logger.error("Failed loading %s data: %s", self.name, exc)
        finally:
            self.state = LifecycleState.READY


__all__ = ["LifecycleState", "ServiceLifecycle"]
