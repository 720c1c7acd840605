from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import Any, Generic, TypeVar

KT = TypeVar("KT", bound=Hashable)
VT = TypeVar("VT")
CACHE_MISS = object()


###############################################################################
class TTLCache(Generic[KT, VT]):
    """Bounded LRU mapping whose entries expire after a per-entry TTL.

    ``None`` is a legitimate cached value, so lookups report misses through
    the ``CACHE_MISS`` sentinel. The clock is injectable for tests.

    """

    __slots__ = ("limit", "default_ttl", "clock", "store")

    def __init__(
        self,
        limit: int,
        default_ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = max(int(limit), 1)
        self.default_ttl = float(default_ttl)
        self.clock = clock
        self.store: OrderedDict[KT, tuple[float, VT]] = OrderedDict()

    # -------------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self.store)

    # -------------------------------------------------------------------------
    def get(self, key: KT, default: Any = CACHE_MISS) -> Any:
        item = self.store.get(key)
        if item is None:
            return default
        expires_at, value = item
        if expires_at <= self.clock():
            del self.store[key]
            return default
        self.store.move_to_end(key)
        return value

    # -------------------------------------------------------------------------
    def put(self, key: KT, value: VT, ttl: float | None = None) -> None:
        lifetime = self.default_ttl if ttl is None else float(ttl)
        if lifetime <= 0:
            self.store.pop(key, None)
            return
        if key in self.store:
            self.store.pop(key)
        elif len(self.store) >= self.limit:
            self.purge_expired()
            if len(self.store) >= self.limit:
                self.store.popitem(last=False)
        self.store[key] = (self.clock() + lifetime, value)

    # -------------------------------------------------------------------------
    def purge_expired(self) -> int:
        now = self.clock()
        expired = [key for key, (expires_at, _) in self.store.items() if expires_at <= now]
        for key in expired:
            del self.store[key]
        return len(expired)

    # -------------------------------------------------------------------------
    def invalidate(self, key: KT) -> None:
        self.store.pop(key, None)

    # -------------------------------------------------------------------------
    def clear(self) -> None:
        self.store.clear()


__all__ = ["CACHE_MISS", "TTLCache"]
