from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from PHARMALINK.server.database.sqlite import SQLiteKeyValueRepository
from PHARMALINK.server.utils.configurations import DatabaseSettings, server_settings
from PHARMALINK.server.utils.logger import logger
from PHARMALINK.server.utils.services.errors import StorageQuotaError


###############################################################################
class KeyValueBackend(Protocol):
    db_path: str | None

    # -------------------------------------------------------------------------
    def get(self, key: str) -> str | None:
        ...

    # -------------------------------------------------------------------------
    def set(self, key: str, value: str) -> None:
        ...

    # -------------------------------------------------------------------------
    def delete(self, key: str) -> None:
        ...


###############################################################################
class MemoryKeyValueRepository:
    """Process-local store used when persistence is disabled and in tests."""

    def __init__(self, settings: DatabaseSettings | None = None) -> None:
        self.db_path: str | None = None
        self.max_value_bytes = settings.max_value_bytes if settings else 0
        self.values: dict[str, str] = {}

    # -------------------------------------------------------------------------
    def get(self, key: str) -> str | None:
        return self.values.get(key)

    # -------------------------------------------------------------------------
    def set(self, key: str, value: str) -> None:
        size = len(value.encode("utf-8"))
        if self.max_value_bytes and size > self.max_value_bytes:
            raise StorageQuotaError(key, size, self.max_value_bytes)
        self.values[key] = value

    # -------------------------------------------------------------------------
    def delete(self, key: str) -> None:
        self.values.pop(key, None)


BackendFactory = Callable[[DatabaseSettings], KeyValueBackend]


# -----------------------------------------------------------------------------
def build_sqlite_backend(settings: DatabaseSettings) -> KeyValueBackend:
    return SQLiteKeyValueRepository(settings)

# -----------------------------------------------------------------------------
def build_memory_backend(settings: DatabaseSettings) -> KeyValueBackend:
    return MemoryKeyValueRepository(settings)


BACKEND_FACTORIES: dict[str, BackendFactory] = {
    "sqlite": build_sqlite_backend,
    "memory": build_memory_backend,
}


# [DATABASE]
###############################################################################
class PHARMALINKDatabase:
    def __init__(self, settings: DatabaseSettings | None = None) -> None:
        self.settings = settings or server_settings.database
        self.backend = self._build_backend(self.settings.backend)

    # -------------------------------------------------------------------------
    def _build_backend(self, backend_name: str) -> KeyValueBackend:
        normalized_name = backend_name.lower()
        logger.info("Initializing %s key-value backend", backend_name)
        if normalized_name not in BACKEND_FACTORIES:
            raise ValueError(f"Unsupported database backend: {backend_name}")
        factory = BACKEND_FACTORIES[normalized_name]
        return factory(self.settings)

    # -------------------------------------------------------------------------
    @property
    def db_path(self) -> str | None:
        return getattr(self.backend, "db_path", None)

    # -------------------------------------------------------------------------
    def get(self, key: str) -> str | None:
        return self.backend.get(key)

    # -------------------------------------------------------------------------
    def set(self, key: str, value: str) -> None:
        self.backend.set(key, value)

    # -------------------------------------------------------------------------
    def delete(self, key: str) -> None:
        self.backend.delete(key)


database = PHARMALINKDatabase()
