from __future__ import annotations


###############################################################################
class StorageError(RuntimeError):
    """Raised by key-value backends when a value cannot be persisted."""


###############################################################################
class StorageQuotaError(StorageError):
    def __init__(self, key: str, size: int, limit: int) -> None:
        super().__init__(
            f"Value for '{key}' is {size} bytes, exceeding the {limit} byte quota"
        )
        self.key = key
        self.size = size
        self.limit = limit


###############################################################################
class SourceRequestError(RuntimeError):
    """Transient failure talking to an external source; never cached."""


__all__ = ["SourceRequestError", "StorageError", "StorageQuotaError"]
