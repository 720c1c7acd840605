from __future__ import annotations

from collections.abc import Iterable
from typing import Any

TRUE_MARKERS = {"1", "true", "yes", "y", "on"}
FALSE_MARKERS = {"0", "false", "no", "n", "off"}


# -----------------------------------------------------------------------------
def coerce_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_MARKERS:
            return True
        if lowered in FALSE_MARKERS:
            return False
        return default
    if isinstance(value, (int, float)):
        return bool(value)
    return default


# -----------------------------------------------------------------------------
def coerce_optional_bool(value: Any) -> bool | None:
    """Tri-state flag used by bulk exports that mark unknown values as text."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_MARKERS:
            return True
        if lowered in FALSE_MARKERS:
            return False
    return None


# -----------------------------------------------------------------------------
def coerce_int(
    value: Any, default: int, minimum: int | None = None, maximum: int | None = None
) -> int:
    if isinstance(value, bool):
        candidate = int(value)
    else:
        try:
            candidate = int(value)
        except (TypeError, ValueError):
            candidate = default
    if minimum is not None:
        candidate = max(candidate, minimum)
    if maximum is not None:
        candidate = min(candidate, maximum)
    return candidate


# -----------------------------------------------------------------------------
def coerce_float(
    value: Any, default: float, minimum: float | None = None, maximum: float | None = None
) -> float:
    if isinstance(value, bool):
        candidate = default
    else:
        try:
            candidate = float(value)
        except (TypeError, ValueError):
            candidate = default
    if minimum is not None:
        candidate = max(candidate, minimum)
    if maximum is not None:
        candidate = min(candidate, maximum)
    return candidate


# -----------------------------------------------------------------------------
def coerce_str(value: Any, default: str) -> str:
    if value is None:
        return default
    text = value.strip() if isinstance(value, str) else str(value).strip()
    return text or default


# -----------------------------------------------------------------------------
def coerce_str_or_none(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


# -----------------------------------------------------------------------------
def coerce_vocabulary(value: Any, default: Iterable[str]) -> tuple[str, ...]:
    """Lowercased, de-duplicated terms; an empty or invalid payload keeps the default."""
    if isinstance(value, str):
        candidates = [segment for segment in value.split(",")]
    elif isinstance(value, (list, tuple, set)):
        candidates = [item for item in value if isinstance(item, str)]
    else:
        candidates = []
    terms = [candidate.strip().lower() for candidate in candidates if candidate.strip()]
    if not terms:
        terms = [term.lower() for term in default]
    seen: set[str] = set()
    vocabulary: list[str] = []
    for term in terms:
        if term not in seen:
            seen.add(term)
            vocabulary.append(term)
    return tuple(vocabulary)


__all__ = [
    "coerce_bool",
    "coerce_float",
    "coerce_int",
    "coerce_optional_bool",
    "coerce_str",
    "coerce_str_or_none",
    "coerce_vocabulary",
]
