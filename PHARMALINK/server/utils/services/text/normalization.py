from __future__ import annotations

import unicodedata
from typing import Any

import pandas as pd

from PHARMALINK.server.utils.patterns import (
    DOSAGE_TAIL_RE,
    FORM_SUFFIX_RE,
    LOCAL_DIACRITIC_RE,
    NON_ALNUM_RE,
    RELEASE_MODIFIER_RE,
    WHITESPACE_RE,
)


# -----------------------------------------------------------------------------
def coerce_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        return text or None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    text = str(value).strip()
    return text or None


# -----------------------------------------------------------------------------
def normalize_whitespace(value: str | None) -> str:
    if not value:
        return ""
    return WHITESPACE_RE.sub(" ", value).strip()


# -----------------------------------------------------------------------------
def strip_diacritics(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


# -----------------------------------------------------------------------------
def normalize(value: str | None) -> str:
    """Lowercase, diacritic-free, whitespace-collapsed form of a string.

    Never raises; ``None`` and non-string inputs collapse to their text form
    or to the empty string.

    """
    if value is None:
        return ""
    text = value if isinstance(value, str) else str(value)
    if not text:
        return ""
    return normalize_whitespace(strip_diacritics(text.lower()))


# -----------------------------------------------------------------------------
def tokenize(value: str | None, min_length: int = 2) -> list[str]:
    normalized = normalize(value)
    if not normalized:
        return []
    cleaned = NON_ALNUM_RE.sub(" ", normalized)
    return [token for token in cleaned.split() if len(token) >= min_length]


# -----------------------------------------------------------------------------
def has_local_diacritics(value: str | None) -> bool:
    if not value:
        return False
    return LOCAL_DIACRITIC_RE.search(value) is not None


# -----------------------------------------------------------------------------
def strip_dosage(name: str | None) -> str:
    """Reduce a display name to its brand part.

    The name is cut at the strength ("Crestor 10 mg" -> "Crestor") and at the
    first pharmaceutical form descriptor, then a trailing release modifier
    ("Retard", "XL") is dropped.

    """
    text = normalize_whitespace(name)
    if not text:
        return ""
    text = DOSAGE_TAIL_RE.split(text, maxsplit=1)[0].strip()
    text = FORM_SUFFIX_RE.sub("", text).strip()
    return RELEASE_MODIFIER_RE.sub("", text).strip()


# -----------------------------------------------------------------------------
def normalize_code(value: str | None) -> str:
    if not value:
        return ""
    return value.strip().upper()


__all__ = [
    "coerce_text",
    "has_local_diacritics",
    "normalize",
    "normalize_code",
    "normalize_whitespace",
    "strip_diacritics",
    "strip_dosage",
    "tokenize",
]
