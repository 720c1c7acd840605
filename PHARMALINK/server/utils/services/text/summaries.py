from __future__ import annotations

from typing import Any

from PHARMALINK.server.utils.patterns import (
    LABEL_SECTION_HEADER_RE,
    PARAGRAPH_BREAK_RE,
    WHITESPACE_RE,
)


# -----------------------------------------------------------------------------
def clean_label_text(value: Any) -> str | None:
    """Join a label section and drop its leading numbered heading ("5.1 WARNINGS")."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        parts = [str(item) for item in value if item]
        text = "\n\n".join(parts)
    else:
        text = str(value)
    text = LABEL_SECTION_HEADER_RE.sub("", text, count=1).strip()
    return text or None


# -----------------------------------------------------------------------------
def extract_summary(text: str | None, max_length: int = 300) -> str | None:
    if not text:
        return None
    first_paragraph = PARAGRAPH_BREAK_RE.split(text, maxsplit=1)[0].strip()
    if len(first_paragraph) <= max_length:
        return first_paragraph
    return first_paragraph[:max_length].rstrip() + "..."


# -----------------------------------------------------------------------------
def truncate_summary(text: str | None, length: int = 150) -> str:
    collapsed = WHITESPACE_RE.sub(" ", text or "").strip()
    if len(collapsed) <= length:
        return collapsed
    return collapsed[:length].rstrip() + "..."


__all__ = ["clean_label_text", "extract_summary", "truncate_summary"]
