from __future__ import annotations

import re

from PHARMALINK.server.utils.constants import (
    BASE_NAME_FORM_SUFFIXES,
    RELEASE_MODIFIERS,
)

# -----------------------------------------------------------------------------
# Text normalization patterns
# -----------------------------------------------------------------------------
WHITESPACE_RE = re.compile(r"\s+")
NON_ALNUM_RE = re.compile(r"[\W_]+")
LOCAL_DIACRITIC_RE = re.compile(r"[áéíóöőúüű]", re.IGNORECASE)

# -----------------------------------------------------------------------------
# Ingredient field splitting patterns
# -----------------------------------------------------------------------------
OXFORD_CONJUNCTION_RE = re.compile(
    r"^(?P<head>.+),\s*(?P<middle>.+?)\s+(?:and|és)\s+(?P<tail>.+)$",
    re.IGNORECASE,
)
SIMPLE_CONJUNCTION_RE = re.compile(
    r"^(?P<first>.+?)\s+(?:and|és)\s+(?P<rest>.+)$",
    re.IGNORECASE,
)
LOCAL_CONJUNCTION_RE = re.compile(r"\s+és\s+", re.IGNORECASE)
COMMA_SPLIT_RE = re.compile(r",\s*")
SEGMENT_EDGE_RE = re.compile(r"^[\s,;:]+|[\s,;:]+$")
BARE_UNIT_RE = re.compile(r"^[\d.,]+\s*(?:mg|g|ml|l|iu|me|μg|µg|mcg)$", re.IGNORECASE)
LEADING_DIGIT_RE = re.compile(r"^\d")

# -----------------------------------------------------------------------------
# Brand name and dosage patterns
# -----------------------------------------------------------------------------
DOSAGE_TAIL_RE = re.compile(r"\s+\d")
QUERY_PUNCTUATION_RE = re.compile(r"[^\w\s-]")
DOSAGE_AMOUNT_RE = re.compile(r"\d+(?:[.,]\d+)?")
FORM_SUFFIX_RE = re.compile(
    r"\s+(?:"
    + "|".join(
        re.escape(word) for word in sorted(BASE_NAME_FORM_SUFFIXES, key=len, reverse=True)
    )
    + r")(?!\w).*$",
    re.IGNORECASE,
)
RELEASE_MODIFIER_RE = re.compile(
    r"\s+(?:" + "|".join(RELEASE_MODIFIERS) + r")\s*$", re.IGNORECASE
)

# -----------------------------------------------------------------------------
# Label text patterns
# -----------------------------------------------------------------------------
LABEL_SECTION_HEADER_RE = re.compile(r"^\d+(?:\.\d+)?\s+(?:[A-Z]+(?![a-z])[ \t]*)+\n?")
PARAGRAPH_BREAK_RE = re.compile(r"\n\n")

# -----------------------------------------------------------------------------
# Bulk export date patterns
# -----------------------------------------------------------------------------
DMY_DATE_RE = re.compile(r"^\s*(?P<day>\d{1,2})/(?P<month>\d{1,2})/(?P<year>\d{4})\s*$")
