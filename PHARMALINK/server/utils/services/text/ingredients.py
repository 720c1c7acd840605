from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from PHARMALINK.server.utils.constants import (
    GENERIC_PLACEHOLDERS,
    PHARMACEUTICAL_FORM_WORDS,
)
from PHARMALINK.server.utils.patterns import (
    BARE_UNIT_RE,
    COMMA_SPLIT_RE,
    LEADING_DIGIT_RE,
    LOCAL_CONJUNCTION_RE,
    OXFORD_CONJUNCTION_RE,
    SEGMENT_EDGE_RE,
    SIMPLE_CONJUNCTION_RE,
)
from PHARMALINK.server.utils.services.text.normalization import (
    normalize,
    normalize_whitespace,
    tokenize,
)

Recurse = Callable[[str], list[str]]


###############################################################################
@dataclass(frozen=True, slots=True)
class ParsedIngredient:
    original: str
    ingredients: tuple[str, ...]
    is_multi_ingredient: bool
    is_generic_placeholder: bool


###############################################################################
class SplitStrategy(Protocol):
    name: str

    # -------------------------------------------------------------------------
    def matches(self, text: str) -> bool:
        ...

    # -------------------------------------------------------------------------
    def split(self, text: str, recurse: Recurse) -> list[str] | None:
        ...


###############################################################################
class OxfordConjunctionStrategy:
    """``A, B and C`` and its Hungarian ``A, B és C`` variant."""

    name = "oxford_conjunction"

    # -------------------------------------------------------------------------
    def matches(self, text: str) -> bool:
        return OXFORD_CONJUNCTION_RE.match(text) is not None

    # -------------------------------------------------------------------------
    def split(self, text: str, recurse: Recurse) -> list[str] | None:
        match = OXFORD_CONJUNCTION_RE.match(text)
        if match is None:
            return None
        head = [part.strip() for part in COMMA_SPLIT_RE.split(match["head"])]
        return [part for part in head if part] + [
            match["middle"].strip(),
            match["tail"].strip(),
        ]


###############################################################################
class SimpleConjunctionStrategy:
    name = "simple_conjunction"

    # -------------------------------------------------------------------------
    def matches(self, text: str) -> bool:
        return SIMPLE_CONJUNCTION_RE.match(text) is not None

    # -------------------------------------------------------------------------
    def split(self, text: str, recurse: Recurse) -> list[str] | None:
        match = SIMPLE_CONJUNCTION_RE.match(text)
        if match is None:
            return None
        return [match["first"].strip(), *recurse(match["rest"])]


###############################################################################
class MixedCommaConjunctionStrategy:
    """Split only at commas whose neighbouring segment carries the local conjunction."""

    name = "mixed_comma_conjunction"

    # -------------------------------------------------------------------------
    def matches(self, text: str) -> bool:
        return "," in text and LOCAL_CONJUNCTION_RE.search(text) is not None

    # -------------------------------------------------------------------------
    def split(self, text: str, recurse: Recurse) -> list[str] | None:
        segments = text.split(",")
        parts = [segments[0]]
        for previous, current in zip(segments, segments[1:]):
            if LOCAL_CONJUNCTION_RE.search(previous) or LOCAL_CONJUNCTION_RE.search(
                current
            ):
                parts.append(current)
            else:
                parts[-1] = f"{parts[-1]},{current}"
        if len(parts) < 2:
            return None
        result: list[str] = []
        for part in parts:
            result.extend(recurse(part.strip()))
        return result


###############################################################################
class CommaListStrategy:
    name = "comma_list"

    def __init__(self, form_words: Iterable[str] = PHARMACEUTICAL_FORM_WORDS) -> None:
        self.form_words = frozenset(normalize(word) for word in form_words)

    # -------------------------------------------------------------------------
    def matches(self, text: str) -> bool:
        return "," in text

    # -------------------------------------------------------------------------
    def looks_like_ingredient(self, segment: str) -> bool:
        trimmed = segment.strip().lower()
        if len(trimmed) < 3:
            return False
        if LEADING_DIGIT_RE.match(trimmed):
            return False
        if BARE_UNIT_RE.match(trimmed):
            return False
        return not any(
            token in self.form_words for token in tokenize(trimmed, min_length=1)
        )

    # -------------------------------------------------------------------------
    def split(self, text: str, recurse: Recurse) -> list[str] | None:
        parts = COMMA_SPLIT_RE.split(text)
        if len(parts) < 2:
            return None
        if not all(self.looks_like_ingredient(part) for part in parts):
            return None
        return [part.strip() for part in parts]


DEFAULT_STRATEGIES: tuple[SplitStrategy, ...] = (
    OxfordConjunctionStrategy(),
    SimpleConjunctionStrategy(),
    MixedCommaConjunctionStrategy(),
    CommaListStrategy(),
)


###############################################################################
class IngredientParser:
    """Decompose a free-text active-ingredient field into ordered components.

    Strategies are tried in order and the first one that produces a split
    wins; otherwise the whole field is a single component. Segments naming a
    drug class instead of a substance are kept and flag the result as a
    generic placeholder.

    """

    def __init__(
        self,
        placeholders: Iterable[str] = GENERIC_PLACEHOLDERS,
        strategies: Sequence[SplitStrategy] = DEFAULT_STRATEGIES,
    ) -> None:
        self.placeholders = tuple(placeholders)
        self.strategies = tuple(strategies)
        normalized = sorted(
            {normalize(term) for term in self.placeholders if normalize(term)},
            key=len,
            reverse=True,
        )
        self.placeholder_pattern = (
            re.compile(
                r"(?<![\w-])(?:"
                + "|".join(re.escape(term) for term in normalized)
                + r")s?(?![\w-])"
            )
            if normalized
            else None
        )

    # -------------------------------------------------------------------------
    def parse(self, field: str | None) -> ParsedIngredient:
        original = normalize_whitespace(field) if isinstance(field, str) else ""
        if not original:
            return ParsedIngredient(
                original="",
                ingredients=(),
                is_multi_ingredient=False,
                is_generic_placeholder=False,
            )
        components = [
            cleaned
            for cleaned in (self.clean_segment(part) for part in self.split(original))
            if cleaned
        ]
        return ParsedIngredient(
            original=original,
            ingredients=tuple(components),
            is_multi_ingredient=len(components) > 1,
            is_generic_placeholder=any(
                self.is_generic_placeholder(component) for component in components
            ),
        )

    # -------------------------------------------------------------------------
    def split(self, text: str) -> list[str]:
        stripped = text.strip()
        if not stripped:
            return []
        for strategy in self.strategies:
            if not strategy.matches(stripped):
                continue
            parts = strategy.split(stripped, self.split)
            if parts:
                return parts
        return [stripped]

    # -------------------------------------------------------------------------
    @staticmethod
    def clean_segment(segment: str) -> str:
        return normalize_whitespace(SEGMENT_EDGE_RE.sub("", segment))

    # -------------------------------------------------------------------------
    def is_generic_placeholder(self, segment: str) -> bool:
        if self.placeholder_pattern is None:
            return False
        return self.placeholder_pattern.search(normalize(segment)) is not None

    # -------------------------------------------------------------------------
    def needs_classification_fallback(self, parsed: ParsedIngredient) -> bool:
        return parsed.is_generic_placeholder or not parsed.ingredients

    # -------------------------------------------------------------------------
    def get_generic_placeholders(self) -> list[str]:
        return list(self.placeholders)


__all__ = [
    "CommaListStrategy",
    "IngredientParser",
    "MixedCommaConjunctionStrategy",
    "OxfordConjunctionStrategy",
    "ParsedIngredient",
    "SimpleConjunctionStrategy",
]
