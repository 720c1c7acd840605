from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from PHARMALINK.server.utils.logger import logger
from PHARMALINK.server.utils.services.text.normalization import (
    coerce_text,
    has_local_diacritics,
    normalize,
    normalize_code,
)

COMBINATION_MARKERS = (" and ", " és ")


###############################################################################
@dataclass(frozen=True, slots=True)
class TranslationEntry:
    key: str
    local_name: str
    candidates: tuple[str, ...]

    # -------------------------------------------------------------------------
    @property
    def is_combination(self) -> bool:
        return any(
            marker in candidate.lower()
            for candidate in self.candidates
            for marker in COMBINATION_MARKERS
        )


# -----------------------------------------------------------------------------
def coerce_candidates(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        values: Iterable[Any] = [value]
    elif isinstance(value, (list, tuple)):
        values = value
    else:
        return ()
    candidates: list[str] = []
    for item in values:
        text = coerce_text(item)
        if text and text not in candidates:
            candidates.append(text)
    return tuple(candidates)


###############################################################################
class IngredientTranslator:
    """Map local-language ingredient names onto international nomenclature.

    Lookup order for ``to_international``:
    - exact match on the normalized name;
    - partial match over every key, shortest key first, where a key inside
      the query must cover more than ``partial_match_ratio`` of it and
      single-substance entries win over combination entries;
    - the input itself when it carries no local diacritics;
    - the normalized input as a last resort.

    The result is never empty for a non-empty name.

    """

    def __init__(
        self,
        partial_match_ratio: float = 0.7,
        classification_prefix_length: int = 5,
    ) -> None:
        self.partial_match_ratio = partial_match_ratio
        self.classification_prefix_length = classification_prefix_length
        self.entries: dict[str, TranslationEntry] = {}
        self.reverse: dict[str, str] = {}
        self.classification_names: dict[str, str] = {}

    # -------------------------------------------------------------------------
    def load_tables(
        self,
        translations: Mapping[str, Any] | None,
        classification_names: Mapping[str, Any] | None = None,
    ) -> None:
        entries: dict[str, TranslationEntry] = {}
        reverse: dict[str, str] = {}
        for local_name, raw_candidates in (translations or {}).items():
            key = normalize(local_name)
            candidates = coerce_candidates(raw_candidates)
            if not key or not candidates:
                continue
            entries[key] = TranslationEntry(
                key=key, local_name=str(local_name).strip(), candidates=candidates
            )
            for candidate in candidates:
                reverse.setdefault(normalize(candidate), str(local_name).strip())

        codes: dict[str, str] = {}
        for code, name in (classification_names or {}).items():
            normalized_code = normalize_code(str(code))
            text = coerce_text(name)
            if normalized_code and text:
                codes[normalized_code] = text

        self.entries = entries
        self.reverse = reverse
        self.classification_names = codes
        logger.info(
            "Loaded %d ingredient translations and %d classification names",
            len(self.entries),
            len(self.classification_names),
        )

    # -------------------------------------------------------------------------
    def to_international(self, name: str | None) -> list[str]:
        text = (name or "").strip()
        query = normalize(text)
        if not query:
            return []

        exact = self.entries.get(query)
        if exact is not None:
            return list(exact.candidates)

        partial = self.find_partial_matches(query)
        if partial:
            single = [entry for entry in partial if not entry.is_combination]
            selected = single or partial
            return self.merge_candidates(selected)

        if not has_local_diacritics(text):
            return [text]
        return [query]

    # -------------------------------------------------------------------------
    def find_partial_matches(self, query: str) -> list[TranslationEntry]:
        matches: list[TranslationEntry] = []
        for key, entry in self.entries.items():
            if query in key:
                matches.append(entry)
            elif key in query and len(key) / len(query) > self.partial_match_ratio:
                matches.append(entry)
        # stable sort keeps table order among keys of equal length
        return sorted(matches, key=lambda entry: len(entry.key))

    # -------------------------------------------------------------------------
    @staticmethod
    def merge_candidates(entries: Iterable[TranslationEntry]) -> list[str]:
        merged: list[str] = []
        for entry in entries:
            for candidate in entry.candidates:
                if candidate not in merged:
                    merged.append(candidate)
        return merged

    # -------------------------------------------------------------------------
    def from_classification_code(self, code: str | None) -> str | None:
        normalized = normalize_code(code)
        if not normalized:
            return None
        exact = self.classification_names.get(normalized)
        if exact is not None:
            return exact
        prefix = normalized[: self.classification_prefix_length]
        for candidate_code, name in self.classification_names.items():
            if candidate_code.startswith(prefix):
                return name
        return None

    # -------------------------------------------------------------------------
    def to_local(self, international_name: str | None) -> str | None:
        return self.reverse.get(normalize(international_name))

    # -------------------------------------------------------------------------
    def has_translation(self, name: str | None) -> bool:
        return normalize(name) in self.entries

    # -------------------------------------------------------------------------
    def smart_lookup(self, ingredient: str | None, code: str | None) -> list[str]:
        results: list[str] = []
        if ingredient:
            results.extend(self.to_international(ingredient))
        if code:
            classification_name = self.from_classification_code(code)
            if classification_name and classification_name not in results:
                results.append(classification_name)
        return results

    # -------------------------------------------------------------------------
    def stats(self) -> dict[str, int]:
        return {
            "total_translations": len(self.entries),
            "total_classification_names": len(self.classification_names),
        }


__all__ = ["IngredientTranslator", "TranslationEntry"]
