from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from rapidfuzz import fuzz, process

from PHARMALINK.server.utils.constants import DRUG_CLASS_SUFFIXES
from PHARMALINK.server.utils.logger import logger
from PHARMALINK.server.utils.patterns import DOSAGE_AMOUNT_RE
from PHARMALINK.server.utils.services.search.formulary import FormularyRecord
from PHARMALINK.server.utils.services.text.normalization import (
    normalize,
    normalize_code,
    tokenize,
)

EXACT_TOKEN_SCORE = 10
PREFIX_TOKEN_SCORE = 5
CLASS_SUFFIX_SCORE = 8
FUZZY_TOKEN_SCORE = 3
MARKETED_BONUS = 20
INGREDIENT_BONUS = 15
EXPANSION_NAME_SCORE = 8
EXPANSION_INGREDIENT_SCORE = 6
EXPANSION_CODE_SCORE = 4
PREFIX_LENGTH = 3
FUZZY_MIN_TOKEN_LENGTH = 4


###############################################################################
@dataclass(frozen=True, slots=True)
class SearchOptions:
    limit: int = 50
    route: str | None = None
    prescription_only: bool = False
    classification_prefix: str | None = None
    include_inactive: bool = True


###############################################################################
@dataclass(frozen=True, slots=True)
class SearchHit:
    record: FormularyRecord
    score: int


###############################################################################
class LocalSearchIndex:
    """Token, prefix and drug-class suffix indices over the formulary.

    Built once; read-only afterwards. Scoring is additive per query token:
    exact token, verified prefix, drug-class suffix and (optionally) a
    typo-tolerant fallback for tokens with no other hit, plus bonuses for
    marketed records and records with an ingredient field.

    """

    def __init__(
        self,
        min_query_length: int = 2,
        short_token_scan_limit: int = 100,
        fuzzy_cutoff: float = 88.0,
        fuzzy_candidate_limit: int = 5,
        suffixes: Iterable[str] = DRUG_CLASS_SUFFIXES,
    ) -> None:
        self.min_query_length = min_query_length
        self.short_token_scan_limit = short_token_scan_limit
        self.fuzzy_cutoff = fuzzy_cutoff
        self.fuzzy_candidate_limit = fuzzy_candidate_limit
        self.suffixes = tuple(suffixes)
        self.records: list[FormularyRecord] = []
        self.records_by_id: dict[str, FormularyRecord] = {}
        self.record_tokens: dict[str, frozenset[str]] = {}
        self.token_index: dict[str, set[str]] = {}
        self.prefix_index: dict[str, set[str]] = {}
        self.suffix_index: dict[str, set[str]] = {}
        self.token_keys: list[str] = []

    # -------------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self.records)

    # -------------------------------------------------------------------------
    def build(self, records: Iterable[FormularyRecord]) -> None:
        self.records = []
        self.records_by_id = {}
        self.record_tokens = {}
        self.token_index = {}
        self.prefix_index = {}
        self.suffix_index = {}
        for record in records:
            if record.id in self.records_by_id:
                continue
            self.records.append(record)
            self.records_by_id[record.id] = record
            self.index_record(record)
        self.token_keys = list(self.token_index)
        logger.info(
            "Search index built with %d records, %d tokens, %d class suffixes",
            len(self.records),
            len(self.token_index),
            len(self.suffix_index),
        )

    # -------------------------------------------------------------------------
    def index_record(self, record: FormularyRecord) -> None:
        name_tokens = tokenize(record.search_name or record.name)
        ingredient_tokens = tokenize(record.search_ingredient or record.active_ingredient)
        for token in name_tokens + ingredient_tokens:
            self.token_index.setdefault(token, set()).add(record.id)
            if len(token) >= PREFIX_LENGTH:
                self.prefix_index.setdefault(token[:PREFIX_LENGTH], set()).add(record.id)
        for token in ingredient_tokens:
            for suffix in self.suffixes:
                if token.endswith(suffix) and len(token) > len(suffix):
                    self.suffix_index.setdefault(suffix, set()).add(record.id)
        for prefix in self.classification_prefixes(record.atc_code):
            self.token_index.setdefault(prefix, set()).add(record.id)
        self.record_tokens[record.id] = frozenset(name_tokens + ingredient_tokens)

    # -------------------------------------------------------------------------
    @staticmethod
    def classification_prefixes(code: str) -> list[str]:
        lowered = code.strip().lower()
        if not lowered:
            return []
        prefixes: list[str] = []
        for candidate in (lowered[:1], lowered[:3], lowered[:5], lowered):
            if candidate not in prefixes:
                prefixes.append(candidate)
        return prefixes

    # -------------------------------------------------------------------------
    def get(self, record_id: str) -> FormularyRecord | None:
        return self.records_by_id.get(record_id)

    # -------------------------------------------------------------------------
    def search(
        self,
        query: str,
        options: SearchOptions | None = None,
        expansion: Iterable[FormularyRecord] = (),
    ) -> list[SearchHit]:
        options = options or SearchOptions()
        if not query or len(query.strip()) < self.min_query_length:
            return []
        query_tokens = tokenize(query)
        if not query_tokens:
            return []

        scores: dict[str, int] = {}
        for token in query_tokens:
            self.score_token(token, scores)

        hits: list[SearchHit] = []
        for record_id, score in scores.items():
            record = self.records_by_id.get(record_id)
            if record is None or not self.passes_filters(record, options):
                continue
            if record.in_market:
                score += MARKETED_BONUS
            if record.active_ingredient.strip():
                score += INGREDIENT_BONUS
            hits.append(SearchHit(record=record, score=score))

        hits.extend(self.search_expansion(query, options, expansion))
        hits.sort(key=lambda hit: (-hit.score, normalize(hit.record.name), hit.record.id))
        return hits[: max(options.limit, 0)]

    # -------------------------------------------------------------------------
    def score_token(self, token: str, scores: dict[str, int]) -> None:
        exact = self.token_index.get(token, set())
        for record_id in exact:
            scores[record_id] = scores.get(record_id, 0) + EXACT_TOKEN_SCORE

        prefixed = self.prefix_matches(token) - exact
        for record_id in prefixed:
            scores[record_id] = scores.get(record_id, 0) + PREFIX_TOKEN_SCORE

        suffixed: set[str] = set()
        if token in self.suffixes:
            suffixed = self.suffix_index.get(token, set()) - exact
            for record_id in suffixed:
                scores[record_id] = scores.get(record_id, 0) + CLASS_SUFFIX_SCORE

        if not exact and not prefixed and not suffixed:
            for record_id in self.fuzzy_matches(token):
                scores[record_id] = scores.get(record_id, 0) + FUZZY_TOKEN_SCORE

    # -------------------------------------------------------------------------
    def prefix_matches(self, token: str) -> set[str]:
        matches: set[str] = set()
        if len(token) >= PREFIX_LENGTH:
            for record_id in self.prefix_index.get(token[:PREFIX_LENGTH], ()):
                tokens = self.record_tokens.get(record_id, frozenset())
                if any(
                    candidate.startswith(token) and candidate != token
                    for candidate in tokens
                ):
                    matches.add(record_id)
            return matches
        scanned = 0
        for key in self.token_keys:
            if key.startswith(token) and key != token:
                matches.update(self.token_index[key])
                scanned += 1
                if scanned >= self.short_token_scan_limit:
                    break
        return matches

    # -------------------------------------------------------------------------
    def fuzzy_matches(self, token: str) -> set[str]:
        if self.fuzzy_cutoff <= 0 or len(token) < FUZZY_MIN_TOKEN_LENGTH:
            return set()
        candidates = process.extract(
            token,
            self.token_keys,
            scorer=fuzz.ratio,
            score_cutoff=self.fuzzy_cutoff,
            limit=self.fuzzy_candidate_limit,
        )
        matches: set[str] = set()
        for key, _, _ in candidates:
            matches.update(self.token_index.get(key, ()))
        return matches

    # -------------------------------------------------------------------------
    @staticmethod
    def passes_filters(
        record: FormularyRecord, options: SearchOptions, check_market: bool = True
    ) -> bool:
        if options.route and record.route != options.route.lower():
            return False
        if options.prescription_only and not record.prescription_required:
            return False
        if options.classification_prefix and not record.atc_code.startswith(
            normalize_code(options.classification_prefix)
        ):
            return False
        if check_market and not options.include_inactive and not record.in_market:
            return False
        return True

    # -------------------------------------------------------------------------
    def search_expansion(
        self,
        query: str,
        options: SearchOptions,
        expansion: Iterable[FormularyRecord],
    ) -> list[SearchHit]:
        lowered = normalize(query)
        hits: list[SearchHit] = []
        for record in expansion:
            if record.id in self.records_by_id:
                continue
            score = 0
            if lowered in normalize(record.name):
                score += EXPANSION_NAME_SCORE
            if record.active_ingredient and lowered in normalize(record.active_ingredient):
                score += EXPANSION_INGREDIENT_SCORE
            if record.atc_code and record.atc_code.lower().startswith(lowered):
                score += EXPANSION_CODE_SCORE
            # market status is unknown for externally sourced records
            if score and self.passes_filters(record, options, check_market=False):
                hits.append(SearchHit(record=record, score=score))
        return hits

    # -------------------------------------------------------------------------
    def by_classification_prefix(self, prefix: str, limit: int = 100) -> list[FormularyRecord]:
        code = normalize_code(prefix)
        if not code:
            return []
        return [record for record in self.records if record.atc_code.startswith(code)][:limit]

    # -------------------------------------------------------------------------
    def by_active_ingredient(self, ingredient: str, limit: int = 50) -> list[FormularyRecord]:
        needle = normalize(ingredient)
        if not needle:
            return []
        matches = [
            record
            for record in self.records
            if needle in (record.search_ingredient or normalize(record.active_ingredient))
        ]
        return matches[:limit]

    # -------------------------------------------------------------------------
    def common_dosages(self, ingredient: str) -> list[str]:
        dosages: list[str] = []
        for record in self.by_active_ingredient(ingredient, limit=len(self.records)):
            if record.dosage and record.dosage not in dosages:
                dosages.append(record.dosage)
        return sorted(dosages, key=dosage_amount)

    # -------------------------------------------------------------------------
    def generic_alternatives(self, record_id: str, limit: int = 20) -> list[FormularyRecord]:
        record = self.records_by_id.get(record_id)
        if record is None or not record.active_ingredient:
            return []
        alternatives = self.by_active_ingredient(record.active_ingredient, limit + 1)
        return [item for item in alternatives if item.id != record_id][:limit]


# -----------------------------------------------------------------------------
def dosage_amount(dosage: str) -> float:
    match = DOSAGE_AMOUNT_RE.search(dosage)
    if match is None:
        return 0.0
    return float(match.group().replace(",", "."))


__all__ = ["LocalSearchIndex", "SearchHit", "SearchOptions"]
