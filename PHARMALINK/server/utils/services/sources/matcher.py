from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel

from PHARMALINK.server.utils.configurations import ExternalSourceSettings
from PHARMALINK.server.utils.logger import logger
from PHARMALINK.server.utils.services.cache import CACHE_MISS, TTLCache
from PHARMALINK.server.utils.services.errors import SourceRequestError
from PHARMALINK.server.utils.services.lifecycle import ServiceLifecycle
from PHARMALINK.server.utils.services.search.formulary import FormularyRecord
from PHARMALINK.server.utils.services.sources.availability import SourceAvailability
from PHARMALINK.server.utils.services.sources.ratelimit import SlidingWindowRateLimiter
from PHARMALINK.server.utils.services.text.ingredients import (
    IngredientParser,
    ParsedIngredient,
)
from PHARMALINK.server.utils.services.text.normalization import (
    normalize_whitespace,
    strip_dosage,
)
from PHARMALINK.server.utils.services.text.translation import IngredientTranslator


###############################################################################
class MatchMethod(str, Enum):
    BRAND_NAME = "brand_name"
    ACTIVE_INGREDIENT = "active_ingredient"
    GENERIC_NAME = "generic_name"
    CLASSIFICATION = "classification"


###############################################################################
class LookupStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


###############################################################################
@dataclass(frozen=True, slots=True)
class LookupOutcome:
    status: LookupStatus
    record: Any = None

    # -------------------------------------------------------------------------
    @property
    def found(self) -> bool:
        return self.status is LookupStatus.FOUND


NOT_FOUND = LookupOutcome(LookupStatus.NOT_FOUND)
UNAVAILABLE = LookupOutcome(LookupStatus.UNAVAILABLE)


###############################################################################
@dataclass(frozen=True, slots=True)
class ExternalMatchResult:
    source: str
    status: LookupStatus
    method: MatchMethod | None = None
    record: Any = None
    query_term: str | None = None

    # -------------------------------------------------------------------------
    @property
    def matched(self) -> bool:
        return self.status is LookupStatus.FOUND

    # -------------------------------------------------------------------------
    def to_payload(self) -> dict[str, Any]:
        record = self.record
        if isinstance(record, BaseModel):
            record = record.model_dump()
        return {
            "source": self.source,
            "status": self.status.value,
            "matched": self.matched,
            "method": self.method.value if self.method else None,
            "query_term": self.query_term,
            "record": record,
        }


###############################################################################
@dataclass(frozen=True, slots=True)
class IngredientMatch:
    ingredient: str
    is_generic_placeholder: bool
    candidates: tuple[str, ...]
    result: ExternalMatchResult

    # -------------------------------------------------------------------------
    def to_payload(self) -> dict[str, Any]:
        return {
            "ingredient": self.ingredient,
            "is_generic_placeholder": self.is_generic_placeholder,
            "candidates": list(self.candidates),
            "match": self.result.to_payload(),
        }


###############################################################################
@dataclass(frozen=True, slots=True)
class MultiIngredientResult:
    source: str
    combination: ExternalMatchResult
    components: tuple[IngredientMatch, ...] = ()

    # -------------------------------------------------------------------------
    def to_payload(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "combination": self.combination.to_payload(),
            "components": [component.to_payload() for component in self.components],
        }


###############################################################################
@dataclass(slots=True)
class ChainAttempts:
    unavailable: bool = False
    tried: list[tuple[str, str]] = field(default_factory=list)


###############################################################################
class ExternalMatcher:
    """Resolve formulary records against one external source.

    Subclasses describe the source: ``fields`` maps each match method onto
    the source's query field, ``fetch`` performs one exact-field lookup and
    ``probe`` reports health. The base class owns the fallback chain, result
    caching, rate limiting and the availability state.

    A lookup refused locally (source down, disabled or over quota) or failed
    transiently is reported as ``unavailable``; it is never cached so a later
    call can still succeed.

    """

    source_name = "external"
    fields: dict[MatchMethod, str] = {}
    # sources keyed reliably by classification code try it before names
    classification_first = False

    def __init__(
        self,
        settings: ExternalSourceSettings,
        parser: IngredientParser,
        translator: IngredientTranslator,
        clock: Callable[[], float] = time.monotonic,
        prerequisites: Sequence[ServiceLifecycle] = (),
    ) -> None:
        self.settings = settings
        self.prerequisites = tuple(prerequisites)
        self.parser = parser
        self.translator = translator
        self.cache: TTLCache[tuple[str, str], LookupOutcome] = TTLCache(
            settings.cache_limit, settings.content_ttl, clock
        )
        self.limiter = SlidingWindowRateLimiter(
            settings.requests_per_minute, settings.requests_per_hour, clock
        )
        self.availability = SourceAvailability(
            self.source_name,
            self.probe,
            interval=settings.health_check_interval,
            timeout=settings.health_check_timeout,
            clock=clock,
        )
        self.lifecycle = ServiceLifecycle(self.source_name, self.initialize)

    # -------------------------------------------------------------------------
    async def initialize(self) -> None:
        return None

    # -------------------------------------------------------------------------
    async def fetch(self, field: str, term: str) -> Any | None:
        raise NotImplementedError

    # -------------------------------------------------------------------------
    async def probe(self) -> bool:
        raise NotImplementedError

    # -------------------------------------------------------------------------
    async def lookup_by_classification(self, code: str) -> LookupOutcome:
        return NOT_FOUND

    # -------------------------------------------------------------------------
    async def close(self) -> None:
        return None

    # -------------------------------------------------------------------------
    async def ensure_ready(self) -> None:
        # translation tables come from the formulary load
        await asyncio.gather(
            self.lifecycle.ensure_ready(),
            *(lifecycle.ensure_ready() for lifecycle in self.prerequisites),
        )

    # -------------------------------------------------------------------------
    async def lookup(self, method: MatchMethod, term: str) -> LookupOutcome:
        source_field = self.fields.get(method)
        query = normalize_whitespace(term)
        if not source_field or not query:
            return NOT_FOUND
        key = (source_field, query.lower())
        cached = self.cache.get(key)
        if cached is not CACHE_MISS:
            return cached

        if not self.settings.enabled:
            return UNAVAILABLE
        if not await self.availability.is_available():
            return UNAVAILABLE
        if not self.limiter.try_acquire():
            logger.debug("Rate limit reached for %s, skipping '%s'", self.source_name, query)
            return UNAVAILABLE

        try:
            record = await asyncio.wait_for(
                self.fetch(source_field, query), timeout=self.settings.request_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("%s lookup for '%s' timed out", self.source_name, query)
            return UNAVAILABLE
        except SourceRequestError as exc:
            logger.warning("%s lookup for '%s' failed: %s", self.source_name, query, exc)
            return UNAVAILABLE

        if record is None:
            self.cache.put(key, NOT_FOUND, ttl=self.settings.availability_ttl)
            return NOT_FOUND
        outcome = LookupOutcome(LookupStatus.FOUND, record)
        self.cache.put(key, outcome, ttl=self.settings.content_ttl)
        return outcome

    # -------------------------------------------------------------------------
    async def attempt(
        self, method: MatchMethod, term: str, attempts: ChainAttempts
    ) -> ExternalMatchResult | None:
        marker = (method.value, term.lower())
        if marker in attempts.tried:
            return None
        attempts.tried.append(marker)
        outcome = await self.lookup(method, term)
        if outcome.status is LookupStatus.UNAVAILABLE:
            attempts.unavailable = True
        if not outcome.found:
            return None
        return ExternalMatchResult(
            source=self.source_name,
            status=LookupStatus.FOUND,
            method=method,
            record=outcome.record,
            query_term=term,
        )

    # -------------------------------------------------------------------------
    @staticmethod
    def brand_terms(*names: str | None) -> list[str]:
        terms: list[str] = []
        for name in names:
            stripped = strip_dosage(name)
            if stripped and stripped not in terms:
                terms.append(stripped)
        return terms

    # -------------------------------------------------------------------------
    async def match_brand(
        self, terms: list[str], attempts: ChainAttempts
    ) -> ExternalMatchResult | None:
        for term in terms:
            result = await self.attempt(MatchMethod.BRAND_NAME, term, attempts)
            if result is not None:
                return result
        return None

    # -------------------------------------------------------------------------
    async def match_candidates(
        self, candidates: list[str], attempts: ChainAttempts
    ) -> ExternalMatchResult | None:
        for candidate in candidates:
            for method in (MatchMethod.ACTIVE_INGREDIENT, MatchMethod.GENERIC_NAME):
                result = await self.attempt(method, candidate, attempts)
                if result is not None:
                    return result
        return None

    # -------------------------------------------------------------------------
    async def match_ingredients(
        self, parsed: ParsedIngredient, attempts: ChainAttempts
    ) -> ExternalMatchResult | None:
        for ingredient in parsed.ingredients:
            if self.parser.is_generic_placeholder(ingredient):
                continue
            candidates = self.translator.to_international(ingredient)
            result = await self.match_candidates(candidates, attempts)
            if result is not None:
                return result
        return None

    # -------------------------------------------------------------------------
    async def match_classification_code(
        self, code: str, attempts: ChainAttempts
    ) -> ExternalMatchResult | None:
        marker = (MatchMethod.CLASSIFICATION.value, code.lower())
        if marker in attempts.tried:
            return None
        attempts.tried.append(marker)
        outcome = await self.lookup_by_classification(code)
        if outcome.status is LookupStatus.UNAVAILABLE:
            attempts.unavailable = True
        if not outcome.found:
            return None
        return ExternalMatchResult(
            source=self.source_name,
            status=LookupStatus.FOUND,
            method=MatchMethod.CLASSIFICATION,
            record=outcome.record,
            query_term=code,
        )

    # -------------------------------------------------------------------------
    async def match_classification(
        self, code: str, attempts: ChainAttempts
    ) -> ExternalMatchResult | None:
        result = await self.match_classification_code(code, attempts)
        if result is not None:
            return result
        class_name = self.translator.from_classification_code(code)
        if not class_name:
            return None
        result = await self.match_brand([class_name], attempts)
        if result is None:
            result = await self.match_ingredients(self.parser.parse(class_name), attempts)
        if result is None:
            return None
        return ExternalMatchResult(
            source=self.source_name,
            status=LookupStatus.FOUND,
            method=MatchMethod.CLASSIFICATION,
            record=result.record,
            query_term=result.query_term,
        )

    # -------------------------------------------------------------------------
    def miss(self, attempts: ChainAttempts) -> ExternalMatchResult:
        status = LookupStatus.UNAVAILABLE if attempts.unavailable else LookupStatus.NOT_FOUND
        return ExternalMatchResult(source=self.source_name, status=status)

    # -------------------------------------------------------------------------
    async def resolve(self, record: FormularyRecord) -> ExternalMatchResult:
        """Brand name, then each translated ingredient, then the classification code.

        Sources with ``classification_first`` set try the record's code
        directly before the brand name.

        """
        await self.ensure_ready()
        attempts = ChainAttempts()
        parsed = self.parser.parse(record.active_ingredient)

        result = None
        if self.classification_first and record.atc_code:
            result = await self.match_classification_code(record.atc_code, attempts)
        if result is None:
            result = await self.match_brand(
                self.brand_terms(record.base_name, record.name), attempts
            )
        if result is None:
            result = await self.match_ingredients(parsed, attempts)
        if (
            result is None
            and record.atc_code
            and self.parser.needs_classification_fallback(parsed)
        ):
            result = await self.match_classification(record.atc_code, attempts)
        if result is None:
            return self.miss(attempts)
        logger.debug(
            "Resolved %s on %s via %s ('%s')",
            record.id,
            self.source_name,
            result.method.value if result.method else "unknown",
            result.query_term,
        )
        return result

    # -------------------------------------------------------------------------
    async def resolve_multi(self, record: FormularyRecord) -> MultiIngredientResult:
        await self.ensure_ready()
        parsed = self.parser.parse(record.active_ingredient)

        combination_attempts = ChainAttempts()
        combination = await self.match_brand(
            self.brand_terms(record.base_name, record.name), combination_attempts
        )
        if combination is None:
            combination = self.miss(combination_attempts)

        # sequential on purpose: each attempt counts against the rate limit
        components: list[IngredientMatch] = []
        for ingredient in parsed.ingredients:
            is_placeholder = self.parser.is_generic_placeholder(ingredient)
            attempts = ChainAttempts()
            candidates: list[str] = []
            result = None
            if not is_placeholder:
                candidates = self.translator.to_international(ingredient)
                result = await self.match_candidates(candidates, attempts)
            elif record.atc_code:
                result = await self.match_classification(record.atc_code, attempts)
            components.append(
                IngredientMatch(
                    ingredient=ingredient,
                    is_generic_placeholder=is_placeholder,
                    candidates=tuple(candidates),
                    result=result if result is not None else self.miss(attempts),
                )
            )
        return MultiIngredientResult(
            source=self.source_name,
            combination=combination,
            components=tuple(components),
        )

    # -------------------------------------------------------------------------
    def rate_limit_status(self) -> dict[str, Any]:
        return self.limiter.status()

    # -------------------------------------------------------------------------
    def status(self) -> dict[str, Any]:
        return {
            "source": self.source_name,
            "enabled": self.settings.enabled,
            "ready": self.lifecycle.is_ready,
            "load_error": self.lifecycle.load_error,
            "availability": self.availability.status(),
            "rate_limits": self.rate_limit_status(),
            "cached_lookups": len(self.cache),
        }


__all__ = [
    "ExternalMatchResult",
    "ExternalMatcher",
    "IngredientMatch",
    "LookupOutcome",
    "LookupStatus",
    "MatchMethod",
    "MultiIngredientResult",
]
