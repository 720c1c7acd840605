from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from PHARMALINK.server.utils.configurations import (
    FormularySettings,
    SearchSettings,
    TranslationSettings,
)
from PHARMALINK.server.utils.logger import logger
from PHARMALINK.server.utils.services.cache import CACHE_MISS, TTLCache
from PHARMALINK.server.utils.services.lifecycle import ServiceLifecycle
from PHARMALINK.server.utils.services.search.expansion import ExpansionCache
from PHARMALINK.server.utils.services.search.formulary import (
    FormularyDataset,
    FormularyRecord,
    load_formulary_dataset,
)
from PHARMALINK.server.utils.services.search.index import (
    LocalSearchIndex,
    SearchHit,
    SearchOptions,
)
from PHARMALINK.server.utils.services.text.ingredients import (
    IngredientParser,
    ParsedIngredient,
)
from PHARMALINK.server.utils.services.text.translation import IngredientTranslator

DatasetLoader = Callable[[str, str | None], FormularyDataset]


###############################################################################
class DrugCatalogService:
    """Formulary search facade.

    Owns the parser, translator and search index built from one formulary
    load. Every public coroutine awaits the background load first, so early
    callers never observe an empty catalog by accident.

    """

    def __init__(
        self,
        formulary: FormularySettings,
        search: SearchSettings,
        translation: TranslationSettings,
        expansion: ExpansionCache,
        loader: DatasetLoader = load_formulary_dataset,
    ) -> None:
        self.formulary_settings = formulary
        self.search_settings = search
        self.expansion = expansion
        self.loader = loader
        self.parser = IngredientParser(translation.generic_placeholders)
        self.translator = IngredientTranslator(
            partial_match_ratio=translation.partial_match_ratio,
            classification_prefix_length=translation.classification_prefix_length,
        )
        self.index = LocalSearchIndex(
            min_query_length=search.min_query_length,
            short_token_scan_limit=search.short_token_scan_limit,
            fuzzy_cutoff=search.fuzzy_cutoff,
            fuzzy_candidate_limit=search.fuzzy_candidate_limit,
        )
        self.details_cache: TTLCache[str, dict[str, Any]] = TTLCache(
            search.details_cache_limit, search.details_cache_ttl
        )
        self.version = ""
        self.lifecycle = ServiceLifecycle("formulary", self.load)

    # -------------------------------------------------------------------------
    async def load(self) -> None:
        dataset = await asyncio.to_thread(
            self.loader,
            self.formulary_settings.formulary_path,
            self.formulary_settings.translations_path,
        )
        await asyncio.to_thread(self.index.build, dataset.records)
        self.translator.load_tables(dataset.translations, dataset.classification_names)
        self.version = dataset.version
        self.details_cache.clear()

    # -------------------------------------------------------------------------
    async def ensure_ready(self) -> None:
        await asyncio.gather(
            self.lifecycle.ensure_ready(), self.expansion.lifecycle.ensure_ready()
        )

    # -------------------------------------------------------------------------
    async def search(
        self, query: str, options: SearchOptions | None = None
    ) -> list[SearchHit]:
        options = options or SearchOptions(limit=self.search_settings.default_limit)
        _, expansion_records = await asyncio.gather(
            self.lifecycle.ensure_ready(), self.expansion.records()
        )
        hits = self.index.search(query, options, expansion_records)
        logger.debug("Search for '%s' returned %d hits", query, len(hits))
        return hits

    # -------------------------------------------------------------------------
    async def get(self, drug_id: str) -> FormularyRecord | None:
        await self.lifecycle.ensure_ready()
        record = self.index.get(drug_id)
        if record is not None:
            return record
        entry = await self.expansion.get(drug_id)
        return entry.to_record() if entry is not None else None

    # -------------------------------------------------------------------------
    def parse(self, record: FormularyRecord) -> ParsedIngredient:
        return self.parser.parse(record.active_ingredient)

    # -------------------------------------------------------------------------
    async def describe_ingredients(self, record: FormularyRecord) -> dict[str, Any]:
        await self.lifecycle.ensure_ready()
        cached = self.details_cache.get(record.id)
        if cached is not CACHE_MISS:
            return cached

        parsed = self.parse(record)
        translations = {
            ingredient: self.translator.to_international(ingredient)
            for ingredient in parsed.ingredients
            if not self.parser.is_generic_placeholder(ingredient)
        }
        classification_name = None
        if self.parser.needs_classification_fallback(parsed):
            classification_name = self.translator.from_classification_code(
                record.atc_code
            )
        details = {
            "drug_id": record.id,
            "original": parsed.original,
            "ingredients": list(parsed.ingredients),
            "is_multi_ingredient": parsed.is_multi_ingredient,
            "is_generic_placeholder": parsed.is_generic_placeholder,
            "translations": translations,
            "classification_name": classification_name,
            "common_dosages": (
                self.index.common_dosages(record.active_ingredient)
                if record.active_ingredient
                else []
            ),
        }
        self.details_cache.put(record.id, details)
        return details

    # -------------------------------------------------------------------------
    async def by_classification_prefix(
        self, prefix: str, limit: int = 100
    ) -> list[FormularyRecord]:
        await self.lifecycle.ensure_ready()
        return self.index.by_classification_prefix(prefix, limit)

    # -------------------------------------------------------------------------
    async def by_active_ingredient(
        self, ingredient: str, limit: int = 50
    ) -> list[FormularyRecord]:
        await self.lifecycle.ensure_ready()
        return self.index.by_active_ingredient(ingredient, limit)

    # -------------------------------------------------------------------------
    async def generic_alternatives(
        self, drug_id: str, limit: int = 20
    ) -> list[FormularyRecord]:
        await self.lifecycle.ensure_ready()
        return self.index.generic_alternatives(drug_id, limit)

    # -------------------------------------------------------------------------
    async def stats(self) -> dict[str, Any]:
        await self.lifecycle.ensure_ready()
        return {
            "records": len(self.index),
            "version": self.version,
            "load_error": self.lifecycle.load_error,
            **self.translator.stats(),
        }


__all__ = ["DrugCatalogService"]
