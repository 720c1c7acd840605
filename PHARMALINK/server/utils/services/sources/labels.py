from __future__ import annotations

import time
from collections.abc import Callable, Sequence

import httpx
from pydantic import ValidationError

from PHARMALINK.server.schemas.sources import (
    DrugLabel,
    OpenFdaLabelPayload,
    OpenFdaSearchPayload,
)
from PHARMALINK.server.utils.configurations import ExternalSourceSettings
from PHARMALINK.server.utils.logger import logger
from PHARMALINK.server.utils.patterns import QUERY_PUNCTUATION_RE
from PHARMALINK.server.utils.services.errors import SourceRequestError
from PHARMALINK.server.utils.services.lifecycle import ServiceLifecycle
from PHARMALINK.server.utils.services.sources.matcher import ExternalMatcher, MatchMethod
from PHARMALINK.server.utils.services.text.ingredients import IngredientParser
from PHARMALINK.server.utils.services.text.summaries import clean_label_text
from PHARMALINK.server.utils.services.text.translation import IngredientTranslator

NOT_FOUND_STATUS = {400, 404}


# -----------------------------------------------------------------------------
def first_value(values: list[str]) -> str:
    for value in values:
        if value and value.strip():
            return value.strip()
    return ""


# -----------------------------------------------------------------------------
def map_label(payload: OpenFdaLabelPayload) -> DrugLabel:
    return DrugLabel(
        brand_name=first_value(payload.openfda.brand_name),
        generic_name=first_value(payload.openfda.generic_name),
        manufacturer=first_value(payload.openfda.manufacturer_name),
        contraindications=clean_label_text(payload.contraindications),
        drug_interactions=clean_label_text(payload.drug_interactions),
        # older labels only carry the legacy "warnings" section
        warnings=clean_label_text(payload.warnings_and_cautions or payload.warnings),
        boxed_warning=clean_label_text(payload.boxed_warning),
        adverse_reactions=clean_label_text(payload.adverse_reactions),
        indications=clean_label_text(payload.indications_and_usage),
        dosage=clean_label_text(payload.dosage_and_administration),
        pregnancy=clean_label_text(payload.pregnancy),
        pediatric_use=clean_label_text(payload.pediatric_use),
        geriatric_use=clean_label_text(payload.geriatric_use),
        mechanism_of_action=clean_label_text(payload.mechanism_of_action),
        set_id=payload.set_id or None,
        effective_time=payload.effective_time or None,
    )


###############################################################################
class LabelMatcher(ExternalMatcher):
    """Structured drug labels from the openFDA label endpoint."""

    source_name = "openfda"
    fields = {
        MatchMethod.BRAND_NAME: "openfda.brand_name",
        MatchMethod.ACTIVE_INGREDIENT: "openfda.substance_name",
        MatchMethod.GENERIC_NAME: "openfda.generic_name",
    }

    def __init__(
        self,
        settings: ExternalSourceSettings,
        parser: IngredientParser,
        translator: IngredientTranslator,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
        prerequisites: Sequence[ServiceLifecycle] = (),
    ) -> None:
        super().__init__(settings, parser, translator, clock, prerequisites)
        self.base_url = settings.base_url
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.request_timeout),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )

    # -------------------------------------------------------------------------
    @staticmethod
    def build_query(field: str, term: str) -> str | None:
        cleaned = QUERY_PUNCTUATION_RE.sub("", term).strip()
        if not cleaned:
            return None
        return f'{field}:"{cleaned}"'

    # -------------------------------------------------------------------------
    async def fetch(self, field: str, term: str) -> DrugLabel | None:
        search = self.build_query(field, term)
        if search is None:
            return None
        try:
            response = await self.client.get(
                self.base_url, params={"search": search, "limit": 1}
            )
        except httpx.TimeoutException as exc:
            raise SourceRequestError(f"openFDA request timed out for {search}") from exc
        except httpx.RequestError as exc:
            raise SourceRequestError(f"openFDA request failed: {exc}") from exc

        if response.status_code in NOT_FOUND_STATUS:
            return None
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SourceRequestError(f"openFDA HTTP {response.status_code}") from exc

        try:
            payload = OpenFdaSearchPayload.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise SourceRequestError("openFDA returned an unreadable payload") from exc
        if not payload.results:
            return None
        label = map_label(payload.results[0])
        logger.debug("openFDA label found for %s (%s)", search, label.brand_name)
        return label

    # -------------------------------------------------------------------------
    async def probe(self) -> bool:
        # health checks share the request quota; lookups are refused while it is spent
        if not self.limiter.try_acquire():
            logger.debug("Rate limit reached for %s, skipping health check", self.source_name)
            return True
        response = await self.client.get(self.base_url, params={"limit": 1})
        return response.status_code < 500

    # -------------------------------------------------------------------------
    async def close(self) -> None:
        await self.client.aclose()


__all__ = ["LabelMatcher", "map_label"]
