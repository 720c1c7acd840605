from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timezone

from PHARMALINK.server.schemas.clinical import (
    ClinicalDataRecord,
    ClinicalQuickSummary,
    ClinicalWarning,
)
from PHARMALINK.server.schemas.drugs import ExternalMatchResponse
from PHARMALINK.server.schemas.sources import AuthorizationRecord, DrugLabel
from PHARMALINK.server.utils.configurations import ClinicalSettings
from PHARMALINK.server.utils.constants import (
    WARNING_SEVERITY_ORDER,
    WARNING_SUMMARY_LENGTH,
)
from PHARMALINK.server.utils.logger import logger
from PHARMALINK.server.utils.services.cache import CACHE_MISS, TTLCache
from PHARMALINK.server.utils.services.search.formulary import FormularyRecord
from PHARMALINK.server.utils.services.sources.matcher import (
    ExternalMatcher,
    ExternalMatchResult,
    LookupStatus,
)
from PHARMALINK.server.utils.services.text.summaries import (
    extract_summary,
    truncate_summary,
)

LABEL_WARNING_SECTIONS = (
    ("boxed_warning", "critical", "boxed", "Boxed warning"),
    ("contraindications", "critical", "contraindication", "Contraindications"),
    ("drug_interactions", "high", "interaction", "Drug interactions"),
    ("warnings", "moderate", "warning", "Warnings and precautions"),
)


# -----------------------------------------------------------------------------
def build_warnings(
    label: DrugLabel | None,
    authorization: AuthorizationRecord | None,
    summary_length: int = WARNING_SUMMARY_LENGTH,
) -> list[ClinicalWarning]:
    warnings: list[ClinicalWarning] = []
    if label is not None:
        for attribute, severity, kind, title in LABEL_WARNING_SECTIONS:
            text = getattr(label, attribute)
            if not text:
                continue
            warnings.append(
                ClinicalWarning(
                    id=f"warning-{len(warnings)}",
                    severity=severity,
                    type=kind,
                    title=title,
                    summary=truncate_summary(extract_summary(text), summary_length),
                    full_text=text,
                    source="openfda",
                )
            )
    if authorization is not None:
        for shortage in authorization.shortages:
            detail = shortage.forms_affected or shortage.medicine
            warnings.append(
                ClinicalWarning(
                    id=f"warning-{len(warnings)}",
                    severity="high",
                    type="shortage",
                    title="Supply shortage",
                    summary=truncate_summary(
                        f"{shortage.medicine}: ongoing shortage ({detail})"
                        if detail != shortage.medicine
                        else f"{shortage.medicine}: ongoing shortage",
                        summary_length,
                    ),
                    full_text=shortage.expected_resolution or None,
                    source="ema",
                )
            )
        for communication in authorization.safety_communications:
            warnings.append(
                ClinicalWarning(
                    id=f"warning-{len(warnings)}",
                    severity="info",
                    type="safety_communication",
                    title=communication.communication_type or "Safety communication",
                    summary=truncate_summary(
                        f"{communication.medicine} ({communication.dissemination_date})",
                        summary_length,
                    ),
                    full_text=communication.url or None,
                    source="ema",
                )
            )
    # stable sort keeps section order within one severity
    warnings.sort(key=lambda warning: WARNING_SEVERITY_ORDER[warning.severity])
    return warnings


# -----------------------------------------------------------------------------
def to_match_response(result: ExternalMatchResult) -> ExternalMatchResponse:
    return ExternalMatchResponse.model_validate(result.to_payload())


###############################################################################
class ClinicalDataAggregator:
    """Combine label and authorization matches for one formulary record.

    Both sources are queried concurrently. Results are cached briefly; a
    record assembled while either source was unavailable is not cached so a
    later request can fill the gap.

    """

    def __init__(
        self,
        label_matcher: ExternalMatcher,
        authorization_matcher: ExternalMatcher,
        settings: ClinicalSettings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.label_matcher = label_matcher
        self.authorization_matcher = authorization_matcher
        self.settings = settings
        self.cache: TTLCache[str, ClinicalDataRecord] = TTLCache(
            settings.cache_limit, settings.cache_ttl, clock
        )

    # -------------------------------------------------------------------------
    async def collect(self, record: FormularyRecord) -> ClinicalDataRecord:
        cached = self.cache.get(record.id)
        if cached is not CACHE_MISS:
            return cached

        label_result, authorization_result = await asyncio.gather(
            self.label_matcher.resolve(record),
            self.authorization_matcher.resolve(record),
        )
        label = label_result.record if isinstance(label_result.record, DrugLabel) else None
        authorization = (
            authorization_result.record
            if isinstance(authorization_result.record, AuthorizationRecord)
            else None
        )
        data = ClinicalDataRecord(
            drug_id=record.id,
            drug_name=record.name,
            active_ingredient=record.active_ingredient,
            atc_code=record.atc_code,
            label=label,
            authorization=authorization,
            label_match=to_match_response(label_result),
            authorization_match=to_match_response(authorization_result),
            warnings=build_warnings(label, authorization, self.settings.summary_length),
            has_label_data=label is not None,
            has_authorization_data=authorization is not None,
            has_contraindications=bool(label and label.contraindications),
            has_interactions=bool(label and label.drug_interactions),
            has_boxed_warning=bool(label and label.boxed_warning),
            has_shortage=bool(authorization and authorization.shortages),
            fetched_at=datetime.now(timezone.utc),
        )
        unavailable = LookupStatus.UNAVAILABLE in (
            label_result.status,
            authorization_result.status,
        )
        if unavailable:
            logger.info("Clinical data for %s is partial, not caching", record.id)
        else:
            self.cache.put(record.id, data)
        return data

    # -------------------------------------------------------------------------
    async def quick_summary(self, record: FormularyRecord) -> ClinicalQuickSummary:
        data = await self.collect(record)
        return ClinicalQuickSummary(
            drug_id=record.id,
            warning_count=len(data.warnings),
            critical_count=sum(1 for item in data.warnings if item.severity == "critical"),
            top_warning=data.warnings[0] if data.warnings else None,
        )


__all__ = ["ClinicalDataAggregator", "build_warnings"]
