from __future__ import annotations

import asyncio

from PHARMALINK.server.schemas.sources import (
    AuthorizationRecord,
    AuthorizedMedicine,
    DrugLabel,
    SafetyCommunication,
    SupplyShortage,
)
from PHARMALINK.server.utils.configurations.server import build_clinical_settings
from PHARMALINK.server.utils.services.clinical.aggregator import (
    ClinicalDataAggregator,
    build_warnings,
)
from PHARMALINK.server.utils.services.search.formulary import FormularyRecord
from PHARMALINK.server.utils.services.sources.matcher import (
    ExternalMatchResult,
    LookupStatus,
    MatchMethod,
)

RECORD = FormularyRecord(
    id="H1", name="Humira 40 mg", base_name="Humira", active_ingredient="adalimumab",
    atc_code="L04AB04",
)
LABEL = DrugLabel(
    brand_name="Humira",
    generic_name="adalimumab",
    warnings="Serious infections have been reported.\n\nSecond paragraph.",
    drug_interactions="Avoid live vaccines.",
    boxed_warning="SERIOUS INFECTIONS AND MALIGNANCY",
    contraindications="None.",
)
AUTHORIZATION = AuthorizationRecord(
    medicine=AuthorizedMedicine(name="Humira", inn="adalimumab"),
    shortages=[
        SupplyShortage(
            medicine="Humira", status="Ongoing", forms_affected="pre-filled pen"
        )
    ],
    safety_communications=[
        SafetyCommunication(
            medicine="Humira", communication_type="Safety update",
            dissemination_date="20/07/2026",
        )
    ],
)


###############################################################################
class _StubMatcher:
    def __init__(self, source: str, results: list[ExternalMatchResult]) -> None:
        self.source = source
        self.results = results
        self.calls = 0

    async def resolve(self, record: FormularyRecord) -> ExternalMatchResult:
        result = self.results[min(self.calls, len(self.results) - 1)]
        self.calls += 1
        return result


# -----------------------------------------------------------------------------
def found(source: str, record) -> ExternalMatchResult:
    return ExternalMatchResult(
        source=source, status=LookupStatus.FOUND, method=MatchMethod.BRAND_NAME,
        record=record, query_term="Humira",
    )


# -----------------------------------------------------------------------------
def missing(source: str, status: LookupStatus = LookupStatus.NOT_FOUND) -> ExternalMatchResult:
    return ExternalMatchResult(source=source, status=status)


# -----------------------------------------------------------------------------
def build_aggregator(label_results, authorization_results):
    labels = _StubMatcher("openfda", label_results)
    authorizations = _StubMatcher("ema", authorization_results)
    aggregator = ClinicalDataAggregator(
        labels, authorizations, build_clinical_settings({"summary_length": 20})
    )
    return aggregator, labels, authorizations


# -----------------------------------------------------------------------------
def test_warnings_are_ordered_by_severity() -> None:
    warnings = build_warnings(LABEL, AUTHORIZATION, summary_length=200)
    assert [warning.type for warning in warnings] == [
        "boxed",
        "contraindication",
        "interaction",
        "shortage",
        "warning",
        "safety_communication",
    ]
    assert [warning.severity for warning in warnings] == [
        "critical",
        "critical",
        "high",
        "high",
        "moderate",
        "info",
    ]
    moderate = warnings[4]
    assert moderate.summary == "Serious infections have been reported."
    assert moderate.full_text == LABEL.warnings
    assert warnings[3].summary == "Humira: ongoing shortage (pre-filled pen)"
    assert warnings[5].title == "Safety update"


# -----------------------------------------------------------------------------
def test_warnings_are_empty_without_sources() -> None:
    assert build_warnings(None, None) == []


# -----------------------------------------------------------------------------
def test_collect_merges_both_sources_and_caches() -> None:
    aggregator, labels, authorizations = build_aggregator(
        [found("openfda", LABEL)], [found("ema", AUTHORIZATION)]
    )

    async def scenario():
        first = await aggregator.collect(RECORD)
        second = await aggregator.collect(RECORD)
        return first, second

    first, second = asyncio.run(scenario())
    assert first is second
    assert labels.calls == 1
    assert authorizations.calls == 1
    assert first.has_label_data and first.has_authorization_data
    assert first.has_boxed_warning and first.has_interactions
    assert first.has_shortage
    assert first.label_match.method == "brand_name"
    assert first.warnings[0].summary == "SERIOUS INFECTIONS A..."


# -----------------------------------------------------------------------------
def test_partial_records_are_not_cached() -> None:
    aggregator, labels, _ = build_aggregator(
        [missing("openfda", LookupStatus.UNAVAILABLE), found("openfda", LABEL)],
        [found("ema", AUTHORIZATION)],
    )

    async def scenario():
        first = await aggregator.collect(RECORD)
        second = await aggregator.collect(RECORD)
        return first, second

    first, second = asyncio.run(scenario())
    assert labels.calls == 2
    assert first.label is None
    assert first.label_match.status == "unavailable"
    assert first.has_authorization_data
    assert second.has_label_data


# -----------------------------------------------------------------------------
def test_not_found_results_are_cached() -> None:
    aggregator, labels, _ = build_aggregator(
        [missing("openfda")], [missing("ema")]
    )

    async def scenario():
        await aggregator.collect(RECORD)
        return await aggregator.collect(RECORD)

    data = asyncio.run(scenario())
    assert labels.calls == 1
    assert data.warnings == []
    assert not data.has_label_data


# -----------------------------------------------------------------------------
def test_quick_summary_counts_critical_warnings() -> None:
    aggregator, _, _ = build_aggregator(
        [found("openfda", LABEL)], [found("ema", AUTHORIZATION)]
    )
    summary = asyncio.run(aggregator.quick_summary(RECORD))
    assert summary.drug_id == "H1"
    assert summary.warning_count == 6
    assert summary.critical_count == 2
    assert summary.top_warning is not None
    assert summary.top_warning.type == "boxed"
