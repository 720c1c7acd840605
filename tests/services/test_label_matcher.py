from __future__ import annotations

import asyncio
from typing import Any

import httpx

from PHARMALINK.server.schemas.sources import OpenFdaLabelPayload
from PHARMALINK.server.utils.configurations.server import build_external_source_settings
from PHARMALINK.server.utils.constants import OPENFDA_LABEL_URL
from PHARMALINK.server.utils.services.search.formulary import FormularyRecord
from PHARMALINK.server.utils.services.sources.labels import LabelMatcher, map_label
from PHARMALINK.server.utils.services.sources.matcher import LookupStatus, MatchMethod
from PHARMALINK.server.utils.services.text.ingredients import IngredientParser
from PHARMALINK.server.utils.services.text.summaries import (
    clean_label_text,
    extract_summary,
    truncate_summary,
)
from PHARMALINK.server.utils.services.text.translation import IngredientTranslator

CRESTOR_LABEL = {
    "set_id": "bb0f3b5e-4bc6-41c9-66b9-e1ab3b1ca1f7",
    "effective_time": "20240315",
    "openfda": {
        "brand_name": ["CRESTOR"],
        "generic_name": ["ROSUVASTATIN CALCIUM"],
        "substance_name": ["ROSUVASTATIN CALCIUM"],
        "manufacturer_name": ["AstraZeneca Pharmaceuticals LP"],
    },
    "contraindications": ["4 CONTRAINDICATIONS Hypersensitivity to any component."],
    "warnings_and_cautions": [
        "5 WARNINGS AND PRECAUTIONS\nMyopathy and rhabdomyolysis: risk increases with dose.",
        "Monitor liver enzymes.",
    ],
    "drug_interactions": ["7 DRUG INTERACTIONS Cyclosporine increases exposure."],
    "adverse_reactions": ["Headache, myalgia."],
}


###############################################################################
class _StubTransport:
    def __init__(self, documents: dict[str, dict[str, Any]], status_code: int = 200) -> None:
        self.documents = documents
        self.status_code = status_code
        self.searches: list[str] = []
        self.health_checks = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        search = request.url.params.get("search")
        if search is None:
            self.health_checks += 1
            return httpx.Response(200, json={"results": []})
        self.searches.append(search)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "failure"})
        document = self.documents.get(search)
        if document is None:
            return httpx.Response(404, json={"error": {"code": "NOT_FOUND"}})
        return httpx.Response(200, json={"meta": {}, "results": [document]})


# -----------------------------------------------------------------------------
def build_matcher(transport: _StubTransport) -> LabelMatcher:
    settings = build_external_source_settings(
        {}, default_url=OPENFDA_LABEL_URL, default_per_minute=240, default_per_hour=1000
    )
    translator = IngredientTranslator()
    translator.load_tables({"rozuvasztatin": ["rosuvastatin calcium", "rosuvastatin"]})
    client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
    return LabelMatcher(settings, IngredientParser(), translator, client=client)


# -----------------------------------------------------------------------------
def test_map_label_cleans_sections() -> None:
    label = map_label(OpenFdaLabelPayload.model_validate(CRESTOR_LABEL))
    assert label.brand_name == "CRESTOR"
    assert label.manufacturer == "AstraZeneca Pharmaceuticals LP"
    assert label.contraindications == "Hypersensitivity to any component."
    assert label.warnings == (
        "Myopathy and rhabdomyolysis: risk increases with dose.\n\nMonitor liver enzymes."
    )
    assert label.drug_interactions == "Cyclosporine increases exposure."
    assert label.boxed_warning is None
    assert label.set_id == "bb0f3b5e-4bc6-41c9-66b9-e1ab3b1ca1f7"


# -----------------------------------------------------------------------------
def test_legacy_warnings_section_is_used_when_needed() -> None:
    payload = OpenFdaLabelPayload.model_validate({"warnings": ["WARNINGS apply."]})
    assert map_label(payload).warnings == "WARNINGS apply."


# -----------------------------------------------------------------------------
def test_text_helpers() -> None:
    assert clean_label_text([]) is None
    assert clean_label_text(None) is None
    assert clean_label_text("5.1 ONLY HEADER") is None
    assert truncate_summary("a  b\nc", 10) == "a b c"
    assert truncate_summary("x" * 20, 10) == "x" * 10 + "..."
    assert extract_summary("First part.\n\nSecond part.") == "First part."
    assert extract_summary("y" * 12, max_length=5) == "yyyyy..."
    assert extract_summary(None) is None


# -----------------------------------------------------------------------------
def test_resolve_queries_exact_brand_field() -> None:
    transport = _StubTransport({'openfda.brand_name:"Crestor"': CRESTOR_LABEL})
    matcher = build_matcher(transport)
    record = FormularyRecord(
        id="R1",
        name="Crestor 10 mg filmtabletta",
        base_name="Crestor",
        active_ingredient="rozuvasztatin",
    )

    async def scenario():
        result = await matcher.resolve(record)
        await matcher.close()
        return result

    result = asyncio.run(scenario())
    assert result.matched
    assert result.method is MatchMethod.BRAND_NAME
    assert result.record.generic_name == "ROSUVASTATIN CALCIUM"
    assert transport.searches == ['openfda.brand_name:"Crestor"']


# -----------------------------------------------------------------------------
def test_resolve_walks_translated_candidates() -> None:
    transport = _StubTransport({'openfda.generic_name:"rosuvastatin"': CRESTOR_LABEL})
    matcher = build_matcher(transport)
    record = FormularyRecord(
        id="R2",
        name="Rozuvasztatin Sandoz 10 mg",
        base_name="Rozuvasztatin Sandoz",
        active_ingredient="rozuvasztatin",
    )
    result = asyncio.run(matcher.resolve(record))
    assert result.method is MatchMethod.GENERIC_NAME
    assert result.query_term == "rosuvastatin"
    assert transport.searches == [
        'openfda.brand_name:"Rozuvasztatin Sandoz"',
        'openfda.substance_name:"rosuvastatin calcium"',
        'openfda.generic_name:"rosuvastatin calcium"',
        'openfda.substance_name:"rosuvastatin"',
        'openfda.generic_name:"rosuvastatin"',
    ]


# -----------------------------------------------------------------------------
def test_query_punctuation_is_stripped() -> None:
    assert LabelMatcher.build_query("openfda.brand_name", 'Dr. "Reddy\'s"') == (
        'openfda.brand_name:"Dr Reddys"'
    )
    assert LabelMatcher.build_query("openfda.brand_name", "!!!") is None


# -----------------------------------------------------------------------------
def test_server_errors_are_soft_and_uncached() -> None:
    transport = _StubTransport({}, status_code=503)
    matcher = build_matcher(transport)

    async def scenario():
        first = await matcher.lookup(MatchMethod.BRAND_NAME, "Crestor")
        second = await matcher.lookup(MatchMethod.BRAND_NAME, "Crestor")
        return first, second

    first, second = asyncio.run(scenario())
    assert first.status is LookupStatus.UNAVAILABLE
    assert second.status is LookupStatus.UNAVAILABLE
    assert len(transport.searches) == 2


# -----------------------------------------------------------------------------
def test_bad_request_counts_as_not_found() -> None:
    transport = _StubTransport({}, status_code=400)
    matcher = build_matcher(transport)
    outcome = asyncio.run(matcher.lookup(MatchMethod.ACTIVE_INGREDIENT, "unknown"))
    assert outcome.status is LookupStatus.NOT_FOUND


# -----------------------------------------------------------------------------
def test_unreachable_source_is_marked_down() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    settings = build_external_source_settings(
        {}, default_url=OPENFDA_LABEL_URL, default_per_minute=240, default_per_hour=1000
    )
    matcher = LabelMatcher(
        settings,
        IngredientParser(),
        IngredientTranslator(),
        client=httpx.AsyncClient(transport=httpx.MockTransport(refuse)),
    )
    outcome = asyncio.run(matcher.lookup(MatchMethod.BRAND_NAME, "Crestor"))
    assert outcome.status is LookupStatus.UNAVAILABLE
    assert matcher.status()["availability"]["state"] == "down"


# -----------------------------------------------------------------------------
def test_health_check_counts_against_request_quota() -> None:
    transport = _StubTransport({})
    settings = build_external_source_settings(
        {"requests_per_minute": 2},
        default_url=OPENFDA_LABEL_URL,
        default_per_minute=240,
        default_per_hour=1000,
    )
    matcher = LabelMatcher(
        settings,
        IngredientParser(),
        IngredientTranslator(),
        client=httpx.AsyncClient(transport=httpx.MockTransport(transport)),
    )

    async def scenario():
        first = await matcher.lookup(MatchMethod.BRAND_NAME, "Crestor")
        second = await matcher.lookup(MatchMethod.BRAND_NAME, "Sortis")
        return first, second

    first, second = asyncio.run(scenario())
    assert transport.health_checks == 1
    assert first.status is LookupStatus.NOT_FOUND
    assert second.status is LookupStatus.UNAVAILABLE
    assert len(transport.searches) == 1
    assert matcher.rate_limit_status()["minute"]["used"] == 2


# -----------------------------------------------------------------------------
def test_health_check_is_skipped_while_quota_is_spent() -> None:
    transport = _StubTransport({})
    settings = build_external_source_settings(
        {"requests_per_minute": 1},
        default_url=OPENFDA_LABEL_URL,
        default_per_minute=240,
        default_per_hour=1000,
    )
    matcher = LabelMatcher(
        settings,
        IngredientParser(),
        IngredientTranslator(),
        client=httpx.AsyncClient(transport=httpx.MockTransport(transport)),
    )
    assert matcher.limiter.try_acquire()

    available = asyncio.run(matcher.availability.is_available())
    assert available is True
    assert transport.health_checks == 0
