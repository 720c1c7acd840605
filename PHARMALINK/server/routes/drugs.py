from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from PHARMALINK.server.database.database import database
from PHARMALINK.server.schemas.clinical import ClinicalDataRecord, ClinicalQuickSummary
from PHARMALINK.server.schemas.drugs import (
    DrugListResponse,
    DrugRecordModel,
    DrugSearchHit,
    DrugSearchResponse,
    ExpansionCacheStatsResponse,
    ExpansionEntryResponse,
    ExpansionRemovalResponse,
    ExternalDrugRequest,
    ExternalMatchResponse,
    IngredientBreakdownResponse,
    MultiIngredientResponse,
)
from PHARMALINK.server.utils.configurations import server_settings
from PHARMALINK.server.utils.constants import DRUG_ROUTES, DRUGS_API_URL
from PHARMALINK.server.utils.logger import logger
from PHARMALINK.server.utils.services.clinical.aggregator import ClinicalDataAggregator
from PHARMALINK.server.utils.services.search.catalog import DrugCatalogService
from PHARMALINK.server.utils.services.search.expansion import (
    ExpansionCache,
    ExpansionCacheEntry,
    to_datetime,
)
from PHARMALINK.server.utils.services.search.formulary import FormularyRecord
from PHARMALINK.server.utils.services.search.index import SearchOptions
from PHARMALINK.server.utils.services.sources.authorizations import AuthorizationMatcher
from PHARMALINK.server.utils.services.sources.labels import LabelMatcher
from PHARMALINK.server.utils.services.sources.matcher import ExternalMatcher

###############################################################################
router = APIRouter(prefix=DRUGS_API_URL, tags=["drugs"])

expansion_cache = ExpansionCache(database, server_settings.expansion_cache)
catalog = DrugCatalogService(
    server_settings.formulary,
    server_settings.search,
    server_settings.translation,
    expansion_cache,
)
label_matcher = LabelMatcher(
    server_settings.label_source,
    catalog.parser,
    catalog.translator,
    prerequisites=(catalog.lifecycle,),
)
authorization_matcher = AuthorizationMatcher(
    server_settings.authorization_source,
    server_settings.authorization_data,
    catalog.parser,
    catalog.translator,
    prerequisites=(catalog.lifecycle,),
)
clinical_aggregator = ClinicalDataAggregator(
    label_matcher, authorization_matcher, server_settings.clinical
)

SOURCE_MATCHERS: dict[str, ExternalMatcher] = {
    "labels": label_matcher,
    "authorizations": authorization_matcher,
}


###############################################################################
def to_drug_model(record: FormularyRecord) -> DrugRecordModel:
    return DrugRecordModel.model_validate(record.to_payload())

# -----------------------------------------------------------------------------
def to_entry_response(entry: ExpansionCacheEntry) -> ExpansionEntryResponse:
    return ExpansionEntryResponse(
        drug=to_drug_model(entry.to_record()),
        original_id=entry.original_id,
        usage_count=entry.usage_count,
        added_at=to_datetime(entry.added_at),
        last_used_at=to_datetime(entry.last_used_at),
    )

# -----------------------------------------------------------------------------
async def require_record(drug_id: str) -> FormularyRecord:
    record = await catalog.get(drug_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Drug not found: {drug_id}",
        )
    return record


# [SEARCH]
###############################################################################
@router.get("/search", response_model=DrugSearchResponse)
async def search_drugs(
    q: str = Query(..., max_length=200, description="Free-text query"),
    limit: int = Query(
        server_settings.search.default_limit, ge=1, le=500, description="Maximum hits"
    ),
    route: str | None = Query(None, description="Administration route filter"),
    prescription_only: bool = Query(False),
    atc_prefix: str | None = Query(None, max_length=7),
    include_inactive: bool = Query(True, description="Include non-marketed records"),
) -> DrugSearchResponse:
    if route and route.lower() not in DRUG_ROUTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown route: {route}",
        )
    options = SearchOptions(
        limit=limit,
        route=route.lower() if route else None,
        prescription_only=prescription_only,
        classification_prefix=atc_prefix,
        include_inactive=include_inactive,
    )
    hits = await catalog.search(q, options)
    return DrugSearchResponse(
        query=q,
        count=len(hits),
        results=[
            DrugSearchHit(drug=to_drug_model(hit.record), score=hit.score) for hit in hits
        ],
    )

# -----------------------------------------------------------------------------
@router.get("/classification/{prefix}", response_model=DrugListResponse)
async def list_by_classification(
    prefix: str, limit: int = Query(100, ge=1, le=1000)
) -> DrugListResponse:
    records = await catalog.by_classification_prefix(prefix, limit)
    return DrugListResponse(
        count=len(records), drugs=[to_drug_model(record) for record in records]
    )

# -----------------------------------------------------------------------------
@router.get("/ingredient/{ingredient}", response_model=DrugListResponse)
async def list_by_ingredient(
    ingredient: str, limit: int = Query(50, ge=1, le=1000)
) -> DrugListResponse:
    records = await catalog.by_active_ingredient(ingredient, limit)
    return DrugListResponse(
        count=len(records), drugs=[to_drug_model(record) for record in records]
    )


# [EXPANSION CACHE]
###############################################################################
@router.post(
    "/expansion",
    response_model=ExpansionEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_expansion_drug(payload: ExternalDrugRequest) -> ExpansionEntryResponse:
    entry = await expansion_cache.add(payload)
    logger.info("Expansion cache now holds %d drugs", len(expansion_cache))
    return to_entry_response(entry)

# -----------------------------------------------------------------------------
@router.get("/expansion", response_model=list[ExpansionEntryResponse])
async def list_expansion_drugs() -> list[ExpansionEntryResponse]:
    entries = await expansion_cache.cached_entries()
    return [to_entry_response(entry) for entry in entries]

# -----------------------------------------------------------------------------
@router.get("/expansion/stats", response_model=ExpansionCacheStatsResponse)
async def get_expansion_stats() -> ExpansionCacheStatsResponse:
    return ExpansionCacheStatsResponse.model_validate(await expansion_cache.stats())

# -----------------------------------------------------------------------------
@router.post("/expansion/prune")
async def prune_expansion_cache() -> dict[str, int]:
    return {"removed": await expansion_cache.prune()}

# -----------------------------------------------------------------------------
@router.delete("/expansion/{drug_id}", response_model=ExpansionRemovalResponse)
async def remove_expansion_drug(drug_id: str) -> ExpansionRemovalResponse:
    removed = await expansion_cache.remove(drug_id)
    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Drug not in expansion cache: {drug_id}",
        )
    return ExpansionRemovalResponse(removed=True, drug_id=drug_id)

# -----------------------------------------------------------------------------
@router.delete("/expansion", status_code=status.HTTP_204_NO_CONTENT)
async def clear_expansion_cache() -> None:
    await expansion_cache.clear()


# [DRUG DETAILS]
###############################################################################
@router.get("/{drug_id}", response_model=DrugRecordModel)
async def get_drug(drug_id: str) -> DrugRecordModel:
    return to_drug_model(await require_record(drug_id))

# -----------------------------------------------------------------------------
@router.get("/{drug_id}/ingredients", response_model=IngredientBreakdownResponse)
async def get_drug_ingredients(drug_id: str) -> IngredientBreakdownResponse:
    record = await require_record(drug_id)
    details = await catalog.describe_ingredients(record)
    return IngredientBreakdownResponse.model_validate(details)

# -----------------------------------------------------------------------------
@router.get("/{drug_id}/alternatives", response_model=DrugListResponse)
async def get_generic_alternatives(
    drug_id: str, limit: int = Query(20, ge=1, le=200)
) -> DrugListResponse:
    await require_record(drug_id)
    records = await catalog.generic_alternatives(drug_id, limit)
    return DrugListResponse(
        count=len(records), drugs=[to_drug_model(record) for record in records]
    )


# [EXTERNAL SOURCES]
###############################################################################
@router.get("/{drug_id}/{source}", response_model=ExternalMatchResponse)
async def resolve_drug(drug_id: str, source: str) -> ExternalMatchResponse:
    matcher = SOURCE_MATCHERS.get(source)
    if matcher is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown source: {source}",
        )
    record = await require_record(drug_id)
    result = await matcher.resolve(record)
    return ExternalMatchResponse.model_validate(result.to_payload())

# -----------------------------------------------------------------------------
@router.get("/{drug_id}/{source}/components", response_model=MultiIngredientResponse)
async def resolve_drug_components(drug_id: str, source: str) -> MultiIngredientResponse:
    matcher = SOURCE_MATCHERS.get(source)
    if matcher is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown source: {source}",
        )
    record = await require_record(drug_id)
    result = await matcher.resolve_multi(record)
    return MultiIngredientResponse.model_validate(result.to_payload())


# [CLINICAL DATA]
###############################################################################
@router.get("/{drug_id}/clinical/record", response_model=ClinicalDataRecord)
async def get_clinical_data(drug_id: str) -> ClinicalDataRecord:
    record = await require_record(drug_id)
    return await clinical_aggregator.collect(record)

# -----------------------------------------------------------------------------
@router.get("/{drug_id}/clinical/summary", response_model=ClinicalQuickSummary)
async def get_clinical_summary(drug_id: str) -> ClinicalQuickSummary:
    record = await require_record(drug_id)
    return await clinical_aggregator.quick_summary(record)
