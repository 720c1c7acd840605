from __future__ import annotations

import asyncio

from fastapi import APIRouter, Query

from PHARMALINK.server.routes.drugs import (
    authorization_matcher,
    catalog,
    expansion_cache,
    label_matcher,
)
from PHARMALINK.server.schemas.clinical import (
    SafetyCommunicationListResponse,
    ShortageListResponse,
    SourceStatusResponse,
)
from PHARMALINK.server.schemas.sources import AuthorizationSourceStats
from PHARMALINK.server.utils.constants import SOURCES_API_URL


###############################################################################
router = APIRouter(prefix=SOURCES_API_URL, tags=["sources"])


###############################################################################
@router.get("/status", response_model=SourceStatusResponse)
async def get_sources_status() -> SourceStatusResponse:
    """Availability, rate-limit usage and readiness of every data source."""
    catalog_stats, expansion_stats = await asyncio.gather(
        catalog.stats(), expansion_cache.stats()
    )
    return SourceStatusResponse(
        sources=[label_matcher.status(), authorization_matcher.status()],
        catalog=catalog_stats,
        expansion_cache=expansion_stats,
    )

# -----------------------------------------------------------------------------
@router.get("/shortages", response_model=ShortageListResponse)
async def list_ongoing_shortages(
    limit: int = Query(100, ge=1, le=5000),
) -> ShortageListResponse:
    shortages = await authorization_matcher.ongoing_shortages()
    return ShortageListResponse(count=len(shortages), shortages=shortages[:limit])

# -----------------------------------------------------------------------------
@router.get("/communications", response_model=SafetyCommunicationListResponse)
async def list_recent_communications(
    limit: int = Query(10, ge=1, le=500),
) -> SafetyCommunicationListResponse:
    communications = await authorization_matcher.recent_communications(limit)
    return SafetyCommunicationListResponse(
        count=len(communications), communications=communications
    )

# -----------------------------------------------------------------------------
@router.get("/authorizations/stats", response_model=AuthorizationSourceStats)
async def get_authorization_stats() -> AuthorizationSourceStats:
    return await authorization_matcher.stats()
