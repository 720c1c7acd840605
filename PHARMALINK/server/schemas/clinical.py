from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from PHARMALINK.server.schemas.drugs import ExternalMatchResponse
from PHARMALINK.server.schemas.sources import (
    AuthorizationRecord,
    DrugLabel,
    SafetyCommunication,
    SupplyShortage,
)

Severity = Literal["critical", "high", "moderate", "info"]
WarningType = Literal[
    "boxed",
    "contraindication",
    "interaction",
    "warning",
    "shortage",
    "safety_communication",
]


###############################################################################
class ClinicalWarning(BaseModel):
    id: str
    severity: Severity
    type: WarningType
    title: str
    summary: str
    full_text: str | None = None
    source: Literal["openfda", "ema"]


###############################################################################
class ClinicalDataRecord(BaseModel):
    """
    Clinical knowledge collected for one formulary record.
    - Label and authorization data are resolved concurrently.
    - Warnings are ordered from critical to informational.

    """

    drug_id: str
    drug_name: str
    active_ingredient: str = ""
    atc_code: str = ""
    label: DrugLabel | None = None
    authorization: AuthorizationRecord | None = None
    label_match: ExternalMatchResponse
    authorization_match: ExternalMatchResponse
    warnings: list[ClinicalWarning] = Field(default_factory=list)
    has_label_data: bool = False
    has_authorization_data: bool = False
    has_contraindications: bool = False
    has_interactions: bool = False
    has_boxed_warning: bool = False
    has_shortage: bool = False
    fetched_at: datetime


###############################################################################
class ClinicalQuickSummary(BaseModel):
    drug_id: str
    warning_count: int
    critical_count: int
    top_warning: ClinicalWarning | None = None


###############################################################################
class SourceStatusResponse(BaseModel):
    sources: list[dict[str, Any]] = Field(default_factory=list)
    catalog: dict[str, Any] = Field(default_factory=dict)
    expansion_cache: dict[str, Any] = Field(default_factory=dict)


###############################################################################
class ShortageListResponse(BaseModel):
    count: int
    shortages: list[SupplyShortage] = Field(default_factory=list)


###############################################################################
class SafetyCommunicationListResponse(BaseModel):
    count: int
    communications: list[SafetyCommunication] = Field(default_factory=list)
