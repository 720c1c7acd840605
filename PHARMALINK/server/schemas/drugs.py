from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


###############################################################################
class DrugRecordModel(BaseModel):
    id: str
    name: str
    base_name: str = ""
    active_ingredient: str = ""
    atc_code: str = ""
    in_market: bool = False
    dosage: str = ""
    form: str = ""
    route: str = "oral"
    prescription_required: bool = True
    source: str = "formulary"


###############################################################################
class DrugSearchHit(BaseModel):
    drug: DrugRecordModel
    score: int = Field(..., description="Additive relevance score")


###############################################################################
class DrugSearchResponse(BaseModel):
    query: str
    count: int
    results: list[DrugSearchHit] = Field(default_factory=list)


###############################################################################
class DrugListResponse(BaseModel):
    count: int
    drugs: list[DrugRecordModel] = Field(default_factory=list)


###############################################################################
class IngredientBreakdownResponse(BaseModel):
    """
    Component view of a record's ingredient field.
    - Each component maps to its international-name candidates.
    - The classification name is only resolved when the field is empty or
      names a drug class.

    """

    drug_id: str
    original: str
    ingredients: list[str] = Field(default_factory=list)
    is_multi_ingredient: bool = False
    is_generic_placeholder: bool = False
    translations: dict[str, list[str]] = Field(default_factory=dict)
    classification_name: str | None = None
    common_dosages: list[str] = Field(default_factory=list)


###############################################################################
class ExternalDrugRequest(BaseModel):
    """
    Externally sourced drug selected by the user.
    - Accepts both snake_case and the camelCase keys used by browser clients.

    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, max_length=200)
    name: str = Field(..., min_length=1, max_length=500)
    active_ingredient: str = Field(
        "", validation_alias=AliasChoices("active_ingredient", "activeIngredient")
    )
    dosage: str = Field("", validation_alias=AliasChoices("dosage", "strength"))
    form: str = Field(
        "", validation_alias=AliasChoices("form", "product_form", "productForm")
    )
    route: str | None = None
    prescription_required: bool = Field(
        True,
        validation_alias=AliasChoices("prescription_required", "prescriptionRequired"),
    )
    atc_code: str = Field("", validation_alias=AliasChoices("atc_code", "atcCode"))

    # -------------------------------------------------------------------------
    @field_validator("id", "name", "active_ingredient", "dosage", "form", "atc_code", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            return " ".join(value.split())
        return value


###############################################################################
class ExpansionEntryResponse(BaseModel):
    drug: DrugRecordModel
    original_id: str
    usage_count: int
    added_at: datetime
    last_used_at: datetime


###############################################################################
class ExpansionCacheStatsResponse(BaseModel):
    count: int
    capacity: int
    oldest_added_at: datetime | None = None
    newest_added_at: datetime | None = None


###############################################################################
class ExpansionRemovalResponse(BaseModel):
    removed: bool
    drug_id: str


###############################################################################
class ExternalMatchResponse(BaseModel):
    source: str
    status: Literal["found", "not_found", "unavailable"]
    matched: bool
    method: str | None = None
    query_term: str | None = None
    record: dict[str, Any] | None = None


###############################################################################
class IngredientMatchResponse(BaseModel):
    ingredient: str
    is_generic_placeholder: bool = False
    candidates: list[str] = Field(default_factory=list)
    match: ExternalMatchResponse


###############################################################################
class MultiIngredientResponse(BaseModel):
    source: str
    combination: ExternalMatchResponse
    components: list[IngredientMatchResponse] = Field(default_factory=list)
