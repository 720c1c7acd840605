from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# [RAW SOURCE PAYLOADS]
###############################################################################
class RawSourcePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # -------------------------------------------------------------------------
    @field_validator("*", mode="before")
    @classmethod
    def coerce_blank(cls, value: Any) -> Any:
        # bulk exports mix nulls and numbers into text columns
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


###############################################################################
class OpenFdaMetadataPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    brand_name: list[str] = Field(default_factory=list)
    generic_name: list[str] = Field(default_factory=list)
    substance_name: list[str] = Field(default_factory=list)
    manufacturer_name: list[str] = Field(default_factory=list)


###############################################################################
class OpenFdaLabelPayload(BaseModel):
    """One element of the ``results`` array returned by the label endpoint."""

    model_config = ConfigDict(extra="ignore")

    openfda: OpenFdaMetadataPayload = Field(default_factory=OpenFdaMetadataPayload)
    set_id: str | None = None
    effective_time: str | None = None
    contraindications: list[str] | None = None
    drug_interactions: list[str] | None = None
    warnings_and_cautions: list[str] | None = None
    warnings: list[str] | None = None
    boxed_warning: list[str] | None = None
    adverse_reactions: list[str] | None = None
    indications_and_usage: list[str] | None = None
    dosage_and_administration: list[str] | None = None
    pregnancy: list[str] | None = None
    pediatric_use: list[str] | None = None
    geriatric_use: list[str] | None = None
    mechanism_of_action: list[str] | None = None


###############################################################################
class OpenFdaSearchPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    results: list[OpenFdaLabelPayload] = Field(default_factory=list)


###############################################################################
class EmaMedicinePayload(RawSourcePayload):
    name_of_medicine: str = ""
    international_non_proprietary_name_common_name: str = ""
    active_substance: str = ""
    atc_code_human: str = ""
    medicine_status: str = ""
    therapeutic_indication: str = ""
    therapeutic_area_mesh: str = ""
    pharmacotherapeutic_group_human: str = ""
    marketing_authorisation_date: str = ""
    marketing_authorisation_developer_applicant_holder: str = ""
    biosimilar: str = ""
    orphan_medicine: str = ""
    additional_monitoring: str = ""
    generic_or_hybrid: str = ""
    conditional_approval: str = ""
    medicine_url: str = ""
    last_updated_date: str = ""


###############################################################################
class EmaShortagePayload(RawSourcePayload):
    medicine_affected: str = ""
    international_non_proprietary_name_inn_or_common_name: str = ""
    supply_shortage_status: str = ""
    pharmaceutical_forms_affected: str = ""
    strengths_affected: str = ""
    availability_of_alternatives: str = ""
    therapeutic_area_mesh: str = ""
    start_of_shortage_date: str = ""
    expected_resolution: str = ""
    last_updated_date: str = ""
    shortage_url: str = ""


###############################################################################
class EmaDhpcPayload(RawSourcePayload):
    name_of_medicine: str = ""
    active_substances: str = ""
    dhpc_type: str = ""
    atc_code_human: str = ""
    therapeutic_area_mesh: str = ""
    dissemination_date: str = ""
    dhpc_url: str = ""
    procedure_number: str = ""


# [RESOLVED SOURCE RECORDS]
###############################################################################
class DrugLabel(BaseModel):
    source: Literal["openfda"] = "openfda"
    brand_name: str = ""
    generic_name: str = ""
    manufacturer: str = ""
    contraindications: str | None = None
    drug_interactions: str | None = None
    warnings: str | None = None
    boxed_warning: str | None = None
    adverse_reactions: str | None = None
    indications: str | None = None
    dosage: str | None = None
    pregnancy: str | None = None
    pediatric_use: str | None = None
    geriatric_use: str | None = None
    mechanism_of_action: str | None = None
    set_id: str | None = None
    effective_time: str | None = None


###############################################################################
class AuthorizedMedicine(BaseModel):
    name: str
    inn: str = ""
    active_substance: str = ""
    atc_code: str = ""
    status: str = ""
    therapeutic_indication: str = ""
    therapeutic_area: str = ""
    pharmacotherapeutic_group: str = ""
    authorisation_date: str = ""
    holder: str = ""
    biosimilar: bool = False
    orphan_medicine: bool = False
    additional_monitoring: bool = False
    generic_or_hybrid: bool = False
    conditional_approval: bool = False
    product_url: str = ""
    last_updated: str = ""


###############################################################################
class SupplyShortage(BaseModel):
    medicine: str = ""
    inn: str = ""
    status: Literal["Ongoing", "Resolved"] = "Resolved"
    forms_affected: str = ""
    strengths_affected: str = ""
    has_alternatives: bool | None = Field(
        None, description="None when the export reports availability as unknown."
    )
    therapeutic_area: str = ""
    start_date: str = ""
    expected_resolution: str = ""
    last_updated: str = ""
    shortage_url: str = ""


###############################################################################
class SafetyCommunication(BaseModel):
    medicine: str = ""
    active_substances: str = ""
    communication_type: str = ""
    atc_code: str = ""
    therapeutic_area: str = ""
    dissemination_date: str = ""
    url: str = ""
    procedure_number: str = ""


###############################################################################
class AuthorizationRecord(BaseModel):
    source: Literal["ema"] = "ema"
    medicine: AuthorizedMedicine
    shortages: list[SupplyShortage] = Field(default_factory=list)
    safety_communications: list[SafetyCommunication] = Field(default_factory=list)


###############################################################################
class AuthorizationSourceStats(BaseModel):
    total_medicines: int = 0
    ongoing_shortages: int = 0
    resolved_shortages: int = 0
    total_communications: int = 0
    last_updated: str = ""
