from __future__ import annotations

import asyncio
import json
import os
import time
from collections.abc import Callable, Sequence
from datetime import date
from typing import Any

import pandas as pd
from pydantic import BaseModel, ValidationError

from PHARMALINK.server.schemas.sources import (
    AuthorizationRecord,
    AuthorizationSourceStats,
    AuthorizedMedicine,
    EmaDhpcPayload,
    EmaMedicinePayload,
    EmaShortagePayload,
    SafetyCommunication,
    SupplyShortage,
)
from PHARMALINK.server.utils.configurations import (
    AuthorizationDataSettings,
    ExternalSourceSettings,
)
from PHARMALINK.server.utils.constants import (
    EMA_DHPC_FILENAME,
    EMA_MEDICINES_FILENAME,
    EMA_SHORTAGES_FILENAME,
)
from PHARMALINK.server.utils.logger import logger
from PHARMALINK.server.utils.patterns import DMY_DATE_RE
from PHARMALINK.server.utils.services.lifecycle import ServiceLifecycle
from PHARMALINK.server.utils.services.sources.matcher import (
    NOT_FOUND,
    UNAVAILABLE,
    ExternalMatcher,
    LookupOutcome,
    LookupStatus,
    MatchMethod,
)
from PHARMALINK.server.utils.services.text.ingredients import IngredientParser
from PHARMALINK.server.utils.services.text.normalization import normalize, normalize_code
from PHARMALINK.server.utils.services.text.translation import IngredientTranslator
from PHARMALINK.server.utils.types import coerce_optional_bool

MULTI_VALUE_SEPARATOR = ";"


# -----------------------------------------------------------------------------
def parse_dmy(value: str | None) -> date:
    match = DMY_DATE_RE.match(value or "")
    if match is None:
        return date.min
    try:
        return date(int(match["year"]), int(match["month"]), int(match["day"]))
    except ValueError:
        return date.min


# -----------------------------------------------------------------------------
def split_values(value: str) -> list[str]:
    return [normalize(part) for part in value.split(MULTI_VALUE_SEPARATOR) if part.strip()]


# -----------------------------------------------------------------------------
def read_bulk_rows(path: str) -> list[dict[str, Any]]:
    if not os.path.exists(path):
        logger.warning("Authorization data file not found at %s", path)
        return []
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable authorization data file %s: %s", path, exc)
        return []
    if isinstance(payload, dict):
        payload = payload.get("data", [])
    if not isinstance(payload, list) or not payload:
        return []
    frame = pd.DataFrame([row for row in payload if isinstance(row, dict)])
    if frame.empty:
        return []
    frame = frame.astype(object)
    frame = frame.where(frame.notna(), None)
    return frame.to_dict(orient="records")


# -----------------------------------------------------------------------------
def validate_rows(rows: list[dict[str, Any]], schema: type[BaseModel]) -> list[Any]:
    valid: list[Any] = []
    for row in rows:
        try:
            valid.append(schema.model_validate(row))
        except ValidationError:
            continue
    skipped = len(rows) - len(valid)
    if skipped:
        logger.warning("Skipped %d malformed %s rows", skipped, schema.__name__)
    return valid


# -----------------------------------------------------------------------------
def map_medicine(raw: EmaMedicinePayload) -> AuthorizedMedicine:
    return AuthorizedMedicine(
        name=raw.name_of_medicine.strip(),
        inn=raw.international_non_proprietary_name_common_name.strip(),
        active_substance=raw.active_substance.strip(),
        atc_code=normalize_code(raw.atc_code_human),
        status=raw.medicine_status,
        therapeutic_indication=raw.therapeutic_indication,
        therapeutic_area=raw.therapeutic_area_mesh,
        pharmacotherapeutic_group=raw.pharmacotherapeutic_group_human,
        authorisation_date=raw.marketing_authorisation_date,
        holder=raw.marketing_authorisation_developer_applicant_holder,
        biosimilar=raw.biosimilar == "Yes",
        orphan_medicine=raw.orphan_medicine == "Yes",
        additional_monitoring=raw.additional_monitoring == "Yes",
        generic_or_hybrid=raw.generic_or_hybrid == "Yes",
        conditional_approval=raw.conditional_approval == "Yes",
        product_url=raw.medicine_url,
        last_updated=raw.last_updated_date,
    )


# -----------------------------------------------------------------------------
def map_shortage(raw: EmaShortagePayload) -> SupplyShortage:
    return SupplyShortage(
        medicine=raw.medicine_affected,
        inn=raw.international_non_proprietary_name_inn_or_common_name,
        status="Ongoing" if raw.supply_shortage_status == "Ongoing" else "Resolved",
        forms_affected=raw.pharmaceutical_forms_affected,
        strengths_affected=raw.strengths_affected,
        has_alternatives=coerce_optional_bool(raw.availability_of_alternatives),
        therapeutic_area=raw.therapeutic_area_mesh,
        start_date=raw.start_of_shortage_date,
        expected_resolution=raw.expected_resolution,
        last_updated=raw.last_updated_date,
        shortage_url=raw.shortage_url,
    )


# -----------------------------------------------------------------------------
def map_communication(raw: EmaDhpcPayload) -> SafetyCommunication:
    return SafetyCommunication(
        medicine=raw.name_of_medicine,
        active_substances=raw.active_substances,
        communication_type=raw.dhpc_type,
        atc_code=normalize_code(raw.atc_code_human),
        therapeutic_area=raw.therapeutic_area_mesh,
        dissemination_date=raw.dissemination_date,
        url=raw.dhpc_url,
        procedure_number=raw.procedure_number,
    )


###############################################################################
class AuthorizationMatcher(ExternalMatcher):
    """EU authorization data loaded in bulk from the EMA JSON exports.

    Medicines are indexed by classification code, international name,
    display name and active substance. A matched medicine carries its ongoing
    supply shortages and the most recent safety communications. The record's
    classification code is tried before any name.

    """

    source_name = "ema"
    classification_first = True
    fields = {
        MatchMethod.BRAND_NAME: "name",
        MatchMethod.ACTIVE_INGREDIENT: "inn",
        MatchMethod.GENERIC_NAME: "active_substance",
    }

    def __init__(
        self,
        settings: ExternalSourceSettings,
        data_settings: AuthorizationDataSettings,
        parser: IngredientParser,
        translator: IngredientTranslator,
        clock: Callable[[], float] = time.monotonic,
        prerequisites: Sequence[ServiceLifecycle] = (),
    ) -> None:
        super().__init__(settings, parser, translator, clock, prerequisites)
        self.data_settings = data_settings
        self.medicines: list[AuthorizedMedicine] = []
        self.shortages: list[SupplyShortage] = []
        self.communications: list[SafetyCommunication] = []
        self.by_atc: dict[str, list[AuthorizedMedicine]] = {}
        self.by_inn: dict[str, list[AuthorizedMedicine]] = {}
        self.by_name: dict[str, AuthorizedMedicine] = {}
        self.by_substance: dict[str, list[AuthorizedMedicine]] = {}
        self.shortages_by_inn: dict[str, list[SupplyShortage]] = {}
        self.communications_by_substance: dict[str, list[SafetyCommunication]] = {}
        self.communications_by_atc: dict[str, list[SafetyCommunication]] = {}
        self.data_timestamp = ""

    # -------------------------------------------------------------------------
    async def initialize(self) -> None:
        await asyncio.to_thread(self.load_data)

    # -------------------------------------------------------------------------
    def load_data(self) -> None:
        base = self.data_settings.data_path
        medicines = validate_rows(
            read_bulk_rows(os.path.join(base, EMA_MEDICINES_FILENAME)),
            EmaMedicinePayload,
        )
        shortages = validate_rows(
            read_bulk_rows(os.path.join(base, EMA_SHORTAGES_FILENAME)),
            EmaShortagePayload,
        )
        communications = validate_rows(
            read_bulk_rows(os.path.join(base, EMA_DHPC_FILENAME)), EmaDhpcPayload
        )
        self.set_data(
            [map_medicine(raw) for raw in medicines if raw.name_of_medicine.strip()],
            [map_shortage(raw) for raw in shortages],
            [map_communication(raw) for raw in communications],
        )

    # -------------------------------------------------------------------------
    def set_data(
        self,
        medicines: list[AuthorizedMedicine],
        shortages: list[SupplyShortage],
        communications: list[SafetyCommunication],
    ) -> None:
        self.medicines = medicines
        self.shortages = shortages
        self.communications = communications
        self.build_indexes()
        stamps = [
            (parse_dmy(item.last_updated), item.last_updated)
            for item in [*self.medicines, *self.shortages]
            if item.last_updated
        ]
        self.data_timestamp = max(stamps)[1] if stamps else ""
        logger.info(
            "Authorization data loaded: %d medicines, %d shortages, %d communications",
            len(self.medicines),
            len(self.shortages),
            len(self.communications),
        )

    # -------------------------------------------------------------------------
    def build_indexes(self) -> None:
        self.by_atc, self.by_inn, self.by_name, self.by_substance = {}, {}, {}, {}
        self.shortages_by_inn = {}
        self.communications_by_substance, self.communications_by_atc = {}, {}
        for medicine in self.medicines:
            if medicine.atc_code:
                self.by_atc.setdefault(medicine.atc_code, []).append(medicine)
            if medicine.inn:
                self.by_inn.setdefault(normalize(medicine.inn), []).append(medicine)
            if medicine.active_substance:
                self.by_substance.setdefault(
                    normalize(medicine.active_substance), []
                ).append(medicine)
            self.by_name[normalize(medicine.name)] = medicine
        for shortage in self.shortages:
            for inn in split_values(shortage.inn):
                self.shortages_by_inn.setdefault(inn, []).append(shortage)
        for communication in self.communications:
            for substance in split_values(communication.active_substances):
                self.communications_by_substance.setdefault(substance, []).append(
                    communication
                )
            if communication.atc_code:
                self.communications_by_atc.setdefault(communication.atc_code, []).append(
                    communication
                )

    # -------------------------------------------------------------------------
    def find_medicine(self, field: str, term: str) -> AuthorizedMedicine | None:
        key = normalize(term)
        if field == "name":
            return self.by_name.get(key)
        index = self.by_inn if field == "inn" else self.by_substance
        matches = index.get(key)
        return matches[0] if matches else None

    # -------------------------------------------------------------------------
    def build_record(self, medicine: AuthorizedMedicine, term: str) -> AuthorizationRecord:
        term_key = normalize(term)
        shortages: list[SupplyShortage] = []
        if medicine.inn:
            shortages = self.shortages_by_inn.get(normalize(medicine.inn), [])
        if not shortages and term_key:
            shortages = self.shortages_by_inn.get(term_key, [])

        communications: list[SafetyCommunication] = []
        if medicine.atc_code:
            communications = self.communications_by_atc.get(medicine.atc_code, [])
        if not communications and medicine.active_substance:
            communications = self.communications_by_substance.get(
                normalize(medicine.active_substance), []
            )
        if not communications and term_key:
            communications = self.communications_by_substance.get(term_key, [])

        recent = sorted(
            communications,
            key=lambda item: parse_dmy(item.dissemination_date),
            reverse=True,
        )
        return AuthorizationRecord(
            medicine=medicine,
            shortages=[item for item in shortages if item.status == "Ongoing"],
            safety_communications=recent[: self.data_settings.max_safety_communications],
        )

    # -------------------------------------------------------------------------
    async def fetch(self, field: str, term: str) -> AuthorizationRecord | None:
        medicine = self.find_medicine(field, term)
        if medicine is None:
            return None
        return self.build_record(medicine, term)

    # -------------------------------------------------------------------------
    async def lookup_by_classification(self, code: str) -> LookupOutcome:
        if not self.settings.enabled or not await self.availability.is_available():
            return UNAVAILABLE
        matches = self.by_atc.get(normalize_code(code))
        if not matches:
            return NOT_FOUND
        return LookupOutcome(LookupStatus.FOUND, self.build_record(matches[0], code))

    # -------------------------------------------------------------------------
    async def probe(self) -> bool:
        return bool(self.medicines)

    # -------------------------------------------------------------------------
    async def ongoing_shortages(self) -> list[SupplyShortage]:
        await self.lifecycle.ensure_ready()
        return [item for item in self.shortages if item.status == "Ongoing"]

    # -------------------------------------------------------------------------
    async def recent_communications(self, limit: int = 10) -> list[SafetyCommunication]:
        await self.lifecycle.ensure_ready()
        ranked = sorted(
            self.communications,
            key=lambda item: parse_dmy(item.dissemination_date),
            reverse=True,
        )
        return ranked[:limit]

    # -------------------------------------------------------------------------
    async def stats(self) -> AuthorizationSourceStats:
        await self.lifecycle.ensure_ready()
        ongoing = sum(1 for item in self.shortages if item.status == "Ongoing")
        return AuthorizationSourceStats(
            total_medicines=len(self.medicines),
            ongoing_shortages=ongoing,
            resolved_shortages=len(self.shortages) - ongoing,
            total_communications=len(self.communications),
            last_updated=self.data_timestamp,
        )


__all__ = ["AuthorizationMatcher", "parse_dmy"]
