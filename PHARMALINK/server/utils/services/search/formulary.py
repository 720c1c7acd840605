from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from typing import Any

import pandas as pd

from PHARMALINK.server.utils.constants import DRUG_ROUTES, ROUTE_FORM_HINTS
from PHARMALINK.server.utils.logger import logger
from PHARMALINK.server.utils.services.text.normalization import (
    coerce_text,
    normalize,
    normalize_code,
)
from PHARMALINK.server.utils.types import coerce_bool

FORMULARY_COLUMN_ALIASES = {
    "activeIngredient": "active_ingredient",
    "atcCode": "atc_code",
    "baseName": "base_name",
    "inMarket": "in_market",
    "searchName": "search_name",
    "searchIngredient": "search_ingredient",
    "prescriptionRequired": "prescription_required",
}
FORMULARY_COLUMNS = [
    "id",
    "name",
    "base_name",
    "active_ingredient",
    "atc_code",
    "in_market",
    "search_name",
    "search_ingredient",
    "dosage",
    "form",
    "route",
    "prescription_required",
]


###############################################################################
@dataclass(frozen=True, slots=True)
class FormularyRecord:
    id: str
    name: str
    base_name: str = ""
    active_ingredient: str = ""
    atc_code: str = ""
    in_market: bool = False
    search_name: str = ""
    search_ingredient: str = ""
    dosage: str = ""
    form: str = ""
    route: str = "oral"
    prescription_required: bool = True
    source: str = "formulary"

    # -------------------------------------------------------------------------
    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


###############################################################################
@dataclass(slots=True)
class FormularyDataset:
    meta: dict[str, Any] = field(default_factory=dict)
    records: list[FormularyRecord] = field(default_factory=list)
    translations: dict[str, Any] = field(default_factory=dict)
    classification_names: dict[str, Any] = field(default_factory=dict)

    # -------------------------------------------------------------------------
    @property
    def version(self) -> str:
        return str(self.meta.get("version") or "")


# -----------------------------------------------------------------------------
def infer_route_from_form(form: str | None) -> str | None:
    lowered = (form or "").lower()
    if not lowered:
        return None
    for fragments, route in ROUTE_FORM_HINTS:
        if any(fragment in lowered for fragment in fragments):
            return route
    return None


# -----------------------------------------------------------------------------
def resolve_route(route: Any, form: str | None, name: str | None = None) -> str:
    candidate = (coerce_text(route) or "").lower()
    if candidate in DRUG_ROUTES:
        return candidate
    return infer_route_from_form(form) or infer_route_from_form(name) or "oral"


# -----------------------------------------------------------------------------
def build_record(row: dict[str, Any], source: str = "formulary") -> FormularyRecord | None:
    identifier = coerce_text(row.get("id"))
    name = coerce_text(row.get("name"))
    if not identifier or not name:
        return None
    ingredient = coerce_text(row.get("active_ingredient")) or ""
    form = coerce_text(row.get("form")) or ""
    return FormularyRecord(
        id=identifier,
        name=name,
        base_name=coerce_text(row.get("base_name")) or "",
        active_ingredient=ingredient,
        atc_code=normalize_code(coerce_text(row.get("atc_code"))),
        in_market=coerce_bool(row.get("in_market"), False),
        search_name=normalize(coerce_text(row.get("search_name")) or name),
        search_ingredient=normalize(coerce_text(row.get("search_ingredient")) or ingredient),
        dosage=coerce_text(row.get("dosage")) or "",
        form=form,
        route=resolve_route(row.get("route"), form, name),
        prescription_required=coerce_bool(row.get("prescription_required"), True),
        source=source,
    )


# -----------------------------------------------------------------------------
def build_records(drugs: list[dict[str, Any]]) -> list[FormularyRecord]:
    if not drugs:
        return []
    frame = pd.DataFrame(drugs).rename(columns=FORMULARY_COLUMN_ALIASES)
    frame = frame.loc[:, ~frame.columns.duplicated()]
    for column in FORMULARY_COLUMNS:
        if column not in frame.columns:
            frame[column] = None
    frame = frame[FORMULARY_COLUMNS].astype(object)
    # missing cells become None so boolean coercion falls back to defaults
    frame = frame.where(frame.notna(), None)

    records: list[FormularyRecord] = []
    seen: set[str] = set()
    duplicates = 0
    for row in frame.to_dict(orient="records"):
        record = build_record(row)
        if record is None:
            continue
        if record.id in seen:
            duplicates += 1
            continue
        seen.add(record.id)
        records.append(record)
    if duplicates:
        logger.warning("Skipped %d formulary rows with duplicate identifiers", duplicates)
    return records


# -----------------------------------------------------------------------------
def read_json_document(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


# -----------------------------------------------------------------------------
def load_formulary_dataset(
    formulary_path: str, translations_path: str | None = None
) -> FormularyDataset:
    """Read the formulary document and its lookup tables.

    A missing formulary yields an empty dataset; a missing or unreadable
    translations file leaves only the tables embedded in the
    formulary document. A malformed formulary document raises.

    """
    dataset = FormularyDataset()
    if not os.path.exists(formulary_path):
        logger.warning("Formulary file not found at %s", formulary_path)
    else:
        payload = read_json_document(formulary_path)
        if isinstance(payload, list):
            payload = {"drugs": payload}
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected formulary document layout in {formulary_path}")
        meta = payload.get("meta")
        dataset.meta = meta if isinstance(meta, dict) else {}
        drugs = payload.get("drugs")
        dataset.records = build_records(drugs if isinstance(drugs, list) else [])
        merge_lookup_tables(dataset, payload)

    if translations_path and os.path.exists(translations_path):
        try:
            tables = read_json_document(translations_path)
        except (OSError, ValueError) as exc:
            logger.warning(
                "Ignoring unreadable translations file %s: %s", translations_path, exc
            )
            tables = None
        if isinstance(tables, dict):
            merge_lookup_tables(dataset, tables)

    logger.info(
        "Loaded %d formulary records (version %s)",
        len(dataset.records),
        dataset.version or "unknown",
    )
    return dataset


# -----------------------------------------------------------------------------
def merge_lookup_tables(dataset: FormularyDataset, payload: dict[str, Any]) -> None:
    translations = payload.get("translations")
    if isinstance(translations, dict):
        dataset.translations.update(translations)
    classification = payload.get("atcToEnglish") or payload.get("classification_names")
    if isinstance(classification, dict):
        dataset.classification_names.update(classification)


__all__ = [
    "FormularyDataset",
    "FormularyRecord",
    "build_record",
    "build_records",
    "infer_route_from_form",
    "load_formulary_dataset",
]
