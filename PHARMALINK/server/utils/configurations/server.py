from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from PHARMALINK.server.utils.configurations.base import (
    ensure_mapping,
    load_configuration_data,
    resolve_data_path,
)
from PHARMALINK.server.utils.constants import (
    DATABASE_FILENAME,
    EMA_SOURCES_PATH,
    EXPANSION_CACHE_KEY,
    FORMULARY_FILENAME,
    GENERIC_PLACEHOLDERS,
    MAX_SAFETY_COMMUNICATIONS,
    OPENFDA_LABEL_URL,
    SERVER_CONFIGURATION_FILE,
    SOURCES_PATH,
    TRANSLATIONS_FILENAME,
    WARNING_SUMMARY_LENGTH,
)
from PHARMALINK.server.utils.types import (
    coerce_bool,
    coerce_float,
    coerce_int,
    coerce_str,
    coerce_str_or_none,
    coerce_vocabulary,
)

HOUR_SECONDS = 3_600.0
DAY_SECONDS = 86_400.0


# [SERVER SETTINGS]
###############################################################################
@dataclass(frozen=True)
class FastAPISettings:
    title: str
    description: str
    version: str

# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class DatabaseSettings:
    backend: str
    database_filename: str
    max_value_bytes: int
    connect_timeout: int

# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class FormularySettings:
    formulary_path: str
    translations_path: str | None

# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class SearchSettings:
    default_limit: int
    min_query_length: int
    short_token_scan_limit: int
    fuzzy_cutoff: float
    fuzzy_candidate_limit: int
    details_cache_ttl: float
    details_cache_limit: int

# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class TranslationSettings:
    partial_match_ratio: float
    classification_prefix_length: int
    generic_placeholders: tuple[str, ...]

# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ExpansionCacheSettings:
    storage_key: str
    capacity: int
    quota_eviction_batch: int
    prune_threshold: float
    prune_idle_days: float
    prune_min_usage: int

# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ExternalSourceSettings:
    enabled: bool
    base_url: str
    request_timeout: float
    health_check_interval: float
    health_check_timeout: float
    requests_per_minute: int
    requests_per_hour: int
    availability_ttl: float
    content_ttl: float
    cache_limit: int

# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class AuthorizationDataSettings:
    data_path: str
    max_safety_communications: int

# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ClinicalSettings:
    cache_ttl: float
    cache_limit: int
    summary_length: int

# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ServerSettings:
    fastapi: FastAPISettings
    database: DatabaseSettings
    formulary: FormularySettings
    search: SearchSettings
    translation: TranslationSettings
    expansion_cache: ExpansionCacheSettings
    label_source: ExternalSourceSettings
    authorization_source: ExternalSourceSettings
    authorization_data: AuthorizationDataSettings
    clinical: ClinicalSettings


# [BUILDER FUNCTIONS]
###############################################################################
def build_fastapi_settings(data: dict[str, Any]) -> FastAPISettings:
    payload = ensure_mapping(data)
    return FastAPISettings(
        title=coerce_str(payload.get("title"), "PHARMALINK Drug Resolution Backend"),
        description=coerce_str(payload.get("description"), "FastAPI backend"),
        version=coerce_str(payload.get("version"), "0.1.0"),
    )

# -----------------------------------------------------------------------------
def build_database_settings(data: dict[str, Any]) -> DatabaseSettings:
    payload = ensure_mapping(data)
    backend = coerce_str(payload.get("backend"), "sqlite").lower()
    return DatabaseSettings(
        backend=backend,
        database_filename=coerce_str(payload.get("database_filename"), DATABASE_FILENAME),
        # 0 disables the per-value quota
        max_value_bytes=coerce_int(payload.get("max_value_bytes"), 0, minimum=0),
        connect_timeout=coerce_int(payload.get("connect_timeout"), 10, minimum=1),
    )

# -----------------------------------------------------------------------------
def build_formulary_settings(data: dict[str, Any]) -> FormularySettings:
    payload = ensure_mapping(data)
    formulary_file = coerce_str(payload.get("formulary_file"), FORMULARY_FILENAME)
    translations_file = coerce_str_or_none(payload.get("translations_file"))
    if translations_file is None and "translations_file" not in payload:
        translations_file = TRANSLATIONS_FILENAME
    return FormularySettings(
        formulary_path=resolve_data_path(formulary_file, SOURCES_PATH),
        translations_path=(
            resolve_data_path(translations_file, SOURCES_PATH)
            if translations_file
            else None
        ),
    )

# -----------------------------------------------------------------------------
def build_search_settings(data: dict[str, Any]) -> SearchSettings:
    payload = ensure_mapping(data)
    return SearchSettings(
        default_limit=coerce_int(payload.get("default_limit"), 50, minimum=1),
        min_query_length=coerce_int(payload.get("min_query_length"), 2, minimum=1),
        short_token_scan_limit=coerce_int(
            payload.get("short_token_scan_limit"), 100, minimum=1
        ),
        fuzzy_cutoff=coerce_float(payload.get("fuzzy_cutoff"), 88.0, 0.0, 100.0),
        fuzzy_candidate_limit=coerce_int(
            payload.get("fuzzy_candidate_limit"), 5, minimum=1
        ),
        details_cache_ttl=coerce_float(
            payload.get("details_cache_ttl"), 7 * DAY_SECONDS, minimum=0.0
        ),
        details_cache_limit=coerce_int(
            payload.get("details_cache_limit"), 2_000, minimum=1
        ),
    )

# -----------------------------------------------------------------------------
def build_translation_settings(data: dict[str, Any]) -> TranslationSettings:
    payload = ensure_mapping(data)
    return TranslationSettings(
        partial_match_ratio=coerce_float(
            payload.get("partial_match_ratio"), 0.7, 0.0, 1.0
        ),
        classification_prefix_length=coerce_int(
            payload.get("classification_prefix_length"), 5, minimum=1
        ),
        generic_placeholders=coerce_vocabulary(
            payload.get("generic_placeholders"), GENERIC_PLACEHOLDERS
        ),
    )

# -----------------------------------------------------------------------------
def build_expansion_cache_settings(data: dict[str, Any]) -> ExpansionCacheSettings:
    payload = ensure_mapping(data)
    return ExpansionCacheSettings(
        storage_key=coerce_str(payload.get("storage_key"), EXPANSION_CACHE_KEY),
        capacity=coerce_int(payload.get("capacity"), 1_000, minimum=1),
        quota_eviction_batch=coerce_int(
            payload.get("quota_eviction_batch"), 100, minimum=1
        ),
        prune_threshold=coerce_float(payload.get("prune_threshold"), 0.75, 0.0, 1.0),
        prune_idle_days=coerce_float(payload.get("prune_idle_days"), 30.0, minimum=0.0),
        prune_min_usage=coerce_int(payload.get("prune_min_usage"), 3, minimum=0),
    )

# -----------------------------------------------------------------------------
def build_external_source_settings(
    data: dict[str, Any],
    *,
    default_url: str,
    default_per_minute: int,
    default_per_hour: int,
) -> ExternalSourceSettings:
    payload = ensure_mapping(data)
    return ExternalSourceSettings(
        enabled=coerce_bool(payload.get("enabled"), True),
        base_url=coerce_str(payload.get("base_url"), default_url),
        request_timeout=coerce_float(payload.get("request_timeout"), 8.0, 0.1, 9.9),
        health_check_interval=coerce_float(
            payload.get("health_check_interval"), 60.0, minimum=0.0
        ),
        health_check_timeout=coerce_float(
            payload.get("health_check_timeout"), 5.0, minimum=0.1
        ),
        # 0 disables the corresponding window
        requests_per_minute=coerce_int(
            payload.get("requests_per_minute"), default_per_minute, minimum=0
        ),
        requests_per_hour=coerce_int(
            payload.get("requests_per_hour"), default_per_hour, minimum=0
        ),
        availability_ttl=coerce_float(
            payload.get("availability_ttl"), 6 * HOUR_SECONDS, minimum=0.0
        ),
        content_ttl=coerce_float(payload.get("content_ttl"), 7 * DAY_SECONDS, minimum=0.0),
        cache_limit=coerce_int(payload.get("cache_limit"), 5_000, minimum=1),
    )


# -----------------------------------------------------------------------------
def build_authorization_data_settings(data: dict[str, Any]) -> AuthorizationDataSettings:
    payload = ensure_mapping(data)
    data_dir = coerce_str(payload.get("data_dir"), EMA_SOURCES_PATH)
    return AuthorizationDataSettings(
        data_path=resolve_data_path(data_dir, SOURCES_PATH),
        max_safety_communications=coerce_int(
            payload.get("max_safety_communications"), MAX_SAFETY_COMMUNICATIONS, minimum=1
        ),
    )

# -----------------------------------------------------------------------------
def build_clinical_settings(data: dict[str, Any]) -> ClinicalSettings:
    payload = ensure_mapping(data)
    return ClinicalSettings(
        cache_ttl=coerce_float(payload.get("cache_ttl"), 300.0, minimum=0.0),
        cache_limit=coerce_int(payload.get("cache_limit"), 500, minimum=1),
        summary_length=coerce_int(
            payload.get("summary_length"), WARNING_SUMMARY_LENGTH, minimum=10
        ),
    )

# -----------------------------------------------------------------------------
def build_server_settings(data: dict[str, Any] | Any) -> ServerSettings:
    payload = ensure_mapping(data)
    authorization_payload = ensure_mapping(payload.get("authorization_source"))
    return ServerSettings(
        fastapi=build_fastapi_settings(payload.get("fastapi")),
        database=build_database_settings(payload.get("database")),
        formulary=build_formulary_settings(payload.get("formulary")),
        search=build_search_settings(payload.get("search")),
        translation=build_translation_settings(payload.get("translation")),
        expansion_cache=build_expansion_cache_settings(payload.get("expansion_cache")),
        label_source=build_external_source_settings(
            ensure_mapping(payload.get("label_source")),
            default_url=OPENFDA_LABEL_URL,
            default_per_minute=240,
            default_per_hour=1_000,
        ),
        authorization_source=build_external_source_settings(
            authorization_payload,
            default_url="",
            default_per_minute=0,
            default_per_hour=0,
        ),
        authorization_data=build_authorization_data_settings(authorization_payload),
        clinical=build_clinical_settings(payload.get("clinical")),
    )


# [SERVER CONFIGURATION LOADER]
###############################################################################
def get_server_settings(config_path: str | None = None) -> ServerSettings:
    path = config_path or SERVER_CONFIGURATION_FILE
    payload = load_configuration_data(path)
    return build_server_settings(payload)


server_settings = get_server_settings()
