from __future__ import annotations

from PHARMALINK.server.utils.configurations.base import (
    ensure_mapping,
    load_configuration_data,
)

from PHARMALINK.server.utils.configurations.server import (
    AuthorizationDataSettings,
    ClinicalSettings,
    DatabaseSettings,
    ExpansionCacheSettings,
    ExternalSourceSettings,
    FastAPISettings,
    FormularySettings,
    SearchSettings,
    ServerSettings,
    TranslationSettings,
    build_server_settings,
    get_server_settings,
    server_settings,
)

__all__ = [
    "ensure_mapping",
    "load_configuration_data",
    "AuthorizationDataSettings",
    "ClinicalSettings",
    "DatabaseSettings",
    "ExpansionCacheSettings",
    "ExternalSourceSettings",
    "FastAPISettings",
    "FormularySettings",
    "SearchSettings",
    "ServerSettings",
    "TranslationSettings",
    "build_server_settings",
    "get_server_settings",
    "server_settings",
]
