from __future__ import annotations

import json
import os
import tempfile
import unittest

from PHARMALINK.server.utils.configurations.server import (
    build_database_settings,
    build_external_source_settings,
    build_formulary_settings,
    build_server_settings,
    build_translation_settings,
    get_server_settings,
)
from PHARMALINK.server.utils.constants import (
    EMA_SOURCES_PATH,
    GENERIC_PLACEHOLDERS,
    OPENFDA_LABEL_URL,
    SOURCES_PATH,
)


class ServerSettingsTests(unittest.TestCase):
    # ------------------------------------------------------------------
    def test_empty_payload_uses_defaults(self) -> None:
        settings = build_server_settings({})
        self.assertEqual(settings.database.backend, "sqlite")
        self.assertEqual(settings.search.default_limit, 50)
        self.assertEqual(settings.search.fuzzy_cutoff, 88.0)
        self.assertEqual(settings.translation.partial_match_ratio, 0.7)
        self.assertEqual(settings.expansion_cache.capacity, 1000)
        self.assertEqual(settings.expansion_cache.quota_eviction_batch, 100)
        self.assertEqual(settings.label_source.base_url, OPENFDA_LABEL_URL)
        self.assertEqual(settings.label_source.requests_per_minute, 240)
        self.assertEqual(settings.label_source.requests_per_hour, 1000)
        self.assertEqual(settings.authorization_source.requests_per_minute, 0)
        self.assertEqual(settings.authorization_data.data_path, EMA_SOURCES_PATH)
        self.assertEqual(settings.authorization_data.max_safety_communications, 10)
        self.assertEqual(settings.clinical.summary_length, 150)

    # ------------------------------------------------------------------
    def test_non_mapping_payload_uses_defaults(self) -> None:
        settings = build_server_settings(["not", "a", "mapping"])
        self.assertEqual(settings.clinical.cache_ttl, 300.0)

    # ------------------------------------------------------------------
    def test_values_are_coerced_and_clamped(self) -> None:
        source = build_external_source_settings(
            {
                "enabled": "no",
                "request_timeout": 30,
                "requests_per_minute": "-5",
                "cache_limit": "many",
            },
            default_url="http://example.test",
            default_per_minute=10,
            default_per_hour=100,
        )
        self.assertFalse(source.enabled)
        self.assertEqual(source.request_timeout, 9.9)
        self.assertEqual(source.requests_per_minute, 0)
        self.assertEqual(source.requests_per_hour, 100)
        self.assertEqual(source.cache_limit, 5000)

    # ------------------------------------------------------------------
    def test_database_backend_is_lowercased(self) -> None:
        settings = build_database_settings({"backend": " Memory ", "max_value_bytes": -1})
        self.assertEqual(settings.backend, "memory")
        self.assertEqual(settings.max_value_bytes, 0)

    # ------------------------------------------------------------------
    def test_formulary_paths_resolve_against_sources(self) -> None:
        settings = build_formulary_settings({"formulary_file": "custom.json"})
        self.assertEqual(settings.formulary_path, os.path.join(SOURCES_PATH, "custom.json"))
        self.assertTrue(settings.translations_path.endswith("ingredient_translations.json"))

        without_translations = build_formulary_settings({"translations_file": None})
        self.assertIsNone(without_translations.translations_path)

    # ------------------------------------------------------------------
    def test_placeholder_vocabulary(self) -> None:
        default = build_translation_settings({})
        self.assertEqual(default.generic_placeholders, tuple(GENERIC_PLACEHOLDERS))

        custom = build_translation_settings(
            {"generic_placeholders": ["Other", "other", " combinations "]}
        )
        self.assertEqual(custom.generic_placeholders, ("other", "combinations"))

    # ------------------------------------------------------------------
    def test_configuration_file_loading(self) -> None:
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, "server_configurations.json")
            with open(path, "w", encoding="utf-8") as handle:
                json.dump({"search": {"default_limit": 7}}, handle)
            self.assertEqual(get_server_settings(path).search.default_limit, 7)

            missing = get_server_settings(os.path.join(directory, "missing.json"))
            self.assertEqual(missing.search.default_limit, 50)

            broken = os.path.join(directory, "broken.json")
            with open(broken, "w", encoding="utf-8") as handle:
                handle.write("{not json")
            with self.assertRaises(RuntimeError):
                get_server_settings(broken)


if __name__ == "__main__":
    unittest.main()
