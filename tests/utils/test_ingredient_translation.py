from __future__ import annotations

import unittest

from PHARMALINK.server.utils.services.text.translation import IngredientTranslator


###############################################################################
def build_translator() -> IngredientTranslator:
    translator = IngredientTranslator()
    translator.load_tables(
        {
            "rozuvasztatin": ["rosuvastatin"],
            "ezetimib és rozuvasztatin": ["ezetimibe and rosuvastatin"],
            "metamizol-nátrium": ["metamizole sodium", "metamizole"],
            "diklofenák": "diclofenac",
            "broken": 12,
        },
        {
            "C10AA07": "rosuvastatin",
            "C09DA04": "irbesartan and diuretics",
            "": "ignored",
        },
    )
    return translator


###############################################################################
class IngredientTranslatorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.translator = build_translator()

    # ------------------------------------------------------------------
    def test_exact_match_ignores_case_and_diacritics(self) -> None:
        self.assertEqual(self.translator.to_international("Rozuvasztatin"), ["rosuvastatin"])
        self.assertEqual(
            self.translator.to_international("METAMIZOL-NATRIUM"),
            ["metamizole sodium", "metamizole"],
        )
        self.assertEqual(self.translator.to_international("diklofenák"), ["diclofenac"])

    # ------------------------------------------------------------------
    def test_single_substance_wins_over_combination(self) -> None:
        candidates = self.translator.to_international("rozuvasztat")
        self.assertEqual(candidates[0], "rosuvastatin")
        self.assertNotIn("ezetimibe and rosuvastatin", candidates)

    # ------------------------------------------------------------------
    def test_key_inside_query_needs_enough_coverage(self) -> None:
        self.assertEqual(
            self.translator.to_international("rozuvasztatin kalc"), ["rosuvastatin"]
        )
        # the key covers too little of a long query
        self.assertEqual(
            self.translator.to_international("rozuvasztatin kalcium tabletta"),
            ["rozuvasztatin kalcium tabletta"],
        )

    # ------------------------------------------------------------------
    def test_combination_used_when_it_is_the_only_match(self) -> None:
        self.assertEqual(
            self.translator.to_international("ezetimib és rozuv"),
            ["ezetimibe and rosuvastatin"],
        )

    # ------------------------------------------------------------------
    def test_unknown_names_fall_back_to_input(self) -> None:
        self.assertEqual(self.translator.to_international("Adalimumab"), ["Adalimumab"])
        self.assertEqual(self.translator.to_international("ismeretlen hatóanyag"), ["ismeretlen hatoanyag"])
        self.assertEqual(self.translator.to_international(""), [])
        self.assertEqual(self.translator.to_international(None), [])

    # ------------------------------------------------------------------
    def test_never_empty_for_non_empty_input(self) -> None:
        for name in ("x", "Zetamycin", "őű", "rozuvasztatin"):
            self.assertTrue(self.translator.to_international(name))

    # ------------------------------------------------------------------
    def test_classification_code_lookup_uses_prefix_fallback(self) -> None:
        self.assertEqual(self.translator.from_classification_code("c10aa07"), "rosuvastatin")
        self.assertEqual(self.translator.from_classification_code("C10AA99"), "rosuvastatin")
        self.assertIsNone(self.translator.from_classification_code("A01"))
        self.assertIsNone(self.translator.from_classification_code(None))

    # ------------------------------------------------------------------
    def test_reverse_and_combined_lookup(self) -> None:
        self.assertEqual(self.translator.to_local("Rosuvastatin"), "rozuvasztatin")
        self.assertTrue(self.translator.has_translation("Diklofenák"))
        self.assertEqual(
            self.translator.smart_lookup("irbesartan", "C09DA04"),
            ["irbesartan", "irbesartan and diuretics"],
        )
        self.assertEqual(
            self.translator.stats(),
            {"total_translations": 4, "total_classification_names": 2},
        )


if __name__ == "__main__":
    unittest.main()
