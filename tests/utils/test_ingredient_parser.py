from __future__ import annotations

import unittest

from PHARMALINK.server.utils.services.text.ingredients import IngredientParser


class IngredientParserTests(unittest.TestCase):
    def setUp(self) -> None:
        self.parser = IngredientParser()

    # ------------------------------------------------------------------
    def test_single_ingredient_is_returned_trimmed(self) -> None:
        parsed = self.parser.parse("  atorvasztatin  ")
        self.assertEqual(parsed.ingredients, ("atorvasztatin",))
        self.assertFalse(parsed.is_multi_ingredient)
        self.assertFalse(parsed.is_generic_placeholder)

    # ------------------------------------------------------------------
    def test_simple_conjunction_splits_in_two(self) -> None:
        parsed = self.parser.parse("lamivudine and abacavir")
        self.assertEqual(parsed.ingredients, ("lamivudine", "abacavir"))
        self.assertTrue(parsed.is_multi_ingredient)

    # ------------------------------------------------------------------
    def test_oxford_conjunction_keeps_order(self) -> None:
        parsed = self.parser.parse("emtricitabine, tenofovir alafenamide and bictegravir")
        self.assertEqual(
            parsed.ingredients,
            ("emtricitabine", "tenofovir alafenamide", "bictegravir"),
        )

    # ------------------------------------------------------------------
    def test_local_conjunction_is_recognised(self) -> None:
        parsed = self.parser.parse("ezetimib és rozuvasztatin")
        self.assertEqual(parsed.ingredients, ("ezetimib", "rozuvasztatin"))

    # ------------------------------------------------------------------
    def test_comma_list_of_substances(self) -> None:
        parsed = self.parser.parse("paracetamol, koffein, kodein")
        self.assertEqual(parsed.ingredients, ("paracetamol", "koffein", "kodein"))

    # ------------------------------------------------------------------
    def test_comma_followed_by_strength_is_not_split(self) -> None:
        parsed = self.parser.parse("nátrium-klorid, 9 mg")
        self.assertEqual(len(parsed.ingredients), 1)
        self.assertFalse(parsed.is_multi_ingredient)

    # ------------------------------------------------------------------
    def test_empty_field_has_no_components(self) -> None:
        for value in ("", "   ", None):
            parsed = self.parser.parse(value)
            self.assertEqual(parsed.ingredients, ())
            self.assertFalse(parsed.is_multi_ingredient)
            self.assertFalse(parsed.is_generic_placeholder)

    # ------------------------------------------------------------------
    def test_generic_placeholder_is_kept_and_flagged(self) -> None:
        parsed = self.parser.parse("irbesartan and diuretics")
        self.assertEqual(parsed.ingredients, ("irbesartan", "diuretics"))
        self.assertTrue(parsed.is_generic_placeholder)
        self.assertTrue(self.parser.needs_classification_fallback(parsed))
        self.assertTrue(self.parser.is_generic_placeholder("diuretics"))
        self.assertFalse(self.parser.is_generic_placeholder("irbesartan"))

    # ------------------------------------------------------------------
    def test_placeholder_matches_whole_words_only(self) -> None:
        self.assertFalse(self.parser.is_generic_placeholder("brother"))
        self.assertTrue(self.parser.is_generic_placeholder("levodopa decarboxylase inhibitor"))
        self.assertTrue(self.parser.is_generic_placeholder("conjugated estrogens"))
        self.assertTrue(self.parser.is_generic_placeholder("progestogens"))
        self.assertFalse(self.parser.is_generic_placeholder("estrogenic"))

    # ------------------------------------------------------------------
    def test_empty_field_needs_classification_fallback(self) -> None:
        self.assertTrue(self.parser.needs_classification_fallback(self.parser.parse("")))
        self.assertFalse(
            self.parser.needs_classification_fallback(self.parser.parse("adalimumab"))
        )

    # ------------------------------------------------------------------
    def test_custom_placeholder_vocabulary(self) -> None:
        parser = IngredientParser(placeholders=("misc",))
        self.assertTrue(parser.parse("x and misc").is_generic_placeholder)
        self.assertFalse(parser.parse("irbesartan and diuretics").is_generic_placeholder)
        self.assertEqual(parser.get_generic_placeholders(), ["misc"])


if __name__ == "__main__":
    unittest.main()
