"""Unit tests for name equivalence and asset providers."""

import json
import shutil
import tempfile
import unittest

from pathlib import Path

from scenesync.expander.providers import DictAssetsProvider, DictNameEquivalenceProvider


class TestDictNameEquivalenceProvider(unittest.TestCase):
    """Tests for DictNameEquivalenceProvider."""

    def setUp(self):
        self.provider = DictNameEquivalenceProvider(
            {"TV": ["television", "tv"], "sofa": ["couch"]}
        )

    def test_reflexive(self):
        self.assertTrue(self.provider.is_equivalent("lamp", "lamp"))

    def test_symmetric_and_case_insensitive(self):
        self.assertTrue(self.provider.is_equivalent("tv", "Television"))
        self.assertTrue(self.provider.is_equivalent("COUCH", "sofa"))
        self.assertFalse(self.provider.is_equivalent("sofa", "television"))

    def test_queried_name_comes_first(self):
        self.assertEqual(self.provider.get_equivalent_names("Tv"), ["tv", "television"])
        self.assertEqual(self.provider.get_equivalent_names("lamp"), ["lamp"])

    def test_from_json_file(self):
        temp_dir = Path(tempfile.mkdtemp())
        try:
            path = temp_dir / "equivalences.json"
            path.write_text(json.dumps({"fridge": ["refrigerator"]}))
            provider = DictNameEquivalenceProvider.from_json_file(path)
            self.assertTrue(provider.is_equivalent("refrigerator", "fridge"))
        finally:
            shutil.rmtree(temp_dir)


class TestDictAssetsProvider(unittest.TestCase):
    """Tests for DictAssetsProvider."""

    def test_lookup_is_case_insensitive(self):
        provider = DictAssetsProvider({"Cup": ["cup_a", "cup_b"]})
        self.assertEqual(provider.try_get_assets("CUP"), ["cup_a", "cup_b"])

    def test_unknown_or_empty_names(self):
        provider = DictAssetsProvider({"plate": []})
        self.assertIsNone(provider.try_get_assets("plate"))
        self.assertIsNone(provider.try_get_assets("fork"))

    def test_returned_list_is_a_copy(self):
        provider = DictAssetsProvider({"cup": ["cup_a"]})
        provider.try_get_assets("cup").append("cup_b")
        self.assertEqual(provider.try_get_assets("cup"), ["cup_a"])


if __name__ == "__main__":
    unittest.main()
