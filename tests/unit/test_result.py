"""Unit tests for the scene expander result."""

import unittest

from unittest.mock import Mock

from scenesync.expander.result import (
    DiagnosticCategory,
    ExpanderError,
    SceneExpanderResult,
)
from scenesync.expander.tasks import ExpanderTask


class TestSceneExpanderResult(unittest.TestCase):
    """Tests for SceneExpanderResult."""

    def test_empty_result_is_success(self):
        result = SceneExpanderResult()
        self.assertTrue(result.success)
        self.assertEqual(result.messages, {})

    def test_items_are_deduplicated(self):
        result = SceneExpanderResult()
        result.add_item(DiagnosticCategory.UNPLACED, "cup.3")
        result.add_item(DiagnosticCategory.UNPLACED, "cup.3")
        result.add_item(DiagnosticCategory.UNALIGNED_IDS, 4)

        self.assertFalse(result.success)
        self.assertEqual(result.items(DiagnosticCategory.UNPLACED), frozenset({"cup.3"}))
        self.assertEqual(result.items(DiagnosticCategory.UNALIGNED_IDS), frozenset({4}))
        self.assertEqual(result.items(DiagnosticCategory.MISSING_PREFABS), frozenset())

    def test_frozen_result_rejects_items(self):
        result = SceneExpanderResult()
        result.freeze()
        self.assertTrue(result.frozen)
        with self.assertRaises(RuntimeError):
            result.add_item(DiagnosticCategory.FATAL_ERROR, "boom")

    def test_to_dict(self):
        task = Mock(spec=ExpanderTask)
        task.name = "sit:character#0"
        result = SceneExpanderResult()
        result.add_item(DiagnosticCategory.UNALIGNED_IDS, 12)
        result.add_item(DiagnosticCategory.UNALIGNED_IDS, 3)
        result.tasks.append(task)

        self.assertEqual(
            result.to_dict(),
            {
                "success": False,
                "messages": {"unaligned_ids": [12, 3]},
                "tasks": ["sit:character#0"],
            },
        )

    def test_category_values(self):
        self.assertEqual(
            [category.value for category in DiagnosticCategory],
            [
                "unaligned_ids",
                "missing_destinations",
                "missing_interactions",
                "unplaced",
                "missing_prefabs",
                "fatal_error",
            ],
        )


def test_expander_error_carries_message():
    error = ExpanderError("bounds undefined")
    assert isinstance(error, Exception)
    assert str(error) == "bounds undefined"
