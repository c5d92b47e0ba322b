"""Diagnostics collected during one scene expansion call."""

import logging

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from scenesync.expander.tasks import ExpanderTask

console_logger = logging.getLogger(__name__)


class DiagnosticCategory(str, Enum):
    """Issue buckets reported by the scene expander."""

    UNALIGNED_IDS = "unaligned_ids"
    """Pre-existing target ids with no live counterpart."""

    MISSING_DESTINATIONS = "missing_destinations"
    """Relation destinations that are themselves unresolved."""

    MISSING_INTERACTIONS = "missing_interactions"
    """State or holding changes on objects with no live instance."""

    UNPLACED = "unplaced"
    """Objects for which every placement strategy failed."""

    MISSING_PREFABS = "missing_prefabs"
    """Classes with no asset candidates."""

    FATAL_ERROR = "fatal_error"
    """Unrecoverable condition that stopped the expansion."""


class ExpanderError(Exception):
    """Unrecoverable reconciliation failure that stops the current expansion call."""


@dataclass
class SceneExpanderResult:
    """Deduplicated diagnostics plus deferred tasks of one expansion call.

    "Success" means every diagnostic category is empty. The result is frozen
    when returned from the expander and rejects further items.
    """

    _messages: dict[DiagnosticCategory, set[Any]] = field(default_factory=dict)
    tasks: list[ExpanderTask] = field(default_factory=list)
    _frozen: bool = False

    def add_item(self, category: DiagnosticCategory, item: Any) -> None:
        """Record an item under a category. Duplicates are merged.

        Raises:
            RuntimeError: If the result has been frozen.
        """
        if self._frozen:
            raise RuntimeError("Cannot add diagnostics to a frozen expander result")
        bucket = self._messages.setdefault(category, set())
        if item not in bucket:
            console_logger.debug(f"Diagnostic {category.value}: {item}")
        bucket.add(item)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def messages(self) -> dict[DiagnosticCategory, frozenset[Any]]:
        """Non-empty categories and their items."""
        return {
            category: frozenset(items)
            for category, items in self._messages.items()
            if items
        }

    def items(self, category: DiagnosticCategory) -> frozenset[Any]:
        return frozenset(self._messages.get(category, set()))

    @property
    def success(self) -> bool:
        return all(len(items) == 0 for items in self._messages.values())

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly summary with sorted items."""
        return {
            "success": self.success,
            "messages": {
                category.value: sorted(items, key=str)
                for category, items in self.messages.items()
            },
            "tasks": [task.name for task in self.tasks],
        }
