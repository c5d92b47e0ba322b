"""Class-name equivalence and asset catalog providers."""

import json
import logging

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

console_logger = logging.getLogger(__name__)


class NameEquivalenceProvider(ABC):
    """Resolves semantically interchangeable class names."""

    @abstractmethod
    def is_equivalent(self, name_a: str, name_b: str) -> bool:
        """Whether two class names are interchangeable. Symmetric and reflexive."""

    @abstractmethod
    def get_equivalent_names(self, class_name: str) -> list[str]:
        """Ordered equivalent names, preferred first."""


class DictNameEquivalenceProvider(NameEquivalenceProvider):
    """Equivalence provider backed by a synonym table.

    The table maps a class name to its synonyms, e.g.
    `{"tv": ["television"], "sofa": ["couch"]}`. Lookups are case-insensitive.
    A name is always equivalent to itself and is its own first equivalent name.
    """

    def __init__(self, equivalences: dict[str, list[str]] | None = None):
        self._equivalences: dict[str, list[str]] = {}
        for name, synonyms in (equivalences or {}).items():
            key = name.lower()
            bucket = self._equivalences.setdefault(key, [])
            for synonym in synonyms:
                synonym = synonym.lower()
                if synonym != key and synonym not in bucket:
                    bucket.append(synonym)

    @classmethod
    def from_json_file(cls, path: Path | str) -> "DictNameEquivalenceProvider":
        with open(path) as f:
            data = json.load(f)
        console_logger.info(f"Loaded {len(data)} class name equivalences from {path}")
        return cls(data)

    def get_equivalent_names(self, class_name: str) -> list[str]:
        key = class_name.lower()
        return [key] + list(self._equivalences.get(key, []))

    def is_equivalent(self, name_a: str, name_b: str) -> bool:
        key_a = name_a.lower()
        key_b = name_b.lower()
        if key_a == key_b:
            return True
        return key_b in self._equivalences.get(
            key_a, []
        ) or key_a in self._equivalences.get(key_b, [])


class AssetsProvider(ABC):
    """Resolves a semantic name to candidate prefabs."""

    @abstractmethod
    def try_get_assets(self, name: str) -> list[str] | None:
        """Ordered prefab names for `name`, or None if the name is unknown."""


class DictAssetsProvider(AssetsProvider):
    """Asset catalog backed by a `{name: [prefab, ...]}` table (case-insensitive)."""

    def __init__(self, assets: dict[str, list[str]] | None = None):
        self._assets = {
            name.lower(): list(prefabs) for name, prefabs in (assets or {}).items()
        }

    @classmethod
    def from_json_file(cls, path: Path | str) -> "DictAssetsProvider":
        with open(path) as f:
            data = json.load(f)
        console_logger.info(f"Loaded assets for {len(data)} names from {path}")
        return cls(data)

    def try_get_assets(self, name: str) -> list[str] | None:
        prefabs = self._assets.get(name.lower())
        return list(prefabs) if prefabs else None


@dataclass
class DataProviders:
    """External resolvers consumed by the scene expander."""

    name_equivalence: NameEquivalenceProvider
    assets: AssetsProvider
