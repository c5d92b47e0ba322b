"""Node alignment between a target graph and a live scene graph.

Two strategies are available:

- **sequence** (default): Needleman-Wunsch global alignment over the node
  insertion order of both graphs. Matching nodes of equivalent classes scores 0,
  matching nodes of different classes scores `similarity_penalty`, skipping a
  node in either sequence scores `gap_penalty`. Every diagonal move on the
  optimal backtrack path yields one correspondence. The result depends on node
  order, so both graphs must keep a comparable, stable order.
- **matching**: order-independent maximum-weight bipartite matching over the
  same similarity scores (scipy's Hungarian solver). Only pairs of equivalent
  classes are kept.

Exact alignment bypasses scoring entirely and pairs nodes with equal ids.
"""

import logging

from collections.abc import Iterator
from typing import TYPE_CHECKING

import numpy as np

from scipy.optimize import linear_sum_assignment

from scenesync.graph.environment_graph import EnvironmentGraph, EnvironmentObject

if TYPE_CHECKING:
    from scenesync.expander.providers import NameEquivalenceProvider

console_logger = logging.getLogger(__name__)

ALIGNMENT_METHODS = ("sequence", "matching")


class Alignment:
    """Correspondence from target node id to live scene node.

    Entries can be added but never removed: once a target id is resolved it
    stays resolved for the rest of the reconciliation call.
    """

    def __init__(self, mapping: dict[int, EnvironmentObject] | None = None):
        self._mapping: dict[int, EnvironmentObject] = dict(mapping or {})

    def __contains__(self, target_id: object) -> bool:
        return target_id in self._mapping

    def __getitem__(self, target_id: int) -> EnvironmentObject:
        return self._mapping[target_id]

    def __len__(self) -> int:
        return len(self._mapping)

    def __iter__(self) -> Iterator[int]:
        return iter(self._mapping)

    def get(self, target_id: int) -> EnvironmentObject | None:
        return self._mapping.get(target_id)

    def items(self):
        return self._mapping.items()

    def values(self):
        return self._mapping.values()

    def register(self, target_id: int, live_node: EnvironmentObject) -> None:
        """Record a newly resolved correspondence."""
        self._mapping[target_id] = live_node

    def aligned_live_ids(self) -> set[int]:
        """Ids of live nodes reachable through the alignment."""
        return {node.id for node in self._mapping.values()}

    def as_id_dict(self) -> dict[int, int]:
        """Target id -> live id view, convenient for logging and tests."""
        return {target_id: node.id for target_id, node in self._mapping.items()}


class GraphObjectAlignment:
    """Computes an `Alignment` between two environment graphs."""

    def __init__(
        self,
        name_equivalence: "NameEquivalenceProvider",
        gap_penalty: float = -1.0,
        similarity_penalty: float = -1000.0,
        method: str = "sequence",
    ):
        if method not in ALIGNMENT_METHODS:
            raise ValueError(
                f"Unknown alignment method {method!r}, expected one of "
                f"{ALIGNMENT_METHODS}"
            )
        self.name_equivalence = name_equivalence
        self.gap_penalty = gap_penalty
        self.similarity_penalty = similarity_penalty
        self.method = method

    def align(
        self,
        graph_a: EnvironmentGraph,
        graph_b: EnvironmentGraph,
        exact_alignment: bool,
    ) -> Alignment:
        """Align the nodes of `graph_a` (target) to the nodes of `graph_b` (live).

        Args:
            graph_a: Target graph.
            graph_b: Live scene graph.
            exact_alignment: If True, pair nodes with equal ids and skip scoring.

        Returns:
            Alignment from target id to live node.
        """
        if exact_alignment:
            nodes_b = {node.id: node for node in graph_b.nodes}
            return Alignment(
                {
                    node_a.id: nodes_b[node_a.id]
                    for node_a in graph_a.nodes
                    if node_a.id in nodes_b
                }
            )

        if self.method == "matching":
            return self.align_by_matching(graph_a.nodes, graph_b.nodes)

        score_matrix = self.compute_score_matrix(graph_a.nodes, graph_b.nodes)
        alignment, _ = self.backtrack(score_matrix, graph_a.nodes, graph_b.nodes)
        return alignment

    def node_similarity(self, obj_a: EnvironmentObject, obj_b: EnvironmentObject) -> float:
        if self.name_equivalence.is_equivalent(obj_b.class_name, obj_a.class_name):
            return 0.0
        return self.similarity_penalty

    def compute_score_matrix(
        self, nodes_a: list[EnvironmentObject], nodes_b: list[EnvironmentObject]
    ) -> np.ndarray:
        """Fill the `(|A|+1) x (|B|+1)` global alignment score table."""
        rows = len(nodes_a) + 1
        cols = len(nodes_b) + 1
        score = np.zeros((rows, cols), dtype=float)
        score[:, 0] = self.gap_penalty * np.arange(rows)
        score[0, :] = self.gap_penalty * np.arange(cols)

        for i in range(1, rows):
            for j in range(1, cols):
                match = score[i - 1, j - 1] + self.node_similarity(
                    nodes_a[i - 1], nodes_b[j - 1]
                )
                delete = score[i - 1, j] + self.gap_penalty
                insert = score[i, j - 1] + self.gap_penalty
                score[i, j] = max(match, delete, insert)
        return score

    def backtrack(
        self,
        score: np.ndarray,
        nodes_a: list[EnvironmentObject],
        nodes_b: list[EnvironmentObject],
    ) -> tuple[Alignment, float]:
        """Walk the score table from the bottom-right corner to the origin.

        Prefers the diagonal move, then consuming from A, then from B.

        Returns:
            The alignment and the summed score of the walked path, which equals
            `score[|A|, |B|]`.
        """
        mapping: dict[int, EnvironmentObject] = {}
        path_score = 0.0
        i = len(nodes_a)
        j = len(nodes_b)

        while i > 0 or j > 0:
            if i > 0 and j > 0:
                similarity = self.node_similarity(nodes_a[i - 1], nodes_b[j - 1])
                if np.isclose(score[i, j], score[i - 1, j - 1] + similarity):
                    mapping[nodes_a[i - 1].id] = nodes_b[j - 1]
                    path_score += similarity
                    i -= 1
                    j -= 1
                    continue
            if i > 0 and np.isclose(score[i, j], score[i - 1, j] + self.gap_penalty):
                i -= 1
            else:
                j -= 1
            path_score += self.gap_penalty

        return Alignment(mapping), path_score

    def align_by_matching(
        self, nodes_a: list[EnvironmentObject], nodes_b: list[EnvironmentObject]
    ) -> Alignment:
        """Order-independent alignment by maximum-weight bipartite matching."""
        if not nodes_a or not nodes_b:
            return Alignment()

        similarity = np.array(
            [[self.node_similarity(a, b) for b in nodes_b] for a in nodes_a]
        )
        rows, cols = linear_sum_assignment(similarity, maximize=True)

        mapping = {
            nodes_a[row].id: nodes_b[col]
            for row, col in zip(rows, cols)
            if similarity[row, col] == 0.0
        }
        console_logger.debug(f"Matching aligned {len(mapping)}/{len(nodes_a)} nodes")
        return Alignment(mapping)
