"""Adjacency indices built on demand from an environment graph."""

import logging

from dataclasses import dataclass, field

from scenesync.graph.environment_graph import (
    EnvironmentGraph,
    EnvironmentObject,
    ObjectRelation,
)

console_logger = logging.getLogger(__name__)


@dataclass
class GraphIndex:
    """Id lookup plus `(from_id, relation) -> [to_node]` adjacency.

    Destination lists keep the graph's edge order.
    """

    id_to_object: dict[int, EnvironmentObject] = field(default_factory=dict)
    edge_map: dict[tuple[int, ObjectRelation], list[EnvironmentObject]] = field(
        default_factory=dict
    )

    @classmethod
    def from_graph(cls, graph: EnvironmentGraph) -> "GraphIndex":
        """Build the index.

        Raises:
            ValueError: If an edge references a node that is not in the graph.
        """
        id_to_object = {node.id: node for node in graph.nodes}
        edge_map: dict[tuple[int, ObjectRelation], list[EnvironmentObject]] = {}

        for edge in graph.edges:
            if edge.from_id not in id_to_object or edge.to_id not in id_to_object:
                raise ValueError(
                    f"Edge {edge.from_id} -{edge.relation.value}-> {edge.to_id} "
                    "references an unknown node"
                )
            edge_map.setdefault((edge.from_id, edge.relation), []).append(
                id_to_object[edge.to_id]
            )

        return cls(id_to_object=id_to_object, edge_map=edge_map)

    def objects_in_relation(
        self, obj: EnvironmentObject | None, relation: ObjectRelation
    ) -> list[EnvironmentObject]:
        """Destinations of `obj` under `relation`, as a fresh list."""
        if obj is None:
            return []
        return list(self.edge_map.get((obj.id, relation), []))

    def has_relation(self, obj: EnvironmentObject, relation: ObjectRelation) -> bool:
        return (obj.id, relation) in self.edge_map


def create_room_objects_map(
    graph: EnvironmentGraph, index: GraphIndex
) -> dict[int, list[EnvironmentObject]]:
    """Map each room id to the nodes related to it by INSIDE."""
    result: dict[int, list[EnvironmentObject]] = {
        node.id: [] for node in graph.nodes if node.is_room
    }
    for edge in graph.edges:
        if edge.relation == ObjectRelation.INSIDE and edge.to_id in result:
            result[edge.to_id].append(index.id_to_object[edge.from_id])
    return result
