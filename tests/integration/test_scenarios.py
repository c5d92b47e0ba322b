"""
End-to-end scene expansion scenarios on the in-memory world.

Scenes and target graphs are written as JSON-style dicts, the way a graph
generator and a world exporter would hand them over.
"""

import unittest

import numpy as np

from scenesync.expander.config import create_scene_expander_config
from scenesync.expander.providers import (
    DataProviders,
    DictAssetsProvider,
    DictNameEquivalenceProvider,
)
from scenesync.expander.result import DiagnosticCategory
from scenesync.expander.scene_expander import SceneExpander
from scenesync.expander.tasks import run_tasks
from scenesync.graph.environment_graph import EnvironmentGraph, ObjectState
from scenesync.world.memory_world import InMemoryWorld

PREFABS = {
    "table_prefab": {"size": [1.2, 0.8, 0.75]},
    "cup_prefab": {"size": [0.1, 0.1, 0.1]},
    "computer_prefab": {"size": [0.2, 0.4, 0.4]},
    "screen_prefab": {"size": [0.1, 0.5, 0.4]},
    "door_prefab": {"size": [1.0, 0.1, 2.0], "capabilities": {"is_door": True}},
    "fridge_prefab": {"size": [0.8, 0.7, 1.8], "capabilities": {"switches": ["open"]}},
    "tv_prefab": {"size": [1.0, 0.1, 0.6], "capabilities": {"switches": ["power"]}},
    "lamp_prefab": {"size": [0.2, 0.2, 0.4], "capabilities": {"switches": ["power"]}},
    "character_prefab": {
        "size": [0.4, 0.4, 1.8],
        "capabilities": {"is_character": True},
    },
}

ASSETS = {
    "table": ["table_prefab"],
    "cup": ["cup_prefab"],
    "computer": ["computer_prefab"],
    "cpuscreen": ["screen_prefab"],
    "lamp": ["lamp_prefab"],
}

KITCHEN = {
    "id": 1,
    "class_name": "kitchen",
    "bounds": {"center": [0.0, 0.0, 1.5], "size": [10.0, 10.0, 3.0]},
}


def _node(node_id, class_name, category="", properties=(), states=()):
    return {
        "id": node_id,
        "class_name": class_name,
        "category": category,
        "properties": list(properties),
        "states": list(states),
    }


def _edge(from_id, relation, to_id):
    return {"from_id": from_id, "relation_type": relation, "to_id": to_id}


def _expander(world, **overrides) -> SceneExpander:
    data_providers = DataProviders(
        name_equivalence=DictNameEquivalenceProvider({"tv": ["television"]}),
        assets=DictAssetsProvider(ASSETS),
    )
    return SceneExpander(
        data_providers, world, create_scene_expander_config(**overrides)
    )


class TestEmptyScene(unittest.TestCase):
    """A target with pre-existing ids cannot be built from an empty scene."""

    def test_diagnostics(self):
        world = InMemoryWorld.from_scene_dict({"prefabs": PREFABS})
        graph = EnvironmentGraph.from_dict(
            {
                "nodes": [
                    _node(1, "kitchen", category="Rooms"),
                    _node(2, "table", properties=["SURFACES"]),
                    _node(3, "computer"),
                ],
                "edges": [_edge(2, "INSIDE", 1), _edge(3, "ON", 2)],
            }
        )

        result = _expander(world).expand_scene(graph, world.export_graph())

        self.assertFalse(result.success)
        self.assertEqual(result.items(DiagnosticCategory.UNALIGNED_IDS), {1, 2, 3})
        self.assertEqual(
            result.items(DiagnosticCategory.MISSING_DESTINATIONS), {"table.2"}
        )
        self.assertEqual(
            result.items(DiagnosticCategory.UNPLACED),
            {"kitchen.1", "table.2", "computer.3"},
        )
        self.assertEqual(result.items(DiagnosticCategory.FATAL_ERROR), frozenset())
        self.assertEqual(world.export_graph().nodes, [])


class TestCloseDoor(unittest.TestCase):
    def test_single_transition(self):
        world = InMemoryWorld.from_scene_dict(
            {
                "prefabs": PREFABS,
                "rooms": [KITCHEN],
                "objects": [
                    {
                        "id": 2,
                        "class_name": "door",
                        "prefab_name": "door_prefab",
                        "position": [4.0, -4.0, 1.0],
                        "states": ["OPEN"],
                    }
                ],
            }
        )
        graph = EnvironmentGraph.from_dict(
            {
                "nodes": [
                    _node(1, "kitchen", category="Rooms"),
                    _node(2, "door", states=["CLOSED"]),
                ],
                "edges": [_edge(2, "INSIDE", 1)],
            }
        )

        result = _expander(world).expand_scene(graph, world.export_graph())

        self.assertTrue(result.success, result.to_dict())
        self.assertEqual(len(world.door_log), 1)
        door = world.handle_for(2)
        self.assertEqual(world.get_states(door), {ObjectState.CLOSED})


class TestRepeatedExpansion(unittest.TestCase):
    """A second call against the reconciled scene changes nothing."""

    def setUp(self):
        self.world = InMemoryWorld.from_scene_dict(
            {
                "prefabs": PREFABS,
                "rooms": [KITCHEN],
                "objects": [
                    {
                        "id": 2,
                        "class_name": "table",
                        "prefab_name": "table_prefab",
                        "position": [0.0, 0.0, 0.375],
                        "properties": ["SURFACES"],
                    },
                    {
                        "id": 3,
                        "class_name": "cup",
                        "prefab_name": "cup_prefab",
                        "position": [0.05, 0.05, 0.8],
                    },
                    {
                        "id": 4,
                        "class_name": "table",
                        "prefab_name": "table_prefab",
                        "position": [3.0, 0.0, 0.375],
                        "properties": ["SURFACES"],
                    },
                    {
                        "id": 5,
                        "class_name": "fridge",
                        "prefab_name": "fridge_prefab",
                        "position": [3.0, 3.0, 0.9],
                    },
                    {
                        "id": 6,
                        "class_name": "television",
                        "prefab_name": "tv_prefab",
                        "position": [-3.0, -3.0, 0.3],
                    },
                    {
                        "id": 8,
                        "class_name": "door",
                        "prefab_name": "door_prefab",
                        "position": [4.0, -4.0, 1.0],
                    },
                    {
                        "id": 10,
                        "class_name": "character",
                        "prefab_name": "character_prefab",
                        "position": [-4.0, 1.0, 0.9],
                    },
                ],
            }
        )

    def _target(self) -> EnvironmentGraph:
        return EnvironmentGraph.from_dict(
            {
                "nodes": [
                    _node(1, "kitchen", category="Rooms"),
                    _node(2, "table", properties=["SURFACES"]),
                    _node(3, "cup"),
                    _node(4, "table", properties=["SURFACES"]),
                    _node(5, "fridge", states=["OPEN"]),
                    _node(6, "tv", states=["ON"]),
                    _node(8, "door", states=["CLOSED"]),
                    _node(10, "character"),
                    _node(1001, "cup"),
                    _node(1002, "lamp", states=["OFF"]),
                ],
                "edges": [
                    _edge(2, "INSIDE", 1),
                    _edge(3, "ON", 4),
                    _edge(3, "INSIDE", 1),
                    _edge(4, "INSIDE", 1),
                    _edge(5, "INSIDE", 1),
                    _edge(6, "INSIDE", 1),
                    _edge(8, "INSIDE", 1),
                    _edge(10, "INSIDE", 1),
                    _edge(1001, "ON", 2),
                    _edge(1002, "ON", 4),
                ],
            }
        )

    def _poses(self) -> dict[int, np.ndarray]:
        return {
            node.id: self.world.get_pose(node.handle).translation()
            for node in self.world.export_graph().nodes
        }

    def test_second_run_is_a_no_op(self):
        expander = _expander(self.world, exact_alignment=True)

        first = expander.expand_scene(self._target(), self.world.export_graph())
        self.assertTrue(first.success, first.to_dict())
        run_tasks(first.tasks, on_tick=self.world.step)

        graph = self.world.export_graph()
        self.assertEqual(
            graph.node_ids(), [1, 2, 3, 4, 5, 6, 8, 10, 1001, 1002]
        )
        self.assertEqual(len(self.world.door_log), 1)
        self.assertEqual(len(self.world.switch_log), 3)
        poses = self._poses()

        second = expander.expand_scene(self._target(), self.world.export_graph())

        self.assertTrue(second.success, second.to_dict())
        self.assertEqual(second.tasks, [])
        self.assertEqual(self.world.export_graph().node_ids(), graph.node_ids())
        self.assertEqual(len(self.world.door_log), 1)
        self.assertEqual(len(self.world.switch_log), 3)
        for node_id, position in self._poses().items():
            np.testing.assert_allclose(position, poses[node_id])

    def test_states_after_expansion(self):
        result = _expander(self.world, exact_alignment=True).expand_scene(
            self._target(), self.world.export_graph()
        )
        self.assertTrue(result.success, result.to_dict())

        states = {
            node.id: node.states for node in self.world.export_graph().nodes
        }
        self.assertEqual(states[5], {ObjectState.OPEN})
        self.assertEqual(states[6], {ObjectState.ON})
        self.assertEqual(states[8], {ObjectState.CLOSED})
        self.assertEqual(states[1002], {ObjectState.OFF})


if __name__ == "__main__":
    unittest.main()
