"""Integration test for the file-driven expansion run."""

import json
import shutil
import tempfile
import unittest

from pathlib import Path

from omegaconf import OmegaConf

from scenesync.expander.config import create_scene_expander_config
from scenesync.runner import run_scene_expansion

SCENE = {
    "prefabs": {
        "chair_prefab": {"size": [0.5, 0.5, 0.5]},
        "character_prefab": {
            "size": [0.4, 0.4, 1.8],
            "capabilities": {"is_character": True},
        },
    },
    "rooms": [
        {
            "id": 1,
            "class_name": "livingroom",
            "bounds": {"center": [0.0, 0.0, 1.5], "size": [10.0, 10.0, 3.0]},
        }
    ],
    "objects": [
        {
            "id": 4,
            "class_name": "chair",
            "prefab_name": "chair_prefab",
            "position": [2.0, 0.0, 0.25],
            "category": "Furniture",
            "properties": ["SITTABLE"],
        },
        {
            "id": 10,
            "class_name": "character",
            "prefab_name": "character_prefab",
            "position": [3.5, 0.0, 0.9],
        },
    ],
}

SIT_ON_CHAIR = {
    "nodes": [
        {"id": 1, "class_name": "livingroom", "category": "Rooms"},
        {"id": 4, "class_name": "chair", "properties": ["SITTABLE"]},
        {"id": 10, "class_name": "character", "states": ["SITTING"]},
    ],
    "edges": [
        {"from_id": 4, "relation_type": "INSIDE", "to_id": 1},
        {"from_id": 10, "relation_type": "INSIDE", "to_id": 1},
        {"from_id": 10, "relation_type": "ON", "to_id": 4},
    ],
}


class TestRunSceneExpansion(unittest.TestCase):
    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        for name, data in (
            ("scene.json", SCENE),
            ("graph.json", SIT_ON_CHAIR),
            ("assets.json", {"chair": ["chair_prefab"]}),
        ):
            with open(self.test_dir / name, "w") as f:
                json.dump(data, f)

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def _cfg(self, **overrides):
        cfg = OmegaConf.merge(
            create_scene_expander_config(exact_alignment=True),
            {
                "target_graph_path": str(self.test_dir / "graph.json"),
                "scene_path": str(self.test_dir / "scene.json"),
                "assets_path": str(self.test_dir / "assets.json"),
                "equivalences_path": None,
                "assets_map_path": None,
                "max_ticks": 100,
                "output_dir": str(self.test_dir / "output"),
            },
        )
        return OmegaConf.merge(cfg, overrides)

    def test_sit_on_chair(self):
        summary = run_scene_expansion(self._cfg())

        self.assertTrue(summary["success"])
        self.assertEqual(len(summary["tasks"]), 1)
        self.assertTrue(summary["tasks"][0].startswith("sit:"))
        self.assertGreater(summary["ticks"], 0)

        with open(self.test_dir / "output" / "result.json") as f:
            self.assertEqual(json.load(f), summary)
        with open(self.test_dir / "output" / "scene_graph.json") as f:
            scene_graph = json.load(f)
        character = next(n for n in scene_graph["nodes"] if n["id"] == 10)
        self.assertEqual(character["states"], ["SITTING"])

    def test_diagnostics_are_saved(self):
        with open(self.test_dir / "graph.json", "w") as f:
            json.dump(
                {
                    "nodes": SIT_ON_CHAIR["nodes"] + [{"id": 1001, "class_name": "sofa"}],
                    "edges": SIT_ON_CHAIR["edges"]
                    + [{"from_id": 1001, "relation_type": "ON", "to_id": 4}],
                },
                f,
            )

        summary = run_scene_expansion(self._cfg())

        self.assertFalse(summary["success"])
        self.assertEqual(summary["messages"]["missing_prefabs"], ["sofa"])
        self.assertEqual(summary["messages"]["unplaced"], ["sofa.1001"])

    def test_equivalences_and_assets_map(self):
        with open(self.test_dir / "equivalences.json", "w") as f:
            json.dump({"armchair": ["chair"]}, f)
        with open(self.test_dir / "assets_map.json", "w") as f:
            json.dump({"chair": ["chair_prefab"]}, f)
        with open(self.test_dir / "graph.json", "w") as f:
            json.dump(
                {
                    "nodes": SIT_ON_CHAIR["nodes"]
                    + [{"id": 1001, "class_name": "armchair"}],
                    "edges": SIT_ON_CHAIR["edges"]
                    + [{"from_id": 1001, "relation_type": "ON", "to_id": 4}],
                },
                f,
            )

        summary = run_scene_expansion(
            self._cfg(
                equivalences_path=str(self.test_dir / "equivalences.json"),
                assets_map_path=str(self.test_dir / "assets_map.json"),
            )
        )

        self.assertTrue(summary["success"], summary)
        with open(self.test_dir / "output" / "scene_graph.json") as f:
            scene_graph = json.load(f)
        armchair = next(n for n in scene_graph["nodes"] if n["id"] == 1001)
        self.assertEqual(armchair["class_name"], "armchair")
        self.assertEqual(armchair["prefab_name"], "chair_prefab")

    def test_missing_input_file(self):
        with self.assertRaises(FileNotFoundError):
            run_scene_expansion(
                self._cfg(scene_path=str(self.test_dir / "missing.json"))
            )


if __name__ == "__main__":
    unittest.main()
