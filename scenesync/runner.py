"""File-driven scene expansion run on the in-memory world."""

import json
import logging

from pathlib import Path
from typing import Any

from omegaconf import DictConfig

from scenesync.expander.providers import (
    DataProviders,
    DictAssetsProvider,
    DictNameEquivalenceProvider,
)
from scenesync.expander.scene_expander import SceneExpander
from scenesync.expander.tasks import run_tasks
from scenesync.graph.environment_graph import EnvironmentGraph
from scenesync.utils.logging import write_json
from scenesync.world.memory_world import InMemoryWorld

console_logger = logging.getLogger(__name__)


def _load_json(path: str | Path) -> Any:
    with open(path) as f:
        return json.load(f)


def _load_data_providers(cfg: DictConfig) -> DataProviders:
    if cfg.get("equivalences_path"):
        name_equivalence = DictNameEquivalenceProvider.from_json_file(
            cfg.equivalences_path
        )
    else:
        name_equivalence = DictNameEquivalenceProvider()
    return DataProviders(
        name_equivalence=name_equivalence,
        assets=DictAssetsProvider.from_json_file(cfg.assets_path),
    )


def run_scene_expansion(cfg: DictConfig) -> dict[str, Any]:
    """Expand a scene described by files and save the outcome.

    Loads the target graph, the scene and the providers named in `cfg`, runs
    one reconciliation, drives the deferred tasks to completion and writes
    `result.json` and `scene_graph.json` into `cfg.output_dir`.

    Args:
        cfg: Run configuration with `target_graph_path`, `scene_path`,
            `assets_path`, optional `equivalences_path` and
            `assets_map_path`, `output_dir`, `max_ticks` and the
            `scene_expander` group.

    Returns:
        The saved result dict.

    Raises:
        FileNotFoundError: If an input file does not exist.
        json.JSONDecodeError: If an input file is not valid JSON.
    """
    output_dir = Path(cfg.output_dir)

    graph = EnvironmentGraph.from_dict(_load_json(cfg.target_graph_path))
    world = InMemoryWorld.from_scene_dict(_load_json(cfg.scene_path))
    assets_map = (
        _load_json(cfg.assets_map_path) if cfg.get("assets_map_path") else None
    )

    expander = SceneExpander(
        data_providers=_load_data_providers(cfg),
        world=world,
        cfg=cfg,
        assets_map=assets_map,
    )
    result = expander.expand_scene(graph, world.export_graph())

    ticks = run_tasks(result.tasks, on_tick=world.step, max_ticks=cfg.max_ticks)

    summary = result.to_dict()
    summary["ticks"] = ticks
    write_json(output_dir / "result.json", summary)
    write_json(output_dir / "scene_graph.json", world.export_graph().to_dict())
    return summary
