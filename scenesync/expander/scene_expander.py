"""Reconciles a live scene with a target environment graph.

One `expand_scene` call runs, strictly in order:

- Setup: adjacency indices of both graphs, the node alignment, the room
  objects map and a fresh result.
- Phase A (presence): copy live handles onto aligned target nodes, optionally
  pin poses, report unaligned ids and deactivate live nodes nothing maps to.
- Phase B (creation): create the target objects with no live counterpart.
- Phase C (relations): move live objects until ON / HOLDS / INSIDE hold.
- Phase D (states): apply door, switch and sitting differences.

A fatal `ExpanderError` stops the remaining phases. Mutations already applied
to the world stand. The error is recorded under `fatal_error` and never
escapes `expand_scene`.
"""

import logging
import time

import numpy as np

from omegaconf import DictConfig

from scenesync.expander.config import SceneExpanderConfig
from scenesync.expander.context import ExpansionContext
from scenesync.expander.placement import ObjectPlacer
from scenesync.expander.providers import DataProviders
from scenesync.expander.relations import RelationReconciler
from scenesync.expander.result import (
    DiagnosticCategory,
    ExpanderError,
    SceneExpanderResult,
)
from scenesync.expander.states import StateReconciler
from scenesync.expander.world import World
from scenesync.graph.alignment import GraphObjectAlignment
from scenesync.graph.environment_graph import NEW_OBJECT_ID, EnvironmentGraph
from scenesync.graph.graph_index import GraphIndex, create_room_objects_map

console_logger = logging.getLogger(__name__)


class SceneExpander:
    """Makes a world match a target environment graph.

    The expander assumes exclusive access to the world for the duration of
    one `expand_scene` call. Calls must not overlap.
    """

    def __init__(
        self,
        data_providers: DataProviders,
        world: World,
        cfg: DictConfig | SceneExpanderConfig,
        assets_map: dict[str, list[str]] | None = None,
    ):
        """
        Args:
            data_providers: Class name equivalences and asset catalog.
            world: World holding the live objects.
            cfg: Scene expander settings, either as a config node (see
                `SceneExpanderConfig.from_cfg`) or as a ready config object.
            assets_map: Optional name -> prefabs table that replaces the asset
                catalog for every lookup of this expander.
        """
        self.data_providers = data_providers
        self.world = world
        self.config = (
            cfg
            if isinstance(cfg, SceneExpanderConfig)
            else SceneExpanderConfig.from_cfg(cfg)
        )
        self.rng = np.random.default_rng(self.config.random_seed)

        self.aligner = GraphObjectAlignment(
            data_providers.name_equivalence,
            gap_penalty=self.config.gap_penalty,
            similarity_penalty=self.config.similarity_penalty,
            method=self.config.alignment_method,
        )
        self.placer = ObjectPlacer(
            world=world,
            data_providers=data_providers,
            config=self.config,
            rng=self.rng,
            assets_map=assets_map,
        )
        self.relations = RelationReconciler(world, self.placer, self.config)
        self.states = StateReconciler(world, self.config)

    def expand_scene(
        self,
        graph: EnvironmentGraph,
        scene_graph: EnvironmentGraph,
        exact_alignment: bool | None = None,
    ) -> SceneExpanderResult:
        """Reconcile the world with `graph`.

        Args:
            graph: Target graph. Its nodes receive live handles during the call.
            scene_graph: Current live scene graph.
            exact_alignment: Align by id instead of by sequence alignment.
                Defaults to the configured value.

        Returns:
            Frozen result with the diagnostics and the deferred tasks, which
            the caller drives with `run_tasks`.
        """
        if exact_alignment is None:
            exact_alignment = self.config.exact_alignment

        result = SceneExpanderResult()
        try:
            ctx = self._setup(graph, scene_graph, exact_alignment, result)
            self._reconcile_presence(ctx)
            self._create_missing(ctx)
            self.relations.reconcile(ctx)
            self.states.reconcile(ctx)
        except (ExpanderError, ValueError) as e:
            console_logger.error(f"Scene expansion stopped: {e}")
            result.add_item(DiagnosticCategory.FATAL_ERROR, str(e))

        result.freeze()
        if result.success:
            console_logger.info(
                f"Scene expansion succeeded with {len(result.tasks)} deferred task(s)"
            )
        else:
            for category, items in result.messages.items():
                console_logger.warning(
                    f"{category.value}: {sorted(items, key=str)}"
                )
        return result

    def _setup(
        self,
        graph: EnvironmentGraph,
        scene_graph: EnvironmentGraph,
        exact_alignment: bool,
        result: SceneExpanderResult,
    ) -> ExpansionContext:
        index = GraphIndex.from_graph(graph)
        scene_index = GraphIndex.from_graph(scene_graph)

        start_time = time.time()
        alignment = self.aligner.align(graph, scene_graph, exact_alignment)
        elapsed = time.time() - start_time
        console_logger.info(
            f"Aligned {len(alignment)}/{len(graph.nodes)} target nodes to "
            f"{len(scene_graph.nodes)} scene nodes in {elapsed:.3f}s"
        )

        return ExpansionContext(
            graph=graph,
            scene_graph=scene_graph,
            index=index,
            scene_index=scene_index,
            alignment=alignment,
            room_objects=create_room_objects_map(graph, index),
            result=result,
            exact_alignment=exact_alignment,
        )

    def _reconcile_presence(self, ctx: ExpansionContext) -> None:
        """Phase A."""
        for obj in ctx.graph.nodes:
            if obj.is_character:
                ctx.character = obj

            live = ctx.alignment.get(obj.id)
            if live is None:
                ctx.missing_objects.append(obj)
                continue

            if live.is_character:
                ctx.scene_character = live

            if (
                self.config.transfer_transform
                and obj.obj_transform is not None
                and live.handle is not None
                and obj.prefab_name == live.prefab_name
            ):
                self.world.set_pose(live.handle, obj.obj_transform)
                live.bounding_box = self.world.get_bounds(live.handle)
                ctx.transformed_ids.add(obj.id)
                console_logger.debug(f"Transferred pose of {obj.key}")

            obj.handle = live.handle
            obj.prefab_name = live.prefab_name
            obj.bounding_box = live.bounding_box

        if not ctx.exact_alignment:
            for obj in ctx.graph.nodes:
                if obj.id not in ctx.alignment and obj.id < NEW_OBJECT_ID:
                    ctx.report(DiagnosticCategory.UNALIGNED_IDS, obj.id)

        aligned_ids = ctx.alignment.aligned_live_ids()
        for live in ctx.scene_graph.nodes:
            if live.id in aligned_ids:
                continue
            if live.handle is None:
                console_logger.warning(f"Cannot deactivate {live.key}: no live instance")
                continue
            self.world.deactivate(live.handle)
            console_logger.info(f"Deactivated unaligned scene object {live.key}")

        console_logger.info(
            f"Presence: {len(ctx.graph.nodes) - len(ctx.missing_objects)} aligned, "
            f"{len(ctx.missing_objects)} missing"
        )

    def _create_missing(self, ctx: ExpansionContext) -> None:
        """Phase B."""
        for obj in ctx.missing_objects:
            self.placer.create_missing_object(ctx, obj)
