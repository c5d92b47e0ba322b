"""Creation and relocation of live objects (expansion Phase B).

A missing target object is created by trying, in order:

1. Pose transfer: instantiate the object's own prefab (or the first asset of
   its first equivalent name) at its explicit target pose, or align it by
   bounding-box centers, in the room of its INSIDE destination.
2. Placement inside each non-room INSIDE destination.
3. Placement on each ON destination.
4. Room fallback (only without ON relations): placement on a surface close to
   the center of the object's room.

"computer" objects are placed as a compound: a companion "cpuscreen" first,
then the computer at the mirrored offset. Both parts always go ON the
destination surface, also when it was reached through an INSIDE relation.
Either both succeed or neither is kept. The screen takes the id after the
computer's, or the next id above every target and live id when that one is
taken.

Relocation re-parents the moved instance into the room context of its
destination, so an object leaves a hand it was held in.
"""

import logging

import numpy as np

from scenesync.expander.config import SceneExpanderConfig
from scenesync.expander.context import ExpansionContext
from scenesync.expander.providers import DataProviders
from scenesync.expander.result import DiagnosticCategory, ExpanderError
from scenesync.expander.world import (
    LiveHandle,
    PlacementSearchError,
    World,
    default_object_states,
)
from scenesync.graph.environment_graph import (
    SURFACES_PROPERTY,
    EnvironmentObject,
    ObjectRelation,
)

console_logger = logging.getLogger(__name__)

COMPUTER_CLASS_NAME = "computer"
SCREEN_CLASS_NAME = "cpuscreen"


class ObjectPlacer:
    """Places new objects and moves existing ones through the world."""

    def __init__(
        self,
        world: World,
        data_providers: DataProviders,
        config: SceneExpanderConfig,
        rng: np.random.Generator,
        assets_map: dict[str, list[str]] | None = None,
    ):
        self.world = world
        self.data_providers = data_providers
        self.config = config
        self.rng = rng
        self.assets_map = (
            {name.lower(): list(prefabs) for name, prefabs in assets_map.items()}
            if assets_map is not None
            else None
        )

    def try_get_assets(self, name: str) -> list[str] | None:
        """Prefab candidates for a name. The assets map, if set, replaces the catalog."""
        if self.assets_map is None:
            return self.data_providers.assets.try_get_assets(name)
        prefabs = self.assets_map.get(name.lower())
        return list(prefabs) if prefabs else None

    def create_missing_object(self, ctx: ExpansionContext, obj: EnvironmentObject) -> bool:
        """Create a live instance for a target object that has none.

        Returns:
            True if the object was created. Otherwise it is reported as unplaced.
        """
        if self.config.transfer_transform and self._try_pose_transfer(ctx, obj):
            return True
        if self._create_inside(ctx, obj):
            return True
        if self._create_on(ctx, obj):
            return True
        if not ctx.index.has_relation(obj, ObjectRelation.ON):
            if self._create_inside_room(ctx, obj):
                return True

        console_logger.warning(f"Could not place {obj.key}")
        ctx.report(DiagnosticCategory.UNPLACED, obj.key)
        return False

    def _resolve_transfer_prefab(self, obj: EnvironmentObject) -> str | None:
        if obj.prefab_name is not None and self.world.has_prefab(obj.prefab_name):
            return obj.prefab_name

        names = self.data_providers.name_equivalence.get_equivalent_names(obj.class_name)
        if not names:
            return None
        prefabs = self.try_get_assets(names[0])
        if not prefabs:
            return None
        if obj.obj_transform is None and obj.bounding_box is None:
            return None
        return prefabs[0] if self.world.has_prefab(prefabs[0]) else None

    def _try_pose_transfer(self, ctx: ExpansionContext, obj: EnvironmentObject) -> bool:
        prefab_name = self._resolve_transfer_prefab(obj)
        if prefab_name is None:
            return False

        containers = [
            dest
            for dest in ctx.index.objects_in_relation(obj, ObjectRelation.INSIDE)
            if dest.handle is not None
        ]
        if not containers:
            return False
        if obj.obj_transform is None and obj.bounding_box is None:
            return False
        if self.world.get_prefab_bounds(prefab_name) is None:
            # No collision volume.
            return False

        parent = self.world.get_room_context(containers[0].handle)
        handle = self.world.instantiate(prefab_name, parent)
        if handle is None:
            return False

        if obj.obj_transform is not None:
            self.world.set_pose(handle, obj.obj_transform)
        else:
            # Align bounding box centers.
            placed_bounds = self.world.get_bounds(handle)
            pose = self.world.get_pose(handle)
            pose.set_translation(
                pose.translation() - placed_bounds.center + obj.bounding_box.center
            )
            self.world.set_pose(handle, pose)

        self.world.annotate(handle, obj)
        self._register(ctx, obj, handle, prefab_name)
        console_logger.info(f"Placed {obj.key} by pose transfer ({prefab_name})")
        return True

    def _create_inside(self, ctx: ExpansionContext, obj: EnvironmentObject) -> bool:
        for dest in ctx.index.objects_in_relation(obj, ObjectRelation.INSIDE):
            if dest.is_room:
                continue
            scene_dest = ctx.alignment.get(dest.id)
            if scene_dest is None:
                ctx.report(DiagnosticCategory.MISSING_DESTINATIONS, dest.key)
                continue
            if self.try_place_object(ctx, obj, scene_dest, inside=True):
                return True
        return False

    def _create_on(self, ctx: ExpansionContext, obj: EnvironmentObject) -> bool:
        for dest in ctx.index.objects_in_relation(obj, ObjectRelation.ON):
            scene_dest = ctx.alignment.get(dest.id)
            if scene_dest is None:
                ctx.report(DiagnosticCategory.MISSING_DESTINATIONS, dest.key)
                continue
            if self.try_place_object(ctx, obj, scene_dest, inside=False):
                return True
        return False

    def _create_inside_room(self, ctx: ExpansionContext, obj: EnvironmentObject) -> bool:
        rooms = [
            dest
            for dest in ctx.index.objects_in_relation(obj, ObjectRelation.INSIDE)
            if dest.is_room
        ]
        if not rooms:
            return False

        room = rooms[0]
        if room.handle is None:
            console_logger.debug(f"Room {room.key} has no live instance")
            return False
        room_bounds = self.world.get_bounds(room.handle)
        if room_bounds is None:
            return False

        for room_obj in ctx.room_objects.get(room.id, []):
            if room_obj.handle is None or SURFACES_PROPERTY not in room_obj.properties:
                continue
            position = self.world.get_pose(room_obj.handle).translation()
            distance = np.linalg.norm(position - room_bounds.center)
            if distance >= self.config.room_surface_proximity:
                continue
            scene_surface = ctx.alignment.get(room_obj.id)
            if scene_surface is None:
                continue
            if self.try_place_object(ctx, obj, scene_surface, inside=False):
                return True
        return False

    def try_place_object(
        self,
        ctx: ExpansionContext,
        src: EnvironmentObject,
        dest: EnvironmentObject,
        inside: bool,
    ) -> bool:
        """Create `src` on or inside the live node `dest` and register it."""
        if src.class_name != COMPUTER_CLASS_NAME:
            result = self._place_single(ctx, src, dest, np.zeros(3), inside)
            if result is None:
                return False
            self._register(ctx, src, *result)
            return True

        screen = src.copy()
        screen.class_name = SCREEN_CLASS_NAME
        screen.id = self._companion_id(ctx, src.id)
        offset = np.array([0.0, self.config.companion_offset, 0.0])

        screen_result = self._place_single(ctx, screen, dest, offset, inside=False)
        if screen_result is None:
            return False
        computer_result = self._place_single(ctx, src, dest, -offset, inside=False)
        if computer_result is None:
            console_logger.info(
                f"Removing screen of {src.key}: computer could not be placed"
            )
            self.world.destroy(screen_result[0])
            return False

        self._register(ctx, screen, *screen_result)
        self._register(ctx, src, *computer_result)
        return True

    @staticmethod
    def _companion_id(ctx: ExpansionContext, computer_id: int) -> int:
        taken = (
            set(ctx.index.id_to_object)
            | set(ctx.scene_index.id_to_object)
            | set(ctx.alignment)
            | ctx.alignment.aligned_live_ids()
        )
        if computer_id + 1 not in taken:
            return computer_id + 1
        return max(taken) + 1

    def _place_single(
        self,
        ctx: ExpansionContext,
        src: EnvironmentObject,
        dest: EnvironmentObject,
        center_delta: np.ndarray,
        inside: bool,
    ) -> tuple[LiveHandle, str] | None:
        names = self.data_providers.name_equivalence.get_equivalent_names(src.class_name)
        if self.config.randomize:
            names = [names[i] for i in self.rng.permutation(len(names))]

        num_prefabs_checked = 0
        for name in names:
            prefabs = self.try_get_assets(name)
            if not prefabs:
                continue
            if self.config.randomize:
                prefabs = [prefabs[i] for i in self.rng.permutation(len(prefabs))]
            for prefab_name in prefabs:
                num_prefabs_checked += 1
                handle = self._place_prefab(
                    src, prefab_name, dest, center_delta, inside
                )
                if handle is not None:
                    return handle, prefab_name

        if num_prefabs_checked == 0:
            console_logger.warning(f"No assets found for {src.class_name}")
            ctx.report(DiagnosticCategory.MISSING_PREFABS, src.class_name)
        return None

    def _place_prefab(
        self,
        src: EnvironmentObject,
        prefab_name: str,
        dest: EnvironmentObject,
        center_delta: np.ndarray,
        inside: bool,
    ) -> LiveHandle | None:
        prefab_bounds = self.world.get_prefab_bounds(prefab_name)
        if prefab_bounds is None:
            console_logger.debug(f"Prefab {prefab_name} has no collision volume")
            return None
        if dest.handle is None or dest.bounding_box is None:
            raise ExpanderError(
                f"Bounds of object {dest.class_name} are not defined when placing "
                f"{src.class_name}"
            )

        try:
            positions = self.world.calculate_put_positions(
                anchor=dest.bounding_box.center + center_delta,
                moving_bounds=prefab_bounds,
                destination=dest.handle,
                inside=inside,
                ignore_obstacles=self.config.ignore_obstacles,
            )
        except PlacementSearchError as e:
            raise ExpanderError(
                f"Bounds of object {dest.class_name} are not defined when placing "
                f"{src.class_name}"
            ) from e

        if not positions:
            return None

        handle = self.world.instantiate(
            prefab_name, self.world.get_room_context(dest.handle)
        )
        if handle is None:
            return None
        pose = self.world.get_pose(handle)
        pose.set_translation(self.choose_position(positions))
        self.world.set_pose(handle, pose)
        self.world.annotate(handle, src)
        console_logger.info(
            f"Put {src.key} ({prefab_name}) {'inside' if inside else 'on'} "
            f"{dest.key}"
        )
        return handle

    def _register(
        self,
        ctx: ExpansionContext,
        src: EnvironmentObject,
        handle: LiveHandle,
        prefab_name: str,
    ) -> None:
        src.handle = handle
        src.prefab_name = prefab_name
        src.bounding_box = self.world.get_bounds(handle)

        live = src.copy()
        live.states = default_object_states(handle.capabilities, src.class_name)
        ctx.alignment.register(src.id, live)

    def choose_position(self, positions: list[np.ndarray]) -> np.ndarray:
        if self.config.randomize:
            return np.asarray(positions[int(self.rng.integers(len(positions)))])
        return np.asarray(positions[0])

    def move_object(
        self,
        ctx: ExpansionContext,
        src: EnvironmentObject,
        dest: EnvironmentObject,
        inside: bool,
    ) -> bool:
        """Relocate the live instance of `src` on or inside `dest`.

        Returns:
            True if a position was found and applied.
        """
        if src.handle is None:
            ctx.report(DiagnosticCategory.MISSING_INTERACTIONS, src.key)
            return False
        if dest.handle is None:
            ctx.report(DiagnosticCategory.MISSING_INTERACTIONS, dest.key)
            return False

        moving_bounds = self.world.get_bounds(src.handle)
        if moving_bounds is None:
            return False
        anchor = (
            dest.bounding_box.center
            if dest.bounding_box is not None
            else self.world.get_pose(dest.handle).translation()
        )

        try:
            positions = self.world.calculate_put_positions(
                anchor=anchor,
                moving_bounds=moving_bounds,
                destination=dest.handle,
                inside=inside,
                ignore_obstacles=self.config.ignore_obstacles,
                exclude=src.handle,
            )
        except PlacementSearchError as e:
            raise ExpanderError(
                f"Bounds of object {dest.class_name} are not defined when moving "
                f"{src.class_name}"
            ) from e

        if not positions:
            return False

        self.world.set_parent(src.handle, self.world.get_room_context(dest.handle))
        pose = self.world.get_pose(src.handle)
        pose.set_translation(self.choose_position(positions))
        self.world.set_pose(src.handle, pose)
        src.bounding_box = self.world.get_bounds(src.handle)

        live = ctx.alignment.get(src.id)
        if live is not None:
            live.bounding_box = src.bounding_box
        console_logger.info(
            f"Moved {src.key} {'inside' if inside else 'on'} {dest.key}"
        )
        return True
