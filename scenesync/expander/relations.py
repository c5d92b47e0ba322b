"""Spatial relation reconciliation (expansion Phase C).

For every target object that already existed in the live scene, checks in
priority order whether its ON, HOLDS_LH, HOLDS_RH and INSIDE relations hold in
the live graph and relocates the object when they do not. Destinations are
compared through the alignment, not by raw id.
"""

import logging

import numpy as np

from scenesync.expander.config import SceneExpanderConfig
from scenesync.expander.context import ExpansionContext
from scenesync.expander.placement import ObjectPlacer
from scenesync.expander.result import DiagnosticCategory, ExpanderError
from scenesync.expander.tasks import WalkTask
from scenesync.expander.world import HandSide, World
from scenesync.graph.environment_graph import EnvironmentObject, ObjectRelation, ObjectState
from scenesync.utils.geometry_utils import centroid

console_logger = logging.getLogger(__name__)

_HAND_RELATIONS = {
    ObjectRelation.HOLDS_LH: HandSide.LEFT,
    ObjectRelation.HOLDS_RH: HandSide.RIGHT,
}


class RelationReconciler:
    """Moves live objects so their spatial relations match the target graph."""

    def __init__(self, world: World, placer: ObjectPlacer, config: SceneExpanderConfig):
        self.world = world
        self.placer = placer
        self.config = config

    def reconcile(self, ctx: ExpansionContext) -> None:
        held_lh = ctx.index.objects_in_relation(ctx.character, ObjectRelation.HOLDS_LH)
        held_rh = ctx.index.objects_in_relation(ctx.character, ObjectRelation.HOLDS_RH)
        scene_held = {
            relation: {
                obj.id
                for obj in ctx.scene_index.objects_in_relation(
                    ctx.scene_character, relation
                )
            }
            for relation in _HAND_RELATIONS
        }
        missing = set(ctx.missing_objects)

        for obj in ctx.graph.nodes:
            if obj.handle is None and (obj in held_lh or obj in held_rh):
                # Cannot put something with no physical presence in a hand.
                ctx.report(DiagnosticCategory.MISSING_INTERACTIONS, obj.key)
                continue

            if obj in missing:
                continue

            if self.config.transfer_transform and obj.id in ctx.transformed_ids:
                self._reparent_transferred(ctx, obj)
                continue

            if self._reconcile_on(ctx, obj):
                continue

            if ctx.character is not None:
                if self._reconcile_holds(
                    ctx, ObjectRelation.HOLDS_LH, obj, held_lh, scene_held
                ):
                    continue
                if self._reconcile_holds(
                    ctx, ObjectRelation.HOLDS_RH, obj, held_rh, scene_held
                ):
                    continue

            if ctx.character is not None and obj is ctx.character:
                self._reconcile_character_room(ctx, obj)
            else:
                self._reconcile_inside(ctx, obj)

    def _scene_relation(
        self, ctx: ExpansionContext, obj: EnvironmentObject, relation: ObjectRelation
    ) -> list[EnvironmentObject]:
        """Live destinations of the live node aligned to `obj`."""
        return ctx.scene_index.objects_in_relation(ctx.alignment.get(obj.id), relation)

    def _reparent_transferred(self, ctx: ExpansionContext, obj: EnvironmentObject) -> None:
        containers = [
            dest
            for dest in ctx.index.objects_in_relation(obj, ObjectRelation.INSIDE)
            if dest.handle is not None
        ]
        if not containers or obj.handle is None:
            return
        room_context = self.world.get_room_context(containers[0].handle)
        self.world.set_parent(obj.handle, room_context)

    def _reconcile_on(self, ctx: ExpansionContext, obj: EnvironmentObject) -> bool:
        """Returns True if the ON relation holds or the object was moved for it."""
        if obj.is_character:
            return False

        target_dests = ctx.index.objects_in_relation(obj, ObjectRelation.ON)
        scene_dest_ids = {
            dest.id for dest in self._scene_relation(ctx, obj, ObjectRelation.ON)
        }
        if ctx.live_ids(target_dests) & scene_dest_ids:
            return True
        if not target_dests:
            return False

        if not self.placer.move_object(ctx, obj, target_dests[0], inside=False):
            console_logger.warning(f"Cannot put {obj.key} on {target_dests[0].key}")
            if obj.handle is not None and target_dests[0].handle is not None:
                ctx.report(DiagnosticCategory.UNPLACED, obj.key)
        return True

    def _reconcile_holds(
        self,
        ctx: ExpansionContext,
        relation: ObjectRelation,
        obj: EnvironmentObject,
        held: list[EnvironmentObject],
        scene_held: dict[ObjectRelation, set[int]],
    ) -> bool:
        """Returns True if the holding relation holds or the object was put in hand."""
        if obj not in held:
            return False
        if ctx.live_id(obj) in scene_held[relation]:
            return True
        if ctx.character.handle is None:
            ctx.report(DiagnosticCategory.MISSING_INTERACTIONS, ctx.character.key)
            return True

        anchor = self.world.get_hand_anchor(ctx.character.handle, _HAND_RELATIONS[relation])
        self.world.set_parent(obj.handle, anchor, np.zeros(3))
        console_logger.info(f"Put {obj.key} in {_HAND_RELATIONS[relation].value} hand")
        return True

    def _reconcile_inside(self, ctx: ExpansionContext, obj: EnvironmentObject) -> None:
        target_dests = [
            dest
            for dest in ctx.index.objects_in_relation(obj, ObjectRelation.INSIDE)
            if not dest.is_room
        ]
        scene_dest_ids = {
            dest.id
            for dest in self._scene_relation(ctx, obj, ObjectRelation.INSIDE)
            if not dest.is_room
        }
        if not target_dests or ctx.live_ids(target_dests) & scene_dest_ids:
            return

        if not self.placer.move_object(ctx, obj, target_dests[0], inside=True):
            raise ExpanderError(f"Object {obj.class_name} cannot be placed")

    def _reconcile_character_room(
        self, ctx: ExpansionContext, character: EnvironmentObject
    ) -> None:
        if ObjectState.SITTING in character.states:
            return

        room = next(
            (
                dest
                for dest in ctx.index.objects_in_relation(character, ObjectRelation.INSIDE)
                if dest.is_room
            ),
            None,
        )
        scene_room = next(
            (
                dest
                for dest in self._scene_relation(ctx, character, ObjectRelation.INSIDE)
                if dest.is_room
            ),
            None,
        )
        if room is None or scene_room is None:
            return

        close = ctx.index.objects_in_relation(character, ObjectRelation.CLOSE)
        scene_close_ids = {
            dest.id for dest in self._scene_relation(ctx, character, ObjectRelation.CLOSE)
        }
        unchanged_close = len(ctx.live_ids(close)) == len(close) and (
            ctx.live_ids(close) == scene_close_ids
        )
        if ctx.live_id(room) == scene_room.id and unchanged_close:
            return

        if room.handle is None or character.handle is None:
            ctx.report(DiagnosticCategory.MISSING_INTERACTIONS, character.key)
            return
        room_bounds = self.world.get_bounds(room.handle)

        close_positions = [
            self.world.get_pose(obj.handle).translation()
            for obj in close
            if obj.handle is not None and not obj.is_room
        ]
        center = centroid(close_positions) if close_positions else room_bounds.center

        positions = self.world.calculate_destination_positions(
            center, character.handle, room_bounds
        )
        if not positions:
            console_logger.warning(f"No walkable destination for {character.key}")
            return

        if self.config.animate_character:
            ctx.result.tasks.append(WalkTask(self.world, character.handle, positions))
            console_logger.info(f"Scheduled walk of {character.key} to {room.key}")
        else:
            self.world.warp(character.handle, positions[0])
            console_logger.info(f"Warped {character.key} to {room.key}")
