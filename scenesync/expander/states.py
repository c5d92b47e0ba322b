"""Discrete state reconciliation (expansion Phase D)."""

import logging

import numpy as np

from pydrake.all import RigidTransform

from scenesync.expander.config import SceneExpanderConfig
from scenesync.expander.context import ExpansionContext
from scenesync.expander.result import DiagnosticCategory, ExpanderError
from scenesync.expander.tasks import SitTask, StandTask
from scenesync.expander.world import PlacementSearchError, SwitchAction, World
from scenesync.graph.environment_graph import (
    SITTABLE_PROPERTY,
    EnvironmentObject,
    ObjectBounds,
    ObjectRelation,
    ObjectState,
)
from scenesync.utils.geometry_utils import (
    angle_between_deg,
    facing_rotation,
    transform_axis_x,
)

console_logger = logging.getLogger(__name__)

SEAT_SEARCH_REACH = 4.0
"""Distance along the seat's sitting direction used to find its front edge."""

SEAT_OFFSET = 0.4
"""Distance in front of the seat edge where the character stands before sitting."""

SEAT_APPROACH_DISTANCE = 0.5
"""Characters closer than this to the seat keep their current position."""

SEAT_SAMPLE_SIZE = 0.3
"""Edge of the cube placed on the seat to find its surface."""

SEAT_HEIGHT_DROP = 0.6
"""Height subtracted from the sampled seat point to get the character root."""

_OPEN_VARIANT = 0
_CLOSE_VARIANT = 1


class StateReconciler:
    """Applies OPEN/CLOSED, ON/OFF and SITTING differences to live objects."""

    def __init__(self, world: World, config: SceneExpanderConfig):
        self.world = world
        self.config = config

    def reconcile(self, ctx: ExpansionContext) -> None:
        for obj in ctx.graph.nodes:
            live = ctx.alignment.get(obj.id)
            if live is None:
                continue

            if obj.handle is None:
                if obj.states != live.states:
                    ctx.report(DiagnosticCategory.MISSING_INTERACTIONS, obj.key)
                continue
            self.apply_state(ctx, obj, live)

    def apply_state(
        self, ctx: ExpansionContext, obj: EnvironmentObject, live: EnvironmentObject
    ) -> None:
        """Bring the states of `live` in line with the target node `obj`.

        `live.states` is updated for every transition that is triggered.
        """
        capabilities = obj.handle.capabilities

        if capabilities.is_door:
            # Doors only open and close.
            self._apply_door(obj, live)
            return

        if capabilities.is_switchable:
            self._apply_open_switch(obj, live)
            self._apply_power_switch(obj, live)

        wants_sitting = ObjectState.SITTING in obj.states
        is_sitting = ObjectState.SITTING in live.states
        if wants_sitting and not is_sitting:
            self._sit(ctx, obj, live)
        elif not wants_sitting and is_sitting:
            ctx.result.tasks.append(StandTask(self.world, obj.handle))
            live.states.discard(ObjectState.SITTING)
            console_logger.info(f"Scheduled stand up of {obj.key}")

    def _apply_door(self, obj: EnvironmentObject, live: EnvironmentObject) -> None:
        if ObjectState.OPEN in obj.states and ObjectState.CLOSED in live.states:
            self.world.set_door_state(obj.handle, is_open=True)
            _replace_state(live, ObjectState.CLOSED, ObjectState.OPEN)
            console_logger.info(f"Opened door {obj.key}")
        elif ObjectState.CLOSED in obj.states and ObjectState.OPEN in live.states:
            self.world.set_door_state(obj.handle, is_open=False)
            _replace_state(live, ObjectState.OPEN, ObjectState.CLOSED)
            console_logger.info(f"Closed door {obj.key}")

    def _apply_open_switch(self, obj: EnvironmentObject, live: EnvironmentObject) -> None:
        open_wanted = ObjectState.OPEN in obj.states and ObjectState.CLOSED in live.states
        close_wanted = ObjectState.CLOSED in obj.states and ObjectState.OPEN in live.states
        if not (open_wanted or close_wanted):
            return

        capabilities = obj.handle.capabilities
        variant = _OPEN_VARIANT if open_wanted else _CLOSE_VARIANT
        if (
            not capabilities.has_switch(SwitchAction.OPEN)
            or capabilities.open_transition_count <= variant
        ):
            console_logger.warning(f"{obj.key} has no open transition {variant}")
            return

        if open_wanted:
            _replace_state(live, ObjectState.CLOSED, ObjectState.OPEN)
        else:
            _replace_state(live, ObjectState.OPEN, ObjectState.CLOSED)
        self.world.trigger_switch(obj.handle, SwitchAction.OPEN, variant)
        console_logger.info(f"{'Opened' if open_wanted else 'Closed'} {obj.key}")

    def _apply_power_switch(self, obj: EnvironmentObject, live: EnvironmentObject) -> None:
        on_wanted = ObjectState.ON in obj.states and ObjectState.OFF in live.states
        off_wanted = ObjectState.OFF in obj.states and ObjectState.ON in live.states
        if not (on_wanted or off_wanted):
            return

        if off_wanted:
            _replace_state(live, ObjectState.ON, ObjectState.OFF)
        else:
            _replace_state(live, ObjectState.OFF, ObjectState.ON)

        if obj.handle.capabilities.has_switch(SwitchAction.POWER):
            self.world.trigger_switch(obj.handle, SwitchAction.POWER)
            console_logger.info(f"Switched {obj.key} {'on' if on_wanted else 'off'}")

    def _sit(
        self, ctx: ExpansionContext, obj: EnvironmentObject, live: EnvironmentObject
    ) -> None:
        seats = ctx.index.objects_in_relation(obj, ObjectRelation.ON)
        seat = next((s for s in seats if SITTABLE_PROPERTY in s.properties), None)
        if seat is None:
            raise ExpanderError("Sitting destination not specified (ON relation is missing)")
        if seat.handle is None:
            ctx.report(DiagnosticCategory.MISSING_INTERACTIONS, seat.key)
            return

        seat_bounds = self.world.get_bounds(seat.handle)
        if seat_bounds is None or seat_bounds.is_empty:
            console_logger.warning(f"Seat {seat.key} has no bounds, not sitting {obj.key}")
            return

        pose = self.world.get_pose(obj.handle)
        sit_dir = transform_axis_x(self.world.get_pose(seat.handle))
        position = self.compute_seat_position(
            obj, seat, seat_bounds, pose.translation(), sit_dir
        )

        self.world.set_pose(
            obj.handle, RigidTransform(facing_rotation(sit_dir), pose.translation())
        )
        ctx.result.tasks.append(SitTask(self.world, obj.handle, position))
        live.states.add(ObjectState.SITTING)
        console_logger.info(f"Scheduled sit of {obj.key} on {seat.key}")

    def compute_seat_position(
        self,
        obj: EnvironmentObject,
        seat: EnvironmentObject,
        seat_bounds: ObjectBounds,
        current_position: np.ndarray,
        sit_dir: np.ndarray,
    ) -> np.ndarray:
        """Root position of a character seated on `seat`.

        Starts from the seat edge facing `sit_dir` (or the character's current
        position if it already stands by that edge), drops it to the floor and
        refines it with a placement search on the seat.
        """
        closest = seat_bounds.closest_point(current_position)
        center_sit_pos = seat_bounds.closest_point(
            seat_bounds.center + SEAT_SEARCH_REACH * sit_dir
        )

        position = np.array(current_position, dtype=float)
        if angle_between_deg(sit_dir, closest - center_sit_pos) < 90.0:
            if np.linalg.norm(closest - current_position) > SEAT_APPROACH_DISTANCE:
                position = closest + SEAT_OFFSET * sit_dir
        else:
            position = center_sit_pos + SEAT_OFFSET * sit_dir
        position[2] = 0.0

        sample = ObjectBounds(center=position, size=np.full(3, SEAT_SAMPLE_SIZE))
        try:
            candidates = self.world.calculate_put_positions(
                anchor=position,
                moving_bounds=sample,
                destination=seat.handle,
                inside=False,
                ignore_obstacles=self.config.ignore_obstacles,
                exclude=obj.handle,
            )
        except PlacementSearchError as e:
            raise ExpanderError(
                f"Bounds of object {seat.class_name} are not defined when seating "
                f"{obj.class_name}"
            ) from e

        if candidates:
            position = np.array(candidates[0], dtype=float)
            position[2] = max(position[2] - SEAT_HEIGHT_DROP, 0.0)
        return position


def _replace_state(
    live: EnvironmentObject, old_state: ObjectState, new_state: ObjectState
) -> None:
    live.states.discard(old_state)
    live.states.add(new_state)
