"""Reference in-memory world built on axis-aligned boxes.

Lets the scene expander run without a game engine: every object is a box whose
pose translation is the box center. Character positions passed to `warp`,
`walk_to` and `finish_pose` are root positions on the floor; the world lifts
them by half the character height.

Boxes stay axis-aligned; a pose rotation only changes the facing direction.

Relations of the exported scene graph are inferred from geometry:

- INSIDE a room: the object center lies in the room bounds.
- ON: the object's bottom face rests on the other object's top face and its
  center is above the other object's footprint.
- INSIDE an object: the object's box lies within the other object's box.
- HOLDS_LH / HOLDS_RH: the object is parented to a character's hand.
- CLOSE: the character is within `close_distance` of the object's box.
"""

import itertools
import logging

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from pydrake.all import RigidTransform, RotationMatrix

from scenesync.expander.world import (
    HandSide,
    LiveHandle,
    ObjectCapabilities,
    PlacementSearchError,
    SwitchAction,
    World,
    default_object_states,
)
from scenesync.graph.environment_graph import (
    ROOMS_CATEGORY,
    EnvironmentGraph,
    EnvironmentObject,
    EnvironmentRelation,
    ObjectBounds,
    ObjectRelation,
    ObjectState,
)
from scenesync.utils.geometry_utils import aabb_contains, aabb_intersects

console_logger = logging.getLogger(__name__)

_SUPPORT_TOLERANCE = 0.02
"""Max gap (meters) between a bottom face and a top face counted as support."""


@dataclass
class PrefabSpec:
    """Loadable prefab of the in-memory world."""

    size: np.ndarray
    """Box size [x, y, z] in meters."""

    capabilities: ObjectCapabilities = field(default_factory=ObjectCapabilities)

    has_collider: bool = True
    """Prefabs without a collider cannot be placed."""

    def __post_init__(self) -> None:
        self.size = np.asarray(self.size, dtype=float)

    @classmethod
    def from_dict(cls, data: dict) -> "PrefabSpec":
        return cls(
            size=np.array(data["size"], dtype=float),
            capabilities=ObjectCapabilities.from_dict(data.get("capabilities", {})),
            has_collider=data.get("has_collider", True),
        )


@dataclass(frozen=True)
class HandAnchor:
    """Parent context of a character's hand."""

    character: LiveHandle
    hand: HandSide


@dataclass(eq=False)
class _ObjectRecord:
    handle: LiveHandle
    size: np.ndarray
    pose: RigidTransform
    room: LiveHandle | None = None
    hand: HandAnchor | None = None
    local_position: np.ndarray | None = None
    active: bool = True
    states: set[ObjectState] = field(default_factory=set)
    node: EnvironmentObject | None = None
    """Graph identity attached by `annotate`."""

    sitting: bool = False
    sit_progress: float = 0.0
    sit_target: float = 0.0


class InMemoryWorld(World):
    """World of boxes with grid placement search and stepwise animations."""

    def __init__(
        self,
        prefabs: dict[str, PrefabSpec] | None = None,
        grid_step: float = 0.1,
        close_distance: float = 1.5,
        walk_step: float = 0.5,
        sit_speed: float = 0.25,
        max_destinations: int = 10,
    ):
        """
        Args:
            prefabs: Prefab catalog by name.
            grid_step: Spacing (meters) of placement and destination grids.
            close_distance: Max distance (meters) for CLOSE relations of the
                character.
            walk_step: Distance (meters) a walking character covers per tick.
            sit_speed: Sit blend weight change per `step()`.
            max_destinations: Max number of walkable destinations returned.
        """
        self.prefabs: dict[str, PrefabSpec] = dict(prefabs or {})
        self.grid_step = grid_step
        self.close_distance = close_distance
        self.walk_step = walk_step
        self.sit_speed = sit_speed
        self.max_destinations = max_destinations

        self._records: dict[str, _ObjectRecord] = {}
        self._counter = itertools.count()

        self.door_log: list[tuple[str, bool]] = []
        """(handle id, is_open) of every door transition."""

        self.switch_log: list[tuple[str, SwitchAction, int]] = []
        """(handle id, action, variant) of every switch trigger."""

    # Scene construction.

    def add_prefab(self, name: str, spec: PrefabSpec) -> None:
        self.prefabs[name] = spec

    def add_room(
        self,
        node_id: int,
        class_name: str,
        bounds: ObjectBounds,
        properties: set[str] | None = None,
    ) -> LiveHandle:
        """Add a room and give it graph identity."""
        handle = LiveHandle(
            handle_id=f"{class_name}#{next(self._counter)}",
            capabilities=ObjectCapabilities(is_room=True),
        )
        record = _ObjectRecord(
            handle=handle,
            size=np.array(bounds.size, dtype=float),
            pose=RigidTransform(bounds.center),
        )
        record.room = handle
        self._records[handle.handle_id] = record
        self.annotate(
            handle,
            EnvironmentObject(
                id=node_id,
                class_name=class_name,
                category=ROOMS_CATEGORY,
                properties=set(properties or ()),
            ),
        )
        return handle

    def add_object(
        self,
        node_id: int,
        class_name: str,
        prefab_name: str,
        position: np.ndarray,
        category: str = "",
        properties: set[str] | None = None,
        states: set[ObjectState] | None = None,
        rotation_yaw: float = 0.0,
    ) -> LiveHandle:
        """Instantiate a prefab at a box center and give it graph identity.

        Raises:
            KeyError: If the prefab is unknown.
        """
        if prefab_name not in self.prefabs:
            raise KeyError(f"Unknown prefab {prefab_name!r}")
        position = np.asarray(position, dtype=float)
        handle = self.instantiate(prefab_name, self._room_containing(position))
        record = self._records[handle.handle_id]
        record.pose = RigidTransform(RotationMatrix.MakeZRotation(rotation_yaw), position)
        self.annotate(
            handle,
            EnvironmentObject(
                id=node_id,
                class_name=class_name,
                category=category,
                properties=set(properties or ()),
            ),
        )
        if states is not None:
            record.states = set(states) - {ObjectState.SITTING}
            if ObjectState.SITTING in states:
                record.sitting = True
                record.sit_progress = record.sit_target = 1.0
        return handle

    @classmethod
    def from_scene_dict(cls, data: dict, **kwargs) -> "InMemoryWorld":
        """Build a world from a JSON-friendly description.

        Expected shape::

            {
              "prefabs": {"table_prefab": {"size": [1, 1, 0.8], ...}},
              "rooms": [{"id": 1, "class_name": "kitchen",
                         "bounds": {"center": [...], "size": [...]}}],
              "objects": [{"id": 2, "class_name": "table",
                           "prefab_name": "table_prefab",
                           "position": [0, 0, 0.4], "properties": ["SURFACES"],
                           "states": ["OPEN"]}]
            }
        """
        world = cls(
            prefabs={
                name: PrefabSpec.from_dict(spec)
                for name, spec in data.get("prefabs", {}).items()
            },
            **kwargs,
        )
        for room in data.get("rooms", []):
            world.add_room(
                node_id=int(room["id"]),
                class_name=room["class_name"],
                bounds=ObjectBounds.from_dict(room["bounds"]),
                properties=set(room.get("properties", [])),
            )
        for obj in data.get("objects", []):
            states = None
            if "states" in obj:
                states = {ObjectState(state) for state in obj["states"]}
            world.add_object(
                node_id=int(obj["id"]),
                class_name=obj["class_name"],
                prefab_name=obj["prefab_name"],
                position=np.array(obj["position"], dtype=float),
                category=obj.get("category", ""),
                properties=set(obj.get("properties", [])),
                states=states,
                rotation_yaw=float(obj.get("rotation_yaw", 0.0)),
            )
        console_logger.info(
            f"Built in-memory world with {len(world.prefabs)} prefabs and "
            f"{len(world._records)} objects"
        )
        return world

    # Inspection.

    def handle_for(self, node_id: int) -> LiveHandle | None:
        """Active handle annotated with a graph node id."""
        for record in self._records.values():
            if record.active and record.node is not None and record.node.id == node_id:
                return record.handle
        return None

    def get_states(self, handle: LiveHandle) -> set[ObjectState]:
        record = self._record(handle)
        states = set(record.states)
        if record.sitting:
            states.add(ObjectState.SITTING)
        return states

    def is_active(self, handle: LiveHandle) -> bool:
        record = self._records.get(handle.handle_id)
        return record is not None and record.active

    def export_graph(self) -> EnvironmentGraph:
        """Live scene graph of all active annotated objects."""
        records = [
            record
            for record in self._records.values()
            if record.active and record.node is not None
        ]
        nodes: list[EnvironmentObject] = []
        for record in records:
            node = record.node.copy()
            node.states = self.get_states(record.handle)
            node.prefab_name = record.handle.prefab_name
            node.bounding_box = self.get_bounds(record.handle)
            node.handle = record.handle
            nodes.append(node)

        edges: list[EnvironmentRelation] = []
        for record in records:
            if record.handle.capabilities.is_room:
                continue
            edges.extend(self._relations_of(record, records))
        return EnvironmentGraph(nodes=nodes, edges=edges)

    # World contract.

    def has_prefab(self, prefab_name: str) -> bool:
        return prefab_name in self.prefabs

    def get_prefab_bounds(self, prefab_name: str) -> ObjectBounds | None:
        spec = self.prefabs.get(prefab_name)
        if spec is None or not spec.has_collider:
            return None
        return ObjectBounds(center=np.zeros(3), size=spec.size)

    def instantiate(self, prefab_name: str, parent: Any) -> LiveHandle | None:
        spec = self.prefabs.get(prefab_name)
        if spec is None:
            console_logger.warning(f"Cannot instantiate unknown prefab {prefab_name}")
            return None

        handle = LiveHandle(
            handle_id=f"{prefab_name}#{next(self._counter)}",
            prefab_name=prefab_name,
            capabilities=spec.capabilities,
        )
        room = parent if isinstance(parent, LiveHandle) else None
        origin = (
            self._record(room).pose.translation() if room is not None else np.zeros(3)
        )
        self._records[handle.handle_id] = _ObjectRecord(
            handle=handle,
            size=np.array(spec.size, dtype=float),
            pose=RigidTransform(origin),
            room=room,
            states=default_object_states(spec.capabilities, prefab_name),
        )
        console_logger.debug(f"Instantiated {handle.handle_id}")
        return handle

    def annotate(self, handle: LiveHandle, obj: EnvironmentObject) -> None:
        record = self._record(handle)
        node = EnvironmentObject(
            id=obj.id,
            class_name=obj.class_name,
            category=obj.category,
            properties=set(obj.properties),
        )
        if record.node is None and not handle.capabilities.is_room:
            # Default states follow the annotated class, not the prefab name.
            record.states = default_object_states(handle.capabilities, obj.class_name)
        record.node = node

    def destroy(self, handle: LiveHandle) -> None:
        self._records.pop(handle.handle_id, None)
        console_logger.debug(f"Destroyed {handle.handle_id}")

    def deactivate(self, handle: LiveHandle) -> None:
        self._record(handle).active = False

    def get_room_context(self, handle: LiveHandle) -> Any:
        record = self._record(handle)
        if handle.capabilities.is_room:
            return handle
        if record.hand is not None:
            return self.get_room_context(record.hand.character)
        room = self._room_containing(self.get_pose(handle).translation())
        return room if room is not None else record.room

    def get_pose(self, handle: LiveHandle) -> RigidTransform:
        record = self._record(handle)
        if record.hand is not None:
            anchor = self.get_pose(record.hand.character).translation()
            return RigidTransform(record.pose.rotation(), anchor + record.local_position)
        return RigidTransform(record.pose)

    def set_pose(self, handle: LiveHandle, transform: RigidTransform) -> None:
        record = self._record(handle)
        if record.hand is not None:
            anchor = self.get_pose(record.hand.character).translation()
            record.local_position = transform.translation() - anchor
        record.pose = RigidTransform(transform)

    def get_bounds(self, handle: LiveHandle) -> ObjectBounds | None:
        record = self._records.get(handle.handle_id)
        if record is None:
            return None
        return ObjectBounds(center=self.get_pose(handle).translation(), size=record.size)

    def calculate_put_positions(
        self,
        anchor: np.ndarray,
        moving_bounds: ObjectBounds,
        destination: LiveHandle,
        inside: bool,
        ignore_obstacles: bool,
        exclude: LiveHandle | None = None,
    ) -> list[np.ndarray]:
        dest_bounds = self.get_bounds(destination)
        if dest_bounds is None or dest_bounds.is_empty:
            raise PlacementSearchError(
                f"Bounds of {destination.handle_id} are not defined"
            )
        if moving_bounds.is_empty:
            return []

        size = moving_bounds.size
        half = size / 2.0
        if inside:
            if np.any(size > dest_bounds.size):
                return []
            z = dest_bounds.bbox_min[2] + half[2]
        else:
            z = dest_bounds.bbox_max[2] + half[2]

        xs = self._grid_axis(dest_bounds.bbox_min[0] + half[0], dest_bounds.bbox_max[0] - half[0])
        ys = self._grid_axis(dest_bounds.bbox_min[1] + half[1], dest_bounds.bbox_max[1] - half[1])
        candidates = [np.array([x, y, z]) for x in xs for y in ys]

        if not ignore_obstacles:
            skip = {destination.handle_id}
            if exclude is not None:
                skip.add(exclude.handle_id)
            obstacles = self._obstacle_bounds(skip)
            candidates = [
                c
                for c in candidates
                if not any(
                    aabb_intersects(c - half, c + half, o.bbox_min, o.bbox_max)
                    for o in obstacles
                )
            ]

        anchor = np.asarray(anchor, dtype=float)
        candidates.sort(key=lambda c: float(np.linalg.norm(c - anchor)))
        return candidates

    def calculate_destination_positions(
        self, center: np.ndarray, handle: LiveHandle, room_bounds: ObjectBounds
    ) -> list[np.ndarray]:
        half = self._record(handle).size / 2.0
        xs = self._grid_axis(room_bounds.bbox_min[0] + half[0], room_bounds.bbox_max[0] - half[0])
        ys = self._grid_axis(room_bounds.bbox_min[1] + half[1], room_bounds.bbox_max[1] - half[1])

        skip = {handle.handle_id}
        skip.update(
            record.handle.handle_id
            for record in self._records.values()
            if record.hand is not None and record.hand.character is handle
        )
        obstacles = self._obstacle_bounds(skip)

        positions = []
        for x, y in itertools.product(xs, ys):
            body_center = np.array([x, y, half[2]])
            if any(
                aabb_intersects(
                    body_center - half, body_center + half, o.bbox_min, o.bbox_max
                )
                for o in obstacles
            ):
                continue
            positions.append(np.array([x, y, 0.0]))

        center = np.asarray(center, dtype=float)
        positions.sort(key=lambda p: float(np.linalg.norm(p[:2] - center[:2])))
        return positions[: self.max_destinations]

    def get_hand_anchor(self, character: LiveHandle, hand: HandSide) -> Any:
        return HandAnchor(character=character, hand=hand)

    def set_parent(
        self, handle: LiveHandle, parent: Any, local_position: np.ndarray | None = None
    ) -> None:
        record = self._record(handle)
        world_pose = self.get_pose(handle)

        if isinstance(parent, HandAnchor):
            anchor = self.get_pose(parent.character).translation()
            record.hand = parent
            record.local_position = (
                np.asarray(local_position, dtype=float)
                if local_position is not None
                else world_pose.translation() - anchor
            )
            record.pose = RigidTransform(
                world_pose.rotation(), anchor + record.local_position
            )
            return

        record.hand = None
        record.local_position = None
        record.room = parent
        if local_position is not None and parent is not None:
            origin = self._record(parent).pose.translation()
            record.pose = RigidTransform(
                world_pose.rotation(), origin + np.asarray(local_position, dtype=float)
            )
        else:
            record.pose = world_pose

    def warp(self, handle: LiveHandle, position: np.ndarray) -> None:
        self._set_root_position(handle, np.asarray(position, dtype=float))

    def walk_to(
        self, handle: LiveHandle, positions: list[np.ndarray]
    ) -> Iterator[None]:
        if not positions:
            return
        target = np.asarray(positions[0], dtype=float)
        while True:
            current = self._root_position(handle)
            delta = target - current
            distance = float(np.linalg.norm(delta))
            if distance <= self.walk_step + 1e-9:
                self._set_root_position(handle, target)
                return
            self._set_root_position(handle, current + delta * (self.walk_step / distance))
            yield

    def set_door_state(self, handle: LiveHandle, is_open: bool) -> None:
        record = self._record(handle)
        record.states.discard(ObjectState.CLOSED if is_open else ObjectState.OPEN)
        record.states.add(ObjectState.OPEN if is_open else ObjectState.CLOSED)
        self.door_log.append((handle.handle_id, is_open))

    def trigger_switch(
        self, handle: LiveHandle, action: SwitchAction, variant: int = 0
    ) -> None:
        record = self._record(handle)
        if action == SwitchAction.OPEN:
            opened = variant == 0
            record.states.discard(ObjectState.CLOSED if opened else ObjectState.OPEN)
            record.states.add(ObjectState.OPEN if opened else ObjectState.CLOSED)
        elif ObjectState.ON in record.states:
            record.states.discard(ObjectState.ON)
            record.states.add(ObjectState.OFF)
        else:
            record.states.discard(ObjectState.OFF)
            record.states.add(ObjectState.ON)
        self.switch_log.append((handle.handle_id, action, variant))

    def begin_sit(self, handle: LiveHandle) -> None:
        record = self._record(handle)
        record.sitting = True
        record.sit_target = 1.0

    def begin_stand(self, handle: LiveHandle) -> None:
        record = self._record(handle)
        record.sitting = False
        record.sit_target = 0.0

    def get_sit_progress(self, handle: LiveHandle) -> float:
        return self._record(handle).sit_progress

    def finish_pose(self, handle: LiveHandle, position: np.ndarray | None) -> None:
        record = self._record(handle)
        record.sit_progress = record.sit_target
        if position is not None:
            self._set_root_position(handle, np.asarray(position, dtype=float))

    def step(self) -> None:
        """Advance sit and stand animations by one tick."""
        for record in self._records.values():
            if record.sit_progress < record.sit_target:
                record.sit_progress = min(record.sit_target, record.sit_progress + self.sit_speed)
            elif record.sit_progress > record.sit_target:
                record.sit_progress = max(record.sit_target, record.sit_progress - self.sit_speed)

    # Helpers.

    def _record(self, handle: LiveHandle) -> _ObjectRecord:
        try:
            return self._records[handle.handle_id]
        except KeyError:
            raise KeyError(f"Unknown live handle {handle.handle_id}") from None

    def _grid_axis(self, low: float, high: float) -> np.ndarray:
        if high < low:
            # The object is wider than the area; only its center is a candidate.
            return np.array([(low + high) / 2.0])
        count = int(np.floor((high - low) / self.grid_step + 1e-9)) + 1
        return low + self.grid_step * np.arange(count)

    def _obstacle_bounds(self, skip: set[str]) -> list[ObjectBounds]:
        return [
            self.get_bounds(record.handle)
            for record in self._records.values()
            if record.active
            and record.handle.handle_id not in skip
            and not record.handle.capabilities.is_room
            and record.hand is None
        ]

    def _room_containing(self, point: np.ndarray) -> LiveHandle | None:
        for record in self._records.values():
            if record.handle.capabilities.is_room and self.get_bounds(
                record.handle
            ).contains(point):
                return record.handle
        return None

    def _root_position(self, handle: LiveHandle) -> np.ndarray:
        record = self._record(handle)
        position = self.get_pose(handle).translation().copy()
        position[2] -= record.size[2] / 2.0
        return position

    def _set_root_position(self, handle: LiveHandle, position: np.ndarray) -> None:
        record = self._record(handle)
        pose = self.get_pose(handle)
        pose.set_translation(position + np.array([0.0, 0.0, record.size[2] / 2.0]))
        self.set_pose(handle, pose)

    def _relations_of(
        self, record: _ObjectRecord, records: list[_ObjectRecord]
    ) -> list[EnvironmentRelation]:
        node_id = record.node.id
        bounds = self.get_bounds(record.handle)
        relations: list[EnvironmentRelation] = []

        room = self.get_room_context(record.handle)
        if room is not None and self._records.get(room.handle_id) in records:
            relations.append(
                EnvironmentRelation(node_id, ObjectRelation.INSIDE, self._record(room).node.id)
            )

        if record.handle.capabilities.is_character:
            for other in records:
                if other.hand is not None and other.hand.character is record.handle:
                    relation = (
                        ObjectRelation.HOLDS_LH
                        if other.hand.hand == HandSide.LEFT
                        else ObjectRelation.HOLDS_RH
                    )
                    relations.append(EnvironmentRelation(node_id, relation, other.node.id))
                elif other is not record and not other.handle.capabilities.is_room:
                    other_bounds = self.get_bounds(other.handle)
                    closest = other_bounds.closest_point(bounds.center)
                    if np.linalg.norm(closest[:2] - bounds.center[:2]) <= self.close_distance:
                        relations.append(
                            EnvironmentRelation(node_id, ObjectRelation.CLOSE, other.node.id)
                        )
            return relations

        if record.hand is not None:
            return relations

        for other in records:
            if (
                other is record
                or other.hand is not None
                or other.handle.capabilities.is_room
                or other.handle.capabilities.is_character
            ):
                continue
            other_bounds = self.get_bounds(other.handle)
            if _rests_on(bounds, other_bounds):
                relations.append(EnvironmentRelation(node_id, ObjectRelation.ON, other.node.id))
            elif np.all(bounds.size < other_bounds.size) and aabb_contains(
                other_bounds.bbox_min,
                other_bounds.bbox_max,
                bounds.bbox_min,
                bounds.bbox_max,
            ):
                relations.append(
                    EnvironmentRelation(node_id, ObjectRelation.INSIDE, other.node.id)
                )
        return relations


def _rests_on(top: ObjectBounds, support: ObjectBounds) -> bool:
    if abs(top.bbox_min[2] - support.bbox_max[2]) > _SUPPORT_TOLERANCE:
        return False
    x, y = top.center[0], top.center[1]
    return bool(
        support.bbox_min[0] <= x <= support.bbox_max[0]
        and support.bbox_min[1] <= y <= support.bbox_max[1]
    )
