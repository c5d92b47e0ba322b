"""Environment graph data structures.

An environment graph describes a scene as an ordered list of object nodes and a
list of directed relations between them. The same structure is used for the
target graph (what the scene should look like) and for the live scene graph
(what the world currently holds).
"""

import copy
import logging

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import numpy as np

from pydrake.all import RigidTransform

from scenesync.utils.geometry_utils import (
    closest_point_on_aabb,
    deserialize_rigid_transform,
    serialize_rigid_transform,
)

if TYPE_CHECKING:
    from scenesync.expander.world import LiveHandle

console_logger = logging.getLogger(__name__)

ROOMS_CATEGORY = "Rooms"
CHARACTER_CLASS_NAME = "character"

NEW_OBJECT_ID = 1000
"""Ids below this value must already exist in the live scene. Ids at or above it
are synthesized by the generator and may be created from scratch."""

SURFACES_PROPERTY = "SURFACES"
SITTABLE_PROPERTY = "SITTABLE"


class ObjectRelation(str, Enum):
    """Directed relation kinds between two objects."""

    ON = "ON"
    INSIDE = "INSIDE"
    BETWEEN = "BETWEEN"
    CLOSE = "CLOSE"
    FACING = "FACING"
    HOLDS_RH = "HOLDS_RH"  # Held in the right hand.
    HOLDS_LH = "HOLDS_LH"  # Held in the left hand.


class ObjectState(str, Enum):
    """Discrete object states."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"
    ON = "ON"
    OFF = "OFF"
    SITTING = "SITTING"


@dataclass
class ObjectBounds:
    """Axis-aligned bounding box in world coordinates."""

    center: np.ndarray
    """Box center [x, y, z]."""

    size: np.ndarray
    """Full box size along each axis [x, y, z]."""

    def __post_init__(self) -> None:
        self.center = np.asarray(self.center, dtype=float)
        self.size = np.asarray(self.size, dtype=float)

    @classmethod
    def from_min_max(cls, bbox_min: np.ndarray, bbox_max: np.ndarray) -> "ObjectBounds":
        bbox_min = np.asarray(bbox_min, dtype=float)
        bbox_max = np.asarray(bbox_max, dtype=float)
        return cls(center=(bbox_min + bbox_max) / 2.0, size=bbox_max - bbox_min)

    @property
    def extents(self) -> np.ndarray:
        """Half size along each axis."""
        return self.size / 2.0

    @property
    def bbox_min(self) -> np.ndarray:
        return self.center - self.extents

    @property
    def bbox_max(self) -> np.ndarray:
        return self.center + self.extents

    @property
    def is_empty(self) -> bool:
        """Whether the box has zero size."""
        return bool(np.allclose(self.size, 0.0))

    def closest_point(self, point: np.ndarray) -> np.ndarray:
        return closest_point_on_aabb(
            np.asarray(point, dtype=float), self.bbox_min, self.bbox_max
        )

    def contains(self, point: np.ndarray) -> bool:
        point = np.asarray(point, dtype=float)
        return bool(np.all(point >= self.bbox_min) and np.all(point <= self.bbox_max))

    def translated(self, delta: np.ndarray) -> "ObjectBounds":
        return ObjectBounds(center=self.center + np.asarray(delta), size=self.size)

    def to_dict(self) -> dict:
        return {
            "center": [float(v) for v in self.center],
            "size": [float(v) for v in self.size],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ObjectBounds":
        return cls(center=np.array(data["center"]), size=np.array(data["size"]))


@dataclass(eq=False)
class EnvironmentObject:
    """A node of an environment graph.

    Nodes compare by identity. Use `id` to relate nodes of different graphs.
    """

    id: int
    """Node id, unique within its graph."""

    class_name: str
    """Object class (e.g. 'chair')."""

    category: str = ""
    """Coarse grouping (e.g. 'Rooms', 'Furniture')."""

    properties: set[str] = field(default_factory=set)
    """Capability tags (e.g. 'SURFACES', 'SITTABLE')."""

    states: set[ObjectState] = field(default_factory=set)
    """Discrete state tags."""

    prefab_name: str | None = None
    """Prefab the live instance was created from, if known."""

    obj_transform: RigidTransform | None = None
    """Exact pose to pin the object to, if any."""

    bounding_box: ObjectBounds | None = None
    """World-frame bounds, if known."""

    handle: "LiveHandle | None" = None
    """Live instance in the world. Set only during reconciliation."""

    def copy(self) -> "EnvironmentObject":
        """Copy descriptive fields. The live handle reference is shared."""
        return EnvironmentObject(
            id=self.id,
            class_name=self.class_name,
            category=self.category,
            properties=set(self.properties),
            states=set(self.states),
            prefab_name=self.prefab_name,
            obj_transform=(
                RigidTransform(self.obj_transform)
                if self.obj_transform is not None
                else None
            ),
            bounding_box=copy.deepcopy(self.bounding_box),
            handle=self.handle,
        )

    @property
    def key(self) -> str:
        """Diagnostic key of the object."""
        return f"{self.class_name}.{self.id}"

    @property
    def is_room(self) -> bool:
        return self.category == ROOMS_CATEGORY

    @property
    def is_character(self) -> bool:
        return self.class_name == CHARACTER_CLASS_NAME

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "class_name": self.class_name,
            "category": self.category,
            "properties": sorted(self.properties),
            "states": sorted(state.value for state in self.states),
            "prefab_name": self.prefab_name,
        }
        if self.obj_transform is not None:
            data["obj_transform"] = serialize_rigid_transform(self.obj_transform)
        if self.bounding_box is not None:
            data["bounding_box"] = self.bounding_box.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "EnvironmentObject":
        states: set[ObjectState] = set()
        for state in data.get("states", []):
            try:
                states.add(ObjectState(state))
            except ValueError:
                console_logger.warning(
                    f"Ignoring unknown state {state!r} of object {data.get('id')}"
                )

        obj_transform = None
        if data.get("obj_transform") is not None:
            obj_transform = deserialize_rigid_transform(data["obj_transform"])

        bounding_box = None
        if data.get("bounding_box") is not None:
            bounding_box = ObjectBounds.from_dict(data["bounding_box"])

        return cls(
            id=int(data["id"]),
            class_name=data["class_name"],
            category=data.get("category", ""),
            properties=set(data.get("properties", [])),
            states=states,
            prefab_name=data.get("prefab_name"),
            obj_transform=obj_transform,
            bounding_box=bounding_box,
        )


@dataclass(frozen=True)
class EnvironmentRelation:
    """Directed edge `from_id --relation--> to_id`."""

    from_id: int
    relation: ObjectRelation
    to_id: int

    def to_dict(self) -> dict:
        return {
            "from_id": self.from_id,
            "relation_type": self.relation.value,
            "to_id": self.to_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EnvironmentRelation":
        return cls(
            from_id=int(data["from_id"]),
            relation=ObjectRelation(data["relation_type"]),
            to_id=int(data["to_id"]),
        )


@dataclass
class EnvironmentGraph:
    """Ordered object nodes plus directed relations.

    Node order is meaningful: sequence alignment compares graphs position by
    position, so generators must keep insertion order stable.
    """

    nodes: list[EnvironmentObject] = field(default_factory=list)
    edges: list[EnvironmentRelation] = field(default_factory=list)

    def __post_init__(self) -> None:
        seen: set[int] = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValueError(f"Duplicate node id {node.id} in graph")
            seen.add(node.id)

    def node_ids(self) -> list[int]:
        return [node.id for node in self.nodes]

    def get_node(self, node_id: int) -> EnvironmentObject | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def to_dict(self) -> dict:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EnvironmentGraph":
        return cls(
            nodes=[EnvironmentObject.from_dict(n) for n in data.get("nodes", [])],
            edges=[EnvironmentRelation.from_dict(e) for e in data.get("edges", [])],
        )
