"""Contract between the scene expander and the world holding live objects.

The world owns every live instance. The expander only keeps `LiveHandle`
references and mutates instances through the methods below.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from pydrake.all import RigidTransform

from scenesync.graph.environment_graph import (
    EnvironmentObject,
    ObjectBounds,
    ObjectState,
)

DEFAULT_ON_CLASSES = frozenset(
    {"light", "lamp", "tablelamp", "walllamp", "ceilinglamp", "floorlamp"}
)
"""Switchable classes that are powered on by default."""


class PlacementSearchError(Exception):
    """Raised when a placement search cannot run (e.g. undefined bounds)."""


class SwitchAction(str, Enum):
    """Activation switches an object can expose."""

    OPEN = "open"
    POWER = "power"


class HandSide(str, Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class ObjectCapabilities:
    """Capability descriptor resolved once when a live handle is created."""

    is_door: bool = False
    is_character: bool = False
    is_room: bool = False
    switches: frozenset[SwitchAction] = frozenset()
    open_transition_count: int = 2
    """Transition variants of the open switch (0 opens, 1 closes)."""

    def has_switch(self, action: SwitchAction) -> bool:
        return action in self.switches

    @property
    def is_switchable(self) -> bool:
        return bool(self.switches)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_door": self.is_door,
            "is_character": self.is_character,
            "is_room": self.is_room,
            "switches": sorted(action.value for action in self.switches),
            "open_transition_count": self.open_transition_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ObjectCapabilities":
        return cls(
            is_door=data.get("is_door", False),
            is_character=data.get("is_character", False),
            is_room=data.get("is_room", False),
            switches=frozenset(SwitchAction(s) for s in data.get("switches", [])),
            open_transition_count=data.get("open_transition_count", 2),
        )


@dataclass(eq=False)
class LiveHandle:
    """Non-owning reference to a live instance. Compares by identity."""

    handle_id: str
    prefab_name: str | None = None
    capabilities: ObjectCapabilities = field(default_factory=ObjectCapabilities)

    def __repr__(self) -> str:
        return f"LiveHandle({self.handle_id!r})"


def default_object_states(
    capabilities: ObjectCapabilities, class_name: str
) -> set[ObjectState]:
    """Default discrete states of a freshly created live object."""
    if capabilities.is_door:
        return {ObjectState.OPEN}

    states: set[ObjectState] = set()
    if capabilities.has_switch(SwitchAction.OPEN):
        states.add(ObjectState.CLOSED)
    if capabilities.has_switch(SwitchAction.POWER):
        if class_name.lower() in DEFAULT_ON_CLASSES:
            states.add(ObjectState.ON)
        else:
            states.add(ObjectState.OFF)
    return states


class World(ABC):
    """Live scene: instances, placement search, navigation and animation."""

    @abstractmethod
    def has_prefab(self, prefab_name: str) -> bool:
        """Whether the prefab can be loaded."""

    @abstractmethod
    def get_prefab_bounds(self, prefab_name: str) -> ObjectBounds | None:
        """Collision volume of a prefab centered at the origin.

        Returns None if the prefab cannot be loaded or has no collision volume.
        """

    @abstractmethod
    def instantiate(self, prefab_name: str, parent: Any) -> LiveHandle | None:
        """Create an instance of `prefab_name` under `parent` (a room context)."""

    @abstractmethod
    def annotate(self, handle: LiveHandle, obj: EnvironmentObject) -> None:
        """Attach graph identity (id, class, category, properties) to an instance."""

    @abstractmethod
    def destroy(self, handle: LiveHandle) -> None:
        """Remove an instance from the world."""

    @abstractmethod
    def deactivate(self, handle: LiveHandle) -> None:
        """Hide an instance without destroying it."""

    @abstractmethod
    def get_room_context(self, handle: LiveHandle) -> Any:
        """Parent context of the room containing `handle` (the room itself for rooms)."""

    @abstractmethod
    def get_pose(self, handle: LiveHandle) -> RigidTransform:
        """World pose of an instance."""

    @abstractmethod
    def set_pose(self, handle: LiveHandle, transform: RigidTransform) -> None:
        """Set the world pose of an instance."""

    @abstractmethod
    def get_bounds(self, handle: LiveHandle) -> ObjectBounds | None:
        """World-frame bounds of an instance (room bounds for rooms)."""

    @abstractmethod
    def calculate_put_positions(
        self,
        anchor: np.ndarray,
        moving_bounds: ObjectBounds,
        destination: LiveHandle,
        inside: bool,
        ignore_obstacles: bool,
        exclude: LiveHandle | None = None,
    ) -> list[np.ndarray]:
        """Collision-respecting positions for an object relative to `destination`.

        Args:
            anchor: Preferred point; candidates are sorted by distance to it.
            moving_bounds: Bounds of the object to place (only size is used).
            destination: Object to put on or inside.
            inside: Place inside the destination's bounds instead of on top.
            ignore_obstacles: Skip collision checks against other objects.
            exclude: Instance ignored by collision checks (the moving object).

        Returns:
            Candidate positions (object centers), most preferred first.

        Raises:
            PlacementSearchError: If the destination's bounds are undefined.
        """

    @abstractmethod
    def calculate_destination_positions(
        self, center: np.ndarray, handle: LiveHandle, room_bounds: ObjectBounds
    ) -> list[np.ndarray]:
        """Walkable floor points near `center` for the footprint of `handle`."""

    @abstractmethod
    def get_hand_anchor(self, character: LiveHandle, hand: HandSide) -> Any:
        """Parent context of a character's hand."""

    @abstractmethod
    def set_parent(
        self, handle: LiveHandle, parent: Any, local_position: np.ndarray | None = None
    ) -> None:
        """Re-parent an instance.

        Args:
            handle: Instance to re-parent.
            parent: New parent context (room context or hand anchor).
            local_position: Offset in the parent frame. None keeps the current
                world pose.
        """

    @abstractmethod
    def warp(self, handle: LiveHandle, position: np.ndarray) -> None:
        """Move a character instantly."""

    @abstractmethod
    def walk_to(
        self, handle: LiveHandle, positions: list[np.ndarray]
    ) -> Iterator[None]:
        """Walk a character to the first reachable position, one step per resume."""

    @abstractmethod
    def set_door_state(self, handle: LiveHandle, is_open: bool) -> None:
        """Open or close a door."""

    @abstractmethod
    def trigger_switch(
        self, handle: LiveHandle, action: SwitchAction, variant: int = 0
    ) -> None:
        """Flip an activation switch. `variant` selects the transition sequence."""

    @abstractmethod
    def begin_sit(self, handle: LiveHandle) -> None:
        """Start the sit-down animation of a character."""

    @abstractmethod
    def begin_stand(self, handle: LiveHandle) -> None:
        """Start the stand-up animation of a character."""

    @abstractmethod
    def get_sit_progress(self, handle: LiveHandle) -> float:
        """Sit blend weight in [0, 1]: 1 fully seated, 0 fully standing."""

    @abstractmethod
    def finish_pose(self, handle: LiveHandle, position: np.ndarray | None) -> None:
        """Freeze the animation and optionally snap the character to `position`."""
