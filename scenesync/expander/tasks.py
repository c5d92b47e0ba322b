"""Cooperative tasks produced by scene expansion.

Tasks are resumable units of work driven by the caller, one `poll()` per tick.
Each poll re-checks the completion predicate. Tasks cannot be cancelled once
enqueued; a caller that stops polling simply abandons them.
"""

import logging

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator

import numpy as np

from scenesync.expander.world import LiveHandle, World

console_logger = logging.getLogger(__name__)

SIT_COMPLETE_PROGRESS = 0.99
STAND_COMPLETE_PROGRESS = 0.01


class ExpanderTask(ABC):
    """A unit of deferred work with a poll-once-per-tick contract."""

    def __init__(self, name: str):
        self.name = name
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def poll(self) -> bool:
        """Advance the task by one tick.

        Returns:
            True once the task has completed. Further polls are no-ops.
        """
        if not self._done:
            self._done = self._step()
            if self._done:
                console_logger.debug(f"Task {self.name} completed")
        return self._done

    @abstractmethod
    def _step(self) -> bool:
        """Do one tick of work and return whether the task is complete."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, done={self._done})"


class SitTask(ExpanderTask):
    """Sit a character down, then snap it to the seat position."""

    def __init__(self, world: World, handle: LiveHandle, seat_position: np.ndarray):
        super().__init__(name=f"sit:{handle.handle_id}")
        self.world = world
        self.handle = handle
        self.seat_position = np.asarray(seat_position, dtype=float)
        self._started = False

    def _step(self) -> bool:
        if not self._started:
            self.world.begin_sit(self.handle)
            self._started = True
        if self.world.get_sit_progress(self.handle) < SIT_COMPLETE_PROGRESS:
            return False
        self.world.finish_pose(self.handle, self.seat_position)
        return True


class StandTask(ExpanderTask):
    """Stand a seated character up."""

    def __init__(self, world: World, handle: LiveHandle):
        super().__init__(name=f"stand:{handle.handle_id}")
        self.world = world
        self.handle = handle
        self._started = False

    def _step(self) -> bool:
        if not self._started:
            self.world.begin_stand(self.handle)
            self._started = True
        if self.world.get_sit_progress(self.handle) > STAND_COMPLETE_PROGRESS:
            return False
        self.world.finish_pose(self.handle, None)
        return True


class WalkTask(ExpanderTask):
    """Animated walk of a character, backed by the world's walk iterator."""

    def __init__(self, world: World, handle: LiveHandle, positions: list[np.ndarray]):
        super().__init__(name=f"walk:{handle.handle_id}")
        self.world = world
        self.handle = handle
        self.positions = [np.asarray(p, dtype=float) for p in positions]
        self._steps: Iterator[None] | None = None

    def _step(self) -> bool:
        if self._steps is None:
            self._steps = self.world.walk_to(self.handle, self.positions)
        try:
            next(self._steps)
        except StopIteration:
            return True
        return False


def run_tasks(
    tasks: list[ExpanderTask],
    on_tick: Callable[[], None] | None = None,
    max_ticks: int = 10_000,
) -> int:
    """Poll every unfinished task once per tick until all have completed.

    Args:
        tasks: Tasks to drive, polled in order.
        on_tick: Called after each tick, e.g. to advance the world's animations.
        max_ticks: Upper bound on ticks.

    Returns:
        Number of ticks used.

    Raises:
        TimeoutError: If tasks are still pending after `max_ticks` ticks.
    """
    ticks = 0
    pending = [task for task in tasks if not task.done]
    while pending:
        if ticks >= max_ticks:
            raise TimeoutError(
                f"{len(pending)} task(s) still pending after {max_ticks} ticks: "
                f"{[task.name for task in pending]}"
            )
        pending = [task for task in pending if not task.poll()]
        ticks += 1
        if on_tick is not None:
            on_tick()
    console_logger.info(f"Completed {len(tasks)} task(s) in {ticks} tick(s)")
    return ticks
