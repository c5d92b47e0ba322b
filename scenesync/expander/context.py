"""Per-call working state shared by the expansion phases."""

from dataclasses import dataclass, field

from scenesync.expander.result import DiagnosticCategory, SceneExpanderResult
from scenesync.graph.alignment import Alignment
from scenesync.graph.environment_graph import EnvironmentGraph, EnvironmentObject
from scenesync.graph.graph_index import GraphIndex


@dataclass
class ExpansionContext:
    """State owned by one `SceneExpander.expand_scene` call.

    Built during setup, threaded explicitly through phases A-D and discarded
    when the call returns.
    """

    graph: EnvironmentGraph
    """Target graph."""

    scene_graph: EnvironmentGraph
    """Live scene graph."""

    index: GraphIndex
    scene_index: GraphIndex
    alignment: Alignment
    room_objects: dict[int, list[EnvironmentObject]]
    result: SceneExpanderResult
    exact_alignment: bool

    missing_objects: list[EnvironmentObject] = field(default_factory=list)
    """Target nodes with no live counterpart after Phase A."""

    transformed_ids: set[int] = field(default_factory=set)
    """Target ids whose live pose was overwritten from the target transform."""

    character: EnvironmentObject | None = None
    """Target character node, if any."""

    scene_character: EnvironmentObject | None = None
    """Live character node aligned to a target node, if any."""

    def report(self, category: DiagnosticCategory, item: object) -> None:
        self.result.add_item(category, item)

    def live_id(self, obj: EnvironmentObject) -> int | None:
        """Id of the live node aligned to a target node."""
        live = self.alignment.get(obj.id)
        return live.id if live is not None else None

    def live_ids(self, objs: list[EnvironmentObject]) -> set[int]:
        """Live ids of the aligned members of `objs`."""
        ids = (self.live_id(obj) for obj in objs)
        return {live_id for live_id in ids if live_id is not None}
