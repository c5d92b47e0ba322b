from scenesync.expander.config import SceneExpanderConfig, create_scene_expander_config
from scenesync.expander.providers import (
    AssetsProvider,
    DataProviders,
    DictAssetsProvider,
    DictNameEquivalenceProvider,
    NameEquivalenceProvider,
)
from scenesync.expander.result import (
    DiagnosticCategory,
    ExpanderError,
    SceneExpanderResult,
)
from scenesync.expander.scene_expander import SceneExpander
from scenesync.expander.tasks import (
    ExpanderTask,
    SitTask,
    StandTask,
    WalkTask,
    run_tasks,
)
from scenesync.expander.world import (
    HandSide,
    LiveHandle,
    ObjectCapabilities,
    PlacementSearchError,
    SwitchAction,
    World,
)

__all__ = [
    "AssetsProvider",
    "create_scene_expander_config",
    "DataProviders",
    "DiagnosticCategory",
    "DictAssetsProvider",
    "DictNameEquivalenceProvider",
    "ExpanderError",
    "ExpanderTask",
    "HandSide",
    "LiveHandle",
    "NameEquivalenceProvider",
    "ObjectCapabilities",
    "PlacementSearchError",
    "run_tasks",
    "SceneExpander",
    "SceneExpanderConfig",
    "SceneExpanderResult",
    "SitTask",
    "StandTask",
    "SwitchAction",
    "WalkTask",
    "World",
]
