from scenesync.graph.alignment import Alignment, GraphObjectAlignment
from scenesync.graph.environment_graph import (
    CHARACTER_CLASS_NAME,
    NEW_OBJECT_ID,
    ROOMS_CATEGORY,
    EnvironmentGraph,
    EnvironmentObject,
    EnvironmentRelation,
    ObjectBounds,
    ObjectRelation,
    ObjectState,
)
from scenesync.graph.graph_index import GraphIndex, create_room_objects_map

__all__ = [
    "Alignment",
    "CHARACTER_CLASS_NAME",
    "create_room_objects_map",
    "EnvironmentGraph",
    "EnvironmentObject",
    "EnvironmentRelation",
    "GraphIndex",
    "GraphObjectAlignment",
    "NEW_OBJECT_ID",
    "ObjectBounds",
    "ObjectRelation",
    "ObjectState",
    "ROOMS_CATEGORY",
]
