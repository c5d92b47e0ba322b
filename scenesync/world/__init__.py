from scenesync.world.memory_world import HandAnchor, InMemoryWorld, PrefabSpec

__all__ = ["HandAnchor", "InMemoryWorld", "PrefabSpec"]
