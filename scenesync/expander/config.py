"""Scene expander configuration."""

from dataclasses import asdict, dataclass

from omegaconf import DictConfig, OmegaConf

from scenesync.graph.alignment import ALIGNMENT_METHODS


@dataclass
class SceneExpanderConfig:
    """Settings of one scene expander."""

    randomize: bool = False
    """Pick prefabs, equivalent names and positions at random instead of in
    preference order."""

    ignore_obstacles: bool = False
    """Skip collision checks against other objects during placement search."""

    animate_character: bool = False
    """Walk the character to new positions instead of warping it."""

    transfer_transform: bool = False
    """Pin objects with an explicit target transform to that exact pose."""

    exact_alignment: bool = False
    """Align target and live nodes by id instead of by sequence alignment."""

    gap_penalty: float = -1.0
    """Alignment score for skipping one node."""

    similarity_penalty: float = -1000.0
    """Alignment score for pairing nodes of non-equivalent classes."""

    alignment_method: str = "sequence"
    """'sequence' (order-dependent) or 'matching' (order-independent)."""

    room_surface_proximity: float = 2.0
    """Max distance (meters) from the room center of a fallback surface."""

    companion_offset: float = 0.3
    """Lateral offset (meters) between a computer and its screen."""

    random_seed: int | None = None
    """Seed for randomized choices. None draws fresh entropy."""

    def __post_init__(self) -> None:
        if self.alignment_method not in ALIGNMENT_METHODS:
            raise ValueError(
                f"alignment_method must be one of {ALIGNMENT_METHODS}, "
                f"got {self.alignment_method!r}"
            )
        if self.room_surface_proximity <= 0.0:
            raise ValueError("room_surface_proximity must be positive")

    @classmethod
    def from_cfg(cls, cfg: DictConfig) -> "SceneExpanderConfig":
        """Create from a config node holding scene expander keys.

        Accepts either the `scene_expander` group itself or a parent config
        that contains it. Missing keys keep their defaults.
        """
        if "scene_expander" in cfg:
            cfg = cfg.scene_expander
        values = OmegaConf.to_container(cfg, resolve=True)
        known = {key: values[key] for key in asdict(cls()) if key in values}
        return cls(**known)


def create_scene_expander_config(**overrides) -> DictConfig:
    """Create a standalone scene expander config.

    Useful for scripts and tests that do not go through Hydra.

    Example:
        >>> cfg = create_scene_expander_config(exact_alignment=True)
        >>> SceneExpanderConfig.from_cfg(cfg).exact_alignment
        True
    """
    values = asdict(SceneExpanderConfig())
    unknown = set(overrides) - set(values)
    if unknown:
        raise ValueError(f"Unknown scene expander settings: {sorted(unknown)}")
    values.update(overrides)
    return OmegaConf.create({"scene_expander": values})
