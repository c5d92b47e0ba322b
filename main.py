"""
Main file for the project. Expands a scene so that it matches a target graph.
"""

import logging
import os
import time

from datetime import timedelta
from pathlib import Path

import hydra

from omegaconf import DictConfig, OmegaConf
from omegaconf.omegaconf import open_dict

from scenesync.utils.logging import FileLoggingContext

console_logger = logging.getLogger(__name__)


def run_local(cfg: DictConfig):
    # Delay the import so config errors surface before loading the engine.
    from scenesync.runner import run_scene_expansion

    start_time = time.time()
    OmegaConf.resolve(cfg)

    # Set up the output directory.
    hydra_cfg = hydra.core.hydra_config.HydraConfig.get()
    output_dir = Path(hydra_cfg.runtime.output_dir)
    with open_dict(cfg):
        cfg.output_dir = str(output_dir)

    with FileLoggingContext(log_file_path=output_dir / "expansion.log"):
        console_logger.info(f"Outputs will be saved to: {output_dir}")

        resolved_config_yaml = OmegaConf.to_yaml(cfg)
        console_logger.info("Resolved configuration:\n" + resolved_config_yaml)
        config_file = output_dir / "resolved_config.yaml"
        with open(config_file, "w") as f:
            f.write(resolved_config_yaml)

        result = run_scene_expansion(cfg)
        status = "succeeded" if result["success"] else "finished with diagnostics"
        console_logger.info(
            f"Scene expansion {status} in {timedelta(seconds=time.time() - start_time)}"
        )


@hydra.main(version_base=None, config_path="configurations", config_name="config")
def run(cfg: DictConfig):
    for key in ("target_graph_path", "scene_path", "assets_path"):
        if cfg.get(key) is None:
            raise ValueError(
                f"Must specify '{key}' with command line argument '{key}=[path]'"
            )

    # Configure logging level from LOGLEVEL environment variable.
    log_level = os.environ.get("LOGLEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    run_local(cfg)


if __name__ == "__main__":
    run()
