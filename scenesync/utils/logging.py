import json
import logging

from pathlib import Path
from typing import Any

console_logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class FileLoggingContext:
    """Context manager that mirrors every log record into a run log file.

    The file handler is attached to the root logger, so records from all
    modules are captured while the context is active.
    """

    def __init__(self, log_file_path: Path, suppress_stdout: bool = False):
        """
        Args:
            log_file_path: Log file to write. Parent directories are created.
            suppress_stdout: If True, detach the other root handlers while the
                context is active so logs only go to the file.
        """
        self.log_file_path = Path(log_file_path)
        self.suppress_stdout = suppress_stdout
        self.file_handler: logging.FileHandler | None = None
        self.detached_handlers: list[logging.Handler] = []

    def __enter__(self) -> "FileLoggingContext":
        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        self.file_handler = logging.FileHandler(self.log_file_path)
        self.file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

        root_logger = logging.getLogger()
        root_logger.addHandler(self.file_handler)

        if self.suppress_stdout:
            self.detached_handlers = [
                handler
                for handler in root_logger.handlers
                if handler is not self.file_handler
            ]
            for handler in self.detached_handlers:
                root_logger.removeHandler(handler)

        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        root_logger = logging.getLogger()
        if self.file_handler in root_logger.handlers:
            root_logger.removeHandler(self.file_handler)

        for handler in self.detached_handlers:
            if handler not in root_logger.handlers:
                root_logger.addHandler(handler)
        self.detached_handlers = []

        if self.file_handler is not None:
            self.file_handler.close()
            self.file_handler = None


def write_json(path: Path, data: Any) -> Path:
    """Write `data` as indented JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    console_logger.info(f"Saved {path}")
    return path
