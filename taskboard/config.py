"""
Runtime configuration

Everything is read from environment variables so the shell and the API server
can be pointed at the same data file without extra flags:

- TASKBOARD_DATA_FILE: path of the JSON document holding the whole store
- TASKBOARD_LOG_LEVEL: root logging level (DEBUG, INFO, WARNING, ...)
- TASKBOARD_WEB_DIR: optional directory with a static web UI served at /ui
- HOST / PORT: address the API server binds to
"""

import logging
import os
from pathlib import Path
from typing import Optional

DEFAULT_FILENAME = ".project_manager.json"
DEFAULT_LOG_LEVEL = "WARNING"
# Names both logging and uvicorn understand.
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def data_file() -> Path:
    configured = os.getenv("TASKBOARD_DATA_FILE")
    if configured:
        return Path(configured).expanduser()
    # Path.home() raises RuntimeError when no home directory can be resolved;
    # that is the one startup failure we let escape.
    return Path.home() / DEFAULT_FILENAME


def web_dir() -> Optional[Path]:
    configured = os.getenv("TASKBOARD_WEB_DIR")
    if not configured:
        return None
    path = Path(configured).expanduser()
    return path if path.is_dir() else None


def host() -> str:
    return os.getenv("HOST", "0.0.0.0")


def port() -> int:
    return int(os.getenv("PORT", 8080))


def log_level() -> str:
    """TASKBOARD_LOG_LEVEL, or WARNING when it is unset or not a level name."""
    level = os.getenv("TASKBOARD_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper()
    return level if level in LOG_LEVELS else DEFAULT_LOG_LEVEL


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=level or log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
