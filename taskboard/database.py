"""
Database

The store is a single JSON document on disk (see schemas.AppData). Every
operation reads the whole document, mutates it in memory and writes the whole
document back. ``Store.transaction`` runs that cycle under a lock shared by
every Store pointing at the same file, so request threads in the API server
cannot interleave and lose each other's writes or hand out the same id twice.

Helpers at the bottom work on a loaded AppData:

- create_document(data, "tasks", **fields) -> appends a new Task with the next id
- get_documents(data, "tasks", {"project_id": 2}) -> equality filter
- get_document(data, "tasks", 7) -> the Task or NotFound
"""

import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from pydantic import BaseModel, ValidationError

from taskboard import config
from taskboard.errors import NotFound, StorageError
from taskboard.schemas import (
    DEFAULT_COLOR,
    DEFAULT_PROJECT_NAME,
    AppData,
    Project,
    Task,
    TimeEntry,
    now,
)

logger = logging.getLogger(__name__)

COLLECTIONS = {
    "projects": (Project, "project"),
    "tasks": (Task, "task"),
    "time_entries": (TimeEntry, "time entry"),
}

_locks: Dict[Path, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = path.resolve()
    with _locks_guard:
        if key not in _locks:
            _locks[key] = threading.RLock()
        return _locks[key]


class Store:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = _lock_for(self.path)

    def load(self) -> AppData:
        """Read the whole store; a missing file is an empty store."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No data file at %s yet, starting empty", self.path)
            return AppData()
        except OSError as e:
            logger.exception("Could not read %s", self.path)
            raise StorageError(f"Failed to load data: {e}") from e
        try:
            return AppData.model_validate_json(raw)
        except ValidationError as e:
            logger.exception("Could not decode %s", self.path)
            raise StorageError(f"Failed to load data: {self.path} is not a valid store") from e

    def save(self, data: AppData) -> None:
        """Replace the data file with ``data``, atomically."""
        content = data.model_dump_json(indent=2)
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                tmp.write(content)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            logger.exception("Could not write %s", self.path)
            raise StorageError(f"Failed to save data: {e}") from e
        finally:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
        logger.debug(
            "Saved %d projects, %d tasks, %d time entries to %s",
            len(data.projects), len(data.tasks), len(data.time_entries), self.path,
        )

    @contextmanager
    def transaction(self) -> Iterator[AppData]:
        """Load, hand the document to the caller, save if the block succeeds."""
        with self._lock:
            data = self.load()
            yield data
            self.save(data)

    def snapshot(self) -> AppData:
        with self._lock:
            return self.load()

    def exists(self) -> bool:
        return self.path.exists()


@lru_cache(maxsize=None)
def _store_for(path: Path) -> Store:
    return Store(path)


def get_store() -> Store:
    """The store behind the configured data file."""
    return _store_for(config.data_file())


def next_id(items: List[BaseModel]) -> int:
    return max((item.id for item in items), default=0) + 1


def create_document(data: AppData, collection: str, **fields) -> BaseModel:
    model, _ = COLLECTIONS[collection]
    items = getattr(data, collection)
    doc = model(id=next_id(items), **fields)
    items.append(doc)
    return doc


def get_documents(data: AppData, collection: str, filter_dict: Optional[dict] = None) -> List[BaseModel]:
    items = getattr(data, collection)
    if not filter_dict:
        return list(items)
    return [
        item for item in items
        if all(getattr(item, key) == value for key, value in filter_dict.items())
    ]


def get_document(data: AppData, collection: str, doc_id: int) -> BaseModel:
    _, label = COLLECTIONS[collection]
    for item in getattr(data, collection):
        if item.id == doc_id:
            return item
    raise NotFound(f"{label.capitalize()} #{doc_id} not found")


def ensure_default_project(data: AppData) -> Project:
    for project in data.projects:
        if project.name == DEFAULT_PROJECT_NAME:
            return project
    stamp = now()
    project = create_document(
        data, "projects",
        name=DEFAULT_PROJECT_NAME, color=DEFAULT_COLOR, created_at=stamp, updated_at=stamp,
    )
    logger.info("Created %s project #%d", DEFAULT_PROJECT_NAME, project.id)
    return project
