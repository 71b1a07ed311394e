import json
import os
from datetime import timedelta

import pytest

from taskboard.database import (
    Store,
    create_document,
    ensure_default_project,
    get_document,
    get_documents,
    next_id,
)
from taskboard.errors import NotFound, StorageError
from taskboard.schemas import AppData, Comment, Priority, Project, Task, TaskStatus, TimeEntry, now


def _sample() -> AppData:
    stamp = now()
    return AppData(
        projects=[Project(id=1, name="Default"), Project(id=2, name="Work", description="day job", color="#ff0000")],
        tasks=[
            Task(
                id=1, project_id=2, description="Ship it", category="dev", priority=Priority.URGENT,
                status=TaskStatus.DONE, due_date=stamp + timedelta(days=1), completed_at=stamp,
                tags=["release", "q1"], assignee="sam", estimated_hours=2.5, position=3,
                comments=[Comment(id=1, task_id=1, author="sam", text="on it")],
            ),
            Task(id=2, project_id=1, description="Plain"),
        ],
        time_entries=[
            TimeEntry(id=1, task_id=1, start_time=stamp - timedelta(hours=1), end_time=stamp, duration=3600),
            TimeEntry(id=2, task_id=2, note="running"),
        ],
    )


def test_missing_file_loads_empty_store(store):
    data = store.load()
    assert data == AppData()
    assert not store.exists()


def test_round_trip_is_lossless(store):
    original = _sample()
    store.save(original)
    loaded = store.load()
    assert loaded.model_dump() == original.model_dump()
    assert loaded.tasks[1].due_date is None
    assert loaded.tasks[1].completed_at is None
    assert loaded.time_entries[1].end_time is None


def test_document_is_indented_json(store, data_file):
    store.save(_sample())
    text = data_file.read_text()
    assert text.startswith("{\n  ")
    doc = json.loads(text)
    assert set(doc) == {"projects", "tasks", "time_entries"}
    assert doc["tasks"][0]["done"] is True
    assert doc["tasks"][0]["priority"] == 3


def test_save_creates_parent_directories(tmp_path):
    store = Store(tmp_path / "nested" / "dir" / "store.json")
    store.save(AppData())
    assert store.exists()


def test_failed_write_keeps_previous_file(store, data_file, monkeypatch):
    store.save(_sample())
    before = data_file.read_text()

    def fail(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", fail)
    with pytest.raises(StorageError, match="disk full"):
        store.save(AppData())
    assert data_file.read_text() == before
    assert [p.name for p in data_file.parent.iterdir()] == [data_file.name]


def test_corrupt_file_is_a_storage_error(store, data_file):
    data_file.write_text("{not json")
    with pytest.raises(StorageError):
        store.load()


def test_unreadable_path_is_a_storage_error(tmp_path):
    with pytest.raises(StorageError):
        Store(tmp_path).load()


def test_transaction_saves_on_success(store):
    with store.transaction() as data:
        create_document(data, "projects", name="Work")
    assert [p.name for p in store.load().projects] == ["Work"]


def test_transaction_discards_on_error(store):
    store.save(_sample())
    with pytest.raises(NotFound):
        with store.transaction() as data:
            data.tasks.clear()
            get_document(data, "tasks", 42)
    assert len(store.load().tasks) == 2


def test_next_id_is_max_plus_one():
    assert next_id([]) == 1
    assert next_id([Project(id=3, name="a"), Project(id=7, name="b"), Project(id=5, name="c")]) == 8


def test_create_document_assigns_next_id():
    data = _sample()
    task = create_document(data, "tasks", description="Third")
    assert task.id == 3
    assert data.tasks[-1] is task
    entry = create_document(data, "time_entries", task_id=9)
    assert entry.id == 3


def test_get_documents_filters_by_equality():
    data = _sample()
    assert [t.id for t in get_documents(data, "tasks", {"project_id": 1})] == [2]
    assert len(get_documents(data, "tasks")) == 2


def test_get_document_not_found_names_the_entity():
    with pytest.raises(NotFound, match="Time entry #9 not found"):
        get_document(_sample(), "time_entries", 9)


def test_ensure_default_project_is_idempotent():
    data = AppData(projects=[Project(id=4, name="Work")])
    first = ensure_default_project(data)
    second = ensure_default_project(data)
    assert first is second
    assert first.id == 5
    assert first.color == "#6366f1"
    assert len(data.projects) == 2
