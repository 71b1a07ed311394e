"""Shared fixtures: every test gets its own data file under tmp_path."""

import pytest
from fastapi.testclient import TestClient

from taskboard.database import Store, get_store
from taskboard.main import app


@pytest.fixture()
def data_file(tmp_path):
    return tmp_path / "store.json"


@pytest.fixture()
def store(data_file):
    return Store(data_file)


@pytest.fixture()
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
