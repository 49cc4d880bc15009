import pytest
from fastapi.testclient import TestClient

from backend.app.main import app, get_store
from backend.app.store import ProgressStore


@pytest.fixture
def store(tmp_path):
    return ProgressStore(tmp_path / ".data" / "progress.json")


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()
