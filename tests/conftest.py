from __future__ import annotations

import os
from pathlib import Path

import pytest

# Tests always run against the in-memory backend unless a test wires SQLite itself.
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from fastapi.testclient import TestClient  # noqa: E402

from taskboard.db import SQLiteRepository  # noqa: E402
from taskboard.main import app  # noqa: E402
from taskboard.repositories import InMemoryRepository, Repository, get_repository  # noqa: E402


@pytest.fixture()
def memory_repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture(params=["memory", "sqlite"])
def repo(request: pytest.FixtureRequest, tmp_path: Path) -> Repository:
    """Each storage backend in turn, starting empty."""
    if request.param == "sqlite":
        return SQLiteRepository(str(tmp_path / "tasks.db"))
    return InMemoryRepository()


@pytest.fixture()
def client(memory_repo: InMemoryRepository):
    """API client bound to a fresh in-memory repository."""
    app.dependency_overrides[get_repository] = lambda: memory_repo
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_repository, None)
