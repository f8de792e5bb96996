from datetime import date

import pytest

from taskboard.db import SQLiteRepository
from taskboard.errors import ConcurrencyConflictError, StorageError
from taskboard.models import Priority
from taskboard.query import build_query
from taskboard.schemas import TaskCreate, TaskPatch, TaskUpdate
from taskboard.seed import seed_demo_tasks

from .factories import titles

DUE = date(2025, 10, 1)


def new_task(repo, title="Buy milk", **kwargs):
    data = {"title": title, "due_date": DUE}
    data.update(kwargs)
    return repo.create(TaskCreate(**data))


class TestCreateAndGet:
    def test_create_returns_stored_entity(self, repo):
        created = new_task(repo, description="Milk and eggs", priority=Priority.HIGH, tags=["home", "HOME", "shop"])

        assert created["id"]
        assert created["title"] == "Buy milk"
        assert created["description"] == "Milk and eggs"
        assert created["due_date"] == DUE
        assert created["priority"] is Priority.HIGH
        assert created["tags"] == ["home", "shop"]
        assert created["completed"] is False
        assert created["deleted_at"] is None
        assert created["created_at"] == created["updated_at"]
        assert repo.get(created["id"]) == created

    def test_ids_are_unique(self, repo):
        ids = {new_task(repo, f"Task {i}")["id"] for i in range(5)}
        assert len(ids) == 5

    def test_unknown_id(self, repo):
        assert repo.get("missing") is None
        assert repo.update("missing", TaskUpdate(title="x", priority="Low")) is None
        assert repo.patch("missing", TaskPatch(completed=True)) is None
        assert repo.soft_delete("missing") is False


class TestUpdate:
    def test_replaces_every_field(self, repo):
        created = new_task(repo, description="old", tags=["a"])

        updated = repo.update(created["id"], TaskUpdate(title="New", priority="High", completed=True))

        assert updated["title"] == "New"
        assert updated["description"] is None
        assert updated["due_date"] is None
        assert updated["tags"] == []
        assert updated["completed"] is True
        assert updated["row_version"] != created["row_version"]
        assert updated["updated_at"] >= created["updated_at"]
        assert updated["created_at"] == created["created_at"]
        assert repo.get(created["id"])["title"] == "New"

    def test_stale_row_version_conflicts(self, repo):
        created = new_task(repo)
        repo.patch(created["id"], TaskPatch(title="First writer"))

        with pytest.raises(ConcurrencyConflictError):
            repo.update(created["id"], TaskUpdate(title="Second", priority="Low", row_version=created["row_version"]))

        assert repo.get(created["id"])["title"] == "First writer"

    def test_current_row_version_is_accepted(self, repo):
        created = new_task(repo)
        updated = repo.update(created["id"], TaskUpdate(title="Ok", priority="Low", row_version=created["row_version"]))
        assert updated["title"] == "Ok"


class TestPatch:
    def test_omitted_fields_are_untouched(self, repo):
        created = new_task(repo, description="keep me", tags=["home"])

        patched = repo.patch(created["id"], TaskPatch(completed=True))

        assert patched["completed"] is True
        assert patched["description"] == "keep me"
        assert patched["due_date"] == DUE
        assert patched["tags"] == ["home"]

    def test_explicit_null_clears(self, repo):
        created = new_task(repo, description="drop me", tags=["home"])

        patched = repo.patch(created["id"], TaskPatch(description=None, due_date=None, tags=None))

        assert patched["description"] is None
        assert patched["due_date"] is None
        assert patched["tags"] == []
        assert patched["title"] == "Buy milk"

    def test_updated_at_never_goes_backwards(self, repo):
        created = new_task(repo)
        stamps = [created["updated_at"]]
        for i in range(3):
            stamps.append(repo.patch(created["id"], TaskPatch(title=f"v{i}"))["updated_at"])
        assert stamps == sorted(stamps)

    def test_stale_row_version_conflicts(self, repo):
        created = new_task(repo)
        repo.patch(created["id"], TaskPatch(completed=True))
        with pytest.raises(ConcurrencyConflictError):
            repo.patch(created["id"], TaskPatch(title="late", row_version=created["row_version"]))


class TestSoftDelete:
    def test_deleted_task_is_hidden_but_kept(self, repo):
        keep = new_task(repo, "Keep")
        gone = new_task(repo, "Gone")

        assert repo.soft_delete(gone["id"]) is True

        assert repo.get(gone["id"]) is None
        hidden = repo.get(gone["id"], include_deleted=True)
        assert hidden is not None
        assert hidden["deleted_at"] is not None
        assert titles(repo.list().items) == ["Keep"]
        assert repo.count() == 1
        assert repo.get(keep["id"]) is not None

    def test_deleted_task_cannot_be_changed(self, repo):
        created = new_task(repo)
        repo.soft_delete(created["id"])

        assert repo.soft_delete(created["id"]) is False
        assert repo.patch(created["id"], TaskPatch(completed=True)) is None
        assert repo.update(created["id"], TaskUpdate(title="x", priority="Low")) is None


class TestListing:
    def test_priority_filter_and_total(self, repo):
        new_task(repo, "Low", priority=Priority.LOW)
        new_task(repo, "Med", priority=Priority.MED)
        new_task(repo, "High", priority=Priority.HIGH)

        page = repo.list(build_query(priorities=[Priority.HIGH, Priority.LOW]))

        assert page.total == 2
        assert set(titles(page.items)) == {"Low", "High"}

    def test_tag_filter(self, repo):
        new_task(repo, "Home", tags=["Home"])
        new_task(repo, "Work", tags=["work"])

        page = repo.list(build_query(tags=["home"]))

        assert titles(page.items) == ["Home"]

    def test_count(self, repo):
        assert repo.count() == 0
        for i in range(3):
            new_task(repo, f"Task {i}")
        assert repo.count() == 3


class TestSeed:
    def test_seeds_empty_store_once(self, repo):
        assert seed_demo_tasks(repo, today=DUE) == 5
        assert repo.count() == 5
        assert seed_demo_tasks(repo, today=DUE) == 0
        assert repo.count() == 5

    def test_seeded_tasks_are_valid(self, repo):
        seed_demo_tasks(repo, today=DUE)
        items = repo.list(build_query(page_size=100)).items
        assert all(t["due_date"] > DUE for t in items)
        assert sum(1 for t in items if t["completed"]) == 1


class TestSQLiteFailures:
    def test_unreadable_insert_is_a_storage_error(self, tmp_path):
        class LosingRepository(SQLiteRepository):
            def _fetch(self, conn, task_id, include_deleted=False):
                return None

        repo = LosingRepository(str(tmp_path / "tasks.db"))

        with pytest.raises(StorageError):
            new_task(repo)
