from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from functools import lru_cache
from threading import Event, RLock
from typing import Dict, List, Optional

from .errors import ConcurrencyConflictError
from .models import TaskEntity
from .query import QueryPage, TaskQuery, run_query
from .schemas import TaskCreate, TaskPatch, TaskUpdate
from .settings import get_settings
from .validation import MAX_TAGS

logger = logging.getLogger(__name__)

# Fields a TaskPatch may write, in the order they are applied.
PATCHABLE_FIELDS = ("title", "description", "due_date", "priority", "tags", "completed")


# PUBLIC_INTERFACE
def is_active(entity: TaskEntity) -> bool:
    """The soft-delete filter: only tasks without deleted_at are visible to normal reads."""
    return entity["deleted_at"] is None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_row_version() -> str:
    return uuid.uuid4().hex


def check_row_version(entity: TaskEntity, expected: Optional[str]) -> None:
    """Raise ConcurrencyConflictError when the caller's token is stale. No token means no check."""
    if expected is not None and expected != entity["row_version"]:
        raise ConcurrencyConflictError(
            "Update conflict. The resource was modified by another process."
        )


def apply_update(entity: TaskEntity, data: TaskUpdate, now: datetime) -> TaskEntity:
    """Return a copy of entity with every field replaced from a full update."""
    updated = entity.copy()
    updated["title"] = data.title
    updated["description"] = data.description
    updated["due_date"] = data.due_date
    updated["priority"] = data.priority
    updated["tags"] = list(data.tags)[:MAX_TAGS]
    updated["completed"] = data.completed
    updated["updated_at"] = max(now, entity["updated_at"])
    updated["row_version"] = new_row_version()
    return updated


def apply_patch(entity: TaskEntity, data: TaskPatch, now: datetime) -> TaskEntity:
    """Return a copy of entity with only the fields present in the patch applied."""
    updated = entity.copy()
    for name in PATCHABLE_FIELDS:
        if not data.provided(name):
            continue
        value = getattr(data, name)
        if name == "tags":
            value = list(value or [])
        updated[name] = value  # type: ignore[literal-required]
    updated["updated_at"] = max(now, entity["updated_at"])
    updated["row_version"] = new_row_version()
    return updated


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract repository contract for task storage backends."""

    @abstractmethod
    def create(self, data: TaskCreate) -> TaskEntity:
        """Create and return a new TaskEntity."""

    @abstractmethod
    def get(self, task_id: str, include_deleted: bool = False) -> Optional[TaskEntity]:
        """
        Return a TaskEntity by id, or None if not found.
        Soft-deleted tasks are only returned when include_deleted is True.
        """

    @abstractmethod
    def update(self, task_id: str, data: TaskUpdate) -> Optional[TaskEntity]:
        """Replace all fields of an active TaskEntity. Return the updated entity or None if not found."""

    @abstractmethod
    def patch(self, task_id: str, data: TaskPatch) -> Optional[TaskEntity]:
        """Apply the fields present in data to an active TaskEntity. Return it or None if not found."""

    @abstractmethod
    def soft_delete(self, task_id: str) -> bool:
        """Mark an active task deleted. Return True if it existed, False otherwise."""

    @abstractmethod
    def candidates(self, query: TaskQuery) -> List[TaskEntity]:
        """
        Return the active tasks the query engine should consider.

        Backends may pre-filter on any dimension they can index, as long as
        the result is a superset of the final matches.
        """

    @abstractmethod
    def count(self) -> int:
        """Return the number of active tasks."""

    def list(self, query: Optional[TaskQuery] = None, cancel: Optional[Event] = None) -> QueryPage:
        """Run the query engine over this backend's candidates."""
        q = query or TaskQuery()
        return run_query(self.candidates(q), q, cancel=cancel)


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, TaskEntity] = {}

    def _now(self) -> datetime:
        return utcnow()

    def _active(self, task_id: str) -> Optional[TaskEntity]:
        item = self._items.get(task_id)
        if item is None or not is_active(item):
            return None
        return item

    def create(self, data: TaskCreate) -> TaskEntity:
        now = self._now()
        entity: TaskEntity = {
            "id": uuid.uuid4().hex,
            "title": data.title,
            "description": data.description,
            "due_date": data.due_date,
            "priority": data.priority,
            "tags": list(data.tags)[:MAX_TAGS],
            "completed": False,
            "created_at": now,
            "updated_at": now,
            "deleted_at": None,
            "row_version": new_row_version(),
        }
        with self._lock:
            self._items[entity["id"]] = entity
        logger.debug("Task created id=%s", entity["id"])
        return _copy(entity)

    def get(self, task_id: str, include_deleted: bool = False) -> Optional[TaskEntity]:
        with self._lock:
            item = self._items.get(task_id) if include_deleted else self._active(task_id)
            return None if item is None else _copy(item)

    def update(self, task_id: str, data: TaskUpdate) -> Optional[TaskEntity]:
        with self._lock:
            existing = self._active(task_id)
            if existing is None:
                return None
            check_row_version(existing, data.row_version)
            updated = apply_update(existing, data, self._now())
            self._items[task_id] = updated
            return _copy(updated)

    def patch(self, task_id: str, data: TaskPatch) -> Optional[TaskEntity]:
        with self._lock:
            existing = self._active(task_id)
            if existing is None:
                return None
            check_row_version(existing, data.row_version)
            updated = apply_patch(existing, data, self._now())
            self._items[task_id] = updated
            return _copy(updated)

    def soft_delete(self, task_id: str) -> bool:
        with self._lock:
            existing = self._active(task_id)
            if existing is None:
                return False
            deleted = existing.copy()
            now = self._now()
            deleted["deleted_at"] = now
            deleted["updated_at"] = max(now, existing["updated_at"])
            deleted["row_version"] = new_row_version()
            self._items[task_id] = deleted
            return True

    def candidates(self, query: TaskQuery) -> List[TaskEntity]:
        with self._lock:
            # Return copies to avoid external mutation
            return [_copy(t) for t in self._items.values() if is_active(t)]

    def count(self) -> int:
        with self._lock:
            return sum(1 for t in self._items.values() if is_active(t))


def _copy(entity: TaskEntity) -> TaskEntity:
    copied = entity.copy()
    copied["tags"] = list(entity["tags"])
    return copied


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_repository() -> Repository:
    """
    Return the process-wide repository configured in settings.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository at SQLITE_DB_PATH
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        logger.info("Using SQLite repository at %s", settings.sqlite_db_path)
        return SQLiteRepository(settings.sqlite_db_path)
    logger.info("Using in-memory repository")
    return InMemoryRepository()
