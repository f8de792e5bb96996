from __future__ import annotations

import logging
from threading import Event
from typing import Optional

from .csv_import import CsvSource, ImportResult, import_tasks
from .models import TaskEntity
from .query import QueryPage, TaskQuery
from .repositories import Repository
from .schemas import TaskCreate, TaskPatch, TaskUpdate
from .validation import validate_create, validate_patch, validate_update

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class TaskService:
    """
    Task use cases on top of a Repository.

    Every write is validated first, so callers see a TaskValidationError for a
    rule violation, None/False for a missing task, and a
    ConcurrencyConflictError (raised by the repository) for a stale
    row_version. These outcomes never overlap.
    """

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def get(self, task_id: str) -> Optional[TaskEntity]:
        return self._repo.get(task_id)

    def list(self, query: TaskQuery, cancel: Optional[Event] = None) -> QueryPage:
        return self._repo.list(query, cancel=cancel)

    def create(self, request: TaskCreate) -> TaskEntity:
        validate_create(request)
        created = self._repo.create(request)
        logger.info("Task created id=%s", created["id"])
        return created

    def update(self, task_id: str, request: TaskUpdate) -> Optional[TaskEntity]:
        validate_update(request)
        return self._repo.update(task_id, request)

    def patch(self, task_id: str, request: TaskPatch) -> Optional[TaskEntity]:
        validate_patch(request)
        return self._repo.patch(task_id, request)

    def soft_delete(self, task_id: str) -> bool:
        deleted = self._repo.soft_delete(task_id)
        if deleted:
            logger.info("Task soft-deleted id=%s", task_id)
        return deleted

    def import_csv(self, source: CsvSource, cancel: Optional[Event] = None) -> ImportResult:
        return import_tasks(source, self._repo, cancel=cancel)
