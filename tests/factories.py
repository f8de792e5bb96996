from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from taskboard.models import Priority, TaskEntity

BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_task(
    title: str,
    minutes: int = 0,
    priority: Priority = Priority.MED,
    description: Optional[str] = None,
    tags: Optional[List[str]] = None,
    due_date: Optional[date] = None,
    completed: bool = False,
) -> TaskEntity:
    """Build a stored-looking task whose created_at is BASE_TIME + minutes."""
    created = BASE_TIME + timedelta(minutes=minutes)
    return {
        "id": uuid.uuid4().hex,
        "title": title,
        "description": description,
        "due_date": due_date,
        "priority": priority,
        "tags": list(tags or []),
        "completed": completed,
        "created_at": created,
        "updated_at": created,
        "deleted_at": None,
        "row_version": uuid.uuid4().hex,
    }


def titles(items: List[TaskEntity]) -> List[str]:
    return [t["title"] for t in items]
