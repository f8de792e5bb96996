from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import List, Optional

from .models import Priority
from .repositories import Repository
from .schemas import TaskCreate, TaskPatch

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def seed_demo_tasks(repo: Repository, today: Optional[date] = None) -> int:
    """
    Create a small, fixed set of demo tasks when the store has no active tasks.

    Returns the number of tasks created (0 when the store was not empty).
    """
    if repo.count() > 0:
        return 0

    today = today or date.today()
    demo: List[tuple] = [
        ("Buy milk", None, 2, Priority.MED, ["home"], False),
        ("Write weekly report", "Summarize progress and blockers", 1, Priority.HIGH, ["work"], False),
        ("Pick up dry cleaning", None, 3, Priority.LOW, ["errands"], False),
        ("Plan sprint backlog", None, 5, Priority.MED, ["work", "planning"], True),
        ("Book dentist appointment", None, 14, Priority.MED, ["health"], False),
    ]
    for title, description, days, priority, tags, completed in demo:
        created = repo.create(
            TaskCreate(
                title=title,
                description=description,
                due_date=today + timedelta(days=days),
                priority=priority,
                tags=tags,
            )
        )
        if completed:
            repo.patch(created["id"], TaskPatch(completed=True))

    logger.info("Seeded %d tasks", len(demo))
    return len(demo)
