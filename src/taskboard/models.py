from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Optional, TypedDict


# PUBLIC_INTERFACE
class Priority(str, Enum):
    """Task urgency classification. Ordered Low < Med < High."""

    LOW = "Low"
    MED = "Med"
    HIGH = "High"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.LOW: 0, Priority.MED: 1, Priority.HIGH: 2}


# PUBLIC_INTERFACE
class SortField(str, Enum):
    """Fields the list endpoint can order by."""

    CREATED_AT = "created_at"
    DUE_DATE = "due_date"
    PRIORITY = "priority"


# PUBLIC_INTERFACE
class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    Storage-neutral representation of a task.

    Fields:
    - id: Opaque unique identifier (UUID4 hex)
    - title: Short title (1..200 chars)
    - description: Optional detailed description (<= 1000 chars)
    - due_date: Optional calendar date, no time component
    - priority: Priority classification
    - tags: Ordered tags, case-insensitive identity, at most 10
    - completed: Completion flag
    - created_at: UTC creation timestamp
    - updated_at: UTC last-change timestamp, never earlier than created_at
    - deleted_at: Soft-delete marker; None while the task is active
    - row_version: Concurrency token regenerated on every mutation
    """

    id: str
    title: str
    description: Optional[str]
    due_date: Optional[date]
    priority: Priority
    tags: List[str]
    completed: bool
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime]
    row_version: str
