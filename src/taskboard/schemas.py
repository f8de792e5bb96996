from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import Priority
from .validation import normalize_tags

# Shared type for incoming due_date which can be a date, datetime, or ISO8601 string
DueDateInput = Union[date, datetime, str]


# PUBLIC_INTERFACE
def parse_due_date(value: Optional[DueDateInput]) -> Optional[date]:
    """
    Normalize due_date input into a calendar date.
    - Strings are parsed as an ISO date first, then as an ISO date-time whose date portion is kept.
    - A datetime is reduced to its date portion.
    - Blank strings and None mean "no due date".
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            return date.fromisoformat(s)
        except ValueError:
            pass
        if s.endswith(("Z", "z")):
            s = s[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(s).date()
        except ValueError as e:
            raise ValueError(
                "Invalid due_date format. Use ISO8601 date or datetime string (e.g., '2025-01-31' or '2025-01-31T13:45:00')."
            ) from e

    raise ValueError("Invalid type for due_date; expected date, datetime, or ISO8601 string.")


def _strip_or_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    s = value.strip()
    return s or None


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for creating a new task.

    Length limits and the due-date requirement are enforced by the service
    through taskboard.validation so that every caller gets the same named
    violations.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Write weekly report",
                "description": "Summarize progress and blockers",
                "due_date": "2025-02-01",
                "priority": "High",
                "tags": ["work"],
            }
        }
    )

    title: str = Field(..., description="Short title for the task (1..200 characters)")
    description: Optional[str] = Field(default=None, description="Optional description (<= 1000 characters)")
    due_date: Optional[date] = Field(
        default=None,
        description="Due date. Accepts an ISO8601 date or datetime; only the date portion is kept",
    )
    priority: Priority = Field(default=Priority.MED, description="Priority classification")
    tags: List[str] = Field(default_factory=list, description="Up to 10 tags, case-insensitive")

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        return v.strip()

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: Optional[str]) -> Optional[str]:
        return _strip_or_none(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due(cls, v: Optional[DueDateInput]) -> Optional[date]:
        return parse_due_date(v)

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, v: Optional[List[str]]) -> List[str]:
        return normalize_tags(v or [])


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Schema for replacing an existing task. Every field is written; omitted
    optional fields are cleared.
    """

    title: str = Field(..., description="Short title for the task (1..200 characters)")
    description: Optional[str] = Field(default=None, description="Optional description (<= 1000 characters)")
    due_date: Optional[date] = Field(default=None, description="Optional due date; null clears it")
    priority: Priority = Field(..., description="Priority classification")
    tags: List[str] = Field(default_factory=list, description="Up to 10 tags, case-insensitive")
    completed: bool = Field(default=False, description="Completion status flag")
    row_version: Optional[str] = Field(default=None, description="Concurrency token from the last read")

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        return v.strip()

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: Optional[str]) -> Optional[str]:
        return _strip_or_none(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due(cls, v: Optional[DueDateInput]) -> Optional[date]:
        return parse_due_date(v)

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, v: Optional[List[str]]) -> List[str]:
        return normalize_tags(v or [])


# PUBLIC_INTERFACE
class TaskPatch(BaseModel):
    """
    Schema for partially updating a task.

    Only fields present in the request are applied (see model_fields_set), so
    an omitted field and a field sent as null are different things:
    - description/due_date: null clears the value
    - tags: null clears to an empty list
    - title/priority/completed: null is rejected by validation
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "completed": True,
                "due_date": None,
            }
        }
    )

    title: Optional[str] = Field(default=None, description="New title (1..200 characters)")
    description: Optional[str] = Field(default=None, description="New description; null clears it")
    due_date: Optional[date] = Field(default=None, description="New due date; null clears it")
    priority: Optional[Priority] = Field(default=None, description="New priority")
    tags: Optional[List[str]] = Field(default=None, description="Replacement tag list (max 10)")
    completed: Optional[bool] = Field(default=None, description="Completion status flag")
    row_version: Optional[str] = Field(default=None, description="Concurrency token from the last read")

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else v.strip()

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: Optional[str]) -> Optional[str]:
        return _strip_or_none(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due(cls, v: Optional[DueDateInput]) -> Optional[date]:
        return parse_due_date(v)

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return None if v is None else normalize_tags(v)

    def provided(self, name: str) -> bool:
        """True when the field was present in the request, even as null."""
        return name in self.model_fields_set


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """
    Schema returned by the API for a task.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "4f1c2d9e8b7a4c3d9e8f7a6b5c4d3e2f",
                "title": "Write weekly report",
                "description": "Summarize progress and blockers",
                "due_date": "2025-02-01",
                "priority": "High",
                "tags": ["work"],
                "completed": False,
                "created_at": "2025-01-25T10:15:30.123456Z",
                "updated_at": "2025-01-26T09:00:00.000001Z",
                "deleted_at": None,
                "row_version": "9b2f0e4c1d8a4e6fa3c5b7d9e1f3a5c7",
            }
        }
    )

    id: str = Field(..., description="Unique identifier of the task")
    title: str = Field(..., description="Short title for the task")
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    due_date: Optional[date] = Field(default=None, description="Due date as an ISO8601 date")
    priority: Priority = Field(..., description="Priority classification")
    tags: List[str] = Field(default_factory=list, description="Task tags")
    completed: bool = Field(..., description="Completion status flag")
    created_at: datetime = Field(..., description="Creation timestamp (UTC)")
    updated_at: datetime = Field(..., description="Last update timestamp (UTC)")
    deleted_at: Optional[datetime] = Field(default=None, description="Soft-delete timestamp")
    row_version: str = Field(..., description="Concurrency token; send it back on PUT/PATCH")


# PUBLIC_INTERFACE
class TaskListResponse(BaseModel):
    """
    Envelope for paginated list responses.
    """

    items: List[TaskOut] = Field(..., description="Tasks on the requested page")
    page: int = Field(..., description="1-based page index that was applied")
    page_size: int = Field(..., description="Page size that was applied")
    total: int = Field(..., description="Total number of tasks matching the filters")


# PUBLIC_INTERFACE
class ImportResultOut(BaseModel):
    """
    Summary of a CSV import.
    """

    successful: int = Field(..., description="Number of tasks created")
    failed: int = Field(..., description="Number of rows rejected")
    errors: List[str] = Field(default_factory=list, description="Line-numbered error messages, in input order")
    created_ids: List[str] = Field(default_factory=list, description="Identifiers of the created tasks, in input order")
    cancelled: bool = Field(default=False, description="True when the import stopped early on cancellation")
