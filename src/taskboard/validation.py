"""
Field rules shared by the service layer, the list query builder and the CSV
importer.

Every rule violation raises TaskValidationError carrying a stable code and a
human-readable message, so HTTP callers and import reports show the same text.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List, Optional

from .errors import TaskValidationError

if TYPE_CHECKING:
    from .schemas import TaskCreate, TaskPatch, TaskUpdate

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 1000
MAX_TAGS = 10
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20
TAG_SEPARATOR = ";"


def _check_title(title: Optional[str]) -> None:
    if title is None or not title.strip():
        raise TaskValidationError("title_required", "Title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise TaskValidationError("title_too_long", f"Title must be <= {MAX_TITLE_LENGTH} characters")


def _check_description(description: Optional[str]) -> None:
    if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
        raise TaskValidationError(
            "description_too_long", f"Description must be <= {MAX_DESCRIPTION_LENGTH} characters"
        )


def _check_tags(tags: Optional[List[str]]) -> None:
    if tags is not None and len(tags) > MAX_TAGS:
        raise TaskValidationError("too_many_tags", f"Max {MAX_TAGS} tags")


# PUBLIC_INTERFACE
def validate_create(request: "TaskCreate") -> None:
    """Apply the create rules: title 1..200, description <= 1000, due date required, <= 10 tags."""
    _check_title(request.title)
    _check_description(request.description)
    if request.due_date is None:
        raise TaskValidationError("due_date_required", "Due date is required")
    _check_tags(request.tags)


# PUBLIC_INTERFACE
def validate_update(request: "TaskUpdate") -> None:
    """Apply the full-update rules. Same as create, except the due date may be cleared."""
    _check_title(request.title)
    _check_description(request.description)
    _check_tags(request.tags)


# PUBLIC_INTERFACE
def validate_patch(request: "TaskPatch") -> None:
    """Apply the rules to the fields present in a partial update."""
    for name in ("title", "priority", "completed"):
        if request.provided(name) and getattr(request, name) is None:
            raise TaskValidationError("field_not_nullable", f"{name} cannot be null")
    if request.provided("title"):
        title = request.title or ""
        if not (1 <= len(title) <= MAX_TITLE_LENGTH):
            code = "title_required" if not title else "title_too_long"
            raise TaskValidationError(code, f"Title must be 1-{MAX_TITLE_LENGTH} characters")
    if request.provided("description"):
        _check_description(request.description)
    if request.provided("tags"):
        _check_tags(request.tags)


# PUBLIC_INTERFACE
def normalize_tags(values: Iterable[str], limit: Optional[int] = None) -> List[str]:
    """
    Trim tags, drop blanks and remove case-insensitive duplicates.

    The first spelling seen wins and first-seen order is kept. When limit is
    given the result is truncated to that many tags.
    """
    seen = set()
    tags: List[str] = []
    for raw in values:
        if raw is None:
            continue
        tag = str(raw).strip()
        if not tag:
            continue
        key = tag.casefold()
        if key in seen:
            continue
        seen.add(key)
        tags.append(tag)
        if limit is not None and len(tags) >= limit:
            break
    return tags


# PUBLIC_INTERFACE
def split_tag_field(text: Optional[str]) -> List[str]:
    """Parse a ';'-separated tag cell into at most MAX_TAGS normalized tags."""
    if not text:
        return []
    return normalize_tags(text.split(TAG_SEPARATOR), limit=MAX_TAGS)


# PUBLIC_INTERFACE
def clamp_page(page: Optional[int]) -> int:
    """Coerce a 1-based page index; anything below 1 becomes 1."""
    if page is None or page < 1:
        return 1
    return int(page)


# PUBLIC_INTERFACE
def clamp_page_size(page_size: Optional[int]) -> int:
    """Clamp a page size into [1, MAX_PAGE_SIZE]."""
    if page_size is None:
        return DEFAULT_PAGE_SIZE
    return max(1, min(MAX_PAGE_SIZE, int(page_size)))
