from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from threading import Event
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple

from .errors import OperationCancelled
from .models import Priority, SortField, SortOrder, TaskEntity
from .validation import DEFAULT_PAGE_SIZE, clamp_page, clamp_page_size, normalize_tags

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskQuery:
    """
    Query parameters for listing tasks.

    Filters combine with AND; values inside the priority and tag sets combine
    with OR. Empty sets mean "no filter". Build instances with build_query()
    so paging values are coerced into range.
    """
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    search: Optional[str] = None
    priorities: FrozenSet[Priority] = field(default_factory=frozenset)
    tags: Tuple[str, ...] = ()
    sort: SortField = SortField.CREATED_AT
    order: SortOrder = SortOrder.DESC

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass(frozen=True)
class QueryPage:
    """One page of query results plus the size of the whole filtered set."""
    items: List[TaskEntity]
    page: int
    page_size: int
    total: int


# PUBLIC_INTERFACE
def build_query(
    page: Optional[int] = 1,
    page_size: Optional[int] = DEFAULT_PAGE_SIZE,
    search: Optional[str] = None,
    priorities: Optional[Iterable[Priority]] = None,
    tags: Optional[Iterable[str]] = None,
    sort: Optional[SortField] = None,
    order: Optional[SortOrder] = None,
) -> TaskQuery:
    """
    Build a TaskQuery from loosely validated caller input.
    - page < 1 becomes 1, page_size is clamped to 1..100
    - blank search terms are dropped, others are trimmed
    - blank tags are dropped and duplicates removed case-insensitively
    """
    term = search.strip() if search else None
    return TaskQuery(
        page=clamp_page(page),
        page_size=clamp_page_size(page_size),
        search=term or None,
        priorities=frozenset(priorities or ()),
        tags=tuple(normalize_tags(tags or ())),
        sort=sort or SortField.CREATED_AT,
        order=order or SortOrder.DESC,
    )


def _matches_search(term: str) -> Callable[[TaskEntity], bool]:
    needle = term.lower()

    def matches(t: TaskEntity) -> bool:
        title_ok = needle in (t["title"] or "").lower()
        desc_ok = needle in t["description"].lower() if t["description"] else False
        return title_ok or desc_ok

    return matches


def _matches_tags(tags: Iterable[str]) -> Callable[[TaskEntity], bool]:
    wanted = {tag.casefold() for tag in tags}

    def matches(t: TaskEntity) -> bool:
        return any(tag.casefold() in wanted for tag in t["tags"] or ())

    return matches


def _sort_key(sort: SortField, descending: bool) -> Callable[[TaskEntity], tuple]:
    if sort is SortField.DUE_DATE:
        # Undated tasks go last in both directions, so the "missing" flag is
        # inverted when the whole sort is reversed.
        def due_key(t: TaskEntity) -> tuple:
            due = t["due_date"]
            missing = due is None
            return (not missing if descending else missing, due or date.min)

        return due_key
    if sort is SortField.PRIORITY:
        return lambda t: (Priority(t["priority"]).rank,)
    return lambda t: (t["created_at"],)


def _check_cancel(cancel: Optional[Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("Query cancelled")


# PUBLIC_INTERFACE
def run_query(
    records: Iterable[TaskEntity],
    query: Optional[TaskQuery] = None,
    cancel: Optional[Event] = None,
) -> QueryPage:
    """
    Filter, sort and paginate active task records.

    records must already exclude soft-deleted tasks (see
    repositories.is_active). The tag filter is a linear scan over the
    candidates because neither backend keeps a tag index; it is applied the
    same way whatever the backend or the data size.

    Raises:
        OperationCancelled: when cancel is set while the query runs.
    """
    q = query or TaskQuery()
    _check_cancel(cancel)

    items: List[TaskEntity] = list(records)

    # Filtering
    if q.search:
        matches = _matches_search(q.search)
        items = [t for t in items if matches(t)]

    if q.priorities:
        items = [t for t in items if Priority(t["priority"]) in q.priorities]

    if q.tags:
        matches = _matches_tags(q.tags)
        items = [t for t in items if matches(t)]

    _check_cancel(cancel)
    total = len(items)

    # Sorting: a fixed base order first, so ties on the requested field keep
    # creation order (Python's sort is stable, also with reverse=True).
    descending = q.order is SortOrder.DESC
    items.sort(key=lambda t: (t["created_at"], t["id"]))
    items.sort(key=_sort_key(q.sort, descending), reverse=descending)

    # Pagination
    start = q.offset
    page = items[start:start + q.page_size]

    logger.debug(
        "Query page=%s page_size=%s total=%s returned=%s", q.page, q.page_size, total, len(page)
    )
    return QueryPage(items=page, page=q.page, page_size=q.page_size, total=total)
