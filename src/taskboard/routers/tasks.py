from __future__ import annotations

from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status

from ..auth import get_basic_auth_dependency
from ..models import Priority, SortField, SortOrder
from ..query import build_query
from ..repositories import Repository, get_repository
from ..schemas import ImportResultOut, TaskCreate, TaskListResponse, TaskOut, TaskPatch, TaskUpdate
from ..service import TaskService
from ..settings import get_settings
from ..utils import pagination_envelope

router = APIRouter(
    prefix="/api/v1/tasks",
    tags=["tasks"],
    dependencies=[Depends(get_basic_auth_dependency())],
)

_NOT_FOUND = "Task not found"


def get_service(repo: Repository = Depends(get_repository)) -> TaskService:
    """
    Dependency wrapper that binds the configured repository to a service.
    """
    return TaskService(repo)


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=TaskListResponse,
    summary="List Tasks",
    description=(
        "List tasks with optional filters and pagination.\n\n"
        "Query parameters:\n"
        "- page: 1-based page index; values below 1 are treated as 1\n"
        "- page_size: items per page; clamped to 1..100\n"
        "- q: case-insensitive search in title and description\n"
        "- priority: repeatable; matches any of the given priorities\n"
        "- tag: repeatable; matches tasks carrying any of the given tags\n"
        "- sort: created_at (default), due_date or priority\n"
        "- order: asc or desc (default)\n\n"
        "Filters combine with AND. Returns a page envelope with the total match count."
    ),
    responses={200: {"description": "List retrieved successfully"}},
)
def list_tasks(
    page: int = Query(1, description="1-based page index"),
    page_size: int = Query(20, description="Number of items per page (1..100)"),
    q: Optional[str] = Query(None, description="Search text for title/description"),
    priority: Optional[List[Priority]] = Query(None, description="Priority filter (repeatable)"),
    tag: Optional[List[str]] = Query(None, description="Tag filter (repeatable)"),
    sort: SortField = Query(SortField.CREATED_AT, description="Sort field"),
    order: SortOrder = Query(SortOrder.DESC, description="Sort direction"),
    service: TaskService = Depends(get_service),
) -> TaskListResponse:
    """
    List tasks with pagination, filters and sorting.
    """
    query = build_query(
        page=page,
        page_size=page_size,
        search=q,
        priorities=priority,
        tags=tag,
        sort=sort,
        order=order,
    )
    result = service.list(query)
    envelope = pagination_envelope(
        items=[TaskOut(**t) for t in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )
    return TaskListResponse(**envelope)


# PUBLIC_INTERFACE
@router.post(
    "/import",
    response_model=ImportResultOut,
    summary="Import Tasks from CSV",
    description=(
        "Bulk-create tasks from an uploaded CSV file. The header must name title, dueDate "
        "and priority columns; description, tags (';'-separated) and completed are optional. "
        "Bad rows are reported by line number and skipped."
    ),
    responses={
        200: {"description": "Import attempted and summary returned"},
        400: {"description": "No file provided or file empty"},
        413: {"description": "File larger than IMPORT_MAX_BYTES"},
    },
)
def import_tasks_csv(
    file: Optional[UploadFile] = File(None, description="CSV file with task rows"),
    service: TaskService = Depends(get_service),
) -> ImportResultOut:
    """
    Import a CSV upload and return the per-row summary.
    """
    if file is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A non-empty CSV file is required.")

    limit = get_settings().import_max_bytes
    content = file.file.read(limit + 1)
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A non-empty CSV file is required.")
    if len(content) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"CSV file must be at most {limit} bytes.",
        )

    result = service.import_csv(content)
    return ImportResultOut(**asdict(result))


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}",
    response_model=TaskOut,
    summary="Get Task",
    description="Get a single active task by ID.",
    responses={
        200: {"description": "Task found"},
        404: {"description": "Task not found or deleted"},
    },
)
def get_task(task_id: str, service: TaskService = Depends(get_service)) -> TaskOut:
    """
    Retrieve a single task by its ID.
    """
    item = service.get(task_id)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND)
    return TaskOut(**item)


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a new task and return the created resource.",
    responses={
        201: {"description": "Task created successfully"},
        400: {"description": "Payload violates a validation rule"},
    },
)
def create_task(payload: TaskCreate, response: Response, service: TaskService = Depends(get_service)) -> TaskOut:
    """
    Create a new task. The Location header points at the new resource.
    """
    created = service.create(payload)
    response.headers["Location"] = f"{router.prefix}/{created['id']}"
    return TaskOut(**created)


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}",
    response_model=TaskOut,
    summary="Replace Task",
    description="Replace every field of an existing task. Send row_version to guard against lost updates.",
    responses={
        200: {"description": "Task updated"},
        400: {"description": "Payload violates a validation rule"},
        404: {"description": "Task not found"},
        409: {"description": "row_version is stale"},
    },
)
def put_task(task_id: str, payload: TaskUpdate, service: TaskService = Depends(get_service)) -> TaskOut:
    """
    Full update (replace) of a task.
    """
    updated = service.update(task_id, payload)
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND)
    return TaskOut(**updated)


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}",
    response_model=TaskOut,
    summary="Update Task",
    description=(
        "Partially update a task. Only fields present in the body are changed; "
        "null clears description, due_date and tags."
    ),
    responses={
        200: {"description": "Task updated"},
        400: {"description": "Payload violates a validation rule"},
        404: {"description": "Task not found"},
        409: {"description": "row_version is stale"},
    },
)
def patch_task(task_id: str, payload: TaskPatch, service: TaskService = Depends(get_service)) -> TaskOut:
    """
    Partial update of a task.
    """
    updated = service.patch(task_id, payload)
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND)
    return TaskOut(**updated)


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Task",
    description="Soft-delete a task. It disappears from lists and lookups but is kept in storage.",
    responses={
        204: {"description": "Task deleted"},
        404: {"description": "Task not found"},
    },
)
def delete_task(task_id: str, service: TaskService = Depends(get_service)) -> Response:
    """
    Soft-delete a task. Returns 204 on success, 404 if not found.
    """
    if not service.soft_delete(task_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
