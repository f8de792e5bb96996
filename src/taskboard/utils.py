from __future__ import annotations

from http import HTTPStatus
from typing import Any, Dict, Iterable, List, Sequence, Union

from fastapi.responses import JSONResponse

from .logging_setup import request_id_var


# PUBLIC_INTERFACE
def pagination_envelope(
    items: Union[Sequence[Any], Iterable[Any]],
    total: int,
    page: int,
    page_size: int,
) -> Dict[str, Any]:
    """
    Build a standard pagination envelope for list endpoints.

    Args:
        items: The list/iterable of items for the current page.
        total: Total number of items that match the query (ignoring pagination).
        page: The 1-based page that was applied.
        page_size: The page size that was applied.

    Returns:
        Dict with keys: items, page, page_size, total.
    """
    materialized: List[Any] = list(items) if not isinstance(items, list) else items
    return {
        "items": materialized,
        "page": int(page),
        "page_size": int(page_size),
        "total": int(total),
    }


# PUBLIC_INTERFACE
def problem_response(status_code: int, detail: str, **extra: Any) -> JSONResponse:
    """
    Build an application/problem+json response.

    Body: {"type", "title", "status", "detail", "request_id", **extra}
    """
    body: Dict[str, Any] = {
        "type": "about:blank",
        "title": HTTPStatus(status_code).phrase,
        "status": status_code,
        "detail": detail,
        "request_id": request_id_var.get(),
    }
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body, media_type="application/problem+json")
