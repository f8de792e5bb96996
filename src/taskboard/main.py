import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import ConcurrencyConflictError, OperationCancelled, StorageError, TaskValidationError
from .logging_setup import request_id_var, setup_logging
from .repositories import get_repository
from .routers import tasks as tasks_router
from .seed import seed_demo_tasks
from .settings import get_settings
from .utils import problem_response

REQUEST_ID_HEADER = "X-Request-ID"

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "tasks",
        "description": "Task CRUD with filtering, sorting, pagination and bulk CSV import.",
    },
]

_settings = get_settings()
setup_logging(_settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if _settings.seed_demo_data:
        seed_demo_tasks(get_repository())
    logger.info("Taskboard backend started backend=%s", _settings.persistence_backend)
    yield


app = FastAPI(
    title="Taskboard Backend",
    description="Task management API with a filtering query engine and bulk CSV import.",
    version="0.1.0",
    openapi_tags=openapi_tags,
    lifespan=lifespan,
)

# Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER, "Location"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """
    Tag every request with a correlation id (taken from X-Request-ID or
    generated), expose it to log records, and echo it on the response along
    with basic security headers.
    """
    rid = request.headers.get(REQUEST_ID_HEADER, "").strip() or uuid.uuid4().hex
    token = request_id_var.set(rid)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers[REQUEST_ID_HEADER] = rid
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "detail": [... pydantic/fastapi error details ...],
            "message": "Request validation failed"
        }
    """
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": jsonable_errors(exc),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic can put exception objects in "ctx", which JSONResponse cannot encode.
    errors = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        errors.append(err)
    return errors


@app.exception_handler(TaskValidationError)
async def task_validation_handler(request: Request, exc: TaskValidationError) -> JSONResponse:
    return problem_response(400, exc.message, code=exc.code)


@app.exception_handler(ConcurrencyConflictError)
async def conflict_handler(request: Request, exc: ConcurrencyConflictError) -> JSONResponse:
    return problem_response(409, str(exc))


@app.exception_handler(OperationCancelled)
async def cancelled_handler(request: Request, exc: OperationCancelled) -> JSONResponse:
    return problem_response(503, str(exc))


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return problem_response(500, "An unexpected error occurred.")


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health.
    """
    return {"message": "Healthy", "backend": _settings.persistence_backend}


app.include_router(tasks_router.router)
