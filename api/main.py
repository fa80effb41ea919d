"""
api/main.py -- FastAPI application entry point for Taskboard.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (stores, upload directory) and shutdown (dispose
engines) symmetrically.

Error rendering: every response error body is {message, code} plus
`errors` for validation failures. The raw exception text (`error`) is only
included when DEBUG is on.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorResponse, FieldErrorModel, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.tasks import router as tasks_router
from auth.avatars import AvatarStore
from auth.dependencies import get_current_identity
from auth.models import Identity
from auth.store import UserStore
from core.config import get_settings
from core.errors import AuthGateError, InternalError, TaskboardError, ValidationError
from tasks.store import TaskStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("taskboard.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the stores before the first request and dispose them on shutdown.

    Users and tasks live in the same database but in independent tables;
    each store owns its own engine.
    """
    logger.info("Taskboard API starting up")
    app.state.user_store = UserStore(_settings.database_url)
    app.state.task_store = TaskStore(_settings.database_url)
    app.state.avatars = AvatarStore(_settings.upload_dir, max_bytes=_settings.max_upload_bytes)
    logger.info("Stores initialized (uploads in %s)", _settings.upload_dir)

    yield

    app.state.task_store.close()
    app.state.user_store.close()
    logger.info("Taskboard API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Taskboard API",
    description="Task management with token-based authentication.",
    version=VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced below by auth-protected routes.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(tasks_router, prefix="/api", tags=["Tasks"])


@app.get("/docs", include_in_schema=False)
async def docs(identity: Identity = Depends(get_current_identity)):
    """Swagger UI -- requires authentication."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="Taskboard API")


@app.get("/redoc", include_in_schema=False)
async def redoc(identity: Identity = Depends(get_current_identity)):
    """ReDoc UI -- requires authentication."""
    return get_redoc_html(openapi_url="/openapi.json", title="Taskboard API")


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error_response(status_code: int, body: ErrorResponse, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True), headers=headers)


@app.exception_handler(TaskboardError)
async def taskboard_error_handler(request: Request, exc: TaskboardError) -> JSONResponse:
    """Render a domain error.

    Gate rejections (missing, invalid, expired token, unknown subject) all map
    to 401 and advertise the Bearer scheme.
    """
    errors = None
    if isinstance(exc, ValidationError):
        errors = [FieldErrorModel(**e.to_dict()) for e in exc.errors]
    detail = exc.detail if _settings.debug else None
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthGateError) else None
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return _error_response(
        exc.status_code,
        ErrorResponse(message=exc.message, code=exc.code, errors=errors, error=detail),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with field-level messages when a body or parameter fails validation."""
    errors = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        errors.append(FieldErrorModel(field=".".join(loc) or "body", message=err.get("msg", "Invalid value")))
    return _error_response(
        400,
        ErrorResponse(message="Validation failed", code="validation_error", errors=errors),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = int(getattr(exc, "retry_after", 60))
    return _error_response(
        429,
        ErrorResponse(message="Too many requests.", code="rate_limited"),
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework-raised HTTP errors (404 route not found, 405, ...) in the same envelope."""
    return _error_response(
        exc.status_code,
        ErrorResponse(message=str(exc.detail), code=f"http_{exc.status_code}"),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The traceback goes to the log. The client only sees the exception text when
    DEBUG is on.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(
        500,
        ErrorResponse(
            message=InternalError.default_message,
            code=InternalError.code,
            error=str(exc) if _settings.debug else None,
        ),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
async def health(request: Request, response: Response) -> HealthResponse:
    """Liveness plus a database round-trip. No authentication, no rate limit.

    A failed round-trip reports status "degraded" with HTTP 503 so load
    balancers stop routing here.
    """
    user_store: UserStore = request.app.state.user_store
    task_store: TaskStore = request.app.state.task_store
    db_ok = user_store.ping() and task_store.ping()
    if not db_ok:
        logger.error("Health check: database did not answer")
        response.status_code = 503
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
