"""
Main Application - FastAPI application setup.
"""

import asyncio
import re
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from chatapp.api.auth_routes import router as auth_router
from chatapp.api.chat_routes import router as chat_router
from chatapp.api.rate_limit import RateLimitMiddleware
from chatapp.api.realtime_routes import router as realtime_router
from chatapp.api.status_routes import router as status_router
from chatapp.api.user_routes import router as user_router
from chatapp.config import settings
from chatapp.db.migration_runner import run_migrations
from chatapp.db.session import close_engines
from chatapp.exceptions import ChatAppError, RequestValidationFailed
from chatapp.observability import get_logger, log_context, metrics, setup_logging, setup_tracing
from chatapp.observability.tracing import instrument_fastapi
from chatapp.services.generation import close_response_generator

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)

_UUID_SEGMENT = re.compile(
    r"/[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)
REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        environment=settings.environment,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
        mock_generator=settings.use_mock_generator,
    )

    if settings.auto_migrate:
        await asyncio.to_thread(run_migrations)

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await close_response_generator()
    await close_engines()
    logger.info("database_engines_closed")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


# ============================================================================
# Exception Handlers
# ============================================================================


def _error_body(error: ChatAppError) -> dict[str, object]:
    body: dict[str, object] = {"message": error.message, "code": error.code}
    if isinstance(error, RequestValidationFailed) and error.errors:
        body["errors"] = [{"field": e.field, "message": e.message} for e in error.errors]
    return body


@app.exception_handler(ChatAppError)
async def chat_app_error_handler(request: Request, exc: ChatAppError) -> JSONResponse:
    """Render application errors as {message, code}."""
    if exc.status_code >= 500:
        metrics.record_error(type(exc).__name__, request.url.path)
        logger.error(
            "request_error",
            path=request.url.path,
            method=request.method,
            code=exc.code,
            error=str(exc),
            detail=getattr(exc, "detail", None),
        )
    else:
        logger.info("request_rejected", path=request.url.path, code=exc.code)

    body = _error_body(exc)
    if settings.is_development and exc.status_code >= 500:
        body["error"] = getattr(exc, "detail", None) or exc.message
    return JSONResponse(status_code=exc.status_code, content=body)


def _field_name(loc: tuple[int | str, ...]) -> str:
    parts = [str(p) for p in loc]
    if parts and parts[0] in ("body", "query", "path", "header", "cookie"):
        parts = parts[1:]
    return ".".join(parts) or "request"


def _field_message(msg: str) -> str:
    return msg.removeprefix("Value error, ")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Reshape request validation failures into the 400 VALIDATION_ERROR body."""
    field_errors = [
        {
            "field": _field_name(tuple(error.get("loc", ()))),
            "message": _field_message(error.get("msg", "")),
        }
        for error in exc.errors()
    ]

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=field_errors,
    )
    return JSONResponse(
        status_code=400,
        content={
            "message": "Validation failed",
            "code": "VALIDATION_ERROR",
            "errors": field_errors,
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes and framework HTTP errors in the {message, code} shape."""
    if exc.status_code == 404:
        body = {"message": "Route not found", "code": "ROUTE_NOT_FOUND"}
    elif exc.status_code == 405:
        body = {"message": "Method not allowed", "code": "METHOD_NOT_ALLOWED"}
    else:
        body = {"message": str(exc.detail), "code": "HTTP_ERROR"}
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Generic 500; exception detail only in development."""
    metrics.record_error(type(exc).__name__, request.url.path)
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=exc,
    )
    body: dict[str, object] = {"message": "Something went wrong!", "code": "INTERNAL_ERROR"}
    if settings.is_development:
        body["error"] = str(exc)
    return JSONResponse(status_code=500, content=body)


# Setup tracing
setup_tracing()
instrument_fastapi(app)


# ============================================================================
# Middleware
# ============================================================================

app.add_middleware(RateLimitMiddleware)

# CORS wraps the rate limiter so throttled responses still carry CORS headers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", REQUEST_ID_HEADER],
    expose_headers=[REQUEST_ID_HEADER],
)


def endpoint_label(path: str) -> str:
    """Collapse ids in a path so metric label cardinality stays bounded."""
    return _UUID_SEGMENT.sub("/{id}", path)


@app.middleware("http")
async def request_context_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """
    Time each request and record it in the HTTP metrics.

    Every log line written while the request is handled carries its
    request_id; the id is taken from X-Request-ID or generated, and echoed
    back on the response.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    endpoint = endpoint_label(request.url.path)
    method = request.method
    started = time.perf_counter()

    in_progress = metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method)
    in_progress.inc()
    with log_context(request_id=request_id, method=method, path=request.url.path):
        logger.info("request_started")
        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - started
            metrics.record_http_request(endpoint, method, 500, elapsed)
            metrics.record_error(type(e).__name__, "http_request")
            logger.error(
                "request_failed",
                error=str(e),
                duration_seconds=round(elapsed, 4),
                exc_info=True,
            )
            raise
        finally:
            in_progress.dec()

        elapsed = time.perf_counter() - started
        metrics.record_http_request(endpoint, method, response.status_code, elapsed)
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "request_completed",
            status_code=response.status_code,
            duration_seconds=round(elapsed, 4),
        )

    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# Register routes
app.include_router(status_router)
app.include_router(auth_router)
app.include_router(chat_router)
app.include_router(user_router)
app.include_router(realtime_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
    }


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    if not settings.metrics_enabled:
        return JSONResponse(
            status_code=404, content={"message": "Route not found", "code": "ROUTE_NOT_FOUND"}
        )
    return PlainTextResponse(generate_latest())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chatapp.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )
