"""FastAPI application factory for the RSYWX library API.

``create_app`` wires the pieces together:
- lifespan: logging, database engine and cache backend
- middleware: CORS and per-request correlation IDs with access logging
- exception handlers rendering the ``{"success": false, ...}`` error body
- routes: health probes at the root, the versioned API under ``/api/v1``
"""

import time
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rsywx.config import Settings, get_settings
from rsywx.core.database import close_db, init_db
from rsywx.core.exceptions import RsywxError, ValidationError
from rsywx.core.logging import (
    clear_correlation_id,
    configure_logging,
    get_logger,
    set_correlation_id,
)
from rsywx.services.cache import build_cache_backend, set_cache_backend

logger = get_logger(__name__)
request_logger = get_logger("rsywx.request")
exception_logger = get_logger("rsywx.exceptions")

# Query parameters never written to the access log
_SECRET_PARAMS = frozenset({"api_key"})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Bring up logging, the database pool and the cache; tear down in reverse."""
    settings: Settings = app.state.settings

    configure_logging(settings)
    await init_db(settings)
    set_cache_backend(build_cache_backend(settings))

    logger.info(
        "application_started",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.app_env.value,
        cache_backend=settings.cache_backend.value,
    )

    yield

    set_cache_backend(None)
    await close_db()
    logger.info("application_stopped", app_name=settings.app_name)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Read API over a personal library: books, tags, reviews and visits, "
            "with cached listings and discovery-ranked related books."
        ),
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings

    configure_middleware(app, settings)
    configure_exception_handlers(app)
    configure_routes(app, settings)
    return app


# =============================================================================
# Middleware
# =============================================================================


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


async def request_context(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Bind a correlation ID to the request and log its outcome.

    The ID comes from the ``X-Request-ID`` header when the caller sends one
    and is echoed back on the response.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    set_correlation_id(request_id)

    log = request_logger.bind(method=request.method, path=request.url.path)
    query = {k: v for k, v in request.query_params.items() if k not in _SECRET_PARAMS}
    started = time.perf_counter()
    log.info("request_started", query=query or None)

    try:
        response = await call_next(request)
        log.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=_elapsed_ms(started),
        )
    except Exception as exc:
        log.error("request_failed", duration_ms=_elapsed_ms(started), error=str(exc))
        raise
    finally:
        clear_correlation_id()

    response.headers["X-Request-ID"] = request_id
    return response


def configure_middleware(app: FastAPI, settings: Settings) -> None:
    # Browsers only call the API directly while developing; production sits
    # behind the site's own backend.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_context)


# =============================================================================
# Exception Handlers
# =============================================================================


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def handle_library_error(request: Request, exc: RsywxError) -> JSONResponse:
    """Render a library error with its own status code and error code."""
    log = exception_logger.error if exc.status_code >= 500 else exception_logger.warning
    log(
        "request_error",
        error_code=exc.code,
        error_message=exc.message,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(request_id=_request_id(request)),
    )


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed path, query or body parameters are a 400, not FastAPI's 422."""
    errors = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg")}
        for err in exc.errors()
    ]
    error = ValidationError(message="Invalid request parameters", details={"errors": errors})
    return await handle_library_error(request, error)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    exception_logger.exception(
        "unhandled_exception",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
    )
    message = "An unexpected error occurred"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "message": message,
            "error": {
                "code": "INTERNAL_SERVER_ERROR",
                "message": message,
                "request_id": _request_id(request),
            },
        },
    )


def configure_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RsywxError, handle_library_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)


# =============================================================================
# Routes
# =============================================================================


def configure_routes(app: FastAPI, settings: Settings) -> None:
    """Mount the open health routes and the key-protected versioned API."""
    from rsywx.api.health import router as health_router
    from rsywx.api.v1.router import router as v1_router

    app.include_router(health_router)
    app.include_router(v1_router, prefix=settings.api_prefix)


app = create_app()


def cli() -> None:
    """Run the API with uvicorn (``rsywx-api`` console script)."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "rsywx.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    cli()
