"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rentalsync import __version__
from rentalsync.api.router import api_router
from rentalsync.api.routes import health
from rentalsync.config import get_settings
from rentalsync.infrastructure.database.connection import dispose_engine
from rentalsync.infrastructure.search.base import IndexClient
from rentalsync.infrastructure.search.factory import build_index_client, build_sync_orchestrator
from rentalsync.observability.metrics import setup_metrics
from rentalsync.shared.exceptions import (
    RentalSyncError,
    SearchBackendUnavailableError,
    SearchRequestError,
    UnauthorizedError,
)
from rentalsync.shared.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan - startup and shutdown events."""
    # Startup
    setup_logging()
    settings = get_settings()
    logger.info("rentalsync_starting", version=__version__, search_backend=settings.search_backend)

    # Shared resources (one pooled HTTP client per process)
    index_client: IndexClient | None = None
    if getattr(app.state, "sync_orchestrator", None) is None:
        index_client = build_index_client(settings)
        app.state.sync_orchestrator = build_sync_orchestrator(settings, index_client)

    yield

    # Shutdown
    logger.info("rentalsync_stopping")
    if index_client is not None:
        await index_client.close()
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="RentalSync API",
        description="Encrypted inventory search-index sync",
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Exception handlers
    register_exception_handlers(app)

    # Include routers
    app.include_router(health.router)
    app.include_router(api_router, prefix="/api/v1")

    # Observability
    setup_metrics(app)

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers."""

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        _ = request
        return JSONResponse(
            status_code=422,
            content={
                "error": "validation_error",
                "message": "Request validation failed",
                "details": {"errors": exc.errors()},
            },
        )

    @app.exception_handler(UnauthorizedError)
    async def unauthorized_handler(request: Request, exc: UnauthorizedError) -> JSONResponse:
        _ = request
        return JSONResponse(
            status_code=403,
            content={
                "error": "unauthorized",
                "message": exc.message,
            },
        )

    @app.exception_handler(SearchBackendUnavailableError)
    async def backend_unavailable_handler(
        request: Request, exc: SearchBackendUnavailableError
    ) -> JSONResponse:
        _ = request
        logger.warning("search_backend_unavailable", error=exc.message, backend=exc.backend)
        return JSONResponse(
            status_code=503,
            content={
                "error": "search_backend_unavailable",
                "message": exc.message,
                "details": exc.details,
            },
        )

    @app.exception_handler(SearchRequestError)
    async def backend_rejected_handler(request: Request, exc: SearchRequestError) -> JSONResponse:
        _ = request
        logger.error("search_backend_rejected", error=exc.message, backend=exc.backend)
        return JSONResponse(
            status_code=502,
            content={
                "error": "search_backend_error",
                "message": exc.message,
                "details": exc.details,
            },
        )

    @app.exception_handler(RentalSyncError)
    async def rentalsync_error_handler(request: Request, exc: RentalSyncError) -> JSONResponse:
        _ = request
        logger.error("unhandled_error", error=exc.message, details=exc.details)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "An internal error occurred",
            },
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        _ = request
        logger.exception("unexpected_error", error=str(exc))
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "An unexpected error occurred",
            },
        )


# Create app instance
app = create_app()
