"""EcoLearn progress API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ecolearn.config import get_settings
from ecolearn.core.context import get_request_id
from ecolearn.core.database import CassandraConnection, init_cassandra
from ecolearn.core.logging import configure_structlog, get_logger
from ecolearn.core.middleware import RequestContextMiddleware
from ecolearn.core.redis import init_redis, shutdown_redis
from ecolearn.health import router as health_router
from ecolearn.progress.router import router as progress_router
from ecolearn.progress.service import ProgressService
from ecolearn.progress.store import CassandraProgressStore
from ecolearn.progress.websocket_router import router as progress_ws_router


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Connection handles are created here, stored on ``app.state`` and closed
    on shutdown; request handlers and websocket sessions only ever receive
    them from there.
    """
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    app.state.redis = None
    app.state.progress_store = None
    app.state.progress_service = None

    # Redis is optional: completion events are simply not published
    try:
        app.state.redis = await init_redis(settings)
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - progress events not published",
        )

    cassandra = CassandraConnection(settings)
    try:
        session = await init_cassandra(cassandra)

        app.state.progress_store = CassandraProgressStore(
            session=session,
            keyspace=settings.cassandra_keyspace,
        )
        app.state.progress_service = ProgressService(app.state.progress_store)
        logger.info("progress_service_initialized")
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database - watch progress will not be saved",
        )

    yield

    logger.info("shutting_down_application")
    await shutdown_redis(app.state.redis)
    cassandra.disconnect()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="EcoLearn - video lesson watch progress API",
        debug=False,  # Never expose stack traces in responses
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "message": str(exc.detail)
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                else "Internal server error",
                "status_code": exc.status_code,
                "request_id": _get_request_id_safe(request),
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "message": "Validation error",
                "status_code": 422,
                "request_id": _get_request_id_safe(request),
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions."""
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": _get_request_id_safe(request),
            },
        )

    app.include_router(health_router)
    app.include_router(progress_router)
    app.include_router(progress_ws_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "EcoLearn Progress API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
