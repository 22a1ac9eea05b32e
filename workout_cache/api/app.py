"""FastAPI application entry point.

Configures the application with logging, exception handling, metrics,
health checks and the cache routes.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from workout_cache import __version__
from workout_cache.api.routes import router
from workout_cache.config import get_settings
from workout_cache.exceptions import ErrorCode, WorkoutCacheError
from workout_cache.logging_config import get_logger, setup_logging
from workout_cache.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
)
from workout_cache.service import build_cache_service

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Builds and starts the cache service unless one was installed already,
    and closes it on shutdown.
    """
    # Startup
    settings = get_settings()
    setup_logging(level=settings.log_level)
    logger.info(
        "Starting workout cache",
        extra={
            "version": __version__,
            "environment": settings.environment.value,
            "backend": settings.cache.backend.value,
        },
    )

    owns_service = getattr(app.state, "cache_service", None) is None
    if owns_service:
        app.state.cache_service = build_cache_service(settings)
    await app.state.cache_service.start()

    yield

    # Shutdown
    logger.info("Shutting down workout cache")
    if owns_service:
        await app.state.cache_service.close()
        app.state.cache_service = None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Workout Semantic Cache",
        description="Similarity lookup over previously generated workouts",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.cache_service = None

    app.add_middleware(MetricsMiddleware)

    # Register exception handlers
    app.add_exception_handler(WorkoutCacheError, cache_exception_handler)

    # Register routes
    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/ready", readiness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/live", liveness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/metrics", metrics, methods=["GET"], tags=["Observability"])
    app.include_router(router)

    return app


async def cache_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle WorkoutCacheError exceptions.

    Converts exceptions to structured JSON responses.
    """
    if not isinstance(exc, WorkoutCacheError):
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": ErrorCode.INTERNAL_ERROR.value,
                    "message": str(exc),
                    "details": {},
                    "retryable": False,
                }
            },
        )

    logger.error(
        f"Request failed: {exc.message}",
        extra={
            "error_code": exc.code.value,
            "path": request.url.path,
            "details": exc.details,
        },
    )

    return JSONResponse(
        status_code=_get_status_code(exc),
        content=exc.to_dict(),
    )


_BAD_REQUEST_CODES = {
    ErrorCode.VALIDATION_ERROR,
    ErrorCode.INVALID_QUERY,
    ErrorCode.UNKNOWN_ATTRIBUTE,
    ErrorCode.FILTER_TYPE_MISMATCH,
    ErrorCode.DIMENSION_MISMATCH,
}


def _get_status_code(exc: WorkoutCacheError) -> int:
    """Map an error to an HTTP status code."""
    if exc.code in _BAD_REQUEST_CODES:
        return 400

    if exc.code == ErrorCode.ITEM_NOT_FOUND:
        return 404

    # Transient dependency failures
    if exc.retryable:
        return 503

    return 500


async def health_check() -> dict[str, Any]:
    """Basic health check endpoint.

    Returns:
        Health status with version and timestamp.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def readiness_check(request: Request) -> dict[str, Any]:
    """Kubernetes readiness check.

    Ready once the cache service is installed. Reports the active backend's
    consistency so operators can see the managed index lag.
    """
    service = getattr(request.app.state, "cache_service", None)
    checks: dict[str, str] = {
        "config": "ok",
        "cache_service": "ok" if service is not None else "not_started",
    }

    body: dict[str, Any] = {
        "status": "ready" if all(v == "ok" for v in checks.values()) else "not_ready",
        "checks": checks,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    if service is not None:
        body["backend"] = service.backend_name
        body["refresh_policy"] = service.refresh_policy().model_dump(mode="json")
    return body


async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness check.

    Returns:
        Liveness status.
    """
    return {"status": "alive"}


async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# Create the application instance
app = create_app()
