"""Prometheus metrics for the workout cache.

Provides metrics instrumentation for:
- HTTP request latency and counts
- Cache lookups by decision and backend
- Embedding request latency
- Backend search latency and result quality
- Ingestion outcomes and managed index refresh cycles
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from workout_cache.logging_config import get_logger

logger = get_logger(__name__)

# HTTP Request Metrics
HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

HTTP_REQUEST_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

# Cache Lookup Metrics
CACHE_LOOKUP_TOTAL = Counter(
    "cache_lookups_total",
    "Total cache lookups by best decision",
    ["backend", "decision"],
)

CACHE_LOOKUP_DURATION = Histogram(
    "cache_lookup_duration_seconds",
    "End-to-end cache lookup duration in seconds",
    ["backend"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.2, 0.3, 0.5, 1.0, 2.5, 5.0],
)

CACHE_FAIL_OPEN_TOTAL = Counter(
    "cache_fail_open_total",
    "Lookups answered as MISS because the search path failed",
    ["error_code"],
)

# Embedding Metrics
EMBEDDING_REQUEST_DURATION = Histogram(
    "embedding_request_duration_seconds",
    "Embedding request duration in seconds",
    ["model", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

EMBEDDING_REQUEST_TOTAL = Counter(
    "embedding_requests_total",
    "Total embedding requests",
    ["model", "status"],
)

EMBEDDING_BATCH_SIZE = Histogram(
    "embedding_batch_size",
    "Embedding batch size",
    ["model"],
    buckets=[1, 5, 10, 25, 50, 100, 250, 500],
)

# Index Backend Metrics
SEARCH_DURATION = Histogram(
    "index_search_duration_seconds",
    "Index backend search duration in seconds",
    ["backend", "status"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0],
)

SEARCH_RESULTS_RETURNED = Histogram(
    "index_search_results_returned",
    "Number of candidates returned per search",
    ["backend"],
    buckets=[0, 1, 2, 3, 5, 10, 20, 50],
)

SEARCH_TOP_SCORE = Histogram(
    "index_search_top_score",
    "Top similarity score per search",
    ["backend"],
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)

# Ingestion Metrics
INGESTION_TOTAL = Counter(
    "ingestions_total",
    "Total ingestion calls",
    ["status"],
)

# Managed Index Refresh Metrics
REFRESH_DURATION = Histogram(
    "managed_index_refresh_duration_seconds",
    "Managed index refresh cycle duration in seconds",
    ["status"],
    buckets=[0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0],
)

REFRESH_ITEMS_TOTAL = Counter(
    "managed_index_refreshed_items_total",
    "Items pushed to the managed index",
    ["reason"],
)

REFRESH_LAST_SUCCESS = Gauge(
    "managed_index_last_refresh_timestamp_seconds",
    "Unix time of the last successful managed index refresh",
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics."""

    def __init__(self, app: ASGIApp) -> None:
        """Initialize the middleware."""
        super().__init__(app)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process request and collect metrics."""
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()

        response = await call_next(request)

        duration = time.perf_counter() - start_time

        endpoint = self._normalize_endpoint(request.url.path)

        HTTP_REQUEST_DURATION.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).observe(duration)

        HTTP_REQUEST_TOTAL.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce cardinality."""
        if path.startswith("/health"):
            return "/health"
        # Item ids would explode label cardinality
        if path.startswith("/api/v1/workouts/"):
            return "/api/v1/workouts/{item_id}"
        if path.startswith("/api/v1/"):
            parts = path.split("/")
            if len(parts) >= 4:
                return f"/api/v1/{parts[3]}"
        return path


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for metrics response."""
    return CONTENT_TYPE_LATEST


def track_cache_lookup(
    backend: str,
    decision: str,
    duration: float,
) -> None:
    """Track a completed cache lookup.

    Args:
        backend: Backend that answered the lookup.
        decision: Best decision label across the returned candidates.
        duration: Lookup duration in seconds.
    """
    CACHE_LOOKUP_TOTAL.labels(backend=backend, decision=decision).inc()
    CACHE_LOOKUP_DURATION.labels(backend=backend).observe(duration)


def track_fail_open(error_code: str) -> None:
    """Track a lookup that degraded to MISS."""
    CACHE_FAIL_OPEN_TOTAL.labels(error_code=error_code).inc()


def track_embedding_request(
    model: str,
    duration: float,
    batch_size: int,
    success: bool = True,
) -> None:
    """Track embedding request metrics.

    Args:
        model: Embedding model name.
        duration: Request duration in seconds.
        batch_size: Number of texts in the batch.
        success: Whether the request succeeded.
    """
    status = "success" if success else "error"

    EMBEDDING_REQUEST_DURATION.labels(model=model, status=status).observe(duration)
    EMBEDDING_REQUEST_TOTAL.labels(model=model, status=status).inc()
    EMBEDDING_BATCH_SIZE.labels(model=model).observe(batch_size)


def track_search_request(
    backend: str,
    duration: float,
    results_returned: int,
    top_score: float,
    success: bool = True,
) -> None:
    """Track a backend search.

    Args:
        backend: Backend name.
        duration: Search duration in seconds.
        results_returned: Number of candidates returned.
        top_score: Highest similarity score (0 when nothing matched).
        success: Whether the search succeeded.
    """
    status = "success" if success else "error"

    SEARCH_DURATION.labels(backend=backend, status=status).observe(duration)
    if not success:
        return
    SEARCH_RESULTS_RETURNED.labels(backend=backend).observe(results_returned)
    if results_returned > 0:
        SEARCH_TOP_SCORE.labels(backend=backend).observe(top_score)


def track_ingestion(success: bool = True) -> None:
    """Track an ingestion call."""
    INGESTION_TOTAL.labels(status="success" if success else "error").inc()


def track_refresh(
    duration: float,
    reembedded: int,
    metadata_only: int,
    success: bool = True,
) -> None:
    """Track a managed index refresh cycle.

    Args:
        duration: Cycle duration in seconds.
        reembedded: Items whose text changed and were re-embedded.
        metadata_only: Items re-uploaded with their previous vector.
        success: Whether the cycle completed.
    """
    status = "success" if success else "error"

    REFRESH_DURATION.labels(status=status).observe(duration)
    if not success:
        return
    REFRESH_ITEMS_TOTAL.labels(reason="text_changed").inc(reembedded)
    REFRESH_ITEMS_TOTAL.labels(reason="metadata_changed").inc(metadata_only)
    REFRESH_LAST_SUCCESS.set_to_current_time()
