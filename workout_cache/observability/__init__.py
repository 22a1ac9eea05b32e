"""Observability module for metrics and monitoring."""

from workout_cache.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
    track_cache_lookup,
    track_embedding_request,
    track_fail_open,
    track_ingestion,
    track_refresh,
    track_search_request,
)

__all__ = [
    "MetricsMiddleware",
    "get_metrics",
    "get_metrics_content_type",
    "track_cache_lookup",
    "track_embedding_request",
    "track_fail_open",
    "track_ingestion",
    "track_refresh",
    "track_search_request",
]
