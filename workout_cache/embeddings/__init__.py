"""Embedding provider module."""

from workout_cache.embeddings.models import EmbeddingResult
from workout_cache.embeddings.service import EmbeddingService, HTTPEmbeddingService

__all__ = [
    "EmbeddingResult",
    "EmbeddingService",
    "HTTPEmbeddingService",
]
