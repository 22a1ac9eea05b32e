"""Ingestion pipeline module."""

from workout_cache.ingestion.models import EmbeddingCoverage, IngestResult
from workout_cache.ingestion.pipeline import IngestionPipeline

__all__ = [
    "EmbeddingCoverage",
    "IngestResult",
    "IngestionPipeline",
]
