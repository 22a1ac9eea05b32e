"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
No secrets are hardcoded.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class BackendKind(str, Enum):
    """Index backend strategy."""

    MANAGED = "managed"
    DIRECT = "direct"


class EmbeddingSettings(BaseSettings):
    """Embedding provider configuration."""

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    base_url: str = Field(
        default="http://localhost:8080",
        description="Embedding service base URL",
    )
    model: str = Field(
        default="e5-base-v2",
        description="Embedding model name",
    )
    dimensions: int = Field(
        default=768,
        gt=0,
        description="Vector dimensions produced by the model",
    )
    batch_size: int = Field(
        default=32,
        description="Batch size for embedding requests",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Bearer token for the embedding service (optional)",
    )


class QdrantSettings(BaseSettings):
    """Qdrant configuration for the managed search index."""

    model_config = SettingsConfigDict(env_prefix="QDRANT_")

    url: str = Field(
        default="http://localhost:6333",
        description="Qdrant server URL (':memory:' for in-process mode)",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Qdrant API key (optional for local)",
    )
    collection_name: str = Field(
        default="workouts",
        description="Collection holding workout vectors",
    )


class SimilarityThresholds(BaseSettings):
    """Score thresholds for the cache decision policy.

    Shared by both backends so that decisions stay comparable.
    """

    model_config = SettingsConfigDict(env_prefix="SIMILARITY_")

    excellent: float = Field(default=0.90, ge=0.0, le=1.0)
    very_good: float = Field(default=0.80, ge=0.0, le=1.0)
    good: float = Field(default=0.70, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_order(self) -> "SimilarityThresholds":
        if not self.excellent >= self.very_good >= self.good:
            raise ValueError(
                "thresholds must satisfy excellent >= very_good >= good, "
                f"got {self.excellent}, {self.very_good}, {self.good}"
            )
        return self


class CacheSettings(BaseSettings):
    """Query and ingestion behaviour."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    backend: BackendKind = Field(
        default=BackendKind.DIRECT,
        description="Active index backend",
    )
    fallback_backend: BackendKind | None = Field(
        default=None,
        description="Backend to query when the active one is unavailable",
    )
    target_lag: float = Field(
        default=60.0,
        gt=0.0,
        description="Staleness bound in seconds for the managed index",
    )
    embedding_timeout: float = Field(
        default=5.0,
        gt=0.0,
        description="Timeout in seconds for a single embedding call",
    )
    search_timeout: float = Field(
        default=2.0,
        gt=0.0,
        description="Timeout in seconds for a single backend search",
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts for retryable embedding and search failures",
    )
    retry_max_wait: float = Field(
        default=2.0,
        ge=0.0,
        description="Upper bound in seconds for backoff between attempts",
    )
    max_concurrent_queries: int = Field(
        default=64,
        ge=1,
        description="Queries allowed in flight at once",
    )
    default_limit: int = Field(
        default=5,
        ge=0,
        description="Candidates returned when the caller gives no limit",
    )


class Settings(BaseSettings):
    """Main application settings.

    Aggregates all configuration sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # API settings
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host",
    )
    api_port: int = Field(
        default=8000,
        description="API server port",
    )

    # Nested settings
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    qdrant: QdrantSettings = Field(default_factory=QdrantSettings)
    similarity: SimilarityThresholds = Field(default_factory=SimilarityThresholds)
    cache: CacheSettings = Field(default_factory=CacheSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()
