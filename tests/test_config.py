"""Tests for application configuration."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from workout_cache.config import (
    BackendKind,
    CacheSettings,
    EmbeddingSettings,
    Environment,
    QdrantSettings,
    Settings,
    SimilarityThresholds,
    get_settings,
)


class TestEmbeddingSettings:
    """Tests for embedding configuration."""

    def test_default_values(self) -> None:
        """Default values for embedding service."""
        settings = EmbeddingSettings()
        assert settings.base_url == "http://localhost:8080"
        assert settings.model == "e5-base-v2"
        assert settings.dimensions == 768
        assert settings.batch_size == 32

    def test_env_override(self) -> None:
        """Environment variables override defaults."""
        with patch.dict(os.environ, {"EMBEDDING_BATCH_SIZE": "64"}):
            settings = EmbeddingSettings()
            assert settings.batch_size == 64

    def test_api_key_is_secret_when_set(self) -> None:
        """API key should be masked when set."""
        with patch.dict(os.environ, {"EMBEDDING_API_KEY": "token-123"}):
            settings = EmbeddingSettings()
            assert settings.api_key is not None
            assert "token-123" not in str(settings.api_key)
            assert settings.api_key.get_secret_value() == "token-123"


class TestQdrantSettings:
    """Tests for Qdrant configuration."""

    def test_default_values(self) -> None:
        """Default values for Qdrant."""
        settings = QdrantSettings()
        assert settings.url == "http://localhost:6333"
        assert settings.api_key is None
        assert settings.collection_name == "workouts"

    def test_api_key_is_secret_when_set(self) -> None:
        """API key should be masked when set."""
        with patch.dict(os.environ, {"QDRANT_API_KEY": "secret-key"}):
            settings = QdrantSettings()
            assert settings.api_key is not None
            assert "secret-key" not in str(settings.api_key)
            assert settings.api_key.get_secret_value() == "secret-key"


class TestSimilarityThresholds:
    """Tests for decision thresholds."""

    def test_default_values(self) -> None:
        """Defaults are ordered excellent > very good > good."""
        thresholds = SimilarityThresholds()
        assert thresholds.excellent == 0.90
        assert thresholds.very_good == 0.80
        assert thresholds.good == 0.70

    def test_unordered_thresholds_rejected(self) -> None:
        """Thresholds must not decrease from excellent to good."""
        with pytest.raises(ValidationError, match="excellent >= very_good >= good"):
            SimilarityThresholds(excellent=0.7, very_good=0.8, good=0.6)

    def test_out_of_range_rejected(self) -> None:
        """Thresholds live in [0, 1]."""
        with pytest.raises(ValidationError):
            SimilarityThresholds(excellent=1.5)

    def test_env_override(self) -> None:
        """Environment variables override defaults."""
        with patch.dict(os.environ, {"SIMILARITY_GOOD": "0.65"}):
            assert SimilarityThresholds().good == 0.65


class TestCacheSettings:
    """Tests for cache behaviour configuration."""

    def test_default_values(self) -> None:
        """Direct backend with bounded retries by default."""
        settings = CacheSettings()
        assert settings.backend == BackendKind.DIRECT
        assert settings.fallback_backend is None
        assert settings.target_lag == 60.0
        assert settings.max_attempts == 3
        assert settings.default_limit == 5

    def test_backend_from_env(self) -> None:
        """Backend is chosen by configuration."""
        with patch.dict(
            os.environ,
            {"CACHE_BACKEND": "managed", "CACHE_FALLBACK_BACKEND": "direct"},
        ):
            settings = CacheSettings()
            assert settings.backend == BackendKind.MANAGED
            assert settings.fallback_backend == BackendKind.DIRECT

    def test_attempts_must_be_positive(self) -> None:
        """At least one attempt is required."""
        with pytest.raises(ValidationError):
            CacheSettings(max_attempts=0)

    def test_target_lag_must_be_positive(self) -> None:
        """A zero staleness bound is rejected."""
        with pytest.raises(ValidationError):
            CacheSettings(target_lag=0)


class TestSettings:
    """Tests for main application settings."""

    def test_default_environment(self) -> None:
        """Default environment is development."""
        settings = Settings()
        assert settings.environment == Environment.DEVELOPMENT

    def test_default_api_settings(self) -> None:
        """Default API host and port."""
        settings = Settings()
        assert settings.api_host == "0.0.0.0"
        assert settings.api_port == 8000

    def test_nested_settings_loaded(self) -> None:
        """Nested settings are initialized."""
        settings = Settings()
        assert isinstance(settings.embedding, EmbeddingSettings)
        assert isinstance(settings.qdrant, QdrantSettings)
        assert isinstance(settings.similarity, SimilarityThresholds)
        assert isinstance(settings.cache, CacheSettings)

    def test_environment_enum(self) -> None:
        """Environment can be set via string."""
        with patch.dict(os.environ, {"ENVIRONMENT": "production"}):
            settings = Settings()
            assert settings.environment == Environment.PRODUCTION


class TestGetSettings:
    """Tests for settings singleton."""

    def test_returns_settings_instance(self) -> None:
        """get_settings returns a Settings instance."""
        get_settings.cache_clear()
        settings = get_settings()
        assert isinstance(settings, Settings)

    def test_caching(self) -> None:
        """Settings are cached."""
        get_settings.cache_clear()
        settings1 = get_settings()
        settings2 = get_settings()
        assert settings1 is settings2
