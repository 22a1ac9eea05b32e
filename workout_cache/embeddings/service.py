"""Embedding provider interface and HTTP implementation."""

import time
from abc import ABC, abstractmethod

import httpx

from workout_cache.config import EmbeddingSettings, get_settings
from workout_cache.embeddings.models import EmbeddingResult
from workout_cache.exceptions import EmbeddingUnavailableError, ErrorCode, ProviderError
from workout_cache.logging_config import get_logger
from workout_cache.observability.metrics import track_embedding_request
from workout_cache.retry import call_with_timeout

logger = get_logger(__name__)


class EmbeddingService(ABC):
    """Abstract base class for embedding providers.

    Maps text to a fixed-length dense vector for one model. Implementations
    raise ProviderError on quota, timeout or transport failures.
    """

    @abstractmethod
    async def embed(self, text: str) -> EmbeddingResult:
        """Generate embedding for a single text.

        Args:
            text: Text to embed.

        Returns:
            EmbeddingResult with vector.

        Raises:
            ProviderError: If embedding fails.
        """
        ...

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Generate embeddings for multiple texts.

        Args:
            texts: List of texts to embed.

        Returns:
            List of EmbeddingResult objects, in input order.

        Raises:
            ProviderError: If embedding fails.
        """
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name used for embeddings."""
        ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Get the embedding dimensions."""
        ...

    async def close(self) -> None:
        """Release any held resources."""
        return None


class HTTPEmbeddingService(EmbeddingService):
    """Embedding provider using an HTTP API.

    Compatible with OpenAI-style embedding APIs and
    text-embeddings-inference (TEI) servers.
    """

    def __init__(
        self,
        settings: EmbeddingSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP embedding service.

        Args:
            settings: Embedding configuration. Uses defaults if not provided.
            client: HTTP client. Creates new one if not provided.
        """
        self._settings = settings or get_settings().embedding
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=60.0)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._settings.model

    @property
    def dimensions(self) -> int:
        """Get embedding dimensions."""
        return self._settings.dimensions

    async def embed(self, text: str) -> EmbeddingResult:
        """Generate embedding for a single text."""
        results = await self.embed_batch([text])
        if not results:
            raise ProviderError(
                "Embedding service returned no vectors",
                code=ErrorCode.EMBEDDING_INVALID_RESPONSE,
                details={"model": self.model_name},
            )
        return results[0]

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Generate embeddings for multiple texts, chunked by batch size."""
        if not texts:
            return []

        client = await self._get_client()
        url = f"{self._settings.base_url}/embeddings"

        all_results: list[EmbeddingResult] = []
        batch_size = self._settings.batch_size

        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            start = time.perf_counter()
            try:
                batch_results = await self._embed_batch_request(client, url, batch)
            except ProviderError:
                track_embedding_request(
                    model=self.model_name,
                    duration=time.perf_counter() - start,
                    batch_size=len(batch),
                    success=False,
                )
                raise
            track_embedding_request(
                model=self.model_name,
                duration=time.perf_counter() - start,
                batch_size=len(batch),
            )
            # Indexes are per request; shift them to positions in ``texts``
            all_results.extend(
                r.model_copy(update={"index": i + r.index}) for r in batch_results
            )

        return all_results

    def _headers(self) -> dict[str, str]:
        if self._settings.api_key is None:
            return {}
        return {"Authorization": f"Bearer {self._settings.api_key.get_secret_value()}"}

    async def _embed_batch_request(
        self,
        client: httpx.AsyncClient,
        url: str,
        texts: list[str],
    ) -> list[EmbeddingResult]:
        """Make embedding request for a batch.

        Args:
            client: HTTP client.
            url: Embedding endpoint URL.
            texts: Batch of texts.

        Returns:
            List of EmbeddingResult objects.

        Raises:
            ProviderError: If request fails or the response is malformed.
        """
        payload = {
            "input": texts,
            "model": self._settings.model,
        }

        try:
            response = await client.post(url, json=payload, headers=self._headers())
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error(f"Embedding request timed out: {e}", extra={"url": url})
            raise ProviderError(
                "Embedding request timed out",
                code=ErrorCode.EMBEDDING_TIMEOUT,
                details={"url": url},
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(
                f"Embedding request failed: {status}",
                extra={"url": url, "status": status},
            )
            code = (
                ErrorCode.EMBEDDING_QUOTA
                if status == 429
                else ErrorCode.EMBEDDING_UNAVAILABLE
            )
            raise ProviderError(
                f"Embedding service returned {status}",
                code=code,
                details={"status_code": status},
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Embedding request error: {e}", extra={"url": url})
            raise ProviderError(
                f"Failed to connect to embedding service: {e}",
                code=ErrorCode.EMBEDDING_UNAVAILABLE,
                details={"url": url},
            ) from e

        try:
            data = response.json()
            results = [
                EmbeddingResult(
                    index=emb_data.get("index", position),
                    embedding=emb_data["embedding"],
                    model=self._settings.model,
                )
                for position, emb_data in enumerate(data["data"])
            ]
            results.sort(key=lambda r: r.index)
            if [r.index for r in results] != list(range(len(texts))):
                raise ValueError(
                    f"expected {len(texts)} vectors, got {len(results)}"
                )
            for result in results:
                if result.dimensions != self.dimensions:
                    raise ValueError(
                        f"expected {self.dimensions} dimensions, got {result.dimensions}"
                    )
            return results

        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise ProviderError(
                f"Invalid response from embedding service: {e}",
                code=ErrorCode.EMBEDDING_INVALID_RESPONSE,
                details={"error": str(e)},
            ) from e


async def embed_with_timeout(
    service: EmbeddingService,
    text: str,
    timeout: float,
) -> list[float]:
    """Embed ``text`` for a pipeline, bounded by ``timeout`` seconds.

    Raises:
        EmbeddingUnavailableError: On provider failure or timeout. Retryable.
    """
    try:
        result = await call_with_timeout(
            lambda: service.embed(text),
            timeout,
            on_timeout=lambda: EmbeddingUnavailableError(
                f"Embedding timed out after {timeout}s",
                code=ErrorCode.EMBEDDING_TIMEOUT,
                details={"timeout": timeout, "model": service.model_name},
            ),
        )
    except ProviderError as e:
        raise EmbeddingUnavailableError(
            f"Embedding provider failed: {e.message}",
            code=e.code,
            details=e.details,
        ) from e
    return result.embedding
