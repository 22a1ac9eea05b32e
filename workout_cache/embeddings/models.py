"""Embedding provider response models."""

from pydantic import BaseModel, Field


class EmbeddingResult(BaseModel):
    """One vector returned by the provider.

    ``index`` is the position of the input text in the request batch;
    providers may answer out of order.
    """

    index: int = Field(ge=0, description="Position in the request batch")
    embedding: list[float] = Field(min_length=1, description="Embedding vector")
    model: str = Field(description="Model that produced the vector")

    @property
    def dimensions(self) -> int:
        return len(self.embedding)
