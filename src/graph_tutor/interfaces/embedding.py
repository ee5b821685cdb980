"""Embedding provider interface for graph_tutor.

A node's embedding represents its title and summary, a question's
embedding represents the question text. Both must come from the same
model so cosine scores are comparable.
"""

from typing import Protocol, runtime_checkable

__all__ = [
    "EmbeddingServiceInterface",
]


@runtime_checkable
class EmbeddingServiceInterface(Protocol):
    """Contract for text -> fixed-length vector providers.

    Every vector returned has exactly `dimensions` components. Provider
    failures surface as EmbeddingFailedError; callers on the write path
    let it propagate, placement aborts on it.
    """

    @property
    def dimensions(self) -> int:
        """Length of every vector this provider returns."""
        ...

    async def embed(self, text: str) -> list[float]:
        """Embed one text.

        Raises:
            EmbeddingFailedError: If the provider call fails
        """
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts, results in input order."""
        ...
