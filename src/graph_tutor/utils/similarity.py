"""Vector helpers shared by the vector index and embedding providers."""

import numpy as np

__all__ = [
    "cosine_similarity",
    "node_embedding_text",
]


def cosine_similarity(embedding1: list[float], embedding2: list[float]) -> float:
    """Compute cosine similarity between two vectors.

    Returns 0.0 when either vector has zero norm or the vectors
    have different dimensionality.
    """
    vec1 = np.asarray(embedding1, dtype=float)
    vec2 = np.asarray(embedding2, dtype=float)
    if vec1.shape != vec2.shape or vec1.size == 0:
        return 0.0
    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return float(np.dot(vec1, vec2) / (norm1 * norm2))


def node_embedding_text(title: str, summary: str) -> str:
    """Text that a node's embedding represents (title + summary)."""
    return f"{title}. {summary}"
