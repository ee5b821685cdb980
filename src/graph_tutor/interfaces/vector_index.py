"""Vector index interface for graph_tutor.

This module defines the Protocol for nearest-neighbor search over
node embeddings, partitioned by tree.
"""

from typing import Protocol, runtime_checkable

__all__ = [
    "VectorIndexInterface",
]


@runtime_checkable
class VectorIndexInterface(Protocol):
    """Contract for filtered top-k cosine similarity search.

    The index is a secondary projection of the document store.
    Queries never raise: an unpopulated or unreachable index
    yields an empty result.
    """

    async def upsert(self, node_id: str, root_id: str, vector: list[float]) -> None:
        """Insert or replace the vector of a node.

        Args:
            node_id: Node ID
            root_id: Root ID of the node's tree (partition key)
            vector: Embedding vector
        """
        ...

    async def query(self, vector: list[float], root_id: str, k: int) -> list[tuple[str, float]]:
        """Find the nodes most similar to vector within one tree.

        Args:
            vector: Query embedding
            root_id: Tree to search
            k: Maximum number of results

        Returns:
            (node_id, score) pairs ordered by descending similarity,
            empty on any index failure
        """
        ...

    async def remove(self, node_ids: list[str]) -> None:
        """Drop index entries of deleted nodes."""
        ...
