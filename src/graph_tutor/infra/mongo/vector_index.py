"""MongoDB vector index for graph_tutor.

Node embeddings live on the node documents themselves, so the index
is a view over the nodes collection: Atlas Vector Search when
available, an in-process cosine scan of the tree otherwise.
"""

from typing import Any

from graph_tutor.infra.mongo.client import MongoClient
from graph_tutor.interfaces.vector_index import VectorIndexInterface
from graph_tutor.logging import get_logger
from graph_tutor.utils.similarity import cosine_similarity

__all__ = [
    "MongoVectorIndex",
]

logger = get_logger(__name__)


class MongoVectorIndex(VectorIndexInterface):
    """VectorIndexInterface backed by the nodes collection.

    Queries are filtered by root_id and never raise: if Atlas
    search fails the tree is scanned in-process, and if that fails
    too the query returns an empty list.
    """

    def __init__(
        self,
        client: MongoClient,
        vector_search_enabled: bool = False,
        index_name: str = "vector_index",
        candidate_factor: int = 10,
    ) -> None:
        """Initialize index over a connected client.

        Args:
            client: Connected MongoClient instance
            vector_search_enabled: Whether Atlas Vector Search is available
            index_name: Name of the Atlas vector search index
            candidate_factor: numCandidates multiplier over the result limit
        """
        self._client = client
        self._vector_search_enabled = vector_search_enabled
        self._index_name = index_name
        self._candidate_factor = candidate_factor

    async def upsert(self, node_id: str, root_id: str, vector: list[float]) -> None:
        """Store the vector on the node document.

        Only existing nodes are updated, so the index can never
        reference a node the document store does not have.
        """
        await self._client.nodes.update_one(
            {"id": node_id, "root_id": root_id},
            {"$set": {"embedding": vector}},
        )

    async def remove(self, node_ids: list[str]) -> None:
        """Clear embeddings of the given nodes."""
        if not node_ids:
            return
        await self._client.nodes.update_many(
            {"id": {"$in": node_ids}},
            {"$unset": {"embedding": ""}},
        )

    async def query(self, vector: list[float], root_id: str, k: int) -> list[tuple[str, float]]:
        """Find the k nodes of a tree most similar to vector."""
        if not vector or k <= 0:
            return []

        if self._vector_search_enabled:
            try:
                return await self._query_vector_search(vector, root_id, k)
            except Exception as e:
                logger.warning(
                    "vector_search_failed_falling_back",
                    root_id=root_id,
                    error=str(e),
                )

        try:
            return await self._query_fallback(vector, root_id, k)
        except Exception as e:
            logger.warning("vector_query_failed", root_id=root_id, error=str(e))
            return []

    async def _query_vector_search(
        self,
        vector: list[float],
        root_id: str,
        k: int,
    ) -> list[tuple[str, float]]:
        """Query using the $vectorSearch aggregation stage."""
        pipeline: list[dict[str, Any]] = [
            {
                "$vectorSearch": {
                    "index": self._index_name,
                    "path": "embedding",
                    "queryVector": vector,
                    "numCandidates": k * self._candidate_factor,
                    "limit": k,
                    "filter": {"root_id": root_id},
                }
            },
            {
                "$project": {
                    "_id": 0,
                    "id": 1,
                    "score": {"$meta": "vectorSearchScore"},
                }
            },
        ]

        results: list[tuple[str, float]] = []
        cursor = self._client.nodes.aggregate(pipeline)
        async for doc in cursor:
            results.append((doc["id"], float(doc.get("score", 0.0))))

        logger.debug("vector_search_completed", root_id=root_id, num_results=len(results))
        return results

    async def _query_fallback(
        self,
        vector: list[float],
        root_id: str,
        k: int,
    ) -> list[tuple[str, float]]:
        """Query by scanning the tree's embeddings in-process."""
        cursor = self._client.nodes.find(
            {"root_id": root_id, "embedding": {"$exists": True, "$ne": []}},
            {"_id": 0, "id": 1, "embedding": 1},
        )
        scored = [(doc["id"], cosine_similarity(vector, doc["embedding"])) async for doc in cursor]
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:k]
