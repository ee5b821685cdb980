"""MongoDB repositories for graph_tutor.

This module provides the StorageInterface implementation for MongoDB.
"""

import re
from typing import Any, Self

from pymongo import ReturnDocument

from graph_tutor.config import MongoSettings
from graph_tutor.infra.mongo.client import MongoClient
from graph_tutor.infra.mongo.vector_index import MongoVectorIndex
from graph_tutor.interfaces.storage import StorageInterface
from graph_tutor.logging import get_logger
from graph_tutor.models.interaction import NodeInteractionDTO
from graph_tutor.models.node import NodeDTO, NodeNoteDTO
from graph_tutor.models.topic import RootTopicDTO

__all__ = [
    "MongoStorageRepository",
]

logger = get_logger(__name__)


class MongoStorageRepository(StorageInterface):
    """MongoDB implementation of StorageInterface.

    Stores root topics, nodes and interactions in three collections.
    Node embeddings are stored on the node documents, and the
    matching MongoVectorIndex is exposed as `vector_index`.
    """

    config_class = MongoSettings

    def __init__(
        self,
        client: MongoClient,
        vector_index: MongoVectorIndex | None = None,
    ) -> None:
        """Initialize repository with MongoDB client.

        Args:
            client: Connected MongoClient instance
            vector_index: Vector index over the same client
        """
        self._client = client
        self._owns_client = False
        self.vector_index = vector_index or MongoVectorIndex(client)

    @classmethod
    async def from_config(cls, config: MongoSettings) -> Self:
        """Factory method for GraphTutor instantiation.

        Creates a MongoClient, connects, creates indexes, and returns repository.

        Args:
            config: MongoDB settings

        Returns:
            Connected MongoStorageRepository instance
        """
        client = MongoClient(config)
        await client.connect()
        await client.create_indexes()

        # Try to create vector search index if enabled and on Atlas
        vector_search_enabled = False
        if config.vector_search_enabled and client.vector_search_available:
            vector_search_enabled = await client.create_vector_search_index(
                index_name=config.vector_search_index_name,
                dimensions=config.vector_dimensions,
            )

        vector_index = MongoVectorIndex(
            client,
            vector_search_enabled=vector_search_enabled,
            index_name=config.vector_search_index_name,
            candidate_factor=config.vector_search_candidate_factor,
        )
        instance = cls(client, vector_index=vector_index)
        instance._owns_client = True
        return instance

    @classmethod
    async def from_dict(cls, config: dict[str, Any]) -> Self:
        """Factory method for custom config dict.

        Args:
            config: Dictionary with MongoDB settings

        Returns:
            Connected MongoStorageRepository instance
        """
        settings = MongoSettings(**config)
        return await cls.from_config(settings)

    async def close(self) -> None:
        """Close owned resources."""
        if self._owns_client and self._client:
            await self._client.disconnect()

    # Root topic operations
    async def insert_root_topic(self, topic: RootTopicDTO) -> None:
        await self._client.root_topics.insert_one(topic.model_dump())

    async def get_root_topic(self, root_id: str) -> RootTopicDTO | None:
        doc = await self._client.root_topics.find_one({"id": root_id})
        return self._doc_to_root_topic(doc) if doc else None

    async def find_root_topic_by_title(self, title: str) -> RootTopicDTO | None:
        pattern = f"^{re.escape(title.strip())}$"
        doc = await self._client.root_topics.find_one(
            {"title": {"$regex": pattern, "$options": "i"}}
        )
        return self._doc_to_root_topic(doc) if doc else None

    async def list_root_topics(self) -> list[RootTopicDTO]:
        cursor = self._client.root_topics.find().sort("created_at", -1)
        return [self._doc_to_root_topic(doc) async for doc in cursor]

    async def update_root_topic(self, root_id: str, fields: dict[str, Any]) -> RootTopicDTO | None:
        doc = await self._client.root_topics.find_one_and_update(
            {"id": root_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        return self._doc_to_root_topic(doc) if doc else None

    async def delete_root_topic(self, root_id: str) -> bool:
        result = await self._client.root_topics.delete_one({"id": root_id})
        return result.deleted_count > 0

    async def increment_node_count(self, root_id: str, delta: int) -> None:
        await self._client.root_topics.update_one(
            {"id": root_id},
            {"$inc": {"node_count": delta}},
        )

    # Node operations
    async def insert_node(self, node: NodeDTO) -> None:
        await self._client.nodes.insert_one(node.model_dump())

    async def get_node(self, node_id: str) -> NodeDTO | None:
        doc = await self._client.nodes.find_one({"id": node_id})
        return self._doc_to_node(doc) if doc else None

    async def get_nodes(self, node_ids: list[str]) -> list[NodeDTO]:
        if not node_ids:
            return []
        cursor = self._client.nodes.find({"id": {"$in": node_ids}})
        return [self._doc_to_node(doc) async for doc in cursor]

    async def list_tree(self, root_id: str) -> list[NodeDTO]:
        cursor = self._client.nodes.find({"root_id": root_id}).sort("created_at", 1)
        return [self._doc_to_node(doc) async for doc in cursor]

    async def find_child_ids(self, parent_ids: list[str]) -> list[str]:
        if not parent_ids:
            return []
        cursor = self._client.nodes.find(
            {"parent_id": {"$in": parent_ids}},
            {"_id": 0, "id": 1},
        )
        return [doc["id"] async for doc in cursor]

    async def update_node_fields(self, node_id: str, fields: dict[str, Any]) -> NodeDTO | None:
        doc = await self._client.nodes.find_one_and_update(
            {"id": node_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        return self._doc_to_node(doc) if doc else None

    async def push_child(self, parent_id: str, child_id: str) -> bool:
        result = await self._client.nodes.update_one(
            {"id": parent_id},
            {"$push": {"children_ids": child_id}},
        )
        return result.matched_count > 0

    async def pull_child(self, parent_id: str, child_id: str) -> None:
        await self._client.nodes.update_one(
            {"id": parent_id},
            {"$pull": {"children_ids": child_id}},
        )

    async def increment_interaction_count(self, node_id: str) -> int | None:
        doc = await self._client.nodes.find_one_and_update(
            {"id": node_id},
            {"$inc": {"interaction_count": 1}},
            projection={"_id": 0, "interaction_count": 1},
            return_document=ReturnDocument.AFTER,
        )
        return doc["interaction_count"] if doc else None

    async def push_note(self, node_id: str, note: NodeNoteDTO) -> bool:
        result = await self._client.nodes.update_one(
            {"id": node_id},
            {"$push": {"notes": note.model_dump()}},
        )
        return result.matched_count > 0

    async def pull_note(self, node_id: str, note_id: str) -> bool:
        result = await self._client.nodes.update_one(
            {"id": node_id},
            {"$pull": {"notes": {"id": note_id}}},
        )
        return result.matched_count > 0

    async def delete_nodes(self, node_ids: list[str]) -> int:
        if not node_ids:
            return 0
        result = await self._client.nodes.delete_many({"id": {"$in": node_ids}})
        return result.deleted_count

    async def delete_nodes_by_root(self, root_id: str) -> int:
        result = await self._client.nodes.delete_many({"root_id": root_id})
        return result.deleted_count

    # Interaction operations
    async def append_interaction(self, interaction: NodeInteractionDTO) -> None:
        """Append interaction record (never update)."""
        await self._client.interactions.insert_one(interaction.model_dump())

    async def get_recent_interactions(self, node_id: str, limit: int) -> list[NodeInteractionDTO]:
        cursor = (
            self._client.interactions.find({"node_id": node_id})
            .sort("timestamp", -1)
            .limit(limit)
        )
        return [self._doc_to_interaction(doc) async for doc in cursor]

    async def count_interactions(self, node_id: str) -> int:
        return await self._client.interactions.count_documents({"node_id": node_id})

    async def list_interactions(self, node_id: str) -> list[NodeInteractionDTO]:
        cursor = self._client.interactions.find({"node_id": node_id}).sort("timestamp", 1)
        return [self._doc_to_interaction(doc) async for doc in cursor]

    async def delete_interactions(self, node_ids: list[str]) -> int:
        if not node_ids:
            return 0
        result = await self._client.interactions.delete_many({"node_id": {"$in": node_ids}})
        return result.deleted_count

    # Document conversion helpers
    @staticmethod
    def _doc_to_root_topic(doc: dict[str, Any]) -> RootTopicDTO:
        return RootTopicDTO(
            id=doc["id"],
            title=doc["title"],
            description=doc.get("description", ""),
            node_count=max(doc.get("node_count", 0), 0),
            created_at=doc["created_at"],
            schema_version=doc.get("schema_version", 1),
        )

    @staticmethod
    def _doc_to_node(doc: dict[str, Any]) -> NodeDTO:
        return NodeDTO(
            id=doc["id"],
            title=doc["title"],
            summary=doc.get("summary", ""),
            parent_id=doc.get("parent_id"),
            root_id=doc["root_id"],
            tags=doc.get("tags", []),
            embedding=doc.get("embedding", []),
            children_ids=doc.get("children_ids", []),
            ancestor_path=doc["ancestor_path"],
            interaction_count=doc.get("interaction_count", 0),
            notes=[NodeNoteDTO(**note) for note in doc.get("notes", [])],
            created_at=doc["created_at"],
            last_refined_at=doc.get("last_refined_at"),
            schema_version=doc.get("schema_version", 1),
        )

    @staticmethod
    def _doc_to_interaction(doc: dict[str, Any]) -> NodeInteractionDTO:
        return NodeInteractionDTO(
            node_id=doc["node_id"],
            user_message=doc.get("user_message", ""),
            ai_response=doc.get("ai_response", ""),
            timestamp=doc["timestamp"],
            schema_version=doc.get("schema_version", 1),
        )
