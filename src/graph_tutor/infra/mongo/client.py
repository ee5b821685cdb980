"""MongoDB client for graph_tutor.

This module provides an async MongoDB client wrapper using Motor.
"""

from typing import TYPE_CHECKING, Any

from graph_tutor.config import MongoSettings
from graph_tutor.logging import get_logger
from graph_tutor.utils.lazy_import import lazy_import

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

__all__ = [
    "MongoClient",
]

logger = get_logger(__name__)

get_async_motor = lazy_import("motor.motor_asyncio", "AsyncIOMotorClient")


class MongoClient:
    """Async MongoDB client wrapper.

    Provides a connection manager and collection accessors
    for the graph_tutor MongoDB database.

    Example:
        client = MongoClient(settings)
        await client.connect()

        # Access collections
        await client.nodes.find_one({"id": node_id})

        await client.disconnect()
    """

    def __init__(self, settings: MongoSettings) -> None:
        """Initialize client with settings.

        Args:
            settings: MongoDB connection settings
        """
        self._settings = settings
        self._client = None
        self._db = None

    async def connect(self) -> None:
        """Initialize connection to MongoDB."""
        if self._client is not None:
            return
        AsyncIOMotorClient = get_async_motor()  # noqa: N806

        uri = self._settings.uri.get_secret_value()
        self._client = AsyncIOMotorClient(
            uri,
            serverSelectionTimeoutMS=self._settings.server_selection_timeout_ms,
        )
        self._db = self._client[self._settings.database]

        # Verify connection
        await self._client.admin.command("ping")
        logger.info(
            "connected_to_mongodb",
            database=self._settings.database,
        )

    async def disconnect(self) -> None:
        """Close connection to MongoDB."""
        if self._client:
            self._client.close()
            self._client = None
            self._db = None
            logger.info("disconnected_from_mongodb")

    @property
    def db(self) -> "AsyncIOMotorDatabase[dict[str, Any]]":
        """Get database instance.

        Raises:
            RuntimeError: If not connected
        """
        if self._db is None:
            raise RuntimeError("MongoClient not connected. Call connect() first.")
        return self._db

    def _collection(self, name: str) -> "AsyncIOMotorCollection[dict[str, Any]]":
        """Get collection with optional prefix."""
        full_name = f"{self._settings.collection_prefix}{name}"
        return self.db[full_name]

    @property
    def nodes(self) -> "AsyncIOMotorCollection[dict[str, Any]]":
        """Get nodes collection."""
        return self._collection("nodes")

    @property
    def root_topics(self) -> "AsyncIOMotorCollection[dict[str, Any]]":
        """Get root_topics collection."""
        return self._collection("root_topics")

    @property
    def interactions(self) -> "AsyncIOMotorCollection[dict[str, Any]]":
        """Get node_interactions collection."""
        return self._collection("node_interactions")

    async def create_indexes(self) -> None:
        """Create indexes for all collections."""
        # Nodes indexes
        await self.nodes.create_index("id", unique=True)
        await self.nodes.create_index([("root_id", 1), ("parent_id", 1)])
        await self.nodes.create_index("ancestor_path")
        await self.nodes.create_index("children_ids")

        # Interaction indexes
        await self.interactions.create_index([("node_id", 1), ("timestamp", -1)])

        # Root topic indexes
        await self.root_topics.create_index("id", unique=True)

        logger.info("created_mongodb_indexes")

    async def create_vector_search_index(
        self,
        index_name: str,
        dimensions: int,
    ) -> bool:
        """Create vector search index for the nodes collection.

        This creates a MongoDB Atlas Vector Search index on the node
        embedding field with root_id as a filter field, so queries
        can be restricted to a single tree. The index must be created
        on Atlas (not available on standalone MongoDB).

        Args:
            index_name: Name for the vector search index
            dimensions: Number of dimensions in the embedding vectors

        Returns:
            True if index was created or already exists, False if not supported
        """
        try:
            existing_indexes = await self.nodes.list_search_indexes().to_list()
            for idx in existing_indexes:
                if idx.get("name") == index_name:
                    logger.info(
                        "vector_search_index_exists",
                        index_name=index_name,
                    )
                    return True

            search_index_model = {
                "name": index_name,
                "type": "vectorSearch",
                "definition": {
                    "fields": [
                        {
                            "type": "vector",
                            "path": "embedding",
                            "numDimensions": dimensions,
                            "similarity": "cosine",
                        },
                        {
                            "type": "filter",
                            "path": "root_id",
                        },
                    ]
                },
            }

            await self.nodes.create_search_index(search_index_model)
            logger.info(
                "created_vector_search_index",
                index_name=index_name,
                dimensions=dimensions,
            )
            return True

        except Exception as e:
            # Vector search indexes are only available on MongoDB Atlas
            logger.warning(
                "vector_search_index_not_available",
                error=str(e),
                hint="Vector search requires MongoDB Atlas. Falling back to in-process search.",
            )
            return False

    @property
    def vector_search_available(self) -> bool:
        """Check if vector search is potentially available.

        This is a quick check based on URI - actual availability
        depends on Atlas configuration.
        """
        uri = self._settings.uri.get_secret_value()
        return "mongodb+srv://" in uri or "mongodb.net" in uri

    async def __aenter__(self) -> "MongoClient":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.disconnect()
