"""Storage interface for graph_tutor.

This module defines the Protocol for the document store that holds
root topics, nodes and interaction records.
"""

from typing import Any, ClassVar, Protocol, runtime_checkable

from graph_tutor.models.interaction import NodeInteractionDTO
from graph_tutor.models.node import NodeDTO, NodeNoteDTO
from graph_tutor.models.topic import RootTopicDTO

__all__ = [
    "StorageInterface",
]


@runtime_checkable
class StorageInterface(Protocol):
    """Contract for persistent storage operations.

    The store is the source of truth for node identity and adjacency.
    Every method is a single atomic per-document operation, list
    mutations use atomic append/remove semantics and counters use
    atomic increments. Multi-document consistency is the job of
    GraphStore.
    """

    config_class: ClassVar[type | None] = None

    # Root topic operations
    async def insert_root_topic(self, topic: RootTopicDTO) -> None:
        """Insert a new root topic record."""
        ...

    async def get_root_topic(self, root_id: str) -> RootTopicDTO | None:
        """Get a root topic by ID.

        Args:
            root_id: Root topic ID

        Returns:
            RootTopicDTO if found, None otherwise
        """
        ...

    async def find_root_topic_by_title(self, title: str) -> RootTopicDTO | None:
        """Find a root topic whose title equals title, ignoring case.

        Args:
            title: Title to look up

        Returns:
            Matching RootTopicDTO, None if no topic has that title
        """
        ...

    async def list_root_topics(self) -> list[RootTopicDTO]:
        """List all root topics, newest first."""
        ...

    async def update_root_topic(self, root_id: str, fields: dict[str, Any]) -> RootTopicDTO | None:
        """Set fields on a root topic.

        Returns:
            Updated RootTopicDTO, None if the topic does not exist
        """
        ...

    async def delete_root_topic(self, root_id: str) -> bool:
        """Delete a root topic record.

        Returns:
            True if a record was deleted
        """
        ...

    async def increment_node_count(self, root_id: str, delta: int) -> None:
        """Atomically add delta to a root topic's node_count."""
        ...

    # Node operations
    async def insert_node(self, node: NodeDTO) -> None:
        """Insert a new node document."""
        ...

    async def get_node(self, node_id: str) -> NodeDTO | None:
        """Get a node by ID.

        Args:
            node_id: Node ID

        Returns:
            NodeDTO if found, None otherwise
        """
        ...

    async def get_nodes(self, node_ids: list[str]) -> list[NodeDTO]:
        """Get several nodes by ID. Missing IDs are skipped."""
        ...

    async def list_tree(self, root_id: str) -> list[NodeDTO]:
        """Get every node of a tree, root included."""
        ...

    async def find_child_ids(self, parent_ids: list[str]) -> list[str]:
        """Get IDs of nodes whose parent_id is in parent_ids."""
        ...

    async def update_node_fields(self, node_id: str, fields: dict[str, Any]) -> NodeDTO | None:
        """Set fields on a node in a single update.

        Args:
            node_id: Node ID
            fields: Field values to set

        Returns:
            Updated NodeDTO, None if the node does not exist
        """
        ...

    async def push_child(self, parent_id: str, child_id: str) -> bool:
        """Atomically append child_id to a node's children_ids.

        Returns:
            True if the parent exists
        """
        ...

    async def pull_child(self, parent_id: str, child_id: str) -> None:
        """Atomically remove child_id from a node's children_ids."""
        ...

    async def increment_interaction_count(self, node_id: str) -> int | None:
        """Atomically increment a node's interaction_count.

        Returns:
            Count after the increment, None if the node does not exist
        """
        ...

    async def push_note(self, node_id: str, note: NodeNoteDTO) -> bool:
        """Append a note to a node. Returns False if the node does not exist."""
        ...

    async def pull_note(self, node_id: str, note_id: str) -> bool:
        """Remove a note from a node. Returns False if the node does not exist."""
        ...

    async def delete_nodes(self, node_ids: list[str]) -> int:
        """Delete nodes by ID.

        Returns:
            Number of nodes deleted
        """
        ...

    async def delete_nodes_by_root(self, root_id: str) -> int:
        """Delete every node of a tree.

        Returns:
            Number of nodes deleted
        """
        ...

    # Interaction operations
    async def append_interaction(self, interaction: NodeInteractionDTO) -> None:
        """Append an interaction record."""
        ...

    async def get_recent_interactions(self, node_id: str, limit: int) -> list[NodeInteractionDTO]:
        """Get the latest interactions of a node, newest first.

        Args:
            node_id: Node ID
            limit: Maximum number of records

        Returns:
            Interaction records ordered by timestamp descending
        """
        ...

    async def count_interactions(self, node_id: str) -> int:
        """Count stored interactions of a node."""
        ...

    async def list_interactions(self, node_id: str) -> list[NodeInteractionDTO]:
        """Get all interactions of a node in chronological order."""
        ...

    async def delete_interactions(self, node_ids: list[str]) -> int:
        """Delete every interaction of the given nodes.

        Returns:
            Number of records deleted
        """
        ...
