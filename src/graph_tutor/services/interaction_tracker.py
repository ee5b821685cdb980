"""Interaction tracking service for graph_tutor."""

import time

from graph_tutor.errors import NotFoundError
from graph_tutor.interfaces.storage import StorageInterface
from graph_tutor.logging import get_logger
from graph_tutor.models.interaction import NodeInteractionDTO

__all__ = [
    "InteractionTracker",
]

logger = get_logger(__name__)


class InteractionTracker:
    """Records completed chat turns against nodes.

    Callers are expected to record each turn exactly once; there
    is no dedup key.
    """

    def __init__(self, storage: StorageInterface) -> None:
        self._storage = storage

    async def record(self, node_id: str, user_message: str, ai_response: str) -> int:
        """Append an interaction and atomically bump the node's counter.

        Args:
            node_id: Node the turn resolved to
            user_message: User's question
            ai_response: Tutor's answer

        Returns:
            interaction_count after the increment

        Raises:
            NotFoundError: If the node does not exist
        """
        if await self._storage.get_node(node_id) is None:
            raise NotFoundError("Node", node_id)

        await self._storage.append_interaction(
            NodeInteractionDTO(
                node_id=node_id,
                user_message=user_message,
                ai_response=ai_response,
                timestamp=int(time.time()),
            )
        )
        count = await self._storage.increment_interaction_count(node_id)
        if count is None:
            # Node deleted between the append and the increment
            await self._storage.delete_interactions([node_id])
            raise NotFoundError("Node", node_id)

        logger.debug("interaction_recorded", node_id=node_id, interaction_count=count)
        return count

    async def list_interactions(self, node_id: str) -> list[NodeInteractionDTO]:
        """Get a node's interactions in chronological order."""
        if await self._storage.get_node(node_id) is None:
            raise NotFoundError("Node", node_id)
        return await self._storage.list_interactions(node_id)
