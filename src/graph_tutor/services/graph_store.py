"""Graph store service for graph_tutor.

This module owns the tree of topic nodes: creation and deletion of
roots and subtopics, adjacency (children_ids), ancestor paths,
per-root node counts and the vector index projection.
"""

import asyncio
import time
import uuid
from collections import defaultdict
from typing import Any

from graph_tutor.config import GraphTutorConfig
from graph_tutor.errors import (
    DuplicateTitleError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from graph_tutor.interfaces.embedding import EmbeddingServiceInterface
from graph_tutor.interfaces.storage import StorageInterface
from graph_tutor.interfaces.vector_index import VectorIndexInterface
from graph_tutor.logging import get_logger
from graph_tutor.models.node import NodeDTO, NodeNoteDTO
from graph_tutor.models.results import DeleteResult
from graph_tutor.models.topic import RootTopicDTO
from graph_tutor.utils.similarity import node_embedding_text

__all__ = [
    "GraphStore",
]

logger = get_logger(__name__)

TOPIC_TITLE_MAX_CHARS = 100
TOPIC_DESCRIPTION_MAX_CHARS = 500


class GraphStore:
    """Authoritative tree of nodes and root topics.

    Multi-document writes are made atomic from the caller's point of
    view with atomic per-document operations plus a compensating
    rollback, which also runs when the calling task is cancelled.

    Writers are serialized with in-process locks:
    - one lock per tree for create/delete (children_ids, node_count)
    - one lock per node for title/summary/embedding writes

    Example:
        store = GraphStore(storage, vector_index, embeddings, config)
        topic = await store.create_root("Calculus")
        node = await store.create_node("Derivatives", "Rates of change.", topic.id)
    """

    def __init__(
        self,
        storage: StorageInterface,
        vector_index: VectorIndexInterface,
        embedding_service: EmbeddingServiceInterface,
        config: GraphTutorConfig | None = None,
    ) -> None:
        """Initialize store with its collaborators.

        Args:
            storage: Document store (source of truth)
            vector_index: Vector index over node embeddings
            embedding_service: Embedding provider
            config: Field bounds, defaults from GraphTutorConfig
        """
        self._storage = storage
        self._index = vector_index
        self._embedding = embedding_service
        self._config = config or GraphTutorConfig()
        self._root_lock = asyncio.Lock()
        self._tree_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._node_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # Root topics
    async def create_root(
        self,
        title: str,
        description: str | None = None,
    ) -> RootTopicDTO:
        """Create a root topic together with its root node.

        Args:
            title: Topic title, unique case-insensitively
            description: Topic description, "Learn about <title>" if omitted

        Returns:
            Created RootTopicDTO

        Raises:
            DuplicateTitleError: If a topic with this title already exists
        """
        title = title.strip()
        if not title:
            raise InvalidInputError("Title is required")
        description = (description or "").strip() or f"Learn about {title}"

        async with self._root_lock:
            existing = await self._storage.find_root_topic_by_title(title)
            if existing is not None:
                raise DuplicateTitleError(title, existing.id)

            root_id = str(uuid.uuid4())
            embedding = await self._embedding.embed(node_embedding_text(title, description))
            now = int(time.time())
            topic = RootTopicDTO(
                id=root_id,
                title=title,
                description=description,
                node_count=1,
                created_at=now,
            )
            node = NodeDTO(
                id=root_id,
                title=title,
                summary=description,
                parent_id=None,
                root_id=root_id,
                embedding=embedding,
                ancestor_path=[root_id],
                created_at=now,
            )

            try:
                await self._storage.insert_root_topic(topic)
                await self._storage.insert_node(node)
                await self._index.upsert(root_id, root_id, embedding)
            except BaseException:
                await asyncio.shield(self._rollback_root(root_id))
                raise

        logger.info("root_topic_created", root_id=root_id, title=title)
        return topic

    async def get_root_topic(self, root_id: str) -> RootTopicDTO:
        topic = await self._storage.get_root_topic(root_id)
        if topic is None:
            raise NotFoundError("Root topic", root_id)
        return topic

    async def list_root_topics(self) -> list[RootTopicDTO]:
        return await self._storage.list_root_topics()

    async def get_tree(self, root_id: str) -> list[NodeDTO]:
        """Get every node of a tree, root first."""
        await self.get_root_topic(root_id)
        return await self._storage.list_tree(root_id)

    async def update_root_topic(
        self,
        root_id: str,
        title: str | None = None,
        description: str | None = None,
    ) -> RootTopicDTO:
        """Update a root topic's title and/or description.

        A title change is mirrored onto the root node, which is re-embedded
        before either document is written.

        Raises:
            NotFoundError: If the topic does not exist
            DuplicateTitleError: If another topic already has the new title
        """
        topic = await self.get_root_topic(root_id)
        fields: dict[str, Any] = {}

        if title is not None:
            title = title.strip()[:TOPIC_TITLE_MAX_CHARS]
            if not title:
                raise InvalidInputError("Title cannot be empty")
            fields["title"] = title
        if description is not None:
            fields["description"] = description.strip()[:TOPIC_DESCRIPTION_MAX_CHARS]
        if not fields:
            return topic

        node_fields = {"title": title} if title is not None and title != topic.title else {}
        async with self._root_lock:
            _, updated = await self._write_root(root_id, node_fields, fields)

        logger.info("root_topic_updated", root_id=root_id, fields=sorted(fields))
        return updated

    async def delete_root(self, root_id: str) -> DeleteResult:
        """Delete a root topic, every node of its tree and their interactions.

        The topic and node deletions are rolled back together on failure.
        Interactions and index entries are removed once both succeeded.

        Raises:
            NotFoundError: If neither the topic nor its root node exists
        """
        topic = await self._storage.get_root_topic(root_id)
        root = await self._storage.get_node(root_id)
        if topic is None and root is None:
            raise NotFoundError("Root topic", root_id)
        if root is not None and not root.is_root:
            raise ForbiddenError(
                "Node is not a root, use delete_node instead",
                details={"node_id": root_id},
            )

        async with self._tree_locks[root_id]:
            snapshot = await self._storage.list_tree(root_id)
            node_ids = [n.id for n in snapshot]
            try:
                await self._storage.delete_root_topic(root_id)
                await self._storage.delete_nodes_by_root(root_id)
            except BaseException:
                await asyncio.shield(self._rollback_root_delete(root_id, topic, snapshot))
                raise

        try:
            await self._storage.delete_interactions(node_ids)
            await self._index.remove(node_ids)
        except Exception as e:
            logger.warning("root_delete_cleanup_failed", root_id=root_id, error=str(e))

        self._tree_locks.pop(root_id, None)
        for node_id in node_ids:
            self._node_locks.pop(node_id, None)
        logger.info("root_topic_deleted", root_id=root_id, nodes_deleted=len(node_ids))
        return DeleteResult(deleted_ids=node_ids)

    # Nodes
    async def create_node(
        self,
        title: str,
        summary: str,
        parent_id: str,
        tags: list[str] | None = None,
    ) -> NodeDTO:
        """Create a subtopic node under parent_id.

        Either all four effects are applied (node document, parent's
        children_ids, root node_count, vector index entry) or none is.

        Args:
            title: Node title
            summary: Node summary
            parent_id: Existing parent node ID
            tags: Optional advisory tags

        Returns:
            Created NodeDTO

        Raises:
            NotFoundError: If the parent does not exist
        """
        parent = await self._storage.get_node(parent_id)
        if parent is None:
            raise NotFoundError("Parent node", parent_id)

        title = self._bound_title(title)
        summary = self._bound_summary(summary)
        if not title:
            raise InvalidInputError("Title is required")

        node_id = str(uuid.uuid4())
        embedding = await self._embedding.embed(node_embedding_text(title, summary))
        node = NodeDTO(
            id=node_id,
            title=title,
            summary=summary,
            parent_id=parent.id,
            root_id=parent.root_id,
            tags=tags or [],
            embedding=embedding,
            ancestor_path=[*parent.ancestor_path, node_id],
            created_at=int(time.time()),
        )

        async with self._tree_locks[parent.root_id]:
            applied: list[str] = []
            try:
                await self._storage.insert_node(node)
                applied.append("node")
                if not await self._storage.push_child(parent.id, node_id):
                    raise NotFoundError("Parent node", parent.id)
                applied.append("child")
                await self._storage.increment_node_count(parent.root_id, 1)
                applied.append("count")
                await self._index.upsert(node_id, parent.root_id, embedding)
                applied.append("index")
            except BaseException:
                await asyncio.shield(self._rollback_create(node, applied))
                raise

        logger.info(
            "node_created",
            node_id=node_id,
            parent_id=parent.id,
            root_id=parent.root_id,
            depth=node.depth,
        )
        return node

    async def get_node(self, node_id: str) -> NodeDTO:
        node = await self._storage.get_node(node_id)
        if node is None:
            raise NotFoundError("Node", node_id)
        return node

    async def update_node(
        self,
        node_id: str,
        title: str | None = None,
        summary: str | None = None,
        tags: list[str] | None = None,
    ) -> NodeDTO:
        """Update a node's title, summary and/or tags.

        A title or summary change recomputes the embedding before the
        write, so both are committed in the same update.

        A root's title change is mirrored onto its topic and must stay
        unique among topics.

        Raises:
            NotFoundError: If the node does not exist
            DuplicateTitleError: If a root is renamed to another topic's title
        """
        fields: dict[str, Any] = {}
        if title is not None:
            title = self._bound_title(title)
            if not title:
                raise InvalidInputError("Title cannot be empty")
            fields["title"] = title
        if summary is not None:
            fields["summary"] = self._bound_summary(summary)
        if tags is not None:
            fields["tags"] = list(tags)
        if not fields:
            return await self.get_node(node_id)

        if "title" in fields and (await self.get_node(node_id)).is_root:
            async with self._root_lock:
                node, _ = await self._write_root(node_id, fields, {"title": fields["title"]})
            return node
        return await self._write_content(node_id, fields)

    async def replace_summary(self, node_id: str, summary: str) -> NodeDTO:
        """Write a refined summary with its embedding and stamp last_refined_at."""
        return await self._write_content(
            node_id,
            {"summary": summary, "last_refined_at": int(time.time())},
        )

    async def delete_node(self, node_id: str) -> DeleteResult:
        """Delete a non-root node and all of its descendants.

        Returns:
            DeleteResult with the node's ID first, then descendants

        Raises:
            NotFoundError: If the node does not exist
            ForbiddenError: If the node is a root
        """
        node = await self.get_node(node_id)
        if node.is_root:
            raise ForbiddenError(
                "Root nodes can only be deleted with delete_root",
                details={"node_id": node_id},
            )

        async with self._tree_locks[node.root_id]:
            # Re-read under the lock, a concurrent delete may have removed it
            node = await self.get_node(node_id)
            node_ids = await self._collect_subtree(node.id)
            snapshot = await self._storage.get_nodes(node_ids)

            applied: list[str] = []
            try:
                await self._storage.delete_nodes(node_ids)
                applied.append("nodes")
                await self._storage.pull_child(node.parent_id or node.root_id, node.id)
                applied.append("child")
                await self._storage.increment_node_count(node.root_id, -len(node_ids))
                applied.append("count")
            except BaseException:
                await asyncio.shield(self._rollback_delete(node, snapshot, applied))
                raise

        try:
            await self._storage.delete_interactions(node_ids)
            await self._index.remove(node_ids)
        except Exception as e:
            logger.warning("node_delete_cleanup_failed", node_id=node_id, error=str(e))
        for deleted_id in node_ids:
            self._node_locks.pop(deleted_id, None)

        logger.info(
            "node_deleted",
            node_id=node_id,
            root_id=node.root_id,
            nodes_deleted=len(node_ids),
        )
        return DeleteResult(deleted_ids=node_ids)

    async def list_children(self, node_id: str) -> list[NodeDTO]:
        """Get direct children in insertion order."""
        node = await self.get_node(node_id)
        children = {c.id: c for c in await self._storage.get_nodes(node.children_ids)}
        return [children[cid] for cid in node.children_ids if cid in children]

    async def list_ancestors(self, node_id: str) -> list[NodeDTO]:
        """Get ancestors from the root down to the parent (self excluded)."""
        node = await self.get_node(node_id)
        ancestor_ids = node.ancestor_path[:-1]
        found = {a.id: a for a in await self._storage.get_nodes(ancestor_ids)}
        return [found[aid] for aid in ancestor_ids if aid in found]

    # Notes
    async def add_note(self, node_id: str, content: str, title: str | None = None) -> NodeNoteDTO:
        content = content.strip()
        if not content:
            raise InvalidInputError("Note content is required")
        note = NodeNoteDTO(
            id=str(uuid.uuid4()),
            content=content,
            title=(title or "").strip() or None,
            created_at=int(time.time()),
        )
        if not await self._storage.push_note(node_id, note):
            raise NotFoundError("Node", node_id)
        return note

    async def list_notes(self, node_id: str) -> list[NodeNoteDTO]:
        return (await self.get_node(node_id)).notes

    async def delete_note(self, node_id: str, note_id: str) -> None:
        node = await self.get_node(node_id)
        if not any(n.id == note_id for n in node.notes):
            raise NotFoundError("Note", note_id)
        await self._storage.pull_note(node_id, note_id)

    # Internals
    def _bound_title(self, title: str) -> str:
        return title.strip()[: self._config.title_max_chars].strip()

    def _bound_summary(self, summary: str) -> str:
        return summary.strip()[: self._config.node_summary_max_chars].strip()

    async def _write_content(self, node_id: str, fields: dict[str, Any]) -> NodeDTO:
        """Set fields on a node, re-embedding when title or summary changes."""
        async with self._node_locks[node_id]:
            node = await self.get_node(node_id)
            title = fields.get("title", node.title)
            summary = fields.get("summary", node.summary)
            content_changed = title != node.title or summary != node.summary

            if content_changed:
                fields = {
                    **fields,
                    "embedding": await self._embedding.embed(node_embedding_text(title, summary)),
                }
            updated = await self._storage.update_node_fields(node_id, fields)
            if updated is None:
                raise NotFoundError("Node", node_id)
            if content_changed:
                await self._index.upsert(node_id, updated.root_id, updated.embedding)

        logger.debug("node_updated", node_id=node_id, reembedded=content_changed)
        return updated

    async def _write_root(
        self,
        root_id: str,
        node_fields: dict[str, Any],
        topic_fields: dict[str, Any],
    ) -> tuple[NodeDTO, RootTopicDTO]:
        """Write a root node and its topic together. Caller holds _root_lock.

        The node is written first (embedding included); a failed topic
        write restores the node's previous content.
        """
        title = topic_fields.get("title")
        if title is not None:
            existing = await self._storage.find_root_topic_by_title(title)
            if existing is not None and existing.id != root_id:
                raise DuplicateTitleError(title, existing.id)

        before = await self.get_node(root_id)
        node = await self._write_content(root_id, node_fields) if node_fields else before
        try:
            topic = await self._storage.update_root_topic(root_id, topic_fields)
            if topic is None:
                raise NotFoundError("Root topic", root_id)
        except BaseException:
            if node_fields:
                await asyncio.shield(self._restore_node(before))
            raise
        return node, topic

    async def _restore_node(self, node: NodeDTO) -> None:
        try:
            async with self._node_locks[node.id]:
                await self._storage.update_node_fields(
                    node.id,
                    {
                        "title": node.title,
                        "summary": node.summary,
                        "tags": node.tags,
                        "embedding": node.embedding,
                    },
                )
                await self._index.upsert(node.id, node.root_id, node.embedding)
        except Exception as e:
            logger.error("node_restore_failed", node_id=node.id, error=str(e))
        logger.warning("node_content_restored", node_id=node.id)

    async def _collect_subtree(self, node_id: str) -> list[str]:
        """Collect node_id and all descendants by descent over parent_id."""
        collected = [node_id]
        seen = {node_id}
        frontier = [node_id]
        while frontier:
            children = [c for c in await self._storage.find_child_ids(frontier) if c not in seen]
            seen.update(children)
            collected.extend(children)
            frontier = children
        return collected

    async def _rollback_root(self, root_id: str) -> None:
        try:
            await self._index.remove([root_id])
            await self._storage.delete_nodes([root_id])
            await self._storage.delete_root_topic(root_id)
        except Exception as e:
            logger.error("root_create_rollback_failed", root_id=root_id, error=str(e))

    async def _rollback_root_delete(
        self,
        root_id: str,
        topic: RootTopicDTO | None,
        snapshot: list[NodeDTO],
    ) -> None:
        try:
            if topic is not None and await self._storage.get_root_topic(root_id) is None:
                await self._storage.insert_root_topic(topic)
            present = {n.id for n in await self._storage.get_nodes([n.id for n in snapshot])}
            for doc in snapshot:
                if doc.id not in present:
                    await self._storage.insert_node(doc)
        except Exception as e:
            logger.error("root_delete_rollback_failed", root_id=root_id, error=str(e))
        logger.warning("root_delete_rolled_back", root_id=root_id)

    async def _rollback_create(self, node: NodeDTO, applied: list[str]) -> None:
        undo = {
            "index": lambda: self._index.remove([node.id]),
            "count": lambda: self._storage.increment_node_count(node.root_id, -1),
            "child": lambda: self._storage.pull_child(node.parent_id or node.root_id, node.id),
            "node": lambda: self._storage.delete_nodes([node.id]),
        }
        for step in reversed(applied):
            try:
                await undo[step]()
            except Exception as e:
                logger.error("node_create_rollback_failed", node_id=node.id, step=step, error=str(e))
        logger.warning("node_create_rolled_back", node_id=node.id, steps=applied)

    async def _rollback_delete(
        self,
        node: NodeDTO,
        snapshot: list[NodeDTO],
        applied: list[str],
    ) -> None:
        try:
            if "count" in applied:
                await self._storage.increment_node_count(node.root_id, len(snapshot))
            if "child" in applied:
                await self._storage.push_child(node.parent_id or node.root_id, node.id)
            # delete_nodes may have partially applied before failing
            present = {n.id for n in await self._storage.get_nodes([n.id for n in snapshot])}
            for doc in snapshot:
                if doc.id not in present:
                    await self._storage.insert_node(doc)
        except Exception as e:
            logger.error("node_delete_rollback_failed", node_id=node.id, error=str(e))
        logger.warning("node_delete_rolled_back", node_id=node.id, steps=applied)
