"""Unit tests for GraphStore."""

import asyncio
import random
from unittest.mock import AsyncMock

import pytest

from graph_tutor.errors import (
    DuplicateTitleError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from graph_tutor.models.interaction import NodeInteractionDTO
from graph_tutor.services.graph_store import GraphStore
from graph_tutor.utils.similarity import node_embedding_text
from tests.mocks.mock_embedding import MockEmbeddingService
from tests.mocks.mock_storage import MockStorage, MockVectorIndex


def assert_tree_invariants(storage: MockStorage, root_id: str) -> None:
    nodes = {n.id: n for n in storage.nodes.values() if n.root_id == root_id}
    for node in nodes.values():
        listed_by = [p.id for p in nodes.values() if node.id in p.children_ids]
        if node.is_root:
            assert node.ancestor_path == [node.id]
            assert listed_by == []
        else:
            parent = nodes[node.parent_id]
            assert node.ancestor_path == [*parent.ancestor_path, node.id]
            assert listed_by == [parent.id]
    assert storage.root_topics[root_id].node_count == len(nodes)


async def _interact(storage: MockStorage, node_id: str) -> None:
    await storage.append_interaction(
        NodeInteractionDTO(node_id=node_id, user_message="q", ai_response="a", timestamp=0)
    )


class TestRootTopics:
    """Tests for root topic lifecycle."""

    @pytest.mark.asyncio
    async def test_create_root(self, graph_store: GraphStore, storage: MockStorage) -> None:
        topic = await graph_store.create_root("  Calculus ")

        assert topic.title == "Calculus"
        assert topic.description == "Learn about Calculus"
        assert topic.node_count == 1
        root = storage.nodes[topic.id]
        assert root.is_root
        assert root.summary == "Learn about Calculus"
        assert root.embedding
        assert_tree_invariants(storage, topic.id)

    @pytest.mark.asyncio
    async def test_create_root_indexes_root(
        self, graph_store: GraphStore, vector_index: MockVectorIndex
    ) -> None:
        topic = await graph_store.create_root("Calculus", "Limits, derivatives and integrals")
        assert topic.id in vector_index.ids()

    @pytest.mark.asyncio
    async def test_duplicate_title_case_insensitive(self, graph_store: GraphStore) -> None:
        topic = await graph_store.create_root("Calculus")

        with pytest.raises(DuplicateTitleError) as exc_info:
            await graph_store.create_root("calculus")
        assert exc_info.value.existing_id == topic.id

    @pytest.mark.asyncio
    async def test_empty_title(self, graph_store: GraphStore) -> None:
        with pytest.raises(InvalidInputError):
            await graph_store.create_root("   ")

    @pytest.mark.asyncio
    async def test_create_root_rolls_back_on_index_failure(
        self, graph_store: GraphStore, storage: MockStorage, vector_index: MockVectorIndex
    ) -> None:
        vector_index.fail_upsert = True

        with pytest.raises(ConnectionError):
            await graph_store.create_root("Calculus")
        assert storage.root_topics == {}
        assert storage.nodes == {}

    @pytest.mark.asyncio
    async def test_update_root_title_mirrors_root_node(
        self, graph_store: GraphStore, storage: MockStorage
    ) -> None:
        topic = await graph_store.create_root("Calculus")
        old_embedding = storage.nodes[topic.id].embedding

        updated = await graph_store.update_root_topic(topic.id, title="Calculus I")

        assert updated.title == "Calculus I"
        assert storage.nodes[topic.id].title == "Calculus I"
        assert storage.nodes[topic.id].embedding != old_embedding

    @pytest.mark.asyncio
    async def test_update_root_title_conflict(self, graph_store: GraphStore) -> None:
        await graph_store.create_root("Calculus")
        other = await graph_store.create_root("Biology")

        with pytest.raises(DuplicateTitleError):
            await graph_store.update_root_topic(other.id, title="CALCULUS")

    @pytest.mark.asyncio
    async def test_update_root_title_embed_failure_writes_nothing(
        self, graph_store: GraphStore, storage: MockStorage, embedding: MockEmbeddingService
    ) -> None:
        topic = await graph_store.create_root("Calculus")
        embedding.embed = AsyncMock(side_effect=ConnectionError("embedding down"))

        with pytest.raises(ConnectionError):
            await graph_store.update_root_topic(topic.id, title="Calculus I")
        assert storage.root_topics[topic.id].title == "Calculus"
        assert storage.nodes[topic.id].title == "Calculus"

    @pytest.mark.asyncio
    async def test_update_root_topic_write_failure_restores_root_node(
        self, graph_store: GraphStore, storage: MockStorage, vector_index: MockVectorIndex
    ) -> None:
        topic = await graph_store.create_root("Calculus")
        before = storage.nodes[topic.id]
        storage.update_root_topic = AsyncMock(side_effect=ConnectionError("lost connection"))

        with pytest.raises(ConnectionError):
            await graph_store.update_root_topic(topic.id, title="Calculus I")
        assert storage.nodes[topic.id].title == "Calculus"
        assert storage.nodes[topic.id].embedding == before.embedding
        assert vector_index.vector(topic.id) == before.embedding

    @pytest.mark.asyncio
    async def test_rename_root_node_to_existing_topic_title(
        self, graph_store: GraphStore, storage: MockStorage
    ) -> None:
        calculus = await graph_store.create_root("Calculus")
        physics = await graph_store.create_root("Physics")

        with pytest.raises(DuplicateTitleError) as exc_info:
            await graph_store.update_node(physics.id, title="calculus")
        assert exc_info.value.existing_id == calculus.id
        assert sorted(t.title for t in await graph_store.list_root_topics()) == [
            "Calculus",
            "Physics",
        ]
        assert storage.nodes[physics.id].title == "Physics"

    @pytest.mark.asyncio
    async def test_get_missing_root(self, graph_store: GraphStore) -> None:
        with pytest.raises(NotFoundError):
            await graph_store.get_root_topic("missing")

    @pytest.mark.asyncio
    async def test_delete_root(
        self, graph_store: GraphStore, storage: MockStorage, vector_index: MockVectorIndex
    ) -> None:
        topic = await graph_store.create_root("Calculus")
        child = await graph_store.create_node("Derivatives", "Rates of change.", topic.id)
        kept = await graph_store.create_root("Biology")
        await _interact(storage, child.id)

        result = await graph_store.delete_root(topic.id)

        assert set(result.deleted_ids) == {topic.id, child.id}
        assert set(storage.nodes) == {kept.id}
        assert set(storage.root_topics) == {kept.id}
        assert storage.interactions == []
        assert vector_index.ids() == {kept.id}

    @pytest.mark.asyncio
    async def test_delete_root_rejects_child(self, graph_store: GraphStore) -> None:
        topic = await graph_store.create_root("Calculus")
        child = await graph_store.create_node("Derivatives", "Rates of change.", topic.id)

        with pytest.raises(ForbiddenError):
            await graph_store.delete_root(child.id)

    @pytest.mark.asyncio
    async def test_delete_root_failure_leaves_tree_intact(
        self, graph_store: GraphStore, storage: MockStorage, vector_index: MockVectorIndex
    ) -> None:
        topic = await graph_store.create_root("Calculus")
        child = await graph_store.create_node("Derivatives", "Rates of change.", topic.id)
        await _interact(storage, child.id)
        storage.delete_nodes_by_root = AsyncMock(side_effect=ConnectionError("lost connection"))

        with pytest.raises(ConnectionError):
            await graph_store.delete_root(topic.id)
        assert set(storage.nodes) == {topic.id, child.id}
        assert set(storage.root_topics) == {topic.id}
        assert len(storage.interactions) == 1
        assert vector_index.ids() == {topic.id, child.id}
        assert_tree_invariants(storage, topic.id)

    @pytest.mark.asyncio
    async def test_delete_root_partial_failure_restores_nodes(
        self, graph_store: GraphStore, storage: MockStorage
    ) -> None:
        topic = await graph_store.create_root("Calculus")
        child = await graph_store.create_node("Derivatives", "Rates of change.", topic.id)

        async def delete_some(root_id: str) -> int:
            storage.nodes.pop(child.id)
            raise ConnectionError("lost connection")

        storage.delete_nodes_by_root = delete_some

        with pytest.raises(ConnectionError):
            await graph_store.delete_root(topic.id)
        assert storage.nodes[child.id] == child
        assert_tree_invariants(storage, topic.id)


class TestNodes:
    """Tests for node creation, update and deletion."""

    @pytest.mark.asyncio
    async def test_create_node(
        self, graph_store: GraphStore, storage: MockStorage, vector_index: MockVectorIndex
    ) -> None:
        topic = await graph_store.create_root("Calculus")

        node = await graph_store.create_node("Derivatives", "Rates of change.", topic.id)

        assert node.parent_id == topic.id
        assert node.root_id == topic.id
        assert node.ancestor_path == [topic.id, node.id]
        assert storage.nodes[topic.id].children_ids == [node.id]
        assert storage.root_topics[topic.id].node_count == 2
        assert node.id in vector_index.ids()

    @pytest.mark.asyncio
    async def test_create_node_bounds_fields(
        self, graph_store: GraphStore, config
    ) -> None:
        topic = await graph_store.create_root("Calculus")

        node = await graph_store.create_node("T" * 80, "s" * 500, topic.id)

        assert len(node.title) == config.title_max_chars
        assert len(node.summary) == config.node_summary_max_chars

    @pytest.mark.asyncio
    async def test_create_node_missing_parent(self, graph_store: GraphStore) -> None:
        with pytest.raises(NotFoundError):
            await graph_store.create_node("Derivatives", "Rates of change.", "missing")

    @pytest.mark.asyncio
    async def test_create_node_rolls_back_on_index_failure(
        self, graph_store: GraphStore, storage: MockStorage, vector_index: MockVectorIndex
    ) -> None:
        topic = await graph_store.create_root("Calculus")
        vector_index.fail_upsert = True

        with pytest.raises(ConnectionError):
            await graph_store.create_node("Derivatives", "Rates of change.", topic.id)

        assert list(storage.nodes) == [topic.id]
        assert storage.nodes[topic.id].children_ids == []
        assert storage.root_topics[topic.id].node_count == 1
        assert_tree_invariants(storage, topic.id)

    @pytest.mark.asyncio
    async def test_concurrent_creates(self, graph_store: GraphStore, storage: MockStorage) -> None:
        topic = await graph_store.create_root("Calculus")

        nodes = await asyncio.gather(
            *(graph_store.create_node(f"Topic {i}", "Summary.", topic.id) for i in range(10))
        )

        assert storage.root_topics[topic.id].node_count == 11
        assert sorted(storage.nodes[topic.id].children_ids) == sorted(n.id for n in nodes)
        assert_tree_invariants(storage, topic.id)

    @pytest.mark.asyncio
    async def test_delete_root_via_delete_node_forbidden(
        self, graph_store: GraphStore, storage: MockStorage
    ) -> None:
        topic = await graph_store.create_root("Calculus")
        await graph_store.create_node("Derivatives", "Rates of change.", topic.id)
        before = dict(storage.nodes)

        with pytest.raises(ForbiddenError):
            await graph_store.delete_node(topic.id)
        assert storage.nodes == before
        assert storage.root_topics[topic.id].node_count == 2

    @pytest.mark.asyncio
    async def test_cascade_delete(
        self, graph_store: GraphStore, storage: MockStorage, vector_index: MockVectorIndex
    ) -> None:
        topic = await graph_store.create_root("Calculus")
        a = await graph_store.create_node("Derivatives", "Rates of change.", topic.id)
        b = await graph_store.create_node("Chain Rule", "Composite functions.", a.id)
        c = await graph_store.create_node("Product Rule", "Products of functions.", a.id)
        d = await graph_store.create_node("Leibniz Notation", "dy/dx notation.", b.id)
        for node_id in (topic.id, a.id, b.id, c.id, d.id):
            await _interact(storage, node_id)

        result = await graph_store.delete_node(a.id)

        assert result.deleted_ids[0] == a.id
        assert set(result.deleted_ids) == {a.id, b.id, c.id, d.id}
        assert storage.root_topics[topic.id].node_count == 1
        assert storage.nodes[topic.id].children_ids == []
        assert [i.node_id for i in storage.interactions] == [topic.id]
        assert vector_index.ids() == {topic.id}
        assert_tree_invariants(storage, topic.id)

    @pytest.mark.asyncio
    async def test_random_operations_keep_tree_invariants(
        self, graph_store: GraphStore, storage: MockStorage
    ) -> None:
        rng = random.Random(1234)
        topic = await graph_store.create_root("Calculus")

        for step in range(60):
            live = [n for n in storage.nodes.values() if n.root_id == topic.id]
            non_root = [n for n in live if not n.is_root]
            if non_root and rng.random() < 0.3:
                await graph_store.delete_node(rng.choice(non_root).id)
            else:
                parent = rng.choice(live)
                await graph_store.create_node(f"Topic {step}", "Summary.", parent.id)
            assert_tree_invariants(storage, topic.id)

    @pytest.mark.asyncio
    async def test_update_summary_round_trips_through_index(
        self,
        graph_store: GraphStore,
        vector_index: MockVectorIndex,
        embedding: MockEmbeddingService,
    ) -> None:
        topic = await graph_store.create_root("Calculus")
        node = await graph_store.create_node("Derivatives", "Rates of change.", topic.id)
        await graph_store.create_node("Integrals", "Areas under curves.", topic.id)

        updated = await graph_store.update_node(node.id, summary="new text")

        query = await embedding.embed(node_embedding_text(updated.title, "new text"))
        hits = await vector_index.query(query, topic.id, k=3)
        assert hits[0][0] == node.id
        assert hits[0][1] == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_update_tags_does_not_reembed(
        self, graph_store: GraphStore, embedding: MockEmbeddingService
    ) -> None:
        topic = await graph_store.create_root("Calculus")
        node = await graph_store.create_node("Derivatives", "Rates of change.", topic.id)
        calls = len(embedding.calls)

        updated = await graph_store.update_node(node.id, tags=["math"])

        assert updated.tags == ["math"]
        assert updated.embedding == node.embedding
        assert len(embedding.calls) == calls

    @pytest.mark.asyncio
    async def test_update_root_node_title_mirrors_topic(
        self, graph_store: GraphStore, storage: MockStorage
    ) -> None:
        topic = await graph_store.create_root("Calculus")

        await graph_store.update_node(topic.id, title="Calculus I")

        assert storage.root_topics[topic.id].title == "Calculus I"

    @pytest.mark.asyncio
    async def test_list_children_and_ancestors(self, graph_store: GraphStore) -> None:
        topic = await graph_store.create_root("Calculus")
        a = await graph_store.create_node("Derivatives", "Rates of change.", topic.id)
        b = await graph_store.create_node("Chain Rule", "Composite functions.", a.id)
        c = await graph_store.create_node("Product Rule", "Products of functions.", a.id)

        children = await graph_store.list_children(a.id)
        ancestors = await graph_store.list_ancestors(b.id)

        assert [n.id for n in children] == [b.id, c.id]
        assert [n.id for n in ancestors] == [topic.id, a.id]


class TestNotes:
    """Tests for node notes."""

    @pytest.mark.asyncio
    async def test_add_list_delete(self, graph_store: GraphStore) -> None:
        topic = await graph_store.create_root("Calculus")

        note = await graph_store.add_note(topic.id, "  review before exam ")
        assert note.content == "review before exam"
        assert [n.id for n in await graph_store.list_notes(topic.id)] == [note.id]

        await graph_store.delete_note(topic.id, note.id)
        assert await graph_store.list_notes(topic.id) == []

    @pytest.mark.asyncio
    async def test_delete_missing_note(self, graph_store: GraphStore) -> None:
        topic = await graph_store.create_root("Calculus")

        with pytest.raises(NotFoundError):
            await graph_store.delete_note(topic.id, "missing")

    @pytest.mark.asyncio
    async def test_add_note_missing_node(self, graph_store: GraphStore) -> None:
        with pytest.raises(NotFoundError):
            await graph_store.add_note("missing", "text")
