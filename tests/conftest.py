"""Shared test fixtures for graph_tutor.

This module provides pytest fixtures used across all tests.
"""

from unittest.mock import AsyncMock

import pytest

from graph_tutor.config import GraphTutorConfig
from graph_tutor.models.interaction import NodeInteractionDTO
from graph_tutor.models.node import NodeDTO
from graph_tutor.services.graph_store import GraphStore
from tests.mocks.mock_embedding import MockEmbeddingService
from tests.mocks.mock_storage import MockStorage, MockVectorIndex


@pytest.fixture
def config() -> GraphTutorConfig:
    """Config with library defaults, independent of any local .env."""
    return GraphTutorConfig(
        _env_file=None,
        exact_match_threshold=0.85,
        related_match_threshold=0.65,
        candidate_top_k=5,
        refine_cadence=5,
        refine_min_interactions=3,
        summary_min_chars=20,
        summary_max_chars=250,
    )


# Mock fixtures
@pytest.fixture
def storage() -> MockStorage:
    """Create in-memory storage."""
    return MockStorage()


@pytest.fixture
def vector_index(storage: MockStorage) -> MockVectorIndex:
    """Vector index attached to the in-memory storage."""
    return storage.vector_index


@pytest.fixture
def embedding() -> MockEmbeddingService:
    """Create deterministic embedding service."""
    return MockEmbeddingService()


@pytest.fixture
def mock_llm() -> AsyncMock:
    """Create mock LLM interface."""
    llm = AsyncMock()
    llm.complete_json.return_value = {"action": "use_existing", "existingNodeId": "missing"}
    llm.complete_text.return_value = "A tutoring answer."
    return llm


@pytest.fixture
def graph_store(
    storage: MockStorage,
    vector_index: MockVectorIndex,
    embedding: MockEmbeddingService,
    config: GraphTutorConfig,
) -> GraphStore:
    """GraphStore over in-memory collaborators."""
    return GraphStore(storage, vector_index, embedding, config)


# Sample data fixtures
@pytest.fixture
def sample_root_node() -> NodeDTO:
    """Create sample root NodeDTO."""
    return NodeDTO(
        id="root1",
        title="Calculus",
        summary="Learn about Calculus",
        root_id="root1",
        ancestor_path=["root1"],
        children_ids=["node1"],
        created_at=1704067200,
    )


@pytest.fixture
def sample_node() -> NodeDTO:
    """Create sample child NodeDTO."""
    return NodeDTO(
        id="node1",
        title="Derivatives",
        summary="Rates of change and slopes of tangent lines.",
        parent_id="root1",
        root_id="root1",
        ancestor_path=["root1", "node1"],
        created_at=1704067300,
    )


@pytest.fixture
def sample_interaction() -> NodeInteractionDTO:
    """Create sample NodeInteractionDTO."""
    return NodeInteractionDTO(
        node_id="node1",
        user_message="What is the derivative of x squared?",
        ai_response="The derivative of x squared is 2x.",
        timestamp=1704067400,
    )
