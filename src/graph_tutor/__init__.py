"""graph_tutor - Knowledge graph tutor engine.

This package provides tools for:
- Organizing a learner's questions into per-subject topic trees
- Routing each question to an existing node or a new subtopic
- Answering in the context of the node and its ancestors
- Refining node summaries from the questions actually asked

Example usage:
    from graph_tutor import GraphTutor, MongoStorageRepository, OpenAIProvider

    # Simple usage - config loaded from .env automatically
    async with GraphTutor(
        storage_class=MongoStorageRepository,
        llm_class=OpenAIProvider,
    ) as gt:
        topic = await gt.create_root("Calculus")
        turn = await gt.chat("What is a derivative?", topic.id)
        print(turn.response, turn.activation_path)
"""

__version__ = "0.1.0"

# Orchestrator
from graph_tutor.errors import (
    DuplicateTitleError,
    EmbeddingFailedError,
    ForbiddenError,
    GraphTutorError,
    InvalidRoutingError,
    NotFoundError,
    OracleError,
    PlacementError,
    RoutingFailedError,
)
from graph_tutor.infra.llm.anthropic_provider import AnthropicProvider
from graph_tutor.infra.llm.openai_provider import OpenAIProvider

# Implementations
from graph_tutor.infra.mongo.repositories import MongoStorageRepository
from graph_tutor.infra.search.tavily_provider import TavilySearchProvider

# Interfaces
from graph_tutor.interfaces.embedding import EmbeddingServiceInterface
from graph_tutor.interfaces.llm import LLMInterface
from graph_tutor.interfaces.search import WebSearchInterface
from graph_tutor.interfaces.storage import StorageInterface
from graph_tutor.interfaces.vector_index import VectorIndexInterface
from graph_tutor.orchestrator import ChatTurnResult, GraphTutor

__all__ = [  # noqa: RUF022
    # Orchestrator
    "GraphTutor",
    "ChatTurnResult",
    # Implementations
    "MongoStorageRepository",
    "OpenAIProvider",
    "AnthropicProvider",
    "TavilySearchProvider",
    # Interfaces
    "EmbeddingServiceInterface",
    "LLMInterface",
    "StorageInterface",
    "VectorIndexInterface",
    "WebSearchInterface",
    # Errors
    "GraphTutorError",
    "NotFoundError",
    "ForbiddenError",
    "DuplicateTitleError",
    "EmbeddingFailedError",
    "OracleError",
    "PlacementError",
    "RoutingFailedError",
    "InvalidRoutingError",
]
