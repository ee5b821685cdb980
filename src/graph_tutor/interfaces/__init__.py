"""Interface contracts for graph_tutor.

This module exports all Protocol-based interfaces for dependency injection.
"""

from graph_tutor.interfaces.embedding import EmbeddingServiceInterface
from graph_tutor.interfaces.llm import LLMInterface
from graph_tutor.interfaces.search import WebSearchInterface
from graph_tutor.interfaces.storage import StorageInterface
from graph_tutor.interfaces.vector_index import VectorIndexInterface

__all__ = [
    "EmbeddingServiceInterface",
    "LLMInterface",
    "StorageInterface",
    "VectorIndexInterface",
    "WebSearchInterface",
]
