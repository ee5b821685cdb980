"""Utility functions for graph_tutor.

This module contains internal utility functions.
"""

from graph_tutor.utils.lazy_import import lazy_import
from graph_tutor.utils.similarity import cosine_similarity, node_embedding_text

__all__ = [
    "cosine_similarity",
    "lazy_import",
    "node_embedding_text",
]
