"""Web search interface for graph_tutor."""

from typing import Protocol, runtime_checkable

__all__ = [
    "WebSearchInterface",
]


@runtime_checkable
class WebSearchInterface(Protocol):
    """Contract for optional placement enrichment via web search."""

    async def search(self, query: str) -> str:
        """Search the web and return condensed result text.

        Args:
            query: Search query

        Returns:
            Result text for prompt context

        Raises:
            SearchDegradedError: If the search provider is unavailable
        """
        ...
