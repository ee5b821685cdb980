"""Tavily web search provider for graph_tutor.

Used to enrich placement with facts about the question's subject
(organizations, parent categories, related entities) that may match
existing node titles.
"""

from typing import Any, Self

from graph_tutor.config import SearchSettings
from graph_tutor.errors import SearchDegradedError
from graph_tutor.interfaces.search import WebSearchInterface
from graph_tutor.logging import get_logger
from graph_tutor.utils.lazy_import import lazy_import

__all__ = [
    "TavilySearchProvider",
]

logger = get_logger(__name__)

get_tavily_client = lazy_import("tavily", "AsyncTavilyClient", distribution="tavily-python")

ITEM_MAX_CHARS = 500


class TavilySearchProvider(WebSearchInterface):
    """WebSearchInterface backed by the Tavily search API."""

    config_class = SearchSettings

    def __init__(self, settings: SearchSettings) -> None:
        """Initialize provider.

        Args:
            settings: Web search settings
        """
        self._settings = settings
        self._client = None

    @classmethod
    async def from_config(cls, config: SearchSettings) -> Self:
        """Factory method for GraphTutor instantiation."""
        return cls(config)

    @classmethod
    async def from_dict(cls, config: dict[str, Any]) -> Self:
        """Factory method for custom config dict."""
        return cls(SearchSettings(**config))

    @property
    def client(self) -> Any:
        """Get or create the Tavily async client instance."""
        if self._client is None:
            AsyncTavilyClient = get_tavily_client()  # noqa: N806
            api_key = self._settings.api_key.get_secret_value() if self._settings.api_key else ""
            self._client = AsyncTavilyClient(api_key=api_key)
        return self._client

    async def close(self) -> None:
        """Release client (no-op for Tavily)."""
        self._client = None

    async def search(self, query: str) -> str:
        """Search the web and condense the answer and top results to text."""
        try:
            response = await self.client.search(
                query=query,
                search_depth=self._settings.search_depth,
                max_results=self._settings.max_results,
                include_answer=True,
            )
        except Exception as e:
            raise SearchDegradedError("Web search failed", details={"error": str(e)}) from e

        parts: list[str] = []
        answer = response.get("answer")
        if answer:
            parts.append(answer.strip())
        for item in response.get("results", []):
            content = (item.get("content") or "")[:ITEM_MAX_CHARS]
            parts.append(f"- {item.get('title', '')}: {content}")

        logger.debug("web_search_completed", query=query, num_results=len(parts))
        return "\n".join(parts)
