"""Web search providers for graph_tutor (optional)."""

from graph_tutor.infra.search.tavily_provider import TavilySearchProvider

__all__ = ["TavilySearchProvider"]
