"""LLM provider implementations for graph_tutor."""

from graph_tutor.infra.llm.anthropic_provider import AnthropicProvider
from graph_tutor.infra.llm.openai_provider import OpenAIProvider

__all__ = ["OpenAIProvider", "AnthropicProvider"]
