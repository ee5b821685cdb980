"""Anthropic LLM provider for graph_tutor.

This module provides the Anthropic implementation of LLM interface.
Note: Anthropic does not provide embeddings, so this provider
requires a separate embedding service.
"""

import json
from typing import Any, Self

from anthropic import AsyncAnthropic

from graph_tutor.config import LLMSettings
from graph_tutor.errors import OracleError
from graph_tutor.interfaces.llm import LLMInterface
from graph_tutor.logging import get_logger

__all__ = [
    "AnthropicProvider",
]

logger = get_logger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class AnthropicProvider(LLMInterface):
    """Anthropic implementation of LLM interface.

    Provides JSON and text completions using Anthropic's Claude API.

    Note: This provider does NOT implement embedding generation.
    Use OpenAI or another embedding provider for embeddings.
    """

    config_class = LLMSettings

    def __init__(self, settings: LLMSettings) -> None:
        """Initialize Anthropic provider.

        Args:
            settings: LLM configuration settings
        """
        self._settings = settings
        api_key = settings.api_key.get_secret_value() if settings.api_key else None
        self._client = AsyncAnthropic(api_key=api_key, timeout=settings.timeout_seconds)
        model = settings.model
        self._model = model if model and model.startswith("claude") else DEFAULT_MODEL
        self._temperature = settings.temperature

    @classmethod
    async def from_config(cls, config: LLMSettings) -> Self:
        """Factory method for GraphTutor instantiation.

        Args:
            config: LLM settings

        Returns:
            AnthropicProvider instance
        """
        return cls(config)

    @classmethod
    async def from_dict(cls, config: dict[str, Any]) -> Self:
        """Factory method for custom config dict.

        Args:
            config: Dictionary with LLM settings

        Returns:
            AnthropicProvider instance
        """
        settings = LLMSettings(**config)
        return cls(settings)

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.close()

    async def complete_json(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        """Request a JSON object completion."""
        content = await self._create(
            system_prompt + "\n\nRespond with a single JSON object only.",
            user_prompt,
            max_tokens=1024,
        )
        result = self._parse_json_response(content)
        if not result:
            raise OracleError("Language model returned no JSON object")
        return result

    async def complete_text(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 1024,
    ) -> str:
        """Request a free-text completion."""
        return (await self._create(system_prompt, user_prompt, max_tokens)).strip()

    async def _create(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                temperature=self._temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except Exception as e:
            logger.warning("llm_completion_failed", model=self._model, error=str(e))
            raise OracleError("Language model call failed") from e
        return response.content[0].text if response.content else ""

    @staticmethod
    def _parse_json_response(content: str) -> dict[str, Any]:
        """Parse JSON from response, handling markdown code blocks."""
        content = content.strip()
        # Remove markdown code blocks if present
        if content.startswith("```"):
            lines = content.split("\n")
            content = "\n".join(lines[1:-1] if lines[-1] == "```" else lines[1:])
        try:
            result = json.loads(content)
        except json.JSONDecodeError:
            return {}
        return result if isinstance(result, dict) else {}
