"""OpenAI LLM provider for graph_tutor.

This module provides the OpenAI implementation of LLM and embedding interfaces.
"""

import json
from typing import Any, Self

from openai import AsyncOpenAI

from graph_tutor.config import LLMSettings
from graph_tutor.errors import EmbeddingFailedError, OracleError
from graph_tutor.interfaces.embedding import EmbeddingServiceInterface
from graph_tutor.interfaces.llm import LLMInterface
from graph_tutor.logging import get_logger

__all__ = [
    "OpenAIProvider",
]

logger = get_logger(__name__)


class OpenAIProvider(LLMInterface, EmbeddingServiceInterface):
    """OpenAI implementation of LLM and embedding interfaces.

    Provides JSON and text completions plus fixed-dimension embeddings.
    Every request is bounded by the configured timeout.
    """

    config_class = LLMSettings

    def __init__(self, settings: LLMSettings) -> None:
        """Initialize OpenAI provider.

        Args:
            settings: LLM configuration settings
        """
        self._settings = settings
        api_key = settings.api_key.get_secret_value() if settings.api_key else None
        self._client = AsyncOpenAI(api_key=api_key, timeout=settings.timeout_seconds)
        if settings.embedding_api_key:
            self._embedding_client = AsyncOpenAI(
                api_key=settings.embedding_api_key.get_secret_value(),
                timeout=settings.timeout_seconds,
            )
        else:
            self._embedding_client = self._client
        self._model = settings.model
        self._temperature = settings.temperature
        self._embedding_model = settings.embedding_model
        self._embedding_dimensions = settings.embedding_dimensions

    @classmethod
    async def from_config(cls, config: LLMSettings) -> Self:
        """Factory method for GraphTutor instantiation.

        Args:
            config: LLM settings

        Returns:
            OpenAIProvider instance
        """
        return cls(config)

    @classmethod
    async def from_dict(cls, config: dict[str, Any]) -> Self:
        """Factory method for custom config dict.

        Args:
            config: Dictionary with LLM settings

        Returns:
            OpenAIProvider instance
        """
        settings = LLMSettings(**config)
        return cls(settings)

    async def close(self) -> None:
        """Close HTTP clients."""
        await self._client.close()
        if self._embedding_client is not self._client:
            await self._embedding_client.close()

    # Embedding interface
    @property
    def dimensions(self) -> int:
        return self._embedding_dimensions

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for text."""
        try:
            response = await self._embedding_client.embeddings.create(
                model=self._embedding_model,
                input=text,
                dimensions=self._embedding_dimensions,
            )
        except Exception as e:
            logger.warning("embedding_failed", model=self._embedding_model, error=str(e))
            raise EmbeddingFailedError("Embedding provider call failed") from e
        return response.data[0].embedding

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts."""
        if not texts:
            return []
        try:
            response = await self._embedding_client.embeddings.create(
                model=self._embedding_model,
                input=texts,
                dimensions=self._embedding_dimensions,
            )
        except Exception as e:
            logger.warning("embedding_batch_failed", count=len(texts), error=str(e))
            raise EmbeddingFailedError("Embedding provider call failed") from e
        sorted_data = sorted(response.data, key=lambda x: x.index)
        return [item.embedding for item in sorted_data]

    # LLM interface
    async def complete_json(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        """Request a JSON object completion."""
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
                temperature=self._temperature,
            )
        except Exception as e:
            logger.warning("llm_json_completion_failed", model=self._model, error=str(e))
            raise OracleError("Language model call failed") from e

        content = response.choices[0].message.content or ""
        try:
            result = json.loads(content)
        except json.JSONDecodeError as e:
            raise OracleError("Language model returned invalid JSON") from e
        if not isinstance(result, dict):
            raise OracleError("Language model returned a non-object JSON value")
        return result

    async def complete_text(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 1024,
    ) -> str:
        """Request a free-text completion."""
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=self._temperature,
            )
        except Exception as e:
            logger.warning("llm_text_completion_failed", model=self._model, error=str(e))
            raise OracleError("Language model call failed") from e
        return (response.choices[0].message.content or "").strip()
