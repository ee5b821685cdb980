"""Redis embedding cache for graph_tutor.

Routing embeds every incoming question and every node write embeds
title + summary. Repeated texts (re-asked questions, unchanged
summaries) are served from Redis instead of the provider. Redis is
optional: when it is not configured or unreachable the cache is a
pass-through.
"""

import hashlib
import json
from typing import TYPE_CHECKING, Any, Self

from graph_tutor.config import RedisSettings
from graph_tutor.interfaces.embedding import EmbeddingServiceInterface
from graph_tutor.logging import get_logger
from graph_tutor.utils.lazy_import import lazy_import

if TYPE_CHECKING:
    from redis.asyncio import Redis

__all__ = [
    "CachedEmbeddingService",
    "RedisEmbeddingCache",
]

logger = get_logger(__name__)

get_async_redis = lazy_import("redis.asyncio", "Redis")


class RedisEmbeddingCache:
    """Text -> vector cache stored as JSON strings in Redis.

    All failures are logged and treated as cache misses.
    """

    config_class = RedisSettings

    def __init__(
        self,
        settings: RedisSettings,
        namespace: str = "",
        prefix: str = "gt:emb:",
    ) -> None:
        """Initialize cache.

        Args:
            settings: Redis connection settings
            namespace: Extra key component, e.g. the embedding model name
            prefix: Key prefix for embedding entries
        """
        self._settings = settings
        self._namespace = namespace
        self._prefix = prefix
        self._redis: "Redis | None" = None

    @classmethod
    async def from_config(cls, config: RedisSettings) -> Self:
        """Factory method for GraphTutor instantiation."""
        instance = cls(config)
        await instance.connect()
        return instance

    @classmethod
    async def from_dict(cls, config: dict[str, Any]) -> Self:
        """Factory method for custom config dict."""
        return await cls.from_config(RedisSettings(**config))

    @property
    def is_connected(self) -> bool:
        """Check if connected to Redis."""
        return self._redis is not None

    async def connect(self) -> bool:
        """Connect to Redis.

        Returns:
            True if connected successfully, False otherwise
        """
        if self._redis is not None:
            return True
        if not self._settings.enabled or not self._settings.url:
            logger.info("redis_disabled", reason="not configured")
            return False

        Redis = get_async_redis()  # noqa: N806
        client = Redis.from_url(self._settings.url, decode_responses=True)
        try:
            await client.ping()
        except Exception as e:
            logger.warning(
                "redis_connection_failed",
                error=str(e),
                reason="Redis unavailable, embedding cache disabled",
            )
            await client.aclose()
            return False
        self._redis = client
        logger.info("connected_to_redis", url=self._settings.url)
        return True

    async def close(self) -> None:
        """Close connection to Redis."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("disconnected_from_redis")

    def _make_key(self, text: str) -> str:
        text_hash = hashlib.sha256(f"{self._namespace}|{text}".encode()).hexdigest()
        return f"{self._prefix}{text_hash}"

    async def get(self, text: str) -> list[float] | None:
        """Get cached embedding for text, None on miss."""
        if self._redis is None:
            return None
        try:
            cached = await self._redis.get(self._make_key(text))
        except Exception as e:
            logger.debug("redis_get_error", error=str(e))
            return None
        if not cached:
            return None
        try:
            return json.loads(cached)
        except json.JSONDecodeError:
            return None

    async def set(self, text: str, embedding: list[float]) -> bool:
        """Cache embedding for text.

        Returns:
            True if cached successfully
        """
        if self._redis is None:
            return False
        try:
            await self._redis.set(
                self._make_key(text),
                json.dumps(embedding),
                ex=self._settings.embedding_ttl,
            )
        except Exception as e:
            logger.debug("redis_set_error", error=str(e))
            return False
        return True


class CachedEmbeddingService(EmbeddingServiceInterface):
    """Embedding service decorator that consults a RedisEmbeddingCache first."""

    def __init__(self, inner: EmbeddingServiceInterface, cache: RedisEmbeddingCache) -> None:
        self._inner = inner
        self._cache = cache

    @property
    def dimensions(self) -> int:
        return self._inner.dimensions

    async def embed(self, text: str) -> list[float]:
        cached = await self._cache.get(text)
        if cached is not None:
            return cached
        embedding = await self._inner.embed(text)
        await self._cache.set(text, embedding)
        return embedding

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        results: list[list[float] | None] = [await self._cache.get(text) for text in texts]
        missing = [i for i, vector in enumerate(results) if vector is None]
        if missing:
            computed = await self._inner.embed_batch([texts[i] for i in missing])
            for i, vector in zip(missing, computed, strict=True):
                results[i] = vector
                await self._cache.set(texts[i], vector)
        return [vector for vector in results if vector is not None]

