"""Redis infrastructure for graph_tutor (optional)."""

from graph_tutor.infra.redis.embedding_cache import CachedEmbeddingService, RedisEmbeddingCache

__all__ = ["CachedEmbeddingService", "RedisEmbeddingCache"]
