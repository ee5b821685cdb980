"""Configuration management for graph_tutor.

This module provides typed configuration classes using pydantic-settings.
Configuration is loaded from environment variables with optional .env file support.
"""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "LoggingSettings",
    "MongoSettings",
    "RedisSettings",
    "LLMSettings",
    "SearchSettings",
    "GraphTutorConfig",
]


class LoggingSettings(BaseSettings):
    """Log level and rendering."""

    model_config = SettingsConfigDict(
        env_prefix="GRAPH_TUTOR_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    level: str = "INFO"
    json_output: bool = False
    colors: bool = True


class MongoSettings(BaseSettings):
    """MongoDB connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="GRAPH_TUTOR_MONGO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    uri: SecretStr = SecretStr("mongodb://localhost:27017")
    database: str = "neuralearn"
    collection_prefix: str = ""
    server_selection_timeout_ms: int = 10000

    # Atlas Vector Search
    vector_search_enabled: bool = True
    vector_search_index_name: str = "vector_index"
    vector_search_candidate_factor: int = 10
    # Must equal llm.embedding_dimensions; GraphTutor fills it from there
    vector_dimensions: int = 768


class RedisSettings(BaseSettings):
    """Redis connection settings (optional).

    If url is not configured or connection fails, embedding caching is disabled.
    """

    model_config = SettingsConfigDict(
        env_prefix="GRAPH_TUTOR_REDIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    url: str | None = None
    enabled: bool = True
    embedding_ttl: int = 86400


class LLMSettings(BaseSettings):
    """LLM and embedding provider settings."""

    model_config = SettingsConfigDict(
        env_prefix="GRAPH_TUTOR_LLM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    provider: str = "openai"  # "openai" or "anthropic"
    api_key: SecretStr | None = None
    model: str = "gpt-4o"
    temperature: float = 0.2
    timeout_seconds: float = 60.0

    # Embeddings always come from OpenAI; the key may differ from the LLM key
    embedding_api_key: SecretStr | None = None
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 768


class SearchSettings(BaseSettings):
    """Web search enrichment settings (optional)."""

    model_config = SettingsConfigDict(
        env_prefix="GRAPH_TUTOR_SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: SecretStr | None = None
    enabled: bool = True
    max_results: int = 3
    search_depth: str = "basic"


class GraphTutorConfig(BaseSettings):
    """Main configuration aggregating all settings.

    Example usage:
        config = GraphTutorConfig()
        mongo_uri = config.mongo.uri.get_secret_value()
    """

    model_config = SettingsConfigDict(
        env_prefix="GRAPH_TUTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Component settings (nested)
    mongo: MongoSettings = MongoSettings()
    redis: RedisSettings = RedisSettings()
    llm: LLMSettings = LLMSettings()
    search: SearchSettings = SearchSettings()

    # Routing thresholds
    exact_match_threshold: float = 0.85
    related_match_threshold: float = 0.65
    candidate_top_k: int = 5

    # Summary refinement
    refine_cadence: int = 5
    refine_min_interactions: int = 3
    refine_history_limit: int = 10
    summary_min_chars: int = 20
    summary_max_chars: int = 250

    # Node field bounds
    title_max_chars: int = 50
    node_summary_max_chars: int = 200

    # Chat turn
    recent_message_window: int = 6
    auto_create_nodes: bool = True

    @property
    def redis_enabled(self) -> bool:
        """Check if Redis caching is enabled and configured."""
        return self.redis.enabled and self.redis.url is not None

    @property
    def search_enabled(self) -> bool:
        """Check if web search enrichment is enabled and configured."""
        return self.search.enabled and self.search.api_key is not None
