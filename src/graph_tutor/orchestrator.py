"""GraphTutor orchestrator for knowledge graph tutoring.

This module provides the main entry point for the graph_tutor package,
wiring storage, vector index, oracles and services, and running the
chat turn pipeline: placement, node materialization, tutoring answer,
interaction tracking and summary refinement.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from graph_tutor.config import GraphTutorConfig, LLMSettings, MongoSettings, SearchSettings
from graph_tutor.errors import OracleError
from graph_tutor.infra.redis.embedding_cache import CachedEmbeddingService, RedisEmbeddingCache
from graph_tutor.interfaces.embedding import EmbeddingServiceInterface
from graph_tutor.interfaces.llm import LLMInterface
from graph_tutor.interfaces.search import WebSearchInterface
from graph_tutor.interfaces.storage import StorageInterface
from graph_tutor.interfaces.vector_index import VectorIndexInterface
from graph_tutor.logging import get_logger, log_context
from graph_tutor.models.interaction import ChatMessage, NodeInteractionDTO
from graph_tutor.models.node import NodeDTO, NodeNoteDTO
from graph_tutor.models.results import DeleteResult, RefinementResult
from graph_tutor.models.routing import CreateNew, UseExisting
from graph_tutor.models.topic import RootTopicDTO
from graph_tutor.services.graph_store import GraphStore
from graph_tutor.services.interaction_tracker import InteractionTracker
from graph_tutor.services.note_generator import NoteGenerator
from graph_tutor.services.placement import NodePlacementEngine
from graph_tutor.services.prompts import TUTOR_SYSTEM_PROMPT, build_tutor_prompt
from graph_tutor.services.summary_refiner import SummaryRefiner

__all__ = ["ChatTurnResult", "GraphTutor"]

logger = get_logger(__name__)

TUTOR_MAX_TOKENS = 1024


@dataclass
class ChatTurnResult:
    """Outcome of one chat turn."""

    decision: UseExisting | CreateNew
    node: NodeDTO | None = None
    response: str | None = None
    created: bool = False
    summary_refined: bool = False

    @property
    def activation_path(self) -> list[str]:
        """Node IDs from the root to the resolved node."""
        return list(self.node.ancestor_path) if self.node else []


class GraphTutor:
    """Main orchestrator for graph_tutor.

    Accepts implementation classes. Config is loaded from .env automatically.
    For custom implementations, set config_class = None and pass custom_config dict.

    The vector index defaults to the storage's own `vector_index`
    attribute (MongoStorageRepository provides one).

    Example:
        async with GraphTutor(
            storage_class=MongoStorageRepository,
            llm_class=OpenAIProvider,
        ) as tutor:
            topic = await tutor.create_root("Calculus")
            turn = await tutor.chat("What is the chain rule?", topic.id)
    """

    def __init__(
        self,
        storage_class: type[StorageInterface],
        llm_class: type[LLMInterface],
        embedding_class: type[EmbeddingServiceInterface] | None = None,
        vector_index_class: type[VectorIndexInterface] | None = None,
        search_class: type[WebSearchInterface] | None = None,
        *,
        config: GraphTutorConfig | None = None,
        storage_custom_config: dict[str, Any] | None = None,
        llm_custom_config: dict[str, Any] | None = None,
        embedding_custom_config: dict[str, Any] | None = None,
        vector_index_custom_config: dict[str, Any] | None = None,
        search_custom_config: dict[str, Any] | None = None,
    ) -> None:
        """Initialize GraphTutor with implementation classes.

        Args:
            storage_class: Storage implementation class
            llm_class: LLM implementation class
            embedding_class: Embedding implementation class (defaults to llm_class)
            vector_index_class: Vector index class (defaults to storage.vector_index)
            search_class: Optional web search class for placement enrichment
            config: Settings, loaded from .env when omitted
            storage_custom_config: Custom config dict if storage_class.config_class is None
            llm_custom_config: Custom config dict if llm_class.config_class is None
            embedding_custom_config: Custom config dict if embedding_class.config_class is None
            vector_index_custom_config: Custom config dict for vector_index_class
            search_custom_config: Custom config dict for search_class
        """
        self._config = config or GraphTutorConfig()  # Loads from .env

        self._storage_class = storage_class
        self._llm_class = llm_class
        self._embedding_class = embedding_class or llm_class
        self._vector_index_class = vector_index_class
        self._search_class = search_class

        self._storage_custom_config = storage_custom_config
        self._llm_custom_config = llm_custom_config
        self._embedding_custom_config = embedding_custom_config
        self._vector_index_custom_config = vector_index_custom_config
        self._search_custom_config = search_custom_config

        # Instances (created on connect)
        self._storage: StorageInterface | None = None
        self._llm: LLMInterface | None = None
        self._embedding: EmbeddingServiceInterface | None = None
        self._vector_index: VectorIndexInterface | None = None
        self._search: WebSearchInterface | None = None
        self._embedding_cache: RedisEmbeddingCache | None = None

        # Services (wired on connect)
        self._graph_store: GraphStore | None = None
        self._placement: NodePlacementEngine | None = None
        self._tracker: InteractionTracker | None = None
        self._refiner: SummaryRefiner | None = None
        self._note_generator: NoteGenerator | None = None

        self._connected = False

    async def _instantiate_class(
        self,
        cls: type,
        custom_config: dict[str, Any] | None,
    ) -> Any:
        """Instantiate an implementation class.

        If cls.config_class is set, use the matching section of this
        instance's config, or instantiate config (loads from .env).
        If cls.config_class is None, use custom_config dict.
        """
        config_class = getattr(cls, "config_class", None)

        if config_class is None:
            if custom_config is None:
                raise ValueError(
                    f"{cls.__name__} has config_class=None but no custom_config provided"
                )
            return await cls.from_dict(custom_config)
        if custom_config is not None:
            return await cls.from_dict(custom_config)
        return await cls.from_config(self._settings_for(config_class))

    def _settings_for(self, config_class: type) -> Any:
        """Settings section for config_class, taken from self._config when it has one."""
        if config_class is MongoSettings:
            # The Atlas index must match the embedding model's output
            return self._config.mongo.model_copy(
                update={"vector_dimensions": self._config.llm.embedding_dimensions}
            )
        if config_class is LLMSettings:
            return self._config.llm
        if config_class is SearchSettings:
            return self._config.search
        return config_class()

    async def _connect(self) -> None:
        """Initialize connections and services."""
        if self._connected:
            return

        self._storage = await self._instantiate_class(
            self._storage_class, self._storage_custom_config
        )
        self._llm = await self._instantiate_class(self._llm_class, self._llm_custom_config)

        if self._embedding_class is self._llm_class:
            self._embedding = self._llm  # type: ignore[assignment]
        else:
            self._embedding = await self._instantiate_class(
                self._embedding_class, self._embedding_custom_config
            )

        if self._vector_index_class is not None:
            self._vector_index = await self._instantiate_class(
                self._vector_index_class, self._vector_index_custom_config
            )
        else:
            self._vector_index = getattr(self._storage, "vector_index", None)
            if self._vector_index is None:
                raise ValueError(
                    f"{self._storage_class.__name__} has no vector_index, "
                    "pass vector_index_class"
                )

        if self._search_class is not None and self._config.search.enabled:
            self._search = await self._instantiate_class(
                self._search_class, self._search_custom_config
            )

        embedding = self._embedding
        if self._config.redis_enabled:
            llm_settings = self._config.llm
            self._embedding_cache = RedisEmbeddingCache(
                self._config.redis,
                namespace=f"{llm_settings.embedding_model}:{llm_settings.embedding_dimensions}",
            )
            if await self._embedding_cache.connect():
                embedding = CachedEmbeddingService(self._embedding, self._embedding_cache)

        # Wire services
        self._graph_store = GraphStore(self._storage, self._vector_index, embedding, self._config)
        self._placement = NodePlacementEngine(
            self._storage,
            self._vector_index,
            embedding,
            self._llm,
            search=self._search,
            config=self._config,
        )
        self._tracker = InteractionTracker(self._storage)
        self._refiner = SummaryRefiner(self._storage, self._graph_store, self._llm, self._config)
        self._note_generator = NoteGenerator(self._graph_store, self._llm, self._config)

        self._connected = True
        logger.info("graph_tutor_connected", search_enabled=self._search is not None)

    async def _disconnect(self) -> None:
        """Close all connections."""
        closeables: list[Any] = [self._storage, self._llm, self._search, self._embedding_cache]
        if self._embedding is not self._llm:
            closeables.append(self._embedding)
        if self._vector_index is not getattr(self._storage, "vector_index", None):
            closeables.append(self._vector_index)
        for resource in closeables:
            if resource is not None and hasattr(resource, "close"):
                await resource.close()

        self._connected = False
        logger.info("graph_tutor_disconnected")

    async def __aenter__(self) -> "GraphTutor":
        """Async context manager entry - connects automatically."""
        await self._connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Async context manager exit - disconnects automatically."""
        await self._disconnect()

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise RuntimeError("GraphTutor not connected. Use 'async with GraphTutor(...) as gt:'")

    # === CHAT TURN ===

    async def chat(
        self,
        question: str,
        root_id: str,
        current_node_id: str | None = None,
        recent_messages: Sequence[ChatMessage] | None = None,
        auto_create: bool | None = None,
    ) -> ChatTurnResult:
        """Run a full chat turn.

        Places the question, creates the node when needed, answers in
        the context of the resolved node and its ancestors, records the
        interaction and refines the node summary when the recorded turn
        lands on a refinement boundary.

        Args:
            question: User's question
            root_id: Tree the conversation belongs to
            current_node_id: Node the user is viewing, if any
            recent_messages: Short conversation window
            auto_create: Materialize CreateNew decisions (defaults to config)

        Returns:
            ChatTurnResult. With auto_create disabled a CreateNew decision
            is returned without a node or answer.
        """
        self._ensure_connected()
        assert self._placement and self._graph_store and self._tracker and self._refiner
        if auto_create is None:
            auto_create = self._config.auto_create_nodes
        recent = list(recent_messages or [])

        with log_context(root_id=root_id):
            decision = await self._placement.place(question, root_id, current_node_id, recent)

            created = False
            if isinstance(decision, CreateNew):
                if not auto_create:
                    return ChatTurnResult(decision=decision)
                node = await self._materialize(decision, question)
                created = True
            else:
                node = await self._graph_store.get_node(decision.node_id)

            with log_context(node_id=node.id):
                response = await self._answer(question, node, recent)
                count = await self._tracker.record(node.id, question, response)

                refined = False
                if self._refiner.is_due(count):
                    refined = (await self._refiner.refine_if_due(node.id)).refined

                logger.info(
                    "chat_turn_completed",
                    created=created,
                    interaction_count=count,
                    summary_refined=refined,
                )
        return ChatTurnResult(
            decision=decision,
            node=node,
            response=response,
            created=created,
            summary_refined=refined,
        )

    async def _materialize(self, decision: CreateNew, question: str) -> NodeDTO:
        assert self._graph_store and self._refiner
        summary = decision.suggested_summary
        if not summary:
            parent = await self._graph_store.get_node(decision.parent_id)
            summary = await self._refiner.initial_summary(
                decision.suggested_title, question, parent
            )
        return await self._graph_store.create_node(
            decision.suggested_title,
            summary,
            decision.parent_id,
        )

    async def _answer(self, question: str, node: NodeDTO, recent: list[ChatMessage]) -> str:
        assert self._graph_store and self._llm
        ancestors, children = await asyncio.gather(
            self._graph_store.list_ancestors(node.id),
            self._graph_store.list_children(node.id),
        )
        prompt = build_tutor_prompt(
            question,
            node,
            ancestors,
            children,
            recent[-self._config.recent_message_window :],
        )
        try:
            return await asyncio.wait_for(
                self._llm.complete_text(TUTOR_SYSTEM_PROMPT, prompt, max_tokens=TUTOR_MAX_TOKENS),
                timeout=self._config.llm.timeout_seconds,
            )
        except TimeoutError as e:
            raise OracleError("Tutor answer timed out") from e

    # === PLACEMENT ===

    async def place_question(
        self,
        question: str,
        root_id: str,
        current_node_id: str | None = None,
        recent_messages: Sequence[ChatMessage] | None = None,
    ) -> UseExisting | CreateNew:
        """Decide where a question belongs without side effects."""
        self._ensure_connected()
        assert self._placement
        return await self._placement.place(question, root_id, current_node_id, recent_messages)

    # === ROOT TOPICS ===

    async def create_root(self, title: str, description: str | None = None) -> RootTopicDTO:
        self._ensure_connected()
        assert self._graph_store
        return await self._graph_store.create_root(title, description)

    async def get_root_topic(self, root_id: str) -> RootTopicDTO:
        self._ensure_connected()
        assert self._graph_store
        return await self._graph_store.get_root_topic(root_id)

    async def list_root_topics(self) -> list[RootTopicDTO]:
        self._ensure_connected()
        assert self._graph_store
        return await self._graph_store.list_root_topics()

    async def update_root_topic(
        self,
        root_id: str,
        title: str | None = None,
        description: str | None = None,
    ) -> RootTopicDTO:
        self._ensure_connected()
        assert self._graph_store
        return await self._graph_store.update_root_topic(root_id, title, description)

    async def delete_root(self, root_id: str) -> DeleteResult:
        self._ensure_connected()
        assert self._graph_store
        return await self._graph_store.delete_root(root_id)

    async def get_tree(self, root_id: str) -> list[NodeDTO]:
        self._ensure_connected()
        assert self._graph_store
        return await self._graph_store.get_tree(root_id)

    # === NODES ===

    async def create_node(
        self,
        title: str,
        summary: str,
        parent_id: str,
        tags: list[str] | None = None,
    ) -> NodeDTO:
        self._ensure_connected()
        assert self._graph_store
        return await self._graph_store.create_node(title, summary, parent_id, tags)

    async def get_node(self, node_id: str) -> NodeDTO:
        self._ensure_connected()
        assert self._graph_store
        return await self._graph_store.get_node(node_id)

    async def update_node(
        self,
        node_id: str,
        title: str | None = None,
        summary: str | None = None,
        tags: list[str] | None = None,
    ) -> NodeDTO:
        self._ensure_connected()
        assert self._graph_store
        return await self._graph_store.update_node(node_id, title, summary, tags)

    async def delete_node(self, node_id: str) -> DeleteResult:
        self._ensure_connected()
        assert self._graph_store
        return await self._graph_store.delete_node(node_id)

    async def list_children(self, node_id: str) -> list[NodeDTO]:
        self._ensure_connected()
        assert self._graph_store
        return await self._graph_store.list_children(node_id)

    async def list_ancestors(self, node_id: str) -> list[NodeDTO]:
        self._ensure_connected()
        assert self._graph_store
        return await self._graph_store.list_ancestors(node_id)

    # === NOTES ===

    async def add_note(self, node_id: str, content: str) -> NodeNoteDTO:
        self._ensure_connected()
        assert self._graph_store
        return await self._graph_store.add_note(node_id, content)

    async def list_notes(self, node_id: str) -> list[NodeNoteDTO]:
        self._ensure_connected()
        assert self._graph_store
        return await self._graph_store.list_notes(node_id)

    async def delete_note(self, node_id: str, note_id: str) -> None:
        self._ensure_connected()
        assert self._graph_store
        await self._graph_store.delete_note(node_id, note_id)

    async def generate_note(self, node_id: str, query: str) -> NodeNoteDTO:
        """Draft a note about query with the language model and attach it to the node."""
        self._ensure_connected()
        assert self._note_generator
        return await self._note_generator.generate_note(node_id, query)

    async def suggest_title(self, selected_text: str, full_response: str = "") -> str:
        """Suggest a node title for an excerpt selected from a tutoring answer."""
        self._ensure_connected()
        assert self._note_generator
        return await self._note_generator.suggest_title(selected_text, full_response)

    # === INTERACTIONS ===

    async def record_interaction(self, node_id: str, user_message: str, ai_response: str) -> int:
        """Record a completed turn. Returns the node's new interaction_count."""
        self._ensure_connected()
        assert self._tracker
        return await self._tracker.record(node_id, user_message, ai_response)

    async def list_interactions(self, node_id: str) -> list[NodeInteractionDTO]:
        self._ensure_connected()
        assert self._tracker
        return await self._tracker.list_interactions(node_id)

    async def refine_if_due(self, node_id: str) -> RefinementResult:
        self._ensure_connected()
        assert self._refiner
        return await self._refiner.refine_if_due(node_id)
