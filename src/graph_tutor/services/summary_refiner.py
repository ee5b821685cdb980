"""Summary refinement service for graph_tutor.

Periodically rewrites a node's summary from the questions students
actually asked about it, then re-embeds the node so routing follows
the real discussion rather than the title alone.
"""

import asyncio

from graph_tutor.config import GraphTutorConfig
from graph_tutor.errors import NotFoundError, RefinementFailedError
from graph_tutor.interfaces.llm import LLMInterface
from graph_tutor.interfaces.storage import StorageInterface
from graph_tutor.logging import get_logger
from graph_tutor.models.node import NodeDTO
from graph_tutor.models.results import RefinementResult
from graph_tutor.services.graph_store import GraphStore
from graph_tutor.services.prompts import (
    INITIAL_SUMMARY_SYSTEM_PROMPT,
    REFINEMENT_SYSTEM_PROMPT,
    build_initial_summary_prompt,
    build_refinement_prompt,
)

__all__ = [
    "SummaryRefiner",
]

logger = get_logger(__name__)

REFINEMENT_MAX_TOKENS = 150
INITIAL_SUMMARY_MAX_TOKENS = 100


class SummaryRefiner:
    """Best-effort summary maintenance driven by interaction counts.

    Refinement is due when a node's interaction_count is a positive
    multiple of the cadence and enough interactions are stored.
    Failures are logged and never propagate.
    """

    def __init__(
        self,
        storage: StorageInterface,
        graph_store: GraphStore,
        llm: LLMInterface,
        config: GraphTutorConfig | None = None,
    ) -> None:
        """Initialize refiner.

        Args:
            storage: Document store for nodes and interactions
            graph_store: Writes the refined summary with its embedding
            llm: Language model oracle
            config: Cadence and length bounds
        """
        self._storage = storage
        self._graph_store = graph_store
        self._llm = llm
        self._config = config or GraphTutorConfig()

    def is_due(self, interaction_count: int) -> bool:
        """Check if a count lands on a refinement boundary."""
        cadence = self._config.refine_cadence
        return interaction_count > 0 and interaction_count % cadence == 0

    async def refine_if_due(self, node_id: str) -> RefinementResult:
        """Refine a node's summary if its interaction count is due.

        Args:
            node_id: Node to refine

        Returns:
            RefinementResult, refined=False when not due or on failure

        Raises:
            NotFoundError: If the node does not exist
        """
        node = await self._storage.get_node(node_id)
        if node is None:
            raise NotFoundError("Node", node_id)
        if not self.is_due(node.interaction_count):
            return RefinementResult(refined=False)

        try:
            stored = await self._storage.count_interactions(node_id)
            if stored < self._config.refine_min_interactions:
                logger.debug("summary_refinement_skipped", node_id=node_id, interactions=stored)
                return RefinementResult(refined=False)

            summary = await self._refine(node)
            if summary is None:
                return RefinementResult(refined=False)
            await self._graph_store.replace_summary(node_id, summary)
        except Exception as e:
            logger.warning(
                "summary_refinement_failed",
                node_id=node_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return RefinementResult(refined=False)

        logger.info("summary_refined", node_id=node_id, length=len(summary))
        return RefinementResult(refined=True, summary=summary)

    async def _refine(self, node: NodeDTO) -> str | None:
        """Ask the oracle for a new summary, None when out of bounds."""
        interactions = await self._storage.get_recent_interactions(
            node.id, self._config.refine_history_limit
        )
        parent_summary = None
        if node.parent_id is not None:
            parent = await self._storage.get_node(node.parent_id)
            parent_summary = parent.summary if parent else None

        try:
            refined = await asyncio.wait_for(
                self._llm.complete_text(
                    REFINEMENT_SYSTEM_PROMPT,
                    build_refinement_prompt(node, interactions, parent_summary),
                    max_tokens=REFINEMENT_MAX_TOKENS,
                ),
                timeout=self._config.llm.timeout_seconds,
            )
        except Exception as e:
            raise RefinementFailedError("Summary refinement oracle call failed") from e
        refined = refined.strip().strip('"').strip()

        if not self._config.summary_min_chars <= len(refined) <= self._config.summary_max_chars:
            logger.warning(
                "refined_summary_out_of_bounds",
                node_id=node.id,
                length=len(refined),
            )
            return None
        return refined

    async def initial_summary(self, title: str, question: str, parent: NodeDTO | None) -> str:
        """Write a first summary for a new node that came without one.

        Falls back to "Introduction to <title>" on any failure.
        """
        fallback = f"Introduction to {title}"
        try:
            summary = await asyncio.wait_for(
                self._llm.complete_text(
                    INITIAL_SUMMARY_SYSTEM_PROMPT,
                    build_initial_summary_prompt(title, question, parent),
                    max_tokens=INITIAL_SUMMARY_MAX_TOKENS,
                ),
                timeout=self._config.llm.timeout_seconds,
            )
        except Exception as e:
            logger.warning("initial_summary_failed", title=title, error=str(e))
            return fallback
        summary = summary.strip().strip('"').strip()
        return summary[: self._config.node_summary_max_chars] or fallback
