"""Node placement engine for graph_tutor.

This module decides, for every incoming question, whether it belongs
to an existing node of a tree or needs a new node, and under which
parent.

Placement pipeline:
1. Embed the question (failure aborts placement)
2. Retrieve top-k similar nodes and the tree outline concurrently
   (an index failure degrades to "no candidates")
3. Optionally enrich with web search (best-effort)
4. Ask the language model for a structured decision
5. Validate every referenced ID against the tree
6. Enforce the routing policy on the validated decision

Routing policy, applied after the model answers:
- Candidate with score >= exact threshold whose title is the
  question's subject: use that node
- "<entity> <attribute>" question where a node titled <entity>
  exists: use the entity's node
- Follow-up question referring back to the current node ("it", "this"):
  stay on that node, unless a node outside its subtree is an exact match
  or the model chose a node that scores higher
- New node parent: root if no candidate reaches the related
  threshold, else the highest-scoring (then deepest) candidate

Decisions have no side effects; callers materialize CreateNew.
"""

import asyncio
import re
from collections.abc import Sequence

from pydantic import ValidationError

from graph_tutor.config import GraphTutorConfig
from graph_tutor.errors import (
    EmbeddingFailedError,
    InvalidInputError,
    InvalidRoutingError,
    NotFoundError,
    RoutingFailedError,
)
from graph_tutor.interfaces.embedding import EmbeddingServiceInterface
from graph_tutor.interfaces.llm import LLMInterface
from graph_tutor.interfaces.search import WebSearchInterface
from graph_tutor.interfaces.storage import StorageInterface
from graph_tutor.interfaces.vector_index import VectorIndexInterface
from graph_tutor.logging import get_logger
from graph_tutor.models.interaction import ChatMessage
from graph_tutor.models.node import NodeDTO
from graph_tutor.models.routing import (
    CreateNew,
    MatchType,
    NodeCandidate,
    OracleRoutingOutput,
    UseExisting,
)
from graph_tutor.services.prompts import ROUTING_SYSTEM_PROMPT, build_routing_prompt
from graph_tutor.utils.similarity import cosine_similarity

__all__ = [
    "NodePlacementEngine",
    "names_subject",
    "names_title",
]

logger = get_logger(__name__)

# At most this many content words may accompany an entity title for the
# question to count as being about that entity ("LeBron James age").
ATTRIBUTE_MAX_TOKENS = 1

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_PRONOUN_RE = re.compile(
    r"\b(he|she|him|his|her|hers|they|them|their|it|its|this|that|these|those)\b",
    re.IGNORECASE,
)


def _normalize(token: str) -> str:
    # Crude plural folding so "derivatives" matches "Derivative"
    if len(token) > 3 and token.endswith("s") and not token.endswith("ss"):
        return token[:-1]
    return token


# Compared against normalized tokens
_FILLER_WORDS = frozenset(
    _normalize(word)
    for word in """
    a an the of in on at to for from about with and or by as into
    what whats who whos whom whose which when where why how
    is are was were be been being do does did has have had
    can could would should will tell me more explain describe define
    definition meaning mean please give show i my we our you your
    old s
    """.split()
)


def _tokens(text: str) -> list[str]:
    return [_normalize(t) for t in _TOKEN_RE.findall(text.lower().replace("'", ""))]


def _contains(haystack: list[str], needle: list[str]) -> bool:
    n = len(needle)
    return n > 0 and any(haystack[i : i + n] == needle for i in range(len(haystack) - n + 1))


def names_title(title: str, question: str) -> bool:
    """Check if the question mentions the title as a contiguous phrase."""
    return _contains(_tokens(question), _tokens(title))


def names_subject(title: str, question: str, max_extra: int = ATTRIBUTE_MAX_TOKENS) -> bool:
    """Check if the title is the subject of the question.

    True when the question mentions the title and, apart from filler
    words, carries at most max_extra extra words.
    """
    question_tokens = _tokens(question)
    title_tokens = _tokens(title)
    if all(t in _FILLER_WORDS for t in title_tokens):
        return False
    if not _contains(question_tokens, title_tokens):
        return False
    leftover = [
        t for t in question_tokens if t not in title_tokens and t not in _FILLER_WORDS
    ]
    return len(leftover) <= max_extra


def _specificity(node: NodeDTO | NodeCandidate) -> tuple[int, int]:
    return len(_tokens(node.title)), node.depth


def _is_subject(node: NodeDTO | NodeCandidate, question: str) -> bool:
    # The root only matches a bare mention; "calculus derivatives" is a subtopic
    max_extra = 0 if node.depth == 0 else ATTRIBUTE_MAX_TOKENS
    return names_subject(node.title, question, max_extra)


class NodePlacementEngine:
    """Routes questions to existing nodes or proposes new ones.

    The language model is treated as an untrusted oracle: its output
    is schema-validated, checked against the tree and then corrected
    by the routing policy.

    Example:
        engine = NodePlacementEngine(storage, index, embeddings, llm)
        decision = await engine.place("What is the chain rule?", root_id)
    """

    def __init__(
        self,
        storage: StorageInterface,
        vector_index: VectorIndexInterface,
        embedding_service: EmbeddingServiceInterface,
        llm: LLMInterface,
        search: WebSearchInterface | None = None,
        config: GraphTutorConfig | None = None,
    ) -> None:
        """Initialize engine.

        Args:
            storage: Document store for the tree outline
            vector_index: Vector index for candidate retrieval
            embedding_service: Embedding provider for the question
            llm: Language model oracle
            search: Optional web search for enrichment
            config: Thresholds and bounds
        """
        self._storage = storage
        self._index = vector_index
        self._embedding = embedding_service
        self._llm = llm
        self._search = search
        self._config = config or GraphTutorConfig()

    async def place(
        self,
        question: str,
        root_id: str,
        current_node_id: str | None = None,
        recent_messages: Sequence[ChatMessage] | None = None,
    ) -> UseExisting | CreateNew:
        """Decide where a question belongs.

        Args:
            question: User's question
            root_id: Tree to place into
            current_node_id: Node the user is viewing, if any
            recent_messages: Short conversation window for pronoun resolution

        Returns:
            UseExisting or CreateNew decision

        Raises:
            NotFoundError: If the root or current node does not exist
            EmbeddingFailedError: If the question cannot be embedded
            RoutingFailedError: If the oracle fails or returns unusable output
            InvalidRoutingError: If the oracle references an unknown node
        """
        question = question.strip()
        if not question:
            raise InvalidInputError("Question is required")

        root = await self._storage.get_node(root_id)
        if root is None or not root.is_root:
            raise NotFoundError("Root node", root_id)

        query_vector = await self._embed_question(question)
        hits, tree = await asyncio.gather(
            self._query_index(query_vector, root_id),
            self._storage.list_tree(root_id),
        )
        nodes = {n.id: n for n in tree}
        nodes.setdefault(root.id, root)

        current: NodeDTO | None = None
        if current_node_id is not None:
            current = nodes.get(current_node_id)
            if current is None:
                raise NotFoundError("Node", current_node_id)

        candidates = self._build_candidates(query_vector, hits, nodes, root)
        recent = list(recent_messages or [])[-self._config.recent_message_window :]
        enrichment = await self._enrich(question, current)

        output = await self._ask_oracle(question, root, candidates, tree, current, recent, enrichment)
        decision = output.to_decision()
        self._validate(decision, nodes)
        focus = self._resolve_focus(question, current, decision, candidates, nodes, query_vector)
        decision = self._enforce_policy(decision, question, candidates, nodes, root, focus)

        logger.info(
            "routing_decided",
            root_id=root_id,
            action=decision.action,
            node_id=decision.node_id if isinstance(decision, UseExisting) else None,
            parent_id=decision.parent_id if isinstance(decision, CreateNew) else None,
            candidates=len(candidates),
            focus_node_id=focus.id if focus else None,
        )
        return decision

    # Retrieval
    async def _embed_question(self, question: str) -> list[float]:
        try:
            vector = await self._embedding.embed(question)
        except EmbeddingFailedError:
            raise
        except Exception as e:
            raise EmbeddingFailedError("Could not embed question") from e
        if len(vector) != self._embedding.dimensions:
            raise EmbeddingFailedError(
                "Embedding has the wrong dimensionality",
                details={"expected": self._embedding.dimensions, "actual": len(vector)},
            )
        return vector

    async def _query_index(self, vector: list[float], root_id: str) -> list[tuple[str, float]]:
        try:
            return await self._index.query(vector, root_id, self._config.candidate_top_k)
        except Exception as e:
            logger.warning("vector_query_degraded", root_id=root_id, error=str(e))
            return []

    def _build_candidates(
        self,
        query_vector: list[float],
        hits: list[tuple[str, float]],
        nodes: dict[str, NodeDTO],
        root: NodeDTO,
    ) -> list[NodeCandidate]:
        """Turn index hits into candidates, dropping IDs not in the tree.

        The root is always a candidate so there is a fallback parent.
        """
        candidates: dict[str, NodeCandidate] = {}
        for node_id, score in hits:
            node = nodes.get(node_id)
            if node is None:
                logger.debug("vector_hit_dropped", node_id=node_id)
                continue
            if node_id not in candidates:
                candidates[node_id] = NodeCandidate(
                    node_id=node.id,
                    title=node.title,
                    score=score,
                    depth=node.depth,
                    parent_id=node.parent_id,
                )
        if root.id not in candidates:
            candidates[root.id] = NodeCandidate(
                node_id=root.id,
                title=root.title,
                score=cosine_similarity(query_vector, root.embedding),
                depth=0,
            )
        return sorted(candidates.values(), key=lambda c: (c.score, c.depth), reverse=True)

    async def _enrich(self, question: str, current: NodeDTO | None) -> str | None:
        if self._search is None:
            return None
        query = question
        if current is not None and not current.is_root:
            query = f"{question} {current.title}"
        try:
            return await asyncio.wait_for(
                self._search.search(query),
                timeout=self._config.llm.timeout_seconds,
            )
        except Exception as e:
            logger.warning("web_search_degraded", error=str(e))
            return None

    # Decision
    async def _ask_oracle(
        self,
        question: str,
        root: NodeDTO,
        candidates: list[NodeCandidate],
        tree: list[NodeDTO],
        current: NodeDTO | None,
        recent: list[ChatMessage],
        enrichment: str | None,
    ) -> OracleRoutingOutput:
        system_prompt = ROUTING_SYSTEM_PROMPT.format(
            exact=self._config.exact_match_threshold,
            related=self._config.related_match_threshold,
        )
        user_prompt = build_routing_prompt(
            question,
            root,
            candidates,
            tree,
            current_node=current,
            recent_messages=recent,
            enrichment=enrichment,
        )
        try:
            raw = await asyncio.wait_for(
                self._llm.complete_json(system_prompt, user_prompt),
                timeout=self._config.llm.timeout_seconds,
            )
            return OracleRoutingOutput.model_validate(raw)
        except ValidationError as e:
            logger.warning("routing_output_invalid", error_count=e.error_count())
            raise RoutingFailedError(
                "Routing output failed validation",
                details={"errors": e.errors(include_url=False)},
            ) from e
        except Exception as e:
            logger.warning("routing_oracle_failed", error=str(e))
            raise RoutingFailedError("Routing oracle call failed", details={"error": str(e)}) from e

    @staticmethod
    def _validate(decision: UseExisting | CreateNew, nodes: dict[str, NodeDTO]) -> None:
        if isinstance(decision, UseExisting):
            if decision.node_id not in nodes:
                raise InvalidRoutingError(decision.node_id, "existingNodeId")
        elif decision.parent_id not in nodes:
            raise InvalidRoutingError(decision.parent_id, "parentNodeId")

    def _resolve_focus(
        self,
        question: str,
        current: NodeDTO | None,
        decision: UseExisting | CreateNew,
        candidates: list[NodeCandidate],
        nodes: dict[str, NodeDTO],
        query_vector: list[float],
    ) -> NodeDTO | None:
        """Return the current node when the question refers back to it.

        The back-reference must be in the question itself; earlier
        messages only help the model resolve what it points at. Focus
        is dropped when the question names another node, when a node
        outside the current subtree is an exact match, or when the
        model's validated choice is a related node scoring higher than
        the current one.
        """
        if current is None or current.is_root or not _PRONOUN_RE.search(question):
            return None

        # Ancestors are context for the current node, not a different entity
        if any(
            n.id not in current.ancestor_path and names_title(n.title, question)
            for n in nodes.values()
        ):
            return None

        exact = self._config.exact_match_threshold
        related = self._config.related_match_threshold
        scores = {c.node_id: c.score for c in candidates}

        outside = [
            c for c in candidates
            if c.score >= exact and current.id not in nodes[c.node_id].ancestor_path
        ]
        if outside:
            logger.debug(
                "focus_dropped", reason="exact_match_elsewhere", node_id=outside[0].node_id
            )
            return None

        chosen_id = decision.node_id if isinstance(decision, UseExisting) else decision.parent_id
        if chosen_id != current.id:
            current_score = scores.get(current.id)
            if current_score is None:
                current_score = cosine_similarity(query_vector, current.embedding)
            chosen_score = scores.get(chosen_id, 0.0)
            if chosen_score >= related and chosen_score > current_score:
                logger.debug(
                    "focus_dropped", reason="oracle_choice_scores_higher", node_id=chosen_id
                )
                return None
        return current

    def _enforce_policy(
        self,
        decision: UseExisting | CreateNew,
        question: str,
        candidates: list[NodeCandidate],
        nodes: dict[str, NodeDTO],
        root: NodeDTO,
        focus: NodeDTO | None,
    ) -> UseExisting | CreateNew:
        exact = self._config.exact_match_threshold
        related = self._config.related_match_threshold

        # Duplicate prevention
        duplicates = [
            c for c in candidates
            if c.match_type(exact, related) == MatchType.EXACT and _is_subject(c, question)
        ]
        if duplicates:
            match = max(duplicates, key=lambda c: (*_specificity(c), c.score))
            return self._force_existing(decision, match.node_id, "exact_match")

        # Entity info-request
        entities = [n for n in nodes.values() if _is_subject(n, question)]
        if entities:
            entity = max(entities, key=_specificity)
            return self._force_existing(decision, entity.id, "entity_request")

        if focus is not None:
            if isinstance(decision, UseExisting):
                return self._force_existing(decision, focus.id, "pronoun_focus")
            return self._with_parent(decision, focus.id, "pronoun_focus")

        if isinstance(decision, UseExisting):
            return decision

        # A suggested title equal to an existing node's title is that node
        suggested = _tokens(decision.suggested_title)
        same_title = [n for n in nodes.values() if _tokens(n.title) == suggested]
        if same_title:
            existing = max(same_title, key=_specificity)
            return self._force_existing(decision, existing.id, "duplicate_title")

        related_candidates = [
            c for c in candidates if c.match_type(exact, related) != MatchType.NONE
        ]
        if not related_candidates:
            parent_id = root.id
        else:
            parent_id = max(related_candidates, key=lambda c: (c.score, c.depth)).node_id
        return self._with_parent(decision, parent_id, "similarity_policy")

    @staticmethod
    def _force_existing(
        decision: UseExisting | CreateNew,
        node_id: str,
        rule: str,
    ) -> UseExisting:
        if isinstance(decision, UseExisting) and decision.node_id == node_id:
            return decision
        logger.info(
            "routing_overridden",
            rule=rule,
            oracle_action=decision.action,
            node_id=node_id,
        )
        return UseExisting(node_id=node_id, reasoning=decision.reasoning)

    def _with_parent(self, decision: CreateNew, parent_id: str, rule: str) -> CreateNew:
        if parent_id != decision.parent_id:
            logger.info(
                "routing_parent_overridden",
                rule=rule,
                oracle_parent_id=decision.parent_id,
                parent_id=parent_id,
            )
        title = decision.suggested_title.strip()[: self._config.title_max_chars].strip()
        summary = decision.suggested_summary.strip()[: self._config.node_summary_max_chars].strip()
        return CreateNew(
            parent_id=parent_id,
            suggested_title=title,
            suggested_summary=summary,
            reasoning=decision.reasoning,
        )
