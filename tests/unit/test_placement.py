"""Unit tests for NodePlacementEngine."""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from graph_tutor.config import GraphTutorConfig
from graph_tutor.errors import (
    EmbeddingFailedError,
    InvalidInputError,
    InvalidRoutingError,
    NotFoundError,
    OracleError,
    PlacementError,
    RoutingFailedError,
    SearchDegradedError,
)
from graph_tutor.models.interaction import ChatMessage
from graph_tutor.models.node import NodeDTO
from graph_tutor.models.routing import CreateNew, UseExisting
from graph_tutor.services.graph_store import GraphStore
from graph_tutor.services.placement import NodePlacementEngine, names_subject
from tests.mocks.mock_embedding import MockEmbeddingService
from tests.mocks.mock_storage import MockStorage


def create_new(parent_id: str, title: str, summary: str = "") -> dict:
    return {
        "action": "create_new",
        "parentNodeId": parent_id,
        "suggestedTitle": title,
        "suggestedSummary": summary,
        "reasoning": "new subtopic",
    }


def use_existing(node_id: str) -> dict:
    return {"action": "use_existing", "existingNodeId": node_id, "reasoning": "covered"}


@pytest.fixture
def scripted_index() -> AsyncMock:
    """Vector index returning hits chosen by each test."""
    index = AsyncMock()
    index.query.return_value = []
    return index


@pytest.fixture
def engine(
    storage: MockStorage,
    scripted_index: AsyncMock,
    embedding: MockEmbeddingService,
    mock_llm: AsyncMock,
    config: GraphTutorConfig,
) -> NodePlacementEngine:
    return NodePlacementEngine(storage, scripted_index, embedding, mock_llm, config=config)


@pytest_asyncio.fixture
async def calculus(graph_store: GraphStore) -> dict[str, NodeDTO]:
    """Calculus tree: root, Derivatives, Limits, Chain Rule under Derivatives."""
    topic = await graph_store.create_root("Calculus")
    root = await graph_store.get_node(topic.id)
    derivatives = await graph_store.create_node(
        "Derivatives", "Rates of change and slopes of tangent lines.", root.id
    )
    limits = await graph_store.create_node("Limits", "Values functions approach.", root.id)
    chain_rule = await graph_store.create_node(
        "Chain Rule", "Differentiating composite functions.", derivatives.id
    )
    integrals = await graph_store.create_node("Integrals", "Areas under curves.", root.id)
    return {
        "root": root,
        "derivatives": derivatives,
        "limits": limits,
        "chain_rule": chain_rule,
        "integrals": integrals,
    }


class TestNamesSubject:
    """Tests for the entity/subject matcher."""

    @pytest.mark.parametrize(
        ("title", "question", "expected"),
        [
            ("LeBron James", "LeBron James age", True),
            ("LeBron James", "How old is LeBron James?", True),
            ("Derivatives", "What are derivatives?", True),
            ("Chain Rule", "What is the chain rule?", True),
            ("Derivatives", "What is the chain rule?", False),
            ("NBA", "LeBron James age", False),
            ("LeBron James", "Compare LeBron James and Michael Jordan stats", False),
            ("Integrals", "How does it relate to integrals?", False),
        ],
    )
    def test_names_subject(self, title: str, question: str, expected: bool) -> None:
        assert names_subject(title, question) is expected

    def test_zero_extra_words(self) -> None:
        assert names_subject("Calculus", "What is calculus?", max_extra=0)
        assert not names_subject("Calculus", "Explain derivatives in calculus", max_extra=0)


class TestRoutingPolicy:
    """Tests for the policy applied on top of the oracle's answer."""

    @pytest.mark.asyncio
    async def test_duplicate_prevention(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        scripted_index: AsyncMock,
        mock_llm: AsyncMock,
    ) -> None:
        root, derivatives = calculus["root"], calculus["derivatives"]
        scripted_index.query.return_value = [(derivatives.id, 0.90)]
        mock_llm.complete_json.return_value = create_new(root.id, "Derivatives Overview")

        decision = await engine.place("What are derivatives?", root.id)

        assert decision == UseExisting(node_id=derivatives.id, reasoning="new subtopic")

    @pytest.mark.asyncio
    async def test_root_fallback(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        scripted_index: AsyncMock,
        mock_llm: AsyncMock,
    ) -> None:
        root, derivatives = calculus["root"], calculus["derivatives"]
        scripted_index.query.return_value = [(derivatives.id, 0.40), (calculus["limits"].id, 0.30)]
        mock_llm.complete_json.return_value = create_new(derivatives.id, "Taylor Series")

        decision = await engine.place("How do Taylor series work?", root.id)

        assert isinstance(decision, CreateNew)
        assert decision.parent_id == root.id
        assert decision.suggested_title == "Taylor Series"

    @pytest.mark.asyncio
    async def test_specific_parent_preference(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        scripted_index: AsyncMock,
        mock_llm: AsyncMock,
    ) -> None:
        root = calculus["root"]
        limits, derivatives = calculus["limits"], calculus["derivatives"]
        scripted_index.query.return_value = [(limits.id, 0.70), (derivatives.id, 0.90)]
        mock_llm.complete_json.return_value = create_new(limits.id, "Quotient Rule")

        decision = await engine.place("How does the quotient rule work?", root.id)

        assert isinstance(decision, CreateNew)
        assert decision.parent_id == derivatives.id

    @pytest.mark.asyncio
    async def test_chain_rule_goes_under_derivatives(
        self,
        storage: MockStorage,
        scripted_index: AsyncMock,
        embedding: MockEmbeddingService,
        mock_llm: AsyncMock,
        graph_store: GraphStore,
        config: GraphTutorConfig,
    ) -> None:
        topic = await graph_store.create_root("Calculus")
        derivatives = await graph_store.create_node(
            "Derivatives", "Rates of change and slopes of tangent lines.", topic.id
        )
        scripted_index.query.return_value = [(derivatives.id, 0.91)]
        mock_llm.complete_json.return_value = create_new(
            topic.id, "Chain Rule", "Differentiating composite functions."
        )
        engine = NodePlacementEngine(storage, scripted_index, embedding, mock_llm, config=config)

        decision = await engine.place("What is the chain rule?", topic.id)

        assert isinstance(decision, CreateNew)
        assert decision.parent_id == derivatives.id
        assert decision.suggested_title == "Chain Rule"

    @pytest.mark.asyncio
    async def test_entity_info_request(
        self,
        storage: MockStorage,
        scripted_index: AsyncMock,
        embedding: MockEmbeddingService,
        mock_llm: AsyncMock,
        graph_store: GraphStore,
        config: GraphTutorConfig,
    ) -> None:
        topic = await graph_store.create_root("Basketball")
        nba = await graph_store.create_node("NBA", "National Basketball Association.", topic.id)
        lebron = await graph_store.create_node("LeBron James", "Lakers forward.", nba.id)
        scripted_index.query.return_value = [(lebron.id, 0.95), (nba.id, 0.70)]
        mock_llm.complete_json.return_value = use_existing(nba.id)
        engine = NodePlacementEngine(storage, scripted_index, embedding, mock_llm, config=config)

        decision = await engine.place("LeBron James age", topic.id)

        assert isinstance(decision, UseExisting)
        assert decision.node_id == lebron.id

    @pytest.mark.asyncio
    async def test_entity_request_without_vector_hit(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        mock_llm: AsyncMock,
    ) -> None:
        root = calculus["root"]
        mock_llm.complete_json.return_value = create_new(root.id, "Chain Rule Basics")

        decision = await engine.place("What is the chain rule?", root.id)

        assert decision == UseExisting(
            node_id=calculus["chain_rule"].id, reasoning="new subtopic"
        )

    @pytest.mark.asyncio
    async def test_subtopic_mentioning_root_is_not_root(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        mock_llm: AsyncMock,
    ) -> None:
        root = calculus["root"]
        mock_llm.complete_json.return_value = create_new(root.id, "Series")

        decision = await engine.place("Explain series in calculus", root.id)

        assert isinstance(decision, CreateNew)
        assert decision.suggested_title == "Series"

    @pytest.mark.asyncio
    async def test_suggested_title_of_existing_node(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        mock_llm: AsyncMock,
    ) -> None:
        root = calculus["root"]
        mock_llm.complete_json.return_value = create_new(root.id, "limits")

        decision = await engine.place("What happens as x approaches infinity?", root.id)

        assert isinstance(decision, UseExisting)
        assert decision.node_id == calculus["limits"].id

    @pytest.mark.asyncio
    async def test_use_existing_accepted(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        mock_llm: AsyncMock,
    ) -> None:
        root, integrals = calculus["root"], calculus["integrals"]
        mock_llm.complete_json.return_value = use_existing(integrals.id)

        decision = await engine.place("How do I find the area under a curve?", root.id)

        assert decision == UseExisting(node_id=integrals.id, reasoning="covered")

    @pytest.mark.asyncio
    async def test_create_new_fields_bounded(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        mock_llm: AsyncMock,
        config: GraphTutorConfig,
    ) -> None:
        root = calculus["root"]
        mock_llm.complete_json.return_value = create_new(root.id, "T" * 90, "s" * 400)

        decision = await engine.place("Something entirely different?", root.id)

        assert isinstance(decision, CreateNew)
        assert len(decision.suggested_title) == config.title_max_chars
        assert len(decision.suggested_summary) == config.node_summary_max_chars


class TestPronounFocus:
    """Tests for follow-up questions while viewing a node."""

    @pytest.mark.asyncio
    async def test_follow_up_stays_on_current_node(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        mock_llm: AsyncMock,
    ) -> None:
        root, chain_rule = calculus["root"], calculus["chain_rule"]
        mock_llm.complete_json.return_value = use_existing(root.id)

        decision = await engine.place("Can you give an example of it?", root.id, chain_rule.id)

        assert isinstance(decision, UseExisting)
        assert decision.node_id == chain_rule.id

    @pytest.mark.asyncio
    async def test_follow_up_subtopic_goes_under_current_node(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        mock_llm: AsyncMock,
    ) -> None:
        root, chain_rule = calculus["root"], calculus["chain_rule"]
        mock_llm.complete_json.return_value = create_new(root.id, "Chain Rule Proof")

        decision = await engine.place(
            "Why does that hold?",
            root.id,
            chain_rule.id,
            [ChatMessage(role="user", content="Explain the chain rule")],
        )

        assert isinstance(decision, CreateNew)
        assert decision.parent_id == chain_rule.id

    @pytest.mark.asyncio
    async def test_naming_another_node_drops_focus(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        mock_llm: AsyncMock,
    ) -> None:
        root, integrals = calculus["root"], calculus["integrals"]
        mock_llm.complete_json.return_value = use_existing(integrals.id)

        decision = await engine.place(
            "How does it relate to integrals?", root.id, calculus["chain_rule"].id
        )

        assert isinstance(decision, UseExisting)
        assert decision.node_id == integrals.id

    @pytest.mark.asyncio
    async def test_exact_match_elsewhere_drops_focus(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        scripted_index: AsyncMock,
        mock_llm: AsyncMock,
    ) -> None:
        root, derivatives, limits = calculus["root"], calculus["derivatives"], calculus["limits"]
        scripted_index.query.return_value = [(derivatives.id, 0.90), (limits.id, 0.50)]
        mock_llm.complete_json.return_value = create_new(derivatives.id, "Quotient Rule")

        decision = await engine.place(
            "What is the quotient rule and why is it useful?", root.id, limits.id
        )

        assert isinstance(decision, CreateNew)
        assert decision.parent_id == derivatives.id

    @pytest.mark.asyncio
    async def test_back_reference_only_in_history_is_ignored(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        scripted_index: AsyncMock,
        mock_llm: AsyncMock,
    ) -> None:
        root, derivatives, limits = calculus["root"], calculus["derivatives"], calculus["limits"]
        scripted_index.query.return_value = [(derivatives.id, 0.70), (limits.id, 0.50)]
        mock_llm.complete_json.return_value = create_new(root.id, "Quotient Rule")

        decision = await engine.place(
            "What is the quotient rule?",
            root.id,
            limits.id,
            [ChatMessage(role="user", content="How does it work?")],
        )

        assert isinstance(decision, CreateNew)
        assert decision.parent_id == derivatives.id

    @pytest.mark.asyncio
    async def test_higher_scoring_choice_drops_focus(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        scripted_index: AsyncMock,
        mock_llm: AsyncMock,
    ) -> None:
        root, derivatives, limits = calculus["root"], calculus["derivatives"], calculus["limits"]
        scripted_index.query.return_value = [(derivatives.id, 0.75), (limits.id, 0.60)]
        mock_llm.complete_json.return_value = use_existing(derivatives.id)

        decision = await engine.place("How do I compute it for polynomials?", root.id, limits.id)

        assert isinstance(decision, UseExisting)
        assert decision.node_id == derivatives.id

    @pytest.mark.asyncio
    async def test_lower_scoring_choice_keeps_focus(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        scripted_index: AsyncMock,
        mock_llm: AsyncMock,
    ) -> None:
        root, derivatives, limits = calculus["root"], calculus["derivatives"], calculus["limits"]
        scripted_index.query.return_value = [(limits.id, 0.80), (derivatives.id, 0.70)]
        mock_llm.complete_json.return_value = use_existing(derivatives.id)

        decision = await engine.place("Why does it approach zero?", root.id, limits.id)

        assert isinstance(decision, UseExisting)
        assert decision.node_id == limits.id

    @pytest.mark.asyncio
    async def test_unknown_current_node(
        self, engine: NodePlacementEngine, calculus: dict[str, NodeDTO]
    ) -> None:
        with pytest.raises(NotFoundError):
            await engine.place("What is it?", calculus["root"].id, "missing")


class TestOracleValidation:
    """Tests for untrusted oracle output."""

    @pytest.mark.asyncio
    async def test_unknown_existing_node(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        mock_llm: AsyncMock,
    ) -> None:
        mock_llm.complete_json.return_value = use_existing("ghost")

        with pytest.raises(InvalidRoutingError) as exc_info:
            await engine.place("Anything else?", calculus["root"].id)
        assert exc_info.value.node_id == "ghost"
        assert exc_info.value.field == "existingNodeId"

    @pytest.mark.asyncio
    async def test_unknown_parent_node(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        mock_llm: AsyncMock,
    ) -> None:
        mock_llm.complete_json.return_value = create_new("ghost", "Taylor Series")

        with pytest.raises(InvalidRoutingError) as exc_info:
            await engine.place("How do Taylor series work?", calculus["root"].id)
        assert exc_info.value.field == "parentNodeId"

    @pytest.mark.asyncio
    async def test_node_from_other_tree_is_unknown(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        graph_store: GraphStore,
        mock_llm: AsyncMock,
    ) -> None:
        other = await graph_store.create_root("Biology")
        mock_llm.complete_json.return_value = use_existing(other.id)

        with pytest.raises(InvalidRoutingError):
            await engine.place("Anything else?", calculus["root"].id)

    @pytest.mark.asyncio
    async def test_malformed_output(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        mock_llm: AsyncMock,
    ) -> None:
        mock_llm.complete_json.return_value = {"action": "create_new"}

        with pytest.raises(RoutingFailedError) as exc_info:
            await engine.place("How do Taylor series work?", calculus["root"].id)
        assert exc_info.value.details["errors"]

    @pytest.mark.asyncio
    async def test_oracle_failure(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        mock_llm: AsyncMock,
    ) -> None:
        mock_llm.complete_json.side_effect = OracleError("rate limited")

        with pytest.raises(RoutingFailedError) as exc_info:
            await engine.place("How do Taylor series work?", calculus["root"].id)
        assert isinstance(exc_info.value, PlacementError)
        assert "retry or specify a location" in exc_info.value.user_message


class TestDegradation:
    """Tests for failures in embedding, index and search."""

    @pytest.mark.asyncio
    async def test_embedding_failure_aborts(
        self,
        storage: MockStorage,
        scripted_index: AsyncMock,
        mock_llm: AsyncMock,
        calculus: dict[str, NodeDTO],
        config: GraphTutorConfig,
    ) -> None:
        broken = AsyncMock()
        broken.embed.side_effect = RuntimeError("provider down")
        engine = NodePlacementEngine(storage, scripted_index, broken, mock_llm, config=config)

        with pytest.raises(EmbeddingFailedError):
            await engine.place("What are derivatives?", calculus["root"].id)
        mock_llm.complete_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_wrong_dimensionality_aborts(
        self,
        storage: MockStorage,
        scripted_index: AsyncMock,
        mock_llm: AsyncMock,
        calculus: dict[str, NodeDTO],
        config: GraphTutorConfig,
    ) -> None:
        short = AsyncMock()
        short.dimensions = 768
        short.embed.return_value = [0.1, 0.2, 0.3]
        engine = NodePlacementEngine(storage, scripted_index, short, mock_llm, config=config)

        with pytest.raises(EmbeddingFailedError) as exc_info:
            await engine.place("What are derivatives?", calculus["root"].id)
        assert exc_info.value.details == {"expected": 768, "actual": 3}

    @pytest.mark.asyncio
    async def test_index_failure_degrades(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        scripted_index: AsyncMock,
        mock_llm: AsyncMock,
    ) -> None:
        root = calculus["root"]
        scripted_index.query.side_effect = ConnectionError("index offline")
        mock_llm.complete_json.return_value = create_new(calculus["derivatives"].id, "Taylor Series")

        decision = await engine.place("How do Taylor series work?", root.id)

        assert isinstance(decision, CreateNew)
        assert decision.parent_id == root.id

    @pytest.mark.asyncio
    async def test_hits_outside_tree_dropped(
        self,
        engine: NodePlacementEngine,
        calculus: dict[str, NodeDTO],
        scripted_index: AsyncMock,
        mock_llm: AsyncMock,
    ) -> None:
        root = calculus["root"]
        scripted_index.query.return_value = [("stale-id", 0.99)]
        mock_llm.complete_json.return_value = create_new(root.id, "Taylor Series")

        decision = await engine.place("How do Taylor series work?", root.id)

        assert isinstance(decision, CreateNew)
        assert decision.parent_id == root.id

    @pytest.mark.asyncio
    async def test_search_enrichment_in_prompt(
        self,
        storage: MockStorage,
        scripted_index: AsyncMock,
        embedding: MockEmbeddingService,
        mock_llm: AsyncMock,
        calculus: dict[str, NodeDTO],
        config: GraphTutorConfig,
    ) -> None:
        search = AsyncMock()
        search.search.return_value = "Taylor series approximate functions with polynomials."
        mock_llm.complete_json.return_value = create_new(calculus["root"].id, "Taylor Series")
        engine = NodePlacementEngine(
            storage, scripted_index, embedding, mock_llm, search=search, config=config
        )

        await engine.place("How do Taylor series work?", calculus["root"].id)

        user_prompt = mock_llm.complete_json.call_args.args[1]
        assert "approximate functions with polynomials" in user_prompt

    @pytest.mark.asyncio
    async def test_search_failure_degrades(
        self,
        storage: MockStorage,
        scripted_index: AsyncMock,
        embedding: MockEmbeddingService,
        mock_llm: AsyncMock,
        calculus: dict[str, NodeDTO],
        config: GraphTutorConfig,
    ) -> None:
        search = AsyncMock()
        search.search.side_effect = SearchDegradedError("search unavailable")
        mock_llm.complete_json.return_value = create_new(calculus["root"].id, "Taylor Series")
        engine = NodePlacementEngine(
            storage, scripted_index, embedding, mock_llm, search=search, config=config
        )

        decision = await engine.place("How do Taylor series work?", calculus["root"].id)

        assert isinstance(decision, CreateNew)

    @pytest.mark.asyncio
    async def test_unknown_root(self, engine: NodePlacementEngine) -> None:
        with pytest.raises(NotFoundError):
            await engine.place("What are derivatives?", "missing")

    @pytest.mark.asyncio
    async def test_empty_question(
        self, engine: NodePlacementEngine, calculus: dict[str, NodeDTO]
    ) -> None:
        with pytest.raises(InvalidInputError):
            await engine.place("   ", calculus["root"].id)
