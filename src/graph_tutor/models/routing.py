"""Routing models for graph_tutor.

These models describe placement candidates, the structured output
expected from the language model, and the validated routing decision
returned to callers.
"""

from enum import StrEnum
from typing import Annotated, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

__all__ = [
    "CreateNew",
    "MatchType",
    "NodeCandidate",
    "OracleRoutingOutput",
    "RoutingAction",
    "RoutingDecision",
    "UseExisting",
]


class RoutingAction(StrEnum):
    """Actions the placement engine can decide on."""

    USE_EXISTING = "use_existing"
    """Question belongs to an existing node"""

    CREATE_NEW = "create_new"
    """Question needs a new node under a chosen parent"""


class MatchType(StrEnum):
    """Similarity band of a candidate node."""

    EXACT = "exact"
    """Score >= exact threshold: likely the same topic"""

    RELATED = "related"
    """Score between related and exact threshold: plausible parent"""

    NONE = "none"
    """Score < related threshold: no meaningful match"""


class NodeCandidate(BaseModel, frozen=True):
    """Node considered during placement, with its similarity to the question."""

    node_id: str
    title: str
    score: float = Field(description="Cosine similarity to the question")
    depth: int = Field(default=0, ge=0)
    parent_id: str | None = None

    def match_type(self, exact_threshold: float, related_threshold: float) -> MatchType:
        """Classify the candidate's score into a similarity band."""
        if self.score >= exact_threshold:
            return MatchType.EXACT
        if self.score >= related_threshold:
            return MatchType.RELATED
        return MatchType.NONE


class UseExisting(BaseModel, frozen=True):
    """Route the question to an existing node."""

    action: Literal["use_existing"] = "use_existing"
    node_id: str
    reasoning: str = ""


class CreateNew(BaseModel, frozen=True):
    """Create a new node for the question under parent_id."""

    action: Literal["create_new"] = "create_new"
    parent_id: str
    suggested_title: str
    suggested_summary: str = ""
    reasoning: str = ""


RoutingDecision = Annotated[UseExisting | CreateNew, Field(discriminator="action")]


class OracleRoutingOutput(BaseModel):
    """Raw routing decision as returned by the language model.

    Field names follow the JSON schema the model is prompted with.
    Required fields depend on the chosen action.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    action: RoutingAction
    reasoning: str = ""
    existing_node_id: str | None = Field(default=None, alias="existingNodeId")
    parent_node_id: str | None = Field(default=None, alias="parentNodeId")
    suggested_title: str | None = Field(default=None, alias="suggestedTitle")
    suggested_summary: str | None = Field(default=None, alias="suggestedSummary")

    @model_validator(mode="after")
    def _check_action_fields(self) -> Self:
        if self.action == RoutingAction.USE_EXISTING:
            if not self.existing_node_id:
                raise ValueError("use_existing requires existingNodeId")
        else:
            if not self.parent_node_id:
                raise ValueError("create_new requires parentNodeId")
            if not self.suggested_title or not self.suggested_title.strip():
                raise ValueError("create_new requires suggestedTitle")
        return self

    def to_decision(self) -> UseExisting | CreateNew:
        """Convert into a caller-facing routing decision."""
        if self.action == RoutingAction.USE_EXISTING:
            return UseExisting(node_id=self.existing_node_id or "", reasoning=self.reasoning)
        return CreateNew(
            parent_id=self.parent_node_id or "",
            suggested_title=(self.suggested_title or "").strip(),
            suggested_summary=(self.suggested_summary or "").strip(),
            reasoning=self.reasoning,
        )
