"""Operation result models for graph_tutor."""

from pydantic import BaseModel, Field

__all__ = [
    "DeleteResult",
    "GeneratedNote",
    "RefinementResult",
]


class DeleteResult(BaseModel, frozen=True):
    """IDs removed by a cascading node delete (the node itself first)."""

    deleted_ids: list[str] = Field(default_factory=list)


class RefinementResult(BaseModel, frozen=True):
    """Outcome of a refine_if_due call."""

    refined: bool = False
    summary: str | None = Field(default=None, description="New summary when refined")


class GeneratedNote(BaseModel, frozen=True):
    """Note drafted by the language model before it is attached to a node."""

    title: str = Field(min_length=1, description="3-6 word heading")
    content: str = Field(min_length=1, description="2-4 sentence note body")
