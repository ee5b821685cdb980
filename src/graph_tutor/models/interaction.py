"""Interaction models for graph_tutor."""

from typing import Literal

from pydantic import BaseModel, Field

__all__ = [
    "ChatMessage",
    "NodeInteractionDTO",
]


class NodeInteractionDTO(BaseModel, frozen=True):
    """Append-only record of one completed chat turn against a node.

    Interactions are never updated. They are only removed when
    their node is deleted.

    Attributes:
        node_id: Node the turn was resolved to
        user_message: User's question
        ai_response: Tutor's answer
        timestamp: Turn completion time in epoch seconds
        schema_version: Schema version for forward compatibility
    """

    node_id: str = Field(description="Node ID")
    user_message: str = Field(default="", description="User's message")
    ai_response: str = Field(default="", description="Tutor's response")
    timestamp: int = Field(description="Epoch seconds")
    schema_version: int = Field(default=1)

    @property
    def condensed(self) -> str:
        """Short Q/A rendering used in refinement transcripts."""
        question = _clip(self.user_message, 200)
        answer = _clip(self.ai_response, 300)
        return f"Q: {question}\nA: {answer}"


def _clip(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


class ChatMessage(BaseModel, frozen=True):
    """One message of the conversation window passed with a question."""

    role: Literal["user", "assistant"]
    content: str
