"""Root topic models for graph_tutor."""

from pydantic import BaseModel, Field

__all__ = [
    "RootTopicDTO",
]


class RootTopicDTO(BaseModel, frozen=True):
    """Aggregate record paired 1:1 with a tree's root node.

    Attributes:
        id: Same ID as the root node
        title: Topic title, unique case-insensitively across root topics
        description: Topic description (the root node's summary)
        node_count: Live nodes in the tree, root included
        created_at: Creation time in epoch seconds
        schema_version: Schema version for forward compatibility
    """

    id: str = Field(description="Root topic ID (== root node ID)")
    title: str = Field(description="Topic title")
    description: str = Field(default="", description="Topic description")
    node_count: int = Field(default=1, ge=0, description="Live nodes in the tree")
    created_at: int = Field(description="Epoch seconds")
    schema_version: int = Field(default=1)
