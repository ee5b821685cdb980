"""Node models for graph_tutor.

These models represent topic nodes of a learning tree and the
free-form notes users attach to them.
"""

from typing import Self

from pydantic import BaseModel, Field, model_validator

__all__ = [
    "NodeDTO",
    "NodeNoteDTO",
]


class NodeNoteDTO(BaseModel, frozen=True):
    """User annotation attached to a node.

    Notes are never embedded and never used for routing.
    """

    id: str = Field(description="Note ID")
    content: str = Field(description="Note text")
    title: str | None = Field(default=None, description="Short heading, set on generated notes")
    created_at: int = Field(description="Epoch seconds")


class NodeDTO(BaseModel, frozen=True):
    """Topic node in a knowledge tree.

    Attributes:
        id: Opaque node ID, immutable
        title: Short topic name
        summary: 1-3 sentence description the embedding represents
        parent_id: Parent node ID, None exactly for the tree's root
        root_id: ID of the tree's root node (equals id for the root)
        tags: Advisory keywords, not used for routing
        embedding: Vector of title + summary
        children_ids: Direct children in insertion order
        ancestor_path: Node IDs from root to self inclusive
        interaction_count: Completed chat turns against this node
        notes: User annotations
        created_at: Creation time in epoch seconds
        last_refined_at: Last summary refinement in epoch seconds
        schema_version: Schema version for forward compatibility
    """

    id: str = Field(description="Node ID")
    title: str = Field(description="Short topic name")
    summary: str = Field(default="", description="Semantic content of the node")
    parent_id: str | None = Field(default=None, description="Parent node ID")
    root_id: str = Field(description="Root node ID of the tree")
    tags: list[str] = Field(default_factory=list)
    embedding: list[float] = Field(default_factory=list, description="title + summary vector")
    children_ids: list[str] = Field(default_factory=list)
    ancestor_path: list[str] = Field(description="Root-to-self node IDs")
    interaction_count: int = Field(default=0, ge=0)
    notes: list[NodeNoteDTO] = Field(default_factory=list)
    created_at: int = Field(description="Epoch seconds")
    last_refined_at: int | None = Field(default=None, description="Epoch seconds")
    schema_version: int = Field(default=1)

    @model_validator(mode="after")
    def _check_tree_identity(self) -> Self:
        path = self.ancestor_path
        if not path or path[0] != self.root_id or path[-1] != self.id:
            raise ValueError("ancestor_path must run from root_id to the node itself")
        if self.parent_id is None:
            if self.id != self.root_id or len(path) != 1:
                raise ValueError("a node without parent must be its tree's root")
        elif len(path) < 2 or path[-2] != self.parent_id:
            raise ValueError("parent_id must precede the node in ancestor_path")
        return self

    @property
    def is_root(self) -> bool:
        """Check if this node is the root of its tree."""
        return self.parent_id is None

    @property
    def depth(self) -> int:
        """Distance from the root (the root has depth 0)."""
        return len(self.ancestor_path) - 1
