"""Error taxonomy for graph_tutor.

Exception hierarchy:
    GraphTutorError (base)
    ├── InvalidInputError
    ├── NotFoundError
    ├── ForbiddenError
    ├── DuplicateTitleError (with existing_id)
    ├── EmbeddingFailedError
    ├── OracleError
    ├── PlacementError
    │   ├── RoutingFailedError
    │   └── InvalidRoutingError
    ├── RefinementFailedError
    └── SearchDegradedError

Write-path errors (InvalidInput, NotFound, Forbidden, DuplicateTitle) and
placement errors are always surfaced to the caller. RefinementFailed and SearchDegraded are
recoverable: they are logged where they occur and never escape a chat turn.
"""

from typing import Any

__all__ = [
    "GraphTutorError",
    "InvalidInputError",
    "NotFoundError",
    "ForbiddenError",
    "DuplicateTitleError",
    "EmbeddingFailedError",
    "OracleError",
    "PlacementError",
    "RoutingFailedError",
    "InvalidRoutingError",
    "RefinementFailedError",
    "SearchDegradedError",
    "PLACEMENT_USER_MESSAGE",
]

PLACEMENT_USER_MESSAGE = (
    "Could not determine where to route this question, "
    "please retry or specify a location."
)


class GraphTutorError(Exception):
    """Base exception for all graph_tutor errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class InvalidInputError(GraphTutorError):
    """A required argument is missing or empty."""


class NotFoundError(GraphTutorError):
    """Referenced node, root topic or parent does not exist."""

    def __init__(self, kind: str, entity_id: str) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} '{entity_id}' not found", details={"id": entity_id})


class ForbiddenError(GraphTutorError):
    """Structurally disallowed operation, e.g. deleting a root via delete_node."""


class DuplicateTitleError(GraphTutorError):
    """A root topic with the same title (case-insensitive) already exists."""

    def __init__(self, title: str, existing_id: str) -> None:
        self.title = title
        self.existing_id = existing_id
        super().__init__(
            f"A topic titled '{title}' already exists",
            details={"existing_id": existing_id},
        )


class EmbeddingFailedError(GraphTutorError):
    """The embedding provider could not produce a vector."""


class OracleError(GraphTutorError):
    """The language model call failed, timed out, or returned nothing usable."""


class PlacementError(GraphTutorError):
    """Base class for failures that abort a placement attempt."""

    @property
    def user_message(self) -> str:
        """Actionable text to show the user instead of a generic failure."""
        return PLACEMENT_USER_MESSAGE


class RoutingFailedError(PlacementError):
    """Oracle failure or unparsable routing output."""


class InvalidRoutingError(PlacementError):
    """The oracle referenced a node that does not exist in the tree."""

    def __init__(self, node_id: str, field: str) -> None:
        self.node_id = node_id
        self.field = field
        super().__init__(
            f"Routing referenced unknown node '{node_id}' in {field}",
            details={"node_id": node_id, "field": field},
        )


class RefinementFailedError(GraphTutorError):
    """Summary refinement could not complete; the previous summary is kept."""


class SearchDegradedError(GraphTutorError):
    """Vector index or web search unavailable; placement continues without it."""
