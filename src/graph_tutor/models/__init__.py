"""Public DTO models for graph_tutor.

This module exports all public data transfer objects.
"""

from graph_tutor.models.interaction import ChatMessage, NodeInteractionDTO
from graph_tutor.models.node import NodeDTO, NodeNoteDTO
from graph_tutor.models.results import DeleteResult, GeneratedNote, RefinementResult
from graph_tutor.models.routing import (
    CreateNew,
    MatchType,
    NodeCandidate,
    OracleRoutingOutput,
    RoutingAction,
    RoutingDecision,
    UseExisting,
)
from graph_tutor.models.topic import RootTopicDTO

__all__ = [
    "ChatMessage",
    "CreateNew",
    "DeleteResult",
    "GeneratedNote",
    "MatchType",
    "NodeCandidate",
    "NodeDTO",
    "NodeInteractionDTO",
    "NodeNoteDTO",
    "OracleRoutingOutput",
    "RefinementResult",
    "RootTopicDTO",
    "RoutingAction",
    "RoutingDecision",
    "UseExisting",
]
