"""Service layer for graph_tutor.

This module exports the main service entry points.
"""

from graph_tutor.services.graph_store import GraphStore
from graph_tutor.services.interaction_tracker import InteractionTracker
from graph_tutor.services.note_generator import NoteGenerator
from graph_tutor.services.placement import NodePlacementEngine, names_subject, names_title
from graph_tutor.services.summary_refiner import SummaryRefiner

__all__ = [
    "GraphStore",
    "InteractionTracker",
    "NodePlacementEngine",
    "NoteGenerator",
    "SummaryRefiner",
    "names_subject",
    "names_title",
]
