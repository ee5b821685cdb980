"""Note and title generation for graph_tutor.

Drafts study notes for a node and short node titles from a selected
excerpt of a tutoring answer. Unlike summary refinement these are
user-triggered, so oracle failures are raised rather than swallowed.
"""

import asyncio

from pydantic import ValidationError

from graph_tutor.config import GraphTutorConfig
from graph_tutor.errors import InvalidInputError, OracleError
from graph_tutor.interfaces.llm import LLMInterface
from graph_tutor.logging import get_logger
from graph_tutor.models.node import NodeNoteDTO
from graph_tutor.models.results import GeneratedNote
from graph_tutor.services.graph_store import GraphStore
from graph_tutor.services.prompts import (
    NOTE_SYSTEM_PROMPT,
    TITLE_SYSTEM_PROMPT,
    build_note_prompt,
    build_title_prompt,
)

__all__ = [
    "NoteGenerator",
]

logger = get_logger(__name__)

TITLE_MAX_TOKENS = 30
_QUOTES = "\"'"


class NoteGenerator:
    """Language-model drafted notes and node titles.

    Example:
        generator = NoteGenerator(graph_store, llm, config)
        note = await generator.generate_note(node_id, "epsilon-delta definition")
        title = await generator.suggest_title("the chain rule is used for composite functions")
    """

    def __init__(
        self,
        graph_store: GraphStore,
        llm: LLMInterface,
        config: GraphTutorConfig | None = None,
    ) -> None:
        self._graph_store = graph_store
        self._llm = llm
        self._config = config or GraphTutorConfig()

    async def generate_note(self, node_id: str, query: str) -> NodeNoteDTO:
        """Draft a note about query in the context of a node and attach it.

        Args:
            node_id: Node the note belongs to
            query: What the user wants the note to cover

        Returns:
            The stored NodeNoteDTO, titled

        Raises:
            InvalidInputError: If query is empty
            NotFoundError: If the node does not exist
            OracleError: If the model fails or returns no usable note
        """
        query = query.strip()
        if not query:
            raise InvalidInputError("Note query is required")
        node = await self._graph_store.get_node(node_id)

        try:
            raw = await asyncio.wait_for(
                self._llm.complete_json(NOTE_SYSTEM_PROMPT, build_note_prompt(node, query)),
                timeout=self._config.llm.timeout_seconds,
            )
            draft = GeneratedNote.model_validate(raw)
        except ValidationError as e:
            raise OracleError(
                "Generated note failed validation",
                details={"errors": e.errors(include_url=False)},
            ) from e
        except OracleError:
            raise
        except Exception as e:
            raise OracleError("Note generation failed", details={"error": str(e)}) from e

        note = await self._graph_store.add_note(node_id, draft.content, title=draft.title)
        logger.info("note_generated", node_id=node_id, note_id=note.id)
        return note

    async def suggest_title(self, selected_text: str, full_response: str = "") -> str:
        """Suggest a 2-6 word node title for a selected answer excerpt.

        Raises:
            InvalidInputError: If selected_text is empty
            OracleError: If the model fails or returns an empty title
        """
        selected_text = selected_text.strip()
        if not selected_text:
            raise InvalidInputError("Selected text is required")

        try:
            raw = await asyncio.wait_for(
                self._llm.complete_text(
                    TITLE_SYSTEM_PROMPT,
                    build_title_prompt(selected_text, full_response.strip()),
                    max_tokens=TITLE_MAX_TOKENS,
                ),
                timeout=self._config.llm.timeout_seconds,
            )
        except OracleError:
            raise
        except Exception as e:
            raise OracleError("Title suggestion failed", details={"error": str(e)}) from e

        title = raw.strip().strip(_QUOTES).strip().removesuffix(".").strip()
        if not title:
            raise OracleError("Title suggestion was empty")
        limit = self._config.title_max_chars
        if len(title) > limit:
            title = title[: limit - 3].rstrip() + "..."
        return title
