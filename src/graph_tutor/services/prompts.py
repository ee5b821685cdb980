"""Prompt templates for graph_tutor language model calls."""

from collections.abc import Sequence

from graph_tutor.models.interaction import ChatMessage, NodeInteractionDTO
from graph_tutor.models.node import NodeDTO
from graph_tutor.models.routing import NodeCandidate

__all__ = [
    "ROUTING_SYSTEM_PROMPT",
    "REFINEMENT_SYSTEM_PROMPT",
    "INITIAL_SUMMARY_SYSTEM_PROMPT",
    "TUTOR_SYSTEM_PROMPT",
    "NOTE_SYSTEM_PROMPT",
    "TITLE_SYSTEM_PROMPT",
    "build_routing_prompt",
    "build_refinement_prompt",
    "build_initial_summary_prompt",
    "build_tutor_prompt",
    "build_note_prompt",
    "build_title_prompt",
]

MESSAGE_MAX_CHARS = 500
REFINEMENT_MAX_EXCHANGES = 5

ROUTING_SYSTEM_PROMPT = """You are a routing system for a knowledge graph tutor.
Route each user question to the right place in a tree of topic nodes.

## Decision Logic

USE EXISTING NODE (action "use_existing") when:
- A node already covers the question's subject (same concept, person or entity)
- The question asks for more information about something already covered by a node
- The question is "<entity> <attribute>" (e.g. "LeBron James age") and a node titled
  that entity exists: route to that entity's own node, never to a broader ancestor

CREATE NEW NODE (action "create_new") when:
- The question is about a new topic, person or concept not covered yet
- Choose the most specific related node as parent, not just the root
- Use the root as parent only when nothing in the tree is related

## Similarity guidance
- Score >= {exact:.2f}: same topic, prefer use_existing on that node
- Score >= {related:.2f}: related topic, create the new node under it
- Otherwise: create the new node under the root

## Examples
- "Who is LeBron James?" + node "LA Lakers" exists -> create "LeBron James" under "LA Lakers"
- "What is the chain rule?" + nodes "Calculus", "Derivatives" -> create "Chain Rule" under "Derivatives"
- "Tell me more about derivatives" + node "Derivatives" exists -> use_existing "Derivatives"

## Rules
- Only use node IDs listed in the request. Never invent IDs.
- suggestedTitle: at most 3-4 words (the person's name or concept name)
- suggestedSummary: 1-2 student-friendly sentences, at most 200 characters
- reasoning: one short sentence

Respond with a JSON object:
{{"action": "use_existing" | "create_new",
  "reasoning": "...",
  "existingNodeId": "<id, use_existing only>",
  "parentNodeId": "<id, create_new only>",
  "suggestedTitle": "<create_new only>",
  "suggestedSummary": "<create_new only>"}}"""

REFINEMENT_SYSTEM_PROMPT = """You are refining a knowledge graph node summary based on real student interactions.

Write an improved 1-2 sentence summary (max 200 characters) that:
1. Captures what students actually ask about most
2. Addresses common confusion points shown in the questions
3. Maintains technical accuracy
4. Uses student-friendly language
5. Connects to the parent topic context if relevant

Return ONLY the refined summary text. No explanations, no formatting, no quotes."""

INITIAL_SUMMARY_SYSTEM_PROMPT = """You write summaries for topic nodes of a learning graph.
Format: a clear, student-friendly definition in 1-2 sentences, max 200 characters.
Return ONLY the summary text."""

TUTOR_SYSTEM_PROMPT = """You are NeuraLearn, a knowledge graph tutor that organizes learning into connected topic nodes.

The student is currently inside one topic node. Stay scoped to that node's topic
and use its ancestors as context for what the student has already learned.

## Teaching style
- Be concise but thorough
- Use analogies and examples
- Connect new concepts to what the student already learned (ancestor nodes)
- Suggest related subtopics when appropriate
- Encourage exploration of the graph"""

NOTE_SYSTEM_PROMPT = """You are a helpful research assistant writing study notes.

Create a concise but informative note (2-4 sentences, max 150 words) and a short,
descriptive title for it (3-6 words). The note must be factual, relevant to the
parent topic and written in clear, easy-to-understand language.

Respond with ONLY valid JSON:
{"title": "Short Note Title", "content": "The note content."}"""

TITLE_SYSTEM_PROMPT = """You are a mind mapping assistant. Given a selected portion of a longer
response, generate a concise title for a new node in the learning graph.

- Use 2-6 words that capture the key concept of the selection
- Do not write a full sentence, do not use quotes

Examples:
- "pH measures the acidity of a solution on a scale from 0 to 14" -> pH Scale
- "derivatives measure the rate of change" -> Rate of Change
- "the chain rule is used for composite functions" -> Chain Rule

Respond with ONLY the title text, nothing else."""


def _clip(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def _format_messages(messages: Sequence[ChatMessage]) -> str:
    return "\n".join(
        f"{m.role.upper()}: {_clip(m.content, MESSAGE_MAX_CHARS)}" for m in messages
    )


def build_routing_prompt(
    question: str,
    root: NodeDTO,
    candidates: Sequence[NodeCandidate],
    outline: Sequence[NodeDTO],
    current_node: NodeDTO | None = None,
    recent_messages: Sequence[ChatMessage] = (),
    enrichment: str | None = None,
) -> str:
    """Build the user prompt for a routing decision.

    Args:
        question: The user's question
        root: Root node of the tree
        candidates: Vector-search candidates with similarity scores
        outline: Every node of the tree (id/title/parent)
        current_node: Node the user is viewing, if any
        recent_messages: Short conversation window
        enrichment: Web search context, if any

    Returns:
        Prompt text
    """
    sections: list[str] = []

    candidate_lines = [
        f'- Node ID: {c.node_id} | Title: "{c.title}" | Score: {c.score:.2f} | Depth: {c.depth}'
        for c in candidates
    ]
    sections.append("## Candidate Nodes (by similarity)\n" + "\n".join(candidate_lines))

    outline_lines = []
    for node in outline:
        kind = "ROOT NODE" if node.is_root else f"child of {node.parent_id}"
        outline_lines.append(f'- Node ID: {node.id} | Title: "{node.title}" | {kind}')
    sections.append(f'## All Nodes in "{root.title}"\n' + "\n".join(outline_lines))

    if current_node is not None and not current_node.is_root:
        sections.append(
            f'## Current Location\nThe user is viewing "{current_node.title}" '
            f"(Node ID: {current_node.id}). Pronouns like \"he\", \"its\" or \"this\" "
            "most likely refer to this node unless the question names something else."
        )

    if recent_messages:
        sections.append("## Recent Conversation\n" + _format_messages(recent_messages))

    if enrichment:
        sections.append("## Web Context\n" + enrichment)

    sections.append(f'## User\'s Question\n"{question}"')
    return "\n\n".join(sections)


def build_refinement_prompt(
    node: NodeDTO,
    interactions: Sequence[NodeInteractionDTO],
    parent_summary: str | None = None,
) -> str:
    """Build the user prompt for summary refinement.

    Only the latest few exchanges are included, each condensed.
    """
    exchanges = "\n\n".join(i.condensed for i in interactions[:REFINEMENT_MAX_EXCHANGES])
    lines = [
        "## Node Information",
        f'Title: "{node.title}"',
        f'Current Summary: "{node.summary}"',
    ]
    if parent_summary:
        lines.append(f'Parent Topic Summary: "{parent_summary}"')
    lines.extend(["", "## Recent Student Interactions", exchanges])
    return "\n".join(lines)


def build_initial_summary_prompt(
    title: str,
    question: str,
    parent: NodeDTO | None = None,
) -> str:
    """Build the user prompt for a new node's first summary."""
    if parent is not None:
        return (
            f'Given the parent topic "{parent.title}" ({parent.summary}), write a summary '
            f'for the subtopic "{title}" based on this user question: "{question}".'
        )
    return f'Write a summary for the topic "{title}" based on this context: "{question}".'


def build_tutor_prompt(
    question: str,
    node: NodeDTO,
    ancestors: Sequence[NodeDTO],
    children: Sequence[NodeDTO] = (),
    recent_messages: Sequence[ChatMessage] = (),
) -> str:
    """Build the user prompt for a tutoring answer scoped to node."""
    sections = [f'## Current Node\n"{node.title}": {node.summary}']

    if ancestors:
        sections.append(
            "## Ancestor Path\n"
            + "\n".join(f'- "{a.title}": {a.summary}' for a in ancestors)
        )
    if children:
        sections.append(
            "## Subtopics of This Node\n"
            + "\n".join(f'- "{c.title}": {c.summary}' for c in children)
        )
    if recent_messages:
        sections.append("## Recent Conversation\n" + _format_messages(recent_messages))

    sections.append(f"## User Message\n{question}")
    return "\n\n".join(sections)


def build_note_prompt(node: NodeDTO, query: str) -> str:
    """Build the user prompt for a generated note on node."""
    return (
        f'The user is studying "{node.title}" ({node.summary}) '
        f'and wants a note about: "{query}"'
    )


def build_title_prompt(selected_text: str, full_response: str = "") -> str:
    sections = []
    if full_response:
        sections.append(f"## Full Response Context\n{_clip(full_response, 2000)}")
    sections.append(f'## Selected Text\n"{selected_text}"')
    return "\n\n".join(sections)
