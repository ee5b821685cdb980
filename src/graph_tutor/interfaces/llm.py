"""LLM interface for graph_tutor.

This module defines the Protocol for the language model oracle used
for routing decisions, summary refinement and tutoring answers.
"""

from typing import Any, Protocol, runtime_checkable

__all__ = [
    "LLMInterface",
]


@runtime_checkable
class LLMInterface(Protocol):
    """Contract for language model completions.

    The oracle is untrusted: callers validate structured output
    before using it. Implementations bound every call with a
    timeout and raise OracleError on failure.
    """

    async def complete_json(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        """Request a JSON object completion.

        Args:
            system_prompt: Instructions including the expected JSON shape
            user_prompt: Request payload

        Returns:
            Parsed JSON object (not yet schema-validated)

        Raises:
            OracleError: If the call fails, times out or returns no JSON object
        """
        ...

    async def complete_text(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 1024,
    ) -> str:
        """Request a free-text completion.

        Args:
            system_prompt: Instructions for the model
            user_prompt: Request payload
            max_tokens: Completion length cap

        Returns:
            Completion text

        Raises:
            OracleError: If the call fails or times out
        """
        ...
