"""Structured generation client contract.

The pipeline talks to the generative backend only through this protocol:
given a prompt and a JSON Schema for the expected output, return the
complete generated text or raise.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class StructuredGenerationClient(Protocol):
    """Produces schema-conforming text for a prompt, or fails."""

    async def generate(self, prompt: str, output_schema: dict[str, Any]) -> str:
        """Generate output for ``prompt`` constrained by ``output_schema``.

        Args:
            prompt: Complete prompt text.
            output_schema: JSON Schema the output must conform to.

        Returns:
            The generated text (normally a JSON document).
        """
        ...
