"""OpenAI-backed structured generation client.

Uses chat completions with a ``json_schema`` response format so the model
returns JSON shaped by the output schema. Transient API errors are retried
by a per-client ``openai_retry_policy``; anything else propagates to the
pipeline.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from openai import AsyncOpenAI

from kg_extraction.config import DEFAULT_GENERATION_ATTEMPTS
from kg_extraction.exceptions import GenerationError
from kg_extraction.utils.retry import openai_retry_policy

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from kg_extraction.config import ExtractionPipelineConfig

logger = structlog.get_logger(__name__)


class OpenAIStructuredGenerationClient:
    """Structured generation through the OpenAI chat completions API.

    Attributes:
        model: Model name.
        temperature: Sampling temperature.
        max_tokens: Optional cap on generated tokens.
        max_attempts: Attempts per call on transient API errors.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        temperature: float = 0.0,
        max_tokens: int | None = None,
        max_attempts: int = DEFAULT_GENERATION_ATTEMPTS,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: OpenAI API key.
            model: Model name.
            temperature: Sampling temperature (0 for reproducible extraction).
            max_tokens: Optional cap on generated tokens.
            max_attempts: Attempts per call on rate-limit, timeout and
                connection errors.
            client: Pre-built AsyncOpenAI client (mainly for tests).
        """
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_attempts = max_attempts
        self._client = client or AsyncOpenAI(api_key=api_key)
        self._request: Callable[..., Coroutine[Any, Any, str | None]] = openai_retry_policy(
            max_attempts
        )(self._call_openai)

    @classmethod
    def from_config(cls, config: ExtractionPipelineConfig) -> OpenAIStructuredGenerationClient:
        """Create a client from pipeline configuration."""
        return cls(
            api_key=config.openai_api_key,
            model=config.llm_model,
            temperature=config.temperature,
            max_tokens=config.max_output_tokens,
            max_attempts=config.generation_max_attempts,
        )

    async def generate(self, prompt: str, output_schema: dict[str, Any]) -> str:
        """Generate JSON output for ``prompt`` constrained by ``output_schema``.

        Raises:
            GenerationError: If the model returns no content.
        """
        content = await self._request(prompt, output_schema)
        if not content:
            msg = f"model {self.model} returned an empty response"
            raise GenerationError("generate", msg)
        return content

    async def _call_openai(self, prompt: str, output_schema: dict[str, Any]) -> str | None:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "extraction_output",
                    "schema": output_schema,
                    "strict": False,
                },
            },
        }
        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens

        response = await self._client.chat.completions.create(**kwargs)
        choice = response.choices[0]
        logger.debug(
            "OpenAI completion received",
            model=self.model,
            finish_reason=choice.finish_reason,
            prompt_chars=len(prompt),
        )
        return choice.message.content
