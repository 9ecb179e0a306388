"""Configuration for the extraction pipeline.

Consolidates quality-gate settings, prompt budget caps, generation
service settings, and trace logging options.
"""

import os
from dataclasses import dataclass
from typing import Any

DEFAULT_ORPHAN_THRESHOLD = 0.3
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_EXISTING_PER_TYPE = 10
DEFAULT_MAX_EXISTING_TOTAL = 50
DEFAULT_GENERATION_ATTEMPTS = 3
DEFAULT_TRACE_LOG_DIR = "logs/extractions"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        msg = f"{name} must be a number, got {raw!r}"
        raise ValueError(msg) from None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        msg = f"{name} must be an integer, got {raw!r}"
        raise ValueError(msg) from None


@dataclass
class ExtractionPipelineConfig:
    """Configuration for the extraction pipeline.

    Attributes:
        orphan_threshold: Maximum acceptable orphan rate (0.0-1.0).
        max_retries: Upper bound on relationship extraction attempts.
        max_existing_per_type: Existing entities listed per type in the prompt.
        max_existing_total: Existing entities listed in total in the prompt.
        openai_api_key: OpenAI API key for the generation client.
        llm_model: Model used for structured generation.
        temperature: Sampling temperature for generation calls.
        max_output_tokens: Optional cap on generated tokens.
        generation_max_attempts: Attempts per generation call on transient API errors.
        trace_enabled: Whether to write a per-job trace log.
        trace_log_dir: Directory for trace log files.
    """

    # Quality gate
    orphan_threshold: float = DEFAULT_ORPHAN_THRESHOLD
    max_retries: int = DEFAULT_MAX_RETRIES

    # Prompt budget for existing-entity context
    max_existing_per_type: int = DEFAULT_MAX_EXISTING_PER_TYPE
    max_existing_total: int = DEFAULT_MAX_EXISTING_TOTAL

    # OpenAI configuration
    openai_api_key: str = ""
    llm_model: str = "gpt-4o"
    temperature: float = 0.0
    max_output_tokens: int | None = None
    generation_max_attempts: int = DEFAULT_GENERATION_ATTEMPTS

    # Trace logging
    trace_enabled: bool = False
    trace_log_dir: str = DEFAULT_TRACE_LOG_DIR

    def __post_init__(self) -> None:
        """Validate numeric settings.

        Raises:
            ValueError: If a setting is out of range.
        """
        if not 0.0 <= self.orphan_threshold <= 1.0:
            msg = f"orphan_threshold must be between 0 and 1, got {self.orphan_threshold}"
            raise ValueError(msg)
        if self.max_retries < 1:
            msg = f"max_retries must be at least 1, got {self.max_retries}"
            raise ValueError(msg)
        if self.generation_max_attempts < 1:
            msg = f"generation_max_attempts must be at least 1, got {self.generation_max_attempts}"
            raise ValueError(msg)
        if self.max_existing_per_type < 0 or self.max_existing_total < 0:
            msg = "existing-entity prompt caps must not be negative"
            raise ValueError(msg)

    @classmethod
    def from_env(cls, require_api_key: bool = True) -> "ExtractionPipelineConfig":
        """Create configuration from environment variables.

        Reads (after loading a ``.env`` file, if present):
        - OPENAI_API_KEY (required unless require_api_key is False), LLM_MODEL
        - EXTRACTION_ORPHAN_THRESHOLD, EXTRACTION_MAX_RETRIES
        - EXTRACTION_MAX_EXISTING_PER_TYPE, EXTRACTION_MAX_EXISTING_TOTAL
        - EXTRACTION_GENERATION_ATTEMPTS
        - EXTRACTION_TRACE_DIR (enables tracing when set)

        Args:
            require_api_key: Fail when OPENAI_API_KEY is unset. Commands that
                never call the model pass False.

        Returns:
            Configuration populated from environment.

        Raises:
            ValueError: If required variables are missing or values are invalid.
        """
        from dotenv import load_dotenv

        load_dotenv()

        openai_api_key = os.getenv("OPENAI_API_KEY", "")
        if require_api_key and not openai_api_key:
            msg = "OPENAI_API_KEY environment variable is required"
            raise ValueError(msg)

        trace_dir = os.getenv("EXTRACTION_TRACE_DIR", "")

        return cls(
            orphan_threshold=_env_float("EXTRACTION_ORPHAN_THRESHOLD", DEFAULT_ORPHAN_THRESHOLD),
            max_retries=_env_int("EXTRACTION_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            max_existing_per_type=_env_int(
                "EXTRACTION_MAX_EXISTING_PER_TYPE", DEFAULT_MAX_EXISTING_PER_TYPE
            ),
            max_existing_total=_env_int(
                "EXTRACTION_MAX_EXISTING_TOTAL", DEFAULT_MAX_EXISTING_TOTAL
            ),
            openai_api_key=openai_api_key,
            llm_model=os.getenv("LLM_MODEL", "gpt-4o"),
            generation_max_attempts=_env_int(
                "EXTRACTION_GENERATION_ATTEMPTS", DEFAULT_GENERATION_ATTEMPTS
            ),
            trace_enabled=bool(trace_dir),
            trace_log_dir=trace_dir or DEFAULT_TRACE_LOG_DIR,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (excluding sensitive values).

        Returns:
            Dictionary representation without the API key.
        """
        return {
            "orphan_threshold": self.orphan_threshold,
            "max_retries": self.max_retries,
            "max_existing_per_type": self.max_existing_per_type,
            "max_existing_total": self.max_existing_total,
            "llm_model": self.llm_model,
            "temperature": self.temperature,
            "generation_max_attempts": self.generation_max_attempts,
            "trace_enabled": self.trace_enabled,
            "trace_log_dir": self.trace_log_dir,
        }
