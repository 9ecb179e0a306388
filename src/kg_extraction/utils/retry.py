"""Retry policy for OpenAI API calls.

Transient API failures (rate limits, timeouts, dropped connections) are
retried here, below the pipeline. The pipeline itself never retries a
failed generation call; once this policy gives up the run fails.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import openai
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from kg_extraction.config import DEFAULT_GENERATION_ATTEMPTS

if TYPE_CHECKING:
    from collections.abc import Callable

    from tenacity import RetryCallState

logger = structlog.get_logger(__name__)

RETRYABLE_OPENAI_ERRORS = (
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.APIConnectionError,
)

# Backoff bounds, in seconds
BACKOFF_MIN_SECONDS = 2
BACKOFF_MAX_SECONDS = 30


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    sleep = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        "Retrying OpenAI call",
        attempt=retry_state.attempt_number,
        wait_seconds=round(sleep, 1),
        error=f"{type(error).__name__}: {error}" if error else None,
    )


def openai_retry_policy(
    max_attempts: int = DEFAULT_GENERATION_ATTEMPTS,
) -> Callable[[Callable[..., Any]], Any]:
    """Build a retry decorator for direct ``AsyncOpenAI`` calls.

    Args:
        max_attempts: Total attempts, including the first call.

    Returns:
        A tenacity decorator. Decorated callables raise
        ``tenacity.RetryError`` once attempts are exhausted.
    """
    return retry(
        retry=retry_if_exception_type(RETRYABLE_OPENAI_ERRORS),
        stop=stop_after_attempt(max_attempts),
        wait=wait_random_exponential(min=BACKOFF_MIN_SECONDS, max=BACKOFF_MAX_SECONDS),
        before_sleep=_log_retry,
    )
