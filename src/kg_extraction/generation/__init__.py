"""Structured generation clients.

This package provides:
- The StructuredGenerationClient protocol consumed by the pipeline
- An OpenAI-backed implementation
"""

from kg_extraction.generation.client import StructuredGenerationClient
from kg_extraction.generation.openai_client import OpenAIStructuredGenerationClient

__all__ = [
    "StructuredGenerationClient",
    "OpenAIStructuredGenerationClient",
]
