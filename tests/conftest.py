"""Pytest configuration and shared test fixtures.

This module provides fixtures for testing the extraction pipeline,
including a sample type catalog, canned generation responses, and a
scripted generation client.
"""

from __future__ import annotations

import json
from typing import Any

import pytest

from kg_extraction.models import (
    ExistingEntityRef,
    ObjectTypeSchema,
    PropertyDefinition,
    RelationshipTypeSchema,
)

# =============================================================================
# GENERATION CLIENT FIXTURES
# =============================================================================


class ScriptedGenerationClient:
    """Generation client that replays scripted responses in order.

    Each scripted item is either response text or an exception to raise.
    Every call is recorded as a ``(prompt, output_schema)`` tuple.
    """

    def __init__(self, responses: list[str | BaseException] | None = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def generate(self, prompt: str, output_schema: dict[str, Any]) -> str:
        self.calls.append((prompt, output_schema))
        if not self.responses:
            msg = "no scripted response left"
            raise AssertionError(msg)
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    @property
    def prompts(self) -> list[str]:
        return [prompt for prompt, _ in self.calls]


@pytest.fixture
def scripted_client() -> type[ScriptedGenerationClient]:
    """Provide the scripted client class for building per-test clients."""
    return ScriptedGenerationClient


# =============================================================================
# TYPE CATALOG FIXTURES
# =============================================================================


@pytest.fixture
def object_schemas() -> dict[str, ObjectTypeSchema]:
    """Provide a Person/Organization entity type catalog.

    Returns:
        Entity type schemas keyed by type name.
    """
    return {
        "Person": ObjectTypeSchema(
            name="Person",
            description="A human being",
            properties={
                "role": PropertyDefinition(type="string", description="Job role"),
                "age": PropertyDefinition(type="number", description="Age in years"),
                "_internal": PropertyDefinition(type="string", description="Hidden"),
                "name": PropertyDefinition(type="string", description="Top-level field"),
            },
            required=["role"],
            extraction_guidelines="Use full names.",
        ),
        "Organization": ObjectTypeSchema(
            name="Organization",
            description="A company or institution",
        ),
    }


@pytest.fixture
def relationship_schemas() -> dict[str, RelationshipTypeSchema]:
    """Provide a single WORKS_AT relationship type.

    Returns:
        Relationship type schemas keyed by type name.
    """
    return {
        "WORKS_AT": RelationshipTypeSchema(
            name="WORKS_AT",
            description="Employment",
            source_types=["Person"],
            target_types=["Organization"],
            extraction_guidelines="Only current employment.",
        ),
    }


@pytest.fixture
def existing_entities() -> list[ExistingEntityRef]:
    """Provide existing entities across two types."""
    return [
        ExistingEntityRef(
            id="p-1",
            name="Alice Jones",
            type_name="Person",
            description="Engineer",
            similarity=0.92,
        ),
        ExistingEntityRef(id="o-1", name="Acme Corp", type_name="Organization"),
    ]


# =============================================================================
# GENERATION RESPONSE FIXTURES
# =============================================================================


@pytest.fixture
def alice_entities_json() -> str:
    """Entity output for "Alice works at Acme."."""
    return json.dumps(
        {
            "entities": [
                {"name": "Alice", "type": "Person", "description": "An employee"},
                {"name": "Acme", "type": "Organization", "description": "A company"},
            ]
        }
    )


@pytest.fixture
def alice_relationships_json() -> str:
    """Relationship output linking Alice to Acme."""
    return json.dumps(
        {
            "relationships": [
                {
                    "source_ref": "person_alice",
                    "target_ref": "organization_acme",
                    "type": "WORKS_AT",
                    "description": "Alice works at Acme",
                }
            ]
        }
    )


# =============================================================================
# ENVIRONMENT FIXTURES
# =============================================================================


@pytest.fixture
def mock_env_vars(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Provide mock environment variables for testing.

    Returns:
        Dictionary of environment variables that were set.
    """
    env_vars = {
        "OPENAI_API_KEY": "sk-test-key-123",
        "LLM_MODEL": "gpt-4o",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    # Set optional keys to empty so load_dotenv() won't refill from .env
    for key in (
        "EXTRACTION_ORPHAN_THRESHOLD",
        "EXTRACTION_MAX_RETRIES",
        "EXTRACTION_MAX_EXISTING_PER_TYPE",
        "EXTRACTION_MAX_EXISTING_TOTAL",
        "EXTRACTION_TRACE_DIR",
        "EXTRACTION_GENERATION_ATTEMPTS",
    ):
        monkeypatch.setenv(key, "")
    return env_vars
