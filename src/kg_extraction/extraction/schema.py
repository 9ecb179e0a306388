"""Output schemas for structured generation calls.

Builds JSON Schema documents that constrain what the generation service
may return for entity and relationship extraction:
- Open schemas, used when no type catalog is supplied
- Catalog schemas, which restrict the ``type`` field to an enum of the
  catalog's type names while keeping the rest of the item shape
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from kg_extraction.models import ObjectTypeSchema, RelationshipTypeSchema

ENTITY_ACTIONS: list[str] = ["create", "enrich", "reference"]

# =============================================================================
# ITEM SHAPES
# =============================================================================

_ENTITY_ITEM: dict[str, Any] = {
    "type": "object",
    "required": ["name", "type"],
    "properties": {
        "name": {
            "type": "string",
            "description": "Human-readable name of the entity",
        },
        "type": {
            "type": "string",
            "description": "Entity type (e.g., 'Person', 'Organization', 'Location')",
        },
        "description": {
            "type": "string",
            "description": "Brief description of the entity",
        },
        "properties": {
            "type": "object",
            "description": (
                "Type-specific attributes extracted from the document "
                "(e.g., role, occupation, location)"
            ),
        },
        "action": {
            "type": "string",
            "description": (
                "Action: 'create' (new entity), 'enrich' (update existing), "
                "'reference' (just a reference)"
            ),
            "enum": ENTITY_ACTIONS,
        },
        "existing_entity_id": {
            "type": "string",
            "description": "ID of the existing entity when action is 'enrich' or 'reference'",
        },
    },
}

_RELATIONSHIP_ITEM: dict[str, Any] = {
    "type": "object",
    "required": ["source_ref", "target_ref", "type"],
    "properties": {
        "source_ref": {
            "type": "string",
            "description": "temp_id of the source entity",
        },
        "target_ref": {
            "type": "string",
            "description": "temp_id of the target entity",
        },
        "type": {
            "type": "string",
            "description": "Relationship type (e.g., 'WORKS_FOR', 'LOCATED_IN', 'PARENT_OF')",
        },
        "description": {
            "type": "string",
            "description": "Optional description of this specific relationship instance",
        },
    },
}


def _wrap(key: str, description: str, item_description: str, item: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "object",
        "description": description,
        "required": [key],
        "properties": {
            key: {
                "type": "array",
                "description": item_description,
                "items": item,
            },
        },
    }


# =============================================================================
# OPEN SCHEMAS
# =============================================================================


def entity_extraction_schema() -> dict[str, Any]:
    """Return the open entity-extraction schema (``type`` unconstrained).

    Returns:
        A fresh JSON Schema dict that callers may mutate.
    """
    return _wrap(
        "entities",
        "Output containing extracted entities from the document",
        "Array of extracted entities",
        copy.deepcopy(_ENTITY_ITEM),
    )


def relationship_extraction_schema() -> dict[str, Any]:
    """Return the open relationship-extraction schema (``type`` unconstrained).

    Returns:
        A fresh JSON Schema dict that callers may mutate.
    """
    return _wrap(
        "relationships",
        "Output containing extracted relationships between entities",
        "Array of extracted relationships",
        copy.deepcopy(_RELATIONSHIP_ITEM),
    )


# =============================================================================
# CATALOG SCHEMAS
# =============================================================================


def build_entity_schema(
    object_schemas: Mapping[str, ObjectTypeSchema] | None,
) -> dict[str, Any]:
    """Build the entity-extraction schema for a type catalog.

    With an empty or missing catalog the open schema is returned. Otherwise
    the item ``type`` field is restricted to exactly the catalog's type names,
    in catalog order.

    Args:
        object_schemas: Entity type catalog keyed by type name.

    Returns:
        JSON Schema dict for the generation call.
    """
    schema = entity_extraction_schema()
    if not object_schemas:
        return schema

    type_field = schema["properties"]["entities"]["items"]["properties"]["type"]
    type_field["description"] = "Entity type from the type catalog"
    type_field["enum"] = list(object_schemas)
    return schema


def build_relationship_schema(
    relationship_schemas: Mapping[str, RelationshipTypeSchema] | None,
) -> dict[str, Any]:
    """Build the relationship-extraction schema for a type catalog.

    Args:
        relationship_schemas: Relationship type catalog keyed by type name.

    Returns:
        JSON Schema dict for the generation call; the open schema when the
        catalog is empty or missing.
    """
    schema = relationship_extraction_schema()
    if not relationship_schemas:
        return schema

    type_field = schema["properties"]["relationships"]["items"]["properties"]["type"]
    type_field["description"] = "Relationship type from the type catalog"
    type_field["enum"] = list(relationship_schemas)
    return schema
