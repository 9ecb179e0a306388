"""Extraction prompts for entity and relationship extraction.

This module renders the two prompts sent to the structured generation
service:
- The entity-extraction prompt, built from the type catalog, the document
  text and (optionally) existing entities for identity resolution
- The relationship prompt, built from the extracted entities and (on retry)
  a priority list of orphan entities that still need connections
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from kg_extraction.config import DEFAULT_MAX_EXISTING_PER_TYPE, DEFAULT_MAX_EXISTING_TOTAL
from kg_extraction.models import TOP_LEVEL_ENTITY_FIELDS

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from kg_extraction.models import (
        Entity,
        ExistingEntityRef,
        ObjectTypeSchema,
        RelationshipTypeSchema,
    )

EXISTING_DESCRIPTION_CHARS = 100
ENTITY_DESCRIPTION_CHARS = 80

# =============================================================================
# SYSTEM INSTRUCTIONS
# =============================================================================

ENTITY_EXTRACTOR_SYSTEM_PROMPT = """You are an expert knowledge graph builder. Extract entities from the document.

For EACH entity, you MUST provide these four fields:
1. name: Clear, descriptive name of the entity (REQUIRED, top-level field)
2. type: Entity type from the allowed list (REQUIRED, top-level field)
3. description: Brief description of what this entity represents (top-level field)
4. properties: An object containing type-specific attributes (CRITICAL - see below)

CRITICAL INSTRUCTIONS FOR PROPERTIES:
- The "properties" field is an object that MUST contain type-specific attributes extracted from the document
- For Person entities: include role, occupation, title, affiliation, age, significance, etc.
- For Location entities: include region, country, location_type, significance, etc.
- For Event entities: include date, location, participants, outcome, etc.
- For Organization entities: include type, purpose, members, location, etc.
- NEVER return an empty properties object {} if there is ANY relevant information in the document
- Extract ALL attributes mentioned or implied in the text for each entity
- The properties object should NOT contain name, type, or description - those are top-level fields

RULES:
- Extract ALL entities that match the allowed types
- Be thorough - don't miss important entities
- Use consistent naming
- Keep descriptions concise but informative
- Only include properties that are explicitly mentioned or clearly implied in the document
- Do NOT guess or fabricate property values"""

RELATIONSHIP_BUILDER_SYSTEM_PROMPT = """You are an expert at finding connections in knowledge graphs. Your job is to identify ALL meaningful relationships between entities.

For EACH relationship you find:
1. Identify the source entity (by temp_id)
2. Identify the target entity (by temp_id)
3. Choose a relationship type from the "Available Relationship Types" section below
4. Provide a description of this specific relationship instance

## CRITICAL RULES

### Completeness is Key
- EVERY entity should have at least one relationship (no orphans!)
- Use the EXACT temp_ids from the entity list
- Create MULTIPLE relationships for the same entity pair if there are different relationship types

### Group Actions Apply to ALL Members
- When text says "they moved to Berlin" and "they" refers to a team, create a relationship for EACH member
- When a sentence names several people as part of a group, create a membership relationship for EACH of them

### Type Constraints
- Check the source/target type constraints for each relationship type
- If a relationship type says "Person → Organization", the source must be a Person and the target an Organization

## RELATIONSHIP DISCOVERY
1. **Family**: "her two sons were X and Y" → parent-child relationships for each child
2. **Employment**: "works at", "joined", "was hired by" → employment relationships
3. **Travel**: "went to X" → journey/travel relationships
4. **Residence**: "from Boston", "lived there" → residence relationships
5. **Membership**: "they were founding members" → group membership for each person
6. **Geography**: "Cambridge in Massachusetts" → geographic containment (Place in Place)"""

CONTEXT_AWARE_EXTRACTION_RULES = """
CONTEXT-AWARE EXTRACTION RULES:
- Below is a list of existing entities already in the knowledge graph
- When you find an entity that MATCHES an existing one, use the SAME NAME and set action="enrich"
- When you find NEW information about an existing entity, include it in the description
- Only extract entities that are mentioned or referenced in THIS document
- Do NOT simply copy existing entities - only include them if the document mentions them
- For each entity, specify an "action":
  - "create" (default): This is a completely NEW entity not in the existing list
  - "enrich": This entity MATCHES an existing entity - new info should be merged
  - "reference": This entity is just a reference to an existing entity (for relationships only, no new info)
- When action is "enrich" or "reference", also provide "existing_entity_id" with the ID of the existing entity"""

# =============================================================================
# OUTPUT FORMAT INSTRUCTIONS
# =============================================================================

OUTPUT_FORMAT_BASIC = """## Output Format

Return a JSON object with an "entities" key containing an array of entities.

Each entity must have:
- name (string): Entity name
- type (string): One of the allowed types above
- description (string, optional): Brief description
- properties (object, optional): Type-specific attributes found in the document

Example:
{
  "entities": [
    {
      "name": "Ada Lovelace",
      "type": "Person",
      "description": "Mathematician who wrote the first published algorithm",
      "properties": {
        "occupation": "mathematician",
        "nationality": "British"
      }
    }
  ]
}

Extract all entities now."""

OUTPUT_FORMAT_WITH_CONTEXT = """## Output Format

Return a JSON object with an "entities" key containing an array of entities.

Each entity must have:
- name (string): Entity name (use exact names from existing entities when matching)
- type (string): One of the allowed types above
- description (string, optional): Brief description
- properties (object, optional): Type-specific attributes found in the document
- action (string, optional): "create" (new entity), "enrich" (update existing), or "reference" (just a reference)
- existing_entity_id (string, optional): ID of the existing entity when action is "enrich" or "reference"

Example:
{
  "entities": [
    {
      "name": "London",
      "type": "Place",
      "description": "Capital city of the United Kingdom",
      "properties": {"country": "United Kingdom"},
      "action": "enrich",
      "existing_entity_id": "abc-123-uuid"
    }
  ]
}

Extract all entities now."""

RELATIONSHIP_OUTPUT_FORMAT = """## Output Format

Return a JSON object with a "relationships" key containing an array of relationships.

Each relationship must have:
- source_ref (string): temp_id of the source entity
- target_ref (string): temp_id of the target entity
- type (string): Relationship type from the allowed list above
- description (string, optional): Description of this relationship instance

Example:
{
  "relationships": [
    {
      "source_ref": "person_ada_lovelace",
      "target_ref": "organization_analytical_society",
      "type": "MEMBER_OF",
      "description": "Ada Lovelace corresponded with members of the society"
    }
  ]
}

Find ALL relationships between the entities now. Ensure no entity is left without at least one connection."""


# =============================================================================
# PROMPT BUILDERS
# =============================================================================


def _additional_properties(schema: ObjectTypeSchema) -> list[str]:
    """Render the properties a type stores in its ``properties`` object."""
    lines = []
    required = set(schema.required)
    for prop_name, prop_def in schema.properties.items():
        if prop_name in TOP_LEVEL_ENTITY_FIELDS or prop_name.startswith("_"):
            continue
        prop_type = prop_def.type or "string"
        marker = " (required)" if prop_name in required else ""
        lines.append(f"- `{prop_name}` ({prop_type}){marker}: {prop_def.description}\n")
    return lines


def _existing_entity_groups(
    existing_entities: Sequence[ExistingEntityRef],
    types_to_extract: Sequence[str],
) -> list[tuple[str, list[ExistingEntityRef]]]:
    """Group existing entities by type, in the order types are listed.

    When no types are listed (open-world extraction) every type present in
    the existing entities is shown, in order of first appearance.
    """
    by_type: dict[str, list[ExistingEntityRef]] = {}
    for entity in existing_entities:
        by_type.setdefault(entity.type_name, []).append(entity)

    order = types_to_extract or list(by_type)
    return [(type_name, by_type[type_name]) for type_name in order if type_name in by_type]


def _render_existing_entities(
    existing_entities: Sequence[ExistingEntityRef],
    types_to_extract: Sequence[str],
    max_per_type: int,
    max_total: int,
) -> list[str]:
    parts = [
        CONTEXT_AWARE_EXTRACTION_RULES,
        "\n\n## Existing Entities in Knowledge Graph\n\n",
        "These entities already exist. "
        "Use their exact names and IDs if the document references them:\n\n",
    ]

    total_shown = 0
    for type_name, entities in _existing_entity_groups(existing_entities, types_to_extract):
        if total_shown >= max_total:
            break

        parts.append(f"### {type_name}\n")
        for entity in entities[:max_per_type]:
            if total_shown >= max_total:
                break
            similarity = ""
            if entity.similarity > 0:
                similarity = f" (similarity: {entity.similarity * 100:.0f}%)"
            description = ""
            if entity.description:
                description = " - " + entity.description[:EXISTING_DESCRIPTION_CHARS]
            parts.append(f"- **{entity.name}** [id: {entity.id}]{similarity}{description}\n")
            total_shown += 1

        if len(entities) > max_per_type:
            parts.append(f"  _(and {len(entities) - max_per_type} more)_\n")

    parts.append("\n")
    return parts


def build_entity_extraction_prompt(
    document_text: str,
    object_schemas: Mapping[str, ObjectTypeSchema] | None = None,
    allowed_types: Sequence[str] | None = None,
    existing_entities: Sequence[ExistingEntityRef] | None = None,
    *,
    max_existing_per_type: int = DEFAULT_MAX_EXISTING_PER_TYPE,
    max_existing_total: int = DEFAULT_MAX_EXISTING_TOTAL,
) -> str:
    """Build the entity-extraction prompt.

    Args:
        document_text: Document to extract from, included verbatim.
        object_schemas: Entity type catalog keyed by type name.
        allowed_types: Types to extract; defaults to every catalog type.
        existing_entities: Known entities for identity resolution.
        max_existing_per_type: Existing entities listed per type.
        max_existing_total: Existing entities listed across all types.

    Returns:
        The complete prompt text.
    """
    object_schemas = object_schemas or {}
    existing_entities = existing_entities or []
    types_to_extract = list(allowed_types) if allowed_types else list(object_schemas)

    parts = [ENTITY_EXTRACTOR_SYSTEM_PROMPT, "\n\n## Entity Types and Their Properties\n\n"]
    if types_to_extract:
        parts.append(f"Extract ONLY these types: {', '.join(types_to_extract)}\n\n")
    else:
        parts.append(
            "No type catalog is defined. Extract entities of any type that is "
            "meaningful for this document, using concise singular type names.\n\n"
        )

    for type_name in types_to_extract:
        schema = object_schemas.get(type_name)
        if schema is None:
            parts.append(f"### {type_name}\n\n")
            continue

        parts.append(f"### {type_name}\n")
        if schema.description:
            parts.append(f"{schema.description}\n")

        properties = _additional_properties(schema)
        if properties:
            parts.append("**Additional Properties** (stored in `properties` object):\n")
            parts.extend(properties)

        if schema.extraction_guidelines:
            parts.append(f"**Guidelines:**\n{schema.extraction_guidelines}\n")
        parts.append("\n")

    if existing_entities:
        parts.extend(
            _render_existing_entities(
                existing_entities,
                types_to_extract,
                max_existing_per_type,
                max_existing_total,
            )
        )

    parts.append("\n## Document\n\n")
    parts.append(document_text)
    parts.append("\n\n")
    parts.append(OUTPUT_FORMAT_WITH_CONTEXT if existing_entities else OUTPUT_FORMAT_BASIC)

    return "".join(parts)


def build_relationship_prompt(
    entities: Sequence[Entity],
    relationship_schemas: Mapping[str, RelationshipTypeSchema] | None,
    document_text: str,
    existing_entities: Sequence[ExistingEntityRef] | None = None,  # noqa: ARG001 - reserved for future use
    orphan_temp_ids: Sequence[str] | None = None,
) -> str:
    """Build the relationship-extraction prompt.

    Args:
        entities: Entities with temp-ids to connect.
        relationship_schemas: Relationship type catalog keyed by type name.
        document_text: Document the entities came from, included verbatim.
        existing_entities: Known entities (currently not rendered).
        orphan_temp_ids: Entities left unconnected by the previous attempt;
            rendered as a priority section when non-empty.

    Returns:
        The complete prompt text.
    """
    relationship_schemas = relationship_schemas or {}

    parts = [RELATIONSHIP_BUILDER_SYSTEM_PROMPT, "\n\n## Available Relationship Types\n\n"]

    if not relationship_schemas:
        parts.append(
            "No relationship catalog is defined. Use concise UPPER_SNAKE_CASE "
            "relationship types (e.g., WORKS_FOR, LOCATED_IN).\n\n"
        )

    for type_name, schema in relationship_schemas.items():
        parts.append(f"### {type_name}\n")
        if schema.description:
            parts.append(f"{schema.description}\n\n")

        if schema.source_types or schema.target_types:
            source = " or ".join(schema.source_types) or "any"
            target = " or ".join(schema.target_types) or "any"
            parts.append(f"**Valid entity types:** {source} → {target}\n\n")

        if schema.extraction_guidelines:
            parts.append(f"**Guidelines:**\n{schema.extraction_guidelines}\n\n")

    parts.append("\n## Extracted Entities\n\n")
    parts.append("Use these temp_ids when creating relationships:\n\n")
    for entity in entities:
        description = ""
        if entity.description:
            text = entity.description
            if len(text) > ENTITY_DESCRIPTION_CHARS:
                text = text[:ENTITY_DESCRIPTION_CHARS] + "..."
            description = " - " + text
        parts.append(
            f"- **{entity.name}** [temp_id: {entity.temp_id}] ({entity.type}){description}\n"
        )
    parts.append("\n")

    if orphan_temp_ids:
        parts.append("## PRIORITY: Connect These Orphan Entities\n\n")
        parts.append(
            "The following entities have NO relationships yet. "
            "Find connections for exactly these temp_ids first:\n"
        )
        parts.extend(f"- {temp_id}\n" for temp_id in orphan_temp_ids)
        parts.append("\n")

    parts.append("## Document\n\n")
    parts.append(document_text)
    parts.append("\n\n")
    parts.append(RELATIONSHIP_OUTPUT_FORMAT)

    return "".join(parts)
