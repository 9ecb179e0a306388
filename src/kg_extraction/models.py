"""Pydantic models for the extraction pipeline.

This module defines the data exchanged with callers and with the
structured generation service:
- Type catalog entries (entity and relationship type schemas)
- Existing-entity references used for identity resolution
- Extracted entities and relationships (before and after temp-id assignment)
- Pipeline input and output envelopes
"""

from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

logger = structlog.get_logger(__name__)

# Fields that live at the top level of an entity and never inside `properties`
TOP_LEVEL_ENTITY_FIELDS: frozenset[str] = frozenset({"name", "type", "description"})


# =============================================================================
# TYPE CATALOG
# =============================================================================


class PropertyDefinition(BaseModel):
    """A single property declared by an entity type schema."""

    type: str = Field(default="", description="Declared value type (empty means string)")
    description: str = Field(default="", description="What the property captures")

    @field_validator("type", "description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ObjectTypeSchema(BaseModel):
    """Schema for one permitted entity type.

    Attributes:
        name: Type name (e.g. "Person").
        description: What entities of this type represent.
        properties: Property name to definition.
        required: Names of properties that must be extracted.
        extraction_guidelines: Free-text guidance for extraction.
    """

    name: str = Field(default="", description="Entity type name")
    description: str = Field(default="", description="Type description")
    properties: dict[str, PropertyDefinition] = Field(
        default_factory=dict, description="Property name to definition"
    )
    required: list[str] = Field(default_factory=list, description="Required property names")
    extraction_guidelines: str = Field(default="", description="Extraction guidance")

    @field_validator("description", "extraction_guidelines", mode="before")
    @classmethod
    def _none_to_empty_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("properties", "required", mode="before")
    @classmethod
    def _none_to_empty_collection(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return {} if info.field_name == "properties" else []
        return value


class RelationshipTypeSchema(BaseModel):
    """Schema for one permitted relationship type.

    Empty ``source_types`` or ``target_types`` means any entity type is allowed
    on that side.
    """

    name: str = Field(default="", description="Relationship type name")
    description: str = Field(default="", description="Type description")
    source_types: list[str] = Field(default_factory=list, description="Allowed source types")
    target_types: list[str] = Field(default_factory=list, description="Allowed target types")
    extraction_guidelines: str = Field(default="", description="Extraction guidance")

    @field_validator("description", "extraction_guidelines", mode="before")
    @classmethod
    def _none_to_empty_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("source_types", "target_types", mode="before")
    @classmethod
    def _none_to_empty_list(cls, value: Any) -> Any:
        return [] if value is None else value


class ExistingEntityRef(BaseModel):
    """An entity already known from a prior run.

    Supplied by the caller for identity resolution. Read-only input.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Permanent identifier of the existing entity")
    name: str = Field(description="Entity name")
    type_name: str = Field(description="Entity type name")
    description: str = Field(default="", description="Entity description")
    similarity: float = Field(default=0.0, ge=0.0, le=1.0, description="Similarity score")

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


# =============================================================================
# EXTRACTION RESULTS
# =============================================================================


class EntityAction(str, Enum):
    """What to do with an extracted entity relative to the existing graph."""

    CREATE = "create"
    ENRICH = "enrich"
    REFERENCE = "reference"


class ExtractedEntity(BaseModel):
    """An entity as returned by the generation service, before temp-id assignment.

    Attributes:
        name: Human-readable entity name.
        type: Entity type name.
        description: Brief description.
        properties: Type-specific attributes (never name/type/description).
        action: create, enrich or reference.
        existing_entity_id: Identifier of the matched existing entity.
    """

    name: str = Field(description="Entity name")
    type: str = Field(description="Entity type name")
    description: str = Field(default="", description="Brief description")
    properties: dict[str, Any] = Field(default_factory=dict, description="Type-specific attributes")
    action: EntityAction = Field(default=EntityAction.CREATE, description="Identity action")
    existing_entity_id: str | None = Field(
        default=None, description="Existing entity id for enrich/reference"
    )

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("properties", mode="before")
    @classmethod
    def _drop_top_level_fields(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {k: v for k, v in value.items() if k not in TOP_LEVEL_ENTITY_FIELDS}
        return value

    @field_validator("action", mode="before")
    @classmethod
    def _normalize_action(cls, value: Any) -> Any:
        if isinstance(value, EntityAction):
            return value
        if value is None or value == "":
            return EntityAction.CREATE
        normalized = value.strip().lower() if isinstance(value, str) else value
        try:
            return EntityAction(normalized)
        except ValueError:
            logger.warning("Unknown entity action, treating as create", action=value)
            return EntityAction.CREATE

    @field_validator("existing_entity_id", mode="before")
    @classmethod
    def _empty_to_none(cls, value: Any) -> Any:
        return None if value == "" else value


class Entity(ExtractedEntity):
    """An extracted entity with its run-scoped temp-id.

    Immutable once created.
    """

    model_config = ConfigDict(frozen=True)

    temp_id: str = Field(description="Run-scoped identifier")

    @classmethod
    def from_extracted(cls, extracted: ExtractedEntity, temp_id: str) -> "Entity":
        """Attach a temp-id to an extracted entity."""
        return cls(temp_id=temp_id, **extracted.model_dump(exclude={"temp_id"}))


class ExtractedRelationship(BaseModel):
    """A relationship between two entities of the same run, by temp-id."""

    source_ref: str = Field(description="temp_id of the source entity")
    target_ref: str = Field(description="temp_id of the target entity")
    type: str = Field(description="Relationship type name")
    description: str = Field(default="", description="Description of this instance")

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class EntityExtractionOutput(BaseModel):
    """Parse target for entity-extraction output."""

    entities: list[ExtractedEntity] = Field(default_factory=list)

    @field_validator("entities", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class RelationshipExtractionOutput(BaseModel):
    """Parse target for relationship-extraction output."""

    relationships: list[ExtractedRelationship] = Field(default_factory=list)

    @field_validator("relationships", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


# =============================================================================
# PIPELINE ENVELOPES
# =============================================================================


class ExtractionPipelineInput(BaseModel):
    """Input for one extraction run.

    Attributes:
        document_text: Plain text to extract from (required, non-empty).
        object_schemas: Entity type catalog keyed by type name.
        relationship_schemas: Relationship type catalog keyed by type name.
        allowed_types: Entity types to extract (defaults to the whole catalog).
        existing_entities: Known entities for identity resolution.
    """

    document_text: str = Field(default="", description="Document text")
    object_schemas: dict[str, ObjectTypeSchema] = Field(default_factory=dict)
    relationship_schemas: dict[str, RelationshipTypeSchema] = Field(default_factory=dict)
    allowed_types: list[str] = Field(default_factory=list)
    existing_entities: list[ExistingEntityRef] = Field(default_factory=list)


class ExtractionPipelineOutput(BaseModel):
    """Result of one extraction run.

    Attributes:
        entities: Extracted entities with temp-ids.
        relationships: Relationships between those entities.
        final_orphan_rate: Orphan rate of the accepted relationship set.
        quality_passed: Whether the accepted set met the orphan threshold.
        iterations: Relationship extraction attempts made.
    """

    entities: list[Entity] = Field(default_factory=list)
    relationships: list[ExtractedRelationship] = Field(default_factory=list)
    final_orphan_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    quality_passed: bool = True
    iterations: int = 0
