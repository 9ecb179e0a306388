"""Loading type catalogs and existing-entity lists from JSON files.

A type catalog file looks like::

    {
      "object_schemas": {"Person": {"description": "...", "properties": {...}}},
      "relationship_schemas": [{"name": "WORKS_FOR", "source_types": ["Person"]}],
      "allowed_types": ["Person"]
    }

Schemas may be given as a name-to-schema map or as a list of schemas that
carry their own ``name``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from kg_extraction.exceptions import CatalogError
from kg_extraction.models import ExistingEntityRef, ObjectTypeSchema, RelationshipTypeSchema

logger = structlog.get_logger(__name__)

_EXISTING_ENTITY_LIST = TypeAdapter(list[ExistingEntityRef])


def _keyed_by_name(value: Any) -> Any:
    """Normalize a schema map or list into a name-keyed map of raw schemas."""
    if value is None:
        return {}
    if isinstance(value, list):
        keyed: dict[str, Any] = {}
        for item in value:
            if not isinstance(item, dict) or not item.get("name"):
                msg = "schemas given as a list must each be an object with a 'name'"
                raise ValueError(msg)
            keyed[item["name"]] = item
        return keyed
    if isinstance(value, dict):
        keyed = {}
        for name, item in value.items():
            if isinstance(item, dict) and not item.get("name"):
                item = {**item, "name": name}
            keyed[name] = item
        return keyed
    return value


class TypeCatalog(BaseModel):
    """Entity and relationship type definitions for one run.

    Attributes:
        object_schemas: Entity type schemas keyed by type name.
        relationship_schemas: Relationship type schemas keyed by type name.
        allowed_types: Entity types to extract (empty means all catalog types).
    """

    object_schemas: dict[str, ObjectTypeSchema] = Field(default_factory=dict)
    relationship_schemas: dict[str, RelationshipTypeSchema] = Field(default_factory=dict)
    allowed_types: list[str] = Field(default_factory=list)

    @field_validator("object_schemas", "relationship_schemas", mode="before")
    @classmethod
    def _normalize_schemas(cls, value: Any) -> Any:
        return _keyed_by_name(value)

    @field_validator("allowed_types", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


def _read_json(path: str | Path) -> Any:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CatalogError(str(path), f"cannot read file ({e.strerror or e})") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise CatalogError(str(path), f"invalid JSON at line {e.lineno}: {e.msg}") from e


def load_type_catalog(path: str | Path) -> TypeCatalog:
    """Load a type catalog from a JSON file.

    Args:
        path: Catalog file.

    Returns:
        The parsed TypeCatalog.

    Raises:
        CatalogError: If the file is unreadable or not a valid catalog.
    """
    data = _read_json(path)
    if not isinstance(data, dict):
        raise CatalogError(str(path), "catalog must be a JSON object")

    try:
        catalog = TypeCatalog.model_validate(data)
    except PydanticValidationError as e:
        raise CatalogError(str(path), f"invalid catalog ({e.error_count()} errors): {e}") from e

    unknown = [name for name in catalog.allowed_types if name not in catalog.object_schemas]
    if unknown and catalog.object_schemas:
        logger.warning("Allowed types missing from catalog", path=str(path), types=unknown)

    logger.info(
        "Loaded type catalog",
        path=str(path),
        object_types=len(catalog.object_schemas),
        relationship_types=len(catalog.relationship_schemas),
        allowed_types=len(catalog.allowed_types),
    )
    return catalog


def load_existing_entities(path: str | Path) -> list[ExistingEntityRef]:
    """Load existing-entity references from a JSON array file.

    Raises:
        CatalogError: If the file is unreadable or the entries are invalid.
    """
    data = _read_json(path)
    try:
        entities = _EXISTING_ENTITY_LIST.validate_python(data)
    except PydanticValidationError as e:
        raise CatalogError(str(path), f"invalid existing entities ({e.error_count()} errors)") from e

    logger.info("Loaded existing entities", path=str(path), count=len(entities))
    return entities
