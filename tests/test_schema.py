"""Tests for the generation output schemas."""

from __future__ import annotations

from kg_extraction.extraction.schema import (
    ENTITY_ACTIONS,
    build_entity_schema,
    build_relationship_schema,
    entity_extraction_schema,
)


def _entity_type_field(schema: dict) -> dict:
    return schema["properties"]["entities"]["items"]["properties"]["type"]


def _relationship_type_field(schema: dict) -> dict:
    return schema["properties"]["relationships"]["items"]["properties"]["type"]


class TestEntitySchema:
    """Tests for build_entity_schema."""

    def test_empty_catalog_is_unconstrained(self) -> None:
        assert "enum" not in _entity_type_field(build_entity_schema({}))
        assert "enum" not in _entity_type_field(build_entity_schema(None))

    def test_catalog_restricts_type(self, object_schemas) -> None:
        type_field = _entity_type_field(build_entity_schema(object_schemas))
        assert type_field["enum"] == ["Person", "Organization"]
        assert type_field["type"] == "string"

    def test_item_shape(self) -> None:
        schema = build_entity_schema(None)
        assert schema["required"] == ["entities"]
        item = schema["properties"]["entities"]["items"]
        assert item["required"] == ["name", "type"]
        assert item["properties"]["action"]["enum"] == ENTITY_ACTIONS

    def test_returns_fresh_copies(self, object_schemas) -> None:
        build_entity_schema(object_schemas)
        assert "enum" not in _entity_type_field(entity_extraction_schema())


class TestRelationshipSchema:
    """Tests for build_relationship_schema."""

    def test_empty_catalog_is_unconstrained(self) -> None:
        assert "enum" not in _relationship_type_field(build_relationship_schema({}))

    def test_catalog_restricts_type(self, relationship_schemas) -> None:
        schema = build_relationship_schema(relationship_schemas)
        assert _relationship_type_field(schema)["enum"] == ["WORKS_AT"]
        assert schema["properties"]["relationships"]["items"]["required"] == [
            "source_ref",
            "target_ref",
            "type",
        ]
