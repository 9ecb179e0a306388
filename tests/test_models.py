"""Tests for the pydantic data models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from kg_extraction.models import (
    Entity,
    EntityAction,
    EntityExtractionOutput,
    ExistingEntityRef,
    ExtractedEntity,
    ExtractionPipelineOutput,
    ObjectTypeSchema,
    RelationshipExtractionOutput,
    RelationshipTypeSchema,
)


class TestTypeCatalogModels:
    """Tests for ObjectTypeSchema and RelationshipTypeSchema."""

    def test_object_schema_tolerates_nulls(self) -> None:
        schema = ObjectTypeSchema.model_validate(
            {
                "name": "Person",
                "description": None,
                "properties": None,
                "required": None,
                "extraction_guidelines": None,
            }
        )
        assert schema.description == ""
        assert schema.properties == {}
        assert schema.required == []
        assert schema.extraction_guidelines == ""

    def test_property_definitions_parsed(self) -> None:
        schema = ObjectTypeSchema.model_validate(
            {"properties": {"role": {"type": "string", "description": "Job role"}}}
        )
        assert schema.properties["role"].type == "string"
        assert schema.properties["role"].description == "Job role"

    def test_relationship_schema_defaults_allow_any_type(self) -> None:
        schema = RelationshipTypeSchema(name="KNOWS", source_types=None, target_types=None)
        assert schema.source_types == []
        assert schema.target_types == []


class TestExistingEntityRef:
    """Tests for ExistingEntityRef."""

    def test_similarity_bounds(self) -> None:
        with pytest.raises(PydanticValidationError):
            ExistingEntityRef(id="x", name="X", type_name="T", similarity=1.5)

    def test_is_frozen(self) -> None:
        ref = ExistingEntityRef(id="x", name="X", type_name="T")
        with pytest.raises(PydanticValidationError):
            ref.name = "Y"


class TestExtractedEntity:
    """Tests for ExtractedEntity normalization."""

    def test_defaults(self) -> None:
        entity = ExtractedEntity(name="Alice", type="Person")
        assert entity.description == ""
        assert entity.properties == {}
        assert entity.action is EntityAction.CREATE
        assert entity.existing_entity_id is None

    def test_properties_drop_top_level_fields(self) -> None:
        entity = ExtractedEntity(
            name="Alice",
            type="Person",
            properties={"name": "Alice", "type": "Person", "description": "x", "role": "CTO"},
        )
        assert entity.properties == {"role": "CTO"}

    def test_null_properties_become_empty(self) -> None:
        entity = ExtractedEntity.model_validate(
            {"name": "Alice", "type": "Person", "properties": None, "description": None}
        )
        assert entity.properties == {}
        assert entity.description == ""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("ENRICH", EntityAction.ENRICH),
            (" Reference ", EntityAction.REFERENCE),
            ("", EntityAction.CREATE),
            (None, EntityAction.CREATE),
        ],
    )
    def test_action_normalized(self, raw: str | None, expected: EntityAction) -> None:
        entity = ExtractedEntity.model_validate(
            {"name": "Alice", "type": "Person", "action": raw, "existing_entity_id": "p-1"}
        )
        assert entity.action is expected

    @pytest.mark.parametrize("raw", ["delete", "merge", 7])
    def test_unknown_action_becomes_create(self, raw: object) -> None:
        entity = ExtractedEntity.model_validate({"name": "Alice", "type": "Person", "action": raw})
        assert entity.action is EntityAction.CREATE

    def test_empty_existing_id_becomes_none(self) -> None:
        entity = ExtractedEntity(name="Alice", type="Person", existing_entity_id="")
        assert entity.existing_entity_id is None

    def test_name_and_type_required(self) -> None:
        with pytest.raises(PydanticValidationError):
            ExtractedEntity.model_validate({"name": "Alice"})


class TestEntity:
    """Tests for Entity."""

    def test_from_extracted_keeps_fields(self) -> None:
        extracted = ExtractedEntity(
            name="Alice",
            type="Person",
            description="Engineer",
            properties={"role": "CTO"},
            action=EntityAction.ENRICH,
            existing_entity_id="p-1",
        )
        entity = Entity.from_extracted(extracted, "person_alice")

        assert entity.temp_id == "person_alice"
        assert entity.name == "Alice"
        assert entity.properties == {"role": "CTO"}
        assert entity.action is EntityAction.ENRICH
        assert entity.existing_entity_id == "p-1"

    def test_is_frozen(self) -> None:
        entity = Entity(name="Alice", type="Person", temp_id="person_alice")
        with pytest.raises(PydanticValidationError):
            entity.temp_id = "other"


class TestOutputs:
    """Tests for the parse targets and pipeline output."""

    def test_missing_lists_are_empty(self) -> None:
        assert EntityExtractionOutput.model_validate({}).entities == []
        assert EntityExtractionOutput.model_validate({"entities": None}).entities == []
        assert RelationshipExtractionOutput.model_validate({}).relationships == []

    def test_pipeline_output_defaults(self) -> None:
        output = ExtractionPipelineOutput()
        assert output.entities == []
        assert output.relationships == []
        assert output.final_orphan_rate == 0.0
        assert output.quality_passed is True
        assert output.iterations == 0
