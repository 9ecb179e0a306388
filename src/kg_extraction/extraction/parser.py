"""Normalization of structured generation output.

The generation service may hand back its result in three shapes, and all
of them normalize to the same typed output:
1. The target pydantic model itself (returned as-is)
2. A JSON string, optionally wrapped in Markdown code fences
3. Any other structure (e.g. a decoded JSON dict), re-serialized and parsed

The same tolerance is offered for reading entity and relationship
collections back out of pipeline state.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from kg_extraction.exceptions import ParseError
from kg_extraction.models import (
    Entity,
    EntityExtractionOutput,
    ExtractedRelationship,
    RelationshipExtractionOutput,
)

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_ENTITY_LIST = TypeAdapter(list[Entity])
_RELATIONSHIP_LIST = TypeAdapter(list[ExtractedRelationship])


def strip_code_fences(text: str) -> str:
    """Trim whitespace and an optional Markdown code fence around JSON.

    Handles both ```` ```json ```` and plain ```` ``` ```` fences.

    Args:
        text: Raw text from the generation service.

    Returns:
        The unwrapped text.
    """
    text = text.strip()
    if text.startswith("```json"):
        text = text[len("```json") :]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def _to_json(target: str, raw: Any) -> str:
    """Serialize a generic structure for re-parsing."""
    try:
        return json.dumps(raw, default=_json_default)
    except (TypeError, ValueError) as e:
        raise ParseError(target, f"failed to serialize {type(raw).__name__}", repr(raw)) from e


def _parse(target: str, raw: Any, model: type[ModelT]) -> ModelT:
    if raw is None:
        raise ParseError(target, "output is empty (None)")

    if isinstance(raw, model):
        return raw

    if isinstance(raw, bytes | bytearray):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(target, f"output is not valid UTF-8 ({e.reason})", repr(raw)) from e

    payload = strip_code_fences(raw) if isinstance(raw, str) else _to_json(target, raw)

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ParseError(target, f"invalid JSON ({e.msg} at position {e.pos})", payload) from e

    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ParseError(
            target,
            f"JSON does not match the expected shape ({e.error_count()} errors)",
            payload,
        ) from e


def parse_entity_output(raw: Any) -> EntityExtractionOutput:
    """Normalize entity-extraction output.

    Args:
        raw: An EntityExtractionOutput, a (possibly fenced) JSON string, or a
            generic structure such as a decoded JSON dict.

    Returns:
        The typed output; the same instance when ``raw`` already is one.

    Raises:
        ParseError: If ``raw`` is None, cannot be serialized, is not valid
            JSON, or does not match the entity output shape.
    """
    output = _parse("entities", raw, EntityExtractionOutput)
    logger.debug("Parsed entity output", entity_count=len(output.entities))
    return output


def parse_relationship_output(raw: Any) -> RelationshipExtractionOutput:
    """Normalize relationship-extraction output.

    Args:
        raw: A RelationshipExtractionOutput, a (possibly fenced) JSON string,
            or a generic structure such as a decoded JSON dict.

    Returns:
        The typed output; the same instance when ``raw`` already is one.

    Raises:
        ParseError: If ``raw`` is None, cannot be serialized, is not valid
            JSON, or does not match the relationship output shape.
    """
    output = _parse("relationships", raw, RelationshipExtractionOutput)
    logger.debug("Parsed relationship output", relationship_count=len(output.relationships))
    return output


def _load_list(target: str, raw: Any, adapter: TypeAdapter[Any], item: type[BaseModel]) -> list[Any]:
    if isinstance(raw, list) and all(isinstance(value, item) for value in raw):
        return raw

    payload = strip_code_fences(raw) if isinstance(raw, str) else _to_json(target, raw)
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ParseError(target, f"invalid JSON ({e.msg} at position {e.pos})", payload) from e

    # Accept the wrapped form ({"entities": [...]}) as well as a bare list
    if isinstance(data, dict) and target in data:
        data = data[target]

    try:
        return adapter.validate_python(data)
    except PydanticValidationError as e:
        raise ParseError(
            target,
            f"state does not match the expected shape ({e.error_count()} errors)",
            payload,
        ) from e


def load_entities(raw: Any) -> list[Entity]:
    """Read an entity collection that may be typed, JSON text, or generic data.

    Raises:
        ParseError: If the collection cannot be normalized.
    """
    return _load_list("entities", raw, _ENTITY_LIST, Entity)


def load_relationships(raw: Any) -> list[ExtractedRelationship]:
    """Read a relationship collection that may be typed, JSON text, or generic data.

    Raises:
        ParseError: If the collection cannot be normalized.
    """
    if isinstance(raw, RelationshipExtractionOutput):
        return raw.relationships
    return _load_list("relationships", raw, _RELATIONSHIP_LIST, ExtractedRelationship)
