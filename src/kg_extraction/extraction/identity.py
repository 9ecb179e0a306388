"""Run-scoped identifiers ("temp-ids") for extracted entities.

A temp-id is a readable slug of the entity type and name, e.g.
``person_john_smith``. Collisions within a run get a numeric suffix
(``person_john_smith_1``, ``person_john_smith_2``, ...).
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog

from kg_extraction.models import Entity, EntityAction

if TYPE_CHECKING:
    from collections.abc import Iterable

    from kg_extraction.models import ExtractedEntity

logger = structlog.get_logger(__name__)

SLUG_MAX_CHARS = 20

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def _slugify(value: str) -> str:
    return _NON_ALNUM.sub("_", value.lower())[:SLUG_MAX_CHARS]


def generate_temp_id(name: str, type_name: str, existing_ids: set[str]) -> str:
    """Generate a temp-id that is not yet in ``existing_ids``.

    Type and name are slugged independently: lowercased, every run of
    non-alphanumeric characters collapsed to one underscore, then cut to
    20 characters each.

    The caller adds the returned id to ``existing_ids``; calls against the
    same set must be sequential.

    Args:
        name: Entity name.
        type_name: Entity type name.
        existing_ids: Ids already assigned in this run.

    Returns:
        A unique temp-id.
    """
    base_id = f"{_slugify(type_name)}_{_slugify(name)}"
    temp_id = base_id
    counter = 1
    while temp_id in existing_ids:
        temp_id = f"{base_id}_{counter}"
        counter += 1
    return temp_id


def _normalize_action(entity: ExtractedEntity) -> ExtractedEntity:
    """Reconcile ``action`` with ``existing_entity_id``."""
    if entity.action is EntityAction.CREATE:
        if entity.existing_entity_id is not None:
            return entity.model_copy(update={"existing_entity_id": None})
        return entity

    if not entity.existing_entity_id:
        logger.warning(
            "Entity has no existing_entity_id, treating as create",
            name=entity.name,
            type=entity.type,
            action=entity.action.value,
        )
        return entity.model_copy(update={"action": EntityAction.CREATE})
    return entity


def assign_temp_ids(entities: Iterable[ExtractedEntity]) -> list[Entity]:
    """Assign temp-ids to extracted entities in extraction order.

    Args:
        entities: Entities as parsed from the generation output.

    Returns:
        Immutable entities with unique temp-ids.
    """
    existing_ids: set[str] = set()
    assigned: list[Entity] = []

    for extracted in entities:
        temp_id = generate_temp_id(extracted.name, extracted.type, existing_ids)
        existing_ids.add(temp_id)
        assigned.append(Entity.from_extracted(_normalize_action(extracted), temp_id))

    return assigned
