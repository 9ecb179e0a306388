"""Quality gate for relationship extraction.

Measures how well a relationship set connects the extracted entities.
An entity that appears as neither source nor target of any relationship
is an orphan; the orphan rate drives the relationship retry loop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from kg_extraction.config import DEFAULT_ORPHAN_THRESHOLD

if TYPE_CHECKING:
    from collections.abc import Sequence

    from kg_extraction.models import Entity, ExtractedRelationship


def _connected_ids(relationships: Sequence[ExtractedRelationship]) -> set[str]:
    connected: set[str] = set()
    for rel in relationships:
        connected.add(rel.source_ref)
        connected.add(rel.target_ref)
    return connected


def get_orphan_temp_ids(
    entities: Sequence[Entity],
    relationships: Sequence[ExtractedRelationship],
) -> list[str]:
    """Return temp-ids of entities not referenced by any relationship, in entity order."""
    connected = _connected_ids(relationships)
    return [entity.temp_id for entity in entities if entity.temp_id not in connected]


def calculate_orphan_rate(
    entities: Sequence[Entity],
    relationships: Sequence[ExtractedRelationship],
) -> float:
    """Fraction of entities not referenced by any relationship.

    Returns:
        Orphan count divided by entity count; 0.0 when there are no entities.
    """
    if not entities:
        return 0.0
    return len(get_orphan_temp_ids(entities, relationships)) / len(entities)


@dataclass(frozen=True)
class QualityReport:
    """Outcome of one quality check.

    Attributes:
        iteration: Relationship extraction attempt this report covers (1-based).
        orphan_rate: Orphan rate of the checked relationship set.
        threshold: Maximum acceptable orphan rate.
        orphan_temp_ids: Unconnected entity temp-ids, in entity order.
        entity_count: Number of entities checked.
        relationship_count: Number of relationships checked.
    """

    iteration: int
    orphan_rate: float
    threshold: float
    orphan_temp_ids: list[str] = field(default_factory=list)
    entity_count: int = 0
    relationship_count: int = 0

    @property
    def passed(self) -> bool:
        """Whether the orphan rate is within the threshold."""
        return self.orphan_rate <= self.threshold


def check_quality(
    entities: Sequence[Entity],
    relationships: Sequence[ExtractedRelationship],
    threshold: float = DEFAULT_ORPHAN_THRESHOLD,
    iteration: int = 1,
) -> QualityReport:
    """Run the quality gate over one relationship set.

    Args:
        entities: Entities of the run.
        relationships: Relationships from the latest attempt.
        threshold: Maximum acceptable orphan rate.
        iteration: Attempt number being checked.

    Returns:
        QualityReport; ``passed`` is True iff orphan_rate <= threshold.
    """
    orphan_ids = get_orphan_temp_ids(entities, relationships)
    orphan_rate = len(orphan_ids) / len(entities) if entities else 0.0
    return QualityReport(
        iteration=iteration,
        orphan_rate=orphan_rate,
        threshold=threshold,
        orphan_temp_ids=orphan_ids,
        entity_count=len(entities),
        relationship_count=len(relationships),
    )
