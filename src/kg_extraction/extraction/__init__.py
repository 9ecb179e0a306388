"""Entity and relationship extraction for the knowledge graph.

This package provides:
- Prompt and output schema builders for both extraction stages
- Tolerant parsing of generation output
- Temp-id assignment and the orphan-rate quality gate
- The pipeline orchestrator
"""

from kg_extraction.extraction.identity import assign_temp_ids, generate_temp_id
from kg_extraction.extraction.parser import (
    load_entities,
    load_relationships,
    parse_entity_output,
    parse_relationship_output,
    strip_code_fences,
)
from kg_extraction.extraction.pipeline import (
    ExtractionPipeline,
    PipelineContext,
    PipelineStage,
    run_extraction,
)
from kg_extraction.extraction.prompts import (
    build_entity_extraction_prompt,
    build_relationship_prompt,
)
from kg_extraction.extraction.quality import (
    QualityReport,
    calculate_orphan_rate,
    check_quality,
    get_orphan_temp_ids,
)
from kg_extraction.extraction.schema import build_entity_schema, build_relationship_schema

__all__ = [
    # Prompts
    "build_entity_extraction_prompt",
    "build_relationship_prompt",
    # Schema
    "build_entity_schema",
    "build_relationship_schema",
    # Parsing
    "strip_code_fences",
    "parse_entity_output",
    "parse_relationship_output",
    "load_entities",
    "load_relationships",
    # Identity
    "generate_temp_id",
    "assign_temp_ids",
    # Quality
    "QualityReport",
    "calculate_orphan_rate",
    "get_orphan_temp_ids",
    "check_quality",
    # Pipeline
    "PipelineStage",
    "PipelineContext",
    "ExtractionPipeline",
    "run_extraction",
]
