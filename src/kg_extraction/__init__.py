"""Knowledge-graph extraction pipeline.

Extracts typed entities and the relationships between them from a plain-text
document with an LLM, constrained by a caller-supplied type catalog and
aware of entities already known from earlier runs.

Usage:
    from kg_extraction import ExtractionPipelineInput, run_extraction
    import asyncio

    # Configuration from environment (OPENAI_API_KEY, ...)
    output = asyncio.run(run_extraction("Alice works at Acme."))

    # Or with more control
    pipeline = ExtractionPipeline(client, ExtractionPipelineConfig(max_retries=2))
    output = asyncio.run(pipeline.run(ExtractionPipelineInput(document_text=text)))
"""

# =============================================================================
# CORE MODELS
# =============================================================================
from .catalog import TypeCatalog, load_existing_entities, load_type_catalog
from .config import ExtractionPipelineConfig

# =============================================================================
# EXCEPTIONS
# =============================================================================
from .exceptions import (
    CatalogError,
    ExtractionError,
    GenerationError,
    ParseError,
    StateError,
    ValidationError,
)

# =============================================================================
# EXTRACTION
# =============================================================================
from .extraction import (
    ExtractionPipeline,
    PipelineContext,
    PipelineStage,
    QualityReport,
    assign_temp_ids,
    build_entity_extraction_prompt,
    build_entity_schema,
    build_relationship_prompt,
    build_relationship_schema,
    calculate_orphan_rate,
    check_quality,
    generate_temp_id,
    get_orphan_temp_ids,
    parse_entity_output,
    parse_relationship_output,
    run_extraction,
)

# =============================================================================
# GENERATION
# =============================================================================
from .generation import OpenAIStructuredGenerationClient, StructuredGenerationClient
from .models import (
    Entity,
    EntityAction,
    EntityExtractionOutput,
    ExistingEntityRef,
    ExtractedEntity,
    ExtractedRelationship,
    ExtractionPipelineInput,
    ExtractionPipelineOutput,
    ObjectTypeSchema,
    PropertyDefinition,
    RelationshipExtractionOutput,
    RelationshipTypeSchema,
)

# =============================================================================
# TRACING
# =============================================================================
from .tracing import FileTraceLogger, NullTraceLogger, TraceLogger, create_trace_logger

__version__ = "0.1.0"

__all__ = [
    # ==========================================================================
    # MODELS
    # ==========================================================================
    "PropertyDefinition",
    "ObjectTypeSchema",
    "RelationshipTypeSchema",
    "ExistingEntityRef",
    "EntityAction",
    "ExtractedEntity",
    "Entity",
    "ExtractedRelationship",
    "EntityExtractionOutput",
    "RelationshipExtractionOutput",
    "ExtractionPipelineInput",
    "ExtractionPipelineOutput",
    # ==========================================================================
    # CONFIGURATION & CATALOG
    # ==========================================================================
    "ExtractionPipelineConfig",
    "TypeCatalog",
    "load_type_catalog",
    "load_existing_entities",
    # ==========================================================================
    # EXCEPTIONS
    # ==========================================================================
    "ExtractionError",
    "ValidationError",
    "GenerationError",
    "ParseError",
    "StateError",
    "CatalogError",
    # ==========================================================================
    # EXTRACTION
    # ==========================================================================
    "build_entity_extraction_prompt",
    "build_relationship_prompt",
    "build_entity_schema",
    "build_relationship_schema",
    "parse_entity_output",
    "parse_relationship_output",
    "generate_temp_id",
    "assign_temp_ids",
    "QualityReport",
    "calculate_orphan_rate",
    "get_orphan_temp_ids",
    "check_quality",
    "PipelineStage",
    "PipelineContext",
    "ExtractionPipeline",
    "run_extraction",
    # ==========================================================================
    # GENERATION & TRACING
    # ==========================================================================
    "StructuredGenerationClient",
    "OpenAIStructuredGenerationClient",
    "TraceLogger",
    "NullTraceLogger",
    "FileTraceLogger",
    "create_trace_logger",
]
