"""Extraction pipeline orchestrator.

Runs one document through a fixed sequence of stages:

1. Validate the input.
2. Extract entities with the structured generation client.
3. Assign temp-ids to the extracted entities.
4. Extract relationships, re-prompting with the orphaned entities until the
   quality gate passes or the retry budget is spent.
5. Finalize the entity and relationship collections.

Every error is fatal for the run. The only retried condition is a failed
quality check, and an exhausted retry budget is not an error: the last
relationship set is accepted as final.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from kg_extraction.config import ExtractionPipelineConfig
from kg_extraction.exceptions import ExtractionError, GenerationError, StateError, ValidationError
from kg_extraction.extraction.identity import assign_temp_ids
from kg_extraction.extraction.parser import (
    load_entities,
    load_relationships,
    parse_entity_output,
    parse_relationship_output,
)
from kg_extraction.extraction.prompts import (
    build_entity_extraction_prompt,
    build_relationship_prompt,
)
from kg_extraction.extraction.quality import calculate_orphan_rate, check_quality
from kg_extraction.extraction.schema import build_entity_schema, build_relationship_schema
from kg_extraction.models import (
    Entity,
    ExtractedEntity,
    ExtractedRelationship,
    ExtractionPipelineInput,
    ExtractionPipelineOutput,
)
from kg_extraction.tracing import NullTraceLogger, create_trace_logger

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from kg_extraction.extraction.quality import QualityReport
    from kg_extraction.generation.client import StructuredGenerationClient
    from kg_extraction.models import (
        ExistingEntityRef,
        ObjectTypeSchema,
        RelationshipTypeSchema,
    )
    from kg_extraction.tracing import TraceLogger

logger = structlog.get_logger(__name__)


class PipelineStage(str, Enum):
    """Stages of one extraction run, in execution order."""

    VALIDATE = "validate"
    EXTRACT_ENTITIES = "extract_entities"
    ASSIGN_IDENTITIES = "assign_identities"
    EXTRACT_RELATIONSHIPS = "extract_relationships"
    CHECK_QUALITY = "check_quality"
    FINALIZE = "finalize"
    DONE = "done"


@dataclass
class PipelineContext:
    """State owned by a single extraction run.

    Attributes:
        input: The run's input.
        stage: Stage currently executing.
        entities: Entities with temp-ids, set by ASSIGN_IDENTITIES.
        relationships: Latest relationship set, set by EXTRACT_RELATIONSHIPS.
        orphan_temp_ids: Orphans from the last failed quality check; they
            become the priority list of the next relationship attempt.
        iteration: Relationship extraction attempts made so far.
        last_report: Most recent quality check result.
    """

    input: ExtractionPipelineInput
    stage: PipelineStage = PipelineStage.VALIDATE
    entities: list[Entity] | None = None
    relationships: list[ExtractedRelationship] | None = None
    orphan_temp_ids: list[str] = field(default_factory=list)
    iteration: int = 0
    last_report: QualityReport | None = None


class ExtractionPipeline:
    """Extracts entities and relationships from one document per run.

    The pipeline holds no per-run state, so one instance can serve
    concurrent runs (one asyncio task each).

    Example:
        >>> pipeline = ExtractionPipeline(client, config)
        >>> output = await pipeline.run(ExtractionPipelineInput(document_text=text))
    """

    def __init__(
        self,
        client: StructuredGenerationClient,
        config: ExtractionPipelineConfig | None = None,
        trace_logger: TraceLogger | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            client: Structured generation client used for both extraction stages.
            config: Pipeline configuration (defaults to ``ExtractionPipelineConfig()``).
            trace_logger: Optional trace logger; tracing is off when omitted.
        """
        self.client = client
        self.config = config or ExtractionPipelineConfig()
        self.trace_logger: TraceLogger = trace_logger or NullTraceLogger()

    async def run(self, pipeline_input: ExtractionPipelineInput) -> ExtractionPipelineOutput:
        """Run the pipeline over one document.

        Args:
            pipeline_input: Document text, type catalog and existing entities.

        Returns:
            The extracted entities and relationships with quality metadata.

        Raises:
            ValidationError: If the document text is empty.
            GenerationError: If a generation call fails.
            ParseError: If generation output cannot be normalized.
            StateError: If a stage finds a required result missing.
        """
        ctx = PipelineContext(input=pipeline_input)

        with self._stage(ctx, PipelineStage.VALIDATE):
            self._validate(ctx)

        logger.info(
            "Starting extraction",
            document_chars=len(pipeline_input.document_text),
            object_types=len(pipeline_input.object_schemas),
            relationship_types=len(pipeline_input.relationship_schemas),
            existing_entities=len(pipeline_input.existing_entities),
        )
        self._trace("log_document_text", pipeline_input.document_text)
        self._trace(
            "log_schemas", pipeline_input.object_schemas, pipeline_input.relationship_schemas
        )

        with self._stage(ctx, PipelineStage.EXTRACT_ENTITIES):
            extracted = await self._extract_entities(ctx)

        with self._stage(ctx, PipelineStage.ASSIGN_IDENTITIES):
            ctx.entities = assign_temp_ids(extracted)
            self._trace("log_entities", ctx.entities)

        if ctx.entities:
            await self._relationship_loop(ctx)
        else:
            logger.info("No entities extracted, skipping relationship extraction")
            self._trace("log_info", "No entities extracted, skipping relationship extraction")
            ctx.relationships = []

        with self._stage(ctx, PipelineStage.FINALIZE):
            output = self._finalize(ctx)

        ctx.stage = PipelineStage.DONE
        logger.info(
            "Extraction complete",
            entities=len(output.entities),
            relationships=len(output.relationships),
            orphan_rate=round(output.final_orphan_rate, 3),
            quality_passed=output.quality_passed,
            iterations=output.iterations,
        )
        return output

    # =========================================================================
    # STAGES
    # =========================================================================

    def _validate(self, ctx: PipelineContext) -> None:
        if not ctx.input.document_text.strip():
            raise ValidationError("document_text", "document text must not be empty")

    async def _extract_entities(self, ctx: PipelineContext) -> list[ExtractedEntity]:
        pipeline_input = ctx.input
        prompt = build_entity_extraction_prompt(
            pipeline_input.document_text,
            pipeline_input.object_schemas,
            pipeline_input.allowed_types,
            pipeline_input.existing_entities,
            max_existing_per_type=self.config.max_existing_per_type,
            max_existing_total=self.config.max_existing_total,
        )
        output_schema = build_entity_schema(pipeline_input.object_schemas)

        response = await self._generate(ctx.stage, prompt, output_schema)
        output = parse_entity_output(response)

        logger.info("Extracted entities", count=len(output.entities))
        return output.entities

    async def _relationship_loop(self, ctx: PipelineContext) -> None:
        threshold = self.config.orphan_threshold

        for attempt in range(1, self.config.max_retries + 1):
            ctx.iteration = attempt

            with self._stage(ctx, PipelineStage.EXTRACT_RELATIONSHIPS):
                ctx.relationships = await self._extract_relationships(ctx)

            with self._stage(ctx, PipelineStage.CHECK_QUALITY):
                report = check_quality(
                    self._require(ctx.entities, "entities"),
                    ctx.relationships,
                    threshold=threshold,
                    iteration=attempt,
                )
                ctx.last_report = report
                self._trace(
                    "log_quality_check",
                    attempt,
                    report.orphan_rate,
                    threshold,
                    report.orphan_temp_ids,
                )

            if report.passed:
                logger.info(
                    "Quality check passed",
                    iteration=attempt,
                    orphan_rate=round(report.orphan_rate, 3),
                    threshold=threshold,
                )
                break

            ctx.orphan_temp_ids = report.orphan_temp_ids
            logger.info(
                "Quality check failed",
                iteration=attempt,
                orphan_rate=round(report.orphan_rate, 3),
                threshold=threshold,
                orphans=len(report.orphan_temp_ids),
            )
        else:
            logger.warning(
                "Relationship retries exhausted, accepting last result",
                max_retries=self.config.max_retries,
                orphan_rate=round(ctx.last_report.orphan_rate, 3) if ctx.last_report else None,
            )
            self._trace("log_info", "Max retries reached, accepting last relationship set")

    async def _extract_relationships(self, ctx: PipelineContext) -> list[ExtractedRelationship]:
        pipeline_input = ctx.input
        prompt = build_relationship_prompt(
            self._require(ctx.entities, "entities"),
            pipeline_input.relationship_schemas,
            pipeline_input.document_text,
            pipeline_input.existing_entities,
            orphan_temp_ids=ctx.orphan_temp_ids,
        )
        output_schema = build_relationship_schema(pipeline_input.relationship_schemas)

        response = await self._generate(ctx.stage, prompt, output_schema)
        output = parse_relationship_output(response)

        logger.info(
            "Extracted relationships",
            iteration=ctx.iteration,
            count=len(output.relationships),
        )
        self._trace("log_relationships", output.relationships)
        return output.relationships

    def _finalize(self, ctx: PipelineContext) -> ExtractionPipelineOutput:
        entities = load_entities(self._require(ctx.entities, "entities"))
        relationships = load_relationships(self._require(ctx.relationships, "relationships"))

        orphan_rate = calculate_orphan_rate(entities, relationships)
        return ExtractionPipelineOutput(
            entities=entities,
            relationships=relationships,
            final_orphan_rate=orphan_rate,
            quality_passed=orphan_rate <= self.config.orphan_threshold,
            iterations=ctx.iteration,
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _generate(self, stage: PipelineStage, prompt: str, output_schema: dict[str, Any]) -> str:
        """Call the generation client, wrapping failures in GenerationError.

        A GenerationError raised by the client is re-issued with the calling
        stage. ``asyncio.CancelledError`` is not an ``Exception`` and passes
        through unwrapped.
        """
        self._trace("log_prompt", stage.value, prompt)
        try:
            response = await self.client.generate(prompt, output_schema)
        except GenerationError as e:
            if e.stage == stage.value:
                raise
            raise GenerationError(stage.value, e.reason) from e
        except ExtractionError:
            raise
        except Exception as e:
            raise GenerationError(stage.value, f"{type(e).__name__}: {e}") from e
        self._trace("log_response", stage.value, response)
        return response

    @contextmanager
    def _stage(self, ctx: PipelineContext, stage: PipelineStage) -> Iterator[None]:
        """Enter ``stage``, reporting pipeline errors raised inside it."""
        ctx.stage = stage
        self._trace("log_stage_start", stage.value)
        logger.debug("Stage started", stage=stage.value, iteration=ctx.iteration)
        try:
            yield
        except ExtractionError as e:
            self._trace("log_error", stage.value, e)
            logger.error(
                "Extraction stage failed",
                stage=stage.value,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise

    def _trace(self, method: str, *args: Any) -> None:
        """Forward a call to the trace logger; its failures never reach the run."""
        try:
            getattr(self.trace_logger, method)(*args)
        except Exception:
            logger.warning("Trace logger call failed", method=method, exc_info=True)

    @staticmethod
    def _require(value: list[Any] | None, key: str) -> list[Any]:
        if value is None:
            raise StateError(key)
        return value


async def run_extraction(
    document_text: str,
    *,
    object_schemas: Mapping[str, ObjectTypeSchema] | None = None,
    relationship_schemas: Mapping[str, RelationshipTypeSchema] | None = None,
    allowed_types: Sequence[str] | None = None,
    existing_entities: Sequence[ExistingEntityRef] | None = None,
    config: ExtractionPipelineConfig | None = None,
    client: StructuredGenerationClient | None = None,
    job_id: str | None = None,
) -> ExtractionPipelineOutput:
    """Run one extraction with a pipeline built from configuration.

    Args:
        document_text: Document to extract from.
        object_schemas: Entity type catalog keyed by type name.
        relationship_schemas: Relationship type catalog keyed by type name.
        allowed_types: Entity types to extract (defaults to the whole catalog).
        existing_entities: Known entities for identity resolution.
        config: Pipeline configuration (defaults to ``from_env()``).
        client: Generation client (defaults to the OpenAI client from config).
        job_id: Identifier used for the trace log file name.

    Returns:
        The pipeline output.
    """
    if config is None:
        config = ExtractionPipelineConfig.from_env()
    if client is None:
        from kg_extraction.generation.openai_client import OpenAIStructuredGenerationClient

        client = OpenAIStructuredGenerationClient.from_config(config)

    pipeline_input = ExtractionPipelineInput(
        document_text=document_text,
        object_schemas=dict(object_schemas or {}),
        relationship_schemas=dict(relationship_schemas or {}),
        allowed_types=list(allowed_types or []),
        existing_entities=list(existing_entities or []),
    )

    trace_logger = create_trace_logger(
        config.trace_enabled,
        job_id or uuid.uuid4().hex[:12],
        log_dir=config.trace_log_dir,
    )
    if trace_logger.log_file_path:
        logger.info("Writing extraction trace", path=trace_logger.log_file_path)

    try:
        return await ExtractionPipeline(client, config, trace_logger).run(pipeline_input)
    finally:
        trace_logger.close()
