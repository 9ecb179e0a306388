"""Per-job extraction trace logs.

A trace log records the full conversation of one extraction run (prompts,
responses, parsed results, quality checks, errors) in a readable text file.
Tracing is purely observational: write failures are reported through
structlog and never interrupt the run.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from kg_extraction.models import (
        Entity,
        ExtractedRelationship,
        ObjectTypeSchema,
        RelationshipTypeSchema,
    )

logger = structlog.get_logger(__name__)

BANNER = "=" * 80
DOCUMENT_TEXT_MAX_CHARS = 10_000


@runtime_checkable
class TraceLogger(Protocol):
    """Observer of one extraction run."""

    def log_stage_start(self, stage: str) -> None: ...

    def log_prompt(self, stage: str, prompt: str) -> None: ...

    def log_response(self, stage: str, response: str) -> None: ...

    def log_document_text(self, text: str) -> None: ...

    def log_schemas(
        self,
        object_schemas: Mapping[str, ObjectTypeSchema],
        relationship_schemas: Mapping[str, RelationshipTypeSchema],
    ) -> None: ...

    def log_entities(self, entities: Sequence[Entity]) -> None: ...

    def log_relationships(self, relationships: Sequence[ExtractedRelationship]) -> None: ...

    def log_quality_check(
        self,
        iteration: int,
        orphan_rate: float,
        threshold: float,
        orphan_ids: Sequence[str],
    ) -> None: ...

    def log_error(self, stage: str, error: BaseException) -> None: ...

    def log_info(self, message: str) -> None: ...

    def close(self) -> None: ...

    @property
    def log_file_path(self) -> str: ...


class NullTraceLogger:
    """No-op trace logger used when tracing is disabled."""

    def log_stage_start(self, stage: str) -> None:
        pass

    def log_prompt(self, stage: str, prompt: str) -> None:
        pass

    def log_response(self, stage: str, response: str) -> None:
        pass

    def log_document_text(self, text: str) -> None:
        pass

    def log_schemas(
        self,
        object_schemas: Mapping[str, ObjectTypeSchema],
        relationship_schemas: Mapping[str, RelationshipTypeSchema],
    ) -> None:
        pass

    def log_entities(self, entities: Sequence[Entity]) -> None:
        pass

    def log_relationships(self, relationships: Sequence[ExtractedRelationship]) -> None:
        pass

    def log_quality_check(
        self,
        iteration: int,
        orphan_rate: float,
        threshold: float,
        orphan_ids: Sequence[str],
    ) -> None:
        pass

    def log_error(self, stage: str, error: BaseException) -> None:
        pass

    def log_info(self, message: str) -> None:
        pass

    def close(self) -> None:
        pass

    @property
    def log_file_path(self) -> str:
        return ""


class FileTraceLogger:
    """Writes the trace of one extraction job to ``{log_dir}/{date}_{job_id}.log``.

    Attributes:
        job_id: Extraction job identifier.
        document_id: Document being extracted (optional).
        project_id: Owning project (optional).
        log_dir: Directory holding trace files.
    """

    def __init__(
        self,
        job_id: str,
        log_dir: str | Path = "logs/extractions",
        document_id: str = "",
        project_id: str = "",
    ) -> None:
        """Open the trace file and write its header.

        Args:
            job_id: Extraction job identifier (used in the file name).
            log_dir: Directory for trace files; created if missing.
            document_id: Document being extracted.
            project_id: Owning project.

        Raises:
            OSError: If the directory or file cannot be created.
        """
        self.job_id = job_id
        self.document_id = document_id
        self.project_id = project_id
        self.log_dir = Path(log_dir)
        self._start_time = datetime.now()

        self.log_dir.mkdir(parents=True, exist_ok=True)
        path = self.log_dir / f"{self._start_time:%Y-%m-%d}_{job_id}.log"
        self._file: IO[str] | None = path.open("a", encoding="utf-8")

        self._write_header()

    def __enter__(self) -> FileTraceLogger:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @property
    def log_file_path(self) -> str:
        """Path of the trace file, or empty once closed."""
        return self._file.name if self._file else ""

    def close(self) -> None:
        """Write the closing banner and close the file."""
        if self._file is None:
            return
        self._write_line("")
        self._write_line(BANNER)
        self._write_line("EXTRACTION COMPLETED")
        self._write_line(f"Duration: {datetime.now() - self._start_time}")
        self._write_line(BANNER)
        self._file.close()
        self._file = None

    def log_stage_start(self, stage: str) -> None:
        self._write_line("")
        self._write_line(BANNER)
        self._write_line(f"STAGE: {stage}")
        self._write_line(f"Time: {datetime.now().isoformat(timespec='seconds')}")
        self._write_line(BANNER)

    def log_prompt(self, stage: str, prompt: str) -> None:
        self._write_block(f"{stage} PROMPT", [f"Length: {len(prompt)} characters", "", prompt, ""])

    def log_response(self, stage: str, response: str) -> None:
        self._write_block(
            f"{stage} RESPONSE", [f"Length: {len(response)} characters", "", response, ""]
        )

    def log_document_text(self, text: str) -> None:
        lines = [f"Length: {len(text)} characters", ""]
        if len(text) > DOCUMENT_TEXT_MAX_CHARS:
            half = DOCUMENT_TEXT_MAX_CHARS // 2
            lines += [
                text[:half],
                "",
                f"... [{len(text) - DOCUMENT_TEXT_MAX_CHARS} characters truncated] ...",
                "",
                text[-half:],
            ]
        else:
            lines.append(text)
        lines.append("")
        self._write_block("DOCUMENT TEXT", lines)

    def log_schemas(
        self,
        object_schemas: Mapping[str, ObjectTypeSchema],
        relationship_schemas: Mapping[str, RelationshipTypeSchema],
    ) -> None:
        lines = ["", f"Object Schemas ({len(object_schemas)}):"]
        for name, schema in object_schemas.items():
            lines.append(f"  - {name}: {schema.description}")
            if schema.properties:
                lines.append(f"    Properties: {len(schema.properties)}")
                for prop_name, prop_def in schema.properties.items():
                    lines.append(f"      - {prop_name} ({prop_def.type}): {prop_def.description}")

        lines += ["", f"Relationship Schemas ({len(relationship_schemas)}):"]
        for name, schema in relationship_schemas.items():
            lines.append(f"  - {name}: {schema.description}")
            if schema.source_types:
                lines.append(f"    Source types: {schema.source_types}")
            if schema.target_types:
                lines.append(f"    Target types: {schema.target_types}")
        lines.append("")
        self._write_block("EXTRACTION SCHEMAS", lines)

    def log_entities(self, entities: Sequence[Entity]) -> None:
        lines = []
        for i, entity in enumerate(entities, start=1):
            lines.append(f"\n[{i}] {entity.name} (temp_id: {entity.temp_id})")
            lines.append(f"    Type: {entity.type}")
            if entity.description:
                lines.append(f"    Description: {entity.description}")
            if entity.properties:
                lines.append(f"    Properties: {json.dumps(entity.properties, default=str)}")
            lines.append(f"    Action: {entity.action.value}")
            if entity.existing_entity_id:
                lines.append(f"    Existing Entity ID: {entity.existing_entity_id}")
        lines.append("")
        self._write_block(f"EXTRACTED ENTITIES ({len(entities)})", lines, end="EXTRACTED ENTITIES")

    def log_relationships(self, relationships: Sequence[ExtractedRelationship]) -> None:
        lines = []
        for i, rel in enumerate(relationships, start=1):
            lines.append(f"\n[{i}] {rel.source_ref} -[{rel.type}]-> {rel.target_ref}")
            if rel.description:
                lines.append(f"    Description: {rel.description}")
        lines.append("")
        self._write_block(
            f"EXTRACTED RELATIONSHIPS ({len(relationships)})",
            lines,
            end="EXTRACTED RELATIONSHIPS",
        )

    def log_quality_check(
        self,
        iteration: int,
        orphan_rate: float,
        threshold: float,
        orphan_ids: Sequence[str],
    ) -> None:
        lines = [
            f"Orphan Rate: {orphan_rate * 100:.1f}% (threshold: {threshold * 100:.1f}%)",
            f"Passed: {orphan_rate <= threshold}",
        ]
        if orphan_ids:
            lines.append(f"Orphan Entity IDs ({len(orphan_ids)}):")
            lines += [f"  - {temp_id}" for temp_id in orphan_ids]
        self._write_block(
            f"QUALITY CHECK (Iteration {iteration})", lines, end="QUALITY CHECK", leading=True
        )

    def log_error(self, stage: str, error: BaseException) -> None:
        self._write_line("")
        self._write_line(f"!!! ERROR in {stage} !!!")
        self._write_line(f"Error: {type(error).__name__}: {error}")
        self._write_line("")

    def log_info(self, message: str) -> None:
        self._write_line(f"[INFO] {message}")

    def _write_header(self) -> None:
        self._write_line(BANNER)
        self._write_line("EXTRACTION JOB TRACE LOG")
        self._write_line(BANNER)
        self._write_line("")
        self._write_line(f"Job ID:      {self.job_id}")
        self._write_line(f"Document ID: {self.document_id}")
        self._write_line(f"Project ID:  {self.project_id}")
        self._write_line(f"Started:     {self._start_time.isoformat(timespec='seconds')}")
        self._write_line("")

    def _write_block(
        self,
        title: str,
        lines: list[str],
        *,
        end: str | None = None,
        leading: bool = True,
    ) -> None:
        if leading:
            self._write_line("")
        self._write_line(f"--- {title} ---")
        for line in lines:
            self._write_line(line)
        self._write_line(f"--- END {end or title} ---")

    def _write_line(self, line: str) -> None:
        if self._file is None:
            return
        try:
            self._file.write(line + "\n")
        except OSError:
            logger.warning("Failed to write trace log line", job_id=self.job_id, exc_info=True)


def create_trace_logger(
    enabled: bool,
    job_id: str,
    log_dir: str | Path = "logs/extractions",
    document_id: str = "",
    project_id: str = "",
) -> TraceLogger:
    """Create a file trace logger, or a no-op one when tracing is disabled.

    Falls back to the no-op logger (with a warning) if the trace file cannot
    be opened.
    """
    if not enabled:
        return NullTraceLogger()
    try:
        return FileTraceLogger(
            job_id=job_id,
            log_dir=log_dir,
            document_id=document_id,
            project_id=project_id,
        )
    except OSError:
        logger.warning(
            "Could not open trace log, tracing disabled",
            job_id=job_id,
            log_dir=str(log_dir),
            exc_info=True,
        )
        return NullTraceLogger()
