"""Command-line interface for the knowledge-graph extraction pipeline.

This CLI provides two commands:

1. `kg-extract extract`: Run one document through the extraction pipeline
   - Load the type catalog and existing entities (optional)
   - Extract entities and relationships with the OpenAI client
   - Print a summary and write the result as JSON

2. `kg-extract prompt`: Print the entity-extraction prompt (dry run)
   - No API key needed, no model call made
"""

import argparse
import asyncio
import dataclasses
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .catalog import TypeCatalog, load_existing_entities, load_type_catalog
from .config import ExtractionPipelineConfig
from .exceptions import ExtractionError
from .extraction.pipeline import run_extraction
from .extraction.prompts import build_entity_extraction_prompt
from .models import ExtractionPipelineOutput

console = Console()


def _parse_allowed_types(value: str | None) -> list[str]:
    """Split a comma-separated type list, dropping blanks."""
    if not value:
        return []
    return [name.strip() for name in value.split(",") if name.strip()]


def _read_document(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        msg = f"Cannot read document {path}: {e.strerror or e}"
        raise ValueError(msg) from e


def _load_catalog(path: Path | None) -> TypeCatalog:
    return load_type_catalog(path) if path else TypeCatalog()


def _build_config(args: argparse.Namespace) -> ExtractionPipelineConfig:
    """Create configuration from the environment, applying CLI overrides.

    Raises:
        ValueError: If the environment or an override is invalid.
    """
    config = ExtractionPipelineConfig.from_env()
    overrides: dict[str, object] = {}
    if args.orphan_threshold is not None:
        overrides["orphan_threshold"] = args.orphan_threshold
    if args.max_retries is not None:
        overrides["max_retries"] = args.max_retries
    if args.trace_dir is not None:
        overrides["trace_enabled"] = True
        overrides["trace_log_dir"] = str(args.trace_dir)
    elif args.trace:
        overrides["trace_enabled"] = True
    # replace() re-runs __post_init__ validation
    return dataclasses.replace(config, **overrides) if overrides else config


def _display_output(output: ExtractionPipelineOutput) -> None:
    """Print extracted entities, relationships and quality summary."""
    console.print(f"\n[bold green]Entities ({len(output.entities)})[/]")
    if output.entities:
        table = Table(show_header=True)
        table.add_column("Temp ID", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Name", style="green")
        table.add_column("Action")
        table.add_column("Description", max_width=50)
        for entity in output.entities:
            description = entity.description
            table.add_row(
                entity.temp_id,
                entity.type,
                entity.name,
                entity.action.value,
                f"{description[:50]}..." if len(description) > 50 else description or "-",
            )
        console.print(table)
    else:
        console.print("[dim]No entities found[/]")

    console.print(f"\n[bold green]Relationships ({len(output.relationships)})[/]")
    if output.relationships:
        table = Table(show_header=True)
        table.add_column("Source", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Target", style="cyan")
        for rel in output.relationships:
            table.add_row(rel.source_ref, rel.type, rel.target_ref)
        console.print(table)
    else:
        console.print("[dim]No relationships found[/]")

    status = "[green]passed[/]" if output.quality_passed else "[yellow]below threshold[/]"
    console.print()
    console.print(
        f"Orphan rate: {output.final_orphan_rate:.1%} ({status}) "
        f"after {output.iterations} relationship attempt(s)"
    )


def _create_extract_parser(subparsers: argparse._SubParsersAction) -> None:
    """Create the extract subcommand parser.

    Args:
        subparsers: Subparsers action to add the command to.
    """
    extract_parser = subparsers.add_parser(
        "extract",
        help="Extract entities and relationships from a document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Run the extraction pipeline over one plain-text document:

  1. Extract entities (constrained by the type catalog, if given)
  2. Assign temp-ids
  3. Extract relationships, re-prompting for orphaned entities
     until the orphan rate is within the threshold
        """,
    )

    extract_parser.add_argument("document", type=Path, help="Plain-text document to extract from")
    extract_parser.add_argument(
        "-c",
        "--catalog",
        type=Path,
        help="Type catalog JSON (object_schemas, relationship_schemas, allowed_types)",
    )
    extract_parser.add_argument(
        "-e",
        "--existing",
        type=Path,
        help="JSON array of existing entities for identity resolution",
    )
    extract_parser.add_argument(
        "--allowed-types",
        help="Comma-separated entity types to extract (overrides the catalog)",
    )
    extract_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("extraction.json"),
        help="Output JSON file (default: extraction.json)",
    )
    extract_parser.add_argument(
        "--orphan-threshold",
        type=float,
        help="Maximum acceptable orphan rate, 0.0-1.0 (default: 0.3)",
    )
    extract_parser.add_argument(
        "--max-retries",
        type=int,
        help="Maximum relationship extraction attempts (default: 3)",
    )
    extract_parser.add_argument(
        "--trace",
        action="store_true",
        help="Write a trace log of prompts and responses",
    )
    extract_parser.add_argument(
        "--trace-dir",
        type=Path,
        help="Directory for trace logs (implies --trace)",
    )
    extract_parser.add_argument("--job-id", help="Job identifier used in the trace log name")


def _create_prompt_parser(subparsers: argparse._SubParsersAction) -> None:
    """Create the prompt subcommand parser.

    Args:
        subparsers: Subparsers action to add the command to.
    """
    prompt_parser = subparsers.add_parser(
        "prompt",
        help="Print the entity extraction prompt without calling the model",
    )
    prompt_parser.add_argument("document", type=Path, help="Plain-text document")
    prompt_parser.add_argument("-c", "--catalog", type=Path, help="Type catalog JSON")
    prompt_parser.add_argument("-e", "--existing", type=Path, help="Existing entities JSON")
    prompt_parser.add_argument("--allowed-types", help="Comma-separated entity types to extract")


async def _run_extract_command(args: argparse.Namespace) -> None:
    """Run the extract subcommand.

    Args:
        args: Parsed command-line arguments.
    """
    config = _build_config(args)
    document_text = _read_document(args.document)
    catalog = _load_catalog(args.catalog)
    existing = load_existing_entities(args.existing) if args.existing else []
    allowed_types = _parse_allowed_types(args.allowed_types) or catalog.allowed_types

    console.print("[bold cyan]Knowledge Graph Extraction[/]")
    console.print(f"Document: {args.document} ({len(document_text)} characters)")
    console.print(f"Model: {config.llm_model}")
    console.print(
        f"Entity types: {', '.join(allowed_types or list(catalog.object_schemas)) or 'any'}"
    )
    console.print()

    output = await run_extraction(
        document_text,
        object_schemas=catalog.object_schemas,
        relationship_schemas=catalog.relationship_schemas,
        allowed_types=allowed_types,
        existing_entities=existing,
        config=config,
        job_id=args.job_id,
    )

    _display_output(output)

    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(output.model_dump_json(indent=2), encoding="utf-8")
    console.print()
    console.print(f"[green]Result saved to: {args.output}[/]")


def _run_prompt_command(args: argparse.Namespace) -> None:
    """Run the prompt subcommand.

    Args:
        args: Parsed command-line arguments.
    """
    document_text = _read_document(args.document)
    catalog = _load_catalog(args.catalog)
    existing = load_existing_entities(args.existing) if args.existing else []

    config = ExtractionPipelineConfig.from_env(require_api_key=False)
    prompt = build_entity_extraction_prompt(
        document_text,
        catalog.object_schemas,
        _parse_allowed_types(args.allowed_types) or catalog.allowed_types,
        existing,
        max_existing_per_type=config.max_existing_per_type,
        max_existing_total=config.max_existing_total,
    )
    # Plain print: prompts contain Markdown and brackets rich would interpret
    print(prompt)


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser."""
    parser = argparse.ArgumentParser(
        prog="kg-extract",
        description="Extract a knowledge graph from a document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  extract    Extract entities and relationships from a document
  prompt     Print the entity extraction prompt (no model call)

Examples:
  kg-extract extract notes.txt -c catalog.json -o graph.json
  kg-extract extract notes.txt --allowed-types Person,Organization --trace
  kg-extract prompt notes.txt -c catalog.json

Environment variables:
  OPENAI_API_KEY                 - Required for extract
  LLM_MODEL                      - Model name (default: gpt-4o)
  EXTRACTION_ORPHAN_THRESHOLD    - Maximum orphan rate (default: 0.3)
  EXTRACTION_MAX_RETRIES         - Relationship attempts (default: 3)
  EXTRACTION_GENERATION_ATTEMPTS - OpenAI attempts on transient errors (default: 3)
  EXTRACTION_TRACE_DIR           - Enables trace logs in this directory
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    _create_extract_parser(subparsers)
    _create_prompt_parser(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    # Load .env file for API keys
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        raise SystemExit(1)

    try:
        if args.command == "extract":
            asyncio.run(_run_extract_command(args))
        elif args.command == "prompt":
            _run_prompt_command(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Extraction interrupted by user[/]")
        raise SystemExit(1) from None
    except (ExtractionError, ValueError, OSError) as e:
        console.print(f"\n[red]Error: {e}[/]")
        raise SystemExit(1) from None


if __name__ == "__main__":
    main()
