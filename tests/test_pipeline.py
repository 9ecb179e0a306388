"""Tests for the extraction pipeline orchestrator.

Verifies that:
- A well-connected first relationship set ends the run after one attempt
- Orphans are re-prompted until the gate passes or retries run out
- Every error is fatal and no relationship attempt is spent on one
- Cancellation propagates without partial results
- Trace logging observes the run without affecting it
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from kg_extraction.config import ExtractionPipelineConfig
from kg_extraction.exceptions import GenerationError, ParseError, StateError, ValidationError
from kg_extraction.extraction.pipeline import (
    ExtractionPipeline,
    PipelineContext,
    PipelineStage,
    run_extraction,
)
from kg_extraction.models import EntityAction, ExtractionPipelineInput

THREE_ENTITIES = json.dumps(
    {
        "entities": [
            {"name": "Alice", "type": "Person"},
            {"name": "Bob", "type": "Person"},
            {"name": "Acme", "type": "Organization"},
        ]
    }
)
NO_RELATIONSHIPS = json.dumps({"relationships": []})
ALL_CONNECTED = json.dumps(
    {
        "relationships": [
            {"source_ref": "person_alice", "target_ref": "organization_acme", "type": "WORKS_AT"},
            {"source_ref": "person_bob", "target_ref": "organization_acme", "type": "WORKS_AT"},
        ]
    }
)


def _input(text: str = "Alice works at Acme.", **kwargs) -> ExtractionPipelineInput:
    return ExtractionPipelineInput(document_text=text, **kwargs)


class TestHappyPath:
    """Tests for runs that pass the quality gate."""

    @pytest.mark.asyncio
    async def test_single_iteration(
        self, scripted_client, object_schemas, alice_entities_json, alice_relationships_json
    ) -> None:
        """A fully connected first result needs no retry."""
        client = scripted_client([alice_entities_json, alice_relationships_json])
        pipeline = ExtractionPipeline(client)

        output = await pipeline.run(_input(object_schemas=object_schemas))

        assert [(e.type, e.temp_id) for e in output.entities] == [
            ("Person", "person_alice"),
            ("Organization", "organization_acme"),
        ]
        assert len(output.relationships) == 1
        assert output.relationships[0].source_ref == "person_alice"
        assert output.final_orphan_rate == 0.0
        assert output.quality_passed is True
        assert output.iterations == 1
        assert len(client.calls) == 2

    @pytest.mark.asyncio
    async def test_schemas_sent_to_client(
        self,
        scripted_client,
        object_schemas,
        relationship_schemas,
        alice_entities_json,
        alice_relationships_json,
    ) -> None:
        client = scripted_client([alice_entities_json, alice_relationships_json])

        await ExtractionPipeline(client).run(
            _input(object_schemas=object_schemas, relationship_schemas=relationship_schemas)
        )

        entity_schema = client.calls[0][1]
        relationship_schema = client.calls[1][1]
        entity_type = entity_schema["properties"]["entities"]["items"]["properties"]["type"]
        rel_type = relationship_schema["properties"]["relationships"]["items"]["properties"]["type"]
        assert entity_type["enum"] == ["Person", "Organization"]
        assert rel_type["enum"] == ["WORKS_AT"]

    @pytest.mark.asyncio
    async def test_relationship_prompt_uses_temp_ids(
        self, scripted_client, alice_entities_json, alice_relationships_json
    ) -> None:
        client = scripted_client([alice_entities_json, alice_relationships_json])

        await ExtractionPipeline(client).run(_input())

        relationship_prompt = client.prompts[1]
        assert "[temp_id: person_alice]" in relationship_prompt
        assert "[temp_id: organization_acme]" in relationship_prompt
        assert "PRIORITY" not in relationship_prompt

    @pytest.mark.asyncio
    async def test_prompt_caps_from_config(self, scripted_client, existing_entities) -> None:
        client = scripted_client(['{"entities": []}'])
        config = ExtractionPipelineConfig(max_existing_total=1)

        await ExtractionPipeline(client, config).run(
            _input(allowed_types=["Person", "Organization"], existing_entities=existing_entities)
        )

        assert client.prompts[0].count("[id: ") == 1

    @pytest.mark.asyncio
    async def test_enrich_action_preserved(self, scripted_client) -> None:
        entities = json.dumps(
            {
                "entities": [
                    {
                        "name": "Alice Jones",
                        "type": "Person",
                        "action": "enrich",
                        "existing_entity_id": "p-1",
                    }
                ]
            }
        )
        relationships = json.dumps(
            {
                "relationships": [
                    {"source_ref": "person_alice_jones", "target_ref": "person_alice_jones", "type": "SELF"}
                ]
            }
        )
        client = scripted_client([entities, relationships])

        output = await ExtractionPipeline(client).run(_input())

        assert output.entities[0].action is EntityAction.ENRICH
        assert output.entities[0].existing_entity_id == "p-1"

    @pytest.mark.asyncio
    async def test_unknown_action_extracted_as_create(
        self, scripted_client, alice_relationships_json
    ) -> None:
        entities = json.dumps(
            {
                "entities": [
                    {"name": "Alice", "type": "Person", "action": "merge"},
                    {"name": "Acme", "type": "Organization"},
                ]
            }
        )
        client = scripted_client([entities, alice_relationships_json])

        output = await ExtractionPipeline(client).run(_input())

        assert output.entities[0].action is EntityAction.CREATE
        assert output.entities[0].temp_id == "person_alice"
        assert output.quality_passed is True


class TestRetryLoop:
    """Tests for the quality-gated relationship loop."""

    @pytest.mark.asyncio
    async def test_exhausted_retries_accept_last_result(self, scripted_client) -> None:
        """Zero relationships on every attempt is not an error."""
        client = scripted_client([THREE_ENTITIES, NO_RELATIONSHIPS, NO_RELATIONSHIPS, NO_RELATIONSHIPS])

        output = await ExtractionPipeline(client).run(_input())

        assert len(output.entities) == 3
        assert output.relationships == []
        assert output.iterations == 3
        assert output.final_orphan_rate == 1.0
        assert output.quality_passed is False
        assert len(client.calls) == 4

    @pytest.mark.asyncio
    async def test_orphans_prioritized_on_retry(self, scripted_client) -> None:
        client = scripted_client([THREE_ENTITIES, NO_RELATIONSHIPS, ALL_CONNECTED])

        output = await ExtractionPipeline(client).run(_input())

        assert output.iterations == 2
        assert output.quality_passed is True
        assert len(output.relationships) == 2

        retry_prompt = client.prompts[2]
        priority = retry_prompt.split("## PRIORITY: Connect These Orphan Entities")[1]
        priority = priority.split("## Document")[0]
        assert "- person_alice\n- person_bob\n- organization_acme\n" in priority

    @pytest.mark.asyncio
    async def test_max_retries_bounds_attempts(self, scripted_client) -> None:
        client = scripted_client([THREE_ENTITIES, NO_RELATIONSHIPS])
        config = ExtractionPipelineConfig(max_retries=1)

        output = await ExtractionPipeline(client, config).run(_input())

        assert output.iterations == 1
        assert len(client.calls) == 2

    @pytest.mark.asyncio
    async def test_threshold_from_config(self, scripted_client) -> None:
        """One orphan out of three passes a 0.5 threshold."""
        one_orphan = json.dumps(
            {
                "relationships": [
                    {"source_ref": "person_alice", "target_ref": "organization_acme", "type": "WORKS_AT"}
                ]
            }
        )
        client = scripted_client([THREE_ENTITIES, one_orphan])
        config = ExtractionPipelineConfig(orphan_threshold=0.5)

        output = await ExtractionPipeline(client, config).run(_input())

        assert output.iterations == 1
        assert output.final_orphan_rate == pytest.approx(1 / 3)
        assert output.quality_passed is True

    @pytest.mark.asyncio
    async def test_zero_entities_skip_relationships(self, scripted_client) -> None:
        client = scripted_client(['{"entities": []}'])

        output = await ExtractionPipeline(client).run(_input())

        assert output.entities == []
        assert output.relationships == []
        assert output.final_orphan_rate == 0.0
        assert output.quality_passed is True
        assert output.iterations == 0
        assert len(client.calls) == 1


class TestErrors:
    """Tests for fatal error handling."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   \n\t"])
    async def test_empty_document_rejected(self, scripted_client, text: str) -> None:
        client = scripted_client()

        with pytest.raises(ValidationError) as exc_info:
            await ExtractionPipeline(client).run(_input(text))

        assert exc_info.value.field == "document_text"
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_malformed_entity_output(self, scripted_client) -> None:
        client = scripted_client(['{"entities": [{"name": '])

        with pytest.raises(ParseError) as exc_info:
            await ExtractionPipeline(client).run(_input())

        assert exc_info.value.target == "entities"
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_relationship_parse_error_aborts(self, scripted_client) -> None:
        """A parse failure is not a quality failure and is not retried."""
        client = scripted_client([THREE_ENTITIES, "not json", ALL_CONNECTED])

        with pytest.raises(ParseError) as exc_info:
            await ExtractionPipeline(client).run(_input())

        assert exc_info.value.target == "relationships"
        assert len(client.calls) == 2

    @pytest.mark.asyncio
    async def test_client_failure_wrapped(self, scripted_client) -> None:
        cause = RuntimeError("connection reset")
        client = scripted_client([cause])

        with pytest.raises(GenerationError) as exc_info:
            await ExtractionPipeline(client).run(_input())

        assert exc_info.value.stage == PipelineStage.EXTRACT_ENTITIES.value
        assert exc_info.value.__cause__ is cause
        assert "connection reset" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_relationship_client_failure_wrapped(self, scripted_client) -> None:
        client = scripted_client([THREE_ENTITIES, RuntimeError("boom")])

        with pytest.raises(GenerationError) as exc_info:
            await ExtractionPipeline(client).run(_input())

        assert exc_info.value.stage == "extract_relationships"

    @pytest.mark.asyncio
    async def test_pipeline_errors_not_rewrapped(self, scripted_client) -> None:
        error = ParseError("entities", "bad shape")
        client = scripted_client([error])

        with pytest.raises(ParseError) as exc_info:
            await ExtractionPipeline(client).run(_input())

        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_client_generation_error_gets_stage(self, scripted_client) -> None:
        error = GenerationError("generate", "model gpt-4o returned an empty response")
        client = scripted_client([THREE_ENTITIES, error])

        with pytest.raises(GenerationError) as exc_info:
            await ExtractionPipeline(client).run(_input())

        assert exc_info.value.stage == "extract_relationships"
        assert exc_info.value.reason == error.reason
        assert exc_info.value.__cause__ is error
        assert "empty response" in str(exc_info.value)

    def test_finalize_without_entities(self) -> None:
        pipeline = ExtractionPipeline(MagicMock())
        ctx = PipelineContext(input=_input())

        with pytest.raises(StateError) as exc_info:
            pipeline._finalize(ctx)

        assert exc_info.value.key == "entities"

    def test_finalize_without_relationships(self) -> None:
        pipeline = ExtractionPipeline(MagicMock())
        ctx = PipelineContext(input=_input(), entities=[])

        with pytest.raises(StateError) as exc_info:
            pipeline._finalize(ctx)

        assert exc_info.value.key == "relationships"


class _BlockingClient:
    """Client whose generate call never completes."""

    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def generate(self, prompt: str, output_schema: dict) -> str:
        self.started.set()
        await asyncio.Event().wait()
        return ""


class TestCancellation:
    """Tests for cancellation and caller timeouts."""

    @pytest.mark.asyncio
    async def test_cancel_propagates(self) -> None:
        client = _BlockingClient()
        task = asyncio.create_task(ExtractionPipeline(client).run(_input()))
        await client.started.wait()

        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_timeout_propagates(self) -> None:
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(ExtractionPipeline(_BlockingClient()).run(_input()), timeout=0.05)


class TestTracing:
    """Tests for trace logger integration."""

    @pytest.mark.asyncio
    async def test_trace_calls(
        self, scripted_client, alice_entities_json, alice_relationships_json
    ) -> None:
        trace = MagicMock()
        client = scripted_client([alice_entities_json, alice_relationships_json])

        await ExtractionPipeline(client, trace_logger=trace).run(_input())

        stages = [c.args[0] for c in trace.log_stage_start.call_args_list]
        assert stages == [
            "validate",
            "extract_entities",
            "assign_identities",
            "extract_relationships",
            "check_quality",
            "finalize",
        ]
        assert trace.log_prompt.call_count == 2
        assert trace.log_response.call_count == 2
        trace.log_document_text.assert_called_once_with("Alice works at Acme.")
        trace.log_quality_check.assert_called_once_with(1, 0.0, 0.3, [])
        assert len(trace.log_entities.call_args.args[0]) == 2
        trace.log_error.assert_not_called()

    @pytest.mark.asyncio
    async def test_error_reported_to_trace(self, scripted_client) -> None:
        trace = MagicMock()
        client = scripted_client(["garbage"])

        with pytest.raises(ParseError):
            await ExtractionPipeline(client, trace_logger=trace).run(_input())

        stage, error = trace.log_error.call_args.args
        assert stage == "extract_entities"
        assert isinstance(error, ParseError)

    @pytest.mark.asyncio
    async def test_trace_failures_do_not_alter_results(
        self, scripted_client, alice_entities_json, alice_relationships_json
    ) -> None:
        trace = MagicMock()
        trace.log_prompt.side_effect = OSError("disk full")
        trace.log_entities.side_effect = RuntimeError("broken")
        client = scripted_client([alice_entities_json, alice_relationships_json])

        output = await ExtractionPipeline(client, trace_logger=trace).run(_input())

        assert len(output.entities) == 2
        assert len(output.relationships) == 1


class TestRunExtraction:
    """Tests for the run_extraction convenience coroutine."""

    @pytest.mark.asyncio
    async def test_runs_with_given_client(
        self, scripted_client, object_schemas, alice_entities_json, alice_relationships_json
    ) -> None:
        client = scripted_client([alice_entities_json, alice_relationships_json])

        output = await run_extraction(
            "Alice works at Acme.",
            object_schemas=object_schemas,
            config=ExtractionPipelineConfig(),
            client=client,
        )

        assert len(output.entities) == 2
        assert output.quality_passed

    @pytest.mark.asyncio
    async def test_writes_trace_file(
        self, tmp_path, scripted_client, alice_entities_json, alice_relationships_json
    ) -> None:
        client = scripted_client([alice_entities_json, alice_relationships_json])
        config = ExtractionPipelineConfig(trace_enabled=True, trace_log_dir=str(tmp_path))

        await run_extraction("Alice works at Acme.", config=config, client=client, job_id="job-1")

        (trace_file,) = tmp_path.glob("*_job-1.log")
        content = trace_file.read_text()
        assert "STAGE: extract_entities" in content
        assert "QUALITY CHECK (Iteration 1)" in content
        assert "EXTRACTION COMPLETED" in content

    @pytest.mark.asyncio
    async def test_trace_file_closed_on_error(self, tmp_path, scripted_client) -> None:
        client = scripted_client(["garbage"])
        config = ExtractionPipelineConfig(trace_enabled=True, trace_log_dir=str(tmp_path))

        with pytest.raises(ParseError):
            await run_extraction("text", config=config, client=client, job_id="job-2")

        content = next(tmp_path.glob("*_job-2.log")).read_text()
        assert "!!! ERROR in extract_entities !!!" in content
        assert content.rstrip().endswith("=" * 80)
