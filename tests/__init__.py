"""Test suite for kg-extraction-pipeline.

This package contains tests for all modules:
- test_models: Pydantic data models
- test_prompts / test_schema: Prompt and output schema builders
- test_parser: Generation output and state normalization
- test_identity / test_quality: Temp-ids and the orphan-rate gate
- test_pipeline: Orchestrator scenarios, errors, cancellation, tracing
- test_tracing: Trace log files
- test_config / test_catalog / test_cli: Configuration, catalog files, CLI
- test_retry / test_openai_client: OpenAI client and retry behavior
"""
