"""Custom exceptions for the extraction pipeline.

Provides a hierarchy of exceptions for different error conditions:
- ExtractionError: Base exception for all pipeline errors
- ValidationError: Required input missing or empty
- GenerationError: The structured generation call failed
- ParseError: Generation output could not be normalized
- StateError: An intermediate result was missing when a later stage read it
- CatalogError: A type catalog or existing-entity file could not be loaded

Every pipeline error is fatal for the run it occurs in.
"""

PAYLOAD_PREVIEW_CHARS = 200


class ExtractionError(Exception):
    """Base exception for extraction pipeline errors."""


class ValidationError(ExtractionError):
    """Required pipeline input is missing or empty.

    Raised before any call to the generation service.

    Attributes:
        field: Name of the offending input field.
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ValidationError.

        Args:
            field: Name of the offending input field.
            message: Description of what is wrong with it.
        """
        self.field = field
        super().__init__(f"Invalid input '{field}': {message}")


class GenerationError(ExtractionError):
    """The external structured generation call failed.

    The underlying cause is chained via ``__cause__``.

    Attributes:
        stage: Pipeline stage that issued the call.
        reason: Description of the failure, without the stage prefix.
    """

    def __init__(self, stage: str, message: str) -> None:
        """Initialize GenerationError.

        Args:
            stage: Pipeline stage that issued the call.
            message: Description of the failure.
        """
        self.stage = stage
        self.reason = message
        super().__init__(f"Generation failed during {stage}: {message}")


class ParseError(ExtractionError):
    """Generation output could not be normalized into the expected shape.

    Attributes:
        target: Name of the structure being parsed (e.g. "entities").
        payload: The offending payload (as text where possible).
    """

    def __init__(self, target: str, message: str, payload: str | None = None) -> None:
        """Initialize ParseError.

        Args:
            target: Name of the structure being parsed.
            message: Description of what went wrong.
            payload: Offending payload, kept in full for diagnostics.
        """
        self.target = target
        self.payload = payload
        text = f"Failed to parse {target} output: {message}"
        if payload:
            preview = payload[:PAYLOAD_PREVIEW_CHARS]
            if len(payload) > PAYLOAD_PREVIEW_CHARS:
                preview += "..."
            text += f" (payload: {preview!r})"
        super().__init__(text)


class StateError(ExtractionError):
    """An expected intermediate result was missing from pipeline state.

    Signals a stage-ordering defect rather than a runtime condition.

    Attributes:
        key: Name of the missing state field.
    """

    def __init__(self, key: str) -> None:
        """Initialize StateError.

        Args:
            key: Name of the missing state field.
        """
        self.key = key
        super().__init__(f"Pipeline state is missing '{key}'")


class CatalogError(ExtractionError):
    """A type catalog or existing-entity file could not be loaded.

    Attributes:
        path: The file that failed to load.
    """

    def __init__(self, path: str, message: str) -> None:
        """Initialize CatalogError.

        Args:
            path: The file that failed to load.
            message: Description of what went wrong.
        """
        self.path = path
        super().__init__(f"Failed to load {path}: {message}")
