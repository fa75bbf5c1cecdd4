from enum import Enum


class ArchitectureServiceError(Exception):
    """Base class for failures surfaced to API callers.

    `user_message` is safe to show to end users. Anything raw (model output,
    tracebacks) stays in the logs.
    """

    user_message = "The architecture service failed."

    def __init__(self, message: str | None = None):
        self.user_message = message or self.user_message
        super().__init__(self.user_message)


class InputValidationError(ArchitectureServiceError):
    user_message = "The request is missing required input."


class GenerationError(ArchitectureServiceError):
    user_message = "The language model could not generate an architecture right now. Please try again."


class ExtractionErrorKind(str, Enum):
    NO_STRUCTURED_PAYLOAD = "no_structured_payload"
    EMPTY_DIAGRAM_SCRIPT = "empty_diagram_script"


_EXTRACTION_MESSAGES = {
    ExtractionErrorKind.NO_STRUCTURED_PAYLOAD: (
        "The model response did not contain a usable architecture. Try regenerating."
    ),
    ExtractionErrorKind.EMPTY_DIAGRAM_SCRIPT: (
        "The model response did not include a diagram. Try regenerating."
    ),
}


class ExtractionError(ArchitectureServiceError):
    def __init__(self, kind: ExtractionErrorKind, message: str | None = None):
        self.kind = kind
        super().__init__(message or _EXTRACTION_MESSAGES[kind])


class RenderErrorKind(str, Enum):
    SANDBOX_UNAVAILABLE = "sandbox_unavailable"
    INVALID_DIAGRAM_SYNTAX = "invalid_diagram_syntax"
    TIMEOUT = "timeout"


_RENDER_MESSAGES = {
    RenderErrorKind.SANDBOX_UNAVAILABLE: "The diagram renderer is not available right now.",
    RenderErrorKind.INVALID_DIAGRAM_SYNTAX: (
        "The diagram script is not valid Mermaid. Regenerate the diagram instead of retrying."
    ),
    RenderErrorKind.TIMEOUT: "Rendering the diagram took too long and was stopped.",
}


class RenderError(ArchitectureServiceError):
    def __init__(self, kind: RenderErrorKind, detail: str | None = None):
        self.kind = kind
        self.detail = detail
        message = _RENDER_MESSAGES[kind]
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ExportError(ArchitectureServiceError):
    user_message = "Failed to build the PDF document."
