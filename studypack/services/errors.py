"""Pipeline exception hierarchy."""


class PipelineError(Exception):
    """Base exception for study-pack processing failures."""


class DownloadFailed(PipelineError):
    """Raised when the source file cannot be fetched."""


class FileTooLarge(PipelineError):
    """Raised when the source file exceeds the byte ceiling."""


class ExtractionFailed(PipelineError):
    """Raised when text cannot be extracted from the file bytes."""


class EmptyDocument(PipelineError):
    """Raised when a document yields no text or no chunks."""


class GenerationFailed(PipelineError):
    """Raised when the language-model call fails or times out."""


class InvalidModelOutput(PipelineError):
    """Raised when model output does not match the response contract."""
