"""Exceptions raised by the document retrieval-and-answer pipeline."""
from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for failures reported by the pipeline components."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        self.__cause__ = cause


class UnsupportedFormatError(PipelineError):
    """Raised when the supplied bytes are not a PDF document."""


class ExtractionError(PipelineError):
    """Raised when a PDF cannot be parsed (malformed, encrypted, truncated)."""


class InvalidConfigError(PipelineError, ValueError):
    """Raised when a pipeline setting is outside its allowed range."""


class EmbeddingUnavailableError(PipelineError):
    """Raised when the embedding backend cannot be reached or times out."""


class GenerationUnavailableError(PipelineError):
    """Raised when the language-model provider fails or times out."""


class DocumentNotFoundError(PipelineError, LookupError):
    """Raised when no source bytes exist for a document id."""


class DocumentUnavailableError(PipelineError):
    """Raised when fetching the source bytes for a document times out or fails."""


__all__ = [
    "DocumentNotFoundError",
    "DocumentUnavailableError",
    "EmbeddingUnavailableError",
    "ExtractionError",
    "GenerationUnavailableError",
    "InvalidConfigError",
    "PipelineError",
    "UnsupportedFormatError",
]
