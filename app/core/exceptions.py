"""Custom exception hierarchy."""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class NoModelAvailableError(APIClientError):
    """Raised when no language model provider is configured or reachable.

    Fatal for an extraction run: nothing can be classified.
    """
    pass


class ValidationError(AppError):
    """Raised when service input is invalid (e.g. an upload that is not a PDF)."""
    pass


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class DocumentNotFoundError(AppError):
    """Raised when a document is not found."""
    pass


class QuoteNotFoundError(AppError):
    """Raised when an extracted quote is not found."""
    pass


class PipelineError(AppError):
    """Base exception for pipeline errors."""
    pass


class ExtractionError(PipelineError):
    """Source PDF could not be parsed (corrupt, encrypted or empty).

    Fatal for ingestion; no partial state is stored.
    """
    pass


class ClassificationError(PipelineError):
    """Classifying a single sentence failed.

    Non-fatal: the sentence is dropped and the run continues.
    """
    pass


class DuplicateDocumentError(AppError):
    """Uploaded bytes match a document that is already stored."""

    def __init__(self, existing_document_id: UUID, content_hash: str):
        super().__init__(
            f"Document already exists: {existing_document_id} (hash {content_hash[:12]})"
        )
        self.existing_document_id = existing_document_id
        self.content_hash = content_hash


@dataclass
class ValidationRejection:
    """A candidate quote that failed verbatim validation.

    Recorded for diagnosis, never raised.
    """

    char_start: int
    char_end: int
    expected_prefix: str
    actual_prefix: str
    reason: Optional[str] = None
