"""Repository layer modules."""

from app.repositories.document_repository import DocumentRepository
from app.repositories.quote_repository import ExtractionStore, QuoteRepository

__all__ = [
    "DocumentRepository",
    "ExtractionStore",
    "QuoteRepository",
]
