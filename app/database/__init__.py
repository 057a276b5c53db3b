"""Database module for SQLAlchemy models."""

from app.database.models import Document, ExtractedQuote

__all__ = [
    "Document",
    "ExtractedQuote",
]
