"""Document schemas for the ingestion and read boundaries."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.quote import ExtractedQuoteResponse


class DocumentUploadResponse(BaseModel):
    """Result of a successful ingestion."""

    document_id: UUID
    filename: str
    original_filename: Optional[str] = None
    page_count: int
    text_length: int
    case_id: Optional[str] = None
    document_type: str
    content_hash: str


class DocumentSummary(BaseModel):
    """Row of the document listing, with quote counters."""

    id: UUID
    filename: str
    original_filename: Optional[str] = None
    page_count: int
    document_type: str
    case_id: Optional[str] = None
    processed: bool
    uploaded_at: Optional[datetime] = None
    quote_count: int = 0
    pending_quotes: int = 0


class DocumentDetail(BaseModel):
    """Single document with its quotes and, optionally, its text layer."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    filename: str
    original_filename: Optional[str] = None
    mime_type: str
    file_size: int
    page_count: int
    document_type: str
    source_url: Optional[str] = None
    case_id: Optional[str] = None
    processed: bool
    processed_at: Optional[datetime] = None
    extraction_model: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    full_text: Optional[str] = None
    page_offsets: Optional[List[int]] = None
    text_runs: Optional[List[Dict[str, Any]]] = None
    quotes: List[ExtractedQuoteResponse] = Field(default_factory=list)
