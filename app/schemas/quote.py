"""Quote schemas for extraction results and PDF highlighting.

Bounding boxes use the PDF coordinate system: bottom-left origin, Y
increasing upward, units in points (1 point = 1/72 inch).
"""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class QuoteCategory(str, Enum):
    """Closed set of sentence categories the classifier may return."""

    TIMELINE_EVENT = "timeline_event"
    MEDICAL = "medical"
    OFFICIAL_STATEMENT = "official_statement"
    BACKGROUND = "background"
    IRRELEVANT = "irrelevant"


class QuoteStatus(str, Enum):
    """Review state of a persisted quote."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class BoundingBox(BaseModel):
    """Bounding box in PDF coordinate system."""

    x0: float = Field(..., description="Left coordinate (points)")
    y0: float = Field(..., description="Bottom coordinate (points)")
    x1: float = Field(..., description="Right coordinate (points)")
    y1: float = Field(..., description="Top coordinate (points)")

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0


class PageBoxes(BaseModel):
    """Bounding boxes of a quote that fall on a single page."""

    page_number: int = Field(..., ge=1, description="1-indexed page number")
    boxes: List[BoundingBox] = Field(default_factory=list)


class ExtractedQuoteResponse(BaseModel):
    """Persisted quote as returned by the read boundary."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    case_id: Optional[str] = None
    quote_text: str
    char_start: int
    char_end: int
    page_number: int
    bounding_boxes: List[PageBoxes] = Field(default_factory=list)
    category: QuoteCategory
    event_date: Optional[date] = None
    confidence_score: float
    extracted_by: str
    status: QuoteStatus
    rejection_reason: Optional[str] = None
    reviewed_at: Optional[datetime] = None


class ExtractionRequest(BaseModel):
    """Trigger boundary payload."""

    document_id: UUID
    case_id: Optional[str] = Field(None, description="Overrides the document's case_id")


class ExtractionRunResponse(BaseModel):
    """Summary of a finished extraction run."""

    document_id: UUID
    model: str
    sentences_found: int
    sentences_classified: int
    candidates: int
    quotes_validated: int
    quotes_extracted: int
    rejected_candidates: int
    quotes: List[ExtractedQuoteResponse] = Field(default_factory=list)


class QuoteReviewRequest(BaseModel):
    """Reviewer decision on a single quote."""

    status: QuoteStatus
    rejection_reason: Optional[str] = Field(None, max_length=2000)
