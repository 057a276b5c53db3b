from .common import ApiResponse, ErrorDetail, HealthCheckResponse, ResponseMeta
from .document import DocumentDetail, DocumentSummary, DocumentUploadResponse
from .quote import (
    BoundingBox,
    ExtractedQuoteResponse,
    ExtractionRequest,
    ExtractionRunResponse,
    PageBoxes,
    QuoteCategory,
    QuoteReviewRequest,
    QuoteStatus,
)

__all__ = [
    "ApiResponse",
    "ErrorDetail",
    "HealthCheckResponse",
    "ResponseMeta",
    "DocumentDetail",
    "DocumentSummary",
    "DocumentUploadResponse",
    "BoundingBox",
    "ExtractedQuoteResponse",
    "ExtractionRequest",
    "ExtractionRunResponse",
    "PageBoxes",
    "QuoteCategory",
    "QuoteReviewRequest",
    "QuoteStatus",
]
