"""Quote extraction pipeline.

- pdf_text_extractor: PDF bytes to full text, page offsets and positioned runs
- sentence_segmenter: sentences with exact character offsets
- date_extractor: date mentions and ISO normalisation
- sentence_classifier: per-sentence model classification
- quote_validator: verbatim check against the stored text
- position_mapper: character ranges to pages and bounding boxes
- extraction_orchestrator: one run end to end
"""

from app.services.extraction.extraction_orchestrator import (
    ExtractionOrchestrator,
    ExtractionRunResult,
    ExtractionStorage,
    QuoteCandidate,
    RunState,
)
from app.services.extraction.pdf_text_extractor import PdfTextExtractor, TextRun
from app.services.extraction.quote_validator import QuoteValidator
from app.services.extraction.sentence_classifier import Classification, SentenceClassifier
from app.services.extraction.sentence_segmenter import Sentence, SentenceSegmenter

__all__ = [
    "ExtractionOrchestrator",
    "ExtractionRunResult",
    "ExtractionStorage",
    "QuoteCandidate",
    "RunState",
    "PdfTextExtractor",
    "TextRun",
    "QuoteValidator",
    "Classification",
    "SentenceClassifier",
    "Sentence",
    "SentenceSegmenter",
]
