"""Quote extraction run for a single stored document.

Pipeline:
    received -> segmenting -> classifying -> validating -> persisting -> done
Any fatal error moves the run to ``failed`` and is re-raised; the
document's ``processed`` flag is only touched by a successful persist.

Collaborators are injected: a ``ModelClient`` for classification and an
``ExtractionStorage`` for reading the document and replacing its quotes.
Nothing here is shared between runs, so independent documents can be
processed concurrently by separate orchestrator runs.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Protocol, Sequence, Tuple
from uuid import UUID

from app.core.config import ExtractionSettings, settings
from app.core.exceptions import (
    DocumentNotFoundError,
    NoModelAvailableError,
    ValidationRejection,
)
from app.core.llm_client import ModelClient
from app.schemas.quote import PageBoxes, QuoteCategory
from app.services.extraction.position_mapper import bounding_boxes_for_range, page_for_char
from app.services.extraction.quote_validator import QuoteValidator
from app.services.extraction.sentence_classifier import Classification, SentenceClassifier
from app.services.extraction.sentence_segmenter import Sentence, SentenceSegmenter
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class RunState(str, Enum):
    """Lifecycle of one extraction run."""
    RECEIVED = "received"
    SEGMENTING = "segmenting"
    CLASSIFYING = "classifying"
    VALIDATING = "validating"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class QuoteCandidate:
    """A classified span waiting for verbatim validation."""

    sentence_index: int
    quote_text: str
    char_start: int
    char_end: int
    page_number: int
    bounding_boxes: List[PageBoxes]
    category: QuoteCategory
    event_date: Optional[str]
    confidence: float


@dataclass
class ExtractionRunResult:
    """Outcome and counters of a finished run."""

    document_id: UUID
    model: str
    state: RunState = RunState.RECEIVED
    sentences_found: int = 0
    sentences_classified: int = 0
    sentences_skipped: int = 0
    candidates: int = 0
    quotes_validated: int = 0
    quotes_persisted: int = 0
    rejections: List[ValidationRejection] = field(default_factory=list)
    quotes: List[Any] = field(default_factory=list)


class ExtractionStorage(Protocol):
    """Documents/quotes persistence needed by a run."""

    async def get_document(self, document_id: UUID) -> Optional[Any]:
        """Return the document (with ``full_text``, ``page_offsets``,
        ``text_runs`` and ``case_id``) or None."""
        ...

    async def replace_quotes(
        self,
        document_id: UUID,
        candidates: Sequence[QuoteCandidate],
        case_id: Optional[str],
        extraction_model: str,
    ) -> List[Any]:
        """Atomically delete prior quotes, insert ``candidates`` and mark
        the document processed. Returns the stored quotes by ``char_start``."""
        ...


class ExtractionOrchestrator:
    """Runs segmentation, classification, validation and persistence.

    Example usage:
        orchestrator = ExtractionOrchestrator(model_client, storage)
        result = await orchestrator.run(document_id)
    """

    def __init__(
        self,
        model_client: ModelClient,
        storage: ExtractionStorage,
        extraction_settings: Optional[ExtractionSettings] = None,
        validator: Optional[QuoteValidator] = None,
    ):
        """Initialize the orchestrator.

        Args:
            model_client: Model capability used by the classifier
            storage: Documents/quotes repository
            extraction_settings: Batch size, thresholds and timeouts
            validator: Verbatim validator
        """
        self.model_client = model_client
        self.storage = storage
        self.config = extraction_settings or settings.extraction
        self.validator = validator or QuoteValidator()

    async def run(self, document_id: UUID, case_id: Optional[str] = None) -> ExtractionRunResult:
        """Extract, validate and persist the quotes of one document.

        Args:
            document_id: Stored document to process
            case_id: Overrides the document's case id on the new quotes

        Returns:
            ExtractionRunResult in state ``done``

        Raises:
            DocumentNotFoundError: If the document does not exist
            NoModelAvailableError: If no model could be reached at all
            DatabaseError: If the transactional replace fails
        """
        result = ExtractionRunResult(
            document_id=document_id,
            model=getattr(self.model_client, "model_name", "unknown"),
        )
        started = time.monotonic()
        LOGGER.info(
            "Extraction run received",
            extra={"document_id": str(document_id), "state": result.state.value}
        )

        try:
            document = await self.storage.get_document(document_id)
            if document is None:
                raise DocumentNotFoundError(f"Document {document_id} not found")

            self._transition(result, RunState.SEGMENTING)
            segmenter = SentenceSegmenter(context_sentences=self.config.context_sentences)
            sentences = segmenter.segment(document.full_text or "")
            result.sentences_found = len(sentences)

            self._transition(result, RunState.CLASSIFYING)
            classified = await self._classify_all(segmenter, sentences, result)
            result.sentences_classified = len(classified)

            self._transition(result, RunState.VALIDATING)
            candidates = [
                self._build_candidate(sentence, classification, document)
                for sentence, classification in classified
            ]
            result.candidates = len(candidates)
            valid, rejections = self.validator.filter(document.full_text or "", candidates)
            valid.sort(key=lambda c: c.char_start)
            result.rejections = rejections
            result.quotes_validated = len(valid)

            self._transition(result, RunState.PERSISTING)
            # Resolved after classification so it names the model that answered
            result.model = getattr(self.model_client, "model_name", result.model)
            stored = await self.storage.replace_quotes(
                document_id,
                valid,
                case_id=case_id if case_id is not None else document.case_id,
                extraction_model=result.model,
            )
            result.quotes = list(stored)
            result.quotes_persisted = len(result.quotes)

            self._transition(result, RunState.DONE)

        except Exception as e:
            result.state = RunState.FAILED
            LOGGER.error(
                f"Extraction run failed: {e}",
                extra={
                    "document_id": str(document_id),
                    "error_type": type(e).__name__,
                },
                exc_info=not isinstance(e, (DocumentNotFoundError, NoModelAvailableError))
            )
            raise

        LOGGER.info(
            "Extraction run completed",
            extra={
                "document_id": str(document_id),
                "model": result.model,
                "sentences_found": result.sentences_found,
                "sentences_classified": result.sentences_classified,
                "candidates": result.candidates,
                "quotes_persisted": result.quotes_persisted,
                "rejections": len(result.rejections),
                "duration_seconds": round(time.monotonic() - started, 2),
            }
        )
        if result.sentences_found and not result.quotes_persisted:
            LOGGER.warning(
                "Extraction run persisted no quotes",
                extra={"document_id": str(document_id), "sentences_found": result.sentences_found}
            )
        return result

    async def _classify_all(
        self,
        segmenter: SentenceSegmenter,
        sentences: List[Sentence],
        result: ExtractionRunResult,
    ) -> List[Tuple[Sentence, Classification]]:
        """Classify sentences batch by batch, in sentence order."""
        if not sentences:
            return []

        ensure_available = getattr(self.model_client, "ensure_available", None)
        if callable(ensure_available):
            ensure_available()

        # A sentence may wait for every provider of a chain in turn
        call_budget = getattr(self.model_client, "call_budget_seconds", None)
        call_timeout = max(self.config.call_timeout_seconds, call_budget or 0.0)

        classifier = SentenceClassifier(
            self.model_client,
            min_sentence_length=self.config.min_sentence_length,
            min_confidence=self.config.min_confidence,
            call_timeout_seconds=call_timeout,
            temperature=self.config.temperature,
        )
        batch_size = self.config.batch_size
        deadline = time.monotonic() + self.config.run_timeout_seconds
        classified: List[Tuple[Sentence, Classification]] = []

        for batch_start in range(0, len(sentences), batch_size):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                result.sentences_skipped += len(sentences) - batch_start
                LOGGER.warning(
                    "Run deadline reached, skipping remaining sentences",
                    extra={
                        "document_id": str(result.document_id),
                        "skipped": result.sentences_skipped,
                        "run_timeout_seconds": self.config.run_timeout_seconds,
                    }
                )
                break

            batch = sentences[batch_start:batch_start + batch_size]
            cut_before = classifier.stats.cut_by_deadline
            outcomes = await asyncio.gather(*[
                classifier.classify(
                    sentence.text,
                    segmenter.context(sentences, sentence.index),
                    timeout=remaining,
                )
                for sentence in batch
            ])
            result.sentences_skipped += classifier.stats.cut_by_deadline - cut_before
            classified.extend(
                (sentence, outcome)
                for sentence, outcome in zip(batch, outcomes)
                if outcome is not None
            )

            LOGGER.debug(
                f"Classified batch {batch_start // batch_size + 1}",
                extra={"batch_size": len(batch), "kept": sum(o is not None for o in outcomes)}
            )

        stats = classifier.stats
        if stats.model_unreachable:
            raise NoModelAvailableError(
                f"All {stats.attempted} model calls failed or timed out; "
                "no model provider is reachable"
            )
        return classified

    @staticmethod
    def _build_candidate(
        sentence: Sentence,
        classification: Classification,
        document: Any,
    ) -> QuoteCandidate:
        """Locate the quoted span inside its sentence and attach page and boxes.

        A quote the model did not copy from the sentence keeps the
        sentence offsets, so validation rejects it.
        """
        quote_text = sentence.text
        char_start, char_end = sentence.start_char, sentence.end_char

        if classification.quote and classification.quote != sentence.text:
            quote_text = classification.quote
            position = sentence.text.find(classification.quote)
            if position >= 0:
                char_start = sentence.start_char + position
                char_end = char_start + len(classification.quote)

        page_offsets = document.page_offsets or []
        return QuoteCandidate(
            sentence_index=sentence.index,
            quote_text=quote_text,
            char_start=char_start,
            char_end=char_end,
            page_number=page_for_char(char_start, page_offsets),
            bounding_boxes=bounding_boxes_for_range(
                char_start, char_end, document.text_runs or [], page_offsets
            ),
            category=classification.category,
            event_date=classification.date,
            confidence=classification.confidence,
        )

    @staticmethod
    def _transition(result: ExtractionRunResult, state: RunState) -> None:
        LOGGER.debug(
            f"Extraction run {result.state.value} -> {state.value}",
            extra={"document_id": str(result.document_id)}
        )
        result.state = state
