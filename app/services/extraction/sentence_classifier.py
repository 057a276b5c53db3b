"""Language-model classification of single sentences.

For one sentence plus its neighbours, asks the model for a category from
a closed set, an optional date and a confidence. Anything that goes wrong
for a single sentence (timeout, provider error, malformed JSON, unknown
category) yields ``None`` for that sentence; only ``NoModelAvailableError``
propagates, because without a model nothing can be classified.
"""

import asyncio
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.core.exceptions import APIClientError, ClassificationError, NoModelAvailableError
from app.core.llm_client import ModelClient
from app.prompts.system_prompts import (
    PROMPT_VERSION,
    SENTENCE_CLASSIFICATION_SYSTEM_PROMPT,
    build_sentence_prompt,
)
from app.schemas.quote import QuoteCategory
from app.services.extraction.date_extractor import extract_dates, parse_date
from app.services.extraction.sentence_segmenter import SentenceContext
from app.utils.json_parser import parse_first_json_object
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_MIN_SENTENCE_LENGTH = 20
DEFAULT_MIN_CONFIDENCE = 0.5
# Used when the model omits a confidence
DEFAULT_CONFIDENCE = 0.5


@dataclass(frozen=True)
class Classification:
    """The model's judgement about one sentence."""

    category: QuoteCategory
    date: Optional[str]
    confidence: float
    quote: Optional[str] = None


@dataclass
class ClassifierStats:
    """Per-run counters, used to tell an unreachable model from noisy output."""

    skipped_short: int = 0
    calls: int = 0
    provider_failures: int = 0
    timeouts: int = 0
    cut_by_deadline: int = 0
    malformed: int = 0
    discarded: int = 0
    accepted: int = 0

    @property
    def attempted(self) -> int:
        """Calls that had their full time to answer."""
        return self.calls - self.cut_by_deadline

    @property
    def answered(self) -> int:
        return self.attempted - self.provider_failures - self.timeouts

    @property
    def model_unreachable(self) -> bool:
        """True when calls were attempted and none of them got an answer."""
        return self.attempted > 0 and self.answered == 0


class SentenceClassifier:
    """Classifies sentences through a ``ModelClient``.

    Not shared between runs: ``stats`` accumulates over every call.
    """

    def __init__(
        self,
        model_client: ModelClient,
        min_sentence_length: int = DEFAULT_MIN_SENTENCE_LENGTH,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        call_timeout_seconds: float = 45.0,
        temperature: float = 0.1,
    ):
        """Initialize the classifier.

        Args:
            model_client: Capability used to reach the language model
            min_sentence_length: Shorter sentences are skipped without a model call
            min_confidence: Classifications below this are discarded
            call_timeout_seconds: Hard timeout for a single model call,
                including any provider fallback behind the client
            temperature: Sampling temperature passed to the model
        """
        self.model_client = model_client
        self.min_sentence_length = min_sentence_length
        self.min_confidence = min_confidence
        self.call_timeout_seconds = call_timeout_seconds
        self.temperature = temperature
        self.stats = ClassifierStats()

    async def classify(
        self,
        sentence: str,
        context: SentenceContext,
        timeout: Optional[float] = None,
    ) -> Optional[Classification]:
        """Classify one sentence.

        Args:
            sentence: Sentence text
            context: Neighbouring sentences
            timeout: Time left before the caller's deadline; shortens the
                call when it is below ``call_timeout_seconds``

        Returns:
            Classification, or None when the sentence is skipped, the call
            fails, the output is malformed, the category is ``irrelevant`` or
            the confidence is below the threshold

        Raises:
            NoModelAvailableError: If no model provider is configured
        """
        if len(sentence.strip()) < self.min_sentence_length:
            self.stats.skipped_short += 1
            return None

        prompt = build_sentence_prompt(sentence, context.before, context.after)
        self.stats.calls += 1
        limit = self.call_timeout_seconds
        clipped = timeout is not None and timeout < limit
        if clipped:
            limit = max(timeout, 0.0)

        try:
            raw = await asyncio.wait_for(
                self.model_client.complete(
                    SENTENCE_CLASSIFICATION_SYSTEM_PROMPT,
                    prompt,
                    self.temperature,
                ),
                timeout=limit,
            )
        except NoModelAvailableError:
            raise
        except asyncio.TimeoutError:
            if clipped:
                self.stats.cut_by_deadline += 1
                LOGGER.debug(
                    "Model call cut by run deadline",
                    extra={"sentence_preview": sentence[:80], "limit_seconds": round(limit, 3)}
                )
                return None
            self.stats.timeouts += 1
            self._log_failure(
                ClassificationError(f"Model call timed out after {self.call_timeout_seconds}s"),
                sentence,
            )
            return None
        except APIClientError as e:
            self.stats.provider_failures += 1
            self._log_failure(ClassificationError(str(e), original_error=e), sentence)
            return None
        except Exception as e:
            # A misbehaving client must not abort the batch
            self.stats.provider_failures += 1
            LOGGER.error(
                f"Unexpected error from model client: {e}",
                extra={"sentence_preview": sentence[:80]},
                exc_info=True
            )
            return None

        classification = self.parse_response(raw, sentence)
        if classification is None:
            self.stats.malformed += 1
            return None

        if (
            classification.category == QuoteCategory.IRRELEVANT
            or classification.confidence < self.min_confidence
        ):
            self.stats.discarded += 1
            LOGGER.debug(
                "Discarded classification",
                extra={
                    "category": classification.category.value,
                    "confidence": classification.confidence,
                }
            )
            return None

        self.stats.accepted += 1
        return classification

    def parse_response(self, raw: Optional[str], sentence: str) -> Optional[Classification]:
        """Turn raw model output into a Classification, or None if malformed."""
        data = parse_first_json_object(raw)
        if data is None:
            return None

        category = self._parse_category(data.get("category"))
        if category is None:
            LOGGER.warning(
                "Unknown category in model output",
                extra={"category": str(data.get("category"))[:50], "prompt_version": PROMPT_VERSION}
            )
            return None

        confidence = self._parse_confidence(data)
        if confidence is None:
            return None

        event_date = parse_date(data.get("date")) if isinstance(data.get("date"), str) else None
        if event_date is None:
            event_date = next(
                (d for d in (parse_date(raw_date) for raw_date in extract_dates(sentence)) if d),
                None,
            )

        quote = data.get("quote")
        quote = quote.strip() if isinstance(quote, str) and quote.strip() else None

        return Classification(
            category=category,
            date=event_date,
            confidence=confidence,
            quote=quote,
        )

    @staticmethod
    def _parse_category(value: Any) -> Optional[QuoteCategory]:
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return QuoteCategory(normalized)
        except ValueError:
            return None

    @staticmethod
    def _parse_confidence(data: Dict[str, Any]) -> Optional[float]:
        value = data.get("confidence", DEFAULT_CONFIDENCE)
        if value is None:
            value = DEFAULT_CONFIDENCE
        if isinstance(value, bool):
            return None
        try:
            confidence = float(value)
        except (TypeError, ValueError):
            return None
        if math.isnan(confidence):
            return None
        return min(1.0, max(0.0, confidence))

    @staticmethod
    def _log_failure(error: ClassificationError, sentence: str) -> None:
        LOGGER.warning(
            f"Classification failed, dropping sentence: {error}",
            extra={"sentence_preview": sentence[:80]}
        )
