"""Verbatim check of candidate quotes against the stored document text.

A quote is only kept when ``full_text[char_start:char_end]`` equals its
text once surrounding whitespace is trimmed, and the offsets themselves
are tight (the slice neither starts nor ends with whitespace). No case
folding, no inner whitespace normalisation, no fuzzy match.
"""

from typing import Iterable, List, Optional, Protocol, Tuple, TypeVar

from app.core.exceptions import ValidationRejection
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Characters of expected/actual text kept in rejection diagnostics
PREVIEW_CHARS = 50


class _Span(Protocol):
    quote_text: str
    char_start: int
    char_end: int


SpanT = TypeVar("SpanT", bound=_Span)


class QuoteValidator:
    """Accepts or rejects quote candidates by exact substring comparison."""

    @staticmethod
    def validate(full_text: str, quote_text: str, char_start: int, char_end: int) -> bool:
        """Return True when the range of ``full_text`` reproduces ``quote_text``.

        Out-of-range or inverted offsets are rejected, never raised.
        """
        if not isinstance(char_start, int) or not isinstance(char_end, int):
            return False
        if char_start < 0 or char_end > len(full_text) or char_start >= char_end:
            return False
        actual = full_text[char_start:char_end]
        return actual == actual.strip() and actual == quote_text.strip()

    def check(
        self,
        full_text: str,
        quote_text: str,
        char_start: int,
        char_end: int,
    ) -> Optional[ValidationRejection]:
        """Validate one span, returning a rejection record when it fails."""
        if self.validate(full_text, quote_text, char_start, char_end):
            return None

        in_range = 0 <= char_start < char_end <= len(full_text)
        actual = full_text[char_start:char_end] if in_range else ""
        return ValidationRejection(
            char_start=char_start,
            char_end=char_end,
            expected_prefix=quote_text[:PREVIEW_CHARS],
            actual_prefix=actual[:PREVIEW_CHARS],
            reason="text mismatch" if in_range else "offsets out of range",
        )

    def filter(
        self,
        full_text: str,
        candidates: Iterable[SpanT],
    ) -> Tuple[List[SpanT], List[ValidationRejection]]:
        """Split candidates into verbatim matches and rejections.

        Every rejection is logged as a warning with both text prefixes.

        Args:
            full_text: Stored document text
            candidates: Objects with ``quote_text``, ``char_start`` and ``char_end``

        Returns:
            Tuple of (valid candidates in input order, rejections)
        """
        valid: List[SpanT] = []
        rejections: List[ValidationRejection] = []

        for candidate in candidates:
            rejection = self.check(
                full_text,
                candidate.quote_text,
                candidate.char_start,
                candidate.char_end,
            )
            if rejection is None:
                valid.append(candidate)
                continue

            rejections.append(rejection)
            LOGGER.warning(
                f"Quote validation failed ({rejection.reason})",
                extra={
                    "char_start": rejection.char_start,
                    "char_end": rejection.char_end,
                    "expected": rejection.expected_prefix,
                    "got": rejection.actual_prefix,
                }
            )

        return valid, rejections
