"""Sentence segmentation with exact character offsets.

Every sentence carries the offsets of its own (trimmed) text inside the
source string, so ``full_text[s.start_char:s.end_char] == s.text``.
"""

import re
from dataclasses import dataclass
from typing import List

from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Lower-cased words that are followed by a period without ending a sentence
ABBREVIATIONS = frozenset({
    "mr", "mrs", "ms", "dr", "prof", "sr", "jr", "vs", "etc", "inc", "ltd", "corp",
    "st", "ave", "blvd", "rd", "apt", "no", "vol", "rev", "gen", "col", "lt", "sgt",
    "jan", "feb", "mar", "apr", "jun", "jul", "aug", "sep", "sept", "oct", "nov", "dec",
    "i.e", "e.g", "cf", "al", "u.s", "u.s.a", "a.m", "p.m",
})

SENTENCE_ENDERS = ".!?"
CLOSING_QUOTES = "\"'”’"

_WORD_BEFORE_PERIOD = re.compile(r"(\w+(?:\.\w+)*)$")
# Whitespace then an uppercase letter or opening quote, or a line break
_NEXT_SENTENCE_START = re.compile(r"\s+[A-Z\"'“‘(\[]|[ \t]*\n")


@dataclass(frozen=True)
class Sentence:
    """A sentence of the source text."""

    index: int
    text: str
    start_char: int
    end_char: int


@dataclass(frozen=True)
class SentenceContext:
    """Neighbouring sentences given to the classifier for disambiguation."""

    before: str
    after: str


class SentenceSegmenter:
    """Splits text into sentences.

    Boundaries:
    - a run of ``.``/``!``/``?`` (optionally followed by a closing quote)
      followed by whitespace and an uppercase letter or quote, by a line
      break, or by the end of the text
    - a blank line
    A period after a known abbreviation or between two digits never ends
    a sentence.
    """

    def __init__(self, context_sentences: int = 2):
        """Initialize the segmenter.

        Args:
            context_sentences: Neighbours on each side returned by ``context``
        """
        self.context_sentences = context_sentences

    def segment(self, full_text: str) -> List[Sentence]:
        """Split ``full_text`` into ordered, non-overlapping sentences.

        Args:
            full_text: Source text

        Returns:
            Sentences with sequential indexes and exact offsets
        """
        sentences: List[Sentence] = []
        text = full_text or ""
        length = len(text)
        start = 0
        i = 0

        while i < length:
            char = text[i]

            if char in SENTENCE_ENDERS:
                if char == "." and self._is_inner_period(text, i):
                    i += 1
                    continue

                end = i + 1
                while end < length and text[end] in SENTENCE_ENDERS:
                    end += 1
                if end < length and text[end] in CLOSING_QUOTES:
                    end += 1

                if end >= length or _NEXT_SENTENCE_START.match(text, end):
                    self._emit(text, start, end, sentences)
                    start = end
                i = end
                continue

            if char == "\n" and i + 1 < length and text[i + 1] == "\n":
                self._emit(text, start, i, sentences)
                start = i + 2
                i = start
                continue

            i += 1

        self._emit(text, start, length, sentences)

        LOGGER.debug(
            "Segmented text into sentences",
            extra={"text_length": length, "sentence_count": len(sentences)}
        )
        return sentences

    def context(self, sentences: List[Sentence], index: int) -> SentenceContext:
        """Return up to ``context_sentences`` neighbours on each side of a sentence."""
        window = self.context_sentences
        before = sentences[max(0, index - window):index]
        after = sentences[index + 1:index + 1 + window]
        return SentenceContext(
            before=" ".join(s.text for s in before),
            after=" ".join(s.text for s in after),
        )

    @staticmethod
    def merge(
        full_text: str,
        sentences: List[Sentence],
        start_index: int,
        end_index: int,
    ) -> Sentence:
        """Merge consecutive sentences into one span of the source text.

        The merged text is the verbatim slice between the first sentence's
        start and the last sentence's end, whitespace included.
        """
        if start_index > end_index:
            raise ValueError("start_index must not exceed end_index")
        first = sentences[start_index]
        last = sentences[end_index]
        return Sentence(
            index=first.index,
            text=full_text[first.start_char:last.end_char],
            start_char=first.start_char,
            end_char=last.end_char,
        )

    @staticmethod
    def _is_inner_period(text: str, pos: int) -> bool:
        """True when the period at ``pos`` is a decimal point or ends an abbreviation."""
        if 0 < pos < len(text) - 1 and text[pos - 1].isdigit() and text[pos + 1].isdigit():
            return True

        match = _WORD_BEFORE_PERIOD.search(text, max(0, pos - 10), pos)
        return bool(match) and match.group(1).lower() in ABBREVIATIONS

    @staticmethod
    def _emit(text: str, start: int, end: int, sentences: List[Sentence]) -> None:
        while start < end and text[start].isspace():
            start += 1
        while end > start and text[end - 1].isspace():
            end -= 1
        if start < end:
            sentences.append(Sentence(
                index=len(sentences),
                text=text[start:end],
                start_char=start,
                end_char=end,
            ))
