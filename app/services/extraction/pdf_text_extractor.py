"""Service for extracting a text layer with positions from PDF documents.

Uses pdfplumber to capture every word with its bounding box, then
assembles the words into a single plain-text string. Each word becomes
a ``TextRun`` that records exactly where its characters landed in that
string, so any character range of the full text can later be mapped
back to boxes on the page for highlighting.

Layout of the assembled text:
- words on a visual line are joined by a single space
- lines on a page are joined by ``\\n``
- pages are joined by ``PAGE_SEPARATOR`` (a blank line)
"""

import hashlib
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Dict, List

import pdfplumber

from app.core.exceptions import ExtractionError
from app.schemas.quote import BoundingBox
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

PAGE_SEPARATOR = "\n\n"


@dataclass
class TextRun:
    """A positioned string on a PDF page.

    Coordinates are in PDF coordinate system:
    - Origin at bottom-left of page
    - Y-axis increases upward
    - Units in PDF points (1 point = 1/72 inch)
    """

    text: str
    char_start: int
    char_end: int
    page: int  # 1-indexed
    bbox: BoundingBox

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "char_start": self.char_start,
            "char_end": self.char_end,
            "page": self.page,
            "bbox": self.bbox.model_dump(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextRun":
        return cls(
            text=data["text"],
            char_start=int(data["char_start"]),
            char_end=int(data["char_end"]),
            page=int(data.get("page") or 0),
            bbox=BoundingBox(**data["bbox"]),
        )


@dataclass
class PdfExtractionResult:
    """Text layer of a PDF."""

    full_text: str
    page_count: int
    page_offsets: List[int]
    text_runs: List[TextRun]
    content_hash: str
    text_length: int = field(init=False)

    def __post_init__(self):
        self.text_length = len(self.full_text)


def compute_content_hash(pdf_bytes: bytes) -> str:
    """SHA-256 hex digest of the raw document bytes."""
    return hashlib.sha256(pdf_bytes).hexdigest()


class PdfTextExtractor:
    """Parses PDF bytes into full text, a page offset table and text runs.

    Pure over its input: no I/O besides reading the given bytes.

    Example usage:
        extractor = PdfTextExtractor()
        result = extractor.extract(pdf_bytes)
        first_page_text = result.full_text[:result.page_offsets[1]]
    """

    def __init__(self, x_tolerance: float = 3, y_tolerance: float = 3):
        """Initialize the extractor.

        Args:
            x_tolerance: Horizontal gap (points) under which characters form one word
            y_tolerance: Vertical drift (points) under which words share a line
        """
        self.x_tolerance = x_tolerance
        self.y_tolerance = y_tolerance

    def extract(self, pdf_bytes: bytes) -> PdfExtractionResult:
        """Extract the text layer of a PDF.

        Args:
            pdf_bytes: PDF file content as bytes

        Returns:
            PdfExtractionResult with full text, page offsets, runs and hash

        Raises:
            ExtractionError: If the PDF is empty, corrupt, encrypted or has no pages
        """
        if not pdf_bytes:
            raise ExtractionError("Empty document")

        content_hash = compute_content_hash(pdf_bytes)

        try:
            with pdfplumber.open(BytesIO(pdf_bytes)) as pdf:
                page_count = len(pdf.pages)
                if page_count == 0:
                    raise ExtractionError("PDF has no pages")

                LOGGER.info(
                    f"Starting text extraction for {page_count} pages",
                    extra={"total_pages": page_count, "content_hash": content_hash[:12]}
                )

                builder = _TextLayerBuilder()
                for page_num, page in enumerate(pdf.pages, start=1):
                    words = page.extract_words(
                        keep_blank_chars=False,
                        x_tolerance=self.x_tolerance,
                        y_tolerance=self.y_tolerance,
                    )
                    builder.add_page(
                        page_num,
                        self._group_into_lines(words),
                        float(page.height),
                    )
        except ExtractionError:
            raise
        except Exception as e:
            LOGGER.error(
                f"PDF text extraction failed: {e}",
                extra={"error_type": type(e).__name__},
                exc_info=True
            )
            raise ExtractionError(f"Could not parse PDF: {e}", original_error=e) from e

        result = PdfExtractionResult(
            full_text=builder.text,
            page_count=page_count,
            page_offsets=builder.page_offsets,
            text_runs=builder.runs,
            content_hash=content_hash,
        )

        if not result.full_text.strip():
            LOGGER.warning(
                "PDF has no text layer",
                extra={"total_pages": page_count, "content_hash": content_hash[:12]}
            )

        LOGGER.info(
            "Text extraction completed",
            extra={
                "total_pages": result.page_count,
                "total_runs": len(result.text_runs),
                "text_length": result.text_length,
            }
        )
        return result

    def _group_into_lines(self, words: List[Dict[str, Any]]) -> List[List[Dict[str, Any]]]:
        """Group pdfplumber words into visual lines, top-to-bottom, left-to-right."""
        lines: List[List[Dict[str, Any]]] = []
        line_top = None

        for word in sorted(words, key=lambda w: (w["top"], w["x0"])):
            if not word.get("text"):
                continue
            if line_top is None or abs(word["top"] - line_top) > self.y_tolerance:
                lines.append([word])
                line_top = word["top"]
            else:
                lines[-1].append(word)

        for line in lines:
            line.sort(key=lambda w: w["x0"])
        return lines


class _TextLayerBuilder:
    """Accumulates page text while recording exact run offsets."""

    def __init__(self):
        self._parts: List[str] = []
        self._length = 0
        self.page_offsets: List[int] = []
        self.runs: List[TextRun] = []

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def _append(self, chunk: str) -> None:
        self._parts.append(chunk)
        self._length += len(chunk)

    def add_page(
        self,
        page_num: int,
        lines: List[List[Dict[str, Any]]],
        page_height: float,
    ) -> None:
        if page_num > 1:
            self._append(PAGE_SEPARATOR)
        self.page_offsets.append(self._length)

        for line_index, line in enumerate(lines):
            if line_index > 0:
                self._append("\n")
            for word_index, word in enumerate(line):
                if word_index > 0:
                    self._append(" ")
                text = word["text"]
                # pdfplumber uses a top-left origin, convert to bottom-left
                self.runs.append(TextRun(
                    text=text,
                    char_start=self._length,
                    char_end=self._length + len(text),
                    page=page_num,
                    bbox=BoundingBox(
                        x0=float(word["x0"]),
                        y0=page_height - float(word["bottom"]),
                        x1=float(word["x1"]),
                        y1=page_height - float(word["top"]),
                    ),
                ))
                self._append(text)


__all__ = [
    "PAGE_SEPARATOR",
    "TextRun",
    "PdfExtractionResult",
    "PdfTextExtractor",
    "compute_content_hash",
]
