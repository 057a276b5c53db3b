"""Unit tests for PdfTextExtractor."""

import hashlib

import pytest

from app.core.exceptions import ExtractionError
from app.services.extraction.pdf_text_extractor import (
    PAGE_SEPARATOR,
    PdfTextExtractor,
    TextRun,
)


class TestPdfTextExtractor:
    """Text layer extraction from generated PDFs."""

    @pytest.fixture
    def extractor(self):
        return PdfTextExtractor()

    def test_full_text_and_page_offsets(self, extractor, sample_pdf_bytes):
        result = extractor.extract(sample_pdf_bytes)

        first_page = "Maria died on March 7, 2024.\nOfficials said nothing."
        second_page = "The autopsy was completed on 03/09/2024."

        assert result.page_count == 2
        assert result.full_text == first_page + PAGE_SEPARATOR + second_page
        assert result.page_offsets == [0, len(first_page) + len(PAGE_SEPARATOR)]
        assert result.text_length == len(result.full_text)

    def test_content_hash_is_sha256_of_bytes(self, extractor, sample_pdf_bytes):
        result = extractor.extract(sample_pdf_bytes)

        assert result.content_hash == hashlib.sha256(sample_pdf_bytes).hexdigest()

    def test_runs_point_at_their_own_text(self, extractor, sample_pdf_bytes):
        result = extractor.extract(sample_pdf_bytes)

        assert result.text_runs
        for run in result.text_runs:
            assert result.full_text[run.char_start:run.char_end] == run.text

    def test_runs_are_ordered_and_paged(self, extractor, sample_pdf_bytes):
        result = extractor.extract(sample_pdf_bytes)

        starts = [run.char_start for run in result.text_runs]
        assert starts == sorted(starts)
        assert {run.page for run in result.text_runs} == {1, 2}
        for run in result.text_runs:
            expected_page = 2 if run.char_start >= result.page_offsets[1] else 1
            assert run.page == expected_page

    def test_boxes_use_bottom_left_origin(self, extractor, pdf_factory):
        result = extractor.extract(pdf_factory([["First line of text", "Second line of text"]]))

        first = next(r for r in result.text_runs if r.text == "First")
        second = next(r for r in result.text_runs if r.text == "Second")

        assert first.bbox.x1 > first.bbox.x0
        assert first.bbox.y1 > first.bbox.y0
        # Lower on the page means a smaller y in PDF coordinates
        assert second.bbox.y1 < first.bbox.y1

    def test_run_dict_roundtrip(self, extractor, sample_pdf_bytes):
        run = extractor.extract(sample_pdf_bytes).text_runs[0]

        restored = TextRun.from_dict(run.to_dict())

        assert restored == run

    def test_empty_bytes_raise(self, extractor):
        with pytest.raises(ExtractionError):
            extractor.extract(b"")

    def test_corrupt_bytes_raise(self, extractor):
        with pytest.raises(ExtractionError):
            extractor.extract(b"%PDF-1.4\nthis is not really a pdf\n%%EOF")

    def test_non_pdf_bytes_raise(self, extractor):
        with pytest.raises(ExtractionError):
            extractor.extract(b"plain text, no pdf structure at all")
