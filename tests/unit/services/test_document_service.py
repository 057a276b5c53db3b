"""Tests for DocumentService ingestion, reads and review."""

import pytest

from app.core.exceptions import (
    DocumentNotFoundError,
    DuplicateDocumentError,
    ExtractionError,
    QuoteNotFoundError,
    ValidationError,
)
from app.repositories.quote_repository import ExtractionStore
from app.schemas.quote import QuoteCategory, QuoteStatus
from app.services.document_service import DocumentService, sanitize_filename
from app.services.extraction.extraction_orchestrator import QuoteCandidate


@pytest.fixture
def service(db_session):
    return DocumentService(db_session)


class TestIngest:

    @pytest.mark.asyncio
    async def test_ingest_stores_text_layer(self, service, sample_pdf_bytes):
        result = await service.ingest(sample_pdf_bytes, "report.pdf", case_id="case-1")

        assert result.page_count == 2
        assert result.case_id == "case-1"
        assert result.document_type == "death_report"
        assert len(result.content_hash) == 64

        detail = await service.get_document(result.document_id, include_text=True)
        assert "Maria died on March 7, 2024." in detail.full_text
        assert detail.page_offsets[0] == 0
        assert len(detail.page_offsets) == 2
        assert detail.text_runs
        assert detail.processed is False
        assert detail.quotes == []

    @pytest.mark.asyncio
    async def test_text_omitted_by_default(self, service, sample_pdf_bytes):
        result = await service.ingest(sample_pdf_bytes, "report.pdf")

        detail = await service.get_document(result.document_id)

        assert detail.full_text is None
        assert detail.text_runs is None
        assert detail.page_count == 2

    @pytest.mark.asyncio
    async def test_identical_bytes_are_rejected(self, service, sample_pdf_bytes):
        first = await service.ingest(sample_pdf_bytes, "report.pdf")

        with pytest.raises(DuplicateDocumentError) as exc_info:
            await service.ingest(sample_pdf_bytes, "renamed-copy.pdf")

        assert exc_info.value.existing_document_id == first.document_id
        assert len(await service.list_documents()) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [b"", b"hello, not a pdf", b"PK\x03\x04zipfile"])
    async def test_non_pdf_rejected(self, service, payload):
        with pytest.raises(ValidationError):
            await service.ingest(payload, "notes.txt")

        assert await service.list_documents() == []

    @pytest.mark.asyncio
    async def test_corrupt_pdf_is_extraction_error(self, service):
        with pytest.raises(ExtractionError):
            await service.ingest(b"%PDF-1.7\nthis is not really a pdf", "broken.pdf")

        assert await service.list_documents() == []

    @pytest.mark.asyncio
    async def test_unsafe_filename_is_sanitized(self, service, sample_pdf_bytes):
        result = await service.ingest(sample_pdf_bytes, "../../etc/coroner report.pdf")

        assert result.filename == "coroner_report.pdf"
        assert result.original_filename == "../../etc/coroner report.pdf"


def test_sanitize_filename_fallback():
    assert sanitize_filename(None) == "document.pdf"
    assert sanitize_filename("...") == "document.pdf"
    assert sanitize_filename("C:\\scans\\report 1.pdf") == "report_1.pdf"


class TestReadsAndReview:

    @pytest.mark.asyncio
    async def test_list_filters_by_case(self, service, pdf_factory):
        await service.ingest(pdf_factory([["First case file mentions the river."]]), "a.pdf", case_id="a")
        await service.ingest(pdf_factory([["Second case file mentions the bridge."]]), "b.pdf", case_id="b")

        listed = await service.list_documents(case_id="b")

        assert [d.filename for d in listed] == ["b.pdf"]
        assert listed[0].quote_count == 0

    @pytest.mark.asyncio
    async def test_missing_document(self, service):
        from uuid import uuid4

        with pytest.raises(DocumentNotFoundError):
            await service.get_document(uuid4())
        with pytest.raises(DocumentNotFoundError):
            await service.get_quotes(uuid4())
        with pytest.raises(DocumentNotFoundError):
            await service.delete_document(uuid4())

    @pytest.mark.asyncio
    async def test_review_and_status_filter(self, service, db_session, sample_pdf_bytes):
        uploaded = await service.ingest(sample_pdf_bytes, "report.pdf")
        detail = await service.get_document(uploaded.document_id, include_text=True)
        quote = "Maria died on March 7, 2024."
        start = detail.full_text.index(quote)
        await ExtractionStore(db_session).replace_quotes(
            uploaded.document_id,
            [QuoteCandidate(
                sentence_index=0,
                quote_text=quote,
                char_start=start,
                char_end=start + len(quote),
                page_number=1,
                bounding_boxes=[],
                category=QuoteCategory.TIMELINE_EVENT,
                event_date="2024-03-07",
                confidence=0.9,
            )],
            None,
            "stub:model",
        )
        stored = await service.get_quotes(uploaded.document_id)

        reviewed = await service.review_quote(stored[0].id, QuoteStatus.ACCEPTED)

        assert reviewed.status == QuoteStatus.ACCEPTED
        assert reviewed.reviewed_at is not None
        assert await service.get_quotes(uploaded.document_id, status=QuoteStatus.PENDING) == []
        accepted = await service.get_quotes(uploaded.document_id, status=QuoteStatus.ACCEPTED)
        assert [q.quote_text for q in accepted] == [quote]

    @pytest.mark.asyncio
    async def test_review_missing_quote(self, service):
        from uuid import uuid4

        with pytest.raises(QuoteNotFoundError):
            await service.review_quote(uuid4(), QuoteStatus.REJECTED, "wrong person")
