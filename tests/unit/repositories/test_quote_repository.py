"""Repository tests against an in-memory SQLite database."""

from datetime import date

import pytest

from app.core.exceptions import DatabaseError
from app.repositories.document_repository import DocumentRepository
from app.repositories.quote_repository import ExtractionStore, QuoteRepository
from app.schemas.quote import BoundingBox, PageBoxes, QuoteCategory, QuoteStatus
from app.services.extraction.extraction_orchestrator import QuoteCandidate

MARIA_TEXT = "Maria died on March 7, 2024. Officials said nothing."


def candidate(text, start, category=QuoteCategory.TIMELINE_EVENT, event_date=None, confidence=0.9):
    return QuoteCandidate(
        sentence_index=0,
        quote_text=text,
        char_start=start,
        char_end=start + len(text),
        page_number=1,
        bounding_boxes=[PageBoxes(page_number=1, boxes=[BoundingBox(x0=72, y0=700, x1=200, y1=712)])],
        category=category,
        event_date=event_date,
        confidence=confidence,
    )


MARIA_CANDIDATES = [
    candidate("Officials said nothing.", 29, QuoteCategory.OFFICIAL_STATEMENT, confidence=0.6),
    candidate("Maria died on March 7, 2024.", 0, event_date="2024-03-07"),
]


@pytest.fixture
async def document(db_session):
    repo = DocumentRepository(db_session)
    return await repo.create_document(
        content_hash="a" * 64,
        filename="report.pdf",
        original_filename="report.pdf",
        full_text=MARIA_TEXT,
        page_count=1,
        page_offsets=[0],
        text_runs=[],
        case_id="case-7",
    )


class TestExtractionStore:

    @pytest.mark.asyncio
    async def test_replace_inserts_and_marks_processed(self, db_session, document):
        store = ExtractionStore(db_session)

        rows = await store.replace_quotes(document.id, MARIA_CANDIDATES, "case-7", "stub:model")

        assert [r.char_start for r in rows] == [0, 29]
        assert rows[0].event_date == date(2024, 3, 7)
        assert rows[0].status == QuoteStatus.PENDING.value
        assert rows[0].extracted_by == "stub:model"
        assert rows[0].bounding_boxes[0]["page_number"] == 1

        refreshed = await store.get_document(document.id)
        assert refreshed.processed is True
        assert refreshed.processed_at is not None
        assert refreshed.extraction_model == "stub:model"

    @pytest.mark.asyncio
    async def test_replace_twice_does_not_accumulate(self, db_session, document):
        store = ExtractionStore(db_session)
        quotes = QuoteRepository(db_session)

        await store.replace_quotes(document.id, MARIA_CANDIDATES, None, "stub:model")
        await store.replace_quotes(document.id, MARIA_CANDIDATES, None, "stub:model")

        stored = await quotes.get_by_document(document.id)
        assert [(q.quote_text, q.char_start) for q in stored] == [
            ("Maria died on March 7, 2024.", 0),
            ("Officials said nothing.", 29),
        ]

    @pytest.mark.asyncio
    async def test_failed_replace_keeps_previous_state(self, db_session, document):
        store = ExtractionStore(db_session)
        quotes = QuoteRepository(db_session)
        # The rollback expires every loaded instance
        document_id = document.id
        await store.replace_quotes(document_id, MARIA_CANDIDATES[1:], None, "first-model")

        broken = candidate("Officials said nothing.", 29)
        broken.quote_text = None

        with pytest.raises(DatabaseError):
            await store.replace_quotes(document_id, [broken], None, "second-model")

        stored = await quotes.get_by_document(document_id)
        assert [q.quote_text for q in stored] == ["Maria died on March 7, 2024."]
        reloaded = await store.get_document(document_id)
        assert reloaded.processed is True
        assert reloaded.extraction_model == "first-model"


class TestQuoteRepository:

    @pytest.mark.asyncio
    async def test_review_transitions(self, db_session, document):
        rows = await ExtractionStore(db_session).replace_quotes(
            document.id, MARIA_CANDIDATES, None, "stub:model"
        )
        repo = QuoteRepository(db_session)

        rejected = await repo.update_review(rows[0].id, QuoteStatus.REJECTED, "Not about the death")
        assert rejected.status == "rejected"
        assert rejected.rejection_reason == "Not about the death"
        assert rejected.reviewed_at is not None

        reset = await repo.update_review(rows[0].id, QuoteStatus.PENDING, "ignored")
        assert reset.status == "pending"
        assert reset.rejection_reason is None
        assert reset.reviewed_at is None

    @pytest.mark.asyncio
    async def test_get_by_document_filters_status(self, db_session, document):
        rows = await ExtractionStore(db_session).replace_quotes(
            document.id, MARIA_CANDIDATES, None, "stub:model"
        )
        repo = QuoteRepository(db_session)
        await repo.update_review(rows[1].id, QuoteStatus.ACCEPTED)

        accepted = await repo.get_by_document(document.id, status="accepted")

        assert [q.id for q in accepted] == [rows[1].id]

    @pytest.mark.asyncio
    async def test_missing_quote(self, db_session):
        from uuid import uuid4

        assert await QuoteRepository(db_session).update_review(uuid4(), QuoteStatus.ACCEPTED) is None


class TestDocumentRepository:

    @pytest.mark.asyncio
    async def test_get_by_hash(self, db_session, document):
        repo = DocumentRepository(db_session)

        assert (await repo.get_by_hash("a" * 64)).id == document.id
        assert await repo.get_by_hash("b" * 64) is None

    @pytest.mark.asyncio
    async def test_list_with_counts(self, db_session, document):
        rows = await ExtractionStore(db_session).replace_quotes(
            document.id, MARIA_CANDIDATES, None, "stub:model"
        )
        await QuoteRepository(db_session).update_review(rows[0].id, QuoteStatus.ACCEPTED)
        repo = DocumentRepository(db_session)

        listed = await repo.list_with_counts()
        (listed_document, quote_count, pending_quotes), = listed

        assert listed_document.id == document.id
        assert quote_count == 2
        assert pending_quotes == 1
        assert await repo.list_with_counts(case_id="other-case") == []

    @pytest.mark.asyncio
    async def test_delete_removes_quotes(self, db_session, document):
        await ExtractionStore(db_session).replace_quotes(
            document.id, MARIA_CANDIDATES, None, "stub:model"
        )
        repo = DocumentRepository(db_session)

        assert await repo.delete_document(document.id) is True

        assert await repo.get_by_id(document.id) is None
        assert await QuoteRepository(db_session).count({"document_id": document.id}) == 0
        assert await repo.delete_document(document.id) is False
