"""Repository for extracted quotes and the transactional replace of a run."""

from datetime import date, datetime, timezone
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DatabaseError
from app.database.models import Document, ExtractedQuote
from app.repositories.base_repository import BaseRepository
from app.repositories.document_repository import DocumentRepository
from app.schemas.quote import QuoteStatus
from app.services.extraction.extraction_orchestrator import QuoteCandidate
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class QuoteRepository(BaseRepository[ExtractedQuote]):
    """Repository for ExtractedQuote model."""

    def __init__(self, session: AsyncSession):
        """Initialize the quote repository.

        Args:
            session: SQLAlchemy async session
        """
        super().__init__(session, ExtractedQuote)

    async def get_by_document(
        self,
        document_id: UUID,
        status: Optional[str] = None
    ) -> List[ExtractedQuote]:
        """Get all quotes of a document ordered by ``char_start``.

        Args:
            document_id: Document UUID
            status: Optional filter by review status

        Returns:
            List of quotes
        """
        try:
            query = select(ExtractedQuote).where(ExtractedQuote.document_id == document_id)
            if status:
                query = query.where(ExtractedQuote.status == status)
            query = query.order_by(ExtractedQuote.char_start, ExtractedQuote.char_end)

            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error getting quotes by document: {e}",
                extra={"document_id": str(document_id), "status": status},
                exc_info=True
            )
            raise

    async def update_review(
        self,
        quote_id: UUID,
        status: QuoteStatus,
        rejection_reason: Optional[str] = None,
    ) -> Optional[ExtractedQuote]:
        """Record a reviewer decision.

        Moving a quote back to ``pending`` clears the review fields; a
        rejection reason is only kept for ``rejected``.

        Returns:
            The updated quote, or None if it does not exist
        """
        if status == QuoteStatus.PENDING:
            reviewed_at = None
            rejection_reason = None
        else:
            reviewed_at = datetime.now(timezone.utc)
            if status != QuoteStatus.REJECTED:
                rejection_reason = None

        return await self.update(
            quote_id,
            status=status.value,
            rejection_reason=rejection_reason,
            reviewed_at=reviewed_at,
        )


class ExtractionStore:
    """SQLAlchemy storage for extraction runs.

    ``replace_quotes`` deletes the previous quotes, inserts the new set
    and marks the document processed in a single transaction, so no
    reader ever sees a document with its old quotes gone and the new
    ones missing.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.documents = DocumentRepository(session)

    async def get_document(self, document_id: UUID) -> Optional[Document]:
        return await self.documents.get_by_id(document_id)

    async def replace_quotes(
        self,
        document_id: UUID,
        candidates: Sequence[QuoteCandidate],
        case_id: Optional[str],
        extraction_model: str,
    ) -> List[ExtractedQuote]:
        """Replace all quotes of a document and mark it processed.

        Raises:
            DatabaseError: If the transaction fails; nothing is changed
        """
        now = datetime.now(timezone.utc)
        rows = [
            ExtractedQuote(
                document_id=document_id,
                case_id=case_id,
                quote_text=candidate.quote_text,
                char_start=candidate.char_start,
                char_end=candidate.char_end,
                page_number=candidate.page_number,
                bounding_boxes=[boxes.model_dump() for boxes in candidate.bounding_boxes],
                category=candidate.category.value,
                event_date=date.fromisoformat(candidate.event_date) if candidate.event_date else None,
                confidence_score=candidate.confidence,
                extracted_by=extraction_model,
                status=QuoteStatus.PENDING.value,
            )
            for candidate in candidates
        ]

        try:
            deleted = await self.session.execute(
                delete(ExtractedQuote).where(ExtractedQuote.document_id == document_id)
            )
            self.session.add_all(rows)
            await self.session.execute(
                update(Document)
                .where(Document.id == document_id)
                .values(
                    processed=True,
                    processed_at=now,
                    extraction_model=extraction_model,
                    updated_at=now,
                )
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(
                f"Failed to replace quotes: {e}",
                extra={"document_id": str(document_id)},
                exc_info=True
            )
            raise DatabaseError(f"Failed to persist quotes for document {document_id}", original_error=e) from e

        LOGGER.info(
            f"Replaced quotes for document {document_id}",
            extra={"deleted": deleted.rowcount, "inserted": len(rows), "model": extraction_model}
        )
        return sorted(rows, key=lambda q: (q.char_start, q.char_end))
