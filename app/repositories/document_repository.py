from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import case, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import defer

from app.database.models import Document, ExtractedQuote
from app.repositories.base_repository import BaseRepository
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentRepository(BaseRepository[Document]):
    """Repository for managing Document records.

    Inherits from BaseRepository for standard CRUD operations.
    """

    def __init__(self, session: AsyncSession):
        """Initialize document repository.

        Args:
            session: SQLAlchemy async session
        """
        super().__init__(session, Document)

    async def get_by_hash(self, content_hash: str) -> Optional[Document]:
        """Return the document stored with these exact bytes, if any."""
        try:
            result = await self.session.execute(
                select(Document).where(Document.content_hash == content_hash)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error getting document by hash: {e}",
                extra={"content_hash": content_hash[:12]},
                exc_info=True
            )
            raise

    async def create_document(
        self,
        content_hash: str,
        filename: str,
        full_text: str,
        page_count: int,
        page_offsets: List[int],
        text_runs: List[dict],
        original_filename: Optional[str] = None,
        mime_type: str = "application/pdf",
        file_size: int = 0,
        document_type: str = "death_report",
        source_url: Optional[str] = None,
        case_id: Optional[str] = None,
    ) -> Document:
        """Create a new document record with its text layer.

        Returns:
            Created Document record
        """
        return await self.create(
            content_hash=content_hash,
            filename=filename,
            original_filename=original_filename,
            mime_type=mime_type,
            file_size=file_size,
            document_type=document_type,
            source_url=source_url,
            case_id=case_id,
            full_text=full_text,
            page_count=page_count,
            page_offsets=page_offsets,
            text_runs=text_runs,
            processed=False,
        )

    async def list_with_counts(
        self,
        case_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Tuple[Document, int, int]]:
        """List documents, newest first, with total and pending quote counts.

        The text layer columns are not loaded.

        Returns:
            List of (document, quote_count, pending_quotes)
        """
        counts = (
            select(
                ExtractedQuote.document_id.label("document_id"),
                func.count(ExtractedQuote.id).label("quote_count"),
                func.sum(
                    case((ExtractedQuote.status == "pending", 1), else_=0)
                ).label("pending_quotes"),
            )
            .group_by(ExtractedQuote.document_id)
            .subquery()
        )

        query = (
            select(
                Document,
                func.coalesce(counts.c.quote_count, 0),
                func.coalesce(counts.c.pending_quotes, 0),
            )
            .outerjoin(counts, counts.c.document_id == Document.id)
            .options(
                defer(Document.full_text),
                defer(Document.text_runs),
                defer(Document.page_offsets),
            )
            .order_by(Document.uploaded_at.desc())
            .offset(offset)
            .limit(limit)
        )
        if case_id is not None:
            query = query.where(Document.case_id == case_id)

        try:
            result = await self.session.execute(query)
            return [(row[0], int(row[1]), int(row[2])) for row in result.all()]
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error listing documents: {e}",
                extra={"case_id": case_id},
                exc_info=True
            )
            raise

    async def delete_document(self, document_id: UUID) -> bool:
        """Delete a document and its extracted quotes in one transaction.

        Returns:
            True if deleted, False if not found
        """
        try:
            document = await self.get_by_id(document_id)
            if document is None:
                return False

            # Quotes are removed explicitly; SQLite does not enforce the FK cascade
            await self.session.execute(
                delete(ExtractedQuote).where(ExtractedQuote.document_id == document_id)
            )
            await self.session.delete(document)
            await self.session.commit()
            LOGGER.info(f"Deleted document {document_id} and its quotes")
            return True
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(
                f"Error deleting document {document_id}: {e}",
                exc_info=True
            )
            raise
