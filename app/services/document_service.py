"""Document service: ingestion, reads, deletion and quote review."""

import asyncio
import os
import re
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AppError,
    DocumentNotFoundError,
    DuplicateDocumentError,
    QuoteNotFoundError,
    ValidationError,
)
from app.repositories.document_repository import DocumentRepository
from app.repositories.quote_repository import QuoteRepository
from app.schemas.document import DocumentDetail, DocumentSummary, DocumentUploadResponse
from app.schemas.quote import ExtractedQuoteResponse, QuoteStatus
from app.services.base_service import BaseService
from app.services.extraction.pdf_text_extractor import PdfTextExtractor, compute_content_hash
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

PDF_MAGIC = b"%PDF-"
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(name: Optional[str]) -> str:
    """Strip directories and unsafe characters from an uploaded filename."""
    base = os.path.basename((name or "").replace("\\", "/")).strip()
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", base).strip("._")
    return cleaned or "document.pdf"


class DocumentService(BaseService):
    """Service for document management operations.

    Handles ingestion with duplicate detection, document retrieval,
    deletion and the review of extracted quotes.
    """

    def __init__(self, session: AsyncSession, extractor: Optional[PdfTextExtractor] = None):
        """Initialize document service.

        Args:
            session: Database session
            extractor: PDF text extractor
        """
        super().__init__()
        self.session = session
        self.doc_repo = DocumentRepository(session)
        self.quote_repo = QuoteRepository(session)
        self.extractor = extractor or PdfTextExtractor()

    async def run(self, *args, **kwargs) -> Any:
        """Route to the handler for ``action``."""
        action = kwargs.pop("action", None)

        if action == "ingest":
            return await self._ingest_logic(**kwargs)
        elif action == "review_quote":
            return await self._review_quote_logic(**kwargs)
        else:
            raise AppError(f"Unknown action: {action}")

    def validate(self, *args, **kwargs):
        if kwargs.get("action") != "ingest":
            return

        pdf_bytes = kwargs.get("pdf_bytes") or b""
        if not pdf_bytes:
            raise ValidationError("Uploaded file is empty")
        if len(pdf_bytes) > settings.max_upload_bytes:
            raise ValidationError(
                f"Uploaded file exceeds {settings.max_upload_bytes} bytes"
            )
        if pdf_bytes.lstrip()[:5] != PDF_MAGIC:
            raise ValidationError("Uploaded file is not a PDF")

    async def ingest(
        self,
        pdf_bytes: bytes,
        original_filename: Optional[str] = None,
        case_id: Optional[str] = None,
        document_type: str = "death_report",
        source_url: Optional[str] = None,
        mime_type: str = "application/pdf",
    ) -> DocumentUploadResponse:
        """Store a PDF with its text layer.

        Args:
            pdf_bytes: Raw file content
            original_filename: Name supplied by the client
            case_id: Case the document belongs to
            document_type: Kind of document
            source_url: Where the document was obtained
            mime_type: MIME type reported by the client

        Returns:
            DocumentUploadResponse for the new document

        Raises:
            ValidationError: If the bytes are not a PDF or are too large
            DuplicateDocumentError: If identical bytes are already stored
            ExtractionError: If the PDF cannot be parsed
        """
        return await self.execute(
            action="ingest",
            pdf_bytes=pdf_bytes,
            original_filename=original_filename,
            case_id=case_id,
            document_type=document_type,
            source_url=source_url,
            mime_type=mime_type,
        )

    async def _ingest_logic(
        self,
        pdf_bytes: bytes,
        original_filename: Optional[str],
        case_id: Optional[str],
        document_type: str,
        source_url: Optional[str],
        mime_type: str,
    ) -> DocumentUploadResponse:
        content_hash = compute_content_hash(pdf_bytes)

        existing = await self.doc_repo.get_by_hash(content_hash)
        if existing is not None:
            LOGGER.info(
                "Duplicate upload rejected",
                extra={"existing_document_id": str(existing.id), "content_hash": content_hash[:12]}
            )
            raise DuplicateDocumentError(existing.id, content_hash)

        # pdfplumber is synchronous and CPU bound
        extraction = await asyncio.to_thread(self.extractor.extract, pdf_bytes)

        try:
            document = await self.doc_repo.create_document(
                content_hash=content_hash,
                filename=sanitize_filename(original_filename),
                original_filename=original_filename,
                mime_type=mime_type,
                file_size=len(pdf_bytes),
                document_type=document_type or "death_report",
                source_url=source_url,
                case_id=case_id,
                full_text=extraction.full_text,
                page_count=extraction.page_count,
                page_offsets=extraction.page_offsets,
                text_runs=[run.to_dict() for run in extraction.text_runs],
            )
        except IntegrityError:
            # A concurrent upload of the same bytes won the unique constraint
            existing = await self.doc_repo.get_by_hash(content_hash)
            if existing is not None:
                raise DuplicateDocumentError(existing.id, content_hash)
            raise

        LOGGER.info(
            f"Ingested document {document.id}",
            extra={
                "page_count": extraction.page_count,
                "text_length": extraction.text_length,
                "case_id": case_id,
            }
        )
        return DocumentUploadResponse(
            document_id=document.id,
            filename=document.filename,
            original_filename=document.original_filename,
            page_count=document.page_count,
            text_length=extraction.text_length,
            case_id=document.case_id,
            document_type=document.document_type,
            content_hash=content_hash,
        )

    async def list_documents(
        self,
        case_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[DocumentSummary]:
        """List documents with their quote counters."""
        rows = await self.doc_repo.list_with_counts(case_id=case_id, limit=limit, offset=offset)
        return [
            DocumentSummary(
                id=document.id,
                filename=document.filename,
                original_filename=document.original_filename,
                page_count=document.page_count,
                document_type=document.document_type,
                case_id=document.case_id,
                processed=document.processed,
                uploaded_at=document.uploaded_at,
                quote_count=quote_count,
                pending_quotes=pending_quotes,
            )
            for document, quote_count, pending_quotes in rows
        ]

    async def get_document(self, document_id: UUID, include_text: bool = False) -> DocumentDetail:
        """Get a document with its quotes.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        document = await self.doc_repo.get_by_id(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document with ID {document_id} not found")

        quotes = await self.quote_repo.get_by_document(document_id)
        return DocumentDetail(
            id=document.id,
            filename=document.filename,
            original_filename=document.original_filename,
            mime_type=document.mime_type,
            file_size=document.file_size,
            page_count=document.page_count,
            document_type=document.document_type,
            source_url=document.source_url,
            case_id=document.case_id,
            processed=document.processed,
            processed_at=document.processed_at,
            extraction_model=document.extraction_model,
            uploaded_at=document.uploaded_at,
            full_text=document.full_text if include_text else None,
            page_offsets=document.page_offsets if include_text else None,
            text_runs=document.text_runs if include_text else None,
            quotes=[ExtractedQuoteResponse.model_validate(q) for q in quotes],
        )

    async def delete_document(self, document_id: UUID) -> None:
        """Delete a document and its quotes.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        if not await self.doc_repo.delete_document(document_id):
            raise DocumentNotFoundError(f"Document with ID {document_id} not found")

    async def get_quotes(
        self,
        document_id: UUID,
        status: Optional[QuoteStatus] = None,
    ) -> List[ExtractedQuoteResponse]:
        """Quotes of a document ordered by ``char_start``.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        if await self.doc_repo.get_by_id(document_id) is None:
            raise DocumentNotFoundError(f"Document with ID {document_id} not found")

        quotes = await self.quote_repo.get_by_document(
            document_id, status=status.value if status else None
        )
        return [ExtractedQuoteResponse.model_validate(q) for q in quotes]

    async def review_quote(
        self,
        quote_id: UUID,
        status: QuoteStatus,
        rejection_reason: Optional[str] = None,
    ) -> ExtractedQuoteResponse:
        """Record a reviewer decision on a quote.

        Raises:
            QuoteNotFoundError: If the quote does not exist
        """
        return await self.execute(
            action="review_quote",
            quote_id=quote_id,
            status=status,
            rejection_reason=rejection_reason,
        )

    async def _review_quote_logic(
        self,
        quote_id: UUID,
        status: QuoteStatus,
        rejection_reason: Optional[str],
    ) -> ExtractedQuoteResponse:
        quote = await self.quote_repo.update_review(quote_id, status, rejection_reason)
        if quote is None:
            raise QuoteNotFoundError(f"Quote with ID {quote_id} not found")

        LOGGER.info(
            f"Quote {quote_id} marked {status.value}",
            extra={"document_id": str(quote.document_id)}
        )
        return ExtractedQuoteResponse.model_validate(quote)
