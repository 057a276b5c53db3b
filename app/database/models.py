"""SQLAlchemy models for all database tables."""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    TIMESTAMP,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(Base):
    """Uploaded source document with its extracted text layer.

    Immutable once stored except for the ``processed`` bookkeeping
    columns, which are written by a successful extraction run.
    """

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    content_hash: Mapped[str] = mapped_column(
        String(64), unique=True, index=True, nullable=False,
        comment="SHA-256 of the raw bytes, used to reject duplicate uploads"
    )
    filename: Mapped[str] = mapped_column(String, nullable=False)
    original_filename: Mapped[str | None] = mapped_column(String, nullable=True)
    mime_type: Mapped[str] = mapped_column(String, nullable=False, default="application/pdf")
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    document_type: Mapped[str] = mapped_column(String(50), nullable=False, default="death_report")
    source_url: Mapped[str | None] = mapped_column(String, nullable=True)
    case_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)

    full_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    page_count: Mapped[int] = mapped_column(Integer, nullable=False)
    page_offsets: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list,
        comment="Character offset in full_text where each page begins"
    )
    text_runs: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list,
        comment="Positioned runs: [{text, char_start, char_end, page, bbox}]"
    )

    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    extraction_model: Mapped[str | None] = mapped_column(String, nullable=True)

    uploaded_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    quotes: Mapped[list["ExtractedQuote"]] = relationship(
        "ExtractedQuote",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ExtractedQuote.char_start",
    )


class ExtractedQuote(Base):
    """A verbatim quotation of a document, classified by the language model.

    For every row, ``document.full_text[char_start:char_end].strip()``
    equals ``quote_text.strip()``.
    """

    __tablename__ = "extracted_quotes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"),
        index=True, nullable=False
    )
    case_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)

    quote_text: Mapped[str] = mapped_column(Text, nullable=False)
    char_start: Mapped[int] = mapped_column(Integer, nullable=False)
    char_end: Mapped[int] = mapped_column(Integer, nullable=False)
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    bounding_boxes: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list,
        comment="Boxes grouped by page: [{page_number, boxes: [{x0, y0, x1, y1}]}]"
    )

    category: Mapped[str] = mapped_column(
        String(50), nullable=False,
        comment="timeline_event | medical | official_statement | background"
    )
    event_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    confidence_score: Mapped[float] = mapped_column(
        Numeric(5, 4, asdecimal=False), nullable=False
    )
    extracted_by: Mapped[str] = mapped_column(String, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )  # pending | accepted | rejected
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    document: Mapped["Document"] = relationship("Document", back_populates="quotes")
