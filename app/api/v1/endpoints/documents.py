from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status

from app.core.exceptions import (
    DocumentNotFoundError,
    DuplicateDocumentError,
    ExtractionError,
    ValidationError,
)
from app.dependencies import get_document_service
from app.schemas.common import ApiResponse
from app.services.document_service import DocumentService
from app.utils.logging import get_logger
from app.utils.responses import create_api_response, error_payload

LOGGER = get_logger(__name__)

router = APIRouter()

PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}


def _is_pdf_upload(file: UploadFile) -> bool:
    filename = (file.filename or "").lower()
    return (file.content_type or "").lower() in PDF_CONTENT_TYPES or filename.endswith(".pdf")


def _not_found(request: Request, document_id: UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=error_payload(
            title="Document Not Found",
            status=status.HTTP_404_NOT_FOUND,
            detail=f"Document with ID {document_id} not found",
            request=request,
        ),
    )


@router.post(
    "/upload",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a PDF document",
    operation_id="upload_document",
)
async def upload_document(
    request: Request,
    file: UploadFile = File(..., description="PDF document to ingest"),
    case_id: Optional[str] = Form(None),
    document_type: str = Form("death_report"),
    source_url: Optional[str] = Form(None),
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
) -> ApiResponse:
    """Ingest a PDF: extract its text layer and store it, rejecting duplicates."""
    if not _is_pdf_upload(file):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_payload(
                title="Invalid File Type",
                status=status.HTTP_400_BAD_REQUEST,
                detail="Only PDF files are accepted",
                request=request,
            ),
        )

    pdf_bytes = await file.read()

    try:
        result = await document_service.ingest(
            pdf_bytes,
            original_filename=file.filename,
            case_id=case_id,
            document_type=document_type,
            source_url=source_url,
            mime_type=file.content_type or "application/pdf",
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_payload(
                title="Invalid Document",
                status=status.HTTP_400_BAD_REQUEST,
                detail=str(e),
                request=request,
            ),
        )
    except DuplicateDocumentError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=error_payload(
                title="Duplicate Document",
                status=status.HTTP_409_CONFLICT,
                detail="A document with identical content has already been uploaded",
                request=request,
                extra={"existing_document_id": str(e.existing_document_id)},
            ),
        )
    except ExtractionError as e:
        LOGGER.warning(f"Rejected unparseable upload: {e}", extra={"upload_filename": file.filename})
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=error_payload(
                title="PDF Extraction Failed",
                status=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=str(e),
                request=request,
            ),
        )

    return create_api_response(
        data=result,
        message="Document uploaded successfully",
        request=request
    )


@router.get(
    "",
    response_model=ApiResponse,
    summary="List documents",
    operation_id="list_documents",
)
async def list_documents(
    request: Request,
    case_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
) -> ApiResponse:
    """List documents, optionally for one case, with quote counters."""
    documents = await document_service.list_documents(case_id=case_id, limit=limit, offset=offset)

    return create_api_response(
        data={
            "documents": [d.model_dump(mode="json") for d in documents],
            "total": len(documents),
        },
        message="Documents retrieved successfully",
        request=request
    )


@router.get(
    "/{document_id}",
    response_model=ApiResponse,
    summary="Get document details",
    operation_id="get_document",
)
async def get_document(
    request: Request,
    document_id: UUID,
    include_text: bool = Query(False, description="Include full text, page offsets and text runs"),
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
) -> ApiResponse:
    """Retrieve document metadata and quotes by ID."""
    try:
        document = await document_service.get_document(document_id, include_text=include_text)
    except DocumentNotFoundError:
        raise _not_found(request, document_id)

    return create_api_response(
        data=document,
        message="Document details retrieved successfully",
        request=request
    )


@router.delete(
    "/{document_id}",
    response_model=ApiResponse,
    summary="Delete document",
    operation_id="delete_document",
)
async def delete_document(
    request: Request,
    document_id: UUID,
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
) -> ApiResponse:
    """Delete a document and all of its extracted quotes."""
    try:
        await document_service.delete_document(document_id)
    except DocumentNotFoundError:
        raise _not_found(request, document_id)

    return create_api_response(
        data={"document_id": str(document_id)},
        message="Document deleted successfully",
        request=request
    )
