from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.core.exceptions import DatabaseError, DocumentNotFoundError, NoModelAvailableError
from app.dependencies import get_document_service, get_extraction_orchestrator
from app.schemas.common import ApiResponse
from app.schemas.quote import (
    ExtractedQuoteResponse,
    ExtractionRequest,
    ExtractionRunResponse,
    QuoteStatus,
)
from app.services.document_service import DocumentService
from app.services.extraction.extraction_orchestrator import ExtractionOrchestrator
from app.utils.logging import get_logger
from app.utils.responses import create_api_response, error_payload

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse,
    summary="Run quote extraction for a document",
    operation_id="run_extraction",
)
async def run_extraction(
    request: Request,
    payload: ExtractionRequest,
    orchestrator: Annotated[ExtractionOrchestrator, Depends(get_extraction_orchestrator)] = None,
) -> ApiResponse:
    """Classify, validate and store the quotes of a document.

    Replaces any quotes from a previous run.
    """
    try:
        result = await orchestrator.run(payload.document_id, case_id=payload.case_id)
    except DocumentNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_payload(
                title="Document Not Found",
                status=status.HTTP_404_NOT_FOUND,
                detail=f"Document with ID {payload.document_id} not found",
                request=request,
            ),
        )
    except NoModelAvailableError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=error_payload(
                title="No Model Available",
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=str(e),
                request=request,
            ),
        )
    except DatabaseError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=error_payload(
                title="Persistence Failed",
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=str(e),
                request=request,
            ),
        )

    response = ExtractionRunResponse(
        document_id=result.document_id,
        model=result.model,
        sentences_found=result.sentences_found,
        sentences_classified=result.sentences_classified,
        candidates=result.candidates,
        quotes_validated=result.quotes_validated,
        quotes_extracted=result.quotes_persisted,
        rejected_candidates=len(result.rejections),
        quotes=[ExtractedQuoteResponse.model_validate(q) for q in result.quotes],
    )

    return create_api_response(
        data=response,
        message=f"Extracted {result.quotes_persisted} quotes",
        request=request
    )


@router.get(
    "/{document_id}/quotes",
    response_model=ApiResponse,
    summary="Get extracted quotes for a document",
    operation_id="get_document_quotes",
)
async def get_document_quotes(
    request: Request,
    document_id: UUID,
    quote_status: Optional[QuoteStatus] = Query(None, alias="status"),
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
) -> ApiResponse:
    """Stored quotes of a document ordered by ``char_start``."""
    try:
        quotes = await document_service.get_quotes(document_id, status=quote_status)
    except DocumentNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_payload(
                title="Document Not Found",
                status=status.HTTP_404_NOT_FOUND,
                detail=f"Document with ID {document_id} not found",
                request=request,
            ),
        )

    return create_api_response(
        data={
            "document_id": str(document_id),
            "quotes": [q.model_dump(mode="json") for q in quotes],
            "total": len(quotes),
        },
        message="Quotes retrieved successfully",
        request=request
    )
