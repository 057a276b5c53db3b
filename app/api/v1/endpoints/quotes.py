from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.core.exceptions import QuoteNotFoundError
from app.dependencies import get_document_service
from app.schemas.common import ApiResponse
from app.schemas.quote import QuoteReviewRequest
from app.services.document_service import DocumentService
from app.utils.responses import create_api_response, error_payload

router = APIRouter()


@router.patch(
    "/{quote_id}",
    response_model=ApiResponse,
    summary="Review an extracted quote",
    operation_id="review_quote",
)
async def review_quote(
    request: Request,
    quote_id: UUID,
    payload: QuoteReviewRequest,
    document_service: Annotated[DocumentService, Depends(get_document_service)] = None,
) -> ApiResponse:
    """Accept, reject or reset a quote."""
    try:
        quote = await document_service.review_quote(
            quote_id,
            payload.status,
            rejection_reason=payload.rejection_reason,
        )
    except QuoteNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_payload(
                title="Quote Not Found",
                status=status.HTTP_404_NOT_FOUND,
                detail=f"Quote with ID {quote_id} not found",
                request=request,
            ),
        )

    return create_api_response(
        data=quote,
        message=f"Quote marked {payload.status.value}",
        request=request
    )
