from fastapi import APIRouter

from app.api.v1.endpoints import documents, extractions, quotes

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(documents.router, prefix="/documents", tags=["Documents"])
api_router.include_router(extractions.router, prefix="/extractions", tags=["Extractions"])
api_router.include_router(quotes.router, prefix="/quotes", tags=["Quotes"])

__all__ = ["api_router"]
