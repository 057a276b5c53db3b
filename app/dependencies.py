"""Centralized dependency injection for FastAPI application.

Services and pipeline collaborators are built per request so tests can
swap any of them through ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_async_session
from app.core.llm_client import ModelClient
from app.core.unified_llm import create_llm_client_from_settings
from app.repositories.quote_repository import ExtractionStore
from app.services.document_service import DocumentService
from app.services.extraction.extraction_orchestrator import ExtractionOrchestrator


async def get_document_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> DocumentService:
    """Get document service instance.

    Args:
        db_session: Database session from dependency injection

    Returns:
        DocumentService: Ingestion, reads and quote review
    """
    return DocumentService(db_session)


def get_model_client() -> ModelClient:
    """Get a provider chain built from ``LLM_*`` settings.

    A new chain per request, so the model attributed to a run is the one
    that served that run. Each provider attempt is limited to
    ``EXTRACTION_CALL_TIMEOUT_SECONDS`` so a hung provider falls through to
    the next one.
    """
    return create_llm_client_from_settings(
        settings.llm,
        provider_timeout_seconds=settings.extraction.call_timeout_seconds,
    )


async def get_extraction_orchestrator(
    db_session: Annotated[AsyncSession, Depends(get_async_session)],
    model_client: Annotated[ModelClient, Depends(get_model_client)],
) -> ExtractionOrchestrator:
    """Get an extraction orchestrator bound to the request's session."""
    return ExtractionOrchestrator(
        model_client=model_client,
        storage=ExtractionStore(db_session),
        extraction_settings=settings.extraction,
    )
