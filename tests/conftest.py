"""Pytest configuration and shared fixtures."""

import os

# Must be set before app modules build the engine from settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from types import SimpleNamespace
from typing import Callable, List, Optional

import pytest
from fastapi.testclient import TestClient
from fpdf import FPDF
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import models  # noqa: F401
from app.core.database import Base
from app.main import app


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
async def db_session() -> AsyncSession:
    """In-memory SQLite session with all tables created.

    A single shared connection keeps the in-memory database alive.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()


def build_pdf(pages: List[List[str]]) -> bytes:
    """Render a PDF with one text line per entry, one page per inner list."""
    pdf = FPDF()
    pdf.set_font("Helvetica", size=12)
    for lines in pages:
        pdf.add_page()
        for line in lines:
            pdf.cell(0, 10, line, new_x="LMARGIN", new_y="NEXT")
    return bytes(pdf.output())


@pytest.fixture
def pdf_factory() -> Callable[[List[List[str]]], bytes]:
    """Factory for small text PDFs."""
    return build_pdf


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Two-page document used across tests."""
    return build_pdf([
        ["Maria died on March 7, 2024.", "Officials said nothing."],
        ["The autopsy was completed on 03/09/2024."],
    ])


def make_document(
    full_text: str,
    page_offsets: Optional[List[int]] = None,
    text_runs: Optional[list] = None,
    case_id: Optional[str] = None,
    **extra,
) -> SimpleNamespace:
    """Stand-in for a stored Document row."""
    return SimpleNamespace(
        full_text=full_text,
        page_offsets=page_offsets if page_offsets is not None else [0],
        text_runs=text_runs or [],
        case_id=case_id,
        processed=False,
        processed_at=None,
        extraction_model=None,
        **extra,
    )


@pytest.fixture
def document_factory() -> Callable[..., SimpleNamespace]:
    """Factory for stored-document stand-ins."""
    return make_document
