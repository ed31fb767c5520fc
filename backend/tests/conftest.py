"""
Root conftest.py — Shared fixtures for ALL tests

Fixture hierarchy (all function-scoped):
  db_url → engine → store → processors → job_service → registry
  network → http_client → embedding_client / ocr_client
  services_factory → api_app → api_client

Environment strategy:
  - Every test gets its own SQLite database file under tmp_path, so
    concurrent sessions (processor saves vs. background publishes) behave
    like they do against a real server database.
  - No test touches the network: every outbound request (page fetches,
    embedding service, OCR service) is answered by FakeNetwork through
    httpx.MockTransport (see tests/helpers.py).
  - PDFs are generated on the fly with PyMuPDF.

How to run:
  pytest                    # all tests
  pytest -m unit            # component tests
  pytest -m pipeline        # end-to-end job runs
  pytest -m api             # HTTP + WebSocket surface
"""

from __future__ import annotations

import os
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any docpipe imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("APP_ENV",               "test")
os.environ.setdefault("DATABASE_URL",          "sqlite+aiosqlite://")
os.environ.setdefault("EMBEDDING_SERVICE_URL", "http://embedder.test/embed")
os.environ.setdefault("OCR_SERVICE_URL",       "http://ocr.test/ocr")
os.environ.setdefault("WORKER_CONCURRENCY",    "1")

from docpipe.db.session import build_engine, build_session_factory, init_models  # noqa: E402
from docpipe.db.store import JobStore  # noqa: E402
from docpipe.processing.embeddings import EmbeddingClient  # noqa: E402
from docpipe.processing.html import HtmlProcessor  # noqa: E402
from docpipe.processing.ocr import OcrClient  # noqa: E402
from docpipe.processing.pdf import PdfProcessor  # noqa: E402
from docpipe.services.jobs import JobService  # noqa: E402
from docpipe.services.notifications import NotificationRegistry  # noqa: E402
from tests.helpers import EMBED_URL, OCR_URL, FakeNetwork  # noqa: E402


# ─────────────────────────────────────────────────────────────────────────────
# Database
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'docpipe-test.db'}"


@pytest_asyncio.fixture
async def engine(db_url):
    eng = build_engine(db_url)
    await init_models(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def store(engine) -> JobStore:
    return JobStore(build_session_factory(engine))


# ─────────────────────────────────────────────────────────────────────────────
# Outbound HTTP
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest_asyncio.fixture
async def http_client(network) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=network.transport) as client:
        yield client


@pytest.fixture
def embedding_client(http_client) -> EmbeddingClient:
    return EmbeddingClient(
        url=EMBED_URL,
        timeout=2.0,
        dimensions=16,
        max_concurrency=4,
        http_client=http_client,
    )


@pytest.fixture
def ocr_client(http_client) -> OcrClient:
    return OcrClient(url=OCR_URL, timeout=2.0, http_client=http_client)


# ─────────────────────────────────────────────────────────────────────────────
# Pipeline
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def html_processor(store, embedding_client, http_client) -> HtmlProcessor:
    return HtmlProcessor(store, embedding_client, http_client, fetch_timeout=5.0)


@pytest.fixture
def pdf_processor(store, embedding_client, ocr_client, http_client) -> PdfProcessor:
    return PdfProcessor(store, embedding_client, ocr_client, http_client, fetch_timeout=5.0, dpi=36)


@pytest.fixture
def job_service(store, html_processor, pdf_processor) -> JobService:
    return JobService(store, {"html": html_processor, "pdf": pdf_processor})


@pytest_asyncio.fixture
async def registry(store, job_service) -> AsyncGenerator[NotificationRegistry, None]:
    reg = NotificationRegistry(job_service.load_snapshot)
    store.on_job_changed = reg.notify
    yield reg
    await reg.drain()


# ─────────────────────────────────────────────────────────────────────────────
# ASGI app
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def services_factory(db_url, network):
    from docpipe.services.container import build_services

    return lambda: build_services(database_url=db_url, transport=network.transport)


@pytest_asyncio.fixture
async def api_app(services_factory):
    from docpipe.main import create_app

    app = create_app(services_factory=services_factory)
    async with app.router.lifespan_context(app):
        yield app


@pytest_asyncio.fixture
async def api_client(api_app) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=api_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
