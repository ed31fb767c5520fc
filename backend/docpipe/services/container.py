"""
Service wiring — the single place where the pipeline is assembled.

  engine ─► JobStore ─► processors (html, pdf) ─► JobService ─► JobQueue
                │                                    │
                └─ on_job_changed ◄── NotificationRegistry(load_snapshot)

Built once per process by the application lifespan; tests build their own
with a throwaway SQLite file and a mock HTTP transport.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from docpipe.core.config import Settings, settings as default_settings
from docpipe.db.session import build_engine, build_session_factory, init_models
from docpipe.db.store import JobStore
from docpipe.processing.embeddings import EmbeddingClient
from docpipe.processing.html import HtmlProcessor
from docpipe.processing.ocr import OcrClient
from docpipe.processing.pdf import PdfProcessor
from docpipe.services.documents import DocumentService
from docpipe.services.jobs import JobService
from docpipe.services.notifications import NotificationRegistry
from docpipe.workers.queue import JobQueue

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    engine:           AsyncEngine
    store:            JobStore
    registry:         NotificationRegistry
    job_service:      JobService
    document_service: DocumentService
    queue:            JobQueue
    http_clients:     list[httpx.AsyncClient] = field(default_factory=list)

    async def start(self) -> None:
        await self.queue.start()

    async def aclose(self) -> None:
        await self.queue.stop()
        await self.registry.drain()
        for client in self.http_clients:
            await client.aclose()
        await self.engine.dispose()
        logger.info("Services closed")


async def build_services(
    config:         Optional[Settings] = None,
    database_url:   Optional[str] = None,
    transport:      Optional[httpx.AsyncBaseTransport] = None,
) -> AppServices:
    """
    Assemble every component and create missing tables.

    `transport` replaces the network layer of all outbound HTTP clients
    (fetch, embedding, OCR); tests pass an httpx.MockTransport.
    """
    config = config or default_settings

    engine = build_engine(database_url or config.database_url)
    await init_models(engine)
    store = JobStore(build_session_factory(engine))

    fetch_http = httpx.AsyncClient(transport=transport)
    embed_http = httpx.AsyncClient(transport=transport)
    ocr_http = httpx.AsyncClient(transport=transport)

    embeddings = EmbeddingClient(
        url=config.embedding_service_url,
        timeout=config.embedding_timeout_seconds,
        dimensions=config.embedding_dimensions,
        max_concurrency=config.embedding_max_concurrency,
        http_client=embed_http,
    )
    ocr = OcrClient(
        url=config.ocr_service_url,
        timeout=config.ocr_timeout_seconds,
        http_client=ocr_http,
    )

    processors = {
        HtmlProcessor.job_type: HtmlProcessor(
            store, embeddings, fetch_http, fetch_timeout=config.fetch_timeout_seconds,
        ),
        PdfProcessor.job_type: PdfProcessor(
            store, embeddings, ocr, fetch_http,
            fetch_timeout=config.fetch_timeout_seconds,
            dpi=config.pdf_render_dpi,
        ),
    }

    job_service = JobService(store, processors)
    registry = NotificationRegistry(job_service.load_snapshot)
    store.on_job_changed = registry.notify
    queue = JobQueue(job_service.process_job, concurrency=config.worker_concurrency)
    job_service.queue = queue

    return AppServices(
        engine=engine,
        store=store,
        registry=registry,
        job_service=job_service,
        document_service=DocumentService(store),
        queue=queue,
        http_clients=[fetch_http, embed_http, ocr_http],
    )
