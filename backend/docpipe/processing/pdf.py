"""
PDF Processor  —  Render, OCR and Embed Each Page
═════════════════════════════════════════════════

Pipeline:

  Fetching PDF document             GET job.url (raw bytes)
  Loading PDF document              PyMuPDF page count N
  Converting PDF pages to images    one JPEG per page in a private temp dir
  Processing page i of N            OCR per page (bounded timeout)
    OCR completed for page i          service text
    OCR failed for page i, ...        simulated text substituted
  Generating embeddings for chunks  "Page i: <text>" chunks, page number i
  Saving document                   Document(type="pdf", content=base64)
  Processing complete               status → done

PyMuPDF and all file I/O are blocking, so they run in the default thread
executor. The temp dir belongs to exactly one run and is removed on every
exit path; a failed removal is logged and never fails the job.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import os
import shutil
import tempfile

import httpx

from docpipe.core.config import settings
from docpipe.core.errors import OcrUnavailable
from docpipe.db.store import JobStore
from docpipe.models.jobs import Document, Job
from docpipe.processing.base import BaseProcessor
from docpipe.processing.embeddings import EmbeddingClient
from docpipe.processing.ocr import OcrClient
from docpipe.schemas.jobs import JobType

logger = logging.getLogger(__name__)


def simulated_page_text(page_number: int, url: str) -> str:
    return f"Simulated OCR text for page {page_number} of the document at {url}."


# ---------------------------------------------------------------------------
# Blocking helpers (thread executor)
# ---------------------------------------------------------------------------

def count_pages(pdf_bytes: bytes) -> int:
    import fitz  # PyMuPDF

    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        return doc.page_count


def render_pages(pdf_path: str, out_dir: str, dpi: int) -> list[str]:
    """Render every page to <out_dir>/page-<n>.jpg. Returns paths in page order."""
    import fitz  # PyMuPDF

    paths: list[str] = []
    with fitz.open(pdf_path) as doc:
        for page_num, page in enumerate(doc, start=1):
            pix = page.get_pixmap(dpi=dpi)
            path = os.path.join(out_dir, f"page-{page_num}.jpg")
            pix.save(path)
            paths.append(path)
    return paths


def _write_bytes(path: str, data: bytes) -> None:
    with open(path, "wb") as fh:
        fh.write(data)


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as fh:
        return fh.read()


def remove_work_dir(path: str) -> None:
    try:
        shutil.rmtree(path)
    except OSError as exc:
        logger.warning("Temp cleanup failed | dir=%s error=%s", path, exc)


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------

class PdfProcessor(BaseProcessor):
    job_type = JobType.PDF.value

    def __init__(
        self,
        store:         JobStore,
        embeddings:    EmbeddingClient,
        ocr:           OcrClient,
        http_client:   httpx.AsyncClient,
        fetch_timeout: float | None = None,
        dpi:           int | None   = None,
    ) -> None:
        super().__init__(store, embeddings, http_client, fetch_timeout)
        self._ocr = ocr
        self._dpi = dpi or settings.pdf_render_dpi

    async def process(self, job: Job) -> Document:
        loop = asyncio.get_event_loop()

        await self.milestone(job, "Fetching PDF document")
        response = await self.fetch(job.url)
        pdf_bytes = response.content

        await self.milestone(job, "Loading PDF document")
        page_count = await loop.run_in_executor(None, count_pages, pdf_bytes)
        logger.info("PDF loaded | job=%s pages=%d bytes=%d", job.id, page_count, len(pdf_bytes))

        work_dir = await loop.run_in_executor(None, tempfile.mkdtemp, "", "pdf-")
        try:
            pdf_path = os.path.join(work_dir, "document.pdf")
            await loop.run_in_executor(None, _write_bytes, pdf_path, pdf_bytes)

            await self.milestone(job, "Converting PDF pages to images")
            image_paths = await loop.run_in_executor(
                None, render_pages, pdf_path, work_dir, self._dpi,
            )

            pages: list[dict] = []
            chunks: list[str] = []
            page_numbers: list[int] = []

            for page_number, image_path in enumerate(image_paths[:page_count], start=1):
                await self.milestone(job, f"Processing page {page_number} of {page_count}")

                image = await loop.run_in_executor(None, _read_bytes, image_path)
                text = await self._recognize_page(job, page_number, image)
                await self._store.save_job(job)

                pages.append({
                    "pageNumber": page_number,
                    "text":       text,
                    "imageUrl":   "data:image/jpeg;base64," + base64.b64encode(image).decode("ascii"),
                })
                chunks.append(f"Page {page_number}: {text}")
                page_numbers.append(page_number)

            batch = await self.embed_chunks(job, chunks, page_numbers)
        finally:
            await loop.run_in_executor(None, remove_work_dir, work_dir)

        await self.milestone(job, "Saving document")
        document = await self._store.create_document(
            job_id=job.id,
            type=JobType.PDF.value,
            title=f"PDF Document from {job.url}",
            url=job.url,
            content=base64.b64encode(pdf_bytes).decode("ascii"),
            extracted_text="\n\n".join(page["text"] for page in pages),
            chunks=chunks,
            chunk_objects=batch.chunk_objects(),
            pages=pages,
        )

        await self.finish(job)
        return document

    async def _recognize_page(self, job: Job, page_number: int, image: bytes) -> str:
        """OCR one page. Appends the outcome note; the caller persists it."""
        try:
            text = await self._ocr.recognize(image)
        except OcrUnavailable as exc:
            logger.warning(
                "OCR fallback | job=%s page=%d reason=%s", job.id, page_number, exc.message,
            )
            job.progress.append(f"OCR failed for page {page_number}, using simulated text")
            return simulated_page_text(page_number, job.url)

        job.progress.append(f"OCR completed for page {page_number}")
        return text
