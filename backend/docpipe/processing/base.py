"""
Content processor contract.

A processor receives a mutable Job handle and drives it from `processing`
to `done`. Every meaningful milestone is appended to job.progress and
persisted immediately; each save is broadcast to the job's observers, so
milestones must be awaited in order.

Error policy:
  - EnrichmentDegraded (OCR / embedding) is absorbed here and replaced with
    fallback content plus a progress note.
  - Everything else propagates to JobService.process_job, which moves the
    job to `error`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Sequence

import httpx

from docpipe.core.config import settings
from docpipe.db.store import JobStore
from docpipe.models.jobs import Document, Job
from docpipe.processing.embeddings import EmbeddingBatch, EmbeddingClient
from docpipe.schemas.jobs import JobStatus
from docpipe.services.state_machine import transition

logger = logging.getLogger(__name__)

PROCESSING_COMPLETE = "Processing complete"


class BaseProcessor(ABC):
    job_type: str = ""

    def __init__(
        self,
        store:         JobStore,
        embeddings:    EmbeddingClient,
        http_client:   httpx.AsyncClient,
        fetch_timeout: float | None = None,
    ) -> None:
        self._store = store
        self._embeddings = embeddings
        self._http = http_client
        self._fetch_timeout = fetch_timeout or settings.fetch_timeout_seconds

    @abstractmethod
    async def process(self, job: Job) -> Document:
        """Run the pipeline for `job` and return the persisted Document."""

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    async def milestone(self, job: Job, message: str) -> None:
        job.progress.append(message)
        await self._store.save_job(job)

    async def fetch(self, url: str) -> httpx.Response:
        response = await self._http.get(
            url,
            timeout=self._fetch_timeout,
            follow_redirects=True,
        )
        response.raise_for_status()
        logger.info(
            "Fetched | url=%s status=%d bytes=%d",
            url, response.status_code, len(response.content),
        )
        return response

    async def embed_chunks(
        self,
        job:          Job,
        chunks:       Sequence[str],
        page_numbers: Sequence[int] | None = None,
    ) -> EmbeddingBatch:
        await self.milestone(job, "Generating embeddings for chunks")
        batch = await self._embeddings.embed(chunks, page_numbers=page_numbers)
        if batch.degraded:
            await self.milestone(
                job,
                f"Embedding service unavailable for {batch.degraded} of "
                f"{len(batch.items)} chunks, using fallback vectors",
            )
        return batch

    async def finish(self, job: Job) -> None:
        job.progress.append(PROCESSING_COMPLETE)
        transition(job, JobStatus.DONE)
        try:
            await self._store.save_job(job)
        except Exception:
            # persisted status is still `processing`
            job.status = JobStatus.PROCESSING.value
            raise
