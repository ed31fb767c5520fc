"""
Embedding Client  —  Per-Chunk Embeddings with Fallback Vectors
═══════════════════════════════════════════════════════════════

Contract:
  embed(texts) → EmbeddingBatch with exactly one item per input text, in
  input order. The batch never fails as a whole.

Wire format (external embedding service):
  POST <embedding_service_url>   {"text": "<chunk>"}
  200 OK                         {"embedding": [float, ...]}

Concurrency:
  Each text is embedded independently. Up to `max_concurrency` requests are
  in flight at once (semaphore). Results are assembled by index, so the
  completion order of individual requests never affects chunk order.

Failure policy (availability over correctness):
  A timeout, non-2xx response or malformed body for one text raises
  EmbeddingUnavailable inside the client; the text is then given a
  fallback vector of `dimensions` uniform values in [-1, 1]. The number of
  substituted vectors is reported as `EmbeddingBatch.degraded` so the
  processor can note it in the job's progress.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Sequence

import httpx

from docpipe.core.config import settings
from docpipe.core.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)


def fallback_vector(dimensions: int) -> list[float]:
    """Pseudo-random stand-in embedding used when the service is unavailable."""
    return [random.uniform(-1.0, 1.0) for _ in range(dimensions)]


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ChunkEmbedding:
    text:        str
    embedding:   list[float]
    page_number: int = 1
    fallback:    bool = False

    def as_chunk_object(self) -> dict:
        """Persisted shape of Document.chunk_objects entries."""
        return {
            "text":       self.text,
            "embedding":  self.embedding,
            "pageNumber": self.page_number,
        }


@dataclass
class EmbeddingBatch:
    """
    items      : one ChunkEmbedding per input text, input order preserved
    degraded   : how many items carry a fallback vector
    elapsed_ms : wall time of the whole batch
    """
    items:      list[ChunkEmbedding] = field(default_factory=list)
    degraded:   int = 0
    elapsed_ms: float = 0.0

    def chunk_objects(self) -> list[dict]:
        return [item.as_chunk_object() for item in self.items]


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class EmbeddingClient:
    """
    Usage:
        client = EmbeddingClient()
        batch  = await client.embed(["first chunk", "second chunk"])
        await client.close()
    """

    def __init__(
        self,
        url:             str | None   = None,
        timeout:         float | None = None,
        dimensions:      int | None   = None,
        max_concurrency: int | None   = None,
        http_client:     httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url or settings.embedding_service_url
        self._timeout = timeout if timeout is not None else settings.embedding_timeout_seconds
        self._dimensions = dimensions or settings.embedding_dimensions
        self._max_concurrency = max_concurrency or settings.embedding_max_concurrency
        self._http = http_client or httpx.AsyncClient()

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def close(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    async def embed(
        self,
        texts:        Sequence[str],
        page_numbers: Sequence[int] | None = None,
    ) -> EmbeddingBatch:
        """
        Embed every text; never raises for service failures.

        Args:
            texts:        chunk texts, in document order
            page_numbers: optional 1-based page per text (defaults to 1)
        """
        if page_numbers is not None and len(page_numbers) != len(texts):
            raise ValueError("page_numbers must be the same length as texts")
        if not texts:
            return EmbeddingBatch()

        t0 = time.monotonic()
        semaphore = asyncio.Semaphore(self._max_concurrency)
        pages = list(page_numbers) if page_numbers is not None else [1] * len(texts)

        items = await asyncio.gather(*[
            self._embed_or_fallback(text, pages[idx], idx, semaphore)
            for idx, text in enumerate(texts)
        ])

        batch = EmbeddingBatch(
            items=list(items),
            degraded=sum(1 for item in items if item.fallback),
            elapsed_ms=(time.monotonic() - t0) * 1000,
        )
        logger.info(
            "Embeddings | chunks=%d degraded=%d elapsed_ms=%.0f",
            len(batch.items), batch.degraded, batch.elapsed_ms,
        )
        return batch

    # ------------------------------------------------------------------
    # Single-text helpers
    # ------------------------------------------------------------------

    async def _embed_or_fallback(
        self,
        text:        str,
        page_number: int,
        idx:         int,
        semaphore:   asyncio.Semaphore,
    ) -> ChunkEmbedding:
        async with semaphore:
            try:
                vector = await self.embed_one(text)
                return ChunkEmbedding(text=text, embedding=vector, page_number=page_number)
            except EmbeddingUnavailable as exc:
                logger.warning("Embedding fallback | chunk=%d reason=%s", idx, exc.message)
                return ChunkEmbedding(
                    text=text,
                    embedding=fallback_vector(self._dimensions),
                    page_number=page_number,
                    fallback=True,
                )

    async def embed_one(self, text: str) -> list[float]:
        """Embed a single text. Raises EmbeddingUnavailable on any service failure."""
        try:
            payload = await asyncio.wait_for(self._post(text), timeout=self._timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise EmbeddingUnavailable(
                f"embedding request timed out after {self._timeout:.0f}s"
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise EmbeddingUnavailable(
                f"embedding service returned {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise EmbeddingUnavailable(f"embedding request failed: {exc}") from exc

        embedding = payload.get("embedding") if isinstance(payload, dict) else None
        if not isinstance(embedding, list) or not embedding:
            raise EmbeddingUnavailable("embedding service response has no 'embedding' list")
        try:
            return [float(value) for value in embedding]
        except (TypeError, ValueError) as exc:
            raise EmbeddingUnavailable("embedding contains non-numeric values") from exc

    async def _post(self, text: str) -> object:
        response = await self._http.post(
            self._url,
            json={"text": text},
            timeout=self._timeout,
        )
        response.raise_for_status()
        return response.json()
