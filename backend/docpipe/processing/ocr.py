"""
OCR Client  —  Text Extraction from Rendered Page Images
════════════════════════════════════════════════════════

One page per call:

  POST <ocr_service_url>   body = raw JPEG bytes, Content-Type: image/jpeg
  200 OK                   {"text": "<recognized text>"}

Timeout is bounded (ocr_timeout_seconds, ~10 s) so a stalled OCR service
cannot stall a whole PDF job.

The client does NOT invent fallback text. It raises:
  OcrTimeout      — the request exceeded the timeout
  OcrUnavailable  — transport error, non-2xx response or malformed body
and the PDF processor decides what to substitute.
"""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from docpipe.core.config import settings
from docpipe.core.errors import OcrTimeout, OcrUnavailable

logger = logging.getLogger(__name__)


class OcrClient:
    def __init__(
        self,
        url:         str | None   = None,
        timeout:     float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url or settings.ocr_service_url
        self._timeout = timeout if timeout is not None else settings.ocr_timeout_seconds
        self._http = http_client or httpx.AsyncClient()

    async def close(self) -> None:
        await self._http.aclose()

    async def recognize(self, image_bytes: bytes) -> str:
        t0 = time.monotonic()
        try:
            payload = await asyncio.wait_for(self._post(image_bytes), timeout=self._timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise OcrTimeout(f"OCR request timed out after {self._timeout:.0f}s") from exc
        except httpx.HTTPStatusError as exc:
            raise OcrUnavailable(f"OCR service returned {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise OcrUnavailable(f"OCR request failed: {exc}") from exc

        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str):
            raise OcrUnavailable("OCR service response has no 'text' field")

        logger.debug(
            "OCR | bytes=%d chars=%d elapsed_ms=%.0f",
            len(image_bytes), len(text), (time.monotonic() - t0) * 1000,
        )
        return text

    async def _post(self, image_bytes: bytes) -> object:
        response = await self._http.post(
            self._url,
            content=image_bytes,
            headers={"Content-Type": "image/jpeg"},
            timeout=self._timeout,
        )
        response.raise_for_status()
        return response.json()
