"""
Test doubles shared across the suite.

  FakeNetwork   answers every outbound request (pages, embedding, OCR)
  FakeObserver  records what the notification registry sends it
  make_pdf        builds a real PDF with PyMuPDF
  make_empty_pdf  hand-written PDF with zero pages
"""

from __future__ import annotations

import json
from typing import Callable

import httpx

from docpipe.core.config import settings

EMBED_URL = settings.embedding_service_url
OCR_URL = settings.ocr_service_url
TEST_VECTOR = [0.25, -0.5, 0.75]

ONE_PARAGRAPH_HTML = """
<html>
  <head><title>Example Page</title></head>
  <body>
    <h1>Heading</h1>
    <p>  The only paragraph on this page.  </p>
  </body>
</html>
"""


class FakeNetwork:
    """
    In-memory stand-in for the web, the embedding service and the OCR service.

      serve(url, body)       register a fetchable resource
      embed_handler(text)    → httpx.Response for POST EMBED_URL
      ocr_handler(image)     → httpx.Response for POST OCR_URL

    Handlers may raise httpx exceptions to simulate transport failures.
    """

    def __init__(self) -> None:
        self.resources: dict[str, tuple[int, bytes, str]] = {}
        self.embed_handler: Callable[[str], httpx.Response] = (
            lambda text: httpx.Response(200, json={"embedding": TEST_VECTOR})
        )
        self.ocr_handler: Callable[[bytes], httpx.Response] = (
            lambda image: httpx.Response(200, json={"text": "recognized text"})
        )
        self.requests: list[httpx.Request] = []

    def serve(
        self,
        url:          str,
        body:         str | bytes,
        content_type: str = "text/html; charset=utf-8",
        status:       int = 200,
    ) -> None:
        data = body.encode("utf-8") if isinstance(body, str) else body
        self.resources[url] = (status, data, content_type)

    def requests_to(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url) == url]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if url == EMBED_URL:
            return self.embed_handler(json.loads(request.content)["text"])
        if url == OCR_URL:
            return self.ocr_handler(request.content)
        if url in self.resources:
            status, data, content_type = self.resources[url]
            return httpx.Response(status, content=data, headers={"Content-Type": content_type})
        return httpx.Response(404, text="not found")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


class FakeObserver:
    """Observer double: records every payload it is sent."""

    def __init__(self, is_open: bool = True, fail: bool = False) -> None:
        self.is_open = is_open
        self.fail = fail
        self.sent: list[str] = []

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("observer went away")
        self.sent.append(data)

    @property
    def snapshots(self) -> list[dict]:
        return [json.loads(payload) for payload in self.sent]


def make_pdf(page_texts: list[str]) -> bytes:
    """Build a small PDF with one text line per page."""
    import fitz

    doc = fitz.open()
    for text in page_texts:
        page = doc.new_page(width=300, height=200)
        page.insert_text((20, 40), text, fontsize=12)
    data = doc.tobytes()
    doc.close()
    return data


def make_empty_pdf() -> bytes:
    """A well-formed PDF whose page tree has no kids (PyMuPDF refuses to write one)."""
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [] /Count 0 >>",
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_at = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\n" % (len(objects) + 1)
    out += b"startxref\n%d\n%%%%EOF\n" % xref_at
    return bytes(out)
