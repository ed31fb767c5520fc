"""
Unit Tests — PdfProcessor
═════════════════════════

PDFs are generated with PyMuPDF, fetched through FakeNetwork, rendered for
real and "OCR'd" by the fake OCR endpoint.

Coverage targets:
  ✅ N pages → N page records numbered 1..N, N chunks "Page i: <text>"
  ✅ exact progress sequence for a successful run
  ✅ OCR failure on one page → simulated text + progress note, job still done
  ✅ chunk_objects carry the page number of their chunk
  ✅ temp dir removed on success and on failure; removal errors only logged
  ✅ corrupt PDF propagates; zero-page PDF completes empty
"""

from __future__ import annotations

import base64
import logging
from unittest.mock import patch

import httpx
import pytest

from docpipe.processing.pdf import simulated_page_text
from tests.helpers import OCR_URL, make_empty_pdf, make_pdf

PDF_URL = "https://example.com/report.pdf"


async def _processing_job(store, url=PDF_URL):
    job = await store.create_job(url, "pdf", ["job created"])
    job.status = "processing"
    await store.save_job(job)
    return job


def _serve_pdf(network, page_texts):
    data = make_pdf(page_texts)
    network.serve(PDF_URL, data, content_type="application/pdf")
    return data


@pytest.mark.pipeline
class TestPdfProcessorHappyPath:

    async def test_three_page_pdf(self, store, network, pdf_processor):
        pdf_bytes = _serve_pdf(network, ["alpha", "beta", "gamma"])
        job = await _processing_job(store)

        document = await pdf_processor.process(job)

        assert document.type == "pdf"
        assert document.title == f"PDF Document from {PDF_URL}"
        assert base64.b64decode(document.content) == pdf_bytes
        assert [p["pageNumber"] for p in document.pages] == [1, 2, 3]
        assert all(p["text"] == "recognized text" for p in document.pages)
        assert all(p["imageUrl"].startswith("data:image/jpeg;base64,") for p in document.pages)
        assert document.chunks == [f"Page {i}: recognized text" for i in (1, 2, 3)]
        assert [c["text"] for c in document.chunk_objects] == document.chunks
        assert [c["pageNumber"] for c in document.chunk_objects] == [1, 2, 3]
        assert document.extracted_text == "recognized text\n\nrecognized text\n\nrecognized text"

    async def test_progress_sequence(self, store, network, pdf_processor):
        _serve_pdf(network, ["one", "two"])
        job = await _processing_job(store)

        await pdf_processor.process(job)

        persisted = await store.get_job(job.id)
        assert persisted.status == "done"
        assert persisted.progress == [
            "job created",
            "Fetching PDF document",
            "Loading PDF document",
            "Converting PDF pages to images",
            "Processing page 1 of 2",
            "OCR completed for page 1",
            "Processing page 2 of 2",
            "OCR completed for page 2",
            "Generating embeddings for chunks",
            "Saving document",
            "Processing complete",
        ]

    async def test_each_page_is_sent_to_ocr_as_jpeg(self, store, network, pdf_processor):
        _serve_pdf(network, ["one", "two"])
        job = await _processing_job(store)

        document = await pdf_processor.process(job)

        ocr_requests = [r for r in network.requests if r.headers.get("Content-Type") == "image/jpeg"]
        assert len(ocr_requests) == 2
        for request, page in zip(ocr_requests, document.pages):
            assert request.content[:2] == b"\xff\xd8"
            assert page["imageUrl"].endswith(base64.b64encode(request.content).decode("ascii"))


@pytest.mark.pipeline
class TestPdfProcessorDegraded:

    async def test_ocr_failure_on_one_page_uses_simulated_text(self, store, network, pdf_processor):
        _serve_pdf(network, ["one", "two", "three"])
        calls = []

        def flaky(image):
            calls.append(image)
            if len(calls) == 2:
                return httpx.Response(500)
            return httpx.Response(200, json={"text": f"text {len(calls)}"})
        network.ocr_handler = flaky
        job = await _processing_job(store)

        document = await pdf_processor.process(job)

        expected = simulated_page_text(2, PDF_URL)
        assert expected == f"Simulated OCR text for page 2 of the document at {PDF_URL}."
        assert [p["text"] for p in document.pages] == ["text 1", expected, "text 3"]
        assert document.chunks[1] == f"Page 2: {expected}"

        persisted = await store.get_job(job.id)
        assert persisted.status == "done"
        assert "OCR failed for page 2, using simulated text" in persisted.progress
        assert "OCR completed for page 1" in persisted.progress
        assert "OCR completed for page 3" in persisted.progress

    async def test_ocr_and_embedding_outage_still_completes(self, store, network, pdf_processor):
        _serve_pdf(network, ["one"])
        network.ocr_handler = lambda image: httpx.Response(503)
        network.embed_handler = lambda text: httpx.Response(503)
        job = await _processing_job(store)

        document = await pdf_processor.process(job)

        assert len(document.chunk_objects) == 1
        assert len(document.chunk_objects[0]["embedding"]) == 16
        persisted = await store.get_job(job.id)
        assert persisted.status == "done"
        assert persisted.progress[-1] == "Processing complete"


@pytest.mark.pipeline
class TestPdfProcessorResources:

    async def test_temp_dir_removed_after_success(self, store, network, pdf_processor, tmp_path):
        _serve_pdf(network, ["one"])
        work = tmp_path / "work"
        work.mkdir()
        job = await _processing_job(store)

        with patch("docpipe.processing.pdf.tempfile.mkdtemp", return_value=str(work)):
            await pdf_processor.process(job)

        assert not work.exists()

    async def test_temp_dir_removed_after_render_failure(self, store, network, pdf_processor, tmp_path):
        _serve_pdf(network, ["one"])
        work = tmp_path / "work"
        work.mkdir()
        job = await _processing_job(store)

        with patch("docpipe.processing.pdf.tempfile.mkdtemp", return_value=str(work)), \
             patch("docpipe.processing.pdf.render_pages", side_effect=RuntimeError("render crashed")):
            with pytest.raises(RuntimeError, match="render crashed"):
                await pdf_processor.process(job)

        assert not work.exists()

    async def test_cleanup_failure_is_logged_not_raised(self, store, network, pdf_processor, caplog):
        _serve_pdf(network, ["one"])
        job = await _processing_job(store)

        with patch("docpipe.processing.pdf.shutil.rmtree", side_effect=OSError("busy")), \
             caplog.at_level(logging.WARNING, logger="docpipe.processing.pdf"):
            await pdf_processor.process(job)

        assert (await store.get_job(job.id)).status == "done"
        assert any("Temp cleanup failed" in r.getMessage() for r in caplog.records)

    async def test_corrupt_pdf_propagates(self, store, network, pdf_processor):
        network.serve(PDF_URL, b"this is not a pdf at all", content_type="application/pdf")
        job = await _processing_job(store)

        with pytest.raises(Exception):
            await pdf_processor.process(job)

        persisted = await store.get_job(job.id)
        assert persisted.status == "processing"
        assert persisted.progress[-1] == "Loading PDF document"

    async def test_zero_page_pdf_completes_empty(self, store, network, pdf_processor):
        network.serve(PDF_URL, make_empty_pdf(), content_type="application/pdf")
        job = await _processing_job(store)

        document = await pdf_processor.process(job)

        assert document.pages == []
        assert document.chunks == []
        assert document.chunk_objects == []
        assert document.extracted_text == ""
        assert (await store.get_job(job.id)).status == "done"
        assert network.requests_to(OCR_URL) == []
