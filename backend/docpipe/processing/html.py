"""
HTML Processor
══════════════

Pipeline (one progress entry per step, each persisted and broadcast):

  Fetching HTML document            GET job.url
  Parsing HTML document             BeautifulSoup(html.parser)
  Creating text chunks              one chunk per <p>, else the whole body
  Generating embeddings for chunks  page number 1 for every chunk
  Saving document                   Document(type="html")
  Processing complete               status → done
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bs4 import BeautifulSoup

from docpipe.models.jobs import Document, Job
from docpipe.processing.base import BaseProcessor
from docpipe.schemas.jobs import JobType

logger = logging.getLogger(__name__)

UNTITLED = "Untitled Document"


@dataclass
class ParsedHtml:
    title:     str
    body_text: str
    chunks:    list[str]


def parse_html(html: str) -> ParsedHtml:
    """
    Extract title, whitespace-collapsed body text and paragraph chunks.

    When the markup has no <p> elements the body text is the single chunk.
    Paragraph texts are trimmed but kept even when empty, so the chunk list
    mirrors the document's paragraph structure.
    """
    soup = BeautifulSoup(html, "html.parser")

    title = soup.title.get_text() if soup.title else ""
    root = soup.body if soup.body is not None else soup
    body_text = " ".join(root.get_text().split())

    paragraphs = [p.get_text().strip() for p in soup.find_all("p")]
    chunks = paragraphs if paragraphs else [body_text]

    return ParsedHtml(title=title or UNTITLED, body_text=body_text, chunks=chunks)


class HtmlProcessor(BaseProcessor):
    job_type = JobType.HTML.value

    async def process(self, job: Job) -> Document:
        await self.milestone(job, "Fetching HTML document")
        response = await self.fetch(job.url)
        html = response.text

        await self.milestone(job, "Parsing HTML document")
        parsed = parse_html(html)

        await self.milestone(job, "Creating text chunks")
        logger.info("HTML parsed | job=%s chunks=%d chars=%d",
                    job.id, len(parsed.chunks), len(parsed.body_text))

        batch = await self.embed_chunks(job, parsed.chunks)

        await self.milestone(job, "Saving document")
        document = await self._store.create_document(
            job_id=job.id,
            type=JobType.HTML.value,
            title=parsed.title,
            url=job.url,
            content=html,
            extracted_text=parsed.body_text,
            chunks=list(parsed.chunks),
            chunk_objects=batch.chunk_objects(),
            pages=[],
        )

        await self.finish(job)
        return document
