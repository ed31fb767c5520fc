"""
Content Processing Package
══════════════════════════

Turns a fetched URL into a Document:

  Fetch → Parse / Render + OCR → Chunk → Embed → Persist

Modules
───────
  base.py        Processor contract and shared milestone / fetch / embed steps
  html.py        HTML pages (BeautifulSoup), one chunk per paragraph
  pdf.py         PDF files (PyMuPDF render), one OCR'd chunk per page
  embeddings.py  Embedding service client with fallback vectors
  ocr.py         OCR service client
"""

from docpipe.processing.base import BaseProcessor
from docpipe.processing.embeddings import ChunkEmbedding, EmbeddingBatch, EmbeddingClient
from docpipe.processing.html import HtmlProcessor
from docpipe.processing.ocr import OcrClient
from docpipe.processing.pdf import PdfProcessor

__all__ = [
    "BaseProcessor",
    "ChunkEmbedding",
    "EmbeddingBatch",
    "EmbeddingClient",
    "HtmlProcessor",
    "OcrClient",
    "PdfProcessor",
]
