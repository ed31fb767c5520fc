"""docpipe — asynchronous URL ingestion pipeline (HTML and PDF)."""

__version__ = "1.0.0"
