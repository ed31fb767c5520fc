"""
Pipeline error taxonomy.

Two tiers of failure exist inside a job run:

  EnrichmentDegraded  — an optional enrichment call (OCR, embedding) failed.
                        Absorbed inside the processor and replaced with
                        fallback content; the job still completes.
  ProcessingFailed    — anything else (fetch, parse, filesystem, store).
                        Terminal for the run: the job moves to `error`.

ValidationError / NotFound / InvalidState are raised synchronously to the
immediate caller and never change job state.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every error raised by the pipeline."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PipelineError):
    """Malformed input (bad job type, empty url, blank search query)."""


class NotFound(PipelineError):
    """Referenced Job or Document does not exist."""


class JobDeleted(NotFound):
    """A save targeted a Job that was deleted while it was being processed."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} was deleted during processing")
        self.job_id = job_id


class InvalidState(PipelineError):
    """Operation is illegal for the job's current status."""


class InvalidStateTransition(InvalidState):
    """Attempted a status change that is not an edge of the job state machine."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Illegal job status transition: {current} -> {target}")
        self.current = current
        self.target = target


class EnrichmentDegraded(PipelineError):
    """An optional enrichment step failed; callers substitute fallback content."""


class EmbeddingUnavailable(EnrichmentDegraded):
    pass


class OcrUnavailable(EnrichmentDegraded):
    pass


class OcrTimeout(OcrUnavailable):
    pass


class ProcessingFailed(PipelineError):
    """Structural failure of a job run. The original exception is `__cause__`."""

    def __init__(self, job_id: str, message: str) -> None:
        super().__init__(message)
        self.job_id = job_id
