"""
Job Service

Owns the job lifecycle:
  create_job   validate + persist a pending job (not published)
  submit_job   create_job + enqueue for the worker loop
  process_job  pending → processing → done | error, via the type's processor
  retry_job    error → pending, then process again
  delete_job   remove the job and its documents; an in-flight run stops at
               its next persisted milestone
  get_*        snapshots joined with their documents, newest first

Failure boundary:
  process_job is the only place a run's failure is converted into job
  state. Anything a processor raises (other than a cancellation) flips the
  job to `error`, appends "error: <message>", persists, and is re-raised as
  ProcessingFailed chained to the original exception.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Mapping

from docpipe.core.errors import (
    InvalidState,
    JobDeleted,
    NotFound,
    PipelineError,
    ProcessingFailed,
    ValidationError,
)
from docpipe.db.store import JobStore
from docpipe.models.jobs import Job
from docpipe.processing.base import BaseProcessor
from docpipe.schemas.jobs import JobSnapshot, JobStatus, JobType
from docpipe.services.state_machine import transition

if TYPE_CHECKING:
    from docpipe.workers.queue import JobQueue

logger = logging.getLogger(__name__)

JOB_CREATED = "job created"
JOB_RETRIED = "job retried"


def _validate_type(value: str) -> str:
    try:
        return JobType(value).value
    except ValueError:
        allowed = ", ".join(t.value for t in JobType)
        raise ValidationError(f"Invalid job type '{value}'. Must be one of: {allowed}")


def _validate_status(value: str) -> str:
    try:
        return JobStatus(value).value
    except ValueError:
        allowed = ", ".join(s.value for s in JobStatus)
        raise ValidationError(f"Invalid job status '{value}'. Must be one of: {allowed}")


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, PipelineError):
        return exc.message
    return str(exc) or exc.__class__.__name__


class JobService:
    def __init__(
        self,
        store:      JobStore,
        processors: Mapping[str, BaseProcessor],
        queue:      "JobQueue | None" = None,
    ) -> None:
        self._store = store
        self._processors = dict(processors)
        self.queue = queue
        self._running: set[str] = set()
        self._cancelled: set[str] = set()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def create_job(self, url: str, type: str) -> Job:
        job_type = _validate_type(type)
        if not url or not url.strip():
            raise ValidationError("url must not be empty")

        job = await self._store.create_job(url=url.strip(), type=job_type, progress=[JOB_CREATED])
        logger.info("Job created | job=%s type=%s url=%s", job.id, job.type, job.url)
        return job

    async def submit_job(self, url: str, type: str) -> Job:
        if self.queue is None:
            raise RuntimeError("JobService has no queue attached")
        job = await self.create_job(url, type)
        await self.queue.submit(job.id)
        return job

    async def process_job(self, job_id: str) -> Job:
        job = await self._store.get_job(job_id)
        if job is None:
            raise NotFound(f"Job {job_id} not found")

        if job.status in (JobStatus.DONE.value, JobStatus.PROCESSING.value):
            logger.debug("Process skipped | job=%s status=%s", job.id, job.status)
            return job

        processor = self._processors.get(job.type)
        if processor is None:
            raise ValidationError(f"No processor registered for job type '{job.type}'")

        transition(job, JobStatus.PROCESSING)
        self._running.add(job.id)
        try:
            await self._store.save_job(job)
            await processor.process(job)
        except JobDeleted:
            await self._discard_cancelled(job)
            raise
        except Exception as exc:
            if job.id in self._cancelled:
                await self._discard_cancelled(job)
                raise JobDeleted(job.id) from exc
            logger.exception("Job failed | job=%s type=%s", job.id, job.type)
            message = _error_message(exc)
            await self._mark_error(job, message)
            raise ProcessingFailed(job.id, message) from exc
        finally:
            self._running.discard(job.id)
            self._cancelled.discard(job.id)

        logger.info("Job done | job=%s type=%s steps=%d", job.id, job.type, len(job.progress))
        return job

    async def retry_job(self, job_id: str) -> JobSnapshot:
        """
        Reset a failed job and run it again.

        A second failure is reflected in the returned snapshot (status
        `error`) rather than raised.
        """
        job = await self._store.get_job(job_id)
        if job is None:
            raise NotFound(f"Job {job_id} not found")
        if job.status != JobStatus.ERROR.value:
            raise InvalidState(
                f"Job {job_id} is '{job.status}'; only jobs in 'error' can be retried"
            )

        transition(job, JobStatus.PENDING)
        job.progress = [JOB_RETRIED]
        await self._store.save_job(job)
        logger.info("Job retried | job=%s", job.id)

        try:
            await self.process_job(job_id)
        except ProcessingFailed as exc:
            logger.warning("Retry failed | job=%s error=%s", job_id, exc.message)

        return await self.get_job_by_id(job_id)

    async def delete_job(self, job_id: str) -> bool:
        if job_id in self._running:
            self._cancelled.add(job_id)
        deleted = await self._store.delete_job(job_id)
        if not deleted:
            self._cancelled.discard(job_id)
        return deleted

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_job_by_id(self, job_id: str) -> JobSnapshot:
        snapshot = await self.load_snapshot(job_id)
        if snapshot is None:
            raise NotFound(f"Job {job_id} not found")
        return snapshot

    async def load_snapshot(self, job_id: str) -> JobSnapshot | None:
        """Current joined snapshot, or None if the job is gone. Used for broadcasts."""
        job = await self._store.get_job(job_id)
        if job is None:
            return None
        documents = await self._store.list_documents(job_id=job_id)
        return JobSnapshot.build(job, documents)

    async def get_all_jobs(self) -> list[JobSnapshot]:
        return await self._snapshots(await self._store.list_jobs())

    async def get_jobs_by_status(self, status: str) -> list[JobSnapshot]:
        return await self._snapshots(await self._store.list_jobs(status=_validate_status(status)))

    async def get_jobs_by_type(self, type: str) -> list[JobSnapshot]:
        return await self._snapshots(await self._store.list_jobs(type=_validate_type(type)))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _snapshots(self, jobs: list[Job]) -> list[JobSnapshot]:
        grouped = await self._store.documents_for_jobs(job.id for job in jobs)
        return [JobSnapshot.build(job, grouped.get(job.id, [])) for job in jobs]

    async def _mark_error(self, job: Job, message: str) -> None:
        job.progress.append(f"error: {message}")
        transition(job, JobStatus.ERROR)
        try:
            await self._store.save_job(job)
        except JobDeleted:
            logger.info("Job deleted before its failure was recorded | job=%s", job.id)
        except Exception:
            logger.exception("Could not record job failure | job=%s", job.id)

    async def _discard_cancelled(self, job: Job) -> None:
        orphans = await self._store.delete_documents_for_job(job.id)
        logger.info("Job cancelled | job=%s orphaned_documents=%d", job.id, orphans)
