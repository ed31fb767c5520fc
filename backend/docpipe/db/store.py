"""
JobStore — durable persistence for Job and Document records.

Every operation opens its own short-lived session (expire_on_commit=False),
so the ORM objects returned here are detached handles that processors can
mutate freely between awaits.

Change notification:
  save_job() invokes the injected `on_job_changed(job_id)` callback after the
  write commits. Creation is deliberately NOT reported; every later save is.
  The callback is plain data flow (no ORM event hooks), so the store never
  imports the notification layer.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docpipe.core.errors import JobDeleted
from docpipe.models.jobs import Document, Job, utcnow

logger = logging.getLogger(__name__)

JobChangedCallback = Callable[[str], None]


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class JobStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        on_job_changed: Optional[JobChangedCallback] = None,
    ) -> None:
        self._sessions = session_factory
        self.on_job_changed = on_job_changed

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def create_job(self, url: str, type: str, progress: list[str]) -> Job:
        now = utcnow()
        job = Job(
            url=url,
            type=type,
            status="pending",
            progress=list(progress),
            created_at=now,
            updated_at=now,
        )
        async with self._sessions() as session:
            session.add(job)
            await session.commit()
        logger.debug("Job created | job=%s type=%s", job.id, type)
        return job

    async def get_job(self, job_id: str) -> Job | None:
        async with self._sessions() as session:
            return await session.get(Job, job_id)

    async def save_job(self, job: Job) -> Job:
        """
        Persist the mutable fields of `job` (status, progress) and refresh
        updated_at. Raises JobDeleted if the row no longer exists.
        """
        job.updated_at = utcnow()
        async with self._sessions() as session:
            result = await session.execute(
                update(Job)
                .where(Job.id == job.id)
                .values(
                    status=job.status,
                    progress=list(job.progress),
                    updated_at=job.updated_at,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        if result.rowcount == 0:
            raise JobDeleted(job.id)

        if self.on_job_changed is not None:
            self.on_job_changed(job.id)
        return job

    async def delete_job(self, job_id: str) -> bool:
        """Delete a job and every document it owns. Returns whether the job existed."""
        async with self._sessions() as session:
            job = await session.get(Job, job_id)
            if job is None:
                return False
            docs = await session.execute(delete(Document).where(Document.job_id == job_id))
            await session.execute(delete(Job).where(Job.id == job_id))
            await session.commit()
        logger.info("Job deleted | job=%s documents=%d", job_id, docs.rowcount or 0)
        return True

    async def list_jobs(
        self,
        status: str | None = None,
        type: str | None = None,
    ) -> list[Job]:
        stmt = select(Job)
        if status is not None:
            stmt = stmt.where(Job.status == status)
        if type is not None:
            stmt = stmt.where(Job.type == type)
        stmt = stmt.order_by(Job.created_at.desc())

        async with self._sessions() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(self, **fields: Any) -> Document:
        now = utcnow()
        document = Document(created_at=now, updated_at=now, **fields)
        async with self._sessions() as session:
            session.add(document)
            await session.commit()
        logger.debug("Document created | doc=%s job=%s", document.id, document.job_id)
        return document

    async def get_document(self, document_id: str) -> Document | None:
        async with self._sessions() as session:
            return await session.get(Document, document_id)

    async def list_documents(
        self,
        job_id: str | None = None,
        type: str | None = None,
        url: str | None = None,
    ) -> list[Document]:
        stmt = select(Document)
        if job_id is not None:
            stmt = stmt.where(Document.job_id == job_id)
        if type is not None:
            stmt = stmt.where(Document.type == type)
        if url is not None:
            stmt = stmt.where(Document.url == url)
        stmt = stmt.order_by(Document.created_at.desc())

        async with self._sessions() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def documents_for_jobs(self, job_ids: Iterable[str]) -> dict[str, list[Document]]:
        """Bulk-load documents for many jobs in one query, grouped by job id."""
        ids = list(job_ids)
        grouped: dict[str, list[Document]] = {job_id: [] for job_id in ids}
        if not ids:
            return grouped

        async with self._sessions() as session:
            result = await session.execute(
                select(Document)
                .where(Document.job_id.in_(ids))
                .order_by(Document.created_at.desc())
            )
            for doc in result.scalars().all():
                grouped.setdefault(doc.job_id, []).append(doc)
        return grouped

    async def search_documents(self, query: str) -> list[Document]:
        """Case-insensitive substring match on extracted_text."""
        pattern = f"%{_escape_like(query)}%"
        async with self._sessions() as session:
            result = await session.execute(
                select(Document)
                .where(Document.extracted_text.ilike(pattern, escape="\\"))
                .order_by(Document.created_at.desc())
            )
            return list(result.scalars().all())

    async def delete_documents_for_job(self, job_id: str) -> int:
        async with self._sessions() as session:
            result = await session.execute(delete(Document).where(Document.job_id == job_id))
            await session.commit()
        return result.rowcount or 0

    async def delete_document(self, document_id: str) -> bool:
        async with self._sessions() as session:
            result = await session.execute(delete(Document).where(Document.id == document_id))
            await session.commit()
        return bool(result.rowcount)
