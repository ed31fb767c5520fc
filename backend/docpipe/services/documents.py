"""
Document Service — read and delete access to processed documents.

Documents are only ever created by processors; this service never writes
one. Deleting a document also deletes the job that produced it.
"""

from __future__ import annotations

import logging

from docpipe.core.errors import NotFound, ValidationError
from docpipe.db.store import JobStore
from docpipe.schemas.jobs import (
    ChunkObject,
    DocumentSnapshot,
    DocumentWithJob,
    JobSnapshot,
    JobType,
    PageRecord,
)

logger = logging.getLogger(__name__)


class DocumentService:
    def __init__(self, store: JobStore) -> None:
        self._store = store

    async def get_document_by_id(self, document_id: str) -> DocumentSnapshot:
        document = await self._store.get_document(document_id)
        if document is None:
            raise NotFound(f"Document {document_id} not found")
        return DocumentSnapshot.model_validate(document)

    async def get_all_documents(self) -> list[DocumentSnapshot]:
        return self._snapshots(await self._store.list_documents())

    async def get_documents_by_job_id(self, job_id: str) -> list[DocumentSnapshot]:
        return self._snapshots(await self._store.list_documents(job_id=job_id))

    async def get_documents_by_type(self, type: str) -> list[DocumentSnapshot]:
        try:
            doc_type = JobType(type).value
        except ValueError:
            raise ValidationError(f"Invalid document type '{type}'")
        return self._snapshots(await self._store.list_documents(type=doc_type))

    async def get_documents_by_url(self, url: str) -> list[DocumentSnapshot]:
        return self._snapshots(await self._store.list_documents(url=url))

    async def get_document_chunks(self, document_id: str) -> list[ChunkObject]:
        document = await self.get_document_by_id(document_id)
        return document.chunk_objects

    async def get_document_pages(self, document_id: str) -> list[PageRecord]:
        """Rendered pages of a PDF document. Non-PDF documents have none."""
        document = await self.get_document_by_id(document_id)
        if document.type != JobType.PDF:
            raise NotFound(f"Document {document_id} is not a PDF and has no pages")
        return document.pages

    async def get_document_with_job(self, document_id: str) -> DocumentWithJob:
        document = await self.get_document_by_id(document_id)
        job = await self._store.get_job(document.job_id)
        return DocumentWithJob(
            document=document,
            job=JobSnapshot.build(job) if job is not None else None,
        )

    async def search_documents(self, query: str) -> list[DocumentSnapshot]:
        if not query or not query.strip():
            raise ValidationError("search query must not be empty")
        return self._snapshots(await self._store.search_documents(query.strip()))

    async def delete_document(self, document_id: str) -> bool:
        document = await self._store.get_document(document_id)
        if document is None:
            return False
        await self._store.delete_document(document_id)
        await self._store.delete_job(document.job_id)
        logger.info("Document deleted | doc=%s job=%s", document_id, document.job_id)
        return True

    @staticmethod
    def _snapshots(documents) -> list[DocumentSnapshot]:
        return [DocumentSnapshot.model_validate(doc) for doc in documents]
