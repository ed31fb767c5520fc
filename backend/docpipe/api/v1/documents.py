"""
Documents API Router (read + delete)

  GET    /api/v1/documents                     all, or filtered by ?type= / ?url=
  GET    /api/v1/documents/search?q=           case-insensitive text search
  GET    /api/v1/documents/job/{job_id}        documents of one job
  GET    /api/v1/documents/{id}                one document
  GET    /api/v1/documents/{id}/job            document with its job
  GET    /api/v1/documents/{id}/chunks         embedded chunks
  GET    /api/v1/documents/{id}/pages          rendered pages (PDF only)
  DELETE /api/v1/documents/{id}                document + owning job → 204
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query, Response, status

from docpipe.api.dependencies import Documents
from docpipe.core.errors import NotFound
from docpipe.schemas.jobs import (
    ChunkObject,
    DocumentSnapshot,
    DocumentWithJob,
    ErrorResponse,
    PageRecord,
)

router = APIRouter(
    prefix="/documents",
    tags=["Documents"],
)


@router.get("", response_model=list[DocumentSnapshot], summary="List documents")
async def list_documents(
    documents: Documents,
    type: Optional[str] = Query(None, description="html or pdf"),
    url:  Optional[str] = Query(None, description="Exact source url"),
) -> list[DocumentSnapshot]:
    if type is not None:
        return await documents.get_documents_by_type(type)
    if url is not None:
        return await documents.get_documents_by_url(url)
    return await documents.get_all_documents()


@router.get(
    "/search",
    response_model=list[DocumentSnapshot],
    summary="Search extracted text",
    responses={400: {"model": ErrorResponse, "description": "Empty query"}},
)
async def search_documents(
    documents: Documents,
    q: str = Query("", description="Case-insensitive substring"),
) -> list[DocumentSnapshot]:
    return await documents.search_documents(q)


@router.get("/job/{job_id}", response_model=list[DocumentSnapshot], summary="Documents of a job")
async def list_job_documents(job_id: str, documents: Documents) -> list[DocumentSnapshot]:
    return await documents.get_documents_by_job_id(job_id)


@router.get(
    "/{document_id}",
    response_model=DocumentSnapshot,
    responses={404: {"model": ErrorResponse}},
)
async def get_document(document_id: str, documents: Documents) -> DocumentSnapshot:
    return await documents.get_document_by_id(document_id)


@router.get(
    "/{document_id}/job",
    response_model=DocumentWithJob,
    responses={404: {"model": ErrorResponse}},
)
async def get_document_with_job(document_id: str, documents: Documents) -> DocumentWithJob:
    return await documents.get_document_with_job(document_id)


@router.get(
    "/{document_id}/chunks",
    response_model=list[ChunkObject],
    responses={404: {"model": ErrorResponse}},
)
async def get_document_chunks(document_id: str, documents: Documents) -> list[ChunkObject]:
    return await documents.get_document_chunks(document_id)


@router.get(
    "/{document_id}/pages",
    response_model=list[PageRecord],
    responses={404: {"model": ErrorResponse, "description": "Missing or not a PDF"}},
)
async def get_document_pages(document_id: str, documents: Documents) -> list[PageRecord]:
    return await documents.get_document_pages(document_id)


@router.delete(
    "/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_document(document_id: str, documents: Documents) -> Response:
    if not await documents.delete_document(document_id):
        raise NotFound(f"Document {document_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
