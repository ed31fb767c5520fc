"""
Composed FastAPI Dependencies

Route handlers receive services from here; the objects themselves are
built once in the application lifespan and live on app.state.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from docpipe.services.documents import DocumentService
from docpipe.services.jobs import JobService


def get_job_service(request: Request) -> JobService:
    return request.app.state.services.job_service


def get_document_service(request: Request) -> DocumentService:
    return request.app.state.services.document_service


Jobs      = Annotated[JobService,      Depends(get_job_service)]
Documents = Annotated[DocumentService, Depends(get_document_service)]
