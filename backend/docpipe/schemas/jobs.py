"""
Job & Document — Pydantic Snapshot / Request / Response Schemas

Snapshots are the wire representation of a Job joined with its Documents.
The same model is returned by the REST API and pushed over the real-time
channel, so observers and pollers always see an identical shape.

Design decisions:
  - Keys are camelCase on the wire (jobId, extractedText, chunkObjects, ...);
    Python code uses snake_case attribute names.
  - Job type is accepted as a plain string on input and validated by the
    JobService, so a bad type is a 400 VALIDATION_ERROR rather than a 422.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    """
    Maps to jobs.status.
    Transitions: pending → processing → done | error;  error → pending (retry)
    """
    PENDING    = "pending"
    PROCESSING = "processing"
    DONE       = "done"
    ERROR      = "error"


class JobType(str, Enum):
    HTML = "html"
    PDF  = "pdf"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# Document pieces
# ---------------------------------------------------------------------------

class ChunkObject(_CamelModel):
    """One embedded chunk. page_number is 1-based; HTML documents use page 1."""
    text:        str
    embedding:   list[float]
    page_number: int = 1


class PageRecord(_CamelModel):
    """One rendered PDF page."""
    page_number: int
    text:        str
    image_url:   str


class DocumentSnapshot(_CamelModel):
    id:             str
    job_id:         str
    type:           JobType
    title:          str | None = None
    url:            str
    content:        str = ""
    extracted_text: str = ""
    chunks:         list[str]         = Field(default_factory=list)
    chunk_objects:  list[ChunkObject] = Field(default_factory=list)
    pages:          list[PageRecord]  = Field(default_factory=list)
    created_at:     datetime
    updated_at:     datetime


# ---------------------------------------------------------------------------
# Job snapshot: REST responses and real-time pushes
# ---------------------------------------------------------------------------

class JobSnapshot(_CamelModel):
    id:         str
    url:        str
    type:       JobType
    status:     JobStatus
    progress:   list[str]
    created_at: datetime
    updated_at: datetime
    documents:  list[DocumentSnapshot] = Field(default_factory=list)

    @classmethod
    def build(cls, job: Any, documents: Sequence[Any] = ()) -> "JobSnapshot":
        """Join an ORM Job with its ORM Documents."""
        return cls(
            id=job.id,
            url=job.url,
            type=job.type,
            status=job.status,
            progress=list(job.progress),
            created_at=job.created_at,
            updated_at=job.updated_at,
            documents=[DocumentSnapshot.model_validate(doc) for doc in documents],
        )

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)


class DocumentWithJob(_CamelModel):
    document: DocumentSnapshot
    job:      JobSnapshot | None = None


# ---------------------------------------------------------------------------
# Requests / responses
# ---------------------------------------------------------------------------

class CreateJobRequest(_CamelModel):
    url:  str
    type: str


class CreateJobResponse(_CamelModel):
    job_id: str


class SubscriptionMessage(_CamelModel):
    """Observer → server message on the real-time channel."""
    type:   Literal["subscribe", "unsubscribe"]
    job_id: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")
