"""
SQLAlchemy ORM Models — Jobs & Documents

Using SQLAlchemy 2.x mapped classes for full async support.

Column types are kept portable (JSON, String ids, timezone-aware DateTime)
so the same models run against PostgreSQL (asyncpg) in production and
SQLite (aiosqlite) in local development and tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Declarative base shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Job model: jobs
# ---------------------------------------------------------------------------

class Job(Base):
    """
    One request to ingest a URL as a given content type.

    State machine (status column):
        pending    — created or retried, waiting for a worker
        processing — a processor is actively fetching / extracting / embedding
        done       — a Document was persisted for this job
        error      — the run failed; the last progress entry describes why

    progress is an append-only list of human-readable milestones. It is only
    ever reset (to a single entry) by a retry.
    """

    __tablename__ = "jobs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'done', 'error')",
            name="jobs_status_check",
        ),
        CheckConstraint("type IN ('html', 'pdf')", name="jobs_type_check"),
        Index("idx_jobs_status", "status"),
        Index("idx_jobs_type", "type"),
        Index("idx_jobs_created_at", "created_at"),
    )

    id:       Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    url:      Mapped[str] = mapped_column(Text, nullable=False)
    type:     Mapped[str] = mapped_column(String(8), nullable=False)
    status:   Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    progress: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )

    def __repr__(self) -> str:
        return f"<Job id={self.id} type={self.type} status={self.status} url={self.url!r}>"


# ---------------------------------------------------------------------------
# Document model: documents
# ---------------------------------------------------------------------------

class Document(Base):
    """
    Extraction result of one successful Job.

    chunks is the legacy flat list of chunk texts; chunk_objects carries the
    same texts (pairwise, same order) with their embedding and page number.
    pages is only populated for PDF documents.
    """

    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_job_id", "job_id"),
        Index("idx_documents_type", "type"),
        Index("idx_documents_url", "url"),
    )

    id:     Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    job_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    type:  Mapped[str] = mapped_column(String(8), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    url:   Mapped[str] = mapped_column(Text, nullable=False)

    content:        Mapped[str] = mapped_column(Text, nullable=False, default="")
    extracted_text: Mapped[str] = mapped_column(Text, nullable=False, default="")

    chunks:        Mapped[list[str]]            = mapped_column(JSON, nullable=False, default=list)
    chunk_objects: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    pages:         Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )

    def __repr__(self) -> str:
        return f"<Document id={self.id} job={self.job_id} type={self.type} chunks={len(self.chunks or [])}>"
