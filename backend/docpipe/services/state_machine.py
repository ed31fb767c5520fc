"""
Job status state machine.

    pending ──► processing ──► done
                    │
                    └────────► error ──► pending   (retry only)

Every status change in the codebase goes through transition(), so an
illegal edge is impossible to persist.
"""

from __future__ import annotations

from docpipe.core.errors import InvalidStateTransition
from docpipe.schemas.jobs import JobStatus

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING:    frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.DONE, JobStatus.ERROR}),
    JobStatus.ERROR:      frozenset({JobStatus.PENDING}),
    JobStatus.DONE:       frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return JobStatus(target) in ALLOWED_TRANSITIONS[JobStatus(current)]


def transition(job, target: JobStatus) -> None:
    """Move `job` to `target` in memory; raises InvalidStateTransition on an illegal edge."""
    if not can_transition(job.status, target):
        raise InvalidStateTransition(job.status, JobStatus(target).value)
    job.status = JobStatus(target).value
