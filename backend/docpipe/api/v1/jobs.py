"""
Jobs API Router

  POST   /api/v1/jobs                  create + enqueue → 201 {jobId}
  GET    /api/v1/jobs                  all jobs, newest first
  GET    /api/v1/jobs/status/{status}  filter by status
  GET    /api/v1/jobs/type/{type}      filter by type
  GET    /api/v1/jobs/{job_id}         one job snapshot
  DELETE /api/v1/jobs/{job_id}         delete job + documents → 204
  POST   /api/v1/jobs/{job_id}/retry   retry a failed job → snapshot

Creation never waits for processing; clients poll GET /jobs/{id} or
subscribe on /ws for progress.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status

from docpipe.api.dependencies import Jobs
from docpipe.core.errors import NotFound
from docpipe.schemas.jobs import (
    CreateJobRequest,
    CreateJobResponse,
    ErrorResponse,
    JobSnapshot,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/jobs",
    tags=["Jobs"],
)


@router.post(
    "",
    response_model=CreateJobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an ingestion job",
    responses={
        400: {"model": ErrorResponse, "description": "Unknown job type or empty url"},
    },
)
async def create_job(body: CreateJobRequest, jobs: Jobs) -> CreateJobResponse:
    job = await jobs.submit_job(body.url, body.type)
    return CreateJobResponse(job_id=job.id)


@router.get("", response_model=list[JobSnapshot], summary="List all jobs")
async def list_jobs(jobs: Jobs) -> list[JobSnapshot]:
    return await jobs.get_all_jobs()


@router.get(
    "/status/{job_status}",
    response_model=list[JobSnapshot],
    summary="List jobs by status",
    responses={400: {"model": ErrorResponse}},
)
async def list_jobs_by_status(job_status: str, jobs: Jobs) -> list[JobSnapshot]:
    return await jobs.get_jobs_by_status(job_status)


@router.get(
    "/type/{job_type}",
    response_model=list[JobSnapshot],
    summary="List jobs by type",
    responses={400: {"model": ErrorResponse}},
)
async def list_jobs_by_type(job_type: str, jobs: Jobs) -> list[JobSnapshot]:
    return await jobs.get_jobs_by_type(job_type)


@router.get(
    "/{job_id}",
    response_model=JobSnapshot,
    summary="Get one job with its documents",
    responses={404: {"model": ErrorResponse}},
)
async def get_job(job_id: str, jobs: Jobs) -> JobSnapshot:
    return await jobs.get_job_by_id(job_id)


@router.delete(
    "/{job_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a job and its documents",
    responses={404: {"model": ErrorResponse}},
)
async def delete_job(job_id: str, jobs: Jobs) -> Response:
    if not await jobs.delete_job(job_id):
        raise NotFound(f"Job {job_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{job_id}/retry",
    response_model=JobSnapshot,
    summary="Retry a failed job",
    description="Only jobs in status `error` can be retried. Runs the job again before responding.",
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Job is not in status `error`"},
    },
)
async def retry_job(job_id: str, jobs: Jobs) -> JobSnapshot:
    return await jobs.retry_job(job_id)
