"""
Jobs API routes.

Endpoint:
- GET /api/jobs/{job_id} - Poll job status and logs
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from valet_doctor.web.deps import get_jobs
from valet_doctor.web.jobs import JobRegistry

router = APIRouter()


class JobLogEntry(BaseModel):
    """Log entry in job."""
    timestamp: str
    level: str
    message: str


class JobResponse(BaseModel):
    """Job status response."""
    id: str
    kind: str
    status: str
    logs: list[JobLogEntry]
    result: dict[str, Any]
    created_at: str
    completed_at: str | None


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job_status(job_id: str, jobs: JobRegistry = Depends(get_jobs)) -> JobResponse:
    """Get job status and logs.

    Poll this endpoint to track transition progress.
    """
    job = jobs.get_job(job_id)

    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    job_dict = job.to_dict()

    return JobResponse(
        id=job_dict["id"],
        kind=job_dict["kind"],
        status=job_dict["status"],
        logs=[JobLogEntry(**log) for log in job_dict["logs"]],
        result=job_dict["result"],
        created_at=job_dict["created_at"],
        completed_at=job_dict["completed_at"],
    )
