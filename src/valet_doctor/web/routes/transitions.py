"""
Transition API routes.

Endpoints:
- GET /api/transitions - List the transition kinds
- POST /api/transitions - Start a transition; poll /api/jobs/{job_id}
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from valet_doctor.engine.exceptions import (
    BusyError,
    TransitionUnavailableError,
    UnknownTransitionError,
)
from valet_doctor.engine.orchestrator import Orchestrator
from valet_doctor.engine.transitions import TransitionKind
from valet_doctor.web.deps import get_jobs, get_orchestrator
from valet_doctor.web.jobs import JobRegistry

router = APIRouter()


class TransitionRequest(BaseModel):
    """Transition to start."""
    kind: str = Field(..., description="Transition kind, e.g. switch_version")
    params: dict[str, Any] = Field(default_factory=dict, description="Builder parameters, e.g. {'version': '8.1'}")


class TransitionAccepted(BaseModel):
    job_id: str
    kind: str


@router.get("/transitions", response_model=list[str])
async def list_transitions() -> list[str]:
    return [kind.value for kind in TransitionKind]


@router.post("/transitions", response_model=TransitionAccepted, status_code=202)
def start_transition(
    request: TransitionRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
    jobs: JobRegistry = Depends(get_jobs),
) -> TransitionAccepted:
    """Start a transition in the background.

    A second request while one is running is rejected with 409, never queued.
    """
    job = jobs.create_job(request.kind)
    try:
        future = orchestrator.submit(request.kind, log_fn=job.log_info, params=request.params)
    except BusyError as e:
        jobs.discard(job.id)
        raise HTTPException(status_code=409, detail=str(e))
    except (UnknownTransitionError, TransitionUnavailableError) as e:
        jobs.discard(job.id)
        raise HTTPException(status_code=400, detail=str(e))

    jobs.track(job, future)
    return TransitionAccepted(job_id=job.id, kind=request.kind)
