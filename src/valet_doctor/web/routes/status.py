"""
Status API routes.

Endpoints:
- GET /api/status - Current snapshot and busy flag
- GET /api/checks - Environment checks against the current snapshot
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from valet_doctor.engine.orchestrator import Orchestrator
from valet_doctor.engine.startup import CheckContext, run_checks
from valet_doctor.web.deps import get_orchestrator

router = APIRouter()


class StatusResponse(BaseModel):
    """Snapshot plus whether a transition is running."""
    busy: bool
    holder: Optional[str]
    snapshot: dict[str, Any]


class CheckResponse(BaseModel):
    name: str
    passed: bool
    severity: str
    message: str


@router.get("/status", response_model=StatusResponse)
def get_status(
    refresh: bool = Query(False, description="Re-probe before answering (skipped while busy)"),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> StatusResponse:
    """Get the current installation snapshot."""
    if refresh:
        try:
            orchestrator.refresh()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to refresh: {e}")

    return StatusResponse(
        busy=orchestrator.busy,
        holder=orchestrator.gate.holder,
        snapshot=orchestrator.snapshot.to_dict(),
    )


@router.get("/checks", response_model=list[CheckResponse])
def get_checks(orchestrator: Orchestrator = Depends(get_orchestrator)) -> list[CheckResponse]:
    """Run the environment checks."""
    context = CheckContext(
        shell=orchestrator.shell,
        settings=orchestrator.settings,
        snapshot=orchestrator.snapshot,
    )
    return [
        CheckResponse(name=r.name, passed=r.passed, severity=r.severity.value, message=r.message)
        for r in run_checks(context)
    ]
