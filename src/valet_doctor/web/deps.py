"""Request dependencies shared by the routers."""

from fastapi import Request

from valet_doctor.engine.orchestrator import Orchestrator
from valet_doctor.web.jobs import JobRegistry


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def get_jobs(request: Request) -> JobRegistry:
    return request.app.state.jobs
