"""
FastAPI application for valet-doctor.

Runs on localhost only (127.0.0.1). A menu-bar or status-bar front end
polls it for the snapshot and starts transitions through it.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from valet_doctor import __version__
from valet_doctor.config import ConfigManager
from valet_doctor.engine.orchestrator import Orchestrator
from valet_doctor.web.jobs import JobRegistry
from valet_doctor.web.routes import jobs, status, transitions

logger = logging.getLogger(__name__)


def create_app(orchestrator: Orchestrator | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        orchestrator: Orchestrator to serve. Built from the saved
            configuration when omitted.
    """
    if orchestrator is None:
        orchestrator = Orchestrator.from_settings(ConfigManager().load())

    app = FastAPI(
        title="valet-doctor",
        description="Local API for switching PHP versions and repairing Laravel Valet",
        version=__version__,
        docs_url="/api/docs",
        redoc_url=None,
    )
    app.state.orchestrator = orchestrator
    app.state.jobs = JobRegistry()

    # CORS - restrict to localhost only
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"http://(127\.0\.0\.1|localhost)(:\d+)?",
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(status.router, prefix="/api", tags=["status"])
    app.include_router(transitions.router, prefix="/api", tags=["transitions"])
    app.include_router(jobs.router, prefix="/api", tags=["jobs"])

    @app.on_event("startup")
    async def startup() -> None:
        """Probe once so the first status call has data."""
        app.state.orchestrator.submit_refresh()

    @app.on_event("shutdown")
    async def cleanup() -> None:
        app.state.orchestrator.shutdown(wait=False)

    return app


def run_server(host: str = "127.0.0.1", port: int = 8766, orchestrator: Orchestrator | None = None) -> None:
    """Run the FastAPI server with uvicorn.

    Args:
        host: Bind address. Forced to 127.0.0.1.
        port: Port to listen on.
    """
    import uvicorn

    if host != "127.0.0.1":
        logger.warning("Forcing bind to 127.0.0.1 (localhost only)")
        host = "127.0.0.1"

    uvicorn.run(create_app(orchestrator), host=host, port=port, log_level="info")
