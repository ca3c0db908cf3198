"""
Job tracking for transitions started over the web API.

Provides:
- Job records with status tracking
- Append-only log lines fed by the sequencer's progress callback
- The final outcome report once the orchestrator's future resolves

Limitation: Jobs are lost when server restarts.
"""

import secrets
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from valet_doctor.model.transition import OutcomeReport


class JobStatus(str, Enum):
    """Job execution status."""
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class JobLog:
    """Single log entry."""
    timestamp: datetime
    level: str  # INFO, ERROR, SUCCESS
    message: str


@dataclass
class Job:
    """A submitted transition and its progress log."""
    id: str
    kind: str
    status: JobStatus = JobStatus.RUNNING
    logs: List[JobLog] = field(default_factory=list)
    result: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    def log(self, message: str, level: str = "INFO") -> None:
        """Add a log entry."""
        self.logs.append(JobLog(
            timestamp=datetime.now(),
            level=level,
            message=message
        ))

    def log_info(self, message: str) -> None:
        """Add info log. Usable as the sequencer's ``log_fn``."""
        self.log(message, "INFO")

    def log_error(self, message: str) -> None:
        self.log(message, "ERROR")

    def log_success(self, message: str) -> None:
        self.log(message, "SUCCESS")

    def finish(self, report: OutcomeReport) -> None:
        """Record the final report."""
        self.result = report.to_dict()
        if report.success:
            self.status = JobStatus.SUCCESS
            if report.needs_repair:
                self.log_error("Environment does not match: " + "; ".join(report.mismatches))
            else:
                self.log_success("Transition completed")
        else:
            self.status = JobStatus.FAILED
            self.log_error(f"Transition failed: {report.error or report.failure}")
        self.completed_at = datetime.now()

    def fail(self, error: BaseException) -> None:
        self.status = JobStatus.FAILED
        self.log_error(f"Job failed: {error}")
        self.completed_at = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response dict."""
        return {
            "id": self.id,
            "kind": self.kind,
            "status": self.status.value,
            "logs": [
                {
                    "timestamp": log.timestamp.isoformat(),
                    "level": log.level,
                    "message": log.message
                }
                for log in self.logs
            ],
            "result": self.result,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class JobRegistry:
    """Keeps jobs by ID and wires them to orchestrator futures."""

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create_job(self, kind: str) -> Job:
        """Create a new job."""
        job = Job(id=secrets.token_urlsafe(12), kind=kind)
        with self._lock:
            self._jobs[job.id] = job
        return job

    def discard(self, job_id: str) -> None:
        """Forget a job whose submission was rejected."""
        with self._lock:
            self._jobs.pop(job_id, None)

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get job by ID."""
        with self._lock:
            return self._jobs.get(job_id)

    def track(self, job: Job, future: "Future[OutcomeReport]") -> None:
        """Finish the job when the future resolves."""
        def done(f: "Future[OutcomeReport]") -> None:
            error = f.exception()
            if error is not None:
                job.fail(error)
            else:
                job.finish(f.result())

        future.add_done_callback(done)
