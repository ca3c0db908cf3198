"""Transition dataclasses - Steps, transitions and their outcome reports."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Privilege(Enum):
    """Privilege level a step runs with."""

    NORMAL = "normal"
    ELEVATED = "elevated"


class FailurePolicy(Enum):
    """What the sequencer does when a step exits non-zero."""

    CONTINUE = "continue"  # Record and keep going (e.g. stopping a stopped service)
    ABORT = "abort"  # Halt the transition


class FailureKind(Enum):
    """Kind of a recorded step failure."""

    STEP_FAILED = "step_failed"
    STEP_TOLERATED = "step_tolerated"


@dataclass(frozen=True)
class Step:
    """One external operation.

    Attributes:
        command: Command template. Placeholders like ``{brew}`` are
            filled from the configured paths when the step runs.
        privilege: Whether the command needs elevation.
        on_failure: Failure policy for a non-zero exit.
        label: Short human description.
        timeout: Per-step timeout override in seconds.
    """

    command: str
    privilege: Privilege = Privilege.NORMAL
    on_failure: FailurePolicy = FailurePolicy.CONTINUE
    label: str = ""
    timeout: float | None = None

    @property
    def elevated(self) -> bool:
        return self.privilege is Privilege.ELEVATED

    def render(self, variables: dict[str, str]) -> str:
        """Fill the command template."""
        return self.command.format(**variables)


@dataclass(frozen=True)
class ServiceTransition:
    """A named, ordered sequence of steps."""

    id: str
    steps: tuple[Step, ...] = ()
    idempotent: bool = True
    description: str = ""


@dataclass(frozen=True)
class PostCondition:
    """Observable state expected after a transition."""

    active_version: str | None = None
    running: tuple[str, ...] = ()
    stopped: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.active_version is None and not self.running and not self.stopped


@dataclass(frozen=True)
class StepFailure:
    """A failed step, fatal or tolerated."""

    kind: FailureKind
    index: int
    code: int

    def __str__(self) -> str:
        label = "StepFailed" if self.kind is FailureKind.STEP_FAILED else "StepToleratedFailure"
        return f"{label}({self.index}, {self.code})"


@dataclass
class StepResult:
    """Result of running one step."""

    index: int
    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0


@dataclass
class OutcomeReport:
    """Result of a transition, created once per run."""

    transition_id: str
    steps: list[StepResult] = field(default_factory=list)
    failure: StepFailure | None = None
    tolerated: list[StepFailure] = field(default_factory=list)
    postcondition: PostCondition | None = None
    verified: bool | None = None
    mismatches: list[str] = field(default_factory=list)
    error: str | None = None
    artifacts: dict[str, str] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None

    @property
    def success(self) -> bool:
        """True when no abort-policy step failed and nothing raised."""
        return self.failure is None and self.error is None

    @property
    def exit_codes(self) -> list[int]:
        return [s.exit_code for s in self.steps]

    @property
    def needs_repair(self) -> bool:
        """Steps ran fine but the observed state does not match."""
        return self.success and self.verified is False

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dict."""
        return {
            "transition_id": self.transition_id,
            "success": self.success,
            "exit_codes": self.exit_codes,
            "steps": [
                {
                    "index": s.index,
                    "command": s.command,
                    "exit_code": s.exit_code,
                    "stdout": s.stdout,
                    "stderr": s.stderr,
                    "duration": round(s.duration, 3),
                    "timed_out": s.timed_out,
                }
                for s in self.steps
            ],
            "failure": str(self.failure) if self.failure else None,
            "tolerated": [str(t) for t in self.tolerated],
            "verified": self.verified,
            "mismatches": list(self.mismatches),
            "needs_repair": self.needs_repair,
            "error": self.error,
            "artifacts": dict(self.artifacts),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
