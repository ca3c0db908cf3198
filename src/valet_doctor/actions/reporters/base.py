"""Base Reporter Interface."""

from abc import ABC, abstractmethod

from rich.console import Console

from valet_doctor.engine.startup import CheckResult
from valet_doctor.model.environment import EnvironmentSnapshot
from valet_doctor.model.transition import OutcomeReport


class BaseReporter(ABC):
    """Abstract base class for all reporters."""

    def __init__(self, console: Console, verbose: bool = False) -> None:
        self.console = console
        self.verbose = verbose

    @abstractmethod
    def report_snapshot(self, snapshot: EnvironmentSnapshot) -> None:
        """Display the current installation."""
        pass

    @abstractmethod
    def report_outcome(self, report: OutcomeReport) -> int:
        """Display a transition outcome. Returns the CLI exit code."""
        pass

    @abstractmethod
    def report_checks(self, results: list[CheckResult]) -> int:
        """Display environment check results. Returns the CLI exit code."""
        pass

    @abstractmethod
    def report_extensions(self, snapshot: EnvironmentSnapshot) -> None:
        """List the active version's extensions."""
        pass


def outcome_exit_code(report: OutcomeReport) -> int:
    """0 on success, 2 when state does not match, 1 otherwise."""
    if not report.success:
        return 1
    if report.needs_repair:
        return 2
    return 0
