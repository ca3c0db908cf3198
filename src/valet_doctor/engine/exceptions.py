"""Exceptions for orchestration."""


class OrchestrationError(RuntimeError):
    """Base class for orchestration errors."""


class BusyError(OrchestrationError):
    """Raised when a transition is requested while another one is running."""

    def __init__(self, requested: str, holder: str | None = None) -> None:
        self.requested = requested
        self.holder = holder
        msg = f"Cannot start '{requested}': another transition is running"
        if holder:
            msg += f" ({holder})"
        super().__init__(msg)


class TransitionUnavailableError(OrchestrationError):
    """Raised when a transition cannot be planned in the current environment."""


class UnknownTransitionError(OrchestrationError):
    """Raised when dispatching a transition kind with no registered builder."""
