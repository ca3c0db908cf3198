"""Action Sequencer - Runs the steps of a transition in order.

Service managers are flaky: stopping a service that is already stopped
exits non-zero. Each step therefore declares its own failure policy and
the sequencer never turns a failed command into an exception.
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime

from valet_doctor.connector.shell import ShellConnector
from valet_doctor.engine.busy import BusyGate, busy_gate
from valet_doctor.model.transition import (
    FailureKind,
    FailurePolicy,
    OutcomeReport,
    ServiceTransition,
    Step,
    StepFailure,
    StepResult,
)

logger = logging.getLogger(__name__)

LogFn = Callable[[str], None]

# Exit code recorded when the runner itself raised
RUNNER_ERROR_CODE = -1


class ActionSequencer:
    """Executes transitions through a command runner.

    Example:
        >>> sequencer = ActionSequencer(ShellConnector(), variables=paths.template_vars())
        >>> report = sequencer.run(restart_nginx())
        >>> report.success
        True
    """

    def __init__(
        self,
        shell: ShellConnector,
        *,
        gate: BusyGate | None = None,
        variables: dict[str, str] | None = None,
        default_timeout: float = 300.0,
    ) -> None:
        self.shell = shell
        self.gate = gate if gate is not None else busy_gate
        self.variables = dict(variables or {})
        self.default_timeout = default_timeout

    def run(self, transition: ServiceTransition, log_fn: LogFn | None = None) -> OutcomeReport:
        """Acquire the busy gate and execute the transition.

        Raises:
            BusyError: If another transition holds the gate.
        """
        with self.gate.scoped(transition.id):
            return self.execute(transition, log_fn)

    def execute(
        self,
        transition: ServiceTransition,
        log_fn: LogFn | None = None,
        report: OutcomeReport | None = None,
    ) -> OutcomeReport:
        """Execute the steps. The caller is responsible for the busy gate.

        Passing ``report`` appends to it, numbering steps after its existing ones.
        """
        def log(message: str) -> None:
            if log_fn is None:
                return
            try:
                log_fn(message)
            except Exception:
                logger.exception("Progress callback failed")

        if report is None:
            report = OutcomeReport(transition_id=transition.id)
        offset = len(report.steps)
        total = offset + len(transition.steps)

        logger.info("Starting transition %s (%d steps)", transition.id, total)
        for index, step in enumerate(transition.steps, start=offset):
            log(f"[{index + 1}/{total}] {step.label or step.command}")
            result = self._execute_step(index, step)
            report.steps.append(result)

            if result.success:
                continue

            if step.on_failure is FailurePolicy.ABORT:
                report.failure = StepFailure(FailureKind.STEP_FAILED, index, result.exit_code)
                logger.warning(
                    "Transition %s aborted at step %d (exit %d): %s",
                    transition.id, index, result.exit_code, result.command,
                )
                log(f"Step {index + 1} failed with exit code {result.exit_code}, aborting")
                break

            report.tolerated.append(StepFailure(FailureKind.STEP_TOLERATED, index, result.exit_code))
            logger.info(
                "Tolerated failure at step %d (exit %d): %s", index, result.exit_code, result.command
            )
            log(f"Step {index + 1} exited with {result.exit_code}, continuing")

        report.completed_at = datetime.now()
        logger.info("Finished transition %s: %s", transition.id, "ok" if report.success else "failed")
        return report

    def _execute_step(self, index: int, step: Step) -> StepResult:
        """Run one step, converting runner exceptions into a failed result."""
        try:
            command = step.render(self.variables)
        except (KeyError, IndexError, ValueError) as e:
            return StepResult(
                index=index,
                command=step.command,
                exit_code=RUNNER_ERROR_CODE,
                stderr=f"Invalid command template: {e}",
            )

        timeout = step.timeout if step.timeout is not None else self.default_timeout
        start = time.monotonic()
        try:
            result = self.shell.run(command, elevated=step.elevated, timeout=timeout)
        except Exception as e:
            logger.exception("Command runner raised for step %d", index)
            return StepResult(
                index=index,
                command=command,
                exit_code=RUNNER_ERROR_CODE,
                stderr=f"Runner error: {e}",
                duration=time.monotonic() - start,
            )

        return StepResult(
            index=index,
            command=command,
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
            duration=result.duration or time.monotonic() - start,
            timed_out=result.timed_out,
        )
