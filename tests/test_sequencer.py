"""Tests for the action sequencer.

Verifies:
1. Steps run in order and every exit code is recorded.
2. A continue-policy failure is tolerated; an abort-policy failure halts.
3. A runner exception becomes a failed step, never an escaping exception.
4. The busy gate is held during run() and released afterwards.
"""

from unittest.mock import MagicMock

import pytest

from valet_doctor.connector.shell import TIMEOUT_EXIT_CODE, CommandResult, ShellConnector
from valet_doctor.engine.busy import BusyGate
from valet_doctor.engine.exceptions import BusyError
from valet_doctor.engine.sequencer import RUNNER_ERROR_CODE, ActionSequencer
from valet_doctor.model.transition import (
    FailureKind,
    FailurePolicy,
    Privilege,
    ServiceTransition,
    Step,
)


def _shell(codes):
    """Mock shell returning the given exit codes in order."""
    shell = MagicMock(spec=ShellConnector)
    shell.run.side_effect = [
        CommandResult(command=f"cmd{i}", stdout=f"out{i}", stderr="", exit_code=code)
        for i, code in enumerate(codes)
    ]
    return shell


def _transition(*policies):
    return ServiceTransition(
        id="test",
        steps=tuple(Step(f"cmd{i}", on_failure=p) for i, p in enumerate(policies)),
    )


CONTINUE = FailurePolicy.CONTINUE
ABORT = FailurePolicy.ABORT


class TestExecution:
    def test_all_steps_succeed(self):
        shell = _shell([0, 0, 0])
        report = ActionSequencer(shell, gate=BusyGate()).run(_transition(CONTINUE, ABORT, CONTINUE))

        assert report.success
        assert report.exit_codes == [0, 0, 0]
        assert report.failure is None
        assert report.tolerated == []
        assert [c.args[0] for c in shell.run.call_args_list] == ["cmd0", "cmd1", "cmd2"]

    def test_continue_policy_failure_is_tolerated(self):
        report = ActionSequencer(_shell([0, 1, 0]), gate=BusyGate()).run(_transition(CONTINUE, CONTINUE, CONTINUE))

        assert report.success
        assert report.exit_codes == [0, 1, 0]
        assert len(report.tolerated) == 1
        assert report.tolerated[0].kind is FailureKind.STEP_TOLERATED
        assert str(report.tolerated[0]) == "StepToleratedFailure(1, 1)"

    def test_abort_policy_failure_halts(self):
        shell = _shell([0, 5, 0])
        report = ActionSequencer(shell, gate=BusyGate()).run(_transition(CONTINUE, ABORT, CONTINUE))

        assert not report.success
        assert report.exit_codes == [0, 5]
        assert str(report.failure) == "StepFailed(1, 5)"
        assert shell.run.call_count == 2

    def test_empty_transition(self):
        shell = _shell([])
        report = ActionSequencer(shell, gate=BusyGate()).run(ServiceTransition(id="reload"))
        assert report.success
        assert report.steps == []
        shell.run.assert_not_called()

    def test_runner_exception_is_a_failed_step(self):
        shell = MagicMock(spec=ShellConnector)
        shell.run.side_effect = [OSError("fork failed"), CommandResult("cmd1", "", "", 0)]

        report = ActionSequencer(shell, gate=BusyGate()).run(_transition(CONTINUE, CONTINUE))

        assert report.success
        assert report.exit_codes == [RUNNER_ERROR_CODE, 0]
        assert "fork failed" in report.steps[0].stderr

    def test_runner_exception_on_abort_step(self):
        shell = MagicMock(spec=ShellConnector)
        shell.run.side_effect = RuntimeError("boom")

        report = ActionSequencer(shell, gate=BusyGate()).run(_transition(ABORT, CONTINUE))

        assert report.failure is not None
        assert report.failure.code == RUNNER_ERROR_CODE
        assert len(report.steps) == 1

    def test_timeout_recorded(self):
        shell = MagicMock(spec=ShellConnector)
        shell.run.return_value = CommandResult(
            command="sleep", stdout="", stderr="", exit_code=TIMEOUT_EXIT_CODE, timed_out=True
        )
        report = ActionSequencer(shell, gate=BusyGate()).run(_transition(ABORT))

        assert report.steps[0].timed_out
        assert report.failure.code == TIMEOUT_EXIT_CODE

    def test_tolerated_failure_then_abort_step_succeeds(self):
        shell = _shell([1, 0])
        report = ActionSequencer(shell, gate=BusyGate()).run(_transition(CONTINUE, ABORT))

        assert report.success
        assert report.exit_codes == [1, 0]
        assert report.steps[1].success
        assert [str(t) for t in report.tolerated] == ["StepToleratedFailure(0, 1)"]
        assert report.failure is None

    def test_reruns_produce_independent_reports(self):
        shell = _shell([1, 0, 0, 0])
        sequencer = ActionSequencer(shell, gate=BusyGate())
        transition = _transition(CONTINUE, ABORT)

        first = sequencer.run(transition)
        second = sequencer.run(transition)

        assert first is not second
        assert first.steps is not second.steps
        assert first.tolerated is not second.tolerated
        assert first.exit_codes == [1, 0]
        assert second.exit_codes == [0, 0]
        assert len(first.tolerated) == 1
        assert second.tolerated == []
        assert [s.index for s in second.steps] == [0, 1]


class TestStepRendering:
    def test_placeholders_and_privilege_pass_through(self):
        shell = _shell([0])
        transition = ServiceTransition(
            id="t",
            steps=(Step("{brew} services restart nginx", privilege=Privilege.ELEVATED, timeout=12),),
        )
        ActionSequencer(shell, gate=BusyGate(), variables={"brew": "/opt/homebrew/bin/brew"}).run(transition)

        shell.run.assert_called_once_with(
            "/opt/homebrew/bin/brew services restart nginx", elevated=True, timeout=12
        )

    def test_default_timeout_used(self):
        shell = _shell([0])
        ActionSequencer(shell, gate=BusyGate(), default_timeout=42.0).run(_transition(CONTINUE))
        assert shell.run.call_args.kwargs["timeout"] == 42.0

    def test_unknown_placeholder_fails_the_step(self):
        shell = _shell([])
        transition = ServiceTransition(id="t", steps=(Step("{nope} restart", on_failure=ABORT),))

        report = ActionSequencer(shell, gate=BusyGate()).run(transition)

        assert report.failure.code == RUNNER_ERROR_CODE
        shell.run.assert_not_called()

    def test_log_fn_receives_progress(self):
        lines = []
        ActionSequencer(_shell([0, 1]), gate=BusyGate()).run(_transition(CONTINUE, CONTINUE), log_fn=lines.append)

        assert lines[0].startswith("[1/2]")
        assert any("continuing" in line for line in lines)

    def test_failing_log_fn_does_not_stop_the_run(self):
        gate = BusyGate()

        def broken(_message):
            raise RuntimeError("front end went away")

        report = ActionSequencer(_shell([0, 1]), gate=gate).run(_transition(CONTINUE, ABORT), log_fn=broken)

        assert report.exit_codes == [0, 1]
        assert str(report.failure) == "StepFailed(1, 1)"
        assert not gate.is_held()


class TestBusyGateIntegration:
    def test_gate_held_while_running(self):
        gate = BusyGate()
        observed = []
        shell = MagicMock(spec=ShellConnector)

        def run(command, elevated=False, timeout=None):
            observed.append(gate.is_held())
            return CommandResult(command, "", "", 0)

        shell.run.side_effect = run
        ActionSequencer(shell, gate=gate).run(_transition(CONTINUE))

        assert observed == [True]
        assert not gate.is_held()

    def test_run_rejected_when_busy(self):
        gate = BusyGate()
        gate.try_acquire("other")
        shell = _shell([0])

        with pytest.raises(BusyError):
            ActionSequencer(shell, gate=gate).run(_transition(CONTINUE))
        shell.run.assert_not_called()
        assert gate.holder == "other"

    def test_gate_released_after_abort(self):
        gate = BusyGate()
        ActionSequencer(_shell([1]), gate=gate).run(_transition(ABORT))
        assert not gate.is_held()
