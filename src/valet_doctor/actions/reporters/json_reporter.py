"""JSON Reporter Implementation."""

import json

from valet_doctor.actions.reporters.base import BaseReporter, outcome_exit_code
from valet_doctor.engine.startup import CheckResult, environment_ok
from valet_doctor.model.environment import EnvironmentSnapshot
from valet_doctor.model.transition import OutcomeReport


class JsonReporter(BaseReporter):
    """Generates machine-readable JSON output."""

    def dump(self, data) -> None:
        self.console.print(json.dumps(data, indent=2, default=str), markup=False, highlight=False, soft_wrap=True)

    def report_snapshot(self, snapshot: EnvironmentSnapshot) -> None:
        self.dump(snapshot.to_dict())

    def report_outcome(self, report: OutcomeReport) -> int:
        self.dump(report.to_dict())
        return outcome_exit_code(report)

    def report_checks(self, results: list[CheckResult]) -> int:
        self.dump([
            {
                "name": r.name,
                "passed": r.passed,
                "severity": r.severity.value,
                "message": r.message,
            }
            for r in results
        ])
        return 0 if environment_ok(results) else 1

    def report_extensions(self, snapshot: EnvironmentSnapshot) -> None:
        self.dump([
            {
                "name": e.name,
                "enabled": e.enabled,
                "zend": e.zend,
                "file": e.ini_file,
                "line": e.line_number,
            }
            for e in snapshot.active.extensions
        ])
