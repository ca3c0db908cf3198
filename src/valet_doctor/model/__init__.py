"""Model package - Core data structures for valet-doctor."""

from valet_doctor.model.environment import (
    ActiveInstallation,
    EnvironmentSnapshot,
    IniLimits,
    PhpExtension,
    PhpVersion,
    ServiceState,
    formula_name,
)
from valet_doctor.model.transition import (
    FailureKind,
    FailurePolicy,
    OutcomeReport,
    PostCondition,
    Privilege,
    ServiceTransition,
    Step,
    StepFailure,
    StepResult,
)

__all__ = [
    "ActiveInstallation",
    "EnvironmentSnapshot",
    "FailureKind",
    "FailurePolicy",
    "IniLimits",
    "OutcomeReport",
    "PhpExtension",
    "PhpVersion",
    "PostCondition",
    "Privilege",
    "ServiceState",
    "ServiceTransition",
    "Step",
    "StepFailure",
    "StepResult",
    "formula_name",
]
