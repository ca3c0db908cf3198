"""Engine package - Busy gate, sequencing, reconciliation and dispatch."""

from valet_doctor.engine.busy import BusyGate, busy_gate
from valet_doctor.engine.exceptions import (
    BusyError,
    OrchestrationError,
    TransitionUnavailableError,
    UnknownTransitionError,
)
from valet_doctor.engine.orchestrator import Orchestrator
from valet_doctor.engine.reconciler import StateReconciler, Verification
from valet_doctor.engine.sequencer import ActionSequencer
from valet_doctor.engine.snapshot import SnapshotStore
from valet_doctor.engine.transitions import (
    TRANSITION_BUILDERS,
    TransitionContext,
    TransitionKind,
    TransitionPlan,
    plan_transition,
)

__all__ = [
    "ActionSequencer",
    "BusyError",
    "BusyGate",
    "OrchestrationError",
    "Orchestrator",
    "SnapshotStore",
    "StateReconciler",
    "TRANSITION_BUILDERS",
    "TransitionContext",
    "TransitionKind",
    "TransitionPlan",
    "TransitionUnavailableError",
    "UnknownTransitionError",
    "Verification",
    "busy_gate",
    "plan_transition",
]
