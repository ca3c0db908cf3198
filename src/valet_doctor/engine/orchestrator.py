"""Orchestrator - Admits, runs and reports transitions in the background.

The busy gate is taken on the caller's thread so a second request is
rejected at once instead of waiting in the executor queue. The worker
releases it after the steps, the verification and the snapshot swap.
"""

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any

from valet_doctor.config import Settings
from valet_doctor.connector.shell import ShellConfig, ShellConnector
from valet_doctor.engine.busy import BusyGate, busy_gate
from valet_doctor.engine.exceptions import BusyError, UnknownTransitionError
from valet_doctor.engine.reconciler import StateReconciler
from valet_doctor.engine.sequencer import ActionSequencer, LogFn
from valet_doctor.engine.snapshot import SnapshotStore
from valet_doctor.engine.transitions import (
    TransitionContext,
    TransitionKind,
    TransitionPlan,
    plan_transition,
)
from valet_doctor.model.environment import EnvironmentSnapshot
from valet_doctor.model.transition import OutcomeReport, ServiceTransition
from valet_doctor.scanner.php import PHPScanner
from valet_doctor.scanner.services import HomebrewServicesScanner

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[OutcomeReport], None]
BusyCallback = Callable[[TransitionKind], None]


def _coerce_kind(kind: TransitionKind | str) -> TransitionKind:
    try:
        return TransitionKind(kind)
    except ValueError as e:
        raise UnknownTransitionError(f"Unknown transition '{kind}'") from e


class Orchestrator:
    """Single entry point for running transitions.

    Example:
        >>> orchestrator = Orchestrator.from_settings(settings)
        >>> future = orchestrator.submit(TransitionKind.SWITCH_VERSION, version="8.1")
        >>> report = future.result(timeout=600)
    """

    def __init__(
        self,
        settings: Settings,
        shell: ShellConnector,
        reconciler: StateReconciler,
        *,
        gate: BusyGate | None = None,
        store: SnapshotStore | None = None,
        executor: ThreadPoolExecutor | None = None,
        on_transition_complete: CompletionCallback | None = None,
        on_busy_rejected: BusyCallback | None = None,
    ) -> None:
        self.settings = settings
        self.shell = shell
        self.reconciler = reconciler
        self.gate = gate if gate is not None else busy_gate
        self.store = store or SnapshotStore()
        self.sequencer = ActionSequencer(
            shell,
            gate=self.gate,
            variables=settings.paths.template_vars(),
            default_timeout=settings.step_timeout,
        )
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max(1, settings.max_workers),
            thread_name_prefix="transition",
        )
        self._completion_callbacks: list[CompletionCallback] = []
        self._busy_callbacks: list[BusyCallback] = []
        if on_transition_complete:
            self._completion_callbacks.append(on_transition_complete)
        if on_busy_rejected:
            self._busy_callbacks.append(on_busy_rejected)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "Orchestrator":
        """Wire the real shell and scanners for the given settings."""
        shell = ShellConnector(ShellConfig(elevation=settings.elevation, timeout=settings.step_timeout))
        paths = settings.paths
        reconciler = StateReconciler(
            PHPScanner(shell, paths, brew_php_version=settings.brew_php_version),
            HomebrewServicesScanner(shell, paths, elevated=settings.elevation != "osascript"),
            services=settings.services,
        )
        return cls(settings, shell, reconciler, **kwargs)

    # =========================================================================
    # Callbacks
    # =========================================================================

    def add_completion_callback(self, callback: CompletionCallback) -> None:
        self._completion_callbacks.append(callback)

    def add_busy_callback(self, callback: BusyCallback) -> None:
        self._busy_callbacks.append(callback)

    def _notify_complete(self, report: OutcomeReport) -> None:
        for callback in self._completion_callbacks:
            try:
                callback(report)
            except Exception:
                logger.exception("Completion callback failed")

    def _notify_busy(self, kind: TransitionKind) -> None:
        for callback in self._busy_callbacks:
            try:
                callback(kind)
            except Exception:
                logger.exception("Busy callback failed")

    # =========================================================================
    # State
    # =========================================================================

    @property
    def snapshot(self) -> EnvironmentSnapshot:
        return self.store.current

    @property
    def busy(self) -> bool:
        return self.gate.is_held()

    def refresh(self) -> EnvironmentSnapshot:
        """Re-probe the installation unless a transition is running.

        A probe that finishes after a newer snapshot was stored is dropped.
        """
        if self.gate.is_held():
            logger.info("Skipping version refresh due to busy status")
            return self.store.current
        generation = self.store.generation
        snapshot = self.reconciler.probe()
        if not self.store.replace_if_current(generation, snapshot):
            logger.info("Discarding refresh, snapshot changed while probing")
            return self.store.current
        return snapshot

    def submit_refresh(self) -> "Future[EnvironmentSnapshot]":
        """Run ``refresh`` on the worker pool."""
        return self._executor.submit(self.refresh)

    def context(self) -> TransitionContext:
        return TransitionContext(snapshot=self.store.current, settings=self.settings, shell=self.shell)

    # =========================================================================
    # Transitions
    # =========================================================================

    def submit(
        self,
        kind: TransitionKind | str,
        *,
        log_fn: LogFn | None = None,
        params: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> "Future[OutcomeReport]":
        """Admit a transition and run it in the background.

        Builder parameters come from ``params`` (e.g. a request body) and
        keyword arguments; keywords win on a clash.

        Raises:
            BusyError: If a transition is already running. Never queued.
            UnknownTransitionError: If the kind is not registered.
            TransitionUnavailableError: If it cannot run in this environment.
        """
        kind = _coerce_kind(kind)
        if not self.gate.try_acquire(kind.value):
            logger.info("Rejected %s: busy with %s", kind.value, self.gate.holder)
            self._notify_busy(kind)
            raise BusyError(kind.value, self.gate.holder)

        try:
            plan = plan_transition(kind, self.context(), **{**(params or {}), **kwargs})
            return self._executor.submit(self._run_plan, plan, log_fn)
        except BaseException:
            self.gate.release()
            raise

    def run(self, kind: TransitionKind | str, *, log_fn: LogFn | None = None, **params: Any) -> OutcomeReport:
        """Submit and wait for the report."""
        return self.submit(kind, log_fn=log_fn, **params).result()

    def _run_plan(self, plan: TransitionPlan, log_fn: LogFn | None) -> OutcomeReport:
        """Worker: gate is already held; always released here."""
        try:
            report = self._execute_plan(plan, log_fn)
        finally:
            self.gate.release()
        self._notify_complete(report)
        return report

    def _execute_plan(self, plan: TransitionPlan, log_fn: LogFn | None) -> OutcomeReport:
        transition = plan.transition

        if plan.before is not None:
            try:
                plan.before()
            except Exception as e:
                logger.exception("Preparation for %s failed", transition.id)
                return OutcomeReport(
                    transition_id=transition.id,
                    error=f"Preparation failed: {e}",
                    completed_at=datetime.now(),
                )

        report = self.sequencer.execute(transition, log_fn)
        report.postcondition = plan.postcondition
        report.artifacts.update(plan.artifacts)

        try:
            if plan.postcondition is not None and not plan.postcondition.is_empty:
                verification = self.reconciler.check(plan.postcondition)
                report.verified = verification.matched
                report.mismatches = verification.mismatches
                self.store.replace(verification.observed)
            else:
                self.store.replace(self.reconciler.probe())
        except Exception as e:
            logger.exception("Re-probing after %s failed", transition.id)
            report.error = f"State probe failed: {e}"

        if plan.after_verified and report.verified and report.success:
            followup = ServiceTransition(id=f"{transition.id}-followup", steps=plan.after_verified)
            self.sequencer.execute(followup, log_fn, report=report)

        report.completed_at = datetime.now()
        return report

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the worker pool."""
        self._executor.shutdown(wait=wait)
