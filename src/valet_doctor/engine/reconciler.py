"""State Reconciler - Compares live state with a transition's post-condition.

A mismatch is not an error. It is a signal for the caller, who may
offer the repair transition.
"""

import logging
from dataclasses import dataclass, field

from valet_doctor.model.environment import EnvironmentSnapshot, ServiceState, formula_name
from valet_doctor.model.transition import PostCondition
from valet_doctor.scanner.php import PHPScanner
from valet_doctor.scanner.services import HomebrewServicesScanner

logger = logging.getLogger(__name__)


@dataclass
class Verification:
    """Outcome of comparing observed state with a post-condition."""

    matched: bool
    observed: EnvironmentSnapshot
    mismatches: list[str] = field(default_factory=list)


class StateReconciler:
    """Probes live state; never answers from a cache."""

    def __init__(
        self,
        php_scanner: PHPScanner,
        services_scanner: HomebrewServicesScanner,
        services: tuple[str, ...] = ("dnsmasq", "nginx"),
    ) -> None:
        self.php_scanner = php_scanner
        self.services_scanner = services_scanner
        self.services = services

    def probe(self, extra_services: tuple[str, ...] = ()) -> EnvironmentSnapshot:
        """Build a fresh snapshot of the installation."""
        php = self.php_scanner.scan()

        names = list(self.services)
        for version in php.available_versions:
            formula = formula_name(version, php.brew_php_version)
            if formula not in names:
                names.append(formula)
        for name in extra_services:
            if name not in names:
                names.append(name)

        return EnvironmentSnapshot(
            active=php.active,
            available_versions=tuple(php.available_versions),
            brew_php_version=php.brew_php_version,
            services=self.services_scanner.scan(names),
        )

    def check(self, expected: PostCondition) -> Verification:
        """Probe and list every way the observed state differs."""
        observed = self.probe(extra_services=expected.running + expected.stopped)
        mismatches: list[str] = []

        if expected.active_version is not None:
            actual = observed.active.short_version
            if observed.active.error or actual != expected.active_version:
                mismatches.append(
                    f"active version is {actual or 'unknown'}, expected {expected.active_version}"
                )

        for name in expected.running:
            state = observed.service_state(name)
            if state is not ServiceState.RUNNING:
                mismatches.append(f"{name} is {state.value}, expected running")

        for name in expected.stopped:
            state = observed.service_state(name)
            if state is ServiceState.RUNNING:
                mismatches.append(f"{name} is still running")

        if mismatches:
            logger.info("Post-condition mismatch: %s", "; ".join(mismatches))
        return Verification(matched=not mismatches, observed=observed, mismatches=mismatches)

    def verify(self, expected: PostCondition) -> bool:
        """True when the live state satisfies the post-condition."""
        return self.check(expected).matched
