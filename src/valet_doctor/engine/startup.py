"""Environment checks run before the tool starts orchestrating.

Each check inspects the machine (or the latest snapshot) and returns a
``CheckResult``. A failed CRITICAL check means transitions cannot work;
WARNING checks point at fixable problems.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from valet_doctor.config import Settings
from valet_doctor.connector.shell import ShellConnector
from valet_doctor.model.environment import EnvironmentSnapshot

logger = logging.getLogger(__name__)


class Severity(Enum):
    """How bad a failed check is."""

    CRITICAL = "critical"  # Nothing will work
    WARNING = "warning"  # Some transitions will misbehave


@dataclass
class CheckContext:
    """Read-only access to what checks may inspect."""

    shell: ShellConnector
    settings: Settings
    snapshot: EnvironmentSnapshot


@dataclass(frozen=True)
class CheckResult:
    name: str
    passed: bool
    severity: Severity
    message: str


class BaseCheck(ABC):
    """A single environment check."""

    name: str = ""
    severity: Severity = Severity.CRITICAL

    @abstractmethod
    def run(self, context: CheckContext) -> tuple[bool, str]:
        """Return (passed, message)."""
        ...


_check_registry: list[type[BaseCheck]] = []


def register_check(check_class: type[BaseCheck]) -> type[BaseCheck]:
    """Decorator to register a check class."""
    _check_registry.append(check_class)
    return check_class


def get_all_checks() -> list[type[BaseCheck]]:
    return _check_registry.copy()


@register_check
class HomebrewInstalledCheck(BaseCheck):
    name = "homebrew"

    def run(self, context: CheckContext) -> tuple[bool, str]:
        brew = context.settings.paths.brew
        if context.shell.file_exists(brew):
            return True, f"Homebrew found at {brew}"
        return False, f"Homebrew not found at {brew}; set homebrew_prefix"


@register_check
class PhpInstalledCheck(BaseCheck):
    name = "php"

    def run(self, context: CheckContext) -> tuple[bool, str]:
        php = f"{context.settings.paths.bin}/php"
        if context.shell.file_exists(php):
            return True, f"PHP binary found at {php}"
        return False, f"No linked PHP binary at {php}; install php with Homebrew or run Fix My Valet"


@register_check
class ValetInstalledCheck(BaseCheck):
    name = "valet"

    def run(self, context: CheckContext) -> tuple[bool, str]:
        valet = context.shell.which("valet")
        if valet:
            return True, f"Valet found at {valet}"
        return False, "Laravel Valet is not on PATH; run `composer global require laravel/valet`"


@register_check
class AliasConflictCheck(BaseCheck):
    """Both ``php`` and ``php@<default>`` installed confuses linking."""

    name = "php-alias-conflict"
    severity = Severity.WARNING

    def run(self, context: CheckContext) -> tuple[bool, str]:
        default = context.snapshot.brew_php_version
        if default is None:
            return True, "Homebrew default PHP version unknown, skipped"
        result = context.shell.run(f"{context.settings.paths.brew} list --formula -1")
        if not result.success:
            return True, "Could not list formulae, skipped"
        installed = set(result.stdout.split())
        if "php" in installed and f"php@{default}" in installed:
            return False, f"Both php and php@{default} are installed; uninstall php@{default}"
        return True, "No alias conflict"


@register_check
class PhpFpmConfiguredCheck(BaseCheck):
    """Valet's PHP-FPM pool must exist for the active version."""

    name = "php-fpm-pool"
    severity = Severity.WARNING

    def run(self, context: CheckContext) -> tuple[bool, str]:
        active = context.snapshot.active
        if active.error or active.version is None:
            return True, "No active PHP version, skipped"
        if active.fpm_configured:
            return True, f"Valet pool configured for PHP {active.short_version}"
        return False, f"PHP {active.short_version} has no valet-fpm.conf; run `valet install`"


def run_checks(context: CheckContext) -> list[CheckResult]:
    """Run every registered check.

    A check that raises is reported as failed rather than aborting the rest.
    """
    results: list[CheckResult] = []
    for check_class in _check_registry:
        check = check_class()
        try:
            passed, message = check.run(context)
        except Exception as e:
            logger.warning("Check %s failed: %s", check.name, e)
            passed, message = False, f"Check raised: {e}"
        results.append(CheckResult(check.name, passed, check.severity, message))
    return results


def environment_ok(results: list[CheckResult]) -> bool:
    """True unless a CRITICAL check failed."""
    return all(r.passed or r.severity is not Severity.CRITICAL for r in results)
