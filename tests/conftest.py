"""Pytest configuration and fixtures for valet-doctor tests."""

import json

import pytest

from valet_doctor.config import Settings
from valet_doctor.connector.shell import CommandResult
from valet_doctor.engine.busy import BusyGate
from valet_doctor.engine.orchestrator import Orchestrator
from valet_doctor.engine.reconciler import StateReconciler
from valet_doctor.engine.snapshot import SnapshotStore
from valet_doctor.model.environment import (
    ActiveInstallation,
    EnvironmentSnapshot,
    PhpExtension,
    PhpVersion,
    ServiceState,
)
from valet_doctor.scanner.php import PHPScanner
from valet_doctor.scanner.services import HomebrewServicesScanner

PREFIX = "/opt/homebrew"
BREW = f"{PREFIX}/bin/brew"
COMPOSER = "/usr/local/bin/composer"


class FakeHomebrew:
    """Scripted stand-in for a Mac with Homebrew PHP and Valet.

    Understands enough of ``brew`` and ``php`` for the scanners and the
    transition steps. ``link``/``unlink`` and ``services`` mutate state,
    so a transition can be verified afterwards. Stopping a service that is
    not running exits 1, like Homebrew does.
    """

    def __init__(self, versions=("8.1", "8.2", "8.3"), default="8.3", linked="8.2") -> None:
        self.versions = list(versions)
        self.default = default
        self.linked = linked
        self.running = {"dnsmasq", "nginx"}
        if linked:
            self.running.add(self.formula(linked))
        self.calls: list[tuple[str, bool, float | None]] = []
        self.failures: dict[str, int] = {}
        self.link_is_noop = False
        self.composer_installed = True
        self.extra_formulae: list[str] = []
        self.files: dict[str, str] = {}
        if linked:
            self._install_ini(linked)

    # -- helpers ---------------------------------------------------------

    def formula(self, version: str) -> str:
        return "php" if version == self.default else f"php@{version}"

    def version_of(self, formula: str) -> str:
        return self.default if formula == "php" else formula.split("@", 1)[1]

    def _service_name(self, name: str) -> str:
        if name.startswith("php"):
            return self.formula(self.version_of(name))
        return name

    def _install_ini(self, version: str) -> None:
        etc = f"{PREFIX}/etc/php/{version}"
        self.files[f"{etc}/php.ini"] = (
            "[PHP]\n"
            "memory_limit = 128M\n"
            ";extension=bz2\n"
            'extension="redis.so"\n'
            ';extension="xdebug.so"\n'
        )
        self.files[f"{etc}/conf.d/ext-opcache.ini"] = '[opcache]\nzend_extension="opcache.so"\n'

    @property
    def commands(self) -> list[str]:
        return [c for c, _, _ in self.calls]

    @property
    def elevated_commands(self) -> list[str]:
        return [c for c, elevated, _ in self.calls if elevated]

    def _ok(self, command: str, stdout: str = "") -> CommandResult:
        return CommandResult(command=command, stdout=stdout, stderr="", exit_code=0)

    def _fail(self, command: str, code: int = 1, stderr: str = "failed") -> CommandResult:
        return CommandResult(command=command, stdout="", stderr=stderr, exit_code=code)

    # -- ShellConnector interface ------------------------------------------

    def run(self, command: str, elevated: bool = False, timeout: float | None = None) -> CommandResult:
        self.calls.append((command, elevated, timeout))

        for needle, code in self.failures.items():
            if needle in command:
                return self._fail(command, code)

        if " && " in command:
            return self._ok(command)

        if command == f"{BREW} services list --json":
            names = ["dnsmasq", "nginx"] + [self.formula(v) for v in self.versions]
            listing = [
                {"name": n, "status": "started" if n in self.running else "none"}
                for n in names
            ]
            return self._ok(command, json.dumps(listing))

        if command == f"{BREW} list --formula -1":
            names = ["dnsmasq", "nginx", "composer"] + [self.formula(v) for v in self.versions]
            names += self.extra_formulae
            return self._ok(command, "\n".join(names))

        if command in (f"{PREFIX}/bin/php -v", f"{PREFIX}/opt/php/bin/php -v"):
            version = self.linked if command.startswith(f"{PREFIX}/bin") else self.default
            if version is None:
                return self._fail(command, 127, "php: command not found")
            return self._ok(command, f"PHP {version}.7 (cli) (built: Jan  1 2024)\nZend Engine v4")

        if command.startswith(f"{PREFIX}/bin/php -r"):
            return self._ok(command, "128M|8M|2M")

        if command == f"{PREFIX}/bin/php --ini":
            etc = f"{PREFIX}/etc/php/{self.linked}"
            return self._ok(command, (
                f"Configuration File (php.ini) Path: {etc}\n"
                f"Loaded Configuration File:         {etc}/php.ini\n"
                f"Scan for additional .ini files in: {etc}/conf.d\n"
                f"Additional .ini files parsed:      {etc}/conf.d/ext-opcache.ini\n"
            ))

        parts = command.split()
        if parts and parts[0] == BREW:
            return self._brew(command, parts[1:])
        return self._ok(command)

    def _brew(self, command: str, args: list[str]) -> CommandResult:
        if args[0] == "unlink":
            if self.linked and self.version_of(args[1]) == self.linked:
                self.linked = None
            return self._ok(command)

        if args[0] == "link":
            version = self.version_of(args[1])
            if version not in self.versions:
                return self._fail(command, 1, f"No such keg: {args[1]}")
            if not self.link_is_noop:
                self.linked = version
                self._install_ini(version)
            return self._ok(command)

        if args[0] == "services":
            verb, name = args[1], self._service_name(args[2])
            if verb == "stop":
                if name not in self.running:
                    return self._fail(command, 1, f"Service `{name}` is not started.")
                self.running.discard(name)
            elif verb in ("start", "restart"):
                self.running.add(name)
            return self._ok(command)

        return self._ok(command)

    def read_file(self, path: str) -> str | None:
        return self.files.get(path)

    def file_exists(self, path: str) -> bool:
        if path == BREW:
            return True
        if path == COMPOSER:
            return self.composer_installed
        if path == f"{PREFIX}/bin/php":
            return self.linked is not None
        if path.startswith(f"{PREFIX}/opt/php") and path.endswith("/bin/php"):
            return True
        if path.endswith("/php-fpm.d/valet-fpm.conf"):
            return True
        return path in self.files

    def dir_exists(self, path: str) -> bool:
        return True

    def list_dir(self, path: str) -> list[str]:
        if path == f"{PREFIX}/opt":
            return sorted(["dnsmasq", "nginx"] + [self.formula(v) for v in self.versions])
        if path == f"{PREFIX}/Cellar/php":
            return [f"{self.default}.7"]
        return []

    def which(self, binary: str) -> str | None:
        if binary == "valet":
            return "/Users/dev/.composer/vendor/bin/valet"
        return None

    def whoami(self) -> str:
        return "dev"


@pytest.fixture
def fake_brew():
    """A Mac with PHP 8.1, 8.2 and 8.3 (Homebrew default), 8.2 linked."""
    return FakeHomebrew()


@pytest.fixture
def settings():
    return Settings(homebrew_prefix=PREFIX, elevation="none", composer_path=COMPOSER)


@pytest.fixture
def gate():
    """A private busy gate so tests never share the process-wide one."""
    return BusyGate()


@pytest.fixture
def reconciler(fake_brew, settings):
    paths = settings.paths
    return StateReconciler(
        PHPScanner(fake_brew, paths),
        HomebrewServicesScanner(fake_brew, paths),
        services=settings.services,
    )


@pytest.fixture
def orchestrator(fake_brew, settings, reconciler, gate):
    orch = Orchestrator(settings, fake_brew, reconciler, gate=gate, store=SnapshotStore())
    yield orch
    orch.shutdown(wait=True)


@pytest.fixture
def sample_snapshot():
    """Snapshot matching the default FakeHomebrew state."""
    return EnvironmentSnapshot(
        active=ActiveInstallation(
            version=PhpVersion(long="8.2.7", short="8.2"),
            extensions=(
                PhpExtension("redis", f"{PREFIX}/etc/php/8.2/php.ini", 4, True),
                PhpExtension("xdebug", f"{PREFIX}/etc/php/8.2/php.ini", 5, False),
            ),
        ),
        available_versions=("8.1", "8.2", "8.3"),
        brew_php_version="8.3",
        services={
            "dnsmasq": ServiceState.RUNNING,
            "nginx": ServiceState.RUNNING,
            "php@8.1": ServiceState.STOPPED,
            "php@8.2": ServiceState.RUNNING,
            "php": ServiceState.STOPPED,
        },
    )
