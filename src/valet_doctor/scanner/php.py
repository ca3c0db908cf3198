"""PHP Scanner - Collects PHP installation information.

This scanner finds the Homebrew PHP versions, the linked (active) version,
its ini limits, its extensions and whether PHP-FPM has a Valet pool.
It only collects data; comparing it to expectations is the reconciler's job.
"""

import re
from dataclasses import dataclass, field

from valet_doctor.config import Paths
from valet_doctor.connector.shell import ShellConnector
from valet_doctor.model.environment import (
    ActiveInstallation,
    IniLimits,
    PhpExtension,
    PhpVersion,
)

# opt/ entries look like "php" or "php@8.1"
_FORMULA_RE = re.compile(r"^php(?:@(?P<version>\d+\.\d+))?$")

# Only lines naming a shared object count; php.ini ships commented
# placeholders like ";extension=bz2" that are not real extensions.
_EXTENSION_RE = re.compile(
    r'^(?P<comment>;)?\s*(?P<zend>zend_)?extension\s*=\s*"?(?P<path>[^"\s;]*?(?P<name>[A-Za-z0-9_]+)\.so)"?\s*$'
)

_LIMITS_CMD = (
    "{bin}/php -r 'echo ini_get(\"memory_limit\"), \"|\", "
    "ini_get(\"post_max_size\"), \"|\", ini_get(\"upload_max_filesize\");'"
)


@dataclass
class PHPScanResult:
    """Raw PHP scan results."""

    available_versions: list[str] = field(default_factory=list)
    brew_php_version: str | None = None
    active: ActiveInstallation = field(default_factory=ActiveInstallation)


def _version_key(text: str) -> tuple[int, ...]:
    """Numeric sort key: '8.10.1_1' -> (8, 10, 1, 1)."""
    return tuple(int(part) for part in re.findall(r"\d+", text))


def parse_ini_extensions(ini_file: str, content: str) -> list[PhpExtension]:
    """Find extension lines in an ini file."""
    extensions: list[PhpExtension] = []
    for line_number, line in enumerate(content.splitlines(), start=1):
        match = _EXTENSION_RE.match(line.strip())
        if not match:
            continue
        extensions.append(
            PhpExtension(
                name=match.group("name"),
                ini_file=ini_file,
                line_number=line_number,
                enabled=match.group("comment") is None,
                zend=match.group("zend") is not None,
            )
        )
    return extensions


def parse_loaded_ini_files(output: str) -> list[str]:
    """Extract the loaded ini paths from ``php --ini`` output."""
    files: list[str] = []
    collecting = False
    for line in output.splitlines():
        if line.startswith("Loaded Configuration File:"):
            path = line.split(":", 1)[1].strip()
            if path and path != "(none)":
                files.append(path)
            collecting = False
            continue
        if line.startswith("Additional .ini files parsed:"):
            collecting = True
            line = line.split(":", 1)[1]
        elif ":" in line and not line.strip().startswith("/"):
            collecting = False
            continue
        if collecting:
            for part in line.split(","):
                part = part.strip()
                if part and part != "(none)":
                    files.append(part)
    return files


class PHPScanner:
    """Scanner for the Homebrew PHP installation.

    Collects:
    - Installed PHP versions (from the opt/ links)
    - Homebrew's default ``php`` version
    - Active version, limits and extensions
    - PHP-FPM Valet pool presence
    """

    def __init__(
        self,
        shell: ShellConnector,
        paths: Paths,
        brew_php_version: str | None = None,
    ) -> None:
        self.shell = shell
        self.paths = paths
        self._brew_php_override = brew_php_version

    def scan(self) -> PHPScanResult:
        """Perform full PHP scan."""
        brew_version = self.detect_brew_php_version()
        return PHPScanResult(
            available_versions=self.detect_versions(brew_version),
            brew_php_version=brew_version,
            active=self.probe_active(),
        )

    def detect_brew_php_version(self) -> str | None:
        """Version the unversioned ``php`` formula currently installs."""
        if self._brew_php_override:
            return self._brew_php_override

        for entry in sorted(self.shell.list_dir(f"{self.paths.cellar}/php"), key=_version_key, reverse=True):
            version = PhpVersion.parse(entry)
            if version:
                return version.short

        result = self.shell.run(f"{self.paths.opt}/php/bin/php -v")
        if result.success:
            version = PhpVersion.parse(result.stdout.split("\n")[0])
            if version:
                return version.short
        return None

    def detect_versions(self, brew_php_version: str | None = None) -> list[str]:
        """Short versions with a usable ``bin/php`` under opt/, oldest first."""
        versions: list[str] = []
        for entry in self.shell.list_dir(self.paths.opt):
            match = _FORMULA_RE.match(entry)
            if not match:
                continue
            if not self.shell.file_exists(f"{self.paths.opt}/{entry}/bin/php"):
                continue
            version = match.group("version") or brew_php_version
            if version and version not in versions:
                versions.append(version)
        return sorted(versions, key=_version_key)

    def probe_active(self) -> ActiveInstallation:
        """Inspect the version linked as ``php``."""
        result = self.shell.run(f"{self.paths.bin}/php -v")
        if not result.success:
            return ActiveInstallation(error=True)

        version = PhpVersion.parse(result.stdout.split("\n")[0])
        if version is None:
            return ActiveInstallation(error=True)

        return ActiveInstallation(
            version=version,
            limits=self._probe_limits(),
            extensions=tuple(self._probe_extensions()),
            fpm_configured=self.shell.file_exists(
                f"{self.paths.etc}/php/{version.short}/php-fpm.d/valet-fpm.conf"
            ),
        )

    def _probe_limits(self) -> IniLimits:
        result = self.shell.run(_LIMITS_CMD.format(bin=self.paths.bin))
        if not result.success:
            return IniLimits()
        parts = result.stdout.strip().split("|")
        if len(parts) != 3:
            return IniLimits()
        return IniLimits(
            memory_limit=parts[0] or "?",
            post_max_size=parts[1] or "?",
            upload_max_filesize=parts[2] or "?",
        )

    def _probe_extensions(self) -> list[PhpExtension]:
        result = self.shell.run(f"{self.paths.bin}/php --ini")
        if not result.success:
            return []

        extensions: list[PhpExtension] = []
        for ini_file in parse_loaded_ini_files(result.stdout):
            content = self.shell.read_file(ini_file)
            if content is None:
                continue
            extensions.extend(parse_ini_extensions(ini_file, content))
        return extensions
