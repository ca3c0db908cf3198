"""Environment model dataclasses - Snapshot of the local PHP installation."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ServiceState(Enum):
    """Runtime state of a Homebrew service."""

    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"
    NOT_INSTALLED = "not_installed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PhpVersion:
    """A PHP version as reported by ``php -v``."""

    long: str  # 8.2.10
    short: str  # 8.2

    @classmethod
    def parse(cls, text: str) -> "PhpVersion | None":
        """Parse '8.2.10' (or 'PHP 8.2.10 (cli) ...') into a version."""
        token = text.strip()
        if token.startswith("PHP "):
            token = token.split()[1]
        parts = token.split(".")
        if len(parts) < 2 or not parts[0].isdigit() or not parts[1].isdigit():
            return None
        return cls(long=token, short=f"{parts[0]}.{parts[1]}")


@dataclass(frozen=True)
class PhpExtension:
    """An extension line found in a loaded ini file."""

    name: str
    ini_file: str
    line_number: int
    enabled: bool
    zend: bool = False

    @property
    def file_name_only(self) -> str:
        return self.ini_file.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class IniLimits:
    """The ini limits shown next to the active version."""

    memory_limit: str = "?"
    post_max_size: str = "?"
    upload_max_filesize: str = "?"


@dataclass(frozen=True)
class ActiveInstallation:
    """The PHP version currently linked as ``php``.

    ``error`` is set when ``php -v`` could not be run or parsed, which is
    the usual symptom of a broken link.
    """

    version: PhpVersion | None = None
    error: bool = False
    limits: IniLimits = field(default_factory=IniLimits)
    extensions: tuple[PhpExtension, ...] = ()
    fpm_configured: bool = True

    @property
    def short_version(self) -> str | None:
        return self.version.short if self.version else None


@dataclass(frozen=True)
class EnvironmentSnapshot:
    """Authoritative view of the installation, replaced after each transition."""

    active: ActiveInstallation = field(default_factory=ActiveInstallation)
    available_versions: tuple[str, ...] = ()
    brew_php_version: str | None = None
    services: dict[str, ServiceState] = field(default_factory=dict)
    probed_at: datetime = field(default_factory=datetime.now)

    def formula_for(self, version: str) -> str:
        """Homebrew formula name for a short version."""
        return formula_name(version, self.brew_php_version)

    def service_state(self, name: str) -> ServiceState:
        return self.services.get(name, ServiceState.UNKNOWN)

    def to_dict(self) -> dict:
        active = self.active
        return {
            "active": {
                "version": active.version.long if active.version else None,
                "short_version": active.short_version,
                "error": active.error,
                "fpm_configured": active.fpm_configured,
                "limits": {
                    "memory_limit": active.limits.memory_limit,
                    "post_max_size": active.limits.post_max_size,
                    "upload_max_filesize": active.limits.upload_max_filesize,
                },
                "extensions": [
                    {"name": e.name, "file": e.ini_file, "enabled": e.enabled}
                    for e in active.extensions
                ],
            },
            "available_versions": list(self.available_versions),
            "brew_php_version": self.brew_php_version,
            "services": {name: state.value for name, state in self.services.items()},
            "probed_at": self.probed_at.isoformat(),
        }


def formula_name(version: str, brew_php_version: str | None) -> str:
    """``php`` for Homebrew's default version, ``php@X.Y`` otherwise."""
    if brew_php_version is not None and version == brew_php_version:
        return "php"
    return f"php@{version}"
