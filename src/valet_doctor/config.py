"""Configuration management for valet-doctor.

Settings are immutable and resolved in three layers: built-in defaults,
the YAML file in the config directory, then VALET_DOCTOR_* environment
variables.
"""

import getpass
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from valet_doctor.connector.shell import ELEVATION_MODES

logger = logging.getLogger(__name__)

_ENV_PREFIX = "VALET_DOCTOR_"


def _default_prefix() -> str:
    """Homebrew prefix: /opt/homebrew on Apple Silicon, /usr/local on Intel."""
    if Path("/opt/homebrew/bin/brew").exists():
        return "/opt/homebrew"
    return "/usr/local"


@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings."""

    homebrew_prefix: str = field(default_factory=_default_prefix)
    elevation: str = "sudo"
    step_timeout: float = 300.0
    composer_timeout: float = 900.0
    services: tuple[str, ...] = ("dnsmasq", "nginx")
    brew_php_version: str | None = None
    composer_path: str = "/usr/local/bin/composer"
    auto_restart_after_extension_toggle: bool = True
    auto_composer_update_after_switch: bool = False
    refresh_interval: int = 60
    max_workers: int = 1
    web_port: int = 8766

    def __post_init__(self) -> None:
        if self.elevation not in ELEVATION_MODES:
            raise ValueError(f"elevation must be one of {ELEVATION_MODES}, got '{self.elevation}'")
        if self.step_timeout <= 0:
            raise ValueError("step_timeout must be positive")

    @property
    def paths(self) -> "Paths":
        return Paths.from_prefix(self.homebrew_prefix, composer=self.composer_path)

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["services"] = list(self.services)
        return data


@dataclass(frozen=True)
class Paths:
    """Filesystem locations derived from the Homebrew prefix."""

    prefix: str
    brew: str
    bin: str
    cellar: str
    etc: str
    opt: str
    composer: str
    whoami: str

    @classmethod
    def from_prefix(cls, prefix: str, composer: str = "/usr/local/bin/composer") -> "Paths":
        prefix = prefix.rstrip("/")
        return cls(
            prefix=prefix,
            brew=f"{prefix}/bin/brew",
            bin=f"{prefix}/bin",
            cellar=f"{prefix}/Cellar",
            etc=f"{prefix}/etc",
            opt=f"{prefix}/opt",
            composer=composer,
            whoami=getpass.getuser(),
        )

    def template_vars(self) -> dict[str, str]:
        """Values substituted into step command templates."""
        return {
            "brew": self.brew,
            "bin": self.bin,
            "cellar": self.cellar,
            "etc": self.etc,
            "opt": self.opt,
            "composer": self.composer,
            "whoami": self.whoami,
        }


def _coerce(name: str, raw: Any) -> Any:
    """Convert a raw file/env value to the type of the Settings field."""
    sample = getattr(Settings(), name)
    if name == "brew_php_version":
        return str(raw) if raw not in (None, "") else None
    if name == "services":
        if isinstance(raw, str):
            return tuple(s.strip() for s in raw.split(",") if s.strip())
        return tuple(str(s) for s in raw)
    if isinstance(sample, bool):
        if isinstance(raw, str):
            return raw.strip().lower() not in {"0", "false", "no", "off"}
        return bool(raw)
    if isinstance(sample, int):
        return int(raw)
    if isinstance(sample, float):
        return float(raw)
    return str(raw)


class ConfigManager:
    """Loads and saves settings overrides stored in YAML format."""

    FILE_NAME = "config.yaml"

    def __init__(self, config_dir: Path | None = None) -> None:
        if config_dir is None:
            env_config = os.getenv("VALET_DOCTOR_CONFIG")
            if env_config:
                config_dir = Path(env_config).expanduser().resolve()
            else:
                config_dir = Path.home() / ".valet-doctor"

        self.config_dir = config_dir
        self.config_file = config_dir / self.FILE_NAME

    def _load_overrides(self) -> dict[str, Any]:
        """Load the raw overrides from the YAML file."""
        if not self.config_file.exists():
            return {}
        try:
            with open(self.config_file, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Ignoring unreadable config file %s: %s", self.config_file, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring config file %s: expected a mapping", self.config_file)
            return {}
        return data

    def _save_overrides(self, overrides: dict[str, Any]) -> None:
        """Save overrides with owner-only permissions."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file.touch(mode=0o600)
        with open(self.config_file, "w") as f:
            yaml.safe_dump(overrides, f, sort_keys=True)

    def load(self) -> Settings:
        """Resolve settings: defaults, then file, then environment."""
        known = {f.name for f in fields(Settings)}
        values: dict[str, Any] = {}

        for key, raw in self._load_overrides().items():
            if key not in known:
                logger.warning("Unknown setting '%s' in %s", key, self.config_file)
                continue
            values[key] = _coerce(key, raw)

        for name in known:
            raw = os.getenv(_ENV_PREFIX + name.upper())
            if raw is not None:
                values[name] = _coerce(name, raw)

        return replace(Settings(), **values)

    def set_value(self, key: str, raw: str) -> Settings:
        """Persist a single override and return the resulting settings.

        Raises:
            KeyError: If the key is not a known setting.
            ValueError: If the value does not validate.
        """
        if key not in {f.name for f in fields(Settings)}:
            raise KeyError(key)
        value = _coerce(key, raw)
        # Validate before writing
        replace(Settings(), **{key: value})

        overrides = self._load_overrides()
        overrides[key] = list(value) if isinstance(value, tuple) else value
        self._save_overrides(overrides)
        return self.load()

    def unset_value(self, key: str) -> bool:
        """Remove an override. Returns True if one existed."""
        overrides = self._load_overrides()
        if key not in overrides:
            return False
        del overrides[key]
        self._save_overrides(overrides)
        return True
