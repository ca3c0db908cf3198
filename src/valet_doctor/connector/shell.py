"""Shell Connector - Runs commands on the local machine.

This module handles all child-process execution for valet-doctor.
Every call captures stdout/stderr, is bounded by a timeout and never
raises for a non-zero exit: callers inspect ``CommandResult`` instead.
"""

import getpass
import logging
import os
import shlex
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# Exit code reported for a command killed by its timeout (same as coreutils `timeout`)
TIMEOUT_EXIT_CODE = 124

ELEVATION_MODES = ("sudo", "osascript", "none")


@dataclass
class ShellConfig:
    """Shell execution configuration."""

    shell: str = "/bin/sh"
    elevation: str = "sudo"  # sudo | osascript | none
    timeout: float = 300.0
    extra_path: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.elevation not in ELEVATION_MODES:
            raise ValueError(
                f"Unknown elevation mode '{self.elevation}', expected one of {ELEVATION_MODES}"
            )


@dataclass
class CommandResult:
    """Result of a command execution."""

    command: str
    stdout: str
    stderr: str
    exit_code: int
    timed_out: bool = False
    duration: float = 0.0
    success: bool = field(init=False)

    def __post_init__(self) -> None:
        self.success = self.exit_code == 0


def wrap_elevated(command: str, mode: str) -> str:
    """Wrap a command so it runs with administrator privileges.

    ``sudo`` runs non-interactively and relies on the sudoers entry that
    ``valet trust`` installs for brew. ``osascript`` pops the macOS
    administrator prompt. No credentials are ever passed along.
    """
    if mode == "none":
        return command
    if mode == "osascript":
        escaped = command.replace("\\", "\\\\").replace('"', '\\"')
        script = f'do shell script "{escaped}" with administrator privileges'
        return f"osascript -e {shlex.quote(script)}"
    return f"sudo -n sh -c {shlex.quote(command)}"


class ShellConnector:
    """Local command runner.

    Example:
        >>> shell = ShellConnector(ShellConfig(elevation="none"))
        >>> result = shell.run("php -v")
        >>> print(result.stdout)
    """

    def __init__(self, config: ShellConfig | None = None) -> None:
        self.config = config or ShellConfig()

    def run(self, command: str, elevated: bool = False, timeout: float | None = None) -> CommandResult:
        """Execute a command.

        Args:
            command: The shell command to execute.
            elevated: Whether the command needs administrator privileges.
            timeout: Timeout in seconds. Defaults to config timeout.

        Returns:
            CommandResult with stdout, stderr and exit_code.
        """
        full_command = wrap_elevated(command, self.config.elevation) if elevated else command
        cmd_timeout = timeout if timeout is not None else self.config.timeout

        logger.debug("Running%s: %s", " (elevated)" if elevated else "", command)
        start = time.monotonic()
        try:
            proc = subprocess.run(
                full_command,
                shell=True,
                executable=self.config.shell,
                capture_output=True,
                text=True,
                timeout=cmd_timeout,
                env=self._env(),
            )
        except subprocess.TimeoutExpired as e:
            logger.warning("Command timed out after %ss: %s", cmd_timeout, command)
            return CommandResult(
                command=command,
                stdout=_as_text(e.stdout),
                stderr=_as_text(e.stderr) or f"Timed out after {cmd_timeout}s",
                exit_code=TIMEOUT_EXIT_CODE,
                timed_out=True,
                duration=time.monotonic() - start,
            )
        except OSError as e:
            return CommandResult(
                command=command,
                stdout="",
                stderr=f"Execution error: {e}",
                exit_code=127,
                duration=time.monotonic() - start,
            )

        return CommandResult(
            command=command,
            stdout=proc.stdout,
            stderr=proc.stderr,
            exit_code=proc.returncode,
            duration=time.monotonic() - start,
        )

    def _env(self) -> dict[str, str] | None:
        if not self.config.extra_path:
            return None
        env = dict(os.environ)
        prefix = ":".join(self.config.extra_path)
        env["PATH"] = f"{prefix}:{env.get('PATH', '')}"
        return env

    def read_file(self, path: str) -> str | None:
        """Read file contents, or None if the file doesn't exist."""
        try:
            return Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None

    def file_exists(self, path: str) -> bool:
        """Check if a file exists."""
        return Path(path).is_file()

    def dir_exists(self, path: str) -> bool:
        """Check if a directory exists."""
        return Path(path).is_dir()

    def list_dir(self, path: str) -> list[str]:
        """List directory entries, sorted."""
        try:
            return sorted(p.name for p in Path(path).iterdir())
        except OSError:
            return []

    def which(self, binary: str) -> str | None:
        """Locate a binary on PATH."""
        return shutil.which(binary)

    def whoami(self) -> str:
        """Name of the user running the process."""
        return getpass.getuser()


def _as_text(data: str | bytes | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
