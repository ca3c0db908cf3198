"""Extension Action - Enables or disables a PHP extension in its ini file.

CONTRACT:
- read_only: False (edits one line of one ini file)
- rollback_support: toggling again restores the line
"""

import logging
from pathlib import Path

from valet_doctor.model.environment import PhpExtension

logger = logging.getLogger(__name__)


class ExtensionNotFoundError(LookupError):
    """Raised when no loaded ini file mentions the extension."""


def find_extension(extensions: tuple[PhpExtension, ...] | list[PhpExtension], name: str) -> PhpExtension:
    """Look an extension up by name (case-insensitive)."""
    wanted = name.lower()
    for extension in extensions:
        if extension.name.lower() == wanted:
            return extension
    raise ExtensionNotFoundError(f"Extension '{name}' not found in the loaded ini files")


def toggle_line(line: str, enable: bool) -> str:
    """Comment or uncomment an ``extension=`` line, keeping its indentation."""
    stripped = line.lstrip()
    indent = line[: len(line) - len(stripped)]
    body = stripped.lstrip(";").lstrip()
    return f"{indent}{body}" if enable else f"{indent};{body}"


def toggle_extension(extension: PhpExtension) -> bool:
    """Flip the extension in its ini file.

    Returns:
        The new enabled state.

    Raises:
        ExtensionNotFoundError: If the line moved since it was scanned.
    """
    path = Path(extension.ini_file)
    lines = path.read_text(encoding="utf-8").splitlines(keepends=True)

    index = extension.line_number - 1
    if index >= len(lines) or extension.name not in lines[index]:
        raise ExtensionNotFoundError(
            f"{extension.ini_file}:{extension.line_number} no longer mentions {extension.name}"
        )

    enable = not extension.enabled
    line = lines[index]
    newline = line[len(line.rstrip("\r\n")):]
    lines[index] = toggle_line(line.rstrip("\r\n"), enable) + newline
    path.write_text("".join(lines), encoding="utf-8")

    logger.info("%s %s in %s", "Enabled" if enable else "Disabled", extension.name, extension.ini_file)
    return enable
