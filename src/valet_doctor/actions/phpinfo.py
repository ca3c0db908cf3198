"""phpinfo Action - Renders phpinfo() of the active version to an HTML file."""

from pathlib import Path

PHPINFO_SCRIPT = "/tmp/valet_doctor_phpinfo.php"
PHPINFO_HTML = "/tmp/valet_doctor_phpinfo.html"


def write_phpinfo_script(path: str = PHPINFO_SCRIPT) -> str:
    """Write the one-line PHP script php-cgi renders."""
    Path(path).write_text("<?php phpinfo();", encoding="utf-8")
    return path


def render_command(script: str = PHPINFO_SCRIPT, output: str = PHPINFO_HTML) -> str:
    """Step template: let php-cgi run the script and keep its HTML output."""
    return f"{{bin}}/php-cgi -q {script} > {output}"


def output_url(output: str = PHPINFO_HTML) -> str:
    return Path(output).resolve().as_uri()
