"""Services Scanner - Collects Homebrew service states.

Valet runs dnsmasq, nginx and php as root daemons, so the listing is
taken with elevation by default; ``brew services list`` without it only
shows services of the current user.
"""

import json
import logging

from valet_doctor.config import Paths
from valet_doctor.connector.shell import ShellConnector
from valet_doctor.model.environment import ServiceState

logger = logging.getLogger(__name__)

_STATUS_MAP = {
    "started": ServiceState.RUNNING,
    "scheduled": ServiceState.RUNNING,
    "stopped": ServiceState.STOPPED,
    "none": ServiceState.STOPPED,
    "error": ServiceState.ERROR,
}


def parse_services_json(output: str) -> dict[str, ServiceState]:
    """Parse ``brew services list --json`` output.

    Raises:
        ValueError: If the output is not the expected JSON list.
    """
    data = json.loads(output)
    if not isinstance(data, list):
        raise ValueError("Expected a JSON list of services")

    states: dict[str, ServiceState] = {}
    for entry in data:
        name = entry.get("name")
        if not name:
            continue
        status = str(entry.get("status") or "").lower()
        states[name] = _STATUS_MAP.get(status, ServiceState.UNKNOWN)
    return states


class HomebrewServicesScanner:
    """Scanner for ``brew services`` state."""

    def __init__(self, shell: ShellConnector, paths: Paths, elevated: bool = True) -> None:
        self.shell = shell
        self.paths = paths
        self.elevated = elevated

    def scan(self, names: list[str] | tuple[str, ...] | None = None) -> dict[str, ServiceState]:
        """Return the state of each service.

        Args:
            names: Services to report. Names missing from the listing are
                NOT_INSTALLED. When omitted, every listed service is returned.
        """
        result = self.shell.run(f"{self.paths.brew} services list --json", elevated=self.elevated)
        if not result.success:
            logger.warning("brew services list failed (%s): %s", result.exit_code, result.stderr.strip())
            return {name: ServiceState.UNKNOWN for name in names or ()}

        try:
            states = parse_services_json(result.stdout)
        except ValueError as e:
            logger.warning("Could not parse brew services output: %s", e)
            return {name: ServiceState.UNKNOWN for name in names or ()}

        if names is None:
            return states
        return {name: states.get(name, ServiceState.NOT_INSTALLED) for name in names}
