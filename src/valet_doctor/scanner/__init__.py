"""Scanner package - Data collection from the local machine.

Scanners run shell commands and collect raw data.
They do NOT compare or decide - that's the reconciler's job.
"""

from valet_doctor.scanner.php import PHPScanner, PHPScanResult
from valet_doctor.scanner.services import HomebrewServicesScanner

__all__ = [
    "HomebrewServicesScanner",
    "PHPScanResult",
    "PHPScanner",
]
