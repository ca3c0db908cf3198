"""Actions package - Local side effects with explicit contracts.

Each action declares:
- read_only: Whether it modifies files on disk
- rollback_support: Whether it can undo changes
"""

from valet_doctor.actions.extensions import ExtensionNotFoundError, find_extension, toggle_extension

__all__ = ["ExtensionNotFoundError", "find_extension", "toggle_extension"]
