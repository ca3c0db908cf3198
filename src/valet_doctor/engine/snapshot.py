"""Holder for the current environment snapshot."""

import threading

from valet_doctor.model.environment import EnvironmentSnapshot


class SnapshotStore:
    """Atomic reference to the latest snapshot.

    Snapshots are frozen; the store only ever swaps the reference.
    """

    def __init__(self, initial: EnvironmentSnapshot | None = None) -> None:
        self._lock = threading.Lock()
        self._current = initial or EnvironmentSnapshot()
        self._generation = 0

    @property
    def current(self) -> EnvironmentSnapshot:
        with self._lock:
            return self._current

    @property
    def generation(self) -> int:
        """Number of replacements so far."""
        with self._lock:
            return self._generation

    def replace(self, snapshot: EnvironmentSnapshot) -> EnvironmentSnapshot:
        """Swap in a new snapshot and return the previous one."""
        with self._lock:
            previous = self._current
            self._current = snapshot
            self._generation += 1
            return previous

    def replace_if_current(self, generation: int, snapshot: EnvironmentSnapshot) -> bool:
        """Swap only if nothing was stored since ``generation`` was read."""
        with self._lock:
            if self._generation != generation:
                return False
            self._current = snapshot
            self._generation += 1
            return True
