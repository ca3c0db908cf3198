"""Busy Gate - process-wide guard allowing one transition at a time."""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from valet_doctor.engine.exceptions import BusyError

logger = logging.getLogger(__name__)


class BusyGate:
    """Single-holder gate.

    Check-and-set happens under a mutex, so two threads can never both
    acquire. Unlike ``threading.Lock`` the holder may be released from a
    different thread than the one that acquired it: the orchestrator
    acquires on the caller's thread and releases on the worker.
    """

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._held = False
        self._holder: str | None = None

    def try_acquire(self, holder: str = "") -> bool:
        """Mark the gate held. Returns False if it already was."""
        with self._mutex:
            if self._held:
                return False
            self._held = True
            self._holder = holder or None
        logger.debug("Busy gate acquired by %s", holder or "anonymous")
        return True

    def release(self) -> None:
        """Clear the gate. Safe to call when not held."""
        with self._mutex:
            was_held = self._held
            self._held = False
            self._holder = None
        if was_held:
            logger.debug("Busy gate released")

    def is_held(self) -> bool:
        with self._mutex:
            return self._held

    @property
    def holder(self) -> str | None:
        with self._mutex:
            return self._holder

    @contextmanager
    def scoped(self, holder: str = "") -> Iterator[None]:
        """Hold the gate for the duration of the block.

        Raises:
            BusyError: If the gate is already held.
        """
        if not self.try_acquire(holder):
            raise BusyError(holder or "transition", self.holder)
        try:
            yield
        finally:
            self.release()


# Global gate shared by every orchestrator in the process
busy_gate = BusyGate()
