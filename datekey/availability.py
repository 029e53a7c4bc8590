"""
Server availability switch.

One process-wide flag, default available, never persisted. Writers and
readers go through a lock; the last write wins.
"""

import threading


class AvailabilitySwitch:
    """Lock-guarded availability flag shared by all requests."""

    def __init__(self, available: bool = True):
        self._available = bool(available)
        self._lock = threading.Lock()

    def enable(self) -> bool:
        """Mark the service available. Idempotent. Returns the new state."""
        return self.set(True)

    def disable(self) -> bool:
        """Mark the service unavailable. Idempotent. Returns the new state."""
        return self.set(False)

    def set(self, available: bool) -> bool:
        with self._lock:
            self._available = bool(available)
            return self._available

    def is_available(self) -> bool:
        with self._lock:
            return self._available

    def __repr__(self) -> str:
        return f"AvailabilitySwitch(available={self.is_available()})"
