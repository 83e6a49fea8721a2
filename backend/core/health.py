"""Dependency health tracking shared by storage-facing components."""

from datetime import datetime, timezone
import logging
from threading import RLock
import time
from typing import Any, Callable, Dict, Optional


logger = logging.getLogger(__name__)


class HealthState:
    """Tracks whether the storage backend is reachable.

    A component that observes a timeout or connection failure calls
    ``mark_unavailable``; callers consult ``is_available`` to fail fast
    instead of waiting on another timeout. The state recovers on its own
    once ``recovery_after_sec`` has elapsed so the next call tries the
    backend again.
    """

    def __init__(
        self,
        recovery_after_sec: float = 30.0,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._recovery_after_sec = max(0.0, float(recovery_after_sec))
        self._clock = clock or time.monotonic
        self._lock = RLock()
        self._unavailable_since: Optional[float] = None
        self._reason: Optional[str] = None
        self._last_changed_at: Optional[datetime] = None

    def mark_unavailable(self, reason: str = "") -> None:
        """Flag the dependency as unavailable."""
        with self._lock:
            if self._unavailable_since is None:
                logger.warning("Storage dependency marked OFFLINE reason=%s", reason or "unspecified")
                self._last_changed_at = datetime.now(timezone.utc)
            self._unavailable_since = self._clock()
            self._reason = reason or None

    def mark_available(self) -> None:
        """Flag the dependency as reachable again."""
        with self._lock:
            if self._unavailable_since is not None:
                logger.info("Storage dependency marked ONLINE")
                self._last_changed_at = datetime.now(timezone.utc)
            self._unavailable_since = None
            self._reason = None

    def is_available(self) -> bool:
        """Return whether calls to the dependency should be attempted."""
        with self._lock:
            if self._unavailable_since is None:
                return True
            if self._clock() - self._unavailable_since >= self._recovery_after_sec:
                logger.info("Attempting storage recovery after %.1fs offline", self._recovery_after_sec)
                self._unavailable_since = None
                self._reason = None
                return True
            return False

    def snapshot(self) -> Dict[str, Any]:
        """Return a serializable view for health endpoints."""
        available = self.is_available()
        with self._lock:
            return {
                "available": available,
                "reason": self._reason,
                "last_changed_at": self._last_changed_at.isoformat() if self._last_changed_at else None,
            }
