"""Timeout, retry and fail-fast wrapper around storage collaborator calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from google.api_core import exceptions as google_exceptions

from core.health import HealthState
from models.exceptions import DependencyError, ModelError


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that mean the backend itself is unreachable or too slow.
TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    ConnectionError,
    OSError,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.Aborted,
)


class StorageGuard:
    """Bounds every storage call with a timeout and tracks backend health.

    Reads are retried once after ``read_retry_backoff_sec`` when the first
    attempt fails with one of ``TRANSIENT_ERRORS``, which covers timeouts,
    lost connections and retryable Firestore API errors. Writes are never
    retried so a slow insert cannot land twice. While ``health`` reports the
    backend as unavailable every call fails immediately with ``DependencyError``.
    Domain errors from the repository layer (``ModelError``) pass through.
    """

    def __init__(
        self,
        health: Optional[HealthState] = None,
        timeout_sec: float = 5.0,
        read_retry_backoff_sec: float = 0.2,
    ) -> None:
        self.health = health or HealthState()
        self._timeout_sec = timeout_sec
        self._read_retry_backoff_sec = max(0.0, read_retry_backoff_sec)

    @classmethod
    def from_settings(cls, settings, health: HealthState) -> "StorageGuard":
        return cls(
            health=health,
            timeout_sec=settings.storage_timeout_sec,
            read_retry_backoff_sec=settings.storage_read_retry_backoff_sec,
        )

    async def read(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run a read, retrying once on a transient failure."""
        return await self._run(operation, call, attempts=2)

    async def write(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run a write exactly once."""
        return await self._run(operation, call, attempts=1)

    async def _run(self, operation: str, call: Callable[[], Awaitable[T]], attempts: int) -> T:
        if not self.health.is_available():
            logger.warning("Storage offline, failing fast operation=%s", operation)
            raise DependencyError()

        for attempt in range(1, attempts + 1):
            try:
                result = await asyncio.wait_for(call(), timeout=self._timeout_sec)
                self.health.mark_available()
                return result
            except ModelError:
                raise
            except TRANSIENT_ERRORS as exc:
                if attempt < attempts:
                    logger.warning(
                        "Storage call failed, retrying operation=%s attempt=%d error=%r",
                        operation,
                        attempt,
                        exc,
                    )
                    await asyncio.sleep(self._read_retry_backoff_sec)
                    continue
                logger.error("Storage call failed operation=%s attempts=%d error=%r", operation, attempt, exc)
                self.health.mark_unavailable("{0}: {1!r}".format(operation, exc))
                raise DependencyError() from exc
            except Exception as exc:
                logger.exception("Unexpected storage failure operation=%s", operation)
                raise DependencyError() from exc
        raise DependencyError()
