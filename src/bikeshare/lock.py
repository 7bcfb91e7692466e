"""Global mutual-exclusion lock for pipeline runs.

One lock serializes every run that reads and writes the bikes and users
tables: form submissions, usage-timer accrual and manual dashboard edits.
Acquisition waits a bounded time and raises LockTimeoutError when the wait
elapses. Release is tied to a ``with`` block, so it happens on every exit
path including exceptions.

The lock is process-local. A multi-instance deployment needs a lock
service behind the same ``hold()`` contract.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from bikeshare.errors import LockTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_NAME = "bikeshare-pipeline"
DEFAULT_LOCK_TIMEOUT_SECONDS = 30.0


class GlobalLock:
    """Bounded-wait mutex with scoped acquisition.

    Attributes:
        name: Lock name used in logs and errors.
        timeout_seconds: Default bounded wait.

    Example:
        >>> lock = GlobalLock(timeout_seconds=5)
        >>> with lock.hold(owner="run-1") as waited:
        ...     pass  # at most one holder at a time
    """

    def __init__(
        self,
        name: str = DEFAULT_LOCK_NAME,
        timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
    ):
        self.name = name
        self.timeout_seconds = timeout_seconds
        self._lock = threading.Lock()
        self._owner: Optional[str] = None

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    @contextmanager
    def hold(
        self,
        timeout_seconds: Optional[float] = None,
        owner: Optional[str] = None,
    ) -> Iterator[float]:
        """Acquire the lock for the duration of a ``with`` block.

        Args:
            timeout_seconds: Override of the default bounded wait.
            owner: Identifier of the holder, for logs.

        Yields:
            Seconds spent waiting for the lock.

        Raises:
            LockTimeoutError: If the lock was not acquired in time.
        """
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        started = time.monotonic()

        if not self._lock.acquire(timeout=timeout):
            logger.warning(
                "Lock acquisition timed out",
                extra={
                    "lock_name": self.name,
                    "timeout_seconds": timeout,
                    "holder": self._owner,
                    "requested_by": owner,
                },
            )
            raise LockTimeoutError(self.name, timeout)

        waited = time.monotonic() - started
        self._owner = owner
        logger.debug(
            "Lock acquired",
            extra={"lock_name": self.name, "holder": owner, "waited_seconds": waited},
        )
        try:
            yield waited
        finally:
            self._owner = None
            self._lock.release()
            logger.debug("Lock released", extra={"lock_name": self.name, "holder": owner})


_global_lock: Optional[GlobalLock] = None


def get_global_lock(timeout_seconds: Optional[float] = None) -> GlobalLock:
    """Get or create the process-wide lock shared by all run types."""
    global _global_lock

    if _global_lock is None:
        _global_lock = GlobalLock(
            timeout_seconds=timeout_seconds or DEFAULT_LOCK_TIMEOUT_SECONDS
        )
    elif timeout_seconds is not None:
        _global_lock.timeout_seconds = timeout_seconds
    return _global_lock
