"""
Exclusive store lock.

Every operation that mutates the store or a tracked directory holds an
advisory lock on ``<root>/.lock`` for its whole duration, so two snapshot
creations, or a rollback racing a pacman-triggered snapshot, are serialized.
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import TracebackType

from filelock import FileLock, Timeout

from ..errors import LockTimeoutError, StoreIOError

logger = logging.getLogger(__name__)


class StoreLock:
    """Context manager wrapping :class:`filelock.FileLock`.

    Example:
        >>> with StoreLock(config.lock_file, timeout=30):
        ...     engine_operation()
    """

    def __init__(self, path: Path, timeout: float) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self._lock = FileLock(str(self.path))

    @property
    def is_locked(self) -> bool:
        return self._lock.is_locked

    def acquire(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreIOError(
                f"Failed to create lock directory {self.path.parent}: {e}",
                path=str(self.path.parent),
            ) from e
        try:
            self._lock.acquire(timeout=self.timeout)
        except Timeout as exc:
            raise LockTimeoutError(str(self.path), self.timeout) from exc
        logger.debug("Acquired store lock", extra={"lock_path": str(self.path)})

    def release(self) -> None:
        if self._lock.is_locked:
            self._lock.release()

    def __enter__(self) -> StoreLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.release()
