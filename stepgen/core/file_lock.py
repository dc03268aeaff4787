"""Advisory lock file guarding single-writer access to JSON stores."""

from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path
from typing import Optional, Union

from .errors import LockTimeoutError

logger = logging.getLogger(__name__)

STALE_AFTER_SECONDS = 30.0
MAX_WAIT_SECONDS = 5.0
RETRY_INTERVAL_SECONDS = 0.05


class FileLock:
    """
    Lock implemented as ``<target>.lock`` created with exclusive-create.

    A lock file older than ``stale_after`` seconds is assumed to belong to a
    crashed writer and is removed. Re-entrant within one instance so that
    batch maintenance can hold the lock across several saves.
    """

    def __init__(
        self,
        target: Union[str, Path],
        stale_after: float = STALE_AFTER_SECONDS,
        max_wait: float = MAX_WAIT_SECONDS,
        retry_interval: float = RETRY_INTERVAL_SECONDS,
    ) -> None:
        self.path = Path(f"{target}.lock")
        self.stale_after = stale_after
        self.max_wait = max_wait
        self.retry_interval = retry_interval
        self._depth = 0
        self._guard = threading.RLock()

    @property
    def held(self) -> bool:
        return self._depth > 0

    def _is_stale(self) -> bool:
        try:
            age = time.time() - self.path.stat().st_mtime
        except FileNotFoundError:
            return False
        return age > self.stale_after

    def _try_create(self) -> bool:
        try:
            fd = os.open(str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(f"{os.getpid()}\n")
        return True

    def acquire(self) -> None:
        self._guard.acquire()
        if self._depth:
            self._depth += 1
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + self.max_wait
        while True:
            if self._try_create():
                self._depth = 1
                return
            if self._is_stale():
                logger.warning("Removing stale lock file %s", self.path)
                try:
                    self.path.unlink()
                except FileNotFoundError:
                    pass
                continue
            if time.monotonic() >= deadline:
                self._guard.release()
                raise LockTimeoutError(
                    f"Timed out after {self.max_wait:.1f}s waiting for {self.path}",
                    details={"lockFile": str(self.path)},
                )
            time.sleep(self.retry_interval)

    def release(self) -> None:
        if not self._depth:
            return
        self._depth -= 1
        try:
            if self._depth == 0:
                try:
                    self.path.unlink()
                except FileNotFoundError:
                    logger.warning("Lock file %s vanished before release", self.path)
        finally:
            self._guard.release()

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.release()
        return None
