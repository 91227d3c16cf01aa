"""Run-exclusivity lock backed by an exclusively created file."""

from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Optional

logger = logging.getLogger(__name__)


class FileRunLock:
    """
    At most one import per lock file.

    The lock is taken by creating ``path`` with ``O_EXCL`` and writing an
    owner token into it.  The owner calls :meth:`refresh` while it works; a
    lock file not refreshed for ``stale_after`` seconds is considered
    abandoned (crashed run) and may be taken over.
    """

    def __init__(self, path: str, stale_after: Optional[float] = 6 * 60 * 60) -> None:
        self.path = path
        self.stale_after = stale_after
        self._token: Optional[str] = None

    def try_lock(self) -> bool:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        if self._is_stale():
            logger.warning("Removing stale import lock %s", self.path)
            self._unlink()
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        token = f"{os.getpid()}-{uuid.uuid4().hex}"
        with os.fdopen(fd, "w") as f:
            f.write(token + "\n")
        self._token = token
        return True

    def release(self) -> None:
        if self.held:
            self._unlink()
        self._token = None

    def is_locked(self) -> bool:
        return os.path.exists(self.path)

    @property
    def held(self) -> bool:
        """True while the lock file exists and still carries this instance's token."""
        if self._token is None:
            return False
        return self._read_token() == self._token

    def refresh(self) -> bool:
        """Mark the lock as alive; returns False once it is no longer held."""
        if not self.held:
            return False
        try:
            os.utime(self.path, None)
        except OSError as e:
            logger.warning("Could not refresh import lock %s: %s", self.path, e)
        return True

    def _read_token(self) -> Optional[str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return f.read().strip()
        except OSError:
            return None

    def _is_stale(self) -> bool:
        if self.stale_after is None:
            return False
        try:
            return time.time() - os.path.getmtime(self.path) > self.stale_after
        except OSError:
            return False

    def _unlink(self) -> None:
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
