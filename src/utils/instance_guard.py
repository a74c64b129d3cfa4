"""
Single-instance guard: only one upload may run at a time.
"""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO


class InstanceLockError(RuntimeError):
    """Raised when another upload already holds the lock file."""

    def __init__(self, lock_path: Path, owner: Optional[str] = None) -> None:
        message = "Another upload is already running"
        if owner:
            message += f" ({owner})"
        super().__init__(f"{message}. Lock file: {lock_path}")
        self.lock_path = lock_path
        self.owner = owner


class InstanceLock:
    """Exclusive, non-blocking lock on ``lock_path`` held for the life of the handle.

    Usable as a context manager. The lock file records the holder's pid and
    start time so a refused caller can report who owns it.
    """

    def __init__(self, lock_path: Path) -> None:
        self.path = lock_path
        self._handle: Optional[TextIO] = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def acquire(self) -> "InstanceLock":
        if self._handle is not None:
            return self
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = self.path.open("a+", encoding="utf-8")
        try:
            _lock_handle(handle)
        except OSError as exc:
            handle.close()
            raise InstanceLockError(self.path, read_lock_owner(self.path)) from exc
        handle.seek(0)
        handle.truncate()
        handle.write(f"pid={os.getpid()} started={datetime.now().isoformat(timespec='seconds')}")
        handle.flush()
        self._handle = handle
        return self

    def release(self) -> None:
        if self._handle is None:
            return
        self._handle.close()
        self._handle = None

    def __enter__(self) -> "InstanceLock":
        return self.acquire()

    def __exit__(self, *exc_info) -> None:
        self.release()


def _lock_handle(handle: TextIO) -> None:
    if os.name == "nt":
        import msvcrt

        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
    else:
        import fcntl

        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)


def read_lock_owner(lock_path: Path) -> Optional[str]:
    """Best-effort description of the current holder, read from the lock file."""
    try:
        text = lock_path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return text or None


def acquire_instance_lock(lock_path: Path) -> InstanceLock:
    """Acquire the upload lock or raise InstanceLockError."""
    return InstanceLock(lock_path).acquire()
