"""
Host-wide named locks shared by every agent process on the machine.

Each lock name maps to a lock file under the lock directory. Exclusivity
comes from an OS advisory lock on that file (``flock`` on POSIX,
``msvcrt.locking`` on Windows), so a lock held by a process that dies is
released by the OS and never deadlocks the next deployment.

Locks are not re-entrant: acquiring a name that is already held, even by
the same process, waits like any other acquisition.

Usage:
    semaphore = SystemSemaphore(Path("~/.deploycore/locks").expanduser())
    with semaphore.hold("deploycore.journal", timeout=30):
        ...  # critical section
"""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import re
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Generator, Optional, Union

from deploycore.errors import LockTimeout

logger = logging.getLogger(__name__)

__all__ = ["LockHandle", "SystemSemaphore"]


# Cross-platform file locking
if sys.platform == "win32":
    import msvcrt

    def _try_lock_file(f: IO) -> bool:
        """Try to lock file on Windows without blocking."""
        try:
            f.seek(0)
            msvcrt.locking(f.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError as e:
            # errno 13 (EACCES) / 36 (EDEADLOCK): held by another handle
            if e.errno in (13, 36):
                return False
            raise
        return True

    def _unlock_file(f: IO) -> None:
        """Unlock file on Windows."""
        f.seek(0)
        msvcrt.locking(f.fileno(), msvcrt.LK_UNLCK, 1)
else:
    import fcntl

    def _try_lock_file(f: IO) -> bool:
        """Try to lock file on Unix without blocking."""
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        return True

    def _unlock_file(f: IO) -> None:
        """Unlock file on Unix."""
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _lock_file_name(name: str) -> str:
    digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:12]
    readable = _UNSAFE_CHARS.sub("_", name).strip("_")[:64] or "lock"
    return f"{readable}-{digest}.lock"


@dataclass
class LockHandle:
    """An acquired lock. Pass to ``SystemSemaphore.release``."""
    name: str
    path: Path
    acquired_at: float
    _file: Optional[IO] = field(default=None, repr=False)

    @property
    def released(self) -> bool:
        return self._file is None


class SystemSemaphore:
    """
    Named, host-wide mutual exclusion with timeout.

    Args:
        lock_dir: Directory holding the lock files
        poll_interval: Seconds between acquisition attempts while waiting
    """

    def __init__(self, lock_dir: Union[str, Path], poll_interval: float = 0.1):
        self.lock_dir = Path(lock_dir)
        self.poll_interval = poll_interval

    def lock_path(self, name: str) -> Path:
        return self.lock_dir / _lock_file_name(name)

    def acquire(self, name: str, timeout: float) -> LockHandle:
        """
        Block until the named lock is acquired.

        Args:
            name: Resource name, e.g. an installation directory
            timeout: Seconds to wait before giving up

        Raises:
            LockTimeout: If the lock is still held when the timeout elapses
        """
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        path = self.lock_path(name)
        deadline = time.monotonic() + timeout
        waiting_logged = False

        lock_file = open(path, "a+")
        try:
            while not _try_lock_file(lock_file):
                if time.monotonic() >= deadline:
                    raise LockTimeout(name, timeout, self._read_holder(path))
                if not waiting_logged:
                    holder = self._read_holder(path)
                    logger.info(
                        f"Waiting for lock '{name}'"
                        + (f" held by {holder}" if holder else "")
                    )
                    waiting_logged = True
                time.sleep(min(self.poll_interval, max(deadline - time.monotonic(), 0)))
        except BaseException:
            lock_file.close()
            raise

        self._write_holder(lock_file)
        logger.debug(f"Acquired lock '{name}' ({path})")
        return LockHandle(name=name, path=path, acquired_at=time.monotonic(), _file=lock_file)

    def release(self, handle: LockHandle) -> None:
        """Release a lock. Releasing an already released handle does nothing."""
        lock_file = handle._file
        if lock_file is None:
            return
        handle._file = None
        try:
            _unlock_file(lock_file)
        finally:
            lock_file.close()
        held = time.monotonic() - handle.acquired_at
        logger.debug(f"Released lock '{handle.name}' after {held:.2f}s")

    @contextlib.contextmanager
    def hold(self, name: str, timeout: float) -> Generator[LockHandle, None, None]:
        """Context manager that acquires ``name`` and always releases it."""
        handle = self.acquire(name, timeout)
        try:
            yield handle
        finally:
            self.release(handle)

    @staticmethod
    def _write_holder(lock_file: IO) -> None:
        try:
            lock_file.seek(0)
            lock_file.truncate()
            lock_file.write(f"pid {os.getpid()}\n")
            lock_file.flush()
        except OSError as e:
            # Diagnostics only; the OS lock is what matters
            logger.debug(f"Could not record lock holder: {e}")

    @staticmethod
    def _read_holder(path: Path) -> Optional[str]:
        try:
            return path.read_text().strip() or None
        except OSError:
            return None
