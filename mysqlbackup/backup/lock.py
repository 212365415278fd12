"""
PID-file run lock.

Prevents overlapping backup runs on one host. Exclusion comes from an
``flock`` held on the lock file for the whole run; the kernel drops it when the
owner exits, however it exits. The file also records the owner's PID, which
names the holder in the skip message and keeps a PID-only writer (a live
process that does not take the flock) from being overrun.

Every read or rewrite of the PID happens while the flock is held, so two
processes can never both decide a lock is stale and take it.
"""

import fcntl
import logging
import os
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)

DEFAULT_LOCK_FILE = '/tmp/mysql-backup-service.lock'

# Attempts when the file is unlinked between our open() and flock()
MAX_OPEN_ATTEMPTS = 5


def pid_alive(pid: int) -> bool:
    """Check whether a process with this PID exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # exists, owned by another user
        return True
    except OverflowError:
        return False
    return True


def _parse_pid(content: str) -> Optional[int]:
    try:
        return int(content.strip())
    except ValueError:
        return None


class RunLock:
    """
    Process-wide mutual exclusion backed by a locked PID file.

    Usage:
        with RunLock('/tmp/mysql-backup-service.lock') as lock:
            if lock.held:
                ...
    """

    def __init__(self, path: str = DEFAULT_LOCK_FILE, log: logging.Logger = None):
        self.path = Path(path)
        self.logger = log or logger
        self.owner_pid: Optional[int] = None
        self.held = False
        self._fd: Optional[int] = None

    def read_owner(self) -> Optional[int]:
        """PID recorded in the lock file, or None if missing/unreadable."""
        try:
            content = self.path.read_text()
        except FileNotFoundError:
            return None
        except OSError as e:
            self.logger.warning(f"Could not read lock file {self.path}: {e}")
            return None
        return _parse_pid(content)

    def _open_locked(self) -> Optional[int]:
        """
        Open the lock file and take the flock on it.

        Returns:
            The locked descriptor, or None if another process holds the flock
        """
        for _ in range(MAX_OPEN_ATTEMPTS):
            fd = os.open(str(self.path), os.O_RDWR | os.O_CREAT, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(fd)
                return None
            except BaseException:
                os.close(fd)
                raise

            # the previous holder unlinks on release; a lock on a
            # no-longer-linked inode excludes nobody
            try:
                current = os.stat(str(self.path))
            except FileNotFoundError:
                os.close(fd)
                continue
            opened = os.fstat(fd)
            if (current.st_dev, current.st_ino) == (opened.st_dev, opened.st_ino):
                return fd
            os.close(fd)

        raise OSError(f"Lock file {self.path} kept changing while being locked")

    def acquire(self) -> bool:
        """
        Try to take the lock.

        Returns:
            True if acquired. False if a live process holds it; ``owner_pid``
            then names that process when the file records it.
        """
        if self.held:
            return True

        fd = self._open_locked()
        if fd is None:
            self.owner_pid = self.read_owner()
            return False

        try:
            content = os.read(fd, 64).decode('ascii', errors='replace')
            pid = _parse_pid(content)

            if pid is not None and pid != os.getpid() and pid_alive(pid):
                os.close(fd)
                self.owner_pid = pid
                return False

            if content.strip():
                self.logger.warning(f"Stale lock file found (PID {pid}). Reclaiming.")

            os.ftruncate(fd, 0)
            os.lseek(fd, 0, os.SEEK_SET)
            os.write(fd, str(os.getpid()).encode('ascii'))
        except BaseException:
            os.close(fd)
            raise

        self._fd = fd
        self.owner_pid = os.getpid()
        self.held = True
        self.logger.debug(f"Acquired lock {self.path}")
        return True

    def release(self):
        """Remove the lock file if this process owns it, then drop the flock."""
        if not self.held:
            return

        self.held = False
        fd, self._fd = self._fd, None
        try:
            # unlink while the flock is still held
            if self.read_owner() == os.getpid():
                try:
                    self.path.unlink()
                    self.logger.debug(f"Released lock {self.path}")
                except FileNotFoundError:
                    pass
        finally:
            os.close(fd)

    def __enter__(self) -> 'RunLock':
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
