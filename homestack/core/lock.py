"""Concurrent access locking for bundle generation.

Prevents two generations from writing into the same output directory at
the same time.
"""
import fcntl
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Union

from homestack.core.logger import get_logger

logger = get_logger(__name__)

LOCK_FILENAME = ".homestack.lock"


class LockError(Exception):
    """Raised when unable to acquire lock."""
    pass


class OutputLock:
    """File-based lock on a bundle output directory."""

    def __init__(self, output_dir: Union[str, Path], timeout: int = 0):
        """Initialize lock.

        Args:
            output_dir: Directory being generated into; the lock file lives there
            timeout: Seconds to wait for lock (0 = fail immediately)
        """
        self.lock_file = Path(output_dir) / LOCK_FILENAME
        self.timeout = timeout
        self.lock_fd = None

    def acquire(self) -> bool:
        """Acquire the lock.

        Returns:
            True if lock acquired successfully

        Raises:
            LockError: If unable to acquire lock
        """
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)

        # Append mode keeps the holder's PID readable until we own the lock
        self.lock_fd = open(self.lock_file, 'a+')

        start_time = time.monotonic()
        while True:
            try:
                fcntl.flock(self.lock_fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)

                self.lock_fd.seek(0)
                self.lock_fd.truncate()
                self.lock_fd.write(f"{os.getpid()}\n")
                self.lock_fd.write(f"{time.strftime('%Y-%m-%d %H:%M:%S')}\n")
                self.lock_fd.flush()

                logger.debug(f"Acquired lock: {self.lock_file}")
                return True

            except OSError:
                elapsed = time.monotonic() - start_time
                if self.timeout == 0 or elapsed >= self.timeout:
                    lock_info = self._read_lock_info()
                    self.lock_fd.close()
                    self.lock_fd = None
                    if self.timeout == 0:
                        raise LockError(
                            f"Another homestack generation is writing to {self.lock_file.parent}.\n"
                            f"Lock held by PID {lock_info['pid']} since {lock_info['time']}\n"
                            "Wait for it to finish."
                        )
                    raise LockError(
                        f"Timeout waiting for lock after {self.timeout}s.\n"
                        f"Lock held by PID {lock_info['pid']} since {lock_info['time']}"
                    )

                time.sleep(0.5)

    def release(self):
        """Release the lock.

        The lock file is never unlinked, so every process locks the same
        inode; its holder info is cleared before unlocking.
        """
        if self.lock_fd is None:
            return

        try:
            try:
                self.lock_fd.seek(0)
                self.lock_fd.truncate()
                self.lock_fd.flush()
            except OSError as e:
                logger.warning(f"Error clearing lock file: {e}")
            fcntl.flock(self.lock_fd.fileno(), fcntl.LOCK_UN)
            self.lock_fd.close()
            logger.debug(f"Released lock: {self.lock_file}")
        finally:
            self.lock_fd = None

    def _read_lock_info(self) -> dict:
        """Read info from lock file about who holds it."""
        try:
            with open(self.lock_file) as f:
                lines = f.readlines()
        except OSError:
            lines = []

        if len(lines) >= 2:
            return {'pid': lines[0].strip(), 'time': lines[1].strip()}
        return {'pid': 'unknown', 'time': 'unknown'}

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


@contextmanager
def output_lock(output_dir: Union[str, Path], timeout: int = 0):
    """Context manager holding the output directory lock.

    Raises:
        LockError: If unable to acquire lock
    """
    lock = OutputLock(output_dir, timeout=timeout)
    lock.acquire()
    try:
        yield lock
    finally:
        lock.release()


def check_lock_status(output_dir: Union[str, Path]) -> Optional[dict]:
    """Return lock holder info if a generation holds the lock, else None."""
    lock_path = Path(output_dir) / LOCK_FILENAME
    if not lock_path.exists():
        return None

    try:
        with open(lock_path) as f:
            try:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                # Stale lock file
                return None
            except OSError:
                f.seek(0)
                lines = f.readlines()
    except FileNotFoundError:
        return None

    if len(lines) >= 2:
        return {'pid': lines[0].strip(), 'time': lines[1].strip(), 'lock_file': str(lock_path)}
    return {'pid': 'unknown', 'time': 'unknown', 'lock_file': str(lock_path)}
