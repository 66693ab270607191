"""Single-instance guard built on lock files shared between processes."""

from __future__ import annotations

import hashlib
import tempfile
from pathlib import Path

from filelock import FileLock, Timeout


class AlreadyRunningError(RuntimeError):
    """Raised when another instance holds the guard."""


def generate_key_hash(key: str, salt: str) -> str:
    """Return the hex SHA-1 of the UTF-8 key followed by the salt."""
    return hashlib.sha1((key + salt).encode("utf-8")).hexdigest()


class RunGuard:
    """Ensures only one process runs under a given key."""

    def __init__(self, key: str, directory: str | Path | None = None) -> None:
        self.key = key
        self.mem_lock_key = generate_key_hash(key, "_memLockKey")
        self.shared_mem_key = generate_key_hash(key, "_sharedmemKey")
        base = Path(directory) if directory is not None else Path(tempfile.gettempdir())
        self._mem_lock = FileLock(str(base / f"{self.mem_lock_key}.lock"))
        self._instance_lock = FileLock(str(base / f"{self.shared_mem_key}.lock"))
        self._attached = False

    @property
    def running(self) -> bool:
        """Whether this guard currently holds the instance lock."""
        return self._attached

    def is_another_running(self) -> bool:
        """Return True if some other guard holds the key."""
        if self._attached:
            return False
        with self._mem_lock:
            try:
                self._instance_lock.acquire(timeout=0)
            except Timeout:
                return True
            self._instance_lock.release()
        return False

    def try_to_run(self) -> bool:
        """Claim the key; return False if another instance holds it."""
        if self._attached:
            return True
        if self.is_another_running():
            return False
        with self._mem_lock:
            try:
                self._instance_lock.acquire(timeout=0)
            except Timeout:
                result = False
            else:
                self._attached = True
                result = True
        if not result:
            self.release()
            return False
        return True

    def release(self) -> None:
        """Give up the key if held."""
        with self._mem_lock:
            if self._attached:
                self._instance_lock.release()
                self._attached = False

    def __enter__(self) -> RunGuard:
        if not self.try_to_run():
            raise AlreadyRunningError(f"another instance is running for key {self.key!r}")
        return self

    def __exit__(self, *args) -> None:
        self.release()