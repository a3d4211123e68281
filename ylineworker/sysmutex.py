"""A named lock shared between processes, used to keep a single instance running."""

from __future__ import annotations

import contextlib
import tempfile
from pathlib import Path

from filelock import FileLock, Timeout


class SysMutexError(Exception):
    """Raised when the system-wide lock cannot be created, taken or released."""


class SysMutex:
    """A non-recursive lock identified by name, visible to every process on the machine."""

    def __init__(self, name: str, directory: Path | str | None = None) -> None:
        self.name = name
        base = Path(directory) if directory is not None else Path(tempfile.gettempdir())
        self.path = base / f"{name}.lock"
        try:
            base.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SysMutexError(f"SysMutex({name!r}) failed - {exc}") from exc
        self._lock = FileLock(str(self.path))

    @property
    def locked(self) -> bool:
        """Whether this instance holds the lock."""
        return self._lock.is_locked

    def try_lock(self) -> bool:
        """Take the lock without waiting; return whether it was taken."""
        if self._lock.is_locked:
            return False
        try:
            self._lock.acquire(timeout=0)
        except Timeout:
            return False
        except OSError as exc:
            raise SysMutexError(f"SysMutex.try_lock() failed - {exc}") from exc
        return True

    def unlock(self) -> None:
        """Release the lock held by this instance."""
        if not self._lock.is_locked:
            raise SysMutexError("SysMutex.unlock() failed - mutex is not locked")
        try:
            self._lock.release()
        except OSError as exc:
            raise SysMutexError(f"SysMutex.unlock() failed - {exc}") from exc

    def close(self) -> None:
        """Release the lock if held and remove its file."""
        if self._lock.is_locked:
            with contextlib.suppress(OSError):
                self._lock.release(force=True)
        with contextlib.suppress(OSError):
            self.path.unlink(missing_ok=True)

    def __enter__(self) -> SysMutex:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()