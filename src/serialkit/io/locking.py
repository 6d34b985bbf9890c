"""
Per-path locks used by the persistence facade.

``LockProvider`` is the abstract capability the facade is built against:
directory creation, an exclusive write lock, a shared read lock and an atomic
"create if absent" step, all keyed by path. Two providers ship here:

- ``KeyedMemoryLockProvider`` serialises threads of one process, with many
  concurrent readers or one writer per path.
- ``FileLockProvider`` adds a ``filelock.FileLock`` sidecar file, held by
  writers and creators, so separate processes do not write the same path at
  once. Readers in other processes are not blocked; they still see a whole
  file because the codec dispatcher replaces files atomically.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Callable, Dict, Iterator, TypeVar
import os
import threading

from filelock import FileLock

from serialkit.utils.log import get_logger
from serialkit.utils.path import PathLike

logger = get_logger(__name__)

T = TypeVar("T")


def _key(path: PathLike) -> str:
    return os.path.normcase(os.path.abspath(os.fspath(path)))


class LockProvider(ABC):
    """
    Abstract per-path locking capability.

    Subclasses implement ``write_lock`` and ``read_lock``; the remaining
    operations are built on top of them.
    """

    # ---- subclasses must implement
    @abstractmethod
    def write_lock(self, path: PathLike):
        """Context manager excluding every other reader and writer of ``path``."""
        ...

    @abstractmethod
    def read_lock(self, path: PathLike):
        """Context manager excluding writers of ``path`` but not other readers."""
        ...

    # ---- public API
    def ensure_directory(self, path: PathLike) -> None:
        """Create the parent directory chain of ``path`` if missing."""
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    def with_write_lock(self, path: PathLike, action: Callable[[], T]) -> T:
        with self.write_lock(path):
            return action()

    def with_read_lock(self, path: PathLike, action: Callable[[], T]) -> T:
        with self.read_lock(path):
            return action()

    def create_if_absent(self, path: PathLike, action: Callable[[], None]) -> bool:
        """
        Run ``action`` under the write lock if ``path`` does not exist yet.

        Existence is checked again once the lock is held, so of several
        callers racing on the same path only one runs its action. If the
        action fails, whatever it left at ``path`` is removed before the error
        is re-raised.

        Returns
        -------
        bool
            True if ``action`` ran, False if the file already existed.
        """
        p = Path(path)
        if p.exists():
            return False
        self.ensure_directory(p)
        with self.write_lock(p):
            if p.exists():
                return False
            try:
                action()
            except BaseException:
                if p.exists():
                    p.unlink()
                raise
            return True

    def open_for_read(self, path: PathLike) -> IO[bytes]:
        """Open ``path`` for reading; other readers are not excluded."""
        return open(path, "rb")


class _ReadWriteLock:
    """Many readers or one writer. Not re-entrant."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self.users = 0  # guarded by the owning provider's registry lock

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class KeyedMemoryLockProvider(LockProvider):
    """
    In-process readers/writer locks, one per absolute path.

    An entry lives only while some thread holds or waits for it, so the
    registry does not grow with the number of paths ever touched.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, _ReadWriteLock] = {}
        self._global_lock = threading.Lock()

    @contextmanager
    def _held(self, path: PathLike) -> Iterator[_ReadWriteLock]:
        key = _key(path)
        with self._global_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = _ReadWriteLock()
            lock.users += 1
        try:
            yield lock
        finally:
            with self._global_lock:
                lock.users -= 1
                if lock.users == 0:
                    del self._locks[key]

    @contextmanager
    def write_lock(self, path: PathLike) -> Iterator[None]:
        with self._held(path) as lock, lock.write():
            yield

    @contextmanager
    def read_lock(self, path: PathLike) -> Iterator[None]:
        with self._held(path) as lock, lock.read():
            yield


class FileLockProvider(KeyedMemoryLockProvider):
    """
    In-process locks plus a ``<path><suffix>`` FileLock for writers.

    Parameters
    ----------
    timeout : float
        Seconds to wait for the sidecar lock; ``-1`` waits forever. A timeout
        raises ``filelock.Timeout``.
    suffix : str
        Appended to the target path to name the sidecar lock file.
    """

    def __init__(self, timeout: float = -1, suffix: str = ".lock") -> None:
        super().__init__()
        self.timeout = timeout
        self.suffix = suffix

    def lock_path(self, path: PathLike) -> str:
        return os.fspath(path) + self.suffix

    @contextmanager
    def write_lock(self, path: PathLike) -> Iterator[None]:
        with super().write_lock(path):
            sidecar = FileLock(self.lock_path(path), timeout=self.timeout)
            logger.debug("acquiring %s", sidecar.lock_file)
            with sidecar:
                yield
