"""
Locked save/load of persisted values.

``FilePersistence`` wraps the codec dispatcher with path validation,
directory creation, per-path locking and a get-or-create helper. The
module-level ``save``, ``load``, ``load_with_timestamp`` and
``load_or_create`` functions use a shared default instance configured from
the environment.

Examples
--------
>>> save("cache/prices.bin", {"AAPL": 101.5})
>>> load("cache/prices.bin")
{'AAPL': 101.5}
>>> settings, modified = load_or_create("settings.xml", Settings, Settings)
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from serialkit.io import codec_dispatcher
from serialkit.io.locking import FileLockProvider, LockProvider
from serialkit.io.payload import zero_value
from serialkit.utils.config import SerializerConfig
from serialkit.utils.exceptions import FileRetrievalError
from serialkit.utils.log import get_logger
from serialkit.utils.path import PathLike, validate_path

logger = get_logger(__name__)


class FilePersistence:
    """
    Per-path locked persistence of single values.

    Parameters
    ----------
    locks : LockProvider, optional
        Locking capability; defaults to a ``FileLockProvider`` configured
        from ``config``.
    config : SerializerConfig, optional
        Codec and lock settings; defaults to ``SerializerConfig()``.

    Notes
    -----
    - Every entry point rejects a None or blank path before any I/O.
    - A missing file is not an error: loads return the zero value of the
      requested type and no timestamp.
    - Codec errors propagate unchanged; nothing is retried.
    """

    def __init__(self, locks: Optional[LockProvider] = None,
                 config: Optional[SerializerConfig] = None) -> None:
        self.config = config or SerializerConfig()
        self.locks = locks or FileLockProvider(
            timeout=self.config.lock_timeout, suffix=self.config.lock_suffix
        )

    # ---- public API
    def save(self, path: PathLike, value: Any, type_: Optional[type] = None) -> None:
        """Write ``value`` to ``path`` under the path's write lock."""
        p = validate_path(path)
        self.locks.ensure_directory(p)
        self.locks.with_write_lock(
            p,
            lambda: codec_dispatcher.encode(path, value, declared_type=type_, config=self.config),
        )

    def load(self, path: PathLike, type_: Optional[type] = None) -> Any:
        """Return the value stored at ``path`` (zero value if missing)."""
        value, _ = self.load_with_timestamp(path, type_)
        return value

    def load_with_timestamp(self, path: PathLike,
                            type_: Optional[type] = None) -> Tuple[Any, Optional[datetime]]:
        """
        Return ``(value, last_modified)`` for ``path``.

        A missing file returns ``(zero_value(type_), None)`` without taking
        any lock. Otherwise the read and the timestamp are both taken under
        the path's read lock.
        """
        p = validate_path(path)
        if not p.exists():
            return zero_value(type_), None
        return self.locks.with_read_lock(
            p,
            lambda: codec_dispatcher.decode(
                p, type_, config=self.config, opener=self.locks.open_for_read
            ),
        )

    def load_or_create(self, path: PathLike, factory: Callable[[], Any],
                       type_: Optional[type] = None) -> Tuple[Any, Optional[datetime]]:
        """
        Load ``path``, or create it from ``factory()`` if it does not exist.

        Parameters
        ----------
        path : str or os.PathLike
            File to read or create.
        factory : callable
            Produces the value written when the file is missing. Only the
            caller that wins the creation race calls it.
        type_ : type, optional
            Declared type used for decoding and for the zero value.

        Returns
        -------
        tuple (value, last_modified)
            The stored value and its modification time, or the created value
            stamped with the creation time.

        Raises
        ------
        FileRetrievalError
            If the file could neither be created nor read back afterwards.
        """
        p = validate_path(path)
        value, modified = self.load_with_timestamp(p, type_)
        if modified is not None:
            return value, modified

        created: Dict[str, Any] = {}

        def _create() -> None:
            result = factory()
            codec_dispatcher.encode(path, result, declared_type=type_, config=self.config)
            created["value"] = result
            created["modified"] = datetime.now()

        if self.locks.create_if_absent(p, _create):
            logger.info("created %s", p)
            return created["value"], created["modified"]

        value, modified = self.load_with_timestamp(p, type_)
        if modified is None:
            logger.error("file %s vanished between creation check and read", p)
            raise FileRetrievalError(f"Unable to retrieve file for deserialization: {p}")
        return value, modified

    def exists(self, path: PathLike) -> bool:
        return validate_path(path).exists()

    def last_modified(self, path: PathLike) -> Optional[datetime]:
        """Modification time of ``path``, or None if it does not exist."""
        p = validate_path(path)
        if not p.exists():
            return None
        return codec_dispatcher.last_write_time(p)


_default: Optional[FilePersistence] = None


def default_persistence() -> FilePersistence:
    """Return the shared instance behind the module-level functions."""
    global _default
    if _default is None:
        _default = FilePersistence(config=SerializerConfig.from_env())
    return _default


def save(path: PathLike, value: Any, type_: Optional[type] = None) -> None:
    default_persistence().save(path, value, type_)


def load(path: PathLike, type_: Optional[type] = None) -> Any:
    return default_persistence().load(path, type_)


def load_with_timestamp(path: PathLike,
                        type_: Optional[type] = None) -> Tuple[Any, Optional[datetime]]:
    return default_persistence().load_with_timestamp(path, type_)


def load_or_create(path: PathLike, factory: Callable[[], Any],
                   type_: Optional[type] = None) -> Tuple[Any, Optional[datetime]]:
    return default_persistence().load_or_create(path, factory, type_)


def exists(path: PathLike) -> bool:
    return default_persistence().exists(path)


def last_modified(path: PathLike) -> Optional[datetime]:
    return default_persistence().last_modified(path)
