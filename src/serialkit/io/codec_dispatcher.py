"""
Extension-based codec selection for a single read or write.

Paths ending in the markup suffix (``.xml`` by default, any case) go through
the XML codecs; everything else is pickled. Within the markup branch a
DataFrame or TableSet writes itself through ``table_markup``; any other value
goes through the generic ``markup_codec``.

This module never locks. Callers that need exclusion wrap these functions in
the locks of ``serialkit.io.locking`` (the persistence facade does).
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import IO, Any, Callable, Iterator, Optional, Tuple
import os
import threading

from serialkit.io import binary_codec, markup_codec, table_markup
from serialkit.io.payload import PayloadKind, classify_type, classify_value, zero_value
from serialkit.io.tables import TableSet, owning_set_name, set_table_name, table_name
from serialkit.utils.config import DEFAULT_CONFIG, SerializerConfig
from serialkit.utils.log import get_logger
from serialkit.utils.path import PathLike, is_markup_path, validate_path

logger = get_logger(__name__)

WRITE_MODES = ("wb", "xb")
Opener = Callable[[Path], IO[bytes]]


def last_write_time(path: PathLike) -> datetime:
    """Local, naive last-modified time of ``path``."""
    return datetime.fromtimestamp(Path(path).stat().st_mtime)


@contextmanager
def _open_for_write(p: Path, mode: str) -> Iterator[IO[bytes]]:
    """
    Stream whose content reaches ``p`` only if the block finishes.

    ``"wb"`` writes a sibling temp file and swaps it in with ``os.replace``,
    so a failed encode leaves the previous file untouched and readers only
    ever see a whole file. ``"xb"`` opens ``p`` itself and removes it again
    on failure.
    """
    if mode == "xb":
        with open(p, "xb") as fs:
            try:
                yield fs
            except BaseException:
                fs.close()
                p.unlink()
                raise
        return

    tmp = p.with_name(f"{p.name}.{os.getpid()}.{threading.get_ident()}.tmp")
    try:
        with open(tmp, "wb") as fs:
            yield fs
        os.replace(tmp, p)
    finally:
        if tmp.exists():
            tmp.unlink()


def encode(path: PathLike, value: Any, mode: Optional[str] = None,
           declared_type: Optional[type] = None,
           config: Optional[SerializerConfig] = None) -> None:
    """
    Write ``value`` to ``path`` with the codec its extension selects.

    Parameters
    ----------
    path : str or os.PathLike
        Target file. Its parent directory must exist.
    value : Any
        Value to persist. ``None`` is a no-op: nothing is written or created.
    mode : {"wb", "xb"}, optional
        ``"wb"`` creates or atomically replaces (default), ``"xb"`` only
        creates. Either way a failed encode leaves no partial file behind.
    declared_type : type, optional
        Type the value is written as by the generic markup codec.
    config : SerializerConfig, optional
        Suffix, pickle protocol and encoding settings.

    Notes
    -----
    An unnamed DataFrame is named after ``path`` and a DataFrame without an
    owning set is added to a new one before being written. Both changes are
    made on the caller's frame.
    """
    cfg = config or DEFAULT_CONFIG
    p = validate_path(path)
    if value is None:
        logger.debug("nothing to write for %s", p)
        return

    mode = mode or cfg.default_mode
    if mode not in WRITE_MODES:
        raise ValueError(f"Unsupported write mode {mode!r}; expected one of {WRITE_MODES}.")

    if not is_markup_path(p, cfg.markup_suffix):
        logger.debug("binary encode %s", p)
        with _open_for_write(p, mode) as fs:
            binary_codec.encode(fs, value, protocol=cfg.pickle_protocol)
        return

    kind = classify_value(value)
    if kind is PayloadKind.TABLE:
        if table_name(value) is None:
            set_table_name(value, os.fspath(path))
        if owning_set_name(value) is None:
            TableSet(cfg.default_set_name).add(value)
        logger.debug("table encode %s (%s)", p, table_name(value))
        with _open_for_write(p, mode) as fs:
            table_markup.write_table(fs, value, write_schema=True, encoding=cfg.encoding)
        return

    if kind is PayloadKind.TABLE_SET:
        logger.debug("table set encode %s (%d tables)", p, len(value))
        with _open_for_write(p, mode) as fs:
            table_markup.write_table_set(fs, value, encoding=cfg.encoding)
        return

    logger.debug("markup encode %s", p)
    with _open_for_write(p, mode) as fs:
        markup_codec.encode(fs, value, declared_type, encoding=cfg.encoding)


def decode(path: PathLike, type_: Optional[type] = None,
           config: Optional[SerializerConfig] = None,
           opener: Optional[Opener] = None) -> Tuple[Any, Optional[datetime]]:
    """
    Read the value stored at ``path``.

    Returns
    -------
    tuple (value, last_modified)
        - missing file: ``(zero_value(type_), None)``
        - empty file: ``(zero_value(type_), mtime)``
        - markup file: the decoded value; a None result becomes
          ``zero_value(type_)``
        - binary file: the unpickled value as-is, None included

    Notes
    -----
    The modification time is taken before the file is opened. A writer that
    is not excluded by the caller's locks may slip in between.
    Codec errors are not caught here.
    """
    cfg = config or DEFAULT_CONFIG
    p = validate_path(path)
    if not p.exists():
        return zero_value(type_), None

    modified = last_write_time(p)
    open_stream = opener or (lambda target: open(target, "rb"))
    with open_stream(p) as fs:
        if os.fstat(fs.fileno()).st_size == 0:
            logger.debug("empty file %s", p)
            return zero_value(type_), modified

        if not is_markup_path(p, cfg.markup_suffix):
            logger.debug("binary decode %s", p)
            return binary_codec.decode(fs), modified

        kind = classify_type(type_)
        if kind is PayloadKind.TABLE:
            logger.debug("table decode %s", p)
            return table_markup.read_table(fs), modified
        if kind is PayloadKind.TABLE_SET:
            logger.debug("table set decode %s", p)
            return table_markup.read_table_set(fs), modified

        logger.debug("markup decode %s", p)
        result = markup_codec.decode(fs, type_)
        return (zero_value(type_) if result is None else result), modified

