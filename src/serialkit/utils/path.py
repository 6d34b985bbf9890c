"""utility module validating and classifying the paths serialkit reads and writes

Every public entry point funnels its ``path`` argument through
``validate_path`` before touching the file system, so a missing or blank path
is reported the same way everywhere. ``is_markup_path`` is the single place
that decides between the XML and the binary codec.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Union

PathLike = Union[str, "os.PathLike[str]"]


def validate_path(path: PathLike) -> Path:
    """
    Return ``path`` as a ``Path`` after rejecting null and blank values.

    Raises
    ------
    TypeError
        If ``path`` is None or not a str / os.PathLike.
    ValueError
        If ``path`` is empty or only whitespace.
    """
    if path is None:
        raise TypeError("path cannot be None.")
    if not isinstance(path, (str, os.PathLike)):
        raise TypeError(f"path must be str or os.PathLike, got {type(path).__name__}.")
    raw = os.fspath(path)
    if not isinstance(raw, str):
        raw = os.fsdecode(raw)
    if raw.strip() == "":
        raise ValueError("path cannot be whitespace or empty.")
    return Path(raw)


def is_markup_path(path: PathLike, suffix: str = ".xml") -> bool:
    """True when the path ends with the markup suffix (case-insensitive)."""
    return os.fspath(path).lower().endswith(suffix.lower())
