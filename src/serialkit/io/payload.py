"""Classification of persisted values into the generic payload or one of the two table variants."""
from __future__ import annotations
from enum import Enum
from typing import Any, Optional, get_origin
import pandas as pd

from serialkit.io.tables import TableSet

# value types whose zero value is their no-argument constructor
_VALUE_TYPES = (bool, int, float, complex)


class PayloadKind(Enum):
    GENERIC = "generic"
    TABLE = "table"
    TABLE_SET = "table_set"


def classify_value(value: Any) -> PayloadKind:
    """Pick the payload kind for a value about to be written."""
    if isinstance(value, pd.DataFrame):
        return PayloadKind.TABLE
    if isinstance(value, TableSet):
        return PayloadKind.TABLE_SET
    return PayloadKind.GENERIC


def classify_type(type_: Optional[type]) -> PayloadKind:
    """Pick the payload kind for a declared type about to be read."""
    cls = runtime_class(type_)
    if cls is not None:
        if issubclass(cls, pd.DataFrame):
            return PayloadKind.TABLE
        if issubclass(cls, TableSet):
            return PayloadKind.TABLE_SET
    return PayloadKind.GENERIC


def zero_value(type_: Optional[type]) -> Any:
    """
    Return the zero value of ``type_``.

    Numeric and bool types give ``type_()`` (0, 0.0, 0j, False); every other
    type, and an undeclared type, gives None.
    """
    cls = runtime_class(type_)
    if cls is not None and issubclass(cls, _VALUE_TYPES) and not issubclass(cls, Enum):
        return cls()
    return None


def runtime_class(type_: Any) -> Optional[type]:
    """Return the class behind a declared type (``list[int]`` -> ``list``), or None."""
    origin = get_origin(type_)
    if isinstance(origin, type):
        return origin
    if origin is None and isinstance(type_, type):
        return type_
    return None
