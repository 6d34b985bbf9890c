"""Null-tolerant accessors for DataFrames and DataFrame rows.

Persisted tables often come back with loosely typed cells: a set written
without schema returns every cell as text, and missing cells as nulls. The
helpers here read numbers out of such rows without raising on nulls:

  • has_rows(): whether a table holds any row,
  • get_double(): a cell as float, NaN for null,
  • get_float(): a cell as numpy.float32, NaN for null.

Numeric cells are read through their text form so that text cells and
numeric cells of a row are treated the same.
"""

from __future__ import annotations
from typing import Any, Mapping, Union
import numpy as np
import pandas as pd
from pandas.api import types as ptypes

RowT = Union[pd.Series, Mapping[str, Any]]


def has_rows(table: pd.DataFrame) -> bool:
    """True if ``table`` has at least one row."""
    if table is None:
        raise TypeError("table cannot be None.")
    return len(table.index) != 0


def _cell(row: RowT, column: str) -> Any:
    if row is None:
        raise TypeError("row cannot be None.")
    if column is None:
        raise TypeError("column cannot be None.")
    if column not in row:
        raise KeyError(f"Column '{column}' not found in row.")
    return row[column]


def _is_null(value: Any) -> bool:
    return value is None or (ptypes.is_scalar(value) and bool(pd.isna(value)))


def get_double(row: RowT, column: str) -> float:
    """
    Return the cell ``row[column]`` as a float, or NaN if the cell is null.

    Raises
    ------
    TypeError
        If ``row`` or ``column`` is None.
    KeyError
        If the row has no such column.
    ValueError
        If the cell text is not a number.
    """
    value = _cell(row, column)
    if _is_null(value):
        return float("nan")
    return float(str(value))


def get_float(row: RowT, column: str) -> np.float32:
    """Single-precision variant of ``get_double``."""
    value = _cell(row, column)
    if _is_null(value):
        return np.float32(np.nan)
    return np.float32(str(value))
