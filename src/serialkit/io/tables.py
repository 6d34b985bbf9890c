"""
Named tables and table sets.

A single table is a plain ``pandas.DataFrame``. Its name and the name of the
set that owns it live in ``DataFrame.attrs`` so they travel with the frame
without a wrapper class. A ``TableSet`` groups several named frames and is
what the markup codec writes as one document.
"""

from __future__ import annotations
from typing import Dict, Iterator, List, Optional
import pandas as pd

TABLE_NAME_ATTR = "table_name"
TABLE_SET_ATTR = "table_set"


def table_name(df: pd.DataFrame) -> Optional[str]:
    """Return the table name stored on ``df``, or None if unnamed."""
    name = df.attrs.get(TABLE_NAME_ATTR)
    return str(name) if name else None


def set_table_name(df: pd.DataFrame, name: str) -> None:
    df.attrs[TABLE_NAME_ATTR] = str(name)


def owning_set_name(df: pd.DataFrame) -> Optional[str]:
    """Return the name of the TableSet that owns ``df``, or None."""
    return df.attrs.get(TABLE_SET_ATTR)


class TableSet:
    """
    Ordered collection of named DataFrames.

    Parameters
    ----------
    name : str
        Name of the set, written as the document root attribute.

    Notes
    -----
    - A frame belongs to at most one set; adding an owned frame raises.
    - Frames added without a name are called ``Table1``, ``Table2``, ...
    """

    def __init__(self, name: str = "NewDataSet") -> None:
        self.name = name
        self._tables: Dict[str, pd.DataFrame] = {}

    # ---- public API
    def add(self, df: pd.DataFrame, name: Optional[str] = None) -> pd.DataFrame:
        """
        Add ``df`` to the set and return it.

        The table keeps its existing name unless ``name`` is given; unnamed
        tables get the next free ``Table{n}`` name.

        Raises
        ------
        ValueError
            If the frame already belongs to a set or the name is taken.
        """
        if owning_set_name(df) is not None:
            raise ValueError(
                f"Table '{table_name(df)}' already belongs to set '{owning_set_name(df)}'."
            )
        resolved = name or table_name(df) or self._next_name()
        if resolved in self._tables:
            raise ValueError(f"A table named '{resolved}' already exists in set '{self.name}'.")
        set_table_name(df, resolved)
        df.attrs[TABLE_SET_ATTR] = self.name
        self._tables[resolved] = df
        return df

    @property
    def tables(self) -> List[pd.DataFrame]:
        return list(self._tables.values())

    def names(self) -> List[str]:
        return list(self._tables)

    def _next_name(self) -> str:
        i = len(self._tables) + 1
        while f"Table{i}" in self._tables:
            i += 1
        return f"Table{i}"

    def __getitem__(self, name: str) -> pd.DataFrame:
        return self._tables[name]

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def __iter__(self) -> Iterator[pd.DataFrame]:
        return iter(self._tables.values())

    def __len__(self) -> int:
        return len(self._tables)

    def __repr__(self) -> str:
        return f"TableSet(name={self.name!r}, tables={self.names()!r})"
