"""
XML reader/writer for DataFrames and TableSets.

Document layout::

    <tableset name="NewDataSet">
      <schema>                              (only when written with schema)
        <table name="prices">
          <column name="close" dtype="float64"/>
        </table>
      </schema>
      <table name="prices">
        <row><cell column="close">101.5</cell></row>
      </table>
    </tableset>

Null cells are left out of their row. Columns described by a schema are
restored to their dtype on read; without a schema every cell comes back as
text in an ``object`` column, the way a set written without schema loses its
typing. Row indexes are not written. Names and cell text that XML cannot
carry verbatim are base64-encoded (see ``markup_codec.set_text``).
"""

from __future__ import annotations
from typing import IO, Any, Dict, List, Optional, Union
import xml.etree.ElementTree as ET

import pandas as pd
from pandas.api import types as ptypes
from defusedxml import ElementTree as SafeET

from serialkit.io.markup_codec import get_text, set_text
from serialkit.io.tables import TableSet, owning_set_name, set_table_name, table_name
from serialkit.utils.exceptions import MarkupDecodeError

Source = Union[str, IO[bytes]]


# ---- writing
def write_table(stream: IO[bytes], df: pd.DataFrame, write_schema: bool = True,
                encoding: str = "utf-8") -> None:
    """Write a single DataFrame inside the shell of its owning set."""
    root = ET.Element("tableset")
    set_text(root, owning_set_name(df) or "NewDataSet", "name")
    frames = [(table_name(df) or "Table1", df)]
    if write_schema:
        _append_schema(root, frames)
    _append_tables(root, frames)
    ET.ElementTree(root).write(stream, encoding=encoding, xml_declaration=True)


def write_table_set(stream: IO[bytes], tset: TableSet, write_schema: bool = False,
                    encoding: str = "utf-8") -> None:
    """Write every table of ``tset``; schema is left out unless asked for."""
    root = ET.Element("tableset")
    set_text(root, tset.name, "name")
    frames = list(zip(tset.names(), tset.tables))
    if write_schema:
        _append_schema(root, frames)
    _append_tables(root, frames)
    ET.ElementTree(root).write(stream, encoding=encoding, xml_declaration=True)


def _append_schema(root: ET.Element, frames) -> None:
    schema = ET.SubElement(root, "schema")
    for name, df in frames:
        t = ET.SubElement(schema, "table")
        set_text(t, name, "name")
        for col in df.columns:
            c = ET.SubElement(t, "column")
            set_text(c, str(col), "name")
            c.set("dtype", str(df[col].dtype))


def _append_tables(root: ET.Element, frames) -> None:
    for name, df in frames:
        t = ET.SubElement(root, "table")
        set_text(t, name, "name")
        columns = [str(c) for c in df.columns]
        for values in df.itertuples(index=False, name=None):
            row = ET.SubElement(t, "row")
            for col, value in zip(columns, values):
                if _is_null(value):
                    continue
                cell = ET.SubElement(row, "cell")
                set_text(cell, col, "column")
                set_text(cell, _cell_text(value))


def _is_null(value: Any) -> bool:
    return value is None or (ptypes.is_scalar(value) and bool(pd.isna(value)))


def _cell_text(value: Any) -> str:
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    return str(value)


# ---- reading
def read_table(source: Source) -> pd.DataFrame:
    """
    Read the first table of a document.

    The table name is restored; the frame is returned without an owning set.

    Raises
    ------
    MarkupDecodeError
        If the document holds no table.
    """
    root = _parse(source)
    schema = _read_schema(root)
    first = root.find("table")
    if first is None:
        raise MarkupDecodeError("Document does not contain a table.")
    return _read_one(first, schema)


def read_table_set(source: Source) -> TableSet:
    """Read every table of a document into a new TableSet."""
    root = _parse(source)
    schema = _read_schema(root)
    tset = TableSet(get_text(root, "name", "NewDataSet"))
    for t in root.findall("table"):
        df = _read_one(t, schema)
        tset.add(df)
    return tset


def _parse(source: Source) -> ET.Element:
    root = SafeET.parse(source).getroot()
    if root.tag != "tableset":
        raise MarkupDecodeError(f"Expected a <tableset> document, found <{root.tag}>.")
    return root


def _read_schema(root: ET.Element) -> Dict[str, Dict[str, str]]:
    """Map table name -> {column: dtype} (insertion ordered)."""
    out: Dict[str, Dict[str, str]] = {}
    schema = root.find("schema")
    if schema is None:
        return out
    for t in schema.findall("table"):
        out[get_text(t, "name")] = {get_text(c, "name"): c.get("dtype", "object")
                                    for c in t.findall("column")}
    return out


def _read_one(elem: ET.Element, schema: Dict[str, Dict[str, str]]) -> pd.DataFrame:
    name = get_text(elem, "name", "Table1")
    dtypes = schema.get(name, {})
    columns: List[str] = list(dtypes)
    records: List[Dict[str, Optional[str]]] = []
    for row in elem.findall("row"):
        rec: Dict[str, Optional[str]] = {}
        for cell in row.findall("cell"):
            col = get_text(cell, "column")
            if col not in columns:
                columns.append(col)
            rec[col] = get_text(cell)
        records.append(rec)

    data = {
        col: pd.Series([rec.get(col) for rec in records], dtype=object)
        for col in columns
    }
    df = pd.DataFrame(data, columns=columns)
    for col, dtype in dtypes.items():
        df[col] = _restore_dtype(df[col], dtype)
    set_table_name(df, name)
    return df


def _restore_dtype(s: pd.Series, dtype: str) -> pd.Series:
    """Convert a column of cell text back to ``dtype``; nulls may widen ints/bools."""
    target = ptypes.pandas_dtype(dtype)
    has_nulls = bool(s.isna().any())
    if ptypes.is_object_dtype(target):
        return s
    if ptypes.is_bool_dtype(target):
        s = s.map({"True": True, "False": False})
        if has_nulls and not isinstance(target, pd.BooleanDtype):
            return s
        return s.astype(target)
    if ptypes.is_numeric_dtype(target):
        s = pd.to_numeric(s)
        if has_nulls and ptypes.is_integer_dtype(target) and not isinstance(
            target, pd.api.extensions.ExtensionDtype
        ):
            return s
        return s.astype(target)
    if ptypes.is_datetime64_any_dtype(target):
        return pd.to_datetime(s).astype(target)
    return s.astype(target)
