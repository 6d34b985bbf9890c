"""
Generic structured-markup (XML) codec.

Values are written as a self-describing element tree: every element carries a
``type`` attribute naming how its text or children are to be read back, and
the document root is named after the declared type. Dataclasses are written
field by field and rebuilt from the declared type's annotations, the same way
an XML object serializer binds elements to public members.

Supported values
----------------
None, bool, int, float (including nan/inf), complex, str, bytes, Decimal,
date, datetime, Enum members, list, tuple, set, frozenset, dict and
dataclass instances nesting any of the above.

Notes
-----
- Strings that XML cannot carry verbatim (control characters, ``\\r``) are
  stored base64-encoded.
- Parsing goes through ``defusedxml`` so entity expansion and external
  references in untrusted files are refused.
- Malformed documents raise the parser's own error; documents that parse but
  do not fit the declared type raise ``MarkupDecodeError``.
"""

from __future__ import annotations
import base64
import dataclasses
import re
import types
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import IO, Any, Optional, Union, get_args, get_origin, get_type_hints
import xml.etree.ElementTree as ET

import numpy as np
from defusedxml import ElementTree as SafeET

from serialkit.io.payload import runtime_class
from serialkit.utils.exceptions import MarkupDecodeError, MarkupEncodeError

_UNSAFE_TEXT = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\r\ufffe\uffff]")
_SCALAR_TAGS = {
    bool: "bool",
    int: "int",
    float: "float",
    complex: "complex",
    str: "str",
    bytes: "bytes",
    Decimal: "decimal",
    datetime: "datetime",
    date: "date",
}
_UNION_TYPES = (Union, getattr(types, "UnionType", Union))
_SEQUENCE_TAGS = {list: "list", tuple: "tuple", set: "set", frozenset: "frozenset"}


# ---- public API
def encode(stream: IO[bytes], value: Any, declared_type: Optional[type] = None,
           encoding: str = "utf-8") -> None:
    """
    Write ``value`` as an XML document to a binary stream.

    Parameters
    ----------
    stream : binary file-like
        Destination, opened for writing.
    value : Any
        Value to write; ``None`` is written as a nil root.
    declared_type : type, optional
        Type the value is written as. Names the root element and must accept
        ``value`` when given.
    encoding : str
        Encoding declared in the XML prolog.

    Raises
    ------
    MarkupEncodeError
        If the value (or something nested in it) has no markup form, or does
        not match ``declared_type``.
    """
    declared_cls = runtime_class(declared_type)
    if value is not None and declared_cls is not None and not isinstance(value, declared_cls):
        raise MarkupEncodeError(
            f"Value of type {type(value).__name__} cannot be written as {declared_cls.__name__}."
        )
    root_type = declared_cls or type(value)
    root = ET.Element(_root_tag(root_type))
    _encode_into(root, value)
    ET.ElementTree(root).write(stream, encoding=encoding, xml_declaration=True)


def decode(stream: IO[bytes], declared_type: Optional[type] = None) -> Any:
    """
    Read an XML document written by ``encode`` from a binary stream.

    Returns
    -------
    Any
        The rebuilt value, or None when the document holds a nil root.

    Raises
    ------
    xml.etree.ElementTree.ParseError
        If the document is not well-formed.
    MarkupDecodeError
        If the document does not describe a value of ``declared_type``.
    """
    root = SafeET.parse(stream).getroot()
    value = _decode_element(root, declared_type)
    declared_cls = runtime_class(declared_type)
    if value is not None and declared_cls is not None and not isinstance(value, declared_cls):
        raise MarkupDecodeError(
            f"Document <{root.tag}> holds {type(value).__name__}, "
            f"expected {declared_cls.__name__}."
        )
    return value


# ---- text XML cannot carry verbatim
def set_text(elem: ET.Element, text: str, attr: Optional[str] = None) -> None:
    """
    Store ``text`` as the element text, or as attribute ``attr`` when given.

    Text holding control characters or ``\\r`` (which XML parsers drop or
    normalise) is base64-encoded and flagged with ``encoding="base64"``, or
    ``<attr>-encoding="base64"`` for an attribute.
    """
    flag = "encoding" if attr is None else f"{attr}-encoding"
    if _UNSAFE_TEXT.search(text):
        elem.set(flag, "base64")
        text = base64.b64encode(text.encode("utf-8")).decode("ascii")
    if attr is None:
        elem.text = text
    else:
        elem.set(attr, text)


def get_text(elem: ET.Element, attr: Optional[str] = None, default: str = "") -> str:
    """Inverse of ``set_text``."""
    flag = "encoding" if attr is None else f"{attr}-encoding"
    text = (elem.text if attr is None else elem.get(attr)) or default
    if elem.get(flag) == "base64":
        try:
            return base64.b64decode(text, validate=True).decode("utf-8")
        except ValueError as error:
            raise MarkupDecodeError(f"Invalid base64 text in <{elem.tag}>.") from error
    return text


# ---- encoding
def _root_tag(type_: type) -> str:
    if type_ is type(None):
        return "none"
    name = type_.__name__
    return name if re.match(r"^[A-Za-z_][\w.-]*$", name) else "value"


def _encode_into(elem: ET.Element, value: Any) -> None:
    if isinstance(value, np.generic):
        value = value.item()

    if value is None:
        elem.set("type", "none")
        elem.set("nil", "true")
        return

    if isinstance(value, Enum):
        elem.set("type", "enum")
        elem.set("class", _qualified_name(type(value)))
        elem.text = value.name
        return

    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        elem.set("type", "object")
        elem.set("class", _qualified_name(type(value)))
        for f in dataclasses.fields(value):
            child = ET.SubElement(elem, "field", name=f.name)
            _encode_into(child, getattr(value, f.name))
        return

    if isinstance(value, dict):
        elem.set("type", "dict")
        for k, v in value.items():
            entry = ET.SubElement(elem, "entry")
            _encode_into(ET.SubElement(entry, "key"), k)
            _encode_into(ET.SubElement(entry, "value"), v)
        return

    for seq_type, tag in _SEQUENCE_TAGS.items():
        if type(value) is seq_type:
            elem.set("type", tag)
            items = sorted(value, key=repr) if isinstance(value, (set, frozenset)) else value
            for item in items:
                _encode_into(ET.SubElement(elem, "item"), item)
            return

    # datetime before date: datetime is a date subclass
    for scalar_type in (bool, int, float, complex, str, bytes, Decimal, datetime, date):
        if type(value) is scalar_type:
            elem.set("type", _SCALAR_TAGS[scalar_type])
            _encode_scalar(elem, value)
            return

    raise MarkupEncodeError(f"Values of type {type(value).__name__} have no markup form.")


def _encode_scalar(elem: ET.Element, value: Any) -> None:
    if isinstance(value, bytes):
        elem.text = base64.b64encode(value).decode("ascii")
    elif isinstance(value, str):
        set_text(elem, value)
    elif isinstance(value, (datetime, date)):
        elem.text = value.isoformat()
    else:
        elem.text = repr(value) if isinstance(value, (float, complex)) else str(value)


def _qualified_name(type_: type) -> str:
    return f"{type_.__module__}.{type_.__qualname__}"


# ---- decoding
def _decode_element(elem: ET.Element, hint: Any) -> Any:
    kind = elem.get("type")
    if elem.get("nil") == "true" or kind == "none":
        return None

    text = elem.text or ""
    try:
        if kind == "bool":
            return text == "True"
        if kind == "int":
            return int(text)
        if kind == "float":
            return float(text)
        if kind == "complex":
            return complex(text)
        if kind == "decimal":
            return Decimal(text)
        if kind == "datetime":
            return datetime.fromisoformat(text)
        if kind == "date":
            return date.fromisoformat(text)
        if kind == "bytes":
            return base64.b64decode(text)
    except (ValueError, ArithmeticError) as error:
        raise MarkupDecodeError(f"Invalid {kind} content in <{elem.tag}>: {text!r}") from error

    if kind == "str":
        return get_text(elem)
    if kind == "enum":
        return _decode_enum(elem, hint)
    if kind == "object":
        return _decode_object(elem, hint)
    if kind == "dict":
        key_hint, value_hint = _mapping_hints(hint)
        out = {}
        for entry in elem.findall("entry"):
            key_elem, value_elem = entry.find("key"), entry.find("value")
            if key_elem is None or value_elem is None:
                raise MarkupDecodeError(f"Incomplete dict entry in <{elem.tag}>.")
            out[_decode_element(key_elem, key_hint)] = _decode_element(value_elem, value_hint)
        return out
    if kind in ("list", "tuple", "set", "frozenset"):
        item_hints = _sequence_hints(hint)
        items = []
        for i, child in enumerate(elem.findall("item")):
            items.append(_decode_element(child, item_hints(i)))
        return {"list": list, "tuple": tuple, "set": set, "frozenset": frozenset}[kind](items)

    raise MarkupDecodeError(f"Unknown markup value type {kind!r} in <{elem.tag}>.")


def _decode_enum(elem: ET.Element, hint: Any) -> Enum:
    enum_type = _find_hint(hint, lambda t: isinstance(t, type) and issubclass(t, Enum))
    if enum_type is None:
        raise MarkupDecodeError(
            f"Cannot rebuild enum {elem.get('class')} in <{elem.tag}> without a declared type."
        )
    try:
        return enum_type[elem.text or ""]
    except KeyError as error:
        raise MarkupDecodeError(
            f"{elem.text!r} is not a member of {enum_type.__name__}."
        ) from error


def _decode_object(elem: ET.Element, hint: Any) -> Any:
    cls = _find_hint(hint, lambda t: isinstance(t, type) and dataclasses.is_dataclass(t))
    if cls is None:
        raise MarkupDecodeError(
            f"Cannot rebuild object {elem.get('class')} in <{elem.tag}> without a declared type."
        )
    hints = get_type_hints(cls)
    known = {f.name: f for f in dataclasses.fields(cls)}
    init_kwargs = {}
    late = {}
    for child in elem.findall("field"):
        name = child.get("name")
        if name not in known:
            raise MarkupDecodeError(f"{cls.__name__} has no field named {name!r}.")
        value = _decode_element(child, hints.get(name))
        if known[name].init:
            init_kwargs[name] = value
        else:
            late[name] = value
    try:
        obj = cls(**init_kwargs)
    except TypeError as error:
        raise MarkupDecodeError(f"Cannot rebuild {cls.__name__}: {error}") from error
    for name, value in late.items():
        object.__setattr__(obj, name, value)
    return obj


def _find_hint(hint: Any, predicate) -> Optional[type]:
    """Return ``hint`` (or the member of an Optional/Union hint) matching ``predicate``."""
    if hint is None:
        return None
    if predicate(hint):
        return hint
    if get_origin(hint) in _UNION_TYPES:
        for arg in get_args(hint):
            if predicate(arg):
                return arg
    return None


def _strip_optional(hint: Any) -> Any:
    if get_origin(hint) in _UNION_TYPES:
        args = [a for a in get_args(hint) if a is not type(None)]
        return args[0] if len(args) == 1 else None
    return hint


def _mapping_hints(hint: Any):
    args = get_args(_strip_optional(hint))
    return (args[0], args[1]) if len(args) == 2 else (None, None)


def _sequence_hints(hint: Any):
    hint = _strip_optional(hint)
    origin, args = get_origin(hint), get_args(hint)
    if origin is tuple and args and args[-1] is not Ellipsis:
        return lambda i: args[i] if i < len(args) else None
    item = args[0] if args else None
    return lambda i: item
