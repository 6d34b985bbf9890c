"""Tests for payload classification and zero values."""

from __future__ import annotations

from enum import IntEnum

import pandas as pd
import pytest

from serialkit.io.payload import (
    PayloadKind,
    classify_type,
    classify_value,
    runtime_class,
    zero_value,
)
from serialkit.io.tables import TableSet


class Level(IntEnum):
    LOW = 1


def test_classify_value_variants():
    assert classify_value(pd.DataFrame()) is PayloadKind.TABLE
    assert classify_value(TableSet()) is PayloadKind.TABLE_SET
    assert classify_value({"a": 1}) is PayloadKind.GENERIC
    assert classify_value(None) is PayloadKind.GENERIC


def test_classify_type_variants():
    assert classify_type(pd.DataFrame) is PayloadKind.TABLE
    assert classify_type(TableSet) is PayloadKind.TABLE_SET
    assert classify_type(int) is PayloadKind.GENERIC
    assert classify_type(list[int]) is PayloadKind.GENERIC
    assert classify_type(None) is PayloadKind.GENERIC


@pytest.mark.parametrize(
    "type_, expected",
    [(int, 0), (float, 0.0), (bool, False), (complex, 0j)],
)
def test_zero_value_of_value_types(type_, expected):
    value = zero_value(type_)
    assert value == expected
    assert type(value) is type_


@pytest.mark.parametrize("type_", [None, str, list, dict, list[int], pd.DataFrame, TableSet, Level])
def test_zero_value_of_other_types_is_none(type_):
    assert zero_value(type_) is None


def test_runtime_class_unwraps_generic_aliases():
    assert runtime_class(list[int]) is list
    assert runtime_class(dict) is dict
    assert runtime_class(None) is None
