"""Tests for value coercion and date serial numbers."""

from __future__ import annotations

import datetime

import pytest

from xlmodel.engine.formula import FormulaError
from xlmodel.engine.values import (
    coerce_value,
    date_to_number,
    format_number,
    number_to_date,
    parse_number,
    value_type,
)


def test_date_to_number():
    assert date_to_number(datetime.datetime(2020, 1, 1)) == 43831
    assert date_to_number(datetime.date(1900, 3, 1)) == 61
    assert date_to_number(datetime.datetime(2020, 1, 1, 12, 0)) == pytest.approx(43831.5)


def test_number_to_date():
    assert number_to_date(43831) == datetime.datetime(2020, 1, 1)
    assert number_to_date(43831.5) == datetime.datetime(2020, 1, 1, 12, 0)


def test_coerce_passes_scalars_through():
    assert coerce_value("text") == "text"
    assert coerce_value(3) == 3
    assert coerce_value(2.5) == 2.5
    assert coerce_value(True) is True
    assert coerce_value(None) is None
    assert coerce_value(FormulaError.NA) is FormulaError.NA


def test_coerce_converts_dates():
    assert coerce_value(datetime.date(2020, 1, 1)) == 43831


@pytest.mark.parametrize("value", [float("nan"), float("inf"), object(), [1, 2]])
def test_coerce_rejects_unsupported(value):
    with pytest.raises(TypeError):
        coerce_value(value)


def test_parse_number():
    assert parse_number("42") == 42
    assert isinstance(parse_number("42"), int)
    assert parse_number("2.5") == 2.5
    assert parse_number("1E-3") == 0.001


def test_format_number():
    assert format_number(42) == "42"
    assert format_number(1.0) == "1"
    assert format_number(0.1) == "0.1"
    assert format_number(True) == "1"


@pytest.mark.parametrize(
    "value,expected",
    [(None, "empty"), (True, "bool"), (1, "number"), (1.5, "number"), ("x", "text"), (FormulaError.DIV0, "error")],
)
def test_value_type(value, expected: str):
    assert value_type(value) == expected
