"""Tests for formula reference translation and error values."""

from __future__ import annotations

import pytest

from xlmodel.engine.formula import FormulaError, strip_formula_prefix, translate_formula


@pytest.mark.parametrize(
    "formula,rows,cols,expected",
    [
        ("A1*B1", 1, 0, "A2*B2"),
        ("A1*B1", 0, 2, "C1*D1"),
        ("$A1+A$1+$A$1", 2, 2, "$A3+C$1+$A$1"),
        ("SUM(A1:A10)", 3, 0, "SUM(A4:A13)"),
        ("SUM(B:B)", 5, 1, "SUM(C:C)"),
        ("SUM(2:2)", 1, 3, "SUM(3:3)"),
        ("Data!C2*2", 1, 0, "Data!C3*2"),
        ("'My Sheet'!A1", 1, 0, "'My Sheet'!A2"),
    ],
)
def test_translate_formula(formula: str, rows: int, cols: int, expected: str):
    assert translate_formula(formula, rows, cols) == expected


def test_lowercase_references_shift():
    assert translate_formula("a1+1", 1, 0) == "a2+1"
    assert translate_formula("b1*$c$1", 1, 1) == "C2*$c$1"
    assert translate_formula("sum(a:a)", 0, 1) == "sum(B:B)"
    assert translate_formula("log10(a1)", 1, 0) == "log10(a2)"


def test_string_literals_are_untouched():
    assert translate_formula('IF(A1="B2","A1",B2)', 1, 0) == 'IF(A2="B2","A1",B3)'


def test_function_names_are_not_references():
    # LOG10 looks like a cell but is a function call.
    assert translate_formula("LOG10(A1)", 1, 0) == "LOG10(A2)"


def test_names_beyond_last_column_are_left_alone():
    assert translate_formula("XFE1+A1", 0, 1) == "XFE1+B1"
    assert translate_formula("ABCD1+A1", 1, 0) == "ABCD1+A2"


def test_reference_pushed_off_sheet_becomes_ref_error():
    assert translate_formula("A2+B5", -2, 0) == "#REF!+B3"


def test_zero_offset_is_identity():
    assert translate_formula("A1+B2", 0, 0) == "A1+B2"


def test_strip_formula_prefix():
    assert strip_formula_prefix("=SUM(A1:A3)") == "SUM(A1:A3)"
    assert strip_formula_prefix("SUM(A1:A3)") == "SUM(A1:A3)"


def test_formula_error_registry():
    assert FormulaError.get("#DIV/0!") is FormulaError.DIV0
    assert FormulaError.get("#N/A") is FormulaError.NA
    assert str(FormulaError.REF) == "#REF!"
    custom = FormulaError.get("#SPILL!")
    assert custom.error == "#SPILL!"
    assert custom == FormulaError("#SPILL!")
