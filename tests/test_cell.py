"""Tests for Cell: identity, values, formulas, search, links and chaining."""

from __future__ import annotations

import datetime
import re

import pytest

from xlmodel import FormulaError
from xlmodel.contracts.errors import InvalidAddress, InvalidOperation, OutOfBounds
from xlmodel.engine.range import Range


def test_cell_identity_is_stable(blank):
    sheet = blank.sheet(0)
    cell = sheet.cell("B3")
    assert sheet.cell(3, "B") is cell
    assert sheet.cell(3, 2) is cell
    assert sheet.row(3).cell("B") is cell
    assert sheet.column("B").cell(3) is cell


def test_cell_position(blank):
    cell = blank.sheet(0).cell("C7")
    assert (cell.row_number, cell.column_number, cell.column_name) == (7, 3, "C")
    assert cell.row.row_number == 7
    assert cell.column.column_number == 3
    assert cell.sheet is blank.sheet(0)
    assert cell.workbook is blank


def test_cell_address_forms(blank):
    cell = blank.sheet(0).cell("C7")
    assert cell.address() == "C7"
    assert cell.address(anchored=True) == "$C$7"
    assert cell.address(row_anchored=True) == "C$7"
    assert cell.address(include_sheet_name=True) == "Sheet1!C7"


def test_cell_rejects_ranges_and_other_sheets(blank):
    sheet = blank.sheet(0)
    with pytest.raises(InvalidAddress):
        sheet.cell("A1:B2")
    with pytest.raises(InvalidAddress):
        sheet.cell("Other!A1")


def test_own_sheet_qualifier_ignores_case(blank):
    sheet = blank.sheet(0)
    assert sheet.cell("sheet1!B2") is sheet.cell("B2")
    assert sheet.range("SHEET1!A1:B2") == sheet.range("A1:B2")


def test_value_round_trip(blank):
    cell = blank.sheet(0).cell("A1")
    for value in ("text", 42, 2.5, True, False, None, FormulaError.NA):
        cell.value = value
        assert cell.value == value


def test_dates_are_stored_as_serial_numbers(blank):
    cell = blank.sheet(0).cell("A1")
    cell.set_value(datetime.date(2020, 1, 1))
    assert cell.value == 43831


def test_unsupported_value_type(blank):
    with pytest.raises(TypeError):
        blank.sheet(0).cell("A1").set_value(object())


def test_setting_a_grid_returns_a_range(blank):
    sheet = blank.sheet(0)
    result = sheet.cell("B2").set_value([[1, 2], [3, 4], [5, 6]])
    assert isinstance(result, Range)
    assert result.address() == "B2:C4"
    assert sheet.cell("C4").value == 6


def test_formula_replaces_value(blank):
    cell = blank.sheet(0).cell("A1")
    cell.value = 10
    cell.set_formula("=SUM(B1:B3)")
    assert cell.formula == "SUM(B1:B3)"
    assert cell.value is None


def test_value_replaces_formula(blank):
    cell = blank.sheet(0).cell("A1")
    cell.formula = "B1*2"
    cell.value = 5
    assert cell.formula is None
    assert cell.value == 5


def test_clear_keeps_style(blank):
    cell = blank.sheet(0).cell("A1")
    cell.set_value("x").set_style("bold", True)
    cell.clear()
    assert cell.value is None
    assert cell.formula is None
    assert cell.get_style("bold") is True


def test_relative_cell(blank):
    cell = blank.sheet(0).cell("C3")
    assert cell.relative_cell(2, -1).address() == "B5"
    with pytest.raises(OutOfBounds):
        cell.relative_cell(-3, 0)


def test_range_to(blank):
    sheet = blank.sheet(0)
    rng = sheet.cell("C3").range_to("A1")
    assert rng.address() == "A1:C3"


def test_find_and_replace(blank):
    cell = blank.sheet(0).cell("A1")
    cell.value = "Hello World"
    assert cell.find("world") is True
    assert cell.find("planet") is False
    assert cell.find("world", "There") is True
    assert cell.value == "Hello There"


def test_find_with_regex_and_callable(blank):
    cell = blank.sheet(0).cell("A1")
    cell.value = "item-12"
    assert cell.find(re.compile(r"\d+"), lambda m: str(int(m.group()) * 2))
    assert cell.value == "item-24"


def test_find_skips_numbers_and_formulas(blank):
    sheet = blank.sheet(0)
    sheet.cell("A1").value = 123
    sheet.cell("A2").formula = "\"abc\""
    assert sheet.cell("A1").find("123") is False
    assert sheet.cell("A2").find("abc") is False


def test_active_cell(blank):
    sheet = blank.sheet(0)
    assert sheet.cell("A1").active is True
    sheet.cell("D4").active = True
    assert sheet.active_cell is sheet.cell("D4")
    assert sheet.cell("A1").active is False
    with pytest.raises(InvalidOperation):
        sheet.cell("D4").active = False


def test_hyperlinks(blank):
    cell = blank.sheet(0).cell("A1")
    assert cell.hyperlink is None
    cell.hyperlink = "https://example.com"
    assert cell.hyperlink == "https://example.com"
    cell.set_hyperlink("#Sheet1!B2")
    assert cell.hyperlink == "#Sheet1!B2"
    cell.hyperlink = None
    assert cell.hyperlink is None


def test_data_validation_shorthand(blank):
    cell = blank.sheet(0).cell("A1")
    cell.data_validation = "Yes,No"
    rule = cell.data_validation
    assert rule.type == "list"
    assert rule.formula1 == '"Yes,No"'
    cell.data_validation = None
    assert cell.data_validation is None


def test_tap_and_thru(blank):
    cell = blank.sheet(0).cell("A1")
    seen = []
    assert cell.tap(seen.append) is cell
    assert seen == [cell]
    assert cell.thru(lambda c: c.address()) == "A1"
