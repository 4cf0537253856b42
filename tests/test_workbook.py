"""Tests for workbook-level operations: sheets, names, search, properties, output."""

from __future__ import annotations

import base64
import datetime
import io

import pytest

import xlmodel
from xlmodel import MIME_TYPE, OutputType
from xlmodel.contracts.errors import InvalidOperation, NameConflict, OutOfBounds


# ---------------------------------------------------------------------------
# creation
# ---------------------------------------------------------------------------
def test_from_blank_has_one_sheet(blank):
    assert [s.name for s in blank.sheets()] == ["Sheet1"]
    assert blank.active_sheet is blank.sheet(0)
    assert blank.sheet(0).used_range() is None


def test_blank_workbooks_are_independent():
    a = xlmodel.from_blank()
    b = xlmodel.from_blank()
    a.sheet(0).cell("A1").value = "only in a"
    assert b.sheet(0).cell("A1").value is None


def test_mime_type():
    assert MIME_TYPE == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ---------------------------------------------------------------------------
# sheets
# ---------------------------------------------------------------------------
def test_sheet_lookup(blank):
    sheet = blank.sheet(0)
    assert blank.sheet("SHEET1") is sheet
    assert blank.sheet("missing") is None
    assert blank.sheet(5) is None


def test_add_sheet_positions(blank):
    blank.add_sheet("Last")
    blank.add_sheet("First", 0)
    blank.add_sheet("Middle", "Last")
    assert [s.name for s in blank.sheets()] == ["First", "Sheet1", "Middle", "Last"]


def test_add_sheet_duplicate_name(blank):
    with pytest.raises(NameConflict):
        blank.add_sheet("sheet1")


def test_add_sheet_bad_position(blank):
    with pytest.raises(OutOfBounds):
        blank.add_sheet("Far", 7)


def test_delete_sheet(blank):
    blank.add_sheet("Other")
    blank.delete_sheet("Other")
    assert [s.name for s in blank.sheets()] == ["Sheet1"]


def test_delete_unknown_sheet(blank):
    with pytest.raises(InvalidOperation):
        blank.delete_sheet("Nope")
    with pytest.raises(OutOfBounds):
        blank.delete_sheet(3)


def test_cannot_delete_last_visible_sheet(blank):
    hidden = blank.add_sheet("Hidden")
    hidden.hidden = True
    with pytest.raises(InvalidOperation):
        blank.delete_sheet(0)


def test_deleting_active_sheet_activates_neighbour(blank):
    second = blank.add_sheet("Second")
    third = blank.add_sheet("Third")
    second.active = True
    blank.delete_sheet(second)
    assert blank.active_sheet is third
    assert third.tab_selected is True


def test_deleting_last_active_sheet_activates_previous(blank):
    second = blank.add_sheet("Second")
    second.active = True
    blank.delete_sheet("Second")
    assert blank.active_sheet is blank.sheet(0)


def test_cannot_activate_hidden_sheet(blank):
    hidden = blank.add_sheet("Hidden")
    hidden.hidden = True
    with pytest.raises(InvalidOperation):
        blank.active_sheet = "Hidden"


def test_new_sheets_survive_roundtrip(blank, roundtrip):
    blank.add_sheet("Extra").cell("A1").value = "hello"
    blank.active_sheet = "Extra"
    loaded = roundtrip(blank)
    assert [s.name for s in loaded.sheets()] == ["Sheet1", "Extra"]
    assert loaded.active_sheet.name == "Extra"
    assert loaded.sheet("Extra").cell("A1").value == "hello"


def test_deleted_sheet_part_is_gone(sample, roundtrip):
    sample.delete_sheet("Summary")
    loaded = roundtrip(sample)
    assert [s.name for s in loaded.sheets()] == ["Data", "Lookup"]


# ---------------------------------------------------------------------------
# defined names
# ---------------------------------------------------------------------------
def test_defined_name_resolution(blank):
    sheet = blank.sheet(0)
    blank.set_defined_name("Point", sheet.cell("B2"))
    blank.set_defined_name("Block", sheet.range("A1:C3"))
    blank.set_defined_name("Whole", sheet.column("D"))
    blank.set_defined_name("Line", sheet.row(4))
    blank.set_defined_name("Rate", "=0.2")
    assert blank.defined_name("point") is sheet.cell("B2")
    assert blank.defined_name("Block") == sheet.range("A1:C3")
    assert blank.defined_name("Whole") is sheet.column("D")
    assert blank.defined_name("Line") is sheet.row(4)
    assert blank.defined_name("Rate") == "0.2"
    assert blank.defined_name("Missing") is None


def test_defined_name_removal(blank):
    blank.set_defined_name("Point", blank.sheet(0).cell("B2"))
    blank.set_defined_name("Point", None)
    assert blank.defined_name("Point") is None


@pytest.mark.parametrize("name", ["A1", "R1C1", "1abc", "has space", ""])
def test_invalid_defined_names(blank, name: str):
    with pytest.raises(NameConflict):
        blank.set_defined_name(name, "=1")


def test_defined_name_from_other_workbook(blank):
    other = xlmodel.from_blank()
    with pytest.raises(InvalidOperation):
        blank.set_defined_name("Foreign", other.sheet(0).cell("A1"))


def test_defined_names_survive_roundtrip(blank, roundtrip):
    blank.set_defined_name("Block", blank.sheet(0).range("A1:C3"))
    loaded = roundtrip(blank)
    assert loaded.defined_name("Block") == loaded.sheet(0).range("A1:C3")


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------
def test_find_across_workbook(blank):
    blank.sheet(0).cell("A1").value = "north"
    other = blank.add_sheet("Other")
    other.cell("B2").value = "North Pole"
    assert blank.find("NORTH", "South") is True
    assert blank.sheet(0).cell("A1").value == "South"
    assert other.cell("B2").value == "South Pole"
    assert blank.find("east") is False


# ---------------------------------------------------------------------------
# properties
# ---------------------------------------------------------------------------
def test_properties(blank):
    blank.set_property({"title": "Budget", "subject": "2024"})
    blank.set_property("creator", "Finance")
    assert blank.get_property("title") == "Budget"
    assert blank.get_property(["title", "creator"]) == {"title": "Budget", "creator": "Finance"}
    assert blank.properties.subject == "2024"
    blank.properties.keywords = "plan"
    assert blank.get_property("keywords") == "plan"


def test_unknown_property(blank):
    with pytest.raises(ValueError):
        blank.get_property("colour")
    with pytest.raises(AttributeError):
        blank.properties.colour


def test_properties_survive_roundtrip(blank, roundtrip):
    created = datetime.datetime(2024, 3, 1, 9, 30)
    blank.set_property({"title": "Report", "created": created})
    loaded = roundtrip(blank)
    assert loaded.get_property("title") == "Report"
    assert loaded.get_property("created") == created.replace(tzinfo=datetime.timezone.utc)


# ---------------------------------------------------------------------------
# output
# ---------------------------------------------------------------------------
def test_output_types(blank):
    data = blank.output()
    assert isinstance(data, bytes)
    assert data.startswith(b"PK")
    assert isinstance(blank.output("bytearray"), bytearray)
    assert base64.b64decode(blank.output(OutputType.BASE64))[:2] == b"PK"
    assert blank.output("binarystring")[:2] == "PK"
    assert isinstance(blank.output("buffer"), memoryview)
    assert isinstance(blank.output("blob"), io.BytesIO)


def test_output_unknown_type(blank):
    with pytest.raises(ValueError):
        blank.output("nodebuffer")


def test_to_file_and_from_file(blank, tmp_path):
    blank.sheet(0).cell("A1").value = 3.5
    path = tmp_path / "out.xlsx"
    blank.to_file(path)
    loaded = xlmodel.from_file(path)
    assert loaded.sheet(0).cell("A1").value == 3.5


def test_output_is_repeatable(blank):
    blank.sheet(0).cell("A1").value = "same"
    first = xlmodel.from_data(blank.output())
    second = xlmodel.from_data(blank.output())
    assert first.sheet(0).cell("A1").value == second.sheet(0).cell("A1").value == "same"


# ---------------------------------------------------------------------------
# async entry points
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_async_roundtrip(tmp_path):
    wb = await xlmodel.from_blank_async()
    wb.sheet(0).cell("B2").value = "async"
    path = tmp_path / "async.xlsx"
    await wb.to_file_async(path)
    loaded = await xlmodel.from_file_async(path)
    assert loaded.sheet(0).cell("B2").value == "async"
    data = await loaded.output_async("bytes")
    again = await xlmodel.from_data_async(data)
    assert again.sheet(0).cell("B2").value == "async"


# ---------------------------------------------------------------------------
# end to end
# ---------------------------------------------------------------------------
def test_properties_is_a_property_attribute():
    assert isinstance(xlmodel.Workbook.__dict__["properties"], property)
    wb = xlmodel.from_blank()
    wb.properties.title = "Quarterly"
    assert wb.get_property("title") == "Quarterly"


def test_blank_to_styled_data_and_back():
    wb = xlmodel.from_blank()
    data = wb.add_sheet("Data")
    data.cell("A1").value = "Total"
    data.cell("B1").value = 42
    data.range("A1:B1").set_style("bold", True)

    loaded = xlmodel.from_data(wb.output("bytes"))
    sheet = loaded.sheet("Data")
    assert sheet.cell("B1").value == 42
    assert sheet.cell("A1").value == "Total"
    assert sheet.cell("A1").get_style("bold") is True
    assert sheet.cell("B1").get_style("bold") is True
    assert [s.name for s in loaded.sheets()] == ["Sheet1", "Data"]
