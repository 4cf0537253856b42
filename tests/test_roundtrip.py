"""Loading files written by another producer and checking what we write back."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path

import openpyxl
import pytest
from lxml import etree
from openpyxl.workbook.defined_name import DefinedName

import xlmodel
from xlmodel import SheetVisibility
from xlmodel.contracts.errors import PackageError


# ---------------------------------------------------------------------------
# loading
# ---------------------------------------------------------------------------
def test_sheets_and_visibility(sample):
    assert [s.name for s in sample.sheets()] == ["Data", "Summary", "Lookup"]
    assert sample.sheet("Lookup").visibility is SheetVisibility.HIDDEN
    assert sample.active_sheet is sample.sheet("Data")


def test_values(sample):
    data = sample.sheet("Data")
    assert data.range("A1:C2").value == [["Region", "Units", "Price"], ["North", 10, 2.5]]
    assert data.cell("E1").value is True
    assert sample.sheet("Lookup").cell("A1").value == "secret"


def test_formulas(sample):
    data = sample.sheet("Data")
    assert data.cell("D2").formula == "B2*C2"
    assert data.cell("D4").formula == "B4*C4"
    assert sample.sheet("Summary").cell("B1").formula == "SUM(Data!D2:D4)"


def test_used_range(sample):
    assert sample.sheet("Data").used_range().address() == "A1:E7"


def test_merges_links_and_widths(sample):
    data = sample.sheet("Data")
    assert [r.address() for r in data.merged_ranges()] == ["A7:C7"]
    assert data.cell("A6").hyperlink == "https://example.com/docs"
    assert data.column("A").width == 18


def test_defined_names(sample):
    data = sample.sheet("Data")
    assert sample.defined_name("Rate") is data.cell("C2")
    assert data.defined_name("LocalTotal") == data.range("D2:D4")
    assert sample.defined_name("LocalTotal") is None


def test_invalid_package():
    with pytest.raises(PackageError):
        xlmodel.from_data(b"junk")


# ---------------------------------------------------------------------------
# writing back
# ---------------------------------------------------------------------------
@pytest.fixture()
def saved(sample, tmp_path: Path) -> Path:
    data = sample.sheet("Data")
    data.cell("A2").value = "North-West"
    data.range("F2:F4").formula = "D2*2"
    data.cell("B8").value = 1234.5
    path = tmp_path / "saved.xlsx"
    sample.to_file(path)
    return path


def test_openpyxl_reads_our_output(saved: Path):
    wb = openpyxl.load_workbook(str(saved))
    try:
        assert wb.sheetnames == ["Data", "Summary", "Lookup"]
        ws = wb["Data"]
        assert ws["A2"].value == "North-West"
        assert ws["B8"].value == 1234.5
        assert ws["D2"].value == "=B2*C2"
        assert ws["F2"].value == "=D2*2"
        assert ws["F3"].value == "=D3*2"
        assert ws["A6"].hyperlink.target == "https://example.com/docs"
        assert [str(r) for r in ws.merged_cells.ranges] == ["A7:C7"]
        assert wb["Lookup"].sheet_state == "hidden"
        assert wb["Summary"]["B1"].value == "=SUM(Data!D2:D4)"
        assert "Rate" in wb.defined_names
        assert wb.defined_names["Rate"].attr_text == "Data!$C$2"
    finally:
        wb.close()


def test_reloading_our_output(saved: Path):
    wb = xlmodel.from_file(saved)
    data = wb.sheet("Data")
    assert data.range("F2:F4").formula == "D2*2"
    assert data.cell("F4").formula == "D4*2"
    assert data.cell("A2").value == "North-West"
    assert data.defined_name("LocalTotal") == data.range("D2:D4")
    assert data.column("A").width == 18


def test_shared_formula_xml(saved: Path):
    with zipfile.ZipFile(saved) as archive:
        sheet_xml = archive.read("xl/worksheets/sheet1.xml").decode()
        workbook_xml = archive.read("xl/workbook.xml").decode()
    assert 't="shared"' in sheet_xml
    assert 'ref="F2:F4"' in sheet_xml
    assert "ns0:" not in sheet_xml
    assert 'fullCalcOnLoad="1"' in workbook_xml


# ---------------------------------------------------------------------------
# chartsheets
# ---------------------------------------------------------------------------
MAIN_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"


@pytest.fixture()
def with_chartsheet(tmp_path: Path) -> Path:
    wb = openpyxl.Workbook()
    wb.active.title = "First"
    wb.create_chartsheet("Chart")
    last = wb.create_sheet("Last")
    last["A1"] = 7
    last.defined_names.add(DefinedName("LocalRate", attr_text="Last!$A$1"))
    path = tmp_path / "chart.xlsx"
    wb.save(str(path))
    wb.close()
    return path


def _workbook_xml(data: bytes) -> etree._Element:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return etree.fromstring(archive.read("xl/workbook.xml"))


def _tab_names(root: etree._Element) -> list[str]:
    return [el.get("name") for el in root.iter(f"{{{MAIN_NS}}}sheet")]


def test_chartsheet_keeps_its_tab_position(with_chartsheet: Path):
    wb = xlmodel.from_file(with_chartsheet)
    assert [s.name for s in wb.sheets()] == ["First", "Last"]
    root = _workbook_xml(wb.output("bytes"))
    assert _tab_names(root) == ["First", "Chart", "Last"]
    names = {el.get("name"): el.get("localSheetId") for el in root.iter(f"{{{MAIN_NS}}}definedName")}
    assert names["LocalRate"] == "2"


def test_scoped_name_survives_next_to_chartsheet(with_chartsheet: Path, roundtrip):
    loaded = roundtrip(xlmodel.from_file(with_chartsheet))
    assert loaded.sheet("Last").defined_name("LocalRate") is not None
    assert loaded.sheet("Last").cell("A1").value == 7


def test_chartsheet_moves_up_when_its_neighbour_is_deleted(with_chartsheet: Path):
    wb = xlmodel.from_file(with_chartsheet)
    wb.delete_sheet("First")
    root = _workbook_xml(wb.output("bytes"))
    assert _tab_names(root) == ["Chart", "Last"]
    assert root.find(f"{{{MAIN_NS}}}bookViews/{{{MAIN_NS}}}workbookView").get("activeTab") == "1"
