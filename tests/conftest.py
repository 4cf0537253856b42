"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
from openpyxl import Workbook as OpenpyxlWorkbook
from openpyxl.workbook.defined_name import DefinedName

import xlmodel
from xlmodel.engine.workbook import Workbook


@pytest.fixture()
def sample_path(tmp_path: Path) -> Path:
    """A workbook written by another producer: values, formulas, a merge, names, a link."""
    wb = OpenpyxlWorkbook()
    ws = wb.active
    ws.title = "Data"

    ws.append(["Region", "Units", "Price", "Total"])
    ws.append(["North", 10, 2.5, "=B2*C2"])
    ws.append(["South", 20, 3, "=B3*C3"])
    ws.append(["East", 5, 4.25, "=B4*C4"])
    ws["A6"] = "Docs"
    ws["A6"].hyperlink = "https://example.com/docs"
    ws["A7"] = "Merged note"
    ws.merge_cells("A7:C7")
    ws["E1"] = True
    ws.column_dimensions["A"].width = 18
    ws.defined_names.add(DefinedName("LocalTotal", attr_text="Data!$D$2:$D$4"))

    summary = wb.create_sheet("Summary")
    summary["A1"] = "Grand total"
    summary["B1"] = "=SUM(Data!D2:D4)"

    hidden = wb.create_sheet("Lookup")
    hidden["A1"] = "secret"
    hidden.sheet_state = "hidden"

    wb.defined_names.add(DefinedName("Rate", attr_text="Data!$C$2"))

    path = tmp_path / "sample.xlsx"
    wb.save(str(path))
    wb.close()
    return path


@pytest.fixture()
def sample(sample_path: Path) -> Workbook:
    return xlmodel.from_file(sample_path)


@pytest.fixture()
def blank() -> Workbook:
    return xlmodel.from_blank()


@pytest.fixture()
def roundtrip():
    """Serialize a workbook and load the bytes again."""

    def _roundtrip(wb: Workbook) -> Workbook:
        return xlmodel.from_data(wb.output("bytes"))

    return _roundtrip
