"""Tests for CLI commands via Typer test runner."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

import xlmodel
from xlmodel.cli import app

runner = CliRunner()


def _invoke(*args: str) -> tuple[int, dict]:
    result = runner.invoke(app, list(args))
    return result.exit_code, json.loads(result.stdout)


def test_version():
    code, data = _invoke("version")
    assert code == 0
    assert data["ok"] is True
    assert data["result"]["version"] == xlmodel.__version__


# ---------------------------------------------------------------------------
# wb
# ---------------------------------------------------------------------------
def test_wb_inspect(sample_path: Path):
    code, data = _invoke("wb", "inspect", "--file", str(sample_path))
    assert code == 0
    assert data["command"] == "wb.inspect"
    result = data["result"]
    assert [s["name"] for s in result["sheets"]] == ["Data", "Summary", "Lookup"]
    assert result["sheets"][2]["visible"] == "hidden"
    assert result["sheets"][0]["merged_ranges"] == ["A7:C7"]
    assert result["active_sheet"] == "Data"
    assert result["fingerprint"].startswith("sha256:")
    names = {(n["name"], n["scope"]) for n in result["names"]}
    assert ("Rate", "workbook") in names
    assert ("LocalTotal", "Data") in names


def test_wb_inspect_not_found(tmp_path: Path):
    code, data = _invoke("wb", "inspect", "--file", str(tmp_path / "nope.xlsx"))
    assert code == 50
    assert data["ok"] is False
    assert data["errors"][0]["code"] == "ERR_WORKBOOK_NOT_FOUND"


def test_wb_inspect_corrupt(tmp_path: Path):
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"not a zip")
    code, data = _invoke("wb", "inspect", "--file", str(path))
    assert code == 50
    assert data["errors"][0]["code"] == "ERR_WORKBOOK_CORRUPT"


def test_wb_create(tmp_path: Path):
    path = tmp_path / "new.xlsx"
    code, data = _invoke("wb", "create", "--file", str(path), "--sheets", "Revenue,Summary")
    assert code == 0
    assert data["result"]["sheets"] == ["Revenue", "Summary"]
    assert [s.name for s in xlmodel.from_file(path).sheets()] == ["Revenue", "Summary"]


def test_wb_create_refuses_existing(sample_path: Path):
    code, data = _invoke("wb", "create", "--file", str(sample_path))
    assert code == 50
    assert data["errors"][0]["code"] == "ERR_FILE_EXISTS"


def test_wb_create_encrypted(tmp_path: Path):
    path = tmp_path / "secret.xlsx"
    code, data = _invoke("wb", "create", "--file", str(path), "--password", "pw")
    assert code == 0
    assert data["result"]["encrypted"] is True

    code, data = _invoke("sheet", "ls", "--file", str(path))
    assert code == 20
    assert data["errors"][0]["code"] == "ERR_DECRYPTION_FAILED"

    code, data = _invoke("sheet", "ls", "--file", str(path), "--password", "pw")
    assert code == 0
    assert [s["name"] for s in data["result"]["sheets"]] == ["Sheet1"]


def test_wb_lock_status(sample_path: Path):
    code, data = _invoke("wb", "lock-status", "--file", str(sample_path))
    assert code == 0
    assert data["result"]["locked"] is False
    assert data["result"]["exists"] is True


# ---------------------------------------------------------------------------
# sheet
# ---------------------------------------------------------------------------
def test_sheet_ls(sample_path: Path):
    code, data = _invoke("sheet", "ls", "--file", str(sample_path))
    assert code == 0
    sheets = data["result"]["sheets"]
    assert sheets[0]["used_range"] == "A1:E7"
    assert sheets[0]["active"] is True


def test_sheet_create_and_delete(sample_path: Path):
    code, data = _invoke("sheet", "create", "--file", str(sample_path), "--name", "Notes", "--before", "Summary")
    assert code == 0
    assert data["result"]["index"] == 1
    assert [s.name for s in xlmodel.from_file(sample_path).sheets()] == ["Data", "Notes", "Summary", "Lookup"]

    code, data = _invoke("sheet", "delete", "--file", str(sample_path), "--name", "Notes")
    assert code == 0
    assert [s.name for s in xlmodel.from_file(sample_path).sheets()] == ["Data", "Summary", "Lookup"]


def test_sheet_create_duplicate(sample_path: Path):
    code, data = _invoke("sheet", "create", "--file", str(sample_path), "--name", "data")
    assert code == 40
    assert data["errors"][0]["code"] == "ERR_NAME_CONFLICT"


def test_sheet_delete_missing(sample_path: Path):
    code, data = _invoke("sheet", "delete", "--file", str(sample_path), "--name", "Ghost")
    assert code == 10
    assert data["errors"][0]["code"] == "ERR_SHEET_NOT_FOUND"


def test_sheet_create_dry_run(sample_path: Path):
    before = sample_path.read_bytes()
    code, data = _invoke("sheet", "create", "--file", str(sample_path), "--name", "Draft", "--dry-run")
    assert code == 0
    assert data["result"]["dry_run"] is True
    assert sample_path.read_bytes() == before


# ---------------------------------------------------------------------------
# cell / range
# ---------------------------------------------------------------------------
def test_cell_get(sample_path: Path):
    code, data = _invoke("cell", "get", "--file", str(sample_path), "--ref", "Data!B2")
    assert code == 0
    assert data["result"]["value"] == 10
    assert data["result"]["type"] == "number"


def test_cell_get_formula(sample_path: Path):
    code, data = _invoke("cell", "get", "--file", str(sample_path), "--ref", "Data!D2")
    assert data["result"]["type"] == "formula"
    assert data["result"]["formula"] == "B2*C2"


def test_cell_get_needs_sheet(sample_path: Path):
    code, data = _invoke("cell", "get", "--file", str(sample_path), "--ref", "B2")
    assert code == 10
    assert data["errors"][0]["code"] == "ERR_ADDRESS_INVALID"


def test_cell_set_number(sample_path: Path):
    code, data = _invoke(
        "cell", "set", "--file", str(sample_path), "--ref", "Data!B2", "--value", "42", "--type", "number",
    )
    assert code == 0
    assert data["changes"][0]["before"] == 10
    assert data["changes"][0]["after"] == 42
    assert xlmodel.from_file(sample_path).sheet("Data").cell("B2").value == 42


def test_cell_set_bad_number(sample_path: Path):
    code, data = _invoke(
        "cell", "set", "--file", str(sample_path), "--ref", "Data!B2", "--value", "abc", "--type", "number",
    )
    assert code == 10
    assert data["errors"][0]["code"] == "ERR_INVALID_ARGUMENT"


def test_cell_set_with_backup(sample_path: Path):
    code, data = _invoke(
        "cell", "set", "--file", str(sample_path), "--ref", "Data!A2", "--value", "Northeast", "--backup",
    )
    assert code == 0
    assert Path(data["result"]["backup_path"]).exists()


def test_range_get(sample_path: Path):
    code, data = _invoke("range", "get", "--file", str(sample_path), "--ref", "Data!A1:B3")
    assert code == 0
    assert data["result"]["values"] == [["Region", "Units"], ["North", 10], ["South", 20]]
    assert (data["result"]["rows"], data["result"]["columns"]) == (3, 2)
    assert data["metrics"]["cells"] == 6


# ---------------------------------------------------------------------------
# formula / format / find
# ---------------------------------------------------------------------------
def test_formula_set_shared(sample_path: Path):
    code, data = _invoke("formula", "set", "--file", str(sample_path), "--ref", "Data!F2:F4", "--formula", "=D2*1.1")
    assert code == 0
    assert data["result"]["shared"] is True
    assert data["changes"][0]["impact"] == {"cells": 3}
    sheet = xlmodel.from_file(sample_path).sheet("Data")
    assert sheet.cell("F3").formula == "D3*1.1"


def test_format_style(sample_path: Path):
    code, data = _invoke(
        "format", "style", "--file", str(sample_path), "--ref", "Data!A1:D1", "--styles", '{"bold": true}',
    )
    assert code == 0
    sheet = xlmodel.from_file(sample_path).sheet("Data")
    assert sheet.range("A1:D1").get_style("bold") == [[True, True, True, True]]


def test_format_style_bad_json(sample_path: Path):
    code, data = _invoke("format", "style", "--file", str(sample_path), "--ref", "Data!A1", "--styles", "{bold")
    assert code == 10
    assert data["errors"][0]["code"] == "ERR_INVALID_ARGUMENT"


def test_format_style_unknown_property(sample_path: Path):
    code, data = _invoke("format", "style", "--file", str(sample_path), "--ref", "Data!A1", "--styles", '{"sparkle": 1}')
    assert code == 10
    assert "Unknown style" in data["errors"][0]["message"]


def test_find(sample_path: Path):
    code, data = _invoke("find", "--file", str(sample_path), "--pattern", "north")
    assert code == 0
    assert data["result"]["count"] == 1
    assert data["result"]["matches"][0] == {"ref": "Data!A2", "value": "North"}


def test_find_replace(sample_path: Path):
    code, data = _invoke("find", "--file", str(sample_path), "--pattern", "^(North|South)$", "--regex", "--replace", r"\1ern")
    assert code == 0
    assert data["result"]["count"] == 2
    sheet = xlmodel.from_file(sample_path).sheet("Data")
    assert sheet.range("A2:A3").value == [["Northern"], ["Southern"]]


def test_find_bad_regex(sample_path: Path):
    code, data = _invoke("find", "--file", str(sample_path), "--pattern", "(", "--regex")
    assert code == 10
    assert data["errors"][0]["code"] == "ERR_PATTERN_INVALID"
