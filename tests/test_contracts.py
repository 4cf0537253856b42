"""Tests for Pydantic contract models."""

from __future__ import annotations

import json

from xlmodel.contracts.common import (
    ChangeRecord,
    ErrorDetail,
    Metrics,
    ResponseEnvelope,
    Target,
    WarningDetail,
)
from xlmodel.contracts.responses import CellMeta, NamedRangeMeta, SheetMeta, WorkbookMeta
from xlmodel.engine.dispatcher import output_json


def test_response_envelope_defaults():
    env = ResponseEnvelope()
    assert env.ok is True
    assert env.command == ""
    assert env.result is None
    assert env.changes == []
    assert env.warnings == []
    assert env.errors == []
    assert env.metrics.duration_ms == 0
    assert env.metrics.cells == 0


def test_response_envelope_roundtrip():
    env = ResponseEnvelope(
        ok=True,
        command="wb.inspect",
        target=Target(file="test.xlsx"),
        result={"key": "value"},
        metrics=Metrics(duration_ms=42),
    )
    data = env.model_dump()
    restored = ResponseEnvelope(**data)
    assert restored.command == "wb.inspect"
    assert restored.result == {"key": "value"}
    assert restored.metrics.duration_ms == 42


def test_error_and_warning_details():
    env = ResponseEnvelope(
        ok=False,
        errors=[ErrorDetail(code="ERR_SHAPE_MISMATCH", message="ragged", details={"expected": [2, 2]})],
        warnings=[WarningDetail(code="WARN_NAME_DROPPED", message="dropped", path="xl/workbook.xml")],
    )
    data = env.model_dump()
    assert data["errors"][0]["details"] == {"expected": [2, 2]}
    assert data["warnings"][0]["path"] == "xl/workbook.xml"


def test_change_record():
    change = ChangeRecord(type="cell.set", target="Sheet1!B2", before=1, after=2)
    assert change.impact is None
    assert change.model_dump()["after"] == 2


def test_workbook_meta_defaults():
    meta = WorkbookMeta(path="a.xlsx", fingerprint="sha256:abc")
    assert meta.sheets == []
    assert meta.names == []
    assert meta.properties == {}
    sheet = SheetMeta(name="Sheet1", index=0)
    assert sheet.visible == "visible"
    assert sheet.merged_ranges == []
    assert NamedRangeMeta(name="Rate").scope == "workbook"


def test_cell_meta_defaults():
    meta = CellMeta(ref="Sheet1!A1")
    assert meta.type == "empty"
    assert meta.number_format == "General"


def test_output_json_is_valid_json():
    env = ResponseEnvelope(command="x", result={"values": [[1, "a", None]]})
    parsed = json.loads(output_json(env))
    assert parsed["result"]["values"] == [[1, "a", None]]
    assert parsed["target"] == {"file": None, "sheet": None, "ref": None}
