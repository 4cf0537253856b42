"""Exit code mapping regression tests."""

from __future__ import annotations

import pytest

from xlmodel.contracts.common import ResponseEnvelope
from xlmodel.contracts.errors import (
    DecryptionError,
    InvalidAddress,
    InvalidOperation,
    NameConflict,
    OutOfBounds,
    OverlapError,
    PackageError,
    ShapeMismatch,
    WorkbookCorruptError,
    WorkbookLocked,
    XlModelError,
)
from xlmodel.engine.dispatcher import (
    ERROR_CATEGORIES,
    EXIT_CODES,
    category_for,
    envelope_for_error,
    error_envelope,
    exit_code_for,
    success_envelope,
)


def test_exit_code_success():
    assert exit_code_for(success_envelope("x", {})) == 0


def test_exit_code_validation_class():
    env = error_envelope("x", "ERR_RANGE_OUT_OF_BOUNDS", "bad ref")
    assert exit_code_for(env) == 10


def test_exit_code_protection_class():
    env = error_envelope("x", "ERR_DECRYPTION_FAILED", "wrong password")
    assert exit_code_for(env) == 20


def test_exit_code_conflict_class():
    env = error_envelope("x", "ERR_NAME_CONFLICT", "duplicate")
    assert exit_code_for(env) == 40


def test_exit_code_io_class():
    env = error_envelope("x", "ERR_WORKBOOK_NOT_FOUND", "missing")
    assert exit_code_for(env) == 50


def test_exit_code_unsupported_class():
    env = error_envelope("x", "ERR_UNSUPPORTED_OPERATION", "unsupported")
    assert exit_code_for(env) == 70


def test_exit_code_internal_fallback():
    env = error_envelope("x", "ERR_QUERY_FAILED", "unknown")
    assert exit_code_for(env) == 90


def test_error_envelope_without_errors_is_internal():
    assert exit_code_for(ResponseEnvelope(ok=False)) == 90


@pytest.mark.parametrize(
    "code,category",
    [
        ("ERR_SHEET_NOT_FOUND", "validation"),
        ("ERR_PASSWORD_REQUIRED", "protection"),
        ("ERR_STYLE_CONFLICT", "conflict"),
        ("ERR_PART_NOT_FOUND", "io"),
        ("err_lock_held", "io"),
    ],
)
def test_category_for(code: str, category: str):
    assert category_for(code) == category


def test_every_known_code_has_an_exit_code():
    for code in ERROR_CATEGORIES:
        assert exit_code_for(error_envelope("x", code, "m")) == EXIT_CODES[ERROR_CATEGORIES[code]]


@pytest.mark.parametrize(
    "exc,expected",
    [
        (InvalidAddress("bad"), 10),
        (OutOfBounds("far"), 10),
        (InvalidOperation("no"), 10),
        (ShapeMismatch("ragged"), 10),
        (DecryptionError("locked"), 20),
        (NameConflict("dupe"), 40),
        (OverlapError("merge"), 40),
        (PackageError("zip"), 50),
        (WorkbookCorruptError("zip"), 50),
        (WorkbookLocked("busy"), 50),
        (XlModelError("boom"), 90),
    ],
)
def test_model_errors_map_to_exit_codes(exc: XlModelError, expected: int):
    env = envelope_for_error("x", exc)
    assert env.errors[0].code == exc.code
    assert exit_code_for(env) == expected


def test_envelope_for_error_carries_details():
    env = envelope_for_error("x", ShapeMismatch("ragged", details={"expected": [2, 2]}))
    assert env.ok is False
    assert env.errors[0].details == {"expected": [2, 2]}
