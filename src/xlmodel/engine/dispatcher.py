"""Response envelope helpers and the error-code to exit-code mapping."""

from __future__ import annotations

import sys
from typing import Any

import orjson

from xlmodel.contracts.common import (
    ErrorDetail,
    Metrics,
    ResponseEnvelope,
    Target,
)
from xlmodel.contracts.errors import XlModelError

# Exit code per error category
EXIT_CODES = {
    "success": 0,
    "validation": 10,
    "protection": 20,
    "conflict": 40,
    "io": 50,
    "unsupported": 70,
    "internal": 90,
}

# Every code raised by the model or the CLI
ERROR_CATEGORIES = {
    "ERR_ADDRESS_INVALID": "validation",
    "ERR_RANGE_OUT_OF_BOUNDS": "validation",
    "ERR_SHAPE_MISMATCH": "validation",
    "ERR_INVALID_OPERATION": "validation",
    "ERR_INVALID_ARGUMENT": "validation",
    "ERR_PATTERN_INVALID": "validation",
    "ERR_SHEET_NOT_FOUND": "validation",
    "ERR_DECRYPTION_FAILED": "protection",
    "ERR_NAME_CONFLICT": "conflict",
    "ERR_MERGE_CONFLICT": "conflict",
    "ERR_FILE_EXISTS": "io",
    "ERR_IO": "io",
    "ERR_LOCK_HELD": "io",
    "ERR_PACKAGE_CORRUPT": "io",
    "ERR_WORKBOOK_CORRUPT": "io",
    "ERR_WORKBOOK_NOT_FOUND": "io",
    "ERR_UNSUPPORTED_OPERATION": "unsupported",
    "ERR_INTERNAL": "internal",
}


def success_envelope(
    command: str,
    result: Any,
    *,
    target: Target | None = None,
    changes: list | None = None,
    warnings: list | None = None,
    duration_ms: int = 0,
    cells: int = 0,
) -> ResponseEnvelope:
    return ResponseEnvelope(
        ok=True,
        command=command,
        target=target or Target(),
        result=result,
        changes=changes or [],
        warnings=warnings or [],
        metrics=Metrics(duration_ms=duration_ms, cells=cells),
    )


def error_envelope(
    command: str,
    code: str,
    message: str,
    *,
    target: Target | None = None,
    details: dict | None = None,
    duration_ms: int = 0,
) -> ResponseEnvelope:
    return ResponseEnvelope(
        ok=False,
        command=command,
        target=target or Target(),
        errors=[ErrorDetail(code=code, message=message, details=details)],
        metrics=Metrics(duration_ms=duration_ms),
    )


def envelope_for_error(command: str, exc: XlModelError, *, target: Target | None = None) -> ResponseEnvelope:
    """Error envelope carrying the exception's own code and details."""
    return error_envelope(command, exc.code, exc.message, target=target, details=exc.details or None)


def output_json(envelope: ResponseEnvelope) -> str:
    """Serialize envelope to JSON string using orjson."""
    data = envelope.model_dump(mode="json")
    return orjson.dumps(data, option=orjson.OPT_INDENT_2).decode()


def print_response(envelope: ResponseEnvelope) -> None:
    """Print response as JSON to stdout."""
    sys.stdout.write(output_json(envelope) + "\n")


def category_for(code: str) -> str:
    """Category of an error code; unknown codes fall back on their wording."""
    code = code.upper()
    category = ERROR_CATEGORIES.get(code)
    if category is not None:
        return category
    if "DECRYPT" in code or "PASSWORD" in code:
        return "protection"
    if "CONFLICT" in code:
        return "conflict"
    if code.endswith("NOT_FOUND") or "CORRUPT" in code:
        return "io"
    return "internal"


def exit_code_for(envelope: ResponseEnvelope) -> int:
    """Determine exit code from the first error of the envelope."""
    if envelope.ok:
        return EXIT_CODES["success"]
    if not envelope.errors:
        return EXIT_CODES["internal"]
    return EXIT_CODES[category_for(envelope.errors[0].code)]
