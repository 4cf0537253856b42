"""Pydantic models shared by every CLI response."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class Target(BaseModel):
    """Workbook file, sheet and address a command acted on."""

    file: str | None = None
    sheet: str | None = None
    ref: str | None = None


class WarningDetail(BaseModel):
    """Tolerated anomaly; ``path`` names the package part when there is one."""

    code: str
    message: str
    path: str | None = None


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class Metrics(BaseModel):
    duration_ms: int = 0
    cells: int = 0
    """Cells read, written or matched."""


class ChangeRecord(BaseModel):
    """One edit made by a mutating command.

    ``before``/``after`` hold JSON-safe cell values (or the style mapping);
    ``impact`` carries counts such as the number of cells a shared formula
    was spread over.
    """

    type: str
    target: str
    before: Any | None = None
    after: Any | None = None
    impact: dict[str, Any] | None = None


class ResponseEnvelope(BaseModel):
    """The single JSON document each command prints to stdout."""

    ok: bool = True
    command: str = ""
    target: Target = Field(default_factory=Target)
    result: Any = None
    changes: list[ChangeRecord] = Field(default_factory=list)
    warnings: list[WarningDetail] = Field(default_factory=list)
    errors: list[ErrorDetail] = Field(default_factory=list)
    metrics: Metrics = Field(default_factory=Metrics)
