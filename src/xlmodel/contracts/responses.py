"""Command-specific result models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class SheetMeta(BaseModel):
    """Metadata for a single worksheet."""

    name: str
    index: int
    visible: str = "visible"  # visible / hidden / veryHidden
    active: bool = False
    used_range: str | None = None
    merged_ranges: list[str] = Field(default_factory=list)
    autofilter: str | None = None


class NamedRangeMeta(BaseModel):
    """Metadata for a defined name."""

    name: str
    scope: str = "workbook"  # workbook or sheet name
    ref: str = ""


class WorkbookMeta(BaseModel):
    """Metadata returned by ``wb inspect``."""

    path: str
    fingerprint: str
    active_sheet: str | None = None
    sheets: list[SheetMeta] = Field(default_factory=list)
    names: list[NamedRangeMeta] = Field(default_factory=list)
    properties: dict[str, Any] = Field(default_factory=dict)


class CellMeta(BaseModel):
    """Value and metadata of one cell, returned by ``cell get``."""

    ref: str
    value: Any = None
    type: str = "empty"  # empty / text / number / bool / error / formula
    formula: str | None = None
    number_format: str = "General"
    style_id: int = 0
    hyperlink: str | None = None


class FindMatch(BaseModel):
    """One cell matched by ``find``."""

    ref: str
    value: Any = None
