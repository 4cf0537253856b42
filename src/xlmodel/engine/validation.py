"""Data validation rules and the per-sheet validation registry."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Iterator

from lxml import etree

from xlmodel.engine.address import AddressType, format_cell_address, format_range_address, parse_address
from xlmodel.io.xml import find, findall, make, sub

Rect = tuple[int, int, int, int]  # start row, start column, end row, end column

_ATTRS = (
    ("type", "type"),
    ("error_style", "errorStyle"),
    ("operator", "operator"),
    ("allow_blank", "allowBlank"),
    ("show_drop_down", "showDropDown"),
    ("show_input_message", "showInputMessage"),
    ("show_error_message", "showErrorMessage"),
    ("error_title", "errorTitle"),
    ("error", "error"),
    ("prompt_title", "promptTitle"),
    ("prompt", "prompt"),
)
_BOOL_ATTRS = {"allow_blank", "show_drop_down", "show_input_message", "show_error_message"}


@dataclass(frozen=True)
class DataValidationRule:
    """One ``dataValidation`` rule, independent of the cells it applies to."""

    type: str = "any"
    operator: str | None = None
    formula1: str | None = None
    formula2: str | None = None
    allow_blank: bool = False
    show_drop_down: bool = False
    show_input_message: bool = False
    prompt_title: str | None = None
    prompt: str | None = None
    show_error_message: bool = False
    error_title: str | None = None
    error: str | None = None
    error_style: str | None = None

    @classmethod
    def coerce(cls, value: Any) -> "DataValidationRule | None":
        """Accept a rule, a dict of rule fields or a list source string.

        A string ``"Yes,No"`` becomes an in-cell list of literal items; a
        string starting with ``=`` is a list whose source is a reference or
        formula (``"=$A$1:$A$5"``).
        """
        if value is None or isinstance(value, DataValidationRule):
            return value
        if isinstance(value, str):
            if value.startswith("="):
                return cls(type="list", formula1=value[1:])
            return cls(type="list", formula1='"' + value.replace('"', '""') + '"')
        if isinstance(value, dict):
            known = {f.name for f in fields(cls)}
            unknown = set(value) - known
            if unknown:
                raise ValueError(f"Unknown data validation fields: {sorted(unknown)}")
            return cls(**value)
        raise ValueError(f"Invalid data validation: {value!r}")

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v not in (None, False)}

    @classmethod
    def from_xml(cls, el: etree._Element) -> "DataValidationRule":
        kwargs: dict[str, Any] = {}
        for name, attr in _ATTRS:
            raw = el.get(attr)
            if raw is None:
                continue
            kwargs[name] = raw in ("1", "true") if name in _BOOL_ATTRS else raw
        f1 = find(el, "formula1")
        f2 = find(el, "formula2")
        if f1 is not None:
            kwargs["formula1"] = f1.text
        if f2 is not None:
            kwargs["formula2"] = f2.text
        return cls(**kwargs)

    def to_xml(self, sqref: str) -> etree._Element:
        el = make("dataValidation")
        for name, attr in _ATTRS:
            value = getattr(self, name)
            if name == "type" and value == "any":
                continue
            if name in _BOOL_ATTRS:
                if value:
                    el.set(attr, "1")
            elif value is not None:
                el.set(attr, str(value))
        el.set("sqref", sqref)
        if self.formula1 is not None:
            sub(el, "formula1").text = self.formula1
        if self.formula2 is not None:
            sub(el, "formula2").text = self.formula2
        return el


# ---------------------------------------------------------------------------
# rectangle arithmetic
# ---------------------------------------------------------------------------
def contains(rect: Rect, row: int, column: int) -> bool:
    return rect[0] <= row <= rect[2] and rect[1] <= column <= rect[3]


def overlaps(a: Rect, b: Rect) -> bool:
    return not (a[2] < b[0] or b[2] < a[0] or a[3] < b[1] or b[3] < a[1])


def subtract(rect: Rect, hole: Rect) -> list[Rect]:
    """Return ``rect`` minus ``hole`` as at most four disjoint rectangles."""
    if not overlaps(rect, hole):
        return [rect]
    r1, c1, r2, c2 = rect
    h1, hc1, h2, hc2 = max(r1, hole[0]), max(c1, hole[1]), min(r2, hole[2]), min(c2, hole[3])
    pieces: list[Rect] = []
    if r1 < h1:
        pieces.append((r1, c1, h1 - 1, c2))
    if h2 < r2:
        pieces.append((h2 + 1, c1, r2, c2))
    if c1 < hc1:
        pieces.append((h1, c1, h2, hc1 - 1))
    if hc2 < c2:
        pieces.append((h1, hc2 + 1, h2, c2))
    return pieces


def format_sqref(rects: list[Rect]) -> str:
    parts = []
    for r1, c1, r2, c2 in rects:
        if (r1, c1) == (r2, c2):
            parts.append(format_cell_address(r1, c1))
        else:
            parts.append(format_range_address(r1, c1, r2, c2))
    return " ".join(parts)


def parse_sqref(sqref: str) -> list[Rect]:
    rects: list[Rect] = []
    for part in sqref.split():
        address = parse_address(part)
        if address.type is AddressType.CELL:
            rects.append((address.start_row, address.start_column, address.start_row, address.start_column))
        elif address.type is AddressType.RANGE:
            rects.append((
                min(address.start_row, address.end_row), min(address.start_column, address.end_column),
                max(address.start_row, address.end_row), max(address.start_column, address.end_column),
            ))
    return rects


# ---------------------------------------------------------------------------
# registry
# ---------------------------------------------------------------------------
class DataValidations:
    """Rules of one sheet, each with the rectangles it covers."""

    def __init__(self) -> None:
        self._entries: list[tuple[DataValidationRule, list[Rect]]] = []

    @classmethod
    def from_xml(cls, el: etree._Element | None) -> "DataValidations":
        registry = cls()
        if el is not None:
            for dv in findall(el, "dataValidation"):
                rects = parse_sqref(dv.get("sqref", ""))
                if rects:
                    registry._entries.append((DataValidationRule.from_xml(dv), rects))
        return registry

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[tuple[DataValidationRule, list[Rect]]]:
        return iter(self._entries)

    def get(self, row: int, column: int) -> DataValidationRule | None:
        for rule, rects in self._entries:
            if any(contains(rect, row, column) for rect in rects):
                return rule
        return None

    def set(self, rect: Rect, rule: DataValidationRule | None) -> None:
        """Apply ``rule`` to ``rect``, replacing whatever covered it; ``None`` clears."""
        entries: list[tuple[DataValidationRule, list[Rect]]] = []
        for existing_rule, rects in self._entries:
            remaining = [piece for r in rects for piece in subtract(r, rect)]
            if remaining:
                entries.append((existing_rule, remaining))
        if rule is not None:
            for existing_rule, rects in entries:
                if existing_rule == rule:
                    rects.append(rect)
                    break
            else:
                entries.append((rule, [rect]))
        self._entries = entries

    def to_xml(self) -> etree._Element | None:
        if not self._entries:
            return None
        el = make("dataValidations", {"count": len(self._entries)})
        for rule, rects in self._entries:
            el.append(rule.to_xml(format_sqref(rects)))
        return el
