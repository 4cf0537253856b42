"""Formula reference translation and formula error values.

Formulas are stored, never evaluated. The only manipulation performed is
shifting relative A1 references when a shared formula is re-anchored on
another cell.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import ClassVar, Iterator

from xlmodel.engine.address import MAX_COLUMN, MAX_ROW, column_name_to_number, column_number_to_name
from xlmodel.contracts.errors import InvalidAddress

REF_ERROR = "#REF!"

# ---------------------------------------------------------------------------
# formula ref adjustment (for shared formulas)
# ---------------------------------------------------------------------------
_REF_RE = re.compile(
    r"(?<![A-Za-z0-9_.])"
    r"(?:"
    r"(?P<col_abs>\$?)(?P<col>[A-Za-z]{1,3})(?P<row_abs>\$?)(?P<row>\d+)(?![A-Za-z0-9_(])"
    r"|(?P<c1_abs>\$?)(?P<c1>[A-Za-z]{1,3}):(?P<c2_abs>\$?)(?P<c2>[A-Za-z]{1,3})(?![A-Za-z0-9_(])"
    r"|(?P<r1_abs>\$?)(?P<r1>\d+):(?P<r2_abs>\$?)(?P<r2>\d+)(?![A-Za-z0-9_(.])"
    r")"
)


def _split_literals(formula: str) -> Iterator[tuple[str, bool]]:
    """Yield (segment, is_quoted) pairs.

    Double-quoted string literals and single-quoted sheet names are yielded
    as quoted segments so that references inside them are left alone.
    Doubled quote characters inside a literal are escapes.
    """
    start = 0
    i = 0
    n = len(formula)
    while i < n:
        ch = formula[i]
        if ch in ('"', "'"):
            if i > start:
                yield formula[start:i], False
            j = i + 1
            while j < n:
                if formula[j] == ch:
                    if j + 1 < n and formula[j + 1] == ch:
                        j += 2
                        continue
                    break
                j += 1
            yield formula[i:j + 1], True
            i = start = j + 1
            continue
        i += 1
    if start < n:
        yield formula[start:], False


def _shift_column(letters: str, absolute: str, delta: int) -> str | None:
    if absolute or not delta:
        return letters
    number = column_name_to_number(letters) + delta
    if not 1 <= number <= MAX_COLUMN:
        return None
    return column_number_to_name(number)


def _shift_row(digits: str, absolute: str, delta: int) -> str | None:
    if absolute or not delta:
        return digits
    number = int(digits) + delta
    if not 1 <= number <= MAX_ROW:
        return None
    return str(number)


def _shift_match(m: re.Match, row_delta: int, col_delta: int) -> str:
    try:
        if m.group("col") is not None:
            col = _shift_column(m.group("col"), m.group("col_abs"), col_delta)
            row = _shift_row(m.group("row"), m.group("row_abs"), row_delta)
            if col is None or row is None:
                return REF_ERROR
            return f"{m.group('col_abs')}{col}{m.group('row_abs')}{row}"
        if m.group("c1") is not None:
            c1 = _shift_column(m.group("c1"), m.group("c1_abs"), col_delta)
            c2 = _shift_column(m.group("c2"), m.group("c2_abs"), col_delta)
            if c1 is None or c2 is None:
                return REF_ERROR
            return f"{m.group('c1_abs')}{c1}:{m.group('c2_abs')}{c2}"
        r1 = _shift_row(m.group("r1"), m.group("r1_abs"), row_delta)
        r2 = _shift_row(m.group("r2"), m.group("r2_abs"), row_delta)
        if r1 is None or r2 is None:
            return REF_ERROR
        return f"{m.group('r1_abs')}{r1}:{m.group('r2_abs')}{r2}"
    except InvalidAddress:
        # Letters beyond XFD are a name, not a reference.
        return m.group(0)


def translate_formula(formula: str, row_offset: int, column_offset: int) -> str:
    """Shift the relative references of ``formula`` by the given offsets.

    - ``$``-anchored axes are left untouched, per axis (``$A1`` shifts rows only).
    - String literals and quoted sheet names are skipped.
    - Sheet-qualified references (``Sheet1!A1``) are shifted like local ones.
    - A reference pushed below row/column 1 becomes ``#REF!``.
    """
    if not formula or (not row_offset and not column_offset):
        return formula
    parts: list[str] = []
    for segment, quoted in _split_literals(formula):
        if quoted:
            parts.append(segment)
        else:
            parts.append(_REF_RE.sub(lambda m: _shift_match(m, row_offset, column_offset), segment))
    return "".join(parts)


def strip_formula_prefix(formula: str) -> str:
    """Return the formula text as stored in the file (no leading ``=``)."""
    return formula[1:] if formula.startswith("=") else formula


# ---------------------------------------------------------------------------
# error values
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class FormulaError:
    """An error value held by a cell (``#DIV/0!``, ``#N/A``, ...)."""

    error: str

    DIV0: ClassVar["FormulaError"]
    NA: ClassVar["FormulaError"]
    NAME: ClassVar["FormulaError"]
    NULL: ClassVar["FormulaError"]
    NUM: ClassVar["FormulaError"]
    REF: ClassVar["FormulaError"]
    VALUE: ClassVar["FormulaError"]

    def __str__(self) -> str:
        return self.error

    @classmethod
    def get(cls, error: str) -> "FormulaError":
        return _KNOWN_ERRORS.get(error) or cls(error)


FormulaError.DIV0 = FormulaError("#DIV/0!")
FormulaError.NA = FormulaError("#N/A")
FormulaError.NAME = FormulaError("#NAME?")
FormulaError.NULL = FormulaError("#NULL!")
FormulaError.NUM = FormulaError("#NUM!")
FormulaError.REF = FormulaError("#REF!")
FormulaError.VALUE = FormulaError("#VALUE!")

_KNOWN_ERRORS = {
    e.error: e
    for e in (
        FormulaError.DIV0, FormulaError.NA, FormulaError.NAME, FormulaError.NULL,
        FormulaError.NUM, FormulaError.REF, FormulaError.VALUE,
    )
}
