"""A1-style address parsing and formatting.

Handles cell (``B3``), range (``A1:C4``), column (``B:B``, ``A:C``) and row
(``3:3``) addresses, each optionally qualified with a sheet name
(``Sheet1!$B$3``, ``'My Sheet'!A1``) and anchored with ``$`` per axis and
endpoint. Column letters are converted with openpyxl's cached tables.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum

from openpyxl.utils.cell import column_index_from_string, get_column_letter

from xlmodel.contracts.errors import InvalidAddress, OutOfBounds

MAX_ROW = 1_048_576
MAX_COLUMN = 16_384

_CELL_RE = re.compile(r"^(\$?)([A-Za-z]{1,3})(\$?)(\d+)$")
_COLUMN_RE = re.compile(r"^(\$?)([A-Za-z]{1,3})$")
_ROW_RE = re.compile(r"^(\$?)(\d+)$")
_PLAIN_SHEET_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")
_UNQUOTED_FORBIDDEN = frozenset("\\/*[]:?")


class AddressType(str, Enum):
    CELL = "cell"
    RANGE = "range"
    COLUMN = "column"
    ROW = "row"


@dataclass(frozen=True)
class Address:
    """Structured form of an address string.

    ``CELL`` uses only the start fields; ``COLUMN`` and ``ROW`` leave the
    other axis as ``None``.
    """

    type: AddressType
    start_row: int | None = None
    start_column: int | None = None
    end_row: int | None = None
    end_column: int | None = None
    sheet_name: str | None = None
    start_row_anchored: bool = False
    start_column_anchored: bool = False
    end_row_anchored: bool = False
    end_column_anchored: bool = False

    def format(self, *, include_sheet_name: bool = True) -> str:
        """Format back to a string; the exact inverse of :func:`parse_address`."""
        sheet_name = self.sheet_name if include_sheet_name else None
        if self.type is AddressType.CELL:
            return format_cell_address(
                self.start_row, self.start_column,
                sheet_name=sheet_name,
                row_anchored=self.start_row_anchored,
                column_anchored=self.start_column_anchored,
            )
        if self.type is AddressType.RANGE:
            return format_range_address(
                self.start_row, self.start_column, self.end_row, self.end_column,
                sheet_name=sheet_name,
                start_row_anchored=self.start_row_anchored,
                start_column_anchored=self.start_column_anchored,
                end_row_anchored=self.end_row_anchored,
                end_column_anchored=self.end_column_anchored,
            )
        if self.type is AddressType.COLUMN:
            return format_column_address(
                self.start_column, self.end_column,
                sheet_name=sheet_name,
                start_anchored=self.start_column_anchored,
                end_anchored=self.end_column_anchored,
            )
        return format_row_address(
            self.start_row, self.end_row,
            sheet_name=sheet_name,
            start_anchored=self.start_row_anchored,
            end_anchored=self.end_row_anchored,
        )

    def without_sheet(self) -> "Address":
        return replace(self, sheet_name=None)


# ---------------------------------------------------------------------------
# column letters
# ---------------------------------------------------------------------------
def column_name_to_number(name: str) -> int:
    """Convert a column name (``A``, ``AA``, ``XFD``) to its 1-based number."""
    if not isinstance(name, str) or not name.isalpha():
        raise InvalidAddress(f"Invalid column name: {name!r}")
    try:
        number = column_index_from_string(name.upper())
    except ValueError as e:
        raise InvalidAddress(f"Invalid column name: {name!r}") from e
    if number > MAX_COLUMN:
        raise InvalidAddress(f"Column {name!r} is beyond the last column XFD")
    return number


def column_number_to_name(number: int) -> str:
    """Convert a 1-based column number to its letters."""
    check_column(number)
    return get_column_letter(number)


def check_row(number: int) -> int:
    if not isinstance(number, int) or isinstance(number, bool):
        raise OutOfBounds(f"Row number must be an integer, got {number!r}")
    if not 1 <= number <= MAX_ROW:
        raise OutOfBounds(f"Row number {number} is outside 1..{MAX_ROW}")
    return number


def check_column(number: int) -> int:
    if not isinstance(number, int) or isinstance(number, bool):
        raise OutOfBounds(f"Column number must be an integer, got {number!r}")
    if not 1 <= number <= MAX_COLUMN:
        raise OutOfBounds(f"Column number {number} is outside 1..{MAX_COLUMN}")
    return number


def resolve_column(column: int | str) -> int:
    """Accept a column name or number and return the number."""
    if isinstance(column, str):
        return column_name_to_number(column)
    return check_column(column)


# ---------------------------------------------------------------------------
# sheet names
# ---------------------------------------------------------------------------
def quote_sheet_name(name: str) -> str:
    """Quote a sheet name for use in an address when required."""
    if _PLAIN_SHEET_NAME_RE.match(name) and not _looks_like_reference(name):
        return name
    return "'" + name.replace("'", "''") + "'"


def _looks_like_reference(name: str) -> bool:
    m = _CELL_RE.match(name)
    if not m:
        return False
    try:
        column_name_to_number(m.group(2))
    except InvalidAddress:
        return False
    return True


def _split_endpoints(text: str) -> list[str]:
    """Split on ``:`` outside quoted sheet names."""
    parts: list[str] = []
    start = 0
    quoted = False
    for i, ch in enumerate(text):
        if ch == "'":
            quoted = not quoted
        elif ch == ":" and not quoted:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return parts


def _split_sheet(text: str) -> tuple[str | None, str]:
    """Split ``'Sheet'!A1`` into (sheet name, remainder)."""
    if text.startswith("'"):
        i = 1
        chars: list[str] = []
        while i < len(text):
            ch = text[i]
            if ch == "'":
                if i + 1 < len(text) and text[i + 1] == "'":
                    chars.append("'")
                    i += 2
                    continue
                break
            chars.append(ch)
            i += 1
        else:
            raise InvalidAddress(f"Unterminated sheet name quote in {text!r}")
        if i + 1 >= len(text) or text[i + 1] != "!" or not chars:
            raise InvalidAddress(f"Expected '!' after quoted sheet name in {text!r}")
        return "".join(chars), text[i + 2:]
    if "!" in text:
        sheet, _, rest = text.partition("!")
        if not sheet:
            raise InvalidAddress(f"Empty sheet name in {text!r}")
        if any(ch in _UNQUOTED_FORBIDDEN for ch in sheet):
            raise InvalidAddress(f"Sheet name {sheet!r} must be quoted or is invalid in {text!r}")
        return sheet, rest
    return None, text


# ---------------------------------------------------------------------------
# parsing
# ---------------------------------------------------------------------------
def _parse_row(digits: str, text: str) -> int:
    row = int(digits)
    if not 1 <= row <= MAX_ROW:
        raise InvalidAddress(f"Row {row} out of range in {text!r}")
    return row


def _parse_endpoint(part: str, text: str) -> tuple[str, tuple]:
    m = _CELL_RE.match(part)
    if m:
        col = column_name_to_number(m.group(2))
        row = _parse_row(m.group(4), text)
        return "cell", (row, col, m.group(3) == "$", m.group(1) == "$")
    m = _COLUMN_RE.match(part)
    if m:
        return "column", (column_name_to_number(m.group(2)), m.group(1) == "$")
    m = _ROW_RE.match(part)
    if m:
        return "row", (_parse_row(m.group(2), text), m.group(1) == "$")
    raise InvalidAddress(f"Invalid address: {text!r}")


def parse_address(text: str) -> Address:
    """Parse an address string into an :class:`Address`.

    Raises :class:`InvalidAddress` on malformed input.
    """
    if not isinstance(text, str) or not text.strip():
        raise InvalidAddress(f"Invalid address: {text!r}")
    parts = _split_endpoints(text.strip())
    if len(parts) > 2 or not all(parts):
        raise InvalidAddress(f"Invalid address: {text!r}")
    sheet_name, parts[0] = _split_sheet(parts[0])

    if len(parts) == 2:
        end_sheet, end_part = _split_sheet(parts[1])
        if end_sheet is not None and (sheet_name is None or end_sheet.casefold() != sheet_name.casefold()):
            raise InvalidAddress(f"Range endpoints refer to different sheets: {text!r}")
        parts[1] = end_part

    kind, start = _parse_endpoint(parts[0], text)
    if len(parts) == 1:
        if kind != "cell":
            raise InvalidAddress(f"A single {kind} is not an address: {text!r}")
        row, col, row_abs, col_abs = start
        return Address(
            AddressType.CELL, start_row=row, start_column=col, sheet_name=sheet_name,
            start_row_anchored=row_abs, start_column_anchored=col_abs,
        )

    end_kind, end = _parse_endpoint(parts[1], text)
    if end_kind != kind:
        raise InvalidAddress(f"Mismatched range endpoints in {text!r}")
    if kind == "cell":
        return Address(
            AddressType.RANGE,
            start_row=start[0], start_column=start[1], end_row=end[0], end_column=end[1],
            sheet_name=sheet_name,
            start_row_anchored=start[2], start_column_anchored=start[3],
            end_row_anchored=end[2], end_column_anchored=end[3],
        )
    if kind == "column":
        return Address(
            AddressType.COLUMN, start_column=start[0], end_column=end[0], sheet_name=sheet_name,
            start_column_anchored=start[1], end_column_anchored=end[1],
        )
    return Address(
        AddressType.ROW, start_row=start[0], end_row=end[0], sheet_name=sheet_name,
        start_row_anchored=start[1], end_row_anchored=end[1],
    )


def parse_cell_address(text: str) -> tuple[int, int]:
    """Parse a single-cell address and return (row, column)."""
    address = parse_address(text)
    if address.type is not AddressType.CELL:
        raise InvalidAddress(f"Expected a single cell address, got {text!r}")
    return address.start_row, address.start_column


# ---------------------------------------------------------------------------
# formatting
# ---------------------------------------------------------------------------
def _prefix(sheet_name: str | None) -> str:
    return f"{quote_sheet_name(sheet_name)}!" if sheet_name else ""


def _cell_ref(row: int, column: int, row_anchored: bool, column_anchored: bool) -> str:
    return (
        f"{'$' if column_anchored else ''}{column_number_to_name(column)}"
        f"{'$' if row_anchored else ''}{check_row(row)}"
    )


def format_cell_address(
    row: int,
    column: int,
    *,
    sheet_name: str | None = None,
    row_anchored: bool = False,
    column_anchored: bool = False,
) -> str:
    return _prefix(sheet_name) + _cell_ref(row, column, row_anchored, column_anchored)


def format_range_address(
    start_row: int,
    start_column: int,
    end_row: int,
    end_column: int,
    *,
    sheet_name: str | None = None,
    start_row_anchored: bool = False,
    start_column_anchored: bool = False,
    end_row_anchored: bool = False,
    end_column_anchored: bool = False,
) -> str:
    return (
        _prefix(sheet_name)
        + _cell_ref(start_row, start_column, start_row_anchored, start_column_anchored)
        + ":"
        + _cell_ref(end_row, end_column, end_row_anchored, end_column_anchored)
    )


def format_column_address(
    start_column: int,
    end_column: int | None = None,
    *,
    sheet_name: str | None = None,
    start_anchored: bool = False,
    end_anchored: bool = False,
) -> str:
    end_column = start_column if end_column is None else end_column
    return (
        f"{_prefix(sheet_name)}{'$' if start_anchored else ''}{column_number_to_name(start_column)}"
        f":{'$' if end_anchored else ''}{column_number_to_name(end_column)}"
    )


def format_row_address(
    start_row: int,
    end_row: int | None = None,
    *,
    sheet_name: str | None = None,
    start_anchored: bool = False,
    end_anchored: bool = False,
) -> str:
    end_row = start_row if end_row is None else end_row
    return (
        f"{_prefix(sheet_name)}{'$' if start_anchored else ''}{check_row(start_row)}"
        f":{'$' if end_anchored else ''}{check_row(end_row)}"
    )


def format_address(address: Address, *, include_sheet_name: bool = True) -> str:
    """Format any :class:`Address`; see :meth:`Address.format`."""
    return address.format(include_sheet_name=include_sheet_name)
