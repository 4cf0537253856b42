"""Cell value coercion and date serial numbers.

Dates are stored as serial numbers in the 1900 date system (including its
fictitious 1900-02-29), using openpyxl's conversion helpers.
"""

from __future__ import annotations

import datetime
from typing import Any, Union

from openpyxl.utils.datetime import from_excel, to_excel

from xlmodel.engine.formula import FormulaError

CellValue = Union[str, bool, int, float, FormulaError, None]

_DATE_TYPES = (datetime.datetime, datetime.date, datetime.time, datetime.timedelta)


def date_to_number(value: datetime.date | datetime.datetime | datetime.time | datetime.timedelta) -> float:
    """Convert a date/time to its serial number."""
    number = to_excel(value)
    return int(number) if float(number).is_integer() else number


def number_to_date(number: float) -> datetime.datetime:
    """Convert a serial number back to a ``datetime``."""
    return from_excel(number)


def coerce_value(value: Any) -> CellValue:
    """Normalize a value assigned to a cell.

    Raises ``TypeError`` for values a cell cannot hold.
    """
    if value is None or isinstance(value, (str, bool, FormulaError)):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            raise TypeError(f"Cannot store non-finite number {value!r} in a cell")
        return value
    if isinstance(value, _DATE_TYPES):
        return date_to_number(value)
    raise TypeError(f"Unsupported cell value type: {type(value).__name__}")


def parse_number(text: str) -> int | float:
    """Parse the text of a numeric ``<v>`` element."""
    try:
        return int(text)
    except ValueError:
        number = float(text)
        return number


def format_number(value: int | float) -> str:
    """Format a number for a ``<v>`` element."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def value_type(value: CellValue) -> str:
    """Classify a value for reports (``text``, ``number``, ``bool``, ``error``, ``empty``)."""
    if value is None:
        return "empty"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, FormulaError):
        return "error"
    return "text"
