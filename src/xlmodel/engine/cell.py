"""Cell: the leaf entity holding a value or formula and a style id."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Callable

from xlmodel.contracts.errors import InvalidOperation, OutOfBounds
from xlmodel.engine.address import (
    MAX_COLUMN,
    MAX_ROW,
    column_number_to_name,
    format_cell_address,
)
from xlmodel.engine.formula import strip_formula_prefix
from xlmodel.engine.range import Range, grid_shape, is_grid
from xlmodel.engine.styles import Style
from xlmodel.engine.validation import DataValidationRule
from xlmodel.engine.values import CellValue, coerce_value

if TYPE_CHECKING:
    from xlmodel.engine.column import Column
    from xlmodel.engine.row import Row
    from xlmodel.engine.sheet import Sheet
    from xlmodel.engine.workbook import Workbook

SHARED_FORMULA = "SHARED"


def compile_pattern(pattern: str | re.Pattern[str]) -> re.Pattern[str]:
    """A plain string is a case-insensitive substring; a compiled pattern is used as is."""
    if isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(re.escape(pattern), re.IGNORECASE)


class Cell:
    """One addressable cell.

    Cells are created by their sheet on first access and stay the same
    object for the life of the sheet, whether reached through the sheet, a
    row, a column or a range.
    """

    def __init__(self, sheet: "Sheet", row_number: int, column_number: int, style_id: int = 0) -> None:
        self._sheet = sheet
        self._row_number = row_number
        self._column_number = column_number
        self._style_id = style_id
        self._value: CellValue = None
        self._formula: str | None = None
        self._formula_attrs: dict[str, str] = {}
        self._shared_index: int | None = None
        self._shared_ref: str | None = None
        self._attrs: dict[str, str] = {}
        self._populated = False

    # -- position ------------------------------------------------------------
    @property
    def sheet(self) -> "Sheet":
        return self._sheet

    @property
    def workbook(self) -> "Workbook":
        return self._sheet.workbook

    @property
    def row_number(self) -> int:
        return self._row_number

    @property
    def column_number(self) -> int:
        return self._column_number

    @property
    def column_name(self) -> str:
        return column_number_to_name(self._column_number)

    @property
    def row(self) -> "Row":
        return self._sheet.row(self._row_number)

    @property
    def column(self) -> "Column":
        return self._sheet.column(self._column_number)

    @property
    def populated(self) -> bool:
        """True once the cell has held a value, formula or style."""
        return self._populated

    def address(
        self,
        *,
        include_sheet_name: bool = False,
        row_anchored: bool = False,
        column_anchored: bool = False,
        anchored: bool = False,
    ) -> str:
        return format_cell_address(
            self._row_number, self._column_number,
            sheet_name=self._sheet.name if include_sheet_name else None,
            row_anchored=anchored or row_anchored,
            column_anchored=anchored or column_anchored,
        )

    def __repr__(self) -> str:
        return f"<Cell {self.address(include_sheet_name=True)}>"

    def range_to(self, other: "Cell | str") -> Range:
        """Normalized range spanning this cell and ``other``."""
        if isinstance(other, str):
            other = self._sheet.cell(other)
        return Range(self, other)

    def relative_cell(self, row_offset: int, column_offset: int) -> "Cell":
        row = self._row_number + row_offset
        column = self._column_number + column_offset
        if not 1 <= row <= MAX_ROW or not 1 <= column <= MAX_COLUMN:
            raise OutOfBounds(
                f"Offset ({row_offset}, {column_offset}) from {self.address()} is outside the sheet",
                details={"row": row, "column": column},
            )
        return self._sheet.cell(row, column)

    # -- value / formula -----------------------------------------------------
    def _leave_shared_group(self) -> None:
        # A source leaving its group orphans the dependents; they are written
        # as plain formulas on serialization.
        self._shared_index = None
        self._shared_ref = None

    @property
    def value(self) -> CellValue:
        """The literal value, or the cached result of a formula cell."""
        return self._value

    @value.setter
    def value(self, value: Any) -> None:
        self.set_value(value)

    def set_value(self, value: Any) -> "Cell | Range":
        """Set a literal value.

        A 2D list creates a range anchored here, sized to the grid, and
        returns that range instead of the cell.
        """
        if is_grid(value):
            rows, columns = grid_shape(value)
            rng = self.range_to(self.relative_cell(rows - 1, columns - 1))
            return rng.set_value(value)
        self._value = coerce_value(value)
        self._formula = None
        self._formula_attrs = {}
        self._leave_shared_group()
        self._populated = True
        return self

    @property
    def formula(self) -> str | None:
        """Formula text without the leading ``=``.

        The source cell of a multi-cell shared formula reports ``"SHARED"``;
        use :attr:`Range.formula` for the shared text.
        """
        if self._shared_ref is not None and ":" in self._shared_ref:
            return SHARED_FORMULA
        return self._formula

    @formula.setter
    def formula(self, formula: str | None) -> None:
        self.set_formula(formula)

    def set_formula(self, formula: str | None) -> "Cell":
        """Set a single-cell formula; ``None`` clears it. The cached value is dropped."""
        self._leave_shared_group()
        self._formula_attrs = {}
        self._value = None
        self._formula = None if formula is None else strip_formula_prefix(formula)
        self._populated = True
        return self

    def clear(self) -> "Cell":
        """Remove value and formula; style and position are kept."""
        self._leave_shared_group()
        self._value = None
        self._formula = None
        self._formula_attrs = {}
        return self

    def find(self, pattern: str | re.Pattern[str], replacement: str | Callable[[re.Match[str]], str] | None = None) -> bool:
        """Search the string value; replace every match in place when asked."""
        if self._formula is not None or not isinstance(self._value, str):
            return False
        regex = compile_pattern(pattern)
        if not regex.search(self._value):
            return False
        if replacement is not None:
            self.set_value(regex.sub(replacement, self._value))
        return True

    # -- styles --------------------------------------------------------------
    @property
    def style_id(self) -> int:
        return self._style_id

    def style(self) -> Style:
        return self.workbook.style_sheet.style(self._style_id)

    def get_style(self, name: str) -> Any:
        return self.workbook.style_sheet.get_value(self._style_id, name)

    def get_styles(self, names: list[str]) -> dict[str, Any]:
        return {name: self.get_style(name) for name in names}

    def set_style(self, name: str, value: Any) -> "Cell | Range":
        """Set one style property (copy-on-write).

        A 2D list of values promotes to a range starting here.
        """
        if is_grid(value):
            rows, columns = grid_shape(value)
            rng = self.range_to(self.relative_cell(rows - 1, columns - 1))
            return rng.set_style(name, value)
        self._style_id = self.workbook.style_sheet.set_value(self._style_id, name, value)
        self._populated = True
        return self

    def set_styles(self, styles: dict[str, Any] | Style) -> "Cell":
        """Apply several properties, or point the cell at an existing :class:`Style`."""
        if isinstance(styles, Style):
            if styles.style_sheet is not self.workbook.style_sheet:
                raise InvalidOperation("Style belongs to a different workbook")
            self._style_id = styles.id
        else:
            self._style_id = self.workbook.style_sheet.set_values(self._style_id, styles)
        self._populated = True
        return self

    # -- active / hyperlink / validation -------------------------------------
    @property
    def active(self) -> bool:
        return self._sheet.active_cell is self

    @active.setter
    def active(self, active: bool) -> None:
        if not active:
            raise InvalidOperation("Deactivate a cell by activating another one")
        self._sheet.active_cell = self

    @property
    def hyperlink(self) -> str | None:
        return self._sheet._get_hyperlink(self)

    @hyperlink.setter
    def hyperlink(self, target: str | None) -> None:
        self.set_hyperlink(target)

    def set_hyperlink(self, target: str | None, *, tooltip: str | None = None) -> "Cell":
        """Link the cell; ``#Sheet!A1`` targets are locations inside the workbook."""
        self._sheet._set_hyperlink(self, target, tooltip=tooltip)
        return self

    @property
    def data_validation(self) -> DataValidationRule | None:
        return self._sheet._data_validations.get(self._row_number, self._column_number)

    @data_validation.setter
    def data_validation(self, value: Any) -> None:
        self.set_data_validation(value)

    def set_data_validation(self, value: Any) -> "Cell":
        rect = (self._row_number, self._column_number, self._row_number, self._column_number)
        self._sheet._data_validations.set(rect, DataValidationRule.coerce(value))
        return self

    # -- chaining ------------------------------------------------------------
    def tap(self, callback: Callable[["Cell"], Any]) -> "Cell":
        callback(self)
        return self

    def thru(self, callback: Callable[["Cell"], Any]) -> Any:
        return callback(self)
