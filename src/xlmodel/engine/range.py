"""Range: a rectangular, row-major view over a sheet's cells."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Iterator

from xlmodel.contracts.errors import ShapeMismatch
from xlmodel.engine.address import format_range_address
from xlmodel.engine.formula import strip_formula_prefix, translate_formula
from xlmodel.engine.validation import DataValidationRule

if TYPE_CHECKING:
    from xlmodel.engine.cell import Cell
    from xlmodel.engine.sheet import Sheet
    from xlmodel.engine.workbook import Workbook

logger = logging.getLogger(__name__)

_MISSING = object()


def is_grid(value: Any) -> bool:
    """True for a non-empty list of lists (a 2D value grid)."""
    return isinstance(value, list) and bool(value) and all(isinstance(row, list) for row in value)


def grid_shape(grid: list[list[Any]]) -> tuple[int, int]:
    """Return (rows, columns) of a rectangular grid; raise ``ShapeMismatch`` if ragged."""
    widths = {len(row) for row in grid}
    if len(widths) != 1 or 0 in widths:
        raise ShapeMismatch(
            "Value grid rows must be non-empty and of equal length",
            details={"row_lengths": [len(row) for row in grid]},
        )
    return len(grid), widths.pop()


class Range:
    """Rectangle ``(start, end)`` on one sheet, normalized so start <= end."""

    def __init__(self, start_cell: "Cell", end_cell: "Cell") -> None:
        if start_cell.sheet is not end_cell.sheet:
            raise ValueError("Range endpoints must be on the same sheet")
        self._sheet = start_cell.sheet
        self._start_row = min(start_cell.row_number, end_cell.row_number)
        self._start_column = min(start_cell.column_number, end_cell.column_number)
        self._end_row = max(start_cell.row_number, end_cell.row_number)
        self._end_column = max(start_cell.column_number, end_cell.column_number)

    # -- geometry ------------------------------------------------------------
    @property
    def sheet(self) -> "Sheet":
        return self._sheet

    @property
    def workbook(self) -> "Workbook":
        return self._sheet.workbook

    @property
    def start_cell(self) -> "Cell":
        return self._sheet.cell(self._start_row, self._start_column)

    @property
    def end_cell(self) -> "Cell":
        return self._sheet.cell(self._end_row, self._end_column)

    @property
    def num_rows(self) -> int:
        return self._end_row - self._start_row + 1

    @property
    def num_columns(self) -> int:
        return self._end_column - self._start_column + 1

    @property
    def bounds(self) -> tuple[int, int, int, int]:
        return self._start_row, self._start_column, self._end_row, self._end_column

    def address(
        self,
        *,
        include_sheet_name: bool = False,
        start_row_anchored: bool = False,
        start_column_anchored: bool = False,
        end_row_anchored: bool = False,
        end_column_anchored: bool = False,
        anchored: bool = False,
    ) -> str:
        return format_range_address(
            self._start_row, self._start_column, self._end_row, self._end_column,
            sheet_name=self._sheet.name if include_sheet_name else None,
            start_row_anchored=anchored or start_row_anchored,
            start_column_anchored=anchored or start_column_anchored,
            end_row_anchored=anchored or end_row_anchored,
            end_column_anchored=anchored or end_column_anchored,
        )

    def cell(self, ri: int, ci: int) -> "Cell":
        """Cell at 0-based offsets from the top-left corner."""
        return self._sheet.cell(self._start_row + ri, self._start_column + ci)

    def cells(self) -> list[list["Cell"]]:
        return [[self.cell(ri, ci) for ci in range(self.num_columns)] for ri in range(self.num_rows)]

    def __iter__(self) -> Iterator["Cell"]:
        for ri in range(self.num_rows):
            for ci in range(self.num_columns):
                yield self.cell(ri, ci)

    def _indexed(self) -> Iterator[tuple["Cell", int, int]]:
        for ri in range(self.num_rows):
            for ci in range(self.num_columns):
                yield self.cell(ri, ci), ri, ci

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Range) and other._sheet is self._sheet and other.bounds == self.bounds

    def __hash__(self) -> int:
        return hash((id(self._sheet), self.bounds))

    def __repr__(self) -> str:
        return f"<Range {self.address(include_sheet_name=True)}>"

    # -- iteration helpers ---------------------------------------------------
    def for_each(self, callback: Callable[["Cell", int, int], Any]) -> "Range":
        for cell, ri, ci in self._indexed():
            callback(cell, ri, ci)
        return self

    def map(self, callback: Callable[["Cell", int, int, "Range"], Any]) -> list[list[Any]]:
        result: list[list[Any]] = [[] for _ in range(self.num_rows)]
        for cell, ri, ci in self._indexed():
            result[ri].append(callback(cell, ri, ci, self))
        return result

    def reduce(self, callback: Callable[[Any, "Cell", int, int, "Range"], Any], initial: Any = _MISSING) -> Any:
        """Fold over the cells row-major.

        Without ``initial`` the first cell is the seed and folding starts at
        the second cell.
        """
        cells = self._indexed()
        if initial is _MISSING:
            accumulator, _, _ = next(cells)
        else:
            accumulator = initial
        for cell, ri, ci in cells:
            accumulator = callback(accumulator, cell, ri, ci, self)
        return accumulator

    def tap(self, callback: Callable[["Range"], Any]) -> "Range":
        callback(self)
        return self

    def thru(self, callback: Callable[["Range"], Any]) -> Any:
        return callback(self)

    # -- distribution --------------------------------------------------------
    def _distribute(self, value: Any, apply: Callable[["Cell", Any], Any]) -> None:
        """Apply ``value`` per cell: callable, matching 2D grid or broadcast scalar."""
        if callable(value):
            for cell, ri, ci in self._indexed():
                apply(cell, value(cell, ri, ci, self))
        elif is_grid(value):
            shape = grid_shape(value)
            if shape != (self.num_rows, self.num_columns):
                raise ShapeMismatch(
                    f"Value grid is {shape[0]}x{shape[1]} but range {self.address()} "
                    f"is {self.num_rows}x{self.num_columns}",
                    details={"expected": [self.num_rows, self.num_columns], "actual": list(shape)},
                )
            for cell, ri, ci in self._indexed():
                apply(cell, value[ri][ci])
        else:
            for cell in self:
                apply(cell, value)

    # -- values --------------------------------------------------------------
    @property
    def value(self) -> list[list[Any]]:
        return self.map(lambda cell, ri, ci, rng: cell.value)

    @value.setter
    def value(self, value: Any) -> None:
        self.set_value(value)

    def set_value(self, value: Any) -> "Range":
        self._distribute(value, lambda cell, v: cell.set_value(v))
        return self

    def clear(self) -> "Range":
        for cell in self:
            cell.clear()
        return self

    # -- formulas ------------------------------------------------------------
    @property
    def formula(self) -> str | None:
        """The shared formula anchored at the top-left cell, else its own formula."""
        source = self.start_cell
        if source._shared_ref is not None:
            return source._formula
        return source.formula

    @formula.setter
    def formula(self, formula: str | None) -> None:
        self.set_formula(formula)

    def set_formula(self, formula: str | None) -> "Range":
        """Store ``formula`` as a shared formula with the top-left cell as source.

        Every other cell stores the formula with its relative references
        shifted by the cell's offset from the source.
        """
        if formula is None:
            for cell in self:
                cell.set_formula(None)
            return self
        formula = strip_formula_prefix(formula)
        if self.num_rows == 1 and self.num_columns == 1:
            self.start_cell.set_formula(formula)
            return self
        shared_index = self._sheet._next_shared_index()
        for cell, ri, ci in self._indexed():
            cell.set_formula(translate_formula(formula, ri, ci))
            cell._shared_index = shared_index
        source = self.start_cell
        source._shared_ref = self.address()
        logger.debug("Shared formula %r over %s (si=%d)", formula, self.address(), shared_index)
        return self

    # -- styles --------------------------------------------------------------
    def get_style(self, name: str) -> list[list[Any]]:
        return self.map(lambda cell, ri, ci, rng: cell.get_style(name))

    def get_styles(self, names: list[str]) -> dict[str, list[list[Any]]]:
        return {name: self.get_style(name) for name in names}

    def set_style(self, name: str, value: Any) -> "Range":
        self._distribute(value, lambda cell, v: cell.set_style(name, v))
        return self

    def set_styles(self, styles: dict[str, Any]) -> "Range":
        for name, value in styles.items():
            self.set_style(name, value)
        return self

    # -- merge / autofilter / validation -------------------------------------
    @property
    def merged(self) -> bool:
        return self._sheet._is_merged(self.bounds)

    @merged.setter
    def merged(self, merged: bool) -> None:
        if merged:
            self._sheet._merge(self.bounds)
        else:
            self._sheet._unmerge(self.bounds)

    def autofilter(self) -> "Range":
        self._sheet.autofilter(self)
        return self

    @property
    def data_validation(self) -> list[list[DataValidationRule | None]]:
        return self.map(lambda cell, ri, ci, rng: cell.data_validation)

    @data_validation.setter
    def data_validation(self, value: Any) -> None:
        self.set_data_validation(value)

    def set_data_validation(self, value: Any) -> "Range":
        if callable(value) or is_grid(value):
            self._distribute(value, lambda cell, v: cell.set_data_validation(v))
        else:
            self._sheet._data_validations.set(self.bounds, DataValidationRule.coerce(value))
        return self
