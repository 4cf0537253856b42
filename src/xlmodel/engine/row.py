"""Row: axis formatting plus an index view over the sheet's cells."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from xlmodel.engine.address import format_row_address, resolve_column

if TYPE_CHECKING:
    from xlmodel.engine.cell import Cell
    from xlmodel.engine.sheet import Sheet
    from xlmodel.engine.workbook import Workbook


class Row:
    def __init__(self, sheet: "Sheet", row_number: int) -> None:
        self._sheet = sheet
        self._row_number = row_number
        self._height: float | None = None
        self._hidden = False
        self._style_id: int | None = None
        self._attrs: dict[str, str] = {}

    @property
    def sheet(self) -> "Sheet":
        return self._sheet

    @property
    def workbook(self) -> "Workbook":
        return self._sheet.workbook

    @property
    def row_number(self) -> int:
        return self._row_number

    def address(self, *, include_sheet_name: bool = False, anchored: bool = False) -> str:
        return format_row_address(
            self._row_number,
            sheet_name=self._sheet.name if include_sheet_name else None,
            start_anchored=anchored,
            end_anchored=anchored,
        )

    def __repr__(self) -> str:
        return f"<Row {self.address(include_sheet_name=True)}>"

    def cell(self, column: int | str) -> "Cell":
        return self._sheet.cell(self._row_number, resolve_column(column))

    def cells(self) -> list["Cell"]:
        """Materialized cells of the row, left to right."""
        return self._sheet._cells_in_row(self._row_number)

    def _is_default(self) -> bool:
        return self._height is None and not self._hidden and self._style_id is None and not self._attrs

    # -- formatting ----------------------------------------------------------
    @property
    def height(self) -> float | None:
        """Custom height in points; ``None`` means the sheet default."""
        return self._height

    @height.setter
    def height(self, height: float | None) -> None:
        self._height = height

    @property
    def hidden(self) -> bool:
        return self._hidden

    @hidden.setter
    def hidden(self, hidden: bool) -> None:
        self._hidden = bool(hidden)

    @property
    def style_id(self) -> int | None:
        return self._style_id

    def get_style(self, name: str) -> Any:
        return self.workbook.style_sheet.get_value(self._style_id or 0, name)

    def get_styles(self, names: list[str]) -> dict[str, Any]:
        return {name: self.get_style(name) for name in names}

    def set_style(self, name: str, value: Any) -> "Row":
        """Style the row and every cell already in it.

        Cells under styled columns are materialized first so they keep the
        column's formatting under the change.
        """
        for column_number in self._sheet._styled_columns():
            self._sheet.cell(self._row_number, column_number)
        self._style_id = self.workbook.style_sheet.set_value(self._style_id or 0, name, value)
        for cell in self.cells():
            cell.set_style(name, value)
        return self

    def set_styles(self, styles: dict[str, Any]) -> "Row":
        for name, value in styles.items():
            self.set_style(name, value)
        return self
