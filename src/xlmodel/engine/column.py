"""Column: axis formatting plus an index view over the sheet's cells."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from xlmodel.engine.address import column_number_to_name, format_column_address

if TYPE_CHECKING:
    from xlmodel.engine.cell import Cell
    from xlmodel.engine.sheet import Sheet
    from xlmodel.engine.workbook import Workbook


class Column:
    def __init__(self, sheet: "Sheet", column_number: int) -> None:
        self._sheet = sheet
        self._column_number = column_number
        self._width: float | None = None
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
    def column_number(self) -> int:
        return self._column_number

    @property
    def column_name(self) -> str:
        return column_number_to_name(self._column_number)

    def address(self, *, include_sheet_name: bool = False, anchored: bool = False) -> str:
        return format_column_address(
            self._column_number,
            sheet_name=self._sheet.name if include_sheet_name else None,
            start_anchored=anchored,
            end_anchored=anchored,
        )

    def __repr__(self) -> str:
        return f"<Column {self.address(include_sheet_name=True)}>"

    def cell(self, row_number: int) -> "Cell":
        return self._sheet.cell(row_number, self._column_number)

    def cells(self) -> list["Cell"]:
        """Materialized cells of the column, top to bottom."""
        return self._sheet._cells_in_column(self._column_number)

    def _is_default(self) -> bool:
        return self._width is None and not self._hidden and self._style_id is None and not self._attrs

    # -- formatting ----------------------------------------------------------
    @property
    def width(self) -> float | None:
        """Custom width in characters; ``None`` means the sheet default."""
        return self._width

    @width.setter
    def width(self, width: float | None) -> None:
        self._width = width

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

    def set_style(self, name: str, value: Any) -> "Column":
        """Style the column and every cell already in it.

        Cells in styled rows are materialized first; a row style would
        otherwise take precedence over the column style there.
        """
        for row_number in self._sheet._styled_rows():
            self._sheet.cell(row_number, self._column_number)
        self._style_id = self.workbook.style_sheet.set_value(self._style_id or 0, name, value)
        for cell in self.cells():
            cell.set_style(name, value)
        return self

    def set_styles(self, styles: dict[str, Any]) -> "Column":
        for name, value in styles.items():
            self.set_style(name, value)
        return self
