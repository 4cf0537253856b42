"""Sheet: the cell arena plus sheet-level settings, loaded from and written to worksheet XML."""

from __future__ import annotations

import datetime
import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterator

from lxml import etree

from xlmodel.contracts.errors import InvalidAddress, InvalidOperation, OverlapError
from xlmodel.engine.address import (
    AddressType,
    MAX_COLUMN,
    MAX_ROW,
    check_row,
    format_cell_address,
    format_range_address,
    parse_address,
    parse_cell_address,
    resolve_column,
)
from xlmodel.engine.cell import Cell, compile_pattern
from xlmodel.engine.column import Column
from xlmodel.engine.formula import FormulaError, translate_formula
from xlmodel.engine.names import DefinedName, validate_defined_name
from xlmodel.engine.range import Range
from xlmodel.engine.relationships import RT_HYPERLINK, Relationships
from xlmodel.engine.row import Row
from xlmodel.engine.styles import Color, parse_color, write_color
from xlmodel.engine.validation import DataValidations, Rect, overlaps, parse_sqref
from xlmodel.engine.values import date_to_number, format_number, parse_number
from xlmodel.io.xml import (
    MAIN_NS,
    REL_NS,
    find,
    findall,
    get_bool,
    get_or_create,
    insert_in_order,
    make,
    new_root,
    r_qn,
    remove,
    set_bool,
    set_text,
    sub,
    text_of,
)

if TYPE_CHECKING:
    from xlmodel.engine.shared_strings import SharedStrings
    from xlmodel.engine.workbook import Workbook

logger = logging.getLogger(__name__)

SHEET_ORDER = (
    "sheetPr", "dimension", "sheetViews", "sheetFormatPr", "cols", "sheetData",
    "sheetCalcPr", "sheetProtection", "protectedRanges", "scenarios", "autoFilter",
    "sortState", "dataConsolidate", "customSheetViews", "mergeCells", "phoneticPr",
    "conditionalFormatting", "dataValidations", "hyperlinks", "printOptions",
    "pageMargins", "pageSetup", "headerFooter", "rowBreaks", "colBreaks",
    "customProperties", "cellWatches", "ignoredErrors", "smartTags", "drawing",
    "legacyDrawing", "legacyDrawingHF", "picture", "oleObjects", "controls",
    "webPublishItems", "tableParts", "extLst",
)
_MANAGED = ("dimension", "cols", "sheetData", "autoFilter", "mergeCells", "dataValidations", "hyperlinks")
_SHEET_VIEW_ORDER = ("pane", "selection", "pivotSelection", "extLst")
_ROW_MANAGED_ATTRS = {"r", "spans", "ht", "customHeight", "hidden", "s", "customFormat"}
_COL_MANAGED_ATTRS = {"min", "max", "width", "customWidth", "hidden", "style"}


class SheetVisibility(str, Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"
    VERY_HIDDEN = "veryHidden"


@dataclass
class Hyperlink:
    target: str | None = None
    location: str | None = None
    tooltip: str | None = None
    display: str | None = None


def new_worksheet_root() -> etree._Element:
    root = new_root("worksheet", nsmap={None: MAIN_NS, "r": REL_NS})
    views = sub(root, "sheetViews")
    sub(views, "sheetView", {"workbookViewId": 0})
    sub(root, "sheetFormatPr", {"defaultRowHeight": 15})
    sub(root, "sheetData")
    sub(root, "pageMargins", {
        "left": 0.7, "right": 0.7, "top": 0.75, "bottom": 0.75, "header": 0.3, "footer": 0.3,
    })
    return root


class Sheet:
    """One worksheet.

    Cells live in a single arena keyed by row then column; :class:`Row` and
    :class:`Column` objects carry axis formatting and query the arena.
    """

    def __init__(
        self,
        workbook: "Workbook",
        name: str,
        root: etree._Element | None = None,
        rels: Relationships | None = None,
    ) -> None:
        self._workbook = workbook
        self._name = name
        self._root = root if root is not None else new_worksheet_root()
        self._rels = rels or Relationships()
        self._visibility = SheetVisibility.VISIBLE
        self._deleted = False
        self._part_name: str | None = None
        self._rel_id: str | None = None
        self._sheet_id: int | None = None

        self._cells: dict[int, dict[int, Cell]] = {}
        self._rows: dict[int, Row] = {}
        self._columns: dict[int, Column] = {}
        self._merges: list[Rect] = []
        self._data_validations = DataValidations()
        self._hyperlinks: dict[tuple[int, int], Hyperlink] = {}
        self._autofilter: Rect | None = None
        self._autofilter_el: etree._Element | None = None
        self._defined_names: dict[str, DefinedName] = {}
        self._active_cell: tuple[int, int] = (1, 1)
        self._tab_selected = False
        self._grid_lines_visible = True
        self._tab_color: Color | None = None
        self._next_si = 0

    # -----------------------------------------------------------------------
    # identity
    # -----------------------------------------------------------------------
    @property
    def workbook(self) -> "Workbook":
        return self._workbook

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, name: str) -> None:
        self._check_alive()
        self._workbook._check_sheet_name(name, exclude=self)
        self._name = name

    @property
    def index(self) -> int:
        self._check_alive()
        return self._workbook.sheets().index(self)

    def _check_alive(self) -> None:
        if self._deleted:
            raise InvalidOperation(f"Sheet {self._name!r} has been deleted")

    def __repr__(self) -> str:
        return f"<Sheet {self._name!r}>"

    def move(self, index_or_before: "int | str | Sheet | None" = None) -> "Sheet":
        self._workbook.move_sheet(self, index_or_before)
        return self

    def delete(self) -> "Workbook":
        return self._workbook.delete_sheet(self)

    # -----------------------------------------------------------------------
    # navigation
    # -----------------------------------------------------------------------
    def _cell_at(self, row: int, column: int) -> Cell:
        cells = self._cells.get(row)
        if cells is None:
            cells = self._cells[row] = {}
        cell = cells.get(column)
        if cell is None:
            row_obj = self._rows.get(row)
            column_obj = self._columns.get(column)
            if row_obj is not None and row_obj.style_id is not None:
                style_id = row_obj.style_id
            elif column_obj is not None and column_obj.style_id is not None:
                style_id = column_obj.style_id
            else:
                style_id = 0
            cell = cells[column] = Cell(self, row, column, style_id)
        return cell

    def _check_own_address(self, sheet_name: str | None, text: str) -> None:
        if sheet_name is not None and sheet_name.casefold() != self._name.casefold():
            raise InvalidAddress(f"Address {text!r} refers to another sheet")

    def cell(self, address_or_row: str | int, column: int | str | None = None) -> Cell:
        """``cell("B3")`` or ``cell(3, "B")`` / ``cell(3, 2)``."""
        if isinstance(address_or_row, str) and column is None:
            address = parse_address(address_or_row)
            if address.type is not AddressType.CELL:
                raise InvalidAddress(f"Expected a single cell address, got {address_or_row!r}")
            self._check_own_address(address.sheet_name, address_or_row)
            return self._cell_at(address.start_row, address.start_column)
        if column is None:
            raise TypeError("cell() needs an address or a row and a column")
        return self._cell_at(check_row(address_or_row), resolve_column(column))

    def row(self, row_number: int) -> Row:
        check_row(row_number)
        row = self._rows.get(row_number)
        if row is None:
            row = self._rows[row_number] = Row(self, row_number)
        return row

    def column(self, column: int | str) -> Column:
        number = resolve_column(column)
        col = self._columns.get(number)
        if col is None:
            col = self._columns[number] = Column(self, number)
        return col

    def _span(self, r1: int, c1: int, r2: int, c2: int) -> Range:
        # Endpoints only carry coordinates; no cells are materialized.
        return Range(Cell(self, r1, c1), Cell(self, r2, c2))

    def range(self, *args: Any) -> Range:
        """``range("A1:C3")``, ``range(start, end)`` or ``range(r1, c1, r2, c2)``.

        Whole-column (``"B:D"``) and whole-row (``"2:4"``) addresses span the
        sheet's full extent on the other axis.
        """
        if len(args) == 1:
            text = args[0]
            address = parse_address(text)
            self._check_own_address(address.sheet_name, text)
            if address.type is AddressType.CELL:
                return self._span(address.start_row, address.start_column, address.start_row, address.start_column)
            if address.type is AddressType.RANGE:
                return self._span(address.start_row, address.start_column, address.end_row, address.end_column)
            if address.type is AddressType.COLUMN:
                return self._span(1, address.start_column, MAX_ROW, address.end_column)
            return self._span(address.start_row, 1, address.end_row, MAX_COLUMN)
        if len(args) == 2:
            start, end = (self.cell(a) if isinstance(a, str) else a for a in args)
            return Range(start, end)
        if len(args) == 4:
            r1, c1, r2, c2 = args
            return self._span(check_row(r1), resolve_column(c1), check_row(r2), resolve_column(c2))
        raise TypeError("range() takes an address, two cells, or four coordinates")

    def _iter_cells(self) -> Iterator[Cell]:
        """Populated cells in row-then-column order."""
        for row in sorted(self._cells):
            cells = self._cells[row]
            for column in sorted(cells):
                cell = cells[column]
                if cell.populated:
                    yield cell

    def _cells_in_row(self, row: int) -> list[Cell]:
        cells = self._cells.get(row, {})
        return [cells[c] for c in sorted(cells)]

    def _cells_in_column(self, column: int) -> list[Cell]:
        return [self._cells[r][column] for r in sorted(self._cells) if column in self._cells[r]]

    def _styled_rows(self) -> list[int]:
        return [n for n, row in self._rows.items() if row.style_id is not None]

    def _styled_columns(self) -> list[int]:
        return [n for n, col in self._columns.items() if col.style_id is not None]

    def used_range(self) -> Range | None:
        """Bounding rectangle of every populated cell, or ``None``."""
        bounds: list[int] | None = None
        for cell in self._iter_cells():
            r, c = cell.row_number, cell.column_number
            if bounds is None:
                bounds = [r, c, r, c]
            else:
                bounds[0] = min(bounds[0], r)
                bounds[1] = min(bounds[1], c)
                bounds[2] = max(bounds[2], r)
                bounds[3] = max(bounds[3], c)
        if bounds is None:
            return None
        return self._span(*bounds)

    def find(
        self,
        pattern: str | re.Pattern[str],
        replacement: str | Callable[[re.Match[str]], str] | None = None,
    ) -> list[Cell]:
        """Cells whose string value matches, in row-then-column order."""
        regex = compile_pattern(pattern)
        return [cell for cell in list(self._iter_cells()) if cell.find(regex, replacement)]

    # -----------------------------------------------------------------------
    # sheet settings
    # -----------------------------------------------------------------------
    @property
    def visibility(self) -> SheetVisibility:
        return self._visibility

    @visibility.setter
    def visibility(self, state: SheetVisibility | str) -> None:
        state = SheetVisibility(state)
        if state is not SheetVisibility.VISIBLE and self._visibility is SheetVisibility.VISIBLE:
            self._workbook._before_hide(self)
        self._visibility = state

    @property
    def hidden(self) -> bool | str:
        """``False``, ``True`` (hidden) or ``"very"`` (very hidden)."""
        if self._visibility is SheetVisibility.VERY_HIDDEN:
            return "very"
        return self._visibility is SheetVisibility.HIDDEN

    @hidden.setter
    def hidden(self, hidden: bool | str) -> None:
        if hidden == "very":
            self.visibility = SheetVisibility.VERY_HIDDEN
        elif hidden:
            self.visibility = SheetVisibility.HIDDEN
        else:
            self.visibility = SheetVisibility.VISIBLE

    @property
    def active(self) -> bool:
        return self._workbook.active_sheet is self

    @active.setter
    def active(self, active: bool) -> None:
        if not active:
            raise InvalidOperation("Deactivate a sheet by activating another one")
        self._workbook.active_sheet = self

    @property
    def active_cell(self) -> Cell:
        return self._cell_at(*self._active_cell)

    @active_cell.setter
    def active_cell(self, cell: Cell | str) -> None:
        if isinstance(cell, str):
            cell = self.cell(cell)
        if cell.sheet is not self:
            raise InvalidOperation("The active cell must belong to this sheet")
        self._active_cell = (cell.row_number, cell.column_number)

    @property
    def tab_selected(self) -> bool:
        return self._tab_selected

    @tab_selected.setter
    def tab_selected(self, selected: bool) -> None:
        self._tab_selected = bool(selected)

    @property
    def grid_lines_visible(self) -> bool:
        return self._grid_lines_visible

    @grid_lines_visible.setter
    def grid_lines_visible(self, visible: bool) -> None:
        self._grid_lines_visible = bool(visible)

    @property
    def tab_color(self) -> dict[str, Any] | None:
        return None if self._tab_color is None else self._tab_color.to_dict()

    @tab_color.setter
    def tab_color(self, color: Any) -> None:
        self._tab_color = Color.coerce(color)

    # -- merges / autofilter -------------------------------------------------
    def merged_ranges(self) -> list[Range]:
        return [self.range(*rect) for rect in self._merges]

    def _is_merged(self, rect: Rect) -> bool:
        return rect in self._merges

    def _merge(self, rect: Rect) -> None:
        if rect in self._merges:
            return
        for existing in self._merges:
            if overlaps(existing, rect):
                raise OverlapError(
                    f"{format_range_address(*rect)} overlaps merged range {format_range_address(*existing)}",
                    details={"existing": format_range_address(*existing)},
                )
        self._merges.append(rect)

    def _unmerge(self, rect: Rect) -> None:
        if rect in self._merges:
            self._merges.remove(rect)

    def autofilter(self, rng: Range | str | None = None) -> "Sheet":
        """Make ``rng`` the sheet's only autofilter; ``None`` removes it."""
        if isinstance(rng, str):
            rng = self.range(rng)
        if rng is not None and rng.sheet is not self:
            raise InvalidOperation("The autofilter range must belong to this sheet")
        self._autofilter = None if rng is None else rng.bounds
        return self

    @property
    def autofilter_range(self) -> Range | None:
        return None if self._autofilter is None else self.range(*self._autofilter)

    # -- hyperlinks ----------------------------------------------------------
    def _get_hyperlink(self, cell: Cell) -> str | None:
        link = self._hyperlinks.get((cell.row_number, cell.column_number))
        if link is None:
            return None
        if link.target is not None:
            return link.target
        return f"#{link.location}" if link.location is not None else None

    def _set_hyperlink(self, cell: Cell, target: str | None, *, tooltip: str | None = None) -> None:
        key = (cell.row_number, cell.column_number)
        if target is None:
            self._hyperlinks.pop(key, None)
        elif target.startswith("#"):
            self._hyperlinks[key] = Hyperlink(location=target[1:], tooltip=tooltip)
        else:
            self._hyperlinks[key] = Hyperlink(target=target, tooltip=tooltip)

    # -- defined names -------------------------------------------------------
    def defined_name(self, name: str) -> Any:
        """Resolve a sheet-scoped name, falling back to the workbook scope."""
        entry = self._defined_names.get(name.lower())
        if entry is not None:
            return self._workbook._resolve_reference(entry.ref, default_sheet=self)
        return self._workbook.defined_name(name)

    def set_defined_name(self, name: str, ref: Any) -> "Sheet":
        if ref is None:
            self._defined_names.pop(name.lower(), None)
            return self
        validate_defined_name(name)
        self._defined_names[name.lower()] = DefinedName(name, self._workbook._reference_text(ref))
        return self

    def _next_shared_index(self) -> int:
        si = self._next_si
        self._next_si += 1
        return si

    # -----------------------------------------------------------------------
    # loading
    # -----------------------------------------------------------------------
    def _load(self, shared_strings: "SharedStrings") -> None:
        root = self._root
        sheet_pr = find(root, "sheetPr")
        if sheet_pr is not None:
            self._tab_color = parse_color(find(sheet_pr, "tabColor"))
        views = find(root, "sheetViews")
        view = find(views, "sheetView") if views is not None else None
        if view is not None:
            self._tab_selected = get_bool(view, "tabSelected")
            self._grid_lines_visible = get_bool(view, "showGridLines", True)
            selection = self._selection_el(view, create=False)
            if selection is not None and selection.get("activeCell"):
                try:
                    self._active_cell = parse_cell_address(selection.get("activeCell"))
                except InvalidAddress:
                    logger.warning("Ignoring invalid active cell %r on sheet %r", selection.get("activeCell"), self._name)

        self._load_columns(find(root, "cols"))
        self._load_cells(find(root, "sheetData"), shared_strings)

        merge_cells = find(root, "mergeCells")
        if merge_cells is not None:
            for el in findall(merge_cells, "mergeCell"):
                self._merges.extend(parse_sqref(el.get("ref", "")))
        self._data_validations = DataValidations.from_xml(find(root, "dataValidations"))
        self._load_hyperlinks(find(root, "hyperlinks"))
        autofilter = find(root, "autoFilter")
        if autofilter is not None:
            rects = parse_sqref(autofilter.get("ref", ""))
            if rects:
                self._autofilter = rects[0]
                self._autofilter_el = autofilter

        # Managed parts are rebuilt from the model on serialization.
        for tag in _MANAGED:
            remove(find(root, tag))

    def _load_columns(self, cols: etree._Element | None) -> None:
        if cols is None:
            return
        for el in findall(cols, "col"):
            low, high = int(el.get("min")), int(el.get("max"))
            for number in range(low, min(high, MAX_COLUMN) + 1):
                column = self.column(number)
                if el.get("width") is not None:
                    column._width = float(el.get("width"))
                column._hidden = get_bool(el, "hidden")
                if el.get("style") is not None:
                    column._style_id = int(el.get("style"))
                column._attrs = {k: v for k, v in el.attrib.items() if k not in _COL_MANAGED_ATTRS}

    def _load_cells(self, sheet_data: etree._Element | None, shared_strings: "SharedStrings") -> None:
        if sheet_data is None:
            return
        sources: dict[int, Cell] = {}
        dependents: list[Cell] = []
        row_number = 0
        for row_el in findall(sheet_data, "row"):
            row_number = int(row_el.get("r")) if row_el.get("r") else row_number + 1
            attrs = {k: v for k, v in row_el.attrib.items() if k not in _ROW_MANAGED_ATTRS}
            custom_format = get_bool(row_el, "customFormat")
            if attrs or row_el.get("ht") is not None or get_bool(row_el, "hidden") or custom_format:
                row = self.row(row_number)
                row._attrs = attrs
                row._hidden = get_bool(row_el, "hidden")
                if row_el.get("ht") is not None and get_bool(row_el, "customHeight", True):
                    row._height = float(row_el.get("ht"))
                if custom_format:
                    row._style_id = int(row_el.get("s", 0))
            column_number = 0
            for c_el in findall(row_el, "c"):
                ref = c_el.get("r")
                if ref:
                    _, column_number = parse_cell_address(ref)
                else:
                    column_number += 1
                cell = Cell(self, row_number, column_number, int(c_el.get("s", 0)))
                self._cells.setdefault(row_number, {})[column_number] = cell
                self._read_cell(c_el, cell, shared_strings, sources, dependents)

        for cell in dependents:
            source = sources.get(cell._shared_index)
            if source is None:
                logger.warning(
                    "Shared formula group %s on sheet %r has no source; dropping formula at %s",
                    cell._shared_index, self._name, cell.address(),
                )
                cell._shared_index = None
                continue
            cell._formula = translate_formula(
                source._formula,
                cell.row_number - source.row_number,
                cell.column_number - source.column_number,
            )
        self._next_si = max(sources, default=-1) + 1
        logger.debug("Loaded sheet %r: %d rows, %d shared formula groups", self._name, len(self._cells), len(sources))

    def _read_cell(
        self,
        c_el: etree._Element,
        cell: Cell,
        shared_strings: "SharedStrings",
        sources: dict[int, Cell],
        dependents: list[Cell],
    ) -> None:
        kind = c_el.get("t", "n")
        v_el = find(c_el, "v")
        text = v_el.text if v_el is not None else None
        value: Any = None
        if kind == "s":
            value = shared_strings.get(int(text)) if text is not None else None
        elif kind == "inlineStr":
            value = text_of(find(c_el, "is"))
        elif kind == "str":
            value = text if text is not None else ("" if v_el is not None else None)
        elif kind == "b":
            value = text in ("1", "true") if text is not None else None
        elif kind == "e":
            value = FormulaError.get(text) if text is not None else None
        elif kind == "d":
            value = date_to_number(datetime.datetime.fromisoformat(text)) if text else None
        elif text not in (None, ""):
            value = parse_number(text)
        cell._value = value
        cell._attrs = {k: v for k, v in c_el.attrib.items() if k not in ("r", "s", "t")}
        cell._populated = True

        f_el = find(c_el, "f")
        if f_el is None:
            return
        if f_el.get("t") == "shared" and f_el.get("si") is not None:
            si = int(f_el.get("si"))
            cell._shared_index = si
            if f_el.get("ref") is not None and f_el.text:
                cell._formula = f_el.text
                cell._shared_ref = f_el.get("ref")
                sources[si] = cell
            else:
                dependents.append(cell)
        else:
            cell._formula = f_el.text or ""
            cell._formula_attrs = dict(f_el.attrib)

    def _load_hyperlinks(self, hyperlinks: etree._Element | None) -> None:
        if hyperlinks is None:
            return
        for el in findall(hyperlinks, "hyperlink"):
            target = None
            rid = el.get(r_qn("id"))
            if rid is not None:
                rel = self._rels.get(rid)
                target = rel.target if rel is not None else None
            link = Hyperlink(
                target=target,
                location=el.get("location"),
                tooltip=el.get("tooltip"),
                display=el.get("display"),
            )
            for r1, c1, r2, c2 in parse_sqref(el.get("ref", "")):
                for r in range(r1, r2 + 1):
                    for c in range(c1, c2 + 1):
                        self._hyperlinks[(r, c)] = link
        self._rels.remove_type(RT_HYPERLINK)

    # -----------------------------------------------------------------------
    # serialization
    # -----------------------------------------------------------------------
    def _selection_el(self, view: etree._Element, *, create: bool) -> etree._Element | None:
        pane = find(view, "pane")
        active_pane = pane.get("activePane", "bottomRight") if pane is not None else None
        selections = findall(view, "selection")
        for selection in selections:
            if selection.get("pane") == active_pane:
                return selection
        if selections and active_pane is None:
            return selections[0]
        if not create:
            return selections[-1] if selections else None
        attrs = {"pane": active_pane} if active_pane is not None else {}
        return insert_in_order(view, make("selection", attrs), _SHEET_VIEW_ORDER)

    def _write_sheet_pr(self) -> None:
        sheet_pr = find(self._root, "sheetPr")
        if sheet_pr is not None:
            remove(find(sheet_pr, "tabColor"))
        if self._tab_color is not None:
            sheet_pr = get_or_create(self._root, "sheetPr", SHEET_ORDER)
            tab_color = make("sheetPr")
            write_color(tab_color, "tabColor", self._tab_color)
            sheet_pr.insert(0, tab_color[0])
        elif sheet_pr is not None and len(sheet_pr) == 0 and not sheet_pr.attrib:
            remove(sheet_pr)

    def _write_sheet_view(self) -> None:
        views = get_or_create(self._root, "sheetViews", SHEET_ORDER)
        view = find(views, "sheetView")
        if view is None:
            view = sub(views, "sheetView", {"workbookViewId": 0})
        set_bool(view, "tabSelected", self._tab_selected, default=False)
        set_bool(view, "showGridLines", self._grid_lines_visible, default=True)
        selection = self._selection_el(view, create=self._active_cell != (1, 1))
        if selection is not None:
            ref = format_cell_address(*self._active_cell)
            selection.set("activeCell", ref)
            selection.set("sqref", ref)

    def _write_cols(self) -> None:
        runs: list[tuple[int, int, Column]] = []
        for number in sorted(self._columns):
            column = self._columns[number]
            if column._is_default():
                continue
            if runs:
                low, high, prev = runs[-1]
                if high == number - 1 and (prev._width, prev._hidden, prev._style_id, prev._attrs) == (
                    column._width, column._hidden, column._style_id, column._attrs,
                ):
                    runs[-1] = (low, number, prev)
                    continue
            runs.append((number, number, column))
        if not runs:
            return
        cols = make("cols")
        for low, high, column in runs:
            el = sub(cols, "col", {"min": low, "max": high})
            if column._width is not None:
                el.set("width", format_number(column._width))
                el.set("customWidth", "1")
            if column._style_id is not None:
                el.set("style", str(column._style_id))
            if column._hidden:
                el.set("hidden", "1")
            for k, v in column._attrs.items():
                el.set(k, v)
        insert_in_order(self._root, cols, SHEET_ORDER)

    def _plan_shared_formulas(self) -> dict[tuple[int, int], tuple[int, str | None]]:
        """Decide which cells are still written as shared formula groups.

        Returns ``(row, column) -> (si, ref)``; ``ref`` is set on the source
        only. Groups whose source is gone or whose members no longer match
        the translated text fall back to plain formulas.
        """
        members: dict[int, list[Cell]] = defaultdict(list)
        for cell in self._iter_cells():
            if cell._shared_index is not None and cell._formula is not None:
                members[cell._shared_index].append(cell)
        plan: dict[tuple[int, int], tuple[int, str | None]] = {}
        next_si = 0
        for si in sorted(members):
            cells = members[si]
            source = next((c for c in cells if c._shared_ref is not None), None)
            if source is None:
                continue
            group = [source] + [
                c for c in cells
                if c is not source and c._formula == translate_formula(
                    source._formula, c.row_number - source.row_number, c.column_number - source.column_number,
                )
            ]
            if len(group) < 2:
                continue
            ref = format_range_address(
                min(c.row_number for c in group), min(c.column_number for c in group),
                max(c.row_number for c in group), max(c.column_number for c in group),
            )
            plan[(source.row_number, source.column_number)] = (next_si, ref)
            for c in group[1:]:
                plan[(c.row_number, c.column_number)] = (next_si, None)
            next_si += 1
        return plan

    def _write_cell(
        self,
        cell: Cell,
        shared_strings: "SharedStrings",
        shared: tuple[int, str | None] | None,
    ) -> etree._Element:
        c = make("c", {"r": cell.address()})
        if cell._style_id:
            c.set("s", str(cell._style_id))
        value = cell._value
        kind: str | None = None
        text: str | None = None
        if isinstance(value, bool):
            kind, text = "b", "1" if value else "0"
        elif isinstance(value, FormulaError):
            kind, text = "e", value.error
        elif isinstance(value, (int, float)):
            text = format_number(value)
        elif isinstance(value, str):
            if cell._formula is not None:
                kind, text = "str", value
            else:
                kind, text = "s", str(shared_strings.intern(value))
        if kind is not None:
            c.set("t", kind)
        for k, v in cell._attrs.items():
            c.set(k, v)
        if cell._formula is not None:
            if shared is not None:
                si, ref = shared
                f = sub(c, "f", {"t": "shared", "ref": ref, "si": si})
                if ref is not None:
                    f.text = cell._formula
            else:
                f = sub(c, "f", cell._formula_attrs)
                f.text = cell._formula
        if text is not None:
            v = sub(c, "v")
            if kind == "str":
                set_text(v, text)
            else:
                v.text = text
        return c

    def _write_sheet_data(self, shared_strings: "SharedStrings") -> None:
        plan = self._plan_shared_formulas()
        sheet_data = make("sheetData")
        row_numbers = set(self._cells) | {n for n, row in self._rows.items() if not row._is_default()}
        for number in sorted(row_numbers):
            cells = [cell for cell in self._cells_in_row(number) if cell.populated]
            row = self._rows.get(number)
            if not cells and (row is None or row._is_default()):
                continue
            row_el = sub(sheet_data, "row", {"r": number})
            if row is not None:
                if row._style_id is not None:
                    row_el.set("s", str(row._style_id))
                    row_el.set("customFormat", "1")
                if row._height is not None:
                    row_el.set("ht", format_number(row._height))
                    row_el.set("customHeight", "1")
                if row._hidden:
                    row_el.set("hidden", "1")
                for k, v in row._attrs.items():
                    row_el.set(k, v)
            for cell in cells:
                row_el.append(self._write_cell(cell, shared_strings, plan.get((number, cell.column_number))))
        insert_in_order(self._root, sheet_data, SHEET_ORDER)

    def _write_hyperlinks(self) -> None:
        self._rels.remove_type(RT_HYPERLINK)
        if not self._hyperlinks:
            return
        # Attached before filling so r:id reuses the root's relationship prefix.
        hyperlinks = insert_in_order(self._root, make("hyperlinks"), SHEET_ORDER)
        for (r, c), link in sorted(self._hyperlinks.items()):
            el = sub(hyperlinks, "hyperlink", {"ref": format_cell_address(r, c)})
            if link.target is not None:
                rel = self._rels.add(RT_HYPERLINK, link.target, "External")
                el.set(r_qn("id"), rel.id)
            for attr in ("location", "tooltip", "display"):
                if getattr(link, attr) is not None:
                    el.set(attr, getattr(link, attr))

    def to_xml(self, shared_strings: "SharedStrings") -> etree._Element:
        """Write the model into the retained worksheet tree and return it."""
        root = self._root
        for tag in _MANAGED:
            remove(find(root, tag))

        self._write_sheet_pr()
        used = self.used_range()
        insert_in_order(root, make("dimension", {"ref": used.address() if used else "A1"}), SHEET_ORDER)
        self._write_sheet_view()
        self._write_cols()
        self._write_sheet_data(shared_strings)

        if self._autofilter is not None:
            el = self._autofilter_el if self._autofilter_el is not None else make("autoFilter")
            if parse_sqref(el.get("ref", "")) != [self._autofilter]:
                el = make("autoFilter")
            el.set("ref", format_range_address(*self._autofilter))
            insert_in_order(root, el, SHEET_ORDER)

        if self._merges:
            merge_cells = make("mergeCells", {"count": len(self._merges)})
            for rect in self._merges:
                sub(merge_cells, "mergeCell", {"ref": format_range_address(*rect)})
            insert_in_order(root, merge_cells, SHEET_ORDER)

        validations = self._data_validations.to_xml()
        if validations is not None:
            insert_in_order(root, validations, SHEET_ORDER)
        self._write_hyperlinks()
        return root
