"""Workbook: load a package into the object model and write it back out."""

from __future__ import annotations

import asyncio
import logging
import re
from functools import lru_cache
from io import BytesIO
from pathlib import Path
from typing import Any, Callable

import openpyxl
from lxml import etree

from xlmodel.config import get_settings
from xlmodel.contracts.errors import InvalidAddress, InvalidOperation, NameConflict, OutOfBounds, PackageError
from xlmodel.engine.address import AddressType, parse_address
from xlmodel.engine.cell import Cell, compile_pattern
from xlmodel.engine.column import Column
from xlmodel.engine.content_types import (
    CT_CORE_PROPERTIES,
    CT_SHARED_STRINGS,
    CT_STYLES,
    CT_WORKSHEET,
    ContentTypes,
)
from xlmodel.engine.formula import strip_formula_prefix
from xlmodel.engine.names import FILTER_DATABASE, DefinedName, validate_defined_name, validate_sheet_name
from xlmodel.engine.properties import CORE_PART, CoreProperties, Properties
from xlmodel.engine.range import Range
from xlmodel.engine.relationships import (
    RT_CALC_CHAIN,
    RT_CORE_PROPERTIES,
    RT_OFFICE_DOCUMENT,
    RT_SHARED_STRINGS,
    RT_STYLES,
    RT_WORKSHEET,
    Relationships,
    rels_part_for,
    relative_target,
    resolve_target,
)
from xlmodel.engine.row import Row
from xlmodel.engine.shared_strings import SharedStrings
from xlmodel.engine.sheet import Sheet, SheetVisibility
from xlmodel.engine.styles import StyleSheet
from xlmodel.io.fileops import atomic_write
from xlmodel.io.package import OutputType, Package, convert_output, load_package, save_package
from xlmodel.io.xml import (
    find,
    findall,
    get_bool,
    get_or_create,
    insert_in_order,
    make,
    parse_xml,
    r_qn,
    remove,
    serialize_xml,
    sub,
)

logger = logging.getLogger(__name__)

MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

CONTENT_TYPES_PART = "[Content_Types].xml"
ROOT_RELS_PART = "_rels/.rels"

WORKBOOK_ORDER = (
    "fileVersion", "fileSharing", "workbookPr", "workbookProtection", "bookViews", "sheets",
    "functionGroups", "externalReferences", "definedNames", "calcPr", "oleSize",
    "customWorkbookViews", "pivotCaches", "smartTagPr", "smartTagTypes", "webPublishing",
    "fileRecoveryPr", "webPublishObjects", "extLst",
)
_SHEET_PART_RE = re.compile(r"^xl/worksheets/sheet(\d+)\.xml$")

SheetRef = Sheet | str | int


class Workbook:
    """In-memory model of one spreadsheet package.

    Use :func:`from_blank`, :func:`from_data` or :func:`from_file` to build
    one; the constructor expects an already-loaded :class:`Package`.
    """

    def __init__(self, package: Package) -> None:
        self._package = package
        self._content_types = ContentTypes(parse_xml(package.require(CONTENT_TYPES_PART), CONTENT_TYPES_PART))
        self._root_rels = Relationships(parse_xml(package.require(ROOT_RELS_PART), ROOT_RELS_PART))

        office = self._root_rels.find_by_type(RT_OFFICE_DOCUMENT)
        self._part_name = resolve_target("", office[0].target) if office else "xl/workbook.xml"
        self._root = parse_xml(package.require(self._part_name), self._part_name)
        rels_part = rels_part_for(self._part_name)
        self._rels = Relationships(
            parse_xml(package.get(rels_part), rels_part) if rels_part in package else None
        )

        self._shared_strings_part = self._related_part(RT_SHARED_STRINGS)
        self.shared_strings = SharedStrings(self._load_part(self._shared_strings_part))
        self._styles_part = self._related_part(RT_STYLES)
        styles_root = self._load_part(self._styles_part)
        self.style_sheet = StyleSheet(styles_root) if styles_root is not None else StyleSheet.default()

        core = self._root_rels.find_by_type(RT_CORE_PROPERTIES)
        self._core_part = resolve_target("", core[0].target) if core else None
        self._core = CoreProperties(self._load_part(self._core_part))

        self._sheets: list[Sheet] = []
        # (worksheet it follows, <sheet> element); None anchors at the front
        self._other_sheet_els: list[tuple[Sheet | None, etree._Element]] = []
        self._defined_names: dict[str, DefinedName] = {}
        self._active: Sheet | None = None
        self._load_sheets()
        self._drop_calc_chain()
        logger.debug("Loaded workbook with %d sheets", len(self._sheets))

    # -----------------------------------------------------------------------
    # loading
    # -----------------------------------------------------------------------
    def _related_part(self, rel_type: str) -> str | None:
        rels = self._rels.find_by_type(rel_type)
        return resolve_target(self._part_name, rels[0].target) if rels else None

    def _load_part(self, part_name: str | None) -> etree._Element | None:
        if part_name is None or part_name not in self._package:
            return None
        return parse_xml(self._package.get(part_name), part_name)

    def _load_sheets(self) -> None:
        by_position: list[Sheet | None] = []
        sheets_el = find(self._root, "sheets")
        for el in findall(sheets_el, "sheet") if sheets_el is not None else []:
            rel = self._rels.get(el.get(r_qn("id"), ""))
            if rel is None or rel.type != RT_WORKSHEET:
                # Chartsheets and dialog sheets are carried through untouched.
                self._other_sheet_els.append((self._sheets[-1] if self._sheets else None, el))
                by_position.append(None)
                continue
            part_name = resolve_target(self._part_name, rel.target)
            rels_part = rels_part_for(part_name)
            sheet = Sheet(
                self,
                el.get("name"),
                parse_xml(self._package.require(part_name), part_name),
                Relationships(parse_xml(self._package.get(rels_part), rels_part) if rels_part in self._package else None),
            )
            sheet._part_name = part_name
            sheet._rel_id = rel.id
            sheet._sheet_id = int(el.get("sheetId", 0))
            sheet._visibility = SheetVisibility(el.get("state", "visible"))
            sheet._load(self.shared_strings)
            self._sheets.append(sheet)
            by_position.append(sheet)
        if not self._sheets:
            raise PackageError("Workbook contains no worksheets")

        names_el = find(self._root, "definedNames")
        for el in findall(names_el, "definedName") if names_el is not None else []:
            name = el.get("name")
            if name == FILTER_DATABASE:
                continue
            attrs = {k: v for k, v in el.attrib.items() if k not in ("name", "localSheetId", "hidden")}
            entry = DefinedName(name, el.text or "", get_bool(el, "hidden"), attrs)
            if el.get("localSheetId") is None:
                self._defined_names[name.lower()] = entry
                continue
            index = int(el.get("localSheetId"))
            owner = by_position[index] if 0 <= index < len(by_position) else None
            if owner is None:
                logger.warning("Dropping defined name %r scoped to an unsupported sheet", name)
                continue
            owner._defined_names[name.lower()] = entry

        views = find(self._root, "bookViews")
        view = find(views, "workbookView") if views is not None else None
        active_tab = int(view.get("activeTab", 0)) if view is not None else 0
        active = by_position[active_tab] if 0 <= active_tab < len(by_position) else None
        if active is None or active._visibility is not SheetVisibility.VISIBLE:
            active = self._first_visible() or self._sheets[0]
        self._active = active

        remove(sheets_el)
        remove(names_el)

    def _drop_calc_chain(self) -> None:
        for rel in self._rels.find_by_type(RT_CALC_CHAIN):
            part_name = resolve_target(self._part_name, rel.target)
            self._package.remove(part_name)
            self._content_types.remove_override(part_name)
            logger.debug("Dropped calculation chain %s", part_name)
        self._rels.remove_type(RT_CALC_CHAIN)

    def _first_visible(self, candidates: list[Sheet] | None = None) -> Sheet | None:
        for sheet in candidates if candidates is not None else self._sheets:
            if sheet._visibility is SheetVisibility.VISIBLE:
                return sheet
        return None

    # -----------------------------------------------------------------------
    # sheets
    # -----------------------------------------------------------------------
    def sheet(self, name_or_index: str | int) -> Sheet | None:
        """Sheet by name (case-insensitive) or 0-based index; ``None`` if absent."""
        if isinstance(name_or_index, int):
            if 0 <= name_or_index < len(self._sheets):
                return self._sheets[name_or_index]
            return None
        folded = name_or_index.casefold()
        for sheet in self._sheets:
            if sheet.name.casefold() == folded:
                return sheet
        return None

    def sheets(self) -> list[Sheet]:
        return list(self._sheets)

    def _resolve_sheet(self, ref: SheetRef) -> Sheet:
        if isinstance(ref, Sheet):
            if ref._deleted or ref.workbook is not self or ref not in self._sheets:
                raise InvalidOperation(f"Sheet {ref.name!r} is not part of this workbook")
            return ref
        sheet = self.sheet(ref)
        if sheet is not None:
            return sheet
        if isinstance(ref, int):
            raise OutOfBounds(f"Sheet index {ref} out of range", details={"index": ref, "count": len(self._sheets)})
        raise InvalidOperation(f"Sheet not found: {ref}")

    def _position(self, index_or_before: SheetRef | None, sheets: list[Sheet]) -> int:
        if index_or_before is None:
            return len(sheets)
        if isinstance(index_or_before, int):
            if not 0 <= index_or_before <= len(sheets):
                raise OutOfBounds(
                    f"Sheet position {index_or_before} out of range",
                    details={"index": index_or_before, "count": len(sheets)},
                )
            return index_or_before
        before = self._resolve_sheet(index_or_before)
        if before not in sheets:
            raise InvalidOperation("Cannot position a sheet relative to itself")
        return sheets.index(before)

    def _check_sheet_name(self, name: str, exclude: Sheet | None = None) -> None:
        validate_sheet_name(name)
        existing = self.sheet(name)
        if existing is not None and existing is not exclude:
            raise NameConflict(f"Sheet already exists: {name}", details={"name": name})

    def add_sheet(self, name: str, index_or_before: SheetRef | None = None) -> Sheet:
        """Create an empty sheet at the end, at an index, or before another sheet."""
        self._check_sheet_name(name)
        position = self._position(index_or_before, self._sheets)
        sheet = Sheet(self, name)
        self._sheets.insert(position, sheet)
        logger.debug("Added sheet %r at %d", name, position)
        return sheet

    def move_sheet(self, sheet: SheetRef, index_or_before: SheetRef | None = None) -> "Workbook":
        sheet = self._resolve_sheet(sheet)
        remaining = [s for s in self._sheets if s is not sheet]
        position = self._position(index_or_before, remaining)
        remaining.insert(position, sheet)
        self._sheets = remaining
        return self

    def delete_sheet(self, sheet: SheetRef) -> "Workbook":
        """Remove a sheet.

        When the active sheet goes, the sheet now at its index (or the new
        last sheet) becomes active, skipping hidden sheets.
        """
        sheet = self._resolve_sheet(sheet)
        if sheet._visibility is SheetVisibility.VISIBLE and self._first_visible(
            [s for s in self._sheets if s is not sheet]
        ) is None:
            raise InvalidOperation("A workbook must keep at least one visible sheet")
        index = self._sheets.index(sheet)
        predecessor = self._sheets[index - 1] if index else None
        self._other_sheet_els = [
            (predecessor if anchor is sheet else anchor, el) for anchor, el in self._other_sheet_els
        ]
        self._sheets.remove(sheet)
        if self._active is sheet:
            start = min(index, len(self._sheets) - 1)
            ordered = self._sheets[start:] + self._sheets[:start][::-1]
            self._active = self._first_visible(ordered)
            self._active.tab_selected = True
        sheet._deleted = True
        if sheet._part_name is not None:
            self._package.remove(sheet._part_name)
            self._package.remove(rels_part_for(sheet._part_name))
            self._content_types.remove_override(sheet._part_name)
        if sheet._rel_id is not None:
            self._rels.remove(sheet._rel_id)
        logger.debug("Deleted sheet %r", sheet.name)
        return self

    def _before_hide(self, sheet: Sheet) -> None:
        others = [s for s in self._sheets if s is not sheet]
        if self._first_visible(others) is None:
            raise InvalidOperation("Cannot hide the last visible sheet")
        if self._active is sheet:
            index = self._sheets.index(sheet)
            ordered = self._sheets[index + 1:] + self._sheets[:index][::-1]
            self._active = self._first_visible(ordered)
            sheet.tab_selected = False
            self._active.tab_selected = True

    @property
    def active_sheet(self) -> Sheet:
        return self._active

    @active_sheet.setter
    def active_sheet(self, sheet: SheetRef) -> None:
        sheet = self._resolve_sheet(sheet)
        if sheet._visibility is not SheetVisibility.VISIBLE:
            raise InvalidOperation(f"Cannot activate hidden sheet {sheet.name!r}")
        self._active = sheet
        for other in self._sheets:
            other.tab_selected = other is sheet

    # -----------------------------------------------------------------------
    # defined names
    # -----------------------------------------------------------------------
    def _reference_text(self, ref: Any) -> str:
        if isinstance(ref, str):
            return strip_formula_prefix(ref)
        if isinstance(ref, (Cell, Range, Row, Column)):
            if ref.workbook is not self:
                raise InvalidOperation("Reference belongs to a different workbook")
            return ref.address(include_sheet_name=True, anchored=True)
        raise TypeError(f"Cannot define a name for {type(ref).__name__}")

    def _resolve_reference(self, text: str, default_sheet: Sheet | None = None) -> Any:
        """Turn a reference text into a Cell/Range/Row/Column; other formulas stay strings."""
        try:
            address = parse_address(text)
        except InvalidAddress:
            return text
        if address.sheet_name is not None:
            sheet = self.sheet(address.sheet_name)
        else:
            sheet = default_sheet
        if sheet is None:
            return text
        local = address.without_sheet().format()
        if address.type is AddressType.CELL:
            return sheet.cell(local)
        if address.type is AddressType.COLUMN and address.start_column == address.end_column:
            return sheet.column(address.start_column)
        if address.type is AddressType.ROW and address.start_row == address.end_row:
            return sheet.row(address.start_row)
        return sheet.range(local)

    def defined_name(self, name: str) -> Any:
        """Resolve a workbook-scoped name; ``None`` when it does not exist."""
        entry = self._defined_names.get(name.lower())
        return None if entry is None else self._resolve_reference(entry.ref)

    def set_defined_name(self, name: str, ref: Any) -> "Workbook":
        if ref is None:
            self._defined_names.pop(name.lower(), None)
            return self
        validate_defined_name(name)
        existing = self._defined_names.get(name.lower())
        entry = DefinedName(name, self._reference_text(ref))
        if existing is not None:
            entry.hidden, entry.attrs = existing.hidden, existing.attrs
        self._defined_names[name.lower()] = entry
        return self

    # -----------------------------------------------------------------------
    # search
    # -----------------------------------------------------------------------
    def find(
        self,
        pattern: str | re.Pattern[str],
        replacement: str | Callable[[re.Match[str]], str] | None = None,
    ) -> bool:
        """True if any sheet has a match; every sheet is visited so replacements apply everywhere."""
        regex = compile_pattern(pattern)
        matches = [sheet.find(regex, replacement) for sheet in self._sheets]
        return any(matches)

    # -----------------------------------------------------------------------
    # document properties
    # -----------------------------------------------------------------------
    def get_property(self, name: str | list[str]) -> Any:
        if isinstance(name, list):
            return {n: self._core.get(n) for n in name}
        return self._core.get(name)

    def set_property(self, name: str | dict[str, Any], value: Any = None) -> "Workbook":
        items = name.items() if isinstance(name, dict) else [(name, value)]
        for key, val in items:
            self._core.set(key, val)
        return self

    @property
    def properties(self) -> Properties:
        return Properties(self._core)

    # -----------------------------------------------------------------------
    # serialization
    # -----------------------------------------------------------------------
    def _ensure_part(self, part_name: str, rel_type: str, content_type: str) -> str:
        self._rels.add(rel_type, relative_target(self._part_name, part_name))
        self._content_types.add_override(part_name, content_type)
        return part_name

    def _new_sheet_part(self, sheet: Sheet) -> None:
        used = {int(m.group(1)) for part in self._package if (m := _SHEET_PART_RE.match(part))}
        n = 1
        while n in used:
            n += 1
        sheet._part_name = f"xl/worksheets/sheet{n}.xml"
        self._package.set(sheet._part_name, b"")
        self._content_types.add_override(sheet._part_name, CT_WORKSHEET)
        sheet._rel_id = self._rels.add(RT_WORKSHEET, relative_target(self._part_name, sheet._part_name)).id
        used_ids = {s._sheet_id for s in self._sheets if s._sheet_id is not None}
        used_ids |= {int(el.get("sheetId", 0)) for _, el in self._other_sheet_els}
        sheet._sheet_id = max(used_ids, default=0) + 1

    def _tab_order(self) -> list[Sheet | etree._Element]:
        """Worksheets interleaved with the carried-through sheet elements."""
        order: list[Sheet | etree._Element] = [el for anchor, el in self._other_sheet_els if anchor is None]
        for sheet in self._sheets:
            order.append(sheet)
            order.extend(el for anchor, el in self._other_sheet_els if anchor is sheet)
        return order

    def _write_workbook_xml(self) -> bytes:
        root = self._root
        sheets_el = insert_in_order(root, make("sheets"), WORKBOOK_ORDER)
        tabs: dict[int, int] = {}
        for position, item in enumerate(self._tab_order()):
            if not isinstance(item, Sheet):
                sheets_el.append(item)
                continue
            tabs[id(item)] = position
            el = sub(sheets_el, "sheet", {"name": item.name, "sheetId": item._sheet_id})
            if item._visibility is not SheetVisibility.VISIBLE:
                el.set("state", item._visibility.value)
            el.set(r_qn("id"), item._rel_id)

        names_el = make("definedNames")
        for sheet in self._sheets:
            if sheet._autofilter is not None:
                rng = sheet.range(*sheet._autofilter)
                el = sub(names_el, "definedName", {"name": FILTER_DATABASE, "localSheetId": tabs[id(sheet)], "hidden": 1})
                el.text = rng.address(include_sheet_name=True, anchored=True)
        for entry in self._defined_names.values():
            self._write_defined_name(names_el, entry, None)
        for sheet in self._sheets:
            for entry in sheet._defined_names.values():
                self._write_defined_name(names_el, entry, tabs[id(sheet)])
        if len(names_el):
            insert_in_order(root, names_el, WORKBOOK_ORDER)

        views = get_or_create(root, "bookViews", WORKBOOK_ORDER)
        view = find(views, "workbookView")
        if view is None:
            view = sub(views, "workbookView")
        view.set("activeTab", str(tabs[id(self._active)]))
        first = self._first_visible()
        view.attrib.pop("firstSheet", None)
        if first is not None and tabs[id(first)]:
            view.set("firstSheet", str(tabs[id(first)]))

        calc_pr = get_or_create(root, "calcPr", WORKBOOK_ORDER)
        calc_pr.set("fullCalcOnLoad", "1")

        data = serialize_xml(root)
        remove(sheets_el)
        remove(names_el)
        return data

    @staticmethod
    def _write_defined_name(parent: etree._Element, entry: DefinedName, local_sheet_id: int | None) -> None:
        el = sub(parent, "definedName", {"name": entry.name, "localSheetId": local_sheet_id})
        if entry.hidden:
            el.set("hidden", "1")
        for k, v in entry.attrs.items():
            el.set(k, v)
        el.text = entry.ref

    def _serialize(self, password: str | None = None) -> bytes:
        package = self._package
        self.shared_strings.reset()
        for sheet in self._sheets:
            if sheet._part_name is None:
                self._new_sheet_part(sheet)
            package.set(sheet._part_name, serialize_xml(sheet.to_xml(self.shared_strings)))
            rels_part = rels_part_for(sheet._part_name)
            if len(sheet._rels):
                package.set(rels_part, serialize_xml(sheet._rels.to_xml()))
            else:
                package.remove(rels_part)

        if self._shared_strings_part is None:
            self._shared_strings_part = self._ensure_part("xl/sharedStrings.xml", RT_SHARED_STRINGS, CT_SHARED_STRINGS)
        package.set(self._shared_strings_part, serialize_xml(self.shared_strings.to_xml()))
        if self._styles_part is None:
            self._styles_part = self._ensure_part("xl/styles.xml", RT_STYLES, CT_STYLES)
        package.set(self._styles_part, serialize_xml(self.style_sheet.to_xml()))
        if self._core_part is None:
            self._core_part = CORE_PART
            self._root_rels.add(RT_CORE_PROPERTIES, CORE_PART)
            self._content_types.add_override(CORE_PART, CT_CORE_PROPERTIES)
        package.set(self._core_part, serialize_xml(self._core.root))

        package.set(self._part_name, self._write_workbook_xml())
        package.set(rels_part_for(self._part_name), serialize_xml(self._rels.to_xml()))
        package.set(ROOT_RELS_PART, serialize_xml(self._root_rels.to_xml()))
        package.set(CONTENT_TYPES_PART, serialize_xml(self._content_types.to_xml()))
        logger.debug("Serialized workbook: %d parts", len(package.parts))
        return save_package(package, password)

    def output(self, output_type: OutputType | str | None = None, password: str | None = None) -> Any:
        """Serialize the workbook, optionally encrypted, in the requested form."""
        if output_type is None:
            output_type = get_settings().output_type
        return convert_output(self._serialize(password), output_type)

    async def output_async(self, output_type: OutputType | str | None = None, password: str | None = None) -> Any:
        return await asyncio.to_thread(self.output, output_type, password)

    def to_file(self, path: str | Path, password: str | None = None) -> None:
        atomic_write(path, self.output(OutputType.BYTES, password))
        logger.debug("Wrote workbook to %s", path)

    async def to_file_async(self, path: str | Path, password: str | None = None) -> None:
        await asyncio.to_thread(self.to_file, path, password)


# ---------------------------------------------------------------------------
# entry points
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def _blank_template() -> bytes:
    template = openpyxl.Workbook()
    buf = BytesIO()
    template.save(buf)
    template.close()
    return buf.getvalue()


def from_blank() -> Workbook:
    """A new workbook with a single empty sheet named ``Sheet1``."""
    wb = from_data(_blank_template())
    wb.sheets()[0].name = "Sheet1"
    return wb


def from_data(data: bytes | bytearray | memoryview, password: str | None = None) -> Workbook:
    return Workbook(load_package(data, password))


def from_file(path: str | Path, password: str | None = None) -> Workbook:
    return from_data(Path(path).read_bytes(), password)


async def from_blank_async() -> Workbook:
    return await asyncio.to_thread(from_blank)


async def from_data_async(data: bytes | bytearray | memoryview, password: str | None = None) -> Workbook:
    return await asyncio.to_thread(from_data, data, password)


async def from_file_async(path: str | Path, password: str | None = None) -> Workbook:
    return await asyncio.to_thread(from_file, path, password)
