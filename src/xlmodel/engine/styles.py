"""Style sheet: deduplicated, immutable style records with copy-on-write.

A cell, row or column only holds an integer style id. The id indexes an arena
of :class:`StyleRecord` values, which in turn reference fonts, fills and
borders in their own arenas. Records are frozen dataclasses: changing a
style property derives a new record, reuses an existing equal record when
there is one, and hands the caller the resulting id. Records are never
deleted, so an id that was valid once stays valid for the life of the sheet.

Number formats use openpyxl's built-in table for ids below 164; custom codes
are numbered from there.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Generic, Iterator, TypeVar

from lxml import etree
from openpyxl.styles.numbers import BUILTIN_FORMATS, BUILTIN_FORMATS_MAX_SIZE

from xlmodel.io.xml import (
    find,
    findall,
    get_or_create,
    make,
    new_root,
    sub,
)

logger = logging.getLogger(__name__)

STYLESHEET_ORDER = (
    "numFmts", "fonts", "fills", "borders", "cellStyleXfs", "cellXfs",
    "cellStyles", "dxfs", "tableStyles", "colors", "extLst",
)

BORDER_SIDES = ("left", "right", "top", "bottom", "diagonal")
BORDER_STYLES = (
    "hair", "dotted", "dashDotDot", "dashed", "mediumDashDotDot", "thin",
    "slantDashDot", "mediumDashDot", "mediumDashed", "medium", "thick", "double",
)

_BUILTIN_FORMAT_IDS: dict[str, int] = {}
for _id, _code in sorted(BUILTIN_FORMATS.items()):
    _BUILTIN_FORMAT_IDS.setdefault(_code, _id)


# ---------------------------------------------------------------------------
# value objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Color:
    rgb: str | None = None
    theme: int | None = None
    indexed: int | None = None
    tint: float | None = None
    auto: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    @classmethod
    def coerce(cls, value: Any) -> "Color | None":
        """Build a color from an RGB hex string, a theme index or a dict."""
        if value is None or isinstance(value, Color):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid color: {value!r}")
        if isinstance(value, str):
            return cls(rgb=_normalize_rgb(value))
        if isinstance(value, int):
            return cls(theme=value)
        if isinstance(value, dict):
            unknown = set(value) - {"rgb", "theme", "indexed", "tint", "auto"}
            if unknown:
                raise ValueError(f"Unknown color keys: {sorted(unknown)}")
            rgb = value.get("rgb")
            return cls(
                rgb=_normalize_rgb(rgb) if rgb is not None else None,
                theme=value.get("theme"),
                indexed=value.get("indexed"),
                tint=value.get("tint"),
                auto=value.get("auto"),
            )
        raise ValueError(f"Invalid color: {value!r}")


def _normalize_rgb(text: str) -> str:
    text = text.lstrip("#").upper()
    if len(text) == 6:
        text = "FF" + text
    if len(text) != 8 or any(c not in "0123456789ABCDEF" for c in text):
        raise ValueError(f"Invalid RGB color: {text!r}")
    return text


@dataclass(frozen=True)
class Font:
    bold: bool = False
    italic: bool = False
    strike: bool = False
    condense: bool = False
    extend: bool = False
    outline: bool = False
    shadow: bool = False
    underline: str | None = None
    vert_align: str | None = None
    size: float | None = None
    color: Color | None = None
    name: str | None = None
    family: int | None = None
    charset: int | None = None
    scheme: str | None = None


@dataclass(frozen=True)
class GradientStop:
    position: float
    color: Color


@dataclass(frozen=True)
class Gradient:
    type: str = "linear"
    degree: float | None = None
    left: float | None = None
    right: float | None = None
    top: float | None = None
    bottom: float | None = None
    stops: tuple[GradientStop, ...] = ()


@dataclass(frozen=True)
class Fill:
    pattern_type: str | None = None
    fg_color: Color | None = None
    bg_color: Color | None = None
    gradient: Gradient | None = None


@dataclass(frozen=True)
class BorderSide:
    style: str | None = None
    color: Color | None = None


@dataclass(frozen=True)
class Border:
    left: BorderSide = BorderSide()
    right: BorderSide = BorderSide()
    top: BorderSide = BorderSide()
    bottom: BorderSide = BorderSide()
    diagonal: BorderSide = BorderSide()
    vertical: BorderSide | None = None
    horizontal: BorderSide | None = None
    diagonal_up: bool = False
    diagonal_down: bool = False
    outline: bool | None = None


@dataclass(frozen=True)
class Alignment:
    horizontal: str | None = None
    vertical: str | None = None
    wrap_text: bool = False
    shrink_to_fit: bool = False
    indent: int | None = None
    relative_indent: int | None = None
    text_rotation: int | None = None
    reading_order: int | None = None
    justify_last_line: bool = False


@dataclass(frozen=True)
class Protection:
    locked: bool = True
    hidden: bool = False


@dataclass(frozen=True)
class StyleRecord:
    """One ``cellXfs/xf`` entry."""

    font_id: int = 0
    fill_id: int = 0
    border_id: int = 0
    num_fmt_id: int = 0
    xf_id: int = 0
    alignment: Alignment | None = None
    protection: Protection | None = None
    quote_prefix: bool = False
    pivot_button: bool = False


T = TypeVar("T")


class _Arena(Generic[T]):
    """Append-only list of immutable values with a first-occurrence index."""

    def __init__(self, items: list[T] | None = None) -> None:
        self._items: list[T] = []
        self._index: dict[T, int] = {}
        for item in items or []:
            self.append(item)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __getitem__(self, i: int) -> T:
        return self._items[i]

    def append(self, item: T) -> int:
        self._items.append(item)
        self._index.setdefault(item, len(self._items) - 1)
        return len(self._items) - 1

    def intern(self, item: T) -> int:
        existing = self._index.get(item)
        if existing is not None:
            return existing
        return self.append(item)


# ---------------------------------------------------------------------------
# XML <-> value objects
# ---------------------------------------------------------------------------
def _bool_el(el: etree._Element | None) -> bool:
    if el is None:
        return False
    return el.get("val", "1") in ("1", "true")


def _num(text: str | None, kind: type = float) -> Any:
    if text is None:
        return None
    number = float(text)
    if kind is int:
        return int(number)
    return int(number) if number.is_integer() else number


def parse_color(el: etree._Element | None) -> Color | None:
    if el is None:
        return None
    return Color(
        rgb=el.get("rgb"),
        theme=_num(el.get("theme"), int),
        indexed=_num(el.get("indexed"), int),
        tint=_num(el.get("tint")),
        auto=(el.get("auto") in ("1", "true")) if el.get("auto") is not None else None,
    )


def write_color(parent: etree._Element, tag: str, color: Color | None) -> None:
    if color is None:
        return
    el = sub(parent, tag)
    if color.auto is not None:
        el.set("auto", "1" if color.auto else "0")
    if color.indexed is not None:
        el.set("indexed", str(color.indexed))
    if color.rgb is not None:
        el.set("rgb", color.rgb)
    if color.theme is not None:
        el.set("theme", str(color.theme))
    if color.tint is not None:
        el.set("tint", repr(color.tint) if isinstance(color.tint, float) else str(color.tint))


def _parse_font(el: etree._Element) -> Font:
    def val(tag: str) -> str | None:
        child = find(el, tag)
        return None if child is None else child.get("val")

    u = find(el, "u")
    underline = None
    if u is not None:
        underline = u.get("val", "single")
        if underline == "none":
            underline = None
    return Font(
        bold=_bool_el(find(el, "b")),
        italic=_bool_el(find(el, "i")),
        strike=_bool_el(find(el, "strike")),
        condense=_bool_el(find(el, "condense")),
        extend=_bool_el(find(el, "extend")),
        outline=_bool_el(find(el, "outline")),
        shadow=_bool_el(find(el, "shadow")),
        underline=underline,
        vert_align=val("vertAlign") if val("vertAlign") != "baseline" else None,
        size=_num(val("sz")),
        color=parse_color(find(el, "color")),
        name=val("name"),
        family=_num(val("family"), int),
        charset=_num(val("charset"), int),
        scheme=val("scheme"),
    )


def _write_font(font: Font) -> etree._Element:
    el = make("font")
    for tag, flag in (
        ("b", font.bold), ("i", font.italic), ("strike", font.strike),
        ("condense", font.condense), ("extend", font.extend),
        ("outline", font.outline), ("shadow", font.shadow),
    ):
        if flag:
            sub(el, tag)
    if font.underline:
        sub(el, "u", {"val": None if font.underline == "single" else font.underline})
    if font.vert_align:
        sub(el, "vertAlign", {"val": font.vert_align})
    if font.size is not None:
        sub(el, "sz", {"val": font.size})
    write_color(el, "color", font.color)
    if font.name is not None:
        sub(el, "name", {"val": font.name})
    if font.family is not None:
        sub(el, "family", {"val": font.family})
    if font.charset is not None:
        sub(el, "charset", {"val": font.charset})
    if font.scheme is not None:
        sub(el, "scheme", {"val": font.scheme})
    return el


def _parse_fill(el: etree._Element) -> Fill:
    pattern = find(el, "patternFill")
    if pattern is not None:
        return Fill(
            pattern_type=pattern.get("patternType"),
            fg_color=parse_color(find(pattern, "fgColor")),
            bg_color=parse_color(find(pattern, "bgColor")),
        )
    gradient = find(el, "gradientFill")
    if gradient is not None:
        stops = tuple(
            GradientStop(position=_num(stop.get("position")), color=parse_color(find(stop, "color")) or Color())
            for stop in findall(gradient, "stop")
        )
        return Fill(gradient=Gradient(
            type=gradient.get("type", "linear"),
            degree=_num(gradient.get("degree")),
            left=_num(gradient.get("left")),
            right=_num(gradient.get("right")),
            top=_num(gradient.get("top")),
            bottom=_num(gradient.get("bottom")),
            stops=stops,
        ))
    return Fill()


def _write_fill(fill: Fill) -> etree._Element:
    el = make("fill")
    if fill.gradient is not None:
        g = fill.gradient
        gel = sub(el, "gradientFill", {
            "type": None if g.type == "linear" else g.type,
            "degree": g.degree, "left": g.left, "right": g.right, "top": g.top, "bottom": g.bottom,
        })
        for stop in g.stops:
            sel = sub(gel, "stop", {"position": stop.position})
            write_color(sel, "color", stop.color)
        return el
    pel = sub(el, "patternFill", {"patternType": fill.pattern_type})
    write_color(pel, "fgColor", fill.fg_color)
    write_color(pel, "bgColor", fill.bg_color)
    return el


def _parse_side(el: etree._Element | None) -> BorderSide:
    if el is None:
        return BorderSide()
    return BorderSide(style=el.get("style"), color=parse_color(find(el, "color")))


def _parse_border(el: etree._Element) -> Border:
    sides = {}
    for side in BORDER_SIDES:
        side_el = find(el, side)
        if side_el is None and side in ("left", "right"):
            side_el = find(el, "start" if side == "left" else "end")
        sides[side] = _parse_side(side_el)
    vertical = find(el, "vertical")
    horizontal = find(el, "horizontal")
    outline = el.get("outline")
    return Border(
        **sides,
        vertical=_parse_side(vertical) if vertical is not None else None,
        horizontal=_parse_side(horizontal) if horizontal is not None else None,
        diagonal_up=el.get("diagonalUp") in ("1", "true"),
        diagonal_down=el.get("diagonalDown") in ("1", "true"),
        outline=(outline in ("1", "true")) if outline is not None else None,
    )


def _write_side(parent: etree._Element, tag: str, side: BorderSide) -> None:
    el = sub(parent, tag, {"style": side.style})
    write_color(el, "color", side.color)


def _write_border(border: Border) -> etree._Element:
    el = make("border")
    if border.diagonal_up:
        el.set("diagonalUp", "1")
    if border.diagonal_down:
        el.set("diagonalDown", "1")
    if border.outline is not None:
        el.set("outline", "1" if border.outline else "0")
    for side in BORDER_SIDES:
        _write_side(el, side, getattr(border, side))
    if border.vertical is not None:
        _write_side(el, "vertical", border.vertical)
    if border.horizontal is not None:
        _write_side(el, "horizontal", border.horizontal)
    return el


def _parse_xf(el: etree._Element) -> StyleRecord:
    alignment = None
    a = find(el, "alignment")
    if a is not None:
        alignment = Alignment(
            horizontal=a.get("horizontal"),
            vertical=a.get("vertical"),
            wrap_text=a.get("wrapText") in ("1", "true"),
            shrink_to_fit=a.get("shrinkToFit") in ("1", "true"),
            indent=_num(a.get("indent"), int),
            relative_indent=_num(a.get("relativeIndent"), int),
            text_rotation=_num(a.get("textRotation"), int),
            reading_order=_num(a.get("readingOrder"), int),
            justify_last_line=a.get("justifyLastLine") in ("1", "true"),
        )
        if alignment == Alignment():
            alignment = None
    protection = None
    p = find(el, "protection")
    if p is not None:
        protection = Protection(
            locked=p.get("locked", "1") in ("1", "true"),
            hidden=p.get("hidden", "0") in ("1", "true"),
        )
    return StyleRecord(
        font_id=int(el.get("fontId", 0)),
        fill_id=int(el.get("fillId", 0)),
        border_id=int(el.get("borderId", 0)),
        num_fmt_id=int(el.get("numFmtId", 0)),
        xf_id=int(el.get("xfId", 0)),
        alignment=alignment,
        protection=protection,
        quote_prefix=el.get("quotePrefix") in ("1", "true"),
        pivot_button=el.get("pivotButton") in ("1", "true"),
    )


def _write_xf(record: StyleRecord) -> etree._Element:
    el = make("xf", {
        "numFmtId": record.num_fmt_id,
        "fontId": record.font_id,
        "fillId": record.fill_id,
        "borderId": record.border_id,
        "xfId": record.xf_id,
    })
    if record.quote_prefix:
        el.set("quotePrefix", "1")
    if record.pivot_button:
        el.set("pivotButton", "1")
    for attr, applied in (
        ("applyNumberFormat", record.num_fmt_id != 0),
        ("applyFont", record.font_id != 0),
        ("applyFill", record.fill_id != 0),
        ("applyBorder", record.border_id != 0),
        ("applyAlignment", record.alignment is not None),
        ("applyProtection", record.protection is not None),
    ):
        if applied:
            el.set(attr, "1")
    a = record.alignment
    if a is not None:
        sub(el, "alignment", {
            "horizontal": a.horizontal,
            "vertical": a.vertical,
            "textRotation": a.text_rotation,
            "wrapText": "1" if a.wrap_text else None,
            "indent": a.indent,
            "relativeIndent": a.relative_indent,
            "justifyLastLine": "1" if a.justify_last_line else None,
            "shrinkToFit": "1" if a.shrink_to_fit else None,
            "readingOrder": a.reading_order,
        })
    p = record.protection
    if p is not None:
        sub(el, "protection", {
            "locked": None if p.locked else "0",
            "hidden": "1" if p.hidden else None,
        })
    return el


# ---------------------------------------------------------------------------
# style sheet
# ---------------------------------------------------------------------------
class StyleSheet:
    """Registry of style records backed by ``xl/styles.xml``."""

    @classmethod
    def default(cls) -> "StyleSheet":
        root = new_root("styleSheet")
        fonts = sub(root, "fonts", {"count": 1})
        fonts.append(_write_font(Font(size=11, color=Color(theme=1), name="Calibri", family=2, scheme="minor")))
        fills = sub(root, "fills", {"count": 2})
        fills.append(_write_fill(Fill(pattern_type="none")))
        fills.append(_write_fill(Fill(pattern_type="gray125")))
        borders = sub(root, "borders", {"count": 1})
        borders.append(_write_border(Border()))
        csx = sub(root, "cellStyleXfs", {"count": 1})
        sub(csx, "xf", {"numFmtId": 0, "fontId": 0, "fillId": 0, "borderId": 0})
        cxf = sub(root, "cellXfs", {"count": 1})
        cxf.append(_write_xf(StyleRecord()))
        cs = sub(root, "cellStyles", {"count": 1})
        sub(cs, "cellStyle", {"name": "Normal", "xfId": 0, "builtinId": 0})
        return cls(root)

    def __init__(self, root: etree._Element) -> None:
        self.root = root
        self._num_fmts: dict[int, str] = {}
        num_fmts = find(root, "numFmts")
        if num_fmts is not None:
            for el in findall(num_fmts, "numFmt"):
                self._num_fmts[int(el.get("numFmtId"))] = el.get("formatCode", "")
        self._num_fmt_ids = {code: i for i, code in sorted(self._num_fmts.items(), reverse=True)}

        self.fonts: _Arena[Font] = _Arena([_parse_font(el) for el in self._children("fonts", "font")])
        self.fills: _Arena[Fill] = _Arena([_parse_fill(el) for el in self._children("fills", "fill")])
        self.borders: _Arena[Border] = _Arena([_parse_border(el) for el in self._children("borders", "border")])
        self.records: _Arena[StyleRecord] = _Arena([_parse_xf(el) for el in self._children("cellXfs", "xf")])
        if not len(self.fonts):
            self.fonts.append(Font(size=11, name="Calibri", family=2))
        if not len(self.fills):
            self.fills.append(Fill(pattern_type="none"))
            self.fills.append(Fill(pattern_type="gray125"))
        if not len(self.borders):
            self.borders.append(Border())
        if not len(self.records):
            self.records.append(StyleRecord())
        logger.debug(
            "Loaded stylesheet: %d records, %d fonts, %d fills, %d borders, %d custom formats",
            len(self.records), len(self.fonts), len(self.fills), len(self.borders), len(self._num_fmts),
        )

    def _children(self, container: str, tag: str) -> list[etree._Element]:
        parent = find(self.root, container)
        return [] if parent is None else findall(parent, tag)

    def __len__(self) -> int:
        return len(self.records)

    # -- records -------------------------------------------------------------
    def record(self, style_id: int) -> StyleRecord:
        if not 0 <= style_id < len(self.records):
            raise ValueError(f"Unknown style id: {style_id}")
        return self.records[style_id]

    def create_style(self, source_id: int | None = None) -> "Style":
        """Append a new record cloned from ``source_id`` (or the default record)."""
        source = self.record(source_id if source_id is not None else 0)
        return Style(self, self.records.append(source))

    def style(self, style_id: int) -> "Style":
        self.record(style_id)
        return Style(self, style_id)

    def get_value(self, style_id: int, name: str) -> Any:
        getter, _ = _property(name)
        return getter(self, self.record(style_id))

    def set_value(self, style_id: int, name: str, value: Any) -> int:
        """Return the id of the record equal to ``style_id`` with ``name`` changed.

        The record behind ``style_id`` is never modified.
        """
        _, setter = _property(name)
        record = self.record(style_id)
        derived = setter(self, record, value)
        if derived == record:
            return style_id
        return self.records.intern(derived)

    def set_values(self, style_id: int, values: dict[str, Any]) -> int:
        for name, value in values.items():
            style_id = self.set_value(style_id, name, value)
        return style_id

    # -- number formats ------------------------------------------------------
    def get_number_format_code(self, num_fmt_id: int) -> str | None:
        if num_fmt_id in self._num_fmts:
            return self._num_fmts[num_fmt_id]
        return BUILTIN_FORMATS.get(num_fmt_id)

    def get_number_format_id(self, code: str) -> int:
        """Return the id for ``code``, registering a custom format when new."""
        if code in self._num_fmt_ids:
            return self._num_fmt_ids[code]
        if code in _BUILTIN_FORMAT_IDS:
            return _BUILTIN_FORMAT_IDS[code]
        num_fmt_id = max([BUILTIN_FORMATS_MAX_SIZE - 1, *self._num_fmts]) + 1
        self._num_fmts[num_fmt_id] = code
        self._num_fmt_ids[code] = num_fmt_id
        return num_fmt_id

    # -- component helpers used by the property table ------------------------
    def font(self, record: StyleRecord) -> Font:
        return self.fonts[record.font_id]

    def fill(self, record: StyleRecord) -> Fill:
        return self.fills[record.fill_id]

    def border(self, record: StyleRecord) -> Border:
        return self.borders[record.border_id]

    def with_font(self, record: StyleRecord, **changes: Any) -> StyleRecord:
        return replace(record, font_id=self.fonts.intern(replace(self.font(record), **changes)))

    def with_fill(self, record: StyleRecord, fill: Fill) -> StyleRecord:
        return replace(record, fill_id=self.fills.intern(fill))

    def with_border(self, record: StyleRecord, border: Border) -> StyleRecord:
        return replace(record, border_id=self.borders.intern(border))

    # -- serialization -------------------------------------------------------
    def _rebuild(self, container: str, elements: list[etree._Element]) -> None:
        parent = get_or_create(self.root, container, STYLESHEET_ORDER)
        for child in list(parent):
            parent.remove(child)
        for el in elements:
            parent.append(el)
        parent.set("count", str(len(elements)))

    def to_xml(self) -> etree._Element:
        """Write the arenas back into the retained ``styleSheet`` tree."""
        if self._num_fmts:
            self._rebuild("numFmts", [
                make("numFmt", {"numFmtId": i, "formatCode": code})
                for i, code in sorted(self._num_fmts.items())
            ])
        self._rebuild("fonts", [_write_font(f) for f in self.fonts])
        self._rebuild("fills", [_write_fill(f) for f in self.fills])
        self._rebuild("borders", [_write_border(b) for b in self.borders])
        self._rebuild("cellXfs", [_write_xf(r) for r in self.records])
        return self.root


class Style:
    """Handle on one style record."""

    def __init__(self, style_sheet: StyleSheet, style_id: int) -> None:
        self.style_sheet = style_sheet
        self._id = style_id

    @property
    def id(self) -> int:
        return self._id

    def get(self, name: str) -> Any:
        return self.style_sheet.get_value(self._id, name)

    def set(self, name: str, value: Any) -> "Style":
        return Style(self.style_sheet, self.style_sheet.set_value(self._id, name, value))

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Style) and other.style_sheet is self.style_sheet and other._id == self._id

    def __hash__(self) -> int:
        return hash((id(self.style_sheet), self._id))

    def __repr__(self) -> str:
        return f"Style(id={self._id})"


# ---------------------------------------------------------------------------
# property table
# ---------------------------------------------------------------------------
Getter = Callable[[StyleSheet, StyleRecord], Any]
Setter = Callable[[StyleSheet, StyleRecord, Any], StyleRecord]

_PROPERTIES: dict[str, tuple[Getter, Setter]] = {}


def _property(name: str) -> tuple[Getter, Setter]:
    try:
        return _PROPERTIES[name]
    except KeyError:
        raise ValueError(f"Unknown style: {name!r}") from None


def style_names() -> list[str]:
    return sorted(_PROPERTIES)


def _register(name: str, getter: Getter, setter: Setter) -> None:
    _PROPERTIES[name] = (getter, setter)


def _font_flag(name: str, attr: str) -> None:
    _register(
        name,
        lambda ss, r: getattr(ss.font(r), attr),
        lambda ss, r, v: ss.with_font(r, **{attr: bool(v)}),
    )


for _name, _attr in (
    ("bold", "bold"), ("italic", "italic"), ("strikethrough", "strike"),
):
    _font_flag(_name, _attr)


def _get_underline(ss: StyleSheet, r: StyleRecord) -> bool | str:
    underline = ss.font(r).underline
    if underline is None:
        return False
    return True if underline == "single" else underline


def _set_underline(ss: StyleSheet, r: StyleRecord, value: Any) -> StyleRecord:
    if value is True:
        value = "single"
    return ss.with_font(r, underline=value or None)


_register("underline", _get_underline, _set_underline)


def _vert_align(kind: str) -> None:
    def setter(ss: StyleSheet, r: StyleRecord, value: Any) -> StyleRecord:
        current = ss.font(r).vert_align
        if value:
            return ss.with_font(r, vert_align=kind)
        return ss.with_font(r, vert_align=None if current == kind else current)

    _register(kind, lambda ss, r: ss.font(r).vert_align == kind, setter)


_vert_align("subscript")
_vert_align("superscript")

_register("font_size", lambda ss, r: ss.font(r).size, lambda ss, r, v: ss.with_font(r, size=v))
_register("font_family", lambda ss, r: ss.font(r).name, lambda ss, r, v: ss.with_font(r, name=v))
_register(
    "font_generic_family",
    lambda ss, r: ss.font(r).family,
    lambda ss, r, v: ss.with_font(r, family=None if v is None else int(v)),
)
_register("font_scheme", lambda ss, r: ss.font(r).scheme, lambda ss, r, v: ss.with_font(r, scheme=v))


def _color_dict(color: Color | None) -> dict[str, Any] | None:
    return None if color is None else color.to_dict()


_register(
    "font_color",
    lambda ss, r: _color_dict(ss.font(r).color),
    lambda ss, r, v: ss.with_font(r, color=Color.coerce(v)),
)


# -- alignment ---------------------------------------------------------------
def _alignment(r: StyleRecord) -> Alignment:
    return r.alignment or Alignment()


def _with_alignment(r: StyleRecord, **changes: Any) -> StyleRecord:
    alignment = replace(_alignment(r), **changes)
    return replace(r, alignment=None if alignment == Alignment() else alignment)


def _alignment_attr(name: str, attr: str, convert: Callable[[Any], Any] = lambda v: v) -> None:
    _register(
        name,
        lambda ss, r: getattr(_alignment(r), attr),
        lambda ss, r, v: _with_alignment(r, **{attr: None if v is None else convert(v)}),
    )


_alignment_attr("horizontal_alignment", "horizontal")
_alignment_attr("vertical_alignment", "vertical")
_alignment_attr("indent", "indent", int)
_alignment_attr("text_rotation", "text_rotation", int)
_register("wrap_text", lambda ss, r: _alignment(r).wrap_text, lambda ss, r, v: _with_alignment(r, wrap_text=bool(v)))
_register(
    "shrink_to_fit", lambda ss, r: _alignment(r).shrink_to_fit,
    lambda ss, r, v: _with_alignment(r, shrink_to_fit=bool(v)),
)
_register(
    "justify_last_line", lambda ss, r: _alignment(r).justify_last_line,
    lambda ss, r, v: _with_alignment(r, justify_last_line=bool(v)),
)

_READING_ORDERS = {1: "left-to-right", 2: "right-to-left"}


def _set_text_direction(ss: StyleSheet, r: StyleRecord, value: Any) -> StyleRecord:
    if value is None:
        return _with_alignment(r, reading_order=None)
    for order, name in _READING_ORDERS.items():
        if value == name:
            return _with_alignment(r, reading_order=order)
    raise ValueError(f"Invalid text direction: {value!r}")


_register("text_direction", lambda ss, r: _READING_ORDERS.get(_alignment(r).reading_order), _set_text_direction)


def _rotation_flag(name: str, rotation: int) -> None:
    def setter(ss: StyleSheet, r: StyleRecord, value: Any) -> StyleRecord:
        if value:
            return _with_alignment(r, text_rotation=rotation)
        current = _alignment(r).text_rotation
        return _with_alignment(r, text_rotation=None if current == rotation else current)

    _register(name, lambda ss, r: _alignment(r).text_rotation == rotation, setter)


_rotation_flag("angle_text_counterclockwise", 45)
_rotation_flag("angle_text_clockwise", 135)
_rotation_flag("rotate_text_up", 90)
_rotation_flag("rotate_text_down", 180)
_rotation_flag("vertical_text", 255)


# -- fill --------------------------------------------------------------------
def _get_fill(ss: StyleSheet, r: StyleRecord) -> dict[str, Any] | None:
    fill = ss.fill(r)
    if fill.gradient is not None:
        g = fill.gradient
        result: dict[str, Any] = {
            "type": "gradient",
            "gradient_type": g.type,
            "stops": [{"position": s.position, "color": s.color.to_dict()} for s in g.stops],
        }
        for attr in ("degree", "left", "right", "top", "bottom"):
            if getattr(g, attr) is not None:
                result["angle" if attr == "degree" else attr] = getattr(g, attr)
        return result
    if fill.pattern_type in (None, "none"):
        return None
    if fill.pattern_type == "solid":
        return {"type": "solid", "color": _color_dict(fill.fg_color)}
    return {
        "type": "pattern",
        "pattern": fill.pattern_type,
        "foreground": _color_dict(fill.fg_color),
        "background": _color_dict(fill.bg_color),
    }


def _set_fill(ss: StyleSheet, r: StyleRecord, value: Any) -> StyleRecord:
    if value is None or value is False:
        return replace(r, fill_id=0)
    if not isinstance(value, dict) or "type" not in value:
        return ss.with_fill(r, Fill(pattern_type="solid", fg_color=Color.coerce(value)))
    kind = value["type"]
    if kind == "solid":
        return ss.with_fill(r, Fill(pattern_type="solid", fg_color=Color.coerce(value.get("color"))))
    if kind == "pattern":
        return ss.with_fill(r, Fill(
            pattern_type=value.get("pattern", "solid"),
            fg_color=Color.coerce(value.get("foreground")),
            bg_color=Color.coerce(value.get("background")),
        ))
    if kind == "gradient":
        stops = tuple(
            GradientStop(position=stop["position"], color=Color.coerce(stop["color"]))
            for stop in value.get("stops", [])
        )
        return ss.with_fill(r, Fill(gradient=Gradient(
            type=value.get("gradient_type", "linear"),
            degree=value.get("angle"),
            left=value.get("left"),
            right=value.get("right"),
            top=value.get("top"),
            bottom=value.get("bottom"),
            stops=stops,
        )))
    raise ValueError(f"Invalid fill type: {kind!r}")


_register("fill", _get_fill, _set_fill)


# -- border ------------------------------------------------------------------
def _side_dict(side: BorderSide, border: Border | None = None) -> dict[str, Any] | None:
    if side.style is None:
        return None
    result: dict[str, Any] = {"style": side.style}
    if side.color is not None:
        result["color"] = side.color.to_dict()
    if border is not None:
        direction = _diagonal_direction(border)
        if direction is not None:
            result["direction"] = direction
    return result


def _coerce_side(current: BorderSide, value: Any) -> BorderSide:
    if value is None or value is False:
        return BorderSide()
    if value is True:
        return BorderSide(style="thin", color=current.color)
    if isinstance(value, str):
        return BorderSide(style=value, color=current.color)
    if isinstance(value, dict):
        return BorderSide(
            style=value.get("style", current.style or "thin"),
            color=Color.coerce(value["color"]) if "color" in value else current.color,
        )
    raise ValueError(f"Invalid border value: {value!r}")


def _diagonal_direction(border: Border) -> str | None:
    if border.diagonal_up and border.diagonal_down:
        return "both"
    if border.diagonal_up:
        return "up"
    if border.diagonal_down:
        return "down"
    return None


def _with_direction(border: Border, direction: str | None) -> Border:
    if direction not in (None, "up", "down", "both"):
        raise ValueError(f"Invalid diagonal border direction: {direction!r}")
    return replace(
        border,
        diagonal_up=direction in ("up", "both"),
        diagonal_down=direction in ("down", "both"),
    )


def _set_side(border: Border, side: str, value: Any) -> Border:
    changed = replace(border, **{side: _coerce_side(getattr(border, side), value)})
    if side == "diagonal":
        if isinstance(value, dict) and "direction" in value:
            changed = _with_direction(changed, value["direction"])
        elif changed.diagonal.style is not None and _diagonal_direction(changed) is None:
            changed = _with_direction(changed, "both")
    return changed


def _get_border(ss: StyleSheet, r: StyleRecord) -> dict[str, Any]:
    border = ss.border(r)
    return {
        side: _side_dict(getattr(border, side), border if side == "diagonal" else None)
        for side in BORDER_SIDES
    }


def _set_border(ss: StyleSheet, r: StyleRecord, value: Any) -> StyleRecord:
    border = ss.border(r)
    if isinstance(value, dict):
        for side, side_value in value.items():
            if side not in BORDER_SIDES:
                raise ValueError(f"Unknown border side: {side!r}")
            border = _set_side(border, side, side_value)
    else:
        for side in ("left", "right", "top", "bottom"):
            border = _set_side(border, side, value)
    return ss.with_border(r, border)


def _common(values: list[Any]) -> Any:
    return values[0] if values and all(v == values[0] for v in values) else None


def _set_all_sides(attr: str) -> Setter:
    def setter(ss: StyleSheet, r: StyleRecord, value: Any) -> StyleRecord:
        border = ss.border(r)
        if attr == "color":
            value = Color.coerce(value)
        for side in BORDER_SIDES:
            border = replace(border, **{side: replace(getattr(border, side), **{attr: value})})
        return ss.with_border(r, border)

    return setter


_register("border", _get_border, _set_border)
_register(
    "border_color",
    lambda ss, r: _color_dict(_common([getattr(ss.border(r), s).color for s in BORDER_SIDES[:4]])),
    _set_all_sides("color"),
)
_register(
    "border_style",
    lambda ss, r: _common([getattr(ss.border(r), s).style for s in BORDER_SIDES[:4]]),
    _set_all_sides("style"),
)


def _side_properties(side: str) -> None:
    def get_side(ss: StyleSheet, r: StyleRecord) -> dict[str, Any] | None:
        border = ss.border(r)
        return _side_dict(getattr(border, side), border if side == "diagonal" else None)

    def set_side(ss: StyleSheet, r: StyleRecord, value: Any) -> StyleRecord:
        return ss.with_border(r, _set_side(ss.border(r), side, value))

    def get_color(ss: StyleSheet, r: StyleRecord) -> dict[str, Any] | None:
        return _color_dict(getattr(ss.border(r), side).color)

    def set_color(ss: StyleSheet, r: StyleRecord, value: Any) -> StyleRecord:
        border = ss.border(r)
        return ss.with_border(r, replace(border, **{side: replace(getattr(border, side), color=Color.coerce(value))}))

    def get_style(ss: StyleSheet, r: StyleRecord) -> str | None:
        return getattr(ss.border(r), side).style

    def set_style(ss: StyleSheet, r: StyleRecord, value: Any) -> StyleRecord:
        border = ss.border(r)
        return ss.with_border(r, replace(border, **{side: replace(getattr(border, side), style=value)}))

    _register(f"{side}_border", get_side, set_side)
    _register(f"{side}_border_color", get_color, set_color)
    _register(f"{side}_border_style", get_style, set_style)


for _side in BORDER_SIDES:
    _side_properties(_side)

_register(
    "diagonal_border_direction",
    lambda ss, r: _diagonal_direction(ss.border(r)),
    lambda ss, r, v: ss.with_border(r, _with_direction(ss.border(r), v)),
)


# -- number format / protection ---------------------------------------------
def _set_number_format(ss: StyleSheet, r: StyleRecord, value: Any) -> StyleRecord:
    if value is None:
        return replace(r, num_fmt_id=0)
    if isinstance(value, int) and not isinstance(value, bool):
        return replace(r, num_fmt_id=value)
    return replace(r, num_fmt_id=ss.get_number_format_id(str(value)))


_register(
    "number_format",
    lambda ss, r: ss.get_number_format_code(r.num_fmt_id) or "General",
    _set_number_format,
)


def _with_protection(r: StyleRecord, **changes: Any) -> StyleRecord:
    protection = replace(r.protection or Protection(), **changes)
    return replace(r, protection=None if protection == Protection() else protection)


_register(
    "locked",
    lambda ss, r: (r.protection or Protection()).locked,
    lambda ss, r, v: _with_protection(r, locked=bool(v)),
)
_register(
    "hidden",
    lambda ss, r: (r.protection or Protection()).hidden,
    lambda ss, r, v: _with_protection(r, hidden=bool(v)),
)
_register(
    "quote_prefix",
    lambda ss, r: r.quote_prefix,
    lambda ss, r, v: replace(r, quote_prefix=bool(v)),
)
