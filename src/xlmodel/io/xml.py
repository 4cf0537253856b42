"""XML layer: lxml parsing/serialization and node helpers.

lxml is used instead of ElementTree so namespace prefixes declared by the
original producer survive a load/save cycle.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from lxml import etree

from xlmodel.contracts.errors import PackageError

MAIN_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"
REL_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
PKG_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
CT_NS = "http://schemas.openxmlformats.org/package/2006/content-types"
CORE_NS = "http://schemas.openxmlformats.org/package/2006/metadata/core-properties"
DC_NS = "http://purl.org/dc/elements/1.1/"
DCTERMS_NS = "http://purl.org/dc/terms/"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
XML_NS = "http://www.w3.org/XML/1998/namespace"

_PARSER = etree.XMLParser(resolve_entities=False, remove_blank_text=False, huge_tree=True)


def qn(tag: str, ns: str = MAIN_NS) -> str:
    """Return the Clark-notation name ``{ns}tag``."""
    return f"{{{ns}}}{tag}"


def r_qn(tag: str) -> str:
    return qn(tag, REL_NS)


def local_name(el: etree._Element) -> str:
    return etree.QName(el).localname


def parse_xml(data: bytes, part_name: str = "") -> etree._Element:
    """Parse a package part into an element tree root."""
    try:
        return etree.fromstring(data, parser=_PARSER)
    except etree.XMLSyntaxError as e:
        raise PackageError(f"Malformed XML in part {part_name or '<unknown>'}: {e}") from e


def serialize_xml(root: etree._Element) -> bytes:
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", standalone=True)


def new_root(tag: str, ns: str = MAIN_NS, nsmap: dict | None = None) -> etree._Element:
    return etree.Element(qn(tag, ns), nsmap=nsmap or {None: ns})


def sub(parent: etree._Element, tag: str, attrib: dict | None = None, ns: str = MAIN_NS) -> etree._Element:
    el = etree.SubElement(parent, qn(tag, ns))
    for k, v in (attrib or {}).items():
        if v is not None:
            el.set(k, str(v))
    return el


def make(tag: str, attrib: dict | None = None, ns: str = MAIN_NS) -> etree._Element:
    """Detached element; its default namespace merges into the parent on insert."""
    el = etree.Element(qn(tag, ns), nsmap={None: ns})
    for k, v in (attrib or {}).items():
        if v is not None:
            el.set(k, str(v))
    return el


def find(parent: etree._Element, tag: str, ns: str = MAIN_NS) -> etree._Element | None:
    return parent.find(qn(tag, ns))


def findall(parent: etree._Element, tag: str, ns: str = MAIN_NS) -> list[etree._Element]:
    return parent.findall(qn(tag, ns))


def remove(el: etree._Element | None) -> None:
    if el is not None and el.getparent() is not None:
        el.getparent().remove(el)


def remove_all(parent: etree._Element, tags: Iterable[str], ns: str = MAIN_NS) -> None:
    for tag in tags:
        for el in parent.findall(qn(tag, ns)):
            parent.remove(el)


def insert_in_order(parent: etree._Element, child: etree._Element, order: Sequence[str]) -> etree._Element:
    """Insert ``child`` before the first sibling that comes later in ``order``.

    ``order`` lists local names in schema sequence; unknown siblings are
    treated as coming after everything in the list.
    """
    name = local_name(child)
    rank = order.index(name)
    for i, sibling in enumerate(parent):
        if not isinstance(sibling.tag, str):
            continue
        sibling_name = local_name(sibling)
        sibling_rank = order.index(sibling_name) if sibling_name in order else len(order)
        if sibling_rank > rank:
            parent.insert(i, child)
            return child
    parent.append(child)
    return child


def get_or_create(parent: etree._Element, tag: str, order: Sequence[str], ns: str = MAIN_NS) -> etree._Element:
    el = parent.find(qn(tag, ns))
    if el is None:
        el = insert_in_order(parent, make(tag, ns=ns), order)
    return el


def get_bool(el: etree._Element | None, attr: str, default: bool = False) -> bool:
    """Read an xsd:boolean attribute."""
    if el is None:
        return default
    value = el.get(attr)
    if value is None:
        return default
    return value in ("1", "true")


def set_bool(el: etree._Element, attr: str, value: bool | None, default: bool | None = None) -> None:
    """Write an xsd:boolean attribute, removing it when equal to ``default``."""
    if value is None or value == default:
        el.attrib.pop(attr, None)
    else:
        el.set(attr, "1" if value else "0")


def text_of(el: etree._Element | None) -> str:
    """Concatenate the ``<t>`` text of a string item (plain or rich text)."""
    if el is None:
        return ""
    t = el.find(qn("t"))
    if t is not None and len(el) == 1:
        return t.text or ""
    parts = []
    for run_text in el.iter(qn("t")):
        parent = run_text.getparent()
        # Phonetic runs are not part of the displayed text.
        if parent is not None and local_name(parent) == "rPh":
            continue
        parts.append(run_text.text or "")
    return "".join(parts)


def set_text(el: etree._Element, text: str) -> None:
    el.text = text
    if text != text.strip() or "\n" in text:
        el.set(qn("space", XML_NS), "preserve")
