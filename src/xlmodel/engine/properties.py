"""Core document properties (``docProps/core.xml``)."""

from __future__ import annotations

import datetime
from typing import Any

from lxml import etree

from xlmodel.io.xml import CORE_NS, DC_NS, DCTERMS_NS, XSI_NS, new_root, qn

CORE_PART = "docProps/core.xml"

# python name -> (namespace, element name)
_PROPERTIES: dict[str, tuple[str, str]] = {
    "title": (DC_NS, "title"),
    "subject": (DC_NS, "subject"),
    "creator": (DC_NS, "creator"),
    "keywords": (CORE_NS, "keywords"),
    "description": (DC_NS, "description"),
    "last_modified_by": (CORE_NS, "lastModifiedBy"),
    "category": (CORE_NS, "category"),
    "content_status": (CORE_NS, "contentStatus"),
    "identifier": (DC_NS, "identifier"),
    "language": (DC_NS, "language"),
    "revision": (CORE_NS, "revision"),
    "version": (CORE_NS, "version"),
    "created": (DCTERMS_NS, "created"),
    "modified": (DCTERMS_NS, "modified"),
    "last_printed": (CORE_NS, "lastPrinted"),
}
_DATES = {"created", "modified", "last_printed"}
_W3CDTF = {"created", "modified"}

_NSMAP = {
    "cp": CORE_NS,
    "dc": DC_NS,
    "dcterms": DCTERMS_NS,
    "dcmitype": "http://purl.org/dc/dcmitype/",
    "xsi": XSI_NS,
}


def _format_date(value: datetime.datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat() + "Z"


def _parse_date(text: str) -> datetime.datetime | str:
    try:
        return datetime.datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text


class CoreProperties:
    """Named access to the core properties part."""

    def __init__(self, root: etree._Element | None = None) -> None:
        self.root = root if root is not None else new_root("coreProperties", CORE_NS, nsmap=_NSMAP)

    @staticmethod
    def names() -> list[str]:
        return list(_PROPERTIES)

    def _element_for(self, name: str) -> tuple[str, str]:
        try:
            return _PROPERTIES[name]
        except KeyError:
            raise ValueError(f"Unknown document property: {name!r}") from None

    def get(self, name: str) -> Any:
        ns, tag = self._element_for(name)
        el = self.root.find(qn(tag, ns))
        if el is None or el.text is None:
            return None
        if name in _DATES:
            return _parse_date(el.text)
        return el.text

    def set(self, name: str, value: Any) -> None:
        ns, tag = self._element_for(name)
        el = self.root.find(qn(tag, ns))
        if value is None:
            if el is not None:
                self.root.remove(el)
            return
        if el is None:
            el = etree.SubElement(self.root, qn(tag, ns))
        if name in _DATES and isinstance(value, datetime.datetime):
            el.text = _format_date(value)
        else:
            el.text = str(value)
        if name in _W3CDTF:
            el.set(qn("type", XSI_NS), "dcterms:W3CDTF")

    def as_dict(self) -> dict[str, Any]:
        return {name: value for name in _PROPERTIES if (value := self.get(name)) is not None}


class Properties:
    """Attribute-style view over :class:`CoreProperties` (``wb.properties.title``)."""

    def __init__(self, core: CoreProperties) -> None:
        object.__setattr__(self, "_core", core)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._core.get(name)
        except ValueError as e:
            raise AttributeError(str(e)) from None

    def __setattr__(self, name: str, value: Any) -> None:
        self._core.set(name, value)

    def __repr__(self) -> str:
        return f"Properties({self._core.as_dict()!r})"
