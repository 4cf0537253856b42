"""``[Content_Types].xml``: default and override content types."""

from __future__ import annotations

import posixpath

from lxml import etree

from xlmodel.io.xml import CT_NS, findall, new_root, sub

CT_WORKBOOK = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet.main+xml"
CT_WORKBOOK_MACRO = "application/vnd.ms-excel.sheet.macroEnabled.main+xml"
CT_WORKSHEET = "application/vnd.openxmlformats-officedocument.spreadsheetml.worksheet+xml"
CT_SHARED_STRINGS = "application/vnd.openxmlformats-officedocument.spreadsheetml.sharedStrings+xml"
CT_STYLES = "application/vnd.openxmlformats-officedocument.spreadsheetml.styles+xml"
CT_CALC_CHAIN = "application/vnd.openxmlformats-officedocument.spreadsheetml.calcChain+xml"
CT_CORE_PROPERTIES = "application/vnd.openxmlformats-package.core-properties+xml"
CT_RELATIONSHIPS = "application/vnd.openxmlformats-package.relationships+xml"
CT_XML = "application/xml"


class ContentTypes:
    def __init__(self, root: etree._Element | None = None) -> None:
        self.defaults: dict[str, str] = {}
        self.overrides: dict[str, str] = {}
        if root is not None:
            for el in findall(root, "Default", CT_NS):
                self.defaults[el.get("Extension").lower()] = el.get("ContentType")
            for el in findall(root, "Override", CT_NS):
                self.overrides[el.get("PartName").lstrip("/")] = el.get("ContentType")
        self.defaults.setdefault("rels", CT_RELATIONSHIPS)
        self.defaults.setdefault("xml", CT_XML)

    def get(self, part_name: str) -> str | None:
        part_name = part_name.lstrip("/")
        if part_name in self.overrides:
            return self.overrides[part_name]
        ext = posixpath.splitext(part_name)[1].lstrip(".").lower()
        return self.defaults.get(ext)

    def find_parts(self, content_type: str) -> list[str]:
        return [part for part, ct in self.overrides.items() if ct == content_type]

    def add_override(self, part_name: str, content_type: str) -> None:
        self.overrides[part_name.lstrip("/")] = content_type

    def remove_override(self, part_name: str) -> None:
        self.overrides.pop(part_name.lstrip("/"), None)

    def to_xml(self) -> etree._Element:
        root = new_root("Types", CT_NS)
        for ext, ct in self.defaults.items():
            sub(root, "Default", {"Extension": ext, "ContentType": ct}, ns=CT_NS)
        for part, ct in self.overrides.items():
            sub(root, "Override", {"PartName": f"/{part}", "ContentType": ct}, ns=CT_NS)
        return root
