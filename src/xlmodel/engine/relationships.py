"""Package relationships (``*.rels`` parts)."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass

from lxml import etree

from xlmodel.io.xml import PKG_REL_NS, findall, new_root, sub

_DOC = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"

RT_OFFICE_DOCUMENT = f"{_DOC}/officeDocument"
RT_WORKSHEET = f"{_DOC}/worksheet"
RT_CHARTSHEET = f"{_DOC}/chartsheet"
RT_SHARED_STRINGS = f"{_DOC}/sharedStrings"
RT_STYLES = f"{_DOC}/styles"
RT_THEME = f"{_DOC}/theme"
RT_HYPERLINK = f"{_DOC}/hyperlink"
RT_CALC_CHAIN = f"{_DOC}/calcChain"
RT_EXTENDED_PROPERTIES = f"{_DOC}/extended-properties"
RT_CORE_PROPERTIES = "http://schemas.openxmlformats.org/package/2006/relationships/metadata/core-properties"


@dataclass
class Relationship:
    id: str
    type: str
    target: str
    target_mode: str | None = None

    @property
    def external(self) -> bool:
        return self.target_mode == "External"


def rels_part_for(part_name: str) -> str:
    """``xl/workbook.xml`` -> ``xl/_rels/workbook.xml.rels``."""
    directory, name = posixpath.split(part_name)
    return posixpath.join(directory, "_rels", f"{name}.rels")


def resolve_target(source_part: str, target: str) -> str:
    """Resolve a relationship target to a package path without leading ``/``.

    Targets are relative to the source part's directory unless absolute.
    """
    if target.startswith("/"):
        return target.lstrip("/")
    return posixpath.normpath(posixpath.join(posixpath.dirname(source_part), target))


def relative_target(source_part: str, target_part: str) -> str:
    return posixpath.relpath(target_part, posixpath.dirname(source_part) or ".")


class Relationships:
    """Ordered relationship list of one source part."""

    def __init__(self, root: etree._Element | None = None) -> None:
        self.items: list[Relationship] = []
        if root is not None:
            for el in findall(root, "Relationship", PKG_REL_NS):
                self.items.append(Relationship(
                    id=el.get("Id"),
                    type=el.get("Type"),
                    target=el.get("Target"),
                    target_mode=el.get("TargetMode"),
                ))

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def get(self, rid: str) -> Relationship | None:
        for rel in self.items:
            if rel.id == rid:
                return rel
        return None

    def find_by_type(self, rel_type: str) -> list[Relationship]:
        return [rel for rel in self.items if rel.type == rel_type]

    def next_id(self) -> str:
        used = {rel.id for rel in self.items}
        n = len(self.items) + 1
        while f"rId{n}" in used:
            n += 1
        return f"rId{n}"

    def add(self, rel_type: str, target: str, target_mode: str | None = None) -> Relationship:
        rel = Relationship(self.next_id(), rel_type, target, target_mode)
        self.items.append(rel)
        return rel

    def remove(self, rid: str) -> None:
        self.items = [rel for rel in self.items if rel.id != rid]

    def remove_type(self, rel_type: str) -> None:
        self.items = [rel for rel in self.items if rel.type != rel_type]

    def to_xml(self) -> etree._Element:
        root = new_root("Relationships", PKG_REL_NS)
        for rel in self.items:
            sub(root, "Relationship", {
                "Id": rel.id,
                "Type": rel.type,
                "Target": rel.target,
                "TargetMode": rel.target_mode,
            }, ns=PKG_REL_NS)
        return root
