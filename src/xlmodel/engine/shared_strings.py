"""Shared strings table (``xl/sharedStrings.xml``)."""

from __future__ import annotations

import copy
import logging

from lxml import etree

from xlmodel.contracts.errors import PackageError
from xlmodel.io.xml import findall, new_root, set_text, sub, text_of

logger = logging.getLogger(__name__)


class SharedStrings:
    """Index <-> text table.

    Rich-text items (``<si>`` with ``<r>`` runs or phonetic data) are kept by
    their plain text, so a cell whose string was not changed is written back
    with its original formatting runs.
    """

    def __init__(self, root: etree._Element | None = None) -> None:
        self._strings: list[str] = []
        self._index: dict[str, int] = {}
        self._rich: dict[str, etree._Element] = {}
        self._references = 0
        if root is not None:
            for si in findall(root, "si"):
                text = text_of(si)
                self._strings.append(text)
                self._index.setdefault(text, len(self._strings) - 1)
                if len(si) != 1 or etree.QName(si[0]).localname != "t":
                    self._rich.setdefault(text, si)
            logger.debug("Loaded %d shared strings (%d rich)", len(self._strings), len(self._rich))

    def __len__(self) -> int:
        return len(self._strings)

    def get(self, index: int) -> str:
        try:
            return self._strings[index]
        except IndexError:
            raise PackageError(f"Shared string index {index} out of range") from None

    def reset(self) -> None:
        """Start a fresh table for serialization; rich items are retained."""
        self._strings = []
        self._index = {}
        self._references = 0

    def intern(self, text: str) -> int:
        self._references += 1
        existing = self._index.get(text)
        if existing is not None:
            return existing
        self._strings.append(text)
        self._index[text] = len(self._strings) - 1
        return len(self._strings) - 1

    def to_xml(self) -> etree._Element:
        root = new_root("sst")
        root.set("count", str(self._references))
        root.set("uniqueCount", str(len(self._strings)))
        for text in self._strings:
            rich = self._rich.get(text)
            if rich is not None:
                root.append(copy.deepcopy(rich))
            else:
                set_text(sub(sub(root, "si"), "t"), text)
        return root
