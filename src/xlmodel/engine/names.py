"""Defined names and the naming rules for sheets and names."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from xlmodel.contracts.errors import InvalidAddress, NameConflict
from xlmodel.engine.address import parse_cell_address

MAX_SHEET_NAME = 31
MAX_DEFINED_NAME = 255

_SHEET_NAME_FORBIDDEN = set("\\/*[]:?")
_DEFINED_NAME_RE = re.compile(r"^[A-Za-z_\\][A-Za-z0-9_.\\?]*$")
_R1C1_RE = re.compile(r"^[Rr](\d*)[Cc]?(\d*)$|^[Cc]\d*$")

FILTER_DATABASE = "_xlnm._FilterDatabase"


@dataclass
class DefinedName:
    """A name bound to a formula text (``Sheet1!$A$1:$B$4``, ``0.2``, ...)."""

    name: str
    ref: str
    hidden: bool = False
    attrs: dict[str, str] = field(default_factory=dict)


def validate_sheet_name(name: str) -> str:
    if not isinstance(name, str) or not name:
        raise NameConflict("Sheet name must be a non-empty string")
    if len(name) > MAX_SHEET_NAME:
        raise NameConflict(f"Sheet name {name!r} is longer than {MAX_SHEET_NAME} characters")
    bad = sorted(set(name) & _SHEET_NAME_FORBIDDEN)
    if bad:
        raise NameConflict(f"Sheet name {name!r} contains forbidden characters: {''.join(bad)}")
    if name.startswith("'") or name.endswith("'"):
        raise NameConflict(f"Sheet name {name!r} may not begin or end with an apostrophe")
    return name


def validate_defined_name(name: str) -> str:
    if not isinstance(name, str) or not name or len(name) > MAX_DEFINED_NAME:
        raise NameConflict(f"Invalid defined name: {name!r}")
    if not _DEFINED_NAME_RE.match(name) or _R1C1_RE.match(name):
        raise NameConflict(f"Invalid defined name: {name!r}")
    try:
        parse_cell_address(name)
    except InvalidAddress:
        return name
    raise NameConflict(f"Defined name {name!r} looks like a cell reference")
