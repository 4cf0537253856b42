"""Pydantic response models and the error taxonomy."""

from xlmodel.contracts.common import (
    ChangeRecord,
    ErrorDetail,
    Metrics,
    ResponseEnvelope,
    Target,
    WarningDetail,
)
from xlmodel.contracts.errors import (
    DecryptionError,
    InvalidAddress,
    InvalidOperation,
    NameConflict,
    OutOfBounds,
    OverlapError,
    PackageError,
    ShapeMismatch,
    WorkbookCorruptError,
    WorkbookLocked,
    XlModelError,
)
from xlmodel.contracts.responses import (
    CellMeta,
    FindMatch,
    NamedRangeMeta,
    SheetMeta,
    WorkbookMeta,
)

__all__ = [
    "CellMeta",
    "ChangeRecord",
    "DecryptionError",
    "ErrorDetail",
    "FindMatch",
    "InvalidAddress",
    "InvalidOperation",
    "Metrics",
    "NameConflict",
    "NamedRangeMeta",
    "OutOfBounds",
    "OverlapError",
    "PackageError",
    "ResponseEnvelope",
    "SheetMeta",
    "ShapeMismatch",
    "Target",
    "WarningDetail",
    "WorkbookCorruptError",
    "WorkbookLocked",
    "WorkbookMeta",
    "XlModelError",
]
