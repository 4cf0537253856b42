"""Exception taxonomy for the workbook object model.

Every failure raised by the model derives from :class:`XlModelError` and
carries a machine-readable ``code``. The CLI maps these codes onto exit
codes (see ``xlmodel.engine.dispatcher``).

Hierarchy::

    XlModelError
    ├── InvalidAddress      (also ValueError)
    ├── OutOfBounds         (also IndexError)
    ├── NameConflict
    ├── InvalidOperation
    ├── ShapeMismatch
    ├── OverlapError
    ├── DecryptionError
    ├── PackageError
    │   └── WorkbookCorruptError
    └── WorkbookLocked
"""

from __future__ import annotations

from typing import Any


class XlModelError(Exception):
    """Base class for all object-model errors."""

    code = "ERR_INTERNAL"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidAddress(XlModelError, ValueError):
    """Raised for malformed cell, range, row or column addresses."""

    code = "ERR_ADDRESS_INVALID"


class OutOfBounds(XlModelError, IndexError):
    """Raised when a row/column number or sheet position is out of range."""

    code = "ERR_RANGE_OUT_OF_BOUNDS"


class NameConflict(XlModelError):
    """Raised for duplicate or invalid sheet and defined names."""

    code = "ERR_NAME_CONFLICT"


class InvalidOperation(XlModelError):
    """Raised for operations that are illegal in the current state."""

    code = "ERR_INVALID_OPERATION"


class ShapeMismatch(XlModelError):
    """Raised when a 2D value grid does not match the target rectangle."""

    code = "ERR_SHAPE_MISMATCH"


class OverlapError(XlModelError):
    """Raised when a merged region would overlap an existing one."""

    code = "ERR_MERGE_CONFLICT"


class DecryptionError(XlModelError):
    """Raised when an encrypted package cannot be decrypted."""

    code = "ERR_DECRYPTION_FAILED"


class PackageError(XlModelError):
    """Raised for corrupt archives or missing required package parts."""

    code = "ERR_PACKAGE_CORRUPT"


class WorkbookCorruptError(PackageError):
    """Raised when a workbook file cannot be opened from disk."""

    code = "ERR_WORKBOOK_CORRUPT"


class WorkbookLocked(XlModelError):
    """Raised when another process holds the workbook's sidecar lock."""

    code = "ERR_LOCK_HELD"
