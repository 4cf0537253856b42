"""xlmodel: an object model for reading, editing and writing .xlsx workbooks."""

from xlmodel.contracts.errors import (
    DecryptionError,
    InvalidAddress,
    InvalidOperation,
    NameConflict,
    OutOfBounds,
    OverlapError,
    PackageError,
    ShapeMismatch,
    XlModelError,
)
from xlmodel.engine.formula import FormulaError
from xlmodel.engine.sheet import SheetVisibility
from xlmodel.engine.values import date_to_number, number_to_date
from xlmodel.engine.workbook import (
    MIME_TYPE,
    Workbook,
    from_blank,
    from_blank_async,
    from_data,
    from_data_async,
    from_file,
    from_file_async,
)
from xlmodel.io.package import OutputType

__version__ = "0.1.0"

__all__ = [
    "DecryptionError",
    "FormulaError",
    "InvalidAddress",
    "InvalidOperation",
    "MIME_TYPE",
    "NameConflict",
    "OutOfBounds",
    "OutputType",
    "OverlapError",
    "PackageError",
    "ShapeMismatch",
    "SheetVisibility",
    "Workbook",
    "XlModelError",
    "__version__",
    "date_to_number",
    "from_blank",
    "from_blank_async",
    "from_data",
    "from_data_async",
    "from_file",
    "from_file_async",
    "number_to_date",
]
