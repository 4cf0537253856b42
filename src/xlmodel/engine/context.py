"""WorkbookContext: loads a workbook file, provides metadata and fingerprint."""

from __future__ import annotations

from pathlib import Path

from xlmodel.contracts.common import Target
from xlmodel.contracts.errors import InvalidAddress, PackageError, WorkbookCorruptError
from xlmodel.contracts.responses import NamedRangeMeta, SheetMeta, WorkbookMeta
from xlmodel.engine.address import parse_address
from xlmodel.engine.sheet import Sheet
from xlmodel.engine.workbook import Workbook, from_blank, from_file
from xlmodel.io.fileops import atomic_write, fingerprint


class WorkbookContext:
    """Wraps a :class:`Workbook` loaded from disk with metadata and helper methods."""

    @classmethod
    def create(
        cls,
        path: str | Path,
        *,
        sheets: list[str] | None = None,
        password: str | None = None,
    ) -> "WorkbookContext":
        """Create a new workbook file. Raises FileExistsError if path exists."""
        p = Path(path).resolve()
        if p.exists():
            raise FileExistsError(f"File already exists: {p}")
        wb = from_blank()
        if sheets:
            wb.sheets()[0].name = sheets[0]
            for name in sheets[1:]:
                wb.add_sheet(name)
        wb.to_file(p, password)
        return cls(p, password=password)

    def __init__(self, path: str | Path, *, password: str | None = None) -> None:
        self.path = Path(path).resolve()
        if not self.path.exists():
            raise FileNotFoundError(f"Workbook not found: {self.path}")
        self.password = password
        self.fp = fingerprint(self.path)
        try:
            self.wb: Workbook = from_file(self.path, password)
        except WorkbookCorruptError:
            raise
        except PackageError as e:
            raise WorkbookCorruptError(f"Cannot open workbook {self.path}: {e.message}", details=e.details) from e

    def target(self, **overrides: str | None) -> Target:
        t = Target(file=str(self.path))
        for k, v in overrides.items():
            if v is not None:
                setattr(t, k, v)
        return t

    def get_workbook_meta(self) -> WorkbookMeta:
        sheets: list[SheetMeta] = []
        names: list[NamedRangeMeta] = []
        for idx, ws in enumerate(self.wb.sheets()):
            used = ws.used_range()
            autofilter = ws.autofilter_range
            sheets.append(SheetMeta(
                name=ws.name,
                index=idx,
                visible=ws.visibility.value,
                active=ws.active,
                used_range=used.address() if used else None,
                merged_ranges=[r.address() for r in ws.merged_ranges()],
                autofilter=autofilter.address() if autofilter else None,
            ))
            for entry in ws._defined_names.values():
                names.append(NamedRangeMeta(name=entry.name, scope=ws.name, ref=entry.ref))

        for entry in self.wb._defined_names.values():
            names.append(NamedRangeMeta(name=entry.name, scope="workbook", ref=entry.ref))

        return WorkbookMeta(
            path=str(self.path),
            fingerprint=self.fp,
            active_sheet=self.wb.active_sheet.name,
            sheets=sheets,
            names=names,
            properties={k: str(v) for k, v in self.wb._core.as_dict().items()},
        )

    def list_sheets(self) -> list[SheetMeta]:
        return self.get_workbook_meta().sheets

    def get_sheet(self, name: str) -> Sheet:
        sheet = self.wb.sheet(name)
        if sheet is None:
            raise KeyError(f"Sheet not found: {name}")
        return sheet

    def resolve_ref(self, ref: str) -> tuple[Sheet, str]:
        """Split ``Sheet1!B2`` into the sheet and its sheet-local address."""
        address = parse_address(ref)
        if address.sheet_name is None:
            raise InvalidAddress(f"Ref must include sheet name (e.g. Sheet1!B2): {ref!r}")
        return self.get_sheet(address.sheet_name), address.without_sheet().format()

    def save(self, path: str | Path | None = None) -> bytes:
        """Serialize the workbook. Optionally write it atomically to a path."""
        data = self.wb.output("bytes", self.password)
        if path:
            atomic_write(path, data)
        return data

    def close(self) -> None:
        self.wb = None  # type: ignore[assignment]
