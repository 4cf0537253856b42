"""Typer CLI application — top-level commands and subcommand groups."""

from __future__ import annotations

import re
from contextlib import nullcontext
from pathlib import Path
from typing import Annotated, Any, Optional

import orjson
import typer

import xlmodel
from xlmodel.config import get_settings
from xlmodel.contracts.common import ChangeRecord, Target
from xlmodel.contracts.errors import WorkbookCorruptError, XlModelError
from xlmodel.contracts.responses import CellMeta, FindMatch
from xlmodel.engine.dispatcher import (
    envelope_for_error,
    error_envelope,
    exit_code_for,
    print_response,
    success_envelope,
)
from xlmodel.engine.values import value_type
from xlmodel.observe.events import Timer, configure_logging

# ---------------------------------------------------------------------------
# App & subcommand groups
# ---------------------------------------------------------------------------

_MAIN_HELP = """\
Inspect and edit .xlsx workbooks from the command line.

1. `xlmodel wb inspect -f data.xlsx`  — sheets, defined names, properties, fingerprint
2. `xlmodel cell set -f data.xlsx --ref "Sheet1!B2" --value 42 --type number`
3. `xlmodel formula set -f data.xlsx --ref "Sheet1!C2:C10" --formula "=A2*B2"`
4. `xlmodel format style -f data.xlsx --ref "Sheet1!A1:C1" --styles '{"bold": true}'`

**Every command** returns a JSON `ResponseEnvelope`:
`{"ok": bool, "command": "...", "result": {...}, "errors": [...], "warnings": [...], "metrics": {"duration_ms": N, "cells": N}}`

**Ref syntax:** `Sheet1!B2` for a cell, `Sheet1!A1:D10` for a range.

**Safety rails** — mutating commands hold a sidecar lock and support:
- `--dry-run` previews changes without writing
- `--backup` creates a timestamped .bak copy before writing

**Encrypted workbooks:** pass `--password` to read and write them.

**Exit codes:** 0=success, 10=validation, 20=protection, 40=conflict, 50=io, 70=unsupported, 90=internal
"""

_WB_EPILOG = """\
**Examples:**

`xlmodel wb inspect -f data.xlsx`  — sheets, names, properties, fingerprint

`xlmodel wb create -f new.xlsx --sheets Revenue,Summary`

`xlmodel wb lock-status -f data.xlsx`  — check if another process holds a lock
"""

_SHEET_EPILOG = """\
**Examples:**

`xlmodel sheet ls -f data.xlsx`

`xlmodel sheet create -f data.xlsx --name Summary --before Data`

`xlmodel sheet delete -f data.xlsx --name Scratch`
"""

_CELL_EPILOG = """\
**Examples:**

`xlmodel cell get -f data.xlsx --ref "Sheet1!B2"`

`xlmodel cell set -f data.xlsx --ref "Sheet1!B2" --value 42 --type number`

**Ref format:** always include the sheet name — `SheetName!CellRef`.
"""

_RANGE_EPILOG = """\
**Examples:**

`xlmodel range get -f data.xlsx --ref "Sheet1!A1:D10"`  — values as rows
"""

_FORMULA_EPILOG = """\
**Examples:**

`xlmodel formula set -f data.xlsx --ref "Sheet1!E2" --formula "=C2-D2"`

`xlmodel formula set -f data.xlsx --ref "Sheet1!E2:E100" --formula "=C2-D2"`  — shared across the range
"""

_FORMAT_EPILOG = """\
**Examples:**

`xlmodel format style -f data.xlsx --ref "Sheet1!A1:D1" --styles '{"bold": true, "fill": "FFFF00"}'`

`xlmodel format style -f data.xlsx --ref "Sheet1!C2:C100" --styles '{"number_format": "0.00%"}'`
"""

app = typer.Typer(
    name="xlmodel",
    help=_MAIN_HELP,
    no_args_is_help=True,
    rich_markup_mode="markdown",
)

wb_app = typer.Typer(
    name="wb", help="Workbook-level inspection, creation and lock status.",
    epilog=_WB_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
sheet_app = typer.Typer(
    name="sheet", help="List, create and delete sheets.",
    epilog=_SHEET_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
cell_app = typer.Typer(
    name="cell", help="Read and write individual cell values.",
    epilog=_CELL_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
range_app = typer.Typer(
    name="range", help="Read rectangular ranges.",
    epilog=_RANGE_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
formula_app = typer.Typer(
    name="formula", help="Set single-cell and shared formulas.",
    epilog=_FORMULA_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
format_app = typer.Typer(
    name="format", help="Apply style properties to cells and ranges.",
    epilog=_FORMAT_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)

app.add_typer(wb_app)
app.add_typer(sheet_app)
app.add_typer(cell_app)
app.add_typer(range_app)
app.add_typer(formula_app)
app.add_typer(format_app)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(xlmodel.__version__)
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    version: Annotated[
        bool, typer.Option("--version", "-V", help="Print version and exit.", is_eager=True)
    ] = False,
    log_level: Annotated[
        Optional[str], typer.Option("--log-level", help="Log to stderr at this level (default from XLMODEL_LOG_LEVEL).")
    ] = None,
) -> None:
    if version:
        _version_callback(True)
    configure_logging(log_level or get_settings().log_level)


# Type aliases for common options
FilePath = Annotated[str, typer.Option("--file", "-f", help="Path to .xlsx workbook file")]
PasswordOpt = Annotated[Optional[str], typer.Option("--password", help="Password of an encrypted workbook")]
RefOpt = Annotated[str, typer.Option("--ref", help="Reference as SheetName!Address (e.g. Sheet1!B2)")]
BackupOpt = Annotated[Optional[bool], typer.Option("--backup/--no-backup", help="Create timestamped .bak copy before writing")]
DryRunOpt = Annotated[bool, typer.Option("--dry-run", help="Preview changes without writing to disk")]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _load_ctx(file: str, *, password: str | None = None):
    from xlmodel.engine.context import WorkbookContext
    return WorkbookContext(file, password=password)


def _emit(envelope, code=None):
    print_response(envelope)
    raise typer.Exit(code if code is not None else exit_code_for(envelope))


def _load_ctx_or_emit(file: str, cmd: str, *, password: str | None = None):
    """Load a WorkbookContext, or emit an error envelope."""
    try:
        return _load_ctx(file, password=password)
    except FileNotFoundError:
        env = error_envelope(cmd, "ERR_WORKBOOK_NOT_FOUND", f"File not found: {file}", target=Target(file=file))
        _emit(env)
    except WorkbookCorruptError as e:
        env = error_envelope(cmd, "ERR_WORKBOOK_CORRUPT", str(e), target=Target(file=file))
        _emit(env)


def _emit_failure(cmd: str, exc: Exception, target: Target) -> None:
    """Translate a model error into its envelope and exit."""
    if isinstance(exc, XlModelError):
        _emit(envelope_for_error(cmd, exc, target=target))
    if isinstance(exc, KeyError):
        _emit(error_envelope(cmd, "ERR_SHEET_NOT_FOUND", str(exc.args[0]), target=target))
    _emit(error_envelope(cmd, "ERR_INVALID_ARGUMENT", str(exc), target=target))


def _lock(file: str):
    from xlmodel.io.fileops import WorkbookLock
    return WorkbookLock(file, timeout=get_settings().lock_timeout)


def _save(ctx, file: str, *, backup: bool | None, dry_run: bool) -> str | None:
    """Write the context back unless dry-running. Returns the backup path, if any."""
    if dry_run:
        return None
    backup_path = None
    if backup if backup is not None else get_settings().backup:
        from xlmodel.io.fileops import backup as make_backup
        backup_path = make_backup(file)
    ctx.save(file)
    return backup_path


def _json_value(value: Any) -> Any:
    """Cell values as JSON-friendly scalars."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def _parse_value(value: str, cell_type: str | None) -> Any:
    if cell_type == "number":
        try:
            parsed = float(value)
        except ValueError:
            raise ValueError(f"Not a number: {value!r}") from None
        return int(parsed) if parsed.is_integer() else parsed
    if cell_type == "bool":
        return value.lower() in ("true", "1", "yes")
    return value


# ---------------------------------------------------------------------------
# xlmodel version
# ---------------------------------------------------------------------------
@app.command()
def version():
    """Print the xlmodel version.

    Example: `xlmodel version`
    """
    env = success_envelope("version", {"version": xlmodel.__version__})
    _emit(env)


# ---------------------------------------------------------------------------
# xlmodel wb inspect
# ---------------------------------------------------------------------------
@wb_app.command("inspect")
def wb_inspect(
    file: FilePath,
    password: PasswordOpt = None,
):
    """Inspect workbook structure: sheets, defined names, document properties.

    Returns each sheet's visibility, used range, merged ranges and autofilter,
    plus the active sheet and a SHA-256 fingerprint of the file.

    Example: `xlmodel wb inspect -f data.xlsx`
    """
    target = Target(file=file)
    with Timer() as t:
        try:
            ctx = _load_ctx_or_emit(file, "wb.inspect", password=password)
            meta = ctx.get_workbook_meta()
            ctx.close()
        except XlModelError as e:
            _emit_failure("wb.inspect", e, target)

    env = success_envelope("wb.inspect", meta.model_dump(), target=target, duration_ms=t.elapsed_ms)
    _emit(env)


# ---------------------------------------------------------------------------
# xlmodel wb create
# ---------------------------------------------------------------------------
@wb_app.command("create")
def wb_create(
    file: FilePath,
    sheets: Annotated[Optional[str], typer.Option("--sheets", help="Comma-separated sheet names (e.g. 'Revenue,Summary')")] = None,
    force: Annotated[bool, typer.Option("--force", help="Overwrite file if it already exists")] = False,
    password: Annotated[Optional[str], typer.Option("--password", help="Encrypt the new workbook with this password")] = None,
):
    """Create a new workbook file.

    Errors if the file already exists unless `--force`. Without `--sheets`
    the workbook has one sheet named 'Sheet1'.

    Example: `xlmodel wb create -f report.xlsx --sheets Revenue,Summary,Costs`
    """
    from xlmodel.engine.context import WorkbookContext
    from xlmodel.io.fileops import fingerprint

    p = Path(file).resolve()
    sheet_list = [s.strip() for s in sheets.split(",") if s.strip()] if sheets else None
    target = Target(file=file)

    with Timer() as t:
        if p.exists() and not force:
            env = error_envelope(
                "wb.create", "ERR_FILE_EXISTS",
                f"File already exists: {p}. Use --force to overwrite.",
                target=target,
            )
            _emit(env)

        if p.exists() and force:
            p.unlink()

        try:
            ctx = WorkbookContext.create(p, sheets=sheet_list, password=password)
            meta = ctx.get_workbook_meta()
            ctx.close()
        except XlModelError as e:
            _emit_failure("wb.create", e, target)
        except OSError as e:
            _emit(error_envelope("wb.create", "ERR_IO", str(e), target=target))

    result = {
        "path": str(p),
        "fingerprint": fingerprint(p),
        "sheets": [s.name for s in meta.sheets],
        "encrypted": password is not None,
    }
    env = success_envelope(
        "wb.create", result, target=target,
        changes=[ChangeRecord(type="wb.create", target=str(p))],
        duration_ms=t.elapsed_ms,
    )
    _emit(env)


# ---------------------------------------------------------------------------
# xlmodel wb lock-status
# ---------------------------------------------------------------------------
@wb_app.command("lock-status")
def wb_lock_status_cmd(
    file: FilePath,
):
    """Check if a workbook file is locked by another process.

    Example: `xlmodel wb lock-status -f data.xlsx`
    """
    from xlmodel.io.fileops import check_lock

    with Timer() as t:
        result = check_lock(file)

    env = success_envelope("wb.lock_status", result, target=Target(file=file), duration_ms=t.elapsed_ms)
    _emit(env)


# ---------------------------------------------------------------------------
# xlmodel sheet ls
# ---------------------------------------------------------------------------
@sheet_app.command("ls")
def sheet_ls(
    file: FilePath,
    password: PasswordOpt = None,
):
    """List sheets in order with visibility and used range.

    Example: `xlmodel sheet ls -f data.xlsx`
    """
    target = Target(file=file)
    with Timer() as t:
        try:
            ctx = _load_ctx_or_emit(file, "sheet.ls", password=password)
            sheets = [s.model_dump() for s in ctx.list_sheets()]
            ctx.close()
        except XlModelError as e:
            _emit_failure("sheet.ls", e, target)

    env = success_envelope("sheet.ls", {"sheets": sheets}, target=target, duration_ms=t.elapsed_ms)
    _emit(env)


# ---------------------------------------------------------------------------
# xlmodel sheet create
# ---------------------------------------------------------------------------
@sheet_app.command("create")
def sheet_create(
    file: FilePath,
    name: Annotated[str, typer.Option("--name", "-n", help="Name of the new sheet")],
    before: Annotated[Optional[str], typer.Option("--before", help="Insert before this sheet (default: at the end)")] = None,
    password: PasswordOpt = None,
    backup: BackupOpt = None,
    dry_run: DryRunOpt = False,
):
    """Add an empty sheet. Mutating.

    Example: `xlmodel sheet create -f data.xlsx --name Summary --before Data`
    """
    target = Target(file=file, sheet=name)
    with Timer() as t:
        try:
            with _lock(file):
                ctx = _load_ctx_or_emit(file, "sheet.create", password=password)
                sheet = ctx.wb.add_sheet(name, before)
                index = sheet.index
                backup_path = _save(ctx, file, backup=backup, dry_run=dry_run)
                ctx.close()
        except (XlModelError, KeyError, ValueError) as e:
            _emit_failure("sheet.create", e, target)

    env = success_envelope(
        "sheet.create",
        {"name": name, "index": index, "dry_run": dry_run, "backup_path": backup_path},
        target=target,
        changes=[ChangeRecord(type="sheet.create", target=name, after={"index": index})],
        duration_ms=t.elapsed_ms,
    )
    _emit(env)


# ---------------------------------------------------------------------------
# xlmodel sheet delete
# ---------------------------------------------------------------------------
@sheet_app.command("delete")
def sheet_delete(
    file: FilePath,
    name: Annotated[str, typer.Option("--name", "-n", help="Sheet to delete")],
    password: PasswordOpt = None,
    backup: BackupOpt = None,
    dry_run: DryRunOpt = False,
):
    """Delete a sheet. Mutating.

    The last visible sheet cannot be deleted. When the active sheet is
    deleted, the neighbouring visible sheet becomes active.

    Example: `xlmodel sheet delete -f data.xlsx --name Scratch --backup`
    """
    target = Target(file=file, sheet=name)
    with Timer() as t:
        try:
            with _lock(file):
                ctx = _load_ctx_or_emit(file, "sheet.delete", password=password)
                ctx.wb.delete_sheet(ctx.get_sheet(name))
                active = ctx.wb.active_sheet.name
                backup_path = _save(ctx, file, backup=backup, dry_run=dry_run)
                ctx.close()
        except (XlModelError, KeyError) as e:
            _emit_failure("sheet.delete", e, target)

    env = success_envelope(
        "sheet.delete",
        {"name": name, "active_sheet": active, "dry_run": dry_run, "backup_path": backup_path},
        target=target,
        changes=[ChangeRecord(type="sheet.delete", target=name)],
        duration_ms=t.elapsed_ms,
    )
    _emit(env)


# ---------------------------------------------------------------------------
# xlmodel cell get
# ---------------------------------------------------------------------------
@cell_app.command("get")
def cell_get(
    file: FilePath,
    ref: RefOpt,
    password: PasswordOpt = None,
):
    """Read one cell: value, type, formula, number format, hyperlink.

    Example: `xlmodel cell get -f data.xlsx --ref "Sheet1!B2"`
    """
    target = Target(file=file, ref=ref)
    with Timer() as t:
        try:
            ctx = _load_ctx_or_emit(file, "cell.get", password=password)
            sheet, address = ctx.resolve_ref(ref)
            cell = sheet.cell(address)
            meta = CellMeta(
                ref=cell.address(include_sheet_name=True),
                value=_json_value(cell.value),
                type="formula" if cell.formula is not None else value_type(cell.value),
                formula=cell.formula,
                number_format=cell.get_style("number_format"),
                style_id=cell.style_id,
                hyperlink=cell.hyperlink,
            )
            ctx.close()
        except (XlModelError, KeyError) as e:
            _emit_failure("cell.get", e, target)

    env = success_envelope("cell.get", meta.model_dump(), target=target, duration_ms=t.elapsed_ms, cells=1)
    _emit(env)


# ---------------------------------------------------------------------------
# xlmodel cell set
# ---------------------------------------------------------------------------
@cell_app.command("set")
def cell_set(
    file: FilePath,
    ref: RefOpt,
    value: Annotated[str, typer.Option("--value", help="Value to write (coerced according to --type)")],
    cell_type: Annotated[Optional[str], typer.Option("--type", help="Value type: 'number', 'text', or 'bool'")] = None,
    password: PasswordOpt = None,
    backup: BackupOpt = None,
    dry_run: DryRunOpt = False,
):
    """Set a cell value. Mutating.

    `--type number` parses the value as a number, `bool` parses true/false/1/0,
    `text` (the default) keeps it as a string. Any formula in the cell is replaced.

    Example: `xlmodel cell set -f data.xlsx --ref "Sheet1!B2" --value 42 --type number`
    """
    target = Target(file=file, ref=ref)
    with Timer() as t:
        try:
            parsed = _parse_value(value, cell_type)
            with _lock(file):
                ctx = _load_ctx_or_emit(file, "cell.set", password=password)
                sheet, address = ctx.resolve_ref(ref)
                cell = sheet.cell(address)
                before = _json_value(cell.value)
                cell.set_value(parsed)
                backup_path = _save(ctx, file, backup=backup, dry_run=dry_run)
                ctx.close()
        except (XlModelError, KeyError, ValueError) as e:
            _emit_failure("cell.set", e, target)

    env = success_envelope(
        "cell.set",
        {"dry_run": dry_run, "backup_path": backup_path},
        target=target,
        changes=[ChangeRecord(type="cell.set", target=ref, before=before, after=_json_value(parsed))],
        duration_ms=t.elapsed_ms,
        cells=1,
    )
    _emit(env)


# ---------------------------------------------------------------------------
# xlmodel range get
# ---------------------------------------------------------------------------
@range_app.command("get")
def range_get(
    file: FilePath,
    ref: RefOpt,
    password: PasswordOpt = None,
):
    """Read a rectangular range as a list of rows.

    Example: `xlmodel range get -f data.xlsx --ref "Sheet1!A1:D10"`
    """
    target = Target(file=file, ref=ref)
    with Timer() as t:
        try:
            ctx = _load_ctx_or_emit(file, "range.get", password=password)
            sheet, address = ctx.resolve_ref(ref)
            rng = sheet.range(address)
            rows = [[_json_value(v) for v in row] for row in rng.value]
            ctx.close()
        except (XlModelError, KeyError) as e:
            _emit_failure("range.get", e, target)

    result = {"ref": ref, "rows": len(rows), "columns": len(rows[0]) if rows else 0, "values": rows}
    env = success_envelope(
        "range.get", result, target=target, duration_ms=t.elapsed_ms, cells=rng.num_rows * rng.num_columns
    )
    _emit(env)


# ---------------------------------------------------------------------------
# xlmodel formula set
# ---------------------------------------------------------------------------
@formula_app.command("set")
def formula_set(
    file: FilePath,
    ref: RefOpt,
    formula: Annotated[str, typer.Option("--formula", help="Formula text, with or without the leading '='")],
    password: PasswordOpt = None,
    backup: BackupOpt = None,
    dry_run: DryRunOpt = False,
):
    """Set a formula on a cell, or a shared formula across a range. Mutating.

    On a range the formula is written for the top-left cell; the other cells
    get it with relative references shifted.

    Example: `xlmodel formula set -f data.xlsx --ref "Sheet1!E2:E100" --formula "=C2-D2"`
    """
    target = Target(file=file, ref=ref)
    with Timer() as t:
        try:
            with _lock(file):
                ctx = _load_ctx_or_emit(file, "formula.set", password=password)
                sheet, address = ctx.resolve_ref(ref)
                rng = sheet.range(address)
                rng.set_formula(formula)
                cells = rng.num_rows * rng.num_columns
                backup_path = _save(ctx, file, backup=backup, dry_run=dry_run)
                ctx.close()
        except (XlModelError, KeyError) as e:
            _emit_failure("formula.set", e, target)

    env = success_envelope(
        "formula.set",
        {"dry_run": dry_run, "backup_path": backup_path, "shared": cells > 1},
        target=target,
        changes=[ChangeRecord(type="formula.set", target=ref, after=formula, impact={"cells": cells})],
        duration_ms=t.elapsed_ms,
        cells=cells,
    )
    _emit(env)


# ---------------------------------------------------------------------------
# xlmodel format style
# ---------------------------------------------------------------------------
@format_app.command("style")
def format_style(
    file: FilePath,
    ref: RefOpt,
    styles: Annotated[str, typer.Option("--styles", help="JSON object of style properties (e.g. '{\"bold\": true}')")],
    password: PasswordOpt = None,
    backup: BackupOpt = None,
    dry_run: DryRunOpt = False,
):
    """Apply style properties to a cell or range. Mutating.

    Property names: bold, italic, underline, font_size, font_color, fill,
    border, horizontal_alignment, wrap_text, number_format and the rest of
    the style table.

    Example: `xlmodel format style -f data.xlsx --ref "Sheet1!A1:D1" --styles '{"bold": true}'`
    """
    target = Target(file=file, ref=ref)
    with Timer() as t:
        try:
            parsed = orjson.loads(styles)
            if not isinstance(parsed, dict):
                raise ValueError("--styles must be a JSON object")
            with _lock(file):
                ctx = _load_ctx_or_emit(file, "format.style", password=password)
                sheet, address = ctx.resolve_ref(ref)
                rng = sheet.range(address)
                rng.set_styles(parsed)
                cells = rng.num_rows * rng.num_columns
                backup_path = _save(ctx, file, backup=backup, dry_run=dry_run)
                ctx.close()
        except orjson.JSONDecodeError as e:
            _emit(error_envelope("format.style", "ERR_INVALID_ARGUMENT", f"Invalid --styles JSON: {e}", target=target))
        except (XlModelError, KeyError, ValueError) as e:
            _emit_failure("format.style", e, target)

    env = success_envelope(
        "format.style",
        {"dry_run": dry_run, "backup_path": backup_path},
        target=target,
        changes=[ChangeRecord(type="format.style", target=ref, after=parsed, impact={"cells": cells})],
        duration_ms=t.elapsed_ms,
        cells=cells,
    )
    _emit(env)


# ---------------------------------------------------------------------------
# xlmodel find
# ---------------------------------------------------------------------------
@app.command("find")
def find_cmd(
    file: FilePath,
    pattern: Annotated[str, typer.Option("--pattern", "-p", help="Text to search for (case-insensitive substring)")],
    replace: Annotated[Optional[str], typer.Option("--replace", help="Replace every match with this text (mutating)")] = None,
    regex: Annotated[bool, typer.Option("--regex", help="Treat --pattern as a regular expression")] = False,
    sheet: Annotated[Optional[str], typer.Option("--sheet", "-s", help="Limit the search to one sheet")] = None,
    password: PasswordOpt = None,
    backup: BackupOpt = None,
    dry_run: DryRunOpt = False,
):
    """Find cells whose text matches, optionally replacing in place.

    Example: `xlmodel find -f data.xlsx --pattern "acme"`

    Example: `xlmodel find -f data.xlsx --pattern "20(2[0-4])" --regex --replace "FY\\1"`
    """
    target = Target(file=file, sheet=sheet)
    with Timer() as t:
        try:
            compiled: str | re.Pattern[str] = re.compile(pattern) if regex else pattern
        except re.error as e:
            _emit(error_envelope("find", "ERR_PATTERN_INVALID", str(e), target=target))
        try:
            with _lock(file) if replace is not None else nullcontext():
                ctx = _load_ctx_or_emit(file, "find", password=password)
                sheets = [ctx.get_sheet(sheet)] if sheet else ctx.wb.sheets()
                matches = [
                    FindMatch(ref=c.address(include_sheet_name=True), value=_json_value(c.value))
                    for ws in sheets
                    for c in ws.find(compiled, replace)
                ]
                backup_path = None
                if replace is not None and matches:
                    backup_path = _save(ctx, file, backup=backup, dry_run=dry_run)
                ctx.close()
        except (XlModelError, KeyError) as e:
            _emit_failure("find", e, target)

    result = {
        "matches": [m.model_dump() for m in matches],
        "count": len(matches),
        "replaced": replace is not None,
        "dry_run": dry_run,
        "backup_path": backup_path,
    }
    changes = [ChangeRecord(type="cell.replace", target=m.ref, after=m.value) for m in matches] if replace is not None else []
    env = success_envelope(
        "find", result, target=target, changes=changes, duration_ms=t.elapsed_ms, cells=len(matches)
    )
    _emit(env)


# ---------------------------------------------------------------------------
# Entrypoint (console script)
# ---------------------------------------------------------------------------
def main() -> None:
    try:
        app()
    except SystemExit:
        raise
    except Exception as exc:
        # Machine consumers get an envelope instead of a traceback.
        env = error_envelope(
            "unknown",
            "ERR_INTERNAL",
            str(exc),
        )
        print_response(env)
        raise SystemExit(90) from exc


if __name__ == "__main__":
    main()
