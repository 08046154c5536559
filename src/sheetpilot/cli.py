"""Typer CLI application: top-level commands and subcommand groups."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any, Optional

import portalocker
import typer

import sheetpilot
from sheetpilot.config import CONFIG_FILENAME, ConfigError, Settings
from sheetpilot.contracts.common import SheetPilotError, Target
from sheetpilot.engine.dispatcher import (
    envelope_for_error,
    error_envelope,
    exit_code_for,
    print_response,
    success_envelope,
)
from sheetpilot.observe.events import EventEmitter, Timer

# ---------------------------------------------------------------------------
# App & subcommand groups
# ---------------------------------------------------------------------------

_MAIN_HELP = """\
Action engine for spreadsheet workbooks (.xlsx/.xlsm).

**Typical session:**  inspect → context → validate → apply → read

1. `sheetpilot wb inspect -f data.xlsx`  — visible sheets and their used size
2. `sheetpilot sheet context -f data.xlsx`  — detected header row and column labels
3. `sheetpilot validate actions -f data.xlsx --actions '[{"action":"SORT_DATA","params":{"column":"Revenue"}}]'`
4. `sheetpilot apply -f data.xlsx --actions-file actions.yaml`  — one snapshot per step
5. `sheetpilot window read -f data.xlsx -s Sheet1 --rows 1:50 --cols 1:10`

**Every command** returns a JSON `ResponseEnvelope`:
`{"ok": bool, "command": "...", "result": {...}, "errors": [...], "warnings": [...], "metrics": {"duration_ms": N}}`

**Exit codes:** 0=success, 10=validation, 20=action found nothing to act on, 50=io, 90=internal
"""

_APPLY_EPILOG = """\
**Examples:**

`sheetpilot apply -f data.xlsx --actions '{"action":"ADD_COLUMN","params":{"columnName":"Profit","formulaTemplate":"Revenue-Cost"}}'`

`sheetpilot apply -f data.xlsx --actions-file actions.yaml --in-place`

Each successful step writes a new snapshot next to the workbook (unless
`--in-place` or `snapshot_mode: in-place`); the first failing step stops the batch.
"""


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(sheetpilot.__version__)
        raise typer.Exit()


app = typer.Typer(
    name="sheetpilot",
    help=_MAIN_HELP,
    no_args_is_help=True,
    rich_markup_mode="markdown",
)

wb_app = typer.Typer(
    name="wb", help="Workbook-level inspection and status.",
    no_args_is_help=True, rich_markup_mode="markdown",
)
sheet_app = typer.Typer(
    name="sheet", help="Sheet header detection.",
    no_args_is_help=True, rich_markup_mode="markdown",
)
column_app = typer.Typer(
    name="column", help="Locate columns by header text.",
    no_args_is_help=True, rich_markup_mode="markdown",
)
window_app = typer.Typer(
    name="window", help="Read rectangular windows of cell values.",
    no_args_is_help=True, rich_markup_mode="markdown",
)
cell_app = typer.Typer(
    name="cell", help="Write individual cell values.",
    no_args_is_help=True, rich_markup_mode="markdown",
)
validate_app = typer.Typer(
    name="validate", help="Preflight checks for action lists.",
    no_args_is_help=True, rich_markup_mode="markdown",
)

app.add_typer(wb_app)
app.add_typer(sheet_app)
app.add_typer(column_app)
app.add_typer(window_app)
app.add_typer(cell_app)
app.add_typer(validate_app)


@app.callback(invoke_without_command=True)
def _root(
    version: Annotated[
        bool, typer.Option("--version", "-V", help="Print version and exit.", is_eager=True)
    ] = False,
) -> None:
    if version:
        _version_callback(True)


# Type aliases for common options
FilePath = Annotated[str, typer.Option("--file", "-f", help="Workbook path, or a name under storage_root")]
SheetOpt = Annotated[Optional[str], typer.Option("--sheet", "-s", help="Sheet name (defaults to the first sheet)")]
ConfigOpt = Annotated[
    Optional[str], typer.Option("--config", help=f"Settings file (defaults to ./{CONFIG_FILENAME} when present)")
]
ActionsOpt = Annotated[Optional[str], typer.Option("--actions", help="Actions as JSON: one object, an array, or {\"actions\": [...]}")]
ActionsFileOpt = Annotated[Optional[str], typer.Option("--actions-file", help="YAML or JSON file holding the actions")]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _emit(envelope, code=None):
    print_response(envelope)
    raise typer.Exit(code if code is not None else exit_code_for(envelope))


def _settings(config: str | None, cmd: str) -> Settings:
    try:
        if config:
            return Settings.load(config)
        return Settings.load_from_dir(Path.cwd())
    except FileNotFoundError:
        _emit(error_envelope(cmd, "ERR_CONFIG_INVALID", f"Settings file not found: {config}"))
    except ConfigError as e:
        _emit(envelope_for_error(cmd, e))


def _store(settings: Settings, *, in_place: bool = False):
    from sheetpilot.io.store import WorkbookStore

    store = WorkbookStore.from_settings(settings, EventEmitter(enabled=settings.events))
    if in_place:
        store.snapshot_mode = "in-place"
    return store


def _read_actions(cmd: str, file: str, actions: str | None, actions_file: str | None) -> list[Any]:
    from sheetpilot.contracts.actions import parse_actions
    from sheetpilot.engine.batch import load_actions

    target = Target(file=file)
    if bool(actions) == bool(actions_file):
        _emit(error_envelope(cmd, "ERR_USAGE", "Pass exactly one of --actions or --actions-file", target=target))
    try:
        if actions_file:
            return load_actions(actions_file)
        return parse_actions(json.loads(actions))
    except SheetPilotError as e:
        _emit(envelope_for_error(cmd, e, target=target))
    except FileNotFoundError:
        _emit(error_envelope(cmd, "ERR_IO", f"Actions file not found: {actions_file}", target=target))
    except ValueError as e:
        _emit(error_envelope(cmd, "ERR_ACTION_INVALID", f"Cannot parse actions: {e}", target=target))


def _parse_span(text: str, option: str) -> tuple[int, int]:
    """Parse ``"1:50"`` (or a single ``"7"``) into an inclusive span."""
    start, sep, end = text.partition(":")
    try:
        lo = int(start)
        hi = int(end) if sep else lo
    except ValueError:
        raise typer.BadParameter(f"expected START:END integers, got {text!r}", param_hint=option)
    return lo, hi


def _coerce(value: str, cell_type: str | None) -> Any:
    if cell_type == "number":
        try:
            number = float(value)
            return int(number) if number.is_integer() else number
        except ValueError:
            return value
    if cell_type == "bool":
        return value.lower() in ("true", "1", "yes")
    if cell_type == "null":
        return None
    return value


# ---------------------------------------------------------------------------
# sheetpilot version
# ---------------------------------------------------------------------------
@app.command()
def version():
    """Print the sheetpilot version.

    Example: `sheetpilot version`
    """
    env = success_envelope("version", {"version": sheetpilot.__version__})
    _emit(env)


# ---------------------------------------------------------------------------
# sheetpilot wb
# ---------------------------------------------------------------------------
@wb_app.command("inspect")
def wb_inspect(
    file: FilePath,
    config: ConfigOpt = None,
):
    """List the visible sheets of a workbook with their used dimensions.

    Hidden sheets are left out. `sheetId` is the sheet name, which stays
    stable when sheets are reordered.

    Example: `sheetpilot wb inspect -f data.xlsx`
    """
    settings = _settings(config, "wb.inspect")
    with Timer() as t:
        try:
            store = _store(settings)
            with store.session(file) as ctx:
                listing = ctx.list_sheets()
                fp = ctx.fp
        except SheetPilotError as e:
            _emit(envelope_for_error("wb.inspect", e, target=Target(file=file)))

    result = listing.to_wire()
    result["fingerprint"] = fp
    env = success_envelope("wb.inspect", result, target=Target(file=file), duration_ms=t.elapsed_ms)
    _emit(env)


@wb_app.command("lock-status")
def wb_lock_status_cmd(
    file: FilePath,
):
    """Check if a workbook file is locked by another process.

    Example: `sheetpilot wb lock-status -f data.xlsx`
    """
    from sheetpilot.io.fileops import check_lock

    with Timer() as t:
        result = check_lock(file)

    env = success_envelope("wb.lock_status", result, target=Target(file=file), duration_ms=t.elapsed_ms)
    _emit(env)


# ---------------------------------------------------------------------------
# sheetpilot sheet context / column resolve
# ---------------------------------------------------------------------------
@sheet_app.command("context")
def sheet_context_cmd(
    file: FilePath,
    sheet: SheetOpt = None,
    config: ConfigOpt = None,
):
    """Detect the header row and list its column labels.

    The header row is the row within the scan depth holding the most
    distinct text labels (at least two).  A sheet without one returns
    an empty column list.

    Example: `sheetpilot sheet context -f data.xlsx -s Sales`
    """
    from sheetpilot.engine.resolver import detect_sheet_context

    settings = _settings(config, "sheet.context")
    with Timer() as t:
        try:
            with _store(settings).session(file) as ctx:
                ws = ctx.get_sheet(sheet)
                context = detect_sheet_context(ws, settings.scan_depth)
        except SheetPilotError as e:
            _emit(envelope_for_error("sheet.context", e, target=Target(file=file, sheet=sheet)))

    env = success_envelope(
        "sheet.context", context.to_wire(),
        target=Target(file=file, sheet=context.sheet_name),
        duration_ms=t.elapsed_ms,
    )
    _emit(env)


@column_app.command("resolve")
def column_resolve_cmd(
    file: FilePath,
    name: Annotated[str, typer.Option("--name", "-n", help="Header text to look for (case and surrounding spaces ignored)")],
    sheet: SheetOpt = None,
    config: ConfigOpt = None,
):
    """Find the column whose header matches a name.

    Example: `sheetpilot column resolve -f data.xlsx -n "revenue"`
    """
    from sheetpilot.engine.resolver import require_column

    settings = _settings(config, "column.resolve")
    with Timer() as t:
        try:
            with _store(settings).session(file) as ctx:
                ws = ctx.get_sheet(sheet)
                match = require_column(ws, name, settings.scan_depth)
        except SheetPilotError as e:
            _emit(envelope_for_error("column.resolve", e, target=Target(file=file, sheet=sheet)))

    env = success_envelope(
        "column.resolve", match.to_wire(),
        target=Target(file=file, sheet=ws.title, ref=f"{match.column_letter}{match.header_row}"),
        duration_ms=t.elapsed_ms,
    )
    _emit(env)


# ---------------------------------------------------------------------------
# sheetpilot validate actions
# ---------------------------------------------------------------------------
@validate_app.command("actions")
def validate_actions_cmd(
    file: FilePath,
    actions: ActionsOpt = None,
    actions_file: ActionsFileOpt = None,
    sheet: SheetOpt = None,
    config: ConfigOpt = None,
):
    """Check an action list against a workbook without changing it.

    Reports unknown columns, malformed conditions, addresses and
    operations per action.  Columns added by an earlier ADD_COLUMN count
    as present for later actions.

    Example: `sheetpilot validate actions -f data.xlsx --actions-file actions.yaml`
    """
    from sheetpilot.validation.validators import validate_actions

    settings = _settings(config, "validate.actions")
    parsed = _read_actions("validate.actions", file, actions, actions_file)
    with Timer() as t:
        try:
            with _store(settings).session(file) as ctx:
                result = validate_actions(ctx, parsed, sheet_name=sheet, scan_depth=settings.scan_depth)
        except SheetPilotError as e:
            _emit(envelope_for_error("validate.actions", e, target=Target(file=file, sheet=sheet)))

    if result.valid:
        env = success_envelope(
            "validate.actions", result.model_dump(),
            target=Target(file=file, sheet=sheet), duration_ms=t.elapsed_ms,
        )
    else:
        env = error_envelope(
            "validate.actions", "ERR_VALIDATION_FAILED", "One or more actions would fail",
            target=Target(file=file, sheet=sheet), result=result.model_dump(), duration_ms=t.elapsed_ms,
        )
    _emit(env)


# ---------------------------------------------------------------------------
# sheetpilot apply
# ---------------------------------------------------------------------------
@app.command("apply", epilog=_APPLY_EPILOG)
def apply_cmd(
    file: FilePath,
    actions: ActionsOpt = None,
    actions_file: ActionsFileOpt = None,
    sheet: SheetOpt = None,
    in_place: Annotated[bool, typer.Option("--in-place", help="Overwrite the workbook instead of writing snapshots")] = False,
    backup: Annotated[bool, typer.Option("--backup", help="Create timestamped .bak copy before the first step")] = False,
    config: ConfigOpt = None,
):
    """Apply actions in order. Mutating.

    Each step runs against the previous step's result.  The result lists
    every attempted step; `workbook` names the file holding the final
    state.

    Example: `sheetpilot apply -f data.xlsx --actions-file actions.yaml`
    """
    from sheetpilot.engine.batch import execute_batch

    settings = _settings(config, "apply")
    parsed = _read_actions("apply", file, actions, actions_file)
    store = _store(settings, in_place=in_place)
    target = Target(file=file, sheet=sheet)

    with Timer() as t:
        try:
            backup_path = None
            if backup:
                from sheetpilot.io.fileops import backup as make_backup
                backup_path = make_backup(store.resolve(file))
            batch = execute_batch(
                store, file, parsed,
                sheet_name=sheet,
                scan_depth=settings.scan_depth,
                highlight_color=settings.highlight_color,
                events=store.events,
            )
        except SheetPilotError as e:
            _emit(envelope_for_error("apply", e, target=target))
        except portalocker.LockException:
            _emit(error_envelope("apply", "ERR_LOCK_HELD", f"Workbook is locked by another process: {file}", target=target))

    result = batch.to_wire()
    result["backupPath"] = backup_path
    if batch.success:
        env = success_envelope("apply", result, target=target, duration_ms=t.elapsed_ms)
    else:
        failed = batch.results[-1]
        env = error_envelope(
            "apply", "ERR_BATCH_FAILED",
            f"Step {failed.index} ({failed.action}) failed: {failed.message}",
            target=target,
            details={"index": failed.index, "code": failed.code},
            result=result,
            duration_ms=t.elapsed_ms,
        )
    _emit(env)


# ---------------------------------------------------------------------------
# sheetpilot window read
# ---------------------------------------------------------------------------
@window_app.command("read")
def window_read_cmd(
    file: FilePath,
    sheet: SheetOpt = None,
    rows: Annotated[str, typer.Option("--rows", help="Inclusive 1-based row span, e.g. 1:50")] = "1:50",
    cols: Annotated[str, typer.Option("--cols", help="Inclusive 1-based column span, e.g. 1:26")] = "1:26",
    config: ConfigOpt = None,
):
    """Read a dense rectangle of values.

    The far edges are clamped to the virtual sheet size (virtual_rows x
    virtual_columns); empty positions come back as null.

    Example: `sheetpilot window read -f data.xlsx -s Sales --rows 1:20 --cols 1:5`
    """
    from sheetpilot.engine.window import read_window

    settings = _settings(config, "window.read")
    row_start, row_end = _parse_span(rows, "--rows")
    col_start, col_end = _parse_span(cols, "--cols")
    with Timer() as t:
        try:
            with _store(settings).session(file) as ctx:
                window = read_window(
                    ctx, sheet, row_start, row_end, col_start, col_end, bounds=settings.bounds,
                )
        except SheetPilotError as e:
            _emit(envelope_for_error("window.read", e, target=Target(file=file, sheet=sheet)))

    env = success_envelope(
        "window.read", window.to_wire(),
        target=Target(file=file, sheet=window.meta.sheet_name),
        duration_ms=t.elapsed_ms,
    )
    _emit(env)


# ---------------------------------------------------------------------------
# sheetpilot cell set
# ---------------------------------------------------------------------------
@cell_app.command("set")
def cell_set_cmd(
    file: FilePath,
    sheet: Annotated[str, typer.Option("--sheet", "-s", help="Sheet name (required for writes)")],
    row: Annotated[int, typer.Option("--row", help="1-based row")],
    col: Annotated[int, typer.Option("--col", help="1-based column")],
    value: Annotated[str, typer.Option("--value", help="Value to write (coerced according to --type)")] = "",
    cell_type: Annotated[Optional[str], typer.Option("--type", help="Value type: 'number', 'text', 'bool' or 'null'")] = None,
    config: ConfigOpt = None,
):
    """Write one cell and save the workbook in place. Mutating.

    The value is stored as given; a text value starting with `=` becomes
    a formula.

    Example: `sheetpilot cell set -f data.xlsx -s Sales --row 2 --col 2 --value 42 --type number`
    """
    settings = _settings(config, "cell.set")
    parsed_value = _coerce(value, cell_type)
    target = Target(file=file, sheet=sheet)
    with Timer() as t:
        try:
            change = _store(settings).write_cell(file, sheet, row, col, parsed_value, bounds=settings.bounds)
        except SheetPilotError as e:
            _emit(envelope_for_error("cell.set", e, target=target))
        except portalocker.LockException:
            _emit(error_envelope("cell.set", "ERR_LOCK_HELD", f"Workbook is locked by another process: {file}", target=target))

    env = success_envelope(
        "cell.set", {"written": True},
        target=Target(file=file, sheet=sheet, ref=change.target.split("!", 1)[-1]),
        changes=[change],
        duration_ms=t.elapsed_ms,
    )
    _emit(env)


# ---------------------------------------------------------------------------
# sheetpilot serve
# ---------------------------------------------------------------------------
@app.command("serve")
def serve_cmd(
    stdio: Annotated[bool, typer.Option("--stdio", help="Use stdin/stdout for JSON request/response")] = True,
    config: ConfigOpt = None,
):
    """Start the stdio server for grid clients.

    Reads one JSON request per line from stdin and writes one JSON
    response per line: `{"id": "1", "command": "window.read", "args": {"file": "data.xlsx", "sheet": "Sales"}}`

    Example: `sheetpilot serve --stdio`
    """
    from sheetpilot.server.stdio import StdioServer

    server = StdioServer(_settings(config, "serve"))
    server.run()


# ---------------------------------------------------------------------------
# Entrypoint (for `python -m sheetpilot`)
# ---------------------------------------------------------------------------
def main() -> None:
    try:
        app()
    except SystemExit:
        raise
    except Exception as exc:
        # Unhandled exceptions still produce a JSON envelope.
        env = error_envelope(
            "unknown",
            "ERR_INTERNAL",
            str(exc),
        )
        print_response(env)
        raise SystemExit(90) from exc


if __name__ == "__main__":
    main()
