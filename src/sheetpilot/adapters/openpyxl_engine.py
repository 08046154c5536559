"""openpyxl-based action handlers: columns, highlights, sorting, value updates."""

from __future__ import annotations

import operator
import re
from copy import copy
from functools import cmp_to_key
from typing import Any, Callable

from openpyxl.formula.translate import Translator
from openpyxl.styles import PatternFill
from openpyxl.utils import column_index_from_string, get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from sheetpilot.contracts.common import (
    ActionValidationError,
    ChangeRecord,
    ColumnNotFound,
    InvalidAddress,
    InvalidOperation,
    NoMatchingRows,
    WarningDetail,
)
from sheetpilot.engine.cells import (
    CellKind,
    CellValue,
    loose_match,
    normalize_number,
    parse_leading_float,
    peek,
    to_number,
    to_text,
    to_window_value,
)
from sheetpilot.engine.context import WorkbookContext
from sheetpilot.engine.formulas import build_header_map, rewrite_formula
from sheetpilot.engine.resolver import DEFAULT_SCAN_DEPTH, require_column, resolve_column

DEFAULT_HIGHLIGHT_COLOR = "FFFF00"
MAX_ROWS = 1_048_576
MAX_COLUMNS = 16_384

_ADDRESS_RE = re.compile(r"^([A-Za-z]+)([0-9]+)$")
_COLOR_RE = re.compile(r"^(?:[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")

# Order matters: two-character operators must be tried before their prefixes.
CONDITION_OPERATORS: tuple[str, ...] = (">=", "<=", "!=", ">", "<", "=")
_COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    "!=": operator.ne,
    ">": operator.gt,
    "<": operator.lt,
    "=": operator.eq,
}
_ARITHMETIC: dict[str, Callable[[float, float], float]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
}


def _last_used_column(ws: Worksheet, row: int) -> int:
    last = 0
    for col in range(1, ws.max_column + 1):
        if peek(ws, row, col) is not None:
            last = col
    return last


def parse_address(address: str) -> tuple[int, int]:
    """Parse ``B7`` into (row, column)."""
    m = _ADDRESS_RE.match(address.strip())
    if not m:
        raise InvalidAddress(
            f"Invalid cell address '{address}': expected column letters followed by a row number (e.g. B5)",
            details={"address": address},
        )
    try:
        col = column_index_from_string(m.group(1).upper())
    except ValueError as e:
        raise InvalidAddress(f"Invalid cell address '{address}': {e}", details={"address": address}) from e
    row = int(m.group(2))
    if not 1 <= row <= MAX_ROWS or col > MAX_COLUMNS:
        raise InvalidAddress(f"Invalid cell address '{address}': outside the sheet grid", details={"address": address})
    return row, col


def parse_condition(condition: str) -> tuple[str, str, float]:
    """Split ``"Revenue >= 150"`` into (column name, operator, threshold)."""
    op = next((o for o in CONDITION_OPERATORS if o in condition), None)
    if op is None:
        raise InvalidOperation(
            f"Condition '{condition}' has no comparison operator (use one of {', '.join(CONDITION_OPERATORS)})",
            details={"condition": condition},
        )
    name, _, rhs = condition.partition(op)
    threshold = parse_leading_float(rhs.strip())
    if threshold is None:
        raise InvalidOperation(
            f"Condition '{condition}' does not compare against a number",
            details={"condition": condition},
        )
    return name.strip(), op, threshold


def solid_fill(color: str) -> PatternFill:
    argb = color.strip().lstrip("#")
    if not _COLOR_RE.match(argb):
        raise ActionValidationError(f"Invalid color '{color}': expected RGB or ARGB hex", details={"color": color})
    return PatternFill(fill_type="solid", start_color=argb.upper(), end_color=argb.upper())


def check_operation(operation: str, value: Any) -> None:
    if operation == "SET":
        return
    if operation not in _ARITHMETIC:
        raise InvalidOperation(
            f"Unsupported operation '{operation}'. Supported: SET, +, -, *, /",
            details={"operation": operation},
        )
    if to_number(value) is None:
        raise InvalidOperation(
            f"Operation '{operation}' needs a numeric value, got {value!r}",
            details={"operation": operation, "value": value},
        )


def _numeric(cv: CellValue) -> float | None:
    # Dates, booleans and formulas are never rewritten by arithmetic.
    if cv.kind not in (CellKind.NUMBER, CellKind.TEXT):
        return None
    return to_number(cv)


def _compute(current: CellValue, operation: str, value: Any) -> tuple[bool, Any]:
    """New value for ``current`` under ``operation``; (False, None) means skip."""
    if operation == "SET":
        return True, value
    base = _numeric(current)
    if base is None:
        return False, None
    operand = to_number(value)
    if operation == "/" and operand == 0:
        return False, None
    return True, normalize_number(_ARITHMETIC[operation](base, operand))


def _changed(current: CellValue, new: Any) -> bool:
    if current.raw is None or new is None:
        return current.raw is not new
    return type(current.raw) is not type(new) or current.raw != new


# ---------------------------------------------------------------------------
# ADD_COLUMN
# ---------------------------------------------------------------------------
def add_column(
    ctx: WorkbookContext,
    sheet_name: str | None,
    column_name: str,
    formula_template: str,
) -> ChangeRecord:
    """Append a column after the last used header and fill it with formulas."""
    ws = ctx.get_sheet(sheet_name)
    new_col = _last_used_column(ws, 1) + 1
    letter = get_column_letter(new_col)
    header_map = build_header_map(ws)
    template = formula_template.strip()
    if template.startswith("="):
        template = template[1:]

    last_row = ws.max_row
    ws.cell(row=1, column=new_col, value=column_name)
    for row in range(2, last_row + 1):
        ws.cell(row=row, column=new_col, value="=" + rewrite_formula(header_map, template, row))
    ctx.mark_dirty()

    rows = max(0, last_row - 1)
    return ChangeRecord(
        type="ADD_COLUMN",
        target=f"{ws.title}!{letter}1",
        after={"column": column_name, "column_letter": letter, "formula_template": formula_template},
        impact={"rows": rows, "cells": rows + 1},
    )


# ---------------------------------------------------------------------------
# HIGHLIGHT_ROWS
# ---------------------------------------------------------------------------
def highlight_rows(
    ctx: WorkbookContext,
    sheet_name: str | None,
    condition: str,
    color: str | None = None,
    *,
    scan_depth: int = DEFAULT_SCAN_DEPTH,
    default_color: str = DEFAULT_HIGHLIGHT_COLOR,
) -> ChangeRecord:
    """Fill every row whose value in the condition column satisfies it.

    An unknown column is a no-op reported as a warning.
    """
    ws = ctx.get_sheet(sheet_name)
    column, op, threshold = parse_condition(condition)
    fill = solid_fill(color or default_color)

    match = resolve_column(ws, column, scan_depth)
    if match is None:
        return ChangeRecord(
            type="HIGHLIGHT_ROWS",
            target=ws.title,
            after={"condition": condition, "rows": []},
            impact={"rows": 0, "cells": 0},
            warnings=[WarningDetail(
                code="WARN_COLUMN_NOT_FOUND",
                message=f"Column '{column}' not found; nothing highlighted",
            )],
        )

    compare = _COMPARATORS[op]
    hits: list[int] = []
    for row in range(match.header_row + 1, ws.max_row + 1):
        n = parse_leading_float(ctx.read_cell(ws, row, match.column_index))
        if n is not None and compare(n, threshold):
            hits.append(row)

    width = ws.max_column
    for row in hits:
        for col in range(1, width + 1):
            ws.cell(row=row, column=col).fill = copy(fill)
    if hits:
        ctx.mark_dirty()

    return ChangeRecord(
        type="HIGHLIGHT_ROWS",
        target=ws.title,
        after={"condition": condition, "color": fill.fgColor.rgb, "rows": hits},
        impact={"rows": len(hits), "cells": len(hits) * width},
    )


# ---------------------------------------------------------------------------
# SORT_DATA
# ---------------------------------------------------------------------------
def compare_sort_keys(a: CellValue, b: CellValue, *, descending: bool = False) -> int:
    """Order two sort keys.  Nulls go last whatever the direction."""
    if a.is_null and b.is_null:
        return 0
    if a.is_null:
        return 1
    if b.is_null:
        return -1
    na, nb = to_number(a), to_number(b)
    if na is not None and nb is not None:
        result = (na > nb) - (na < nb)
    else:
        ta, tb = to_text(a).casefold(), to_text(b).casefold()
        result = (ta > tb) - (ta < tb)
    return -result if descending else result


def _move_formula(formula: str, col: int, source_row: int, target_row: int) -> str:
    """Shift relative references so a formula keeps pointing at its own row."""
    letter = get_column_letter(col)
    return Translator(formula, origin=f"{letter}{source_row}").translate_formula(f"{letter}{target_row}")


def sort_data(
    ctx: WorkbookContext,
    sheet_name: str | None,
    column: str,
    order: str = "asc",
    *,
    scan_depth: int = DEFAULT_SCAN_DEPTH,
) -> ChangeRecord:
    """Permute the rows below the header by one column's values.

    The block of row numbers is unchanged; only its contents move.  Values,
    fills and number formats travel together, and formulas are shifted to
    their new row.
    """
    ws = ctx.get_sheet(sheet_name)
    match = require_column(ws, column, scan_depth)
    descending = order.lower() == "desc"
    first_row = match.header_row + 1
    last_row = ws.max_row
    width = ws.max_column

    entries: list[tuple[int, list[tuple[Any, Any, str]], CellValue]] = []
    for row in range(first_row, last_row + 1):
        snapshot = []
        for col in range(1, width + 1):
            cell = ws._cells.get((row, col))
            if cell is None:
                snapshot.append((None, PatternFill(), "General"))
            else:
                snapshot.append((cell.value, copy(cell.fill), cell.number_format))
        entries.append((row, snapshot, ctx.read_cell(ws, row, match.column_index)))

    ordered = sorted(
        entries,
        key=cmp_to_key(lambda x, y: compare_sort_keys(x[2], y[2], descending=descending)),
    )

    moved = 0
    for target_row, (source_row, snapshot, _) in zip(range(first_row, last_row + 1), ordered):
        if target_row != source_row:
            moved += 1
        for col, (value, fill, number_format) in enumerate(snapshot, start=1):
            cell = ws.cell(row=target_row, column=col)
            if target_row != source_row and isinstance(value, str) and value.startswith("="):
                value = _move_formula(value, col, source_row, target_row)
            cell.value = value
            cell.fill = fill
            cell.number_format = number_format
    if entries:
        ctx.mark_dirty()

    return ChangeRecord(
        type="SORT_DATA",
        target=f"{ws.title}!{match.column_letter}{match.header_row}",
        after={"column": column, "order": "desc" if descending else "asc", "rows_moved": moved},
        impact={"rows": len(entries), "cells": len(entries) * width},
    )


# ---------------------------------------------------------------------------
# UPDATE_ROW_VALUES
# ---------------------------------------------------------------------------
def update_row_values(
    ctx: WorkbookContext,
    sheet_name: str | None,
    filter_column: str,
    filter_value: Any,
    operation: str,
    value: Any,
    target_column: str | None = None,
    *,
    scan_depth: int = DEFAULT_SCAN_DEPTH,
) -> ChangeRecord:
    """Update rows whose filter cell loosely matches ``filter_value``.

    With a resolvable ``target_column`` only that cell changes.  Without
    one, arithmetic applies to every numeric cell of the row except the
    filter cell; SET always requires a target.
    """
    ws = ctx.get_sheet(sheet_name)
    fmatch = require_column(ws, filter_column, scan_depth)
    check_operation(operation, value)

    target = resolve_column(ws, target_column, scan_depth) if target_column else None
    if operation == "SET":
        if not target_column:
            raise InvalidOperation(
                "SET requires targetColumn; refusing to overwrite whole rows",
                details={"operation": operation},
            )
        if target is None:
            raise ColumnNotFound(target_column, ws.title)

    if target is not None:
        columns = [target.column_index]
    else:
        columns = [c for c in range(1, ws.max_column + 1) if c != fmatch.column_index]

    matched = 0
    writes: list[tuple[int, int, Any]] = []
    for row in range(1, ws.max_row + 1):
        if row == fmatch.header_row:
            continue
        if not loose_match(ctx.read_cell(ws, row, fmatch.column_index), filter_value):
            continue
        matched += 1
        for col in columns:
            current = ctx.read_cell(ws, row, col)
            applies, new = _compute(current, operation, value)
            if applies and _changed(current, new):
                writes.append((row, col, new))

    if not matched:
        raise NoMatchingRows(
            f"No rows where '{filter_column}' matches {filter_value!r}",
            details={"filterColumn": filter_column, "filterValue": filter_value},
        )

    for row, col, new in writes:
        ws.cell(row=row, column=col).value = new
    if writes:
        ctx.mark_dirty()

    return ChangeRecord(
        type="UPDATE_ROW_VALUES",
        target=f"{ws.title}!{fmatch.column_letter}",
        after={"operation": operation, "value": value, "matched_rows": matched, "cells_updated": len(writes)},
        impact={"rows": matched, "cells": len(writes)},
    )


# ---------------------------------------------------------------------------
# UPDATE_COLUMN_VALUES
# ---------------------------------------------------------------------------
def update_column_values(
    ctx: WorkbookContext,
    sheet_name: str | None,
    column: str,
    operation: str,
    value: Any,
    *,
    scan_depth: int = DEFAULT_SCAN_DEPTH,
) -> ChangeRecord:
    """Apply one operation to every data cell of a column."""
    ws = ctx.get_sheet(sheet_name)
    match = require_column(ws, column, scan_depth)
    check_operation(operation, value)

    qualified = 0
    writes: list[tuple[int, Any]] = []
    for row in range(match.header_row + 1, ws.max_row + 1):
        current = ctx.read_cell(ws, row, match.column_index)
        applies, new = _compute(current, operation, value)
        if not applies:
            continue
        qualified += 1
        if _changed(current, new):
            writes.append((row, new))

    if not qualified:
        raise NoMatchingRows(
            f"No cells in column '{column}' can take operation '{operation}'",
            details={"column": column, "operation": operation},
        )

    for row, new in writes:
        ws.cell(row=row, column=match.column_index).value = new
    if writes:
        ctx.mark_dirty()

    return ChangeRecord(
        type="UPDATE_COLUMN_VALUES",
        target=f"{ws.title}!{match.column_letter}",
        after={"operation": operation, "value": value, "cells_updated": len(writes)},
        impact={"rows": qualified, "cells": len(writes)},
    )


# ---------------------------------------------------------------------------
# UPDATE_KEY_VALUE
# ---------------------------------------------------------------------------
def update_key_value(
    ctx: WorkbookContext,
    sheet_name: str | None,
    key_column: str,
    key_value: Any,
    new_value: Any,
    value_column: str | None = None,
    *,
    scan_depth: int = DEFAULT_SCAN_DEPTH,
) -> ChangeRecord:
    """Set the value next to a label in a label/value table.

    The value column defaults to the one right of the key column.  Every
    row is scanned, the header row included, and a row matches when either
    its key cell or its current value equals ``key_value``.
    """
    ws = ctx.get_sheet(sheet_name)
    key = require_column(ws, key_column, scan_depth)
    target_col = key.column_index + 1
    if value_column:
        vmatch = resolve_column(ws, value_column, scan_depth)
        if vmatch is not None:
            target_col = vmatch.column_index

    rows = [
        row
        for row in range(1, ws.max_row + 1)
        if loose_match(ctx.read_cell(ws, row, key.column_index), key_value)
        or loose_match(ctx.read_cell(ws, row, target_col), key_value)
    ]
    if not rows:
        raise NoMatchingRows(
            f"No rows where '{key_column}' or its value matches {key_value!r}",
            details={"keyColumn": key_column, "keyValue": key_value},
        )

    for row in rows:
        ws.cell(row=row, column=target_col).value = new_value
    ctx.mark_dirty()

    letter = get_column_letter(target_col)
    return ChangeRecord(
        type="UPDATE_KEY_VALUE",
        target=f"{ws.title}!{letter}",
        after={"value": new_value, "cells": [f"{letter}{row}" for row in rows]},
        impact={"rows": len(rows), "cells": len(rows)},
    )


# ---------------------------------------------------------------------------
# SET_CELL
# ---------------------------------------------------------------------------
def set_cell(
    ctx: WorkbookContext,
    sheet_name: str | None,
    address: str,
    value: Any,
) -> ChangeRecord:
    """Overwrite one cell by A1 address."""
    ws = ctx.get_sheet(sheet_name)
    row, col = parse_address(address)
    before = peek(ws, row, col)
    ws.cell(row=row, column=col).value = value
    ctx.mark_dirty()
    return ChangeRecord(
        type="SET_CELL",
        target=f"{ws.title}!{get_column_letter(col)}{row}",
        before=to_window_value(before),
        after=to_window_value(value),
        impact={"cells": 1},
    )


# ---------------------------------------------------------------------------
# FIND_AND_REPLACE
# ---------------------------------------------------------------------------
def find_and_replace(
    ctx: WorkbookContext,
    sheet_name: str | None,
    find_value: Any,
    replace_value: Any,
    column: str | None = None,
    *,
    scan_depth: int = DEFAULT_SCAN_DEPTH,
) -> ChangeRecord:
    """Replace whole cell values that loosely match ``find_value``."""
    ws = ctx.get_sheet(sheet_name)
    if column:
        columns = [require_column(ws, column, scan_depth).column_index]
    else:
        columns = list(range(1, ws.max_column + 1))

    hits: list[tuple[int, int]] = []
    for row in range(1, ws.max_row + 1):
        for col in columns:
            cv = ctx.read_cell(ws, row, col)
            if not cv.is_null and loose_match(cv, find_value):
                hits.append((row, col))

    if not hits:
        where = f"column '{column}'" if column else f"sheet '{ws.title}'"
        raise NoMatchingRows(
            f"No cells in {where} match {find_value!r}",
            details={"findValue": find_value, "column": column},
        )

    for row, col in hits:
        ws.cell(row=row, column=col).value = replace_value
    ctx.mark_dirty()

    return ChangeRecord(
        type="FIND_AND_REPLACE",
        target=ws.title,
        before=find_value,
        after=replace_value,
        impact={"cells": len(hits)},
    )


# ---------------------------------------------------------------------------
# dispatch
# ---------------------------------------------------------------------------
def apply_action(
    ctx: WorkbookContext,
    action: Any,
    *,
    sheet_name: str | None = None,
    scan_depth: int = DEFAULT_SCAN_DEPTH,
    highlight_color: str = DEFAULT_HIGHLIGHT_COLOR,
) -> ChangeRecord:
    """Apply one validated action to a sheet of ``ctx``."""
    p = action.params
    name = action.action
    if name == "ADD_COLUMN":
        return add_column(ctx, sheet_name, p.column_name, p.formula_template)
    if name == "HIGHLIGHT_ROWS":
        return highlight_rows(
            ctx, sheet_name, p.condition, p.color,
            scan_depth=scan_depth, default_color=highlight_color,
        )
    if name == "SORT_DATA":
        return sort_data(ctx, sheet_name, p.column, p.order, scan_depth=scan_depth)
    if name == "UPDATE_ROW_VALUES":
        return update_row_values(
            ctx, sheet_name, p.filter_column, p.filter_value, p.operation, p.value,
            p.target_column, scan_depth=scan_depth,
        )
    if name == "UPDATE_COLUMN_VALUES":
        return update_column_values(ctx, sheet_name, p.column, p.operation, p.value, scan_depth=scan_depth)
    if name == "UPDATE_KEY_VALUE":
        return update_key_value(
            ctx, sheet_name, p.key_column, p.key_value, p.new_value,
            p.value_column, scan_depth=scan_depth,
        )
    if name == "SET_CELL":
        return set_cell(ctx, sheet_name, p.address, p.value)
    if name == "FIND_AND_REPLACE":
        return find_and_replace(
            ctx, sheet_name, p.find_value, p.replace_value, p.column, scan_depth=scan_depth,
        )
    raise ActionValidationError(f"Unsupported action '{name}'", details={"action": name})
