"""Windowed reads and raw writes over a fixed virtual coordinate space.

A window is clamped to :class:`VirtualBounds`, not to the sheet's used
range, so a client can page through stable coordinates while the sheet
grows.  Coercion to JSON primitives happens on reads only; writes store
the caller's value untouched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

from openpyxl.utils import get_column_letter

from sheetpilot.contracts.common import ChangeRecord, InvalidRange, SheetNotFound
from sheetpilot.contracts.responses import WindowBounds, WindowMeta, WindowResponse
from sheetpilot.engine.cells import peek, to_window_value

if TYPE_CHECKING:
    from sheetpilot.engine.context import WorkbookContext


class VirtualBounds(NamedTuple):
    rows: int = 1000
    columns: int = 100


DEFAULT_BOUNDS = VirtualBounds()


def clamp_window(
    row_start: int,
    row_end: int,
    col_start: int,
    col_end: int,
    bounds: VirtualBounds = DEFAULT_BOUNDS,
) -> WindowBounds:
    """Validate a requested rectangle and clamp its far edges to ``bounds``."""
    if row_start < 1 or col_start < 1:
        raise InvalidRange(
            "Invalid range: start values must be >= 1 (rows and columns are 1-based)",
            details={"rowStart": row_start, "colStart": col_start},
        )
    if row_start > row_end or col_start > col_end:
        raise InvalidRange(
            "Invalid range: start must be <= end",
            details={"rowStart": row_start, "rowEnd": row_end, "colStart": col_start, "colEnd": col_end},
        )
    if row_start > bounds.rows or col_start > bounds.columns:
        raise InvalidRange(
            f"Invalid range: window starts outside the {bounds.rows}x{bounds.columns} sheet bounds",
            details={"totalRows": bounds.rows, "totalColumns": bounds.columns},
        )
    return WindowBounds(
        row_start=row_start,
        row_end=min(row_end, bounds.rows),
        col_start=col_start,
        col_end=min(col_end, bounds.columns),
    )


def read_window(
    ctx: WorkbookContext,
    sheet_name: str | None,
    row_start: int,
    row_end: int,
    col_start: int,
    col_end: int,
    *,
    bounds: VirtualBounds = DEFAULT_BOUNDS,
) -> WindowResponse:
    """Dense slice of a sheet; every position yields a value, unset ones ``None``."""
    ws = ctx.get_sheet(sheet_name)
    win = clamp_window(row_start, row_end, col_start, col_end, bounds)
    data = [
        [to_window_value(ctx.read_cell(ws, row, col)) for col in range(win.col_start, win.col_end + 1)]
        for row in range(win.row_start, win.row_end + 1)
    ]
    return WindowResponse(
        data=data,
        meta=WindowMeta(
            total_rows=bounds.rows,
            total_columns=bounds.columns,
            sheet_name=ws.title,
            window=win,
        ),
    )


def _require_name(ctx: WorkbookContext, sheet_name: str) -> None:
    # Writes never fall back to a positional sheet.
    if not sheet_name:
        raise SheetNotFound(repr(sheet_name), ctx.sheet_names)


def write_cell(
    ctx: WorkbookContext,
    sheet_name: str,
    row: int,
    col: int,
    value: Any,
    *,
    bounds: VirtualBounds = DEFAULT_BOUNDS,
) -> ChangeRecord:
    """Store ``value`` as-is at (row, col) of the named sheet."""
    _require_name(ctx, sheet_name)
    ws = ctx.get_sheet(sheet_name)
    clamp_window(row, row, col, col, bounds)
    before = peek(ws, row, col)
    ws.cell(row=row, column=col).value = value
    ctx.mark_dirty()
    return ChangeRecord(
        type="cell.write",
        target=f"{ws.title}!{get_column_letter(col)}{row}",
        before=to_window_value(before),
        after=to_window_value(value),
        impact={"cells": 1},
    )


def write_grid(
    ctx: WorkbookContext,
    sheet_name: str,
    row_start: int,
    col_start: int,
    rows: list[list[Any]],
    *,
    bounds: VirtualBounds = DEFAULT_BOUNDS,
) -> ChangeRecord:
    """Write a dense block anchored at (row_start, col_start).

    Values falling outside the virtual bounds are dropped and counted.
    ``None`` clears a cell.
    """
    _require_name(ctx, sheet_name)
    ws = ctx.get_sheet(sheet_name)
    width = max((len(r) for r in rows), default=1)
    win = clamp_window(row_start, row_start + max(len(rows), 1) - 1, col_start, col_start + width - 1, bounds)

    written = 0
    dropped = 0
    for i, values in enumerate(rows):
        row = row_start + i
        for j, value in enumerate(values):
            col = col_start + j
            if row > win.row_end or col > win.col_end:
                dropped += 1
                continue
            if value is None and peek(ws, row, col) is None:
                continue
            ws.cell(row=row, column=col).value = value
            written += 1
    if written:
        ctx.mark_dirty()

    return ChangeRecord(
        type="grid.write",
        target=f"{ws.title}!{get_column_letter(win.col_start)}{win.row_start}:"
        f"{get_column_letter(win.col_end)}{win.row_end}",
        after={"cells_written": written, "cells_dropped": dropped},
        impact={"cells": written},
    )
