"""Column lookup by header text and header-row detection."""

from __future__ import annotations

from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from sheetpilot.contracts.common import ColumnNotFound
from sheetpilot.contracts.responses import ColumnMatch, SheetContext
from sheetpilot.engine.cells import CellKind, classify, peek, to_text

DEFAULT_SCAN_DEPTH = 20
MAX_CONTEXT_COLUMNS = 50


def _normalize(text: str) -> str:
    return text.strip().casefold()


def resolve_column(
    ws: Worksheet,
    name: str,
    scan_depth: int = DEFAULT_SCAN_DEPTH,
) -> ColumnMatch | None:
    """Find the first cell whose text equals ``name`` in the top rows.

    Rows ``1..min(max_row, scan_depth)`` are scanned row by row, left to
    right; the first hit wins.  Returns ``None`` when nothing matches.
    """
    wanted = _normalize(name)
    if not wanted:
        return None
    last_row = min(ws.max_row, scan_depth)
    last_col = ws.max_column
    for row in range(1, last_row + 1):
        for col in range(1, last_col + 1):
            value = peek(ws, row, col)
            if value is None:
                continue
            if _normalize(to_text(value)) == wanted:
                return ColumnMatch(
                    column_index=col,
                    header_row=row,
                    column_letter=get_column_letter(col),
                )
    return None


def require_column(
    ws: Worksheet,
    name: str,
    scan_depth: int = DEFAULT_SCAN_DEPTH,
) -> ColumnMatch:
    match = resolve_column(ws, name, scan_depth)
    if match is None:
        raise ColumnNotFound(name, ws.title)
    return match


def detect_sheet_context(ws: Worksheet, scan_depth: int = DEFAULT_SCAN_DEPTH) -> SheetContext:
    """Guess the header row: the scanned row with the most distinct text labels.

    Numbers never count as labels.  Fewer than two distinct labels means no
    usable header was found and ``columns`` is empty.
    """
    best_row: int | None = None
    best_labels: list[str] = []
    best_score = 0

    last_row = min(ws.max_row, scan_depth)
    for row in range(1, last_row + 1):
        labels: list[str] = []
        for col in range(1, ws.max_column + 1):
            cv = classify(peek(ws, row, col))
            if cv.kind not in (CellKind.TEXT, CellKind.RICH_TEXT):
                continue
            text = to_text(cv).strip()
            if text:
                labels.append(text)
        score = len({label.casefold() for label in labels})
        if score > best_score:
            best_score = score
            best_row = row
            best_labels = labels

    if best_score < 2:
        return SheetContext(sheet_name=ws.title, header_row=None, columns=[])

    columns: list[str] = []
    seen: set[str] = set()
    for label in best_labels:
        key = label.casefold()
        if key not in seen:
            seen.add(key)
            columns.append(label)
    return SheetContext(
        sheet_name=ws.title,
        header_row=best_row,
        columns=columns[:MAX_CONTEXT_COLUMNS],
    )
