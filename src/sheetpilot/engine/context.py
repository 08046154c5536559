"""WorkbookContext: loads a workbook, resolves sheets, serves cached values."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path

import openpyxl
from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from sheetpilot.contracts.common import SheetNotFound, Target, WorkbookCorruptError, WorkbookNotFound
from sheetpilot.contracts.responses import SheetSummary, WorkbookListing
from sheetpilot.engine.cells import CellKind, CellValue, classify, peek
from sheetpilot.io.fileops import atomic_write, fingerprint


class WorkbookContext:
    """Wraps an openpyxl workbook owned by a single unit of work.

    Formulas are loaded as text.  Their cached results live in a second,
    ``data_only`` copy that is opened lazily and dropped as soon as the
    workbook is mutated in memory, since openpyxl does not carry cached
    results through a save.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).resolve()
        if not self.path.exists():
            raise WorkbookNotFound(f"Workbook not found: {self.path}", details={"path": str(self.path)})
        self.fp = fingerprint(self.path)
        self.dirty = False
        self._values_wb: Workbook | None = None
        try:
            self.wb: Workbook = openpyxl.load_workbook(
                str(self.path),
                keep_vba=self.path.suffix.lower() == ".xlsm",
                rich_text=True,
            )
        except Exception as e:
            raise WorkbookCorruptError(f"Cannot open workbook {self.path}: {e}") from e

    def target(self, **overrides: str | None) -> Target:
        t = Target(file=str(self.path))
        for k, v in overrides.items():
            if v is not None:
                setattr(t, k, v)
        return t

    @property
    def sheet_names(self) -> list[str]:
        return list(self.wb.sheetnames)

    def get_sheet(self, name: str | None = None) -> Worksheet:
        """Resolve a sheet by name; ``None`` means the first sheet."""
        if name is None:
            if not self.wb.sheetnames:
                raise SheetNotFound("(first sheet)", [])
            return self.wb.worksheets[0]
        if name not in self.wb.sheetnames:
            raise SheetNotFound(name, self.sheet_names)
        return self.wb[name]

    def list_sheets(self) -> WorkbookListing:
        """Visible sheets in tab order with their used extent."""
        sheets: list[SheetSummary] = []
        for ws in self.wb.worksheets:
            if ws.sheet_state != "visible":
                continue
            sheets.append(SheetSummary(
                sheet_id=ws.title,
                name=ws.title,
                total_rows=ws.max_row,
                total_cols=ws.max_column,
            ))
        return WorkbookListing(sheets=sheets)

    def mark_dirty(self) -> None:
        self.dirty = True
        if self._values_wb is not None:
            self._values_wb.close()
            self._values_wb = None

    def _values(self) -> Workbook | None:
        if self.dirty:
            return None
        if self._values_wb is None:
            self._values_wb = openpyxl.load_workbook(str(self.path), data_only=True)
        return self._values_wb

    def read_cell(self, ws: Worksheet, row: int, column: int) -> CellValue:
        """Classified value at (row, column); formulas carry their cached result."""
        cv = classify(peek(ws, row, column))
        if cv.kind is not CellKind.FORMULA:
            return cv
        values = self._values()
        if values is None or ws.title not in values.sheetnames:
            return cv
        cached = peek(values[ws.title], row, column)
        return classify(cv.raw, cached)

    def save(self, path: str | Path | None = None) -> bytes:
        """Serialise the whole workbook. Optionally write it atomically to a path."""
        buf = BytesIO()
        self.wb.save(buf)
        data = buf.getvalue()
        if path:
            atomic_write(path, data)
            self.path = Path(path).resolve()
            self.fp = fingerprint(self.path)
            self.dirty = False
        return data

    def close(self) -> None:
        self.wb.close()
        if self._values_wb is not None:
            self._values_wb.close()
            self._values_wb = None
