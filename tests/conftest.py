"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import openpyxl
import pytest
from openpyxl import Workbook

from sheetpilot.engine.context import WorkbookContext
from sheetpilot.io.store import WorkbookStore


def _save(wb: Workbook, path: Path) -> Path:
    wb.save(str(path))
    wb.close()
    return path


def _read_values(path: Path, sheet: str | None = None) -> list[list]:
    wb = openpyxl.load_workbook(str(path))
    ws = wb[sheet] if sheet else wb.worksheets[0]
    rows = [list(r) for r in ws.iter_rows(values_only=True)]
    wb.close()
    return rows


@pytest.fixture()
def sales_workbook(tmp_path: Path) -> Path:
    """Header ``Name | Revenue`` and three data rows, one with no revenue."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Sales"
    ws.append(["Name", "Revenue"])
    ws.append(["Raj", 100])
    ws.append(["Amy", 300])
    ws.append(["Z", None])
    return _save(wb, tmp_path / "sales.xlsx")


@pytest.fixture()
def ledger_workbook(tmp_path: Path) -> Path:
    """Revenue/Cost ledger with a status column and a numeric-looking text cell."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Ledger"
    ws.append(["Region", "Revenue", "Cost", "Status"])
    ws.append(["North", 1000, 600, "open"])
    ws.append(["South", 1500, 900, "closed"])
    ws.append(["East", "5000", 1100, "open"])
    ws.append(["West", 800, 500, "Open"])
    return _save(wb, tmp_path / "ledger.xlsx")


@pytest.fixture()
def titled_workbook(tmp_path: Path) -> Path:
    """A report title and a blank row above the real header on row 3."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Report"
    ws["A1"] = "Quarterly report"
    ws.append([])
    ws.append(["Product", "Units", "Price"])
    ws.append(["Widget", 10, 2.5])
    ws.append(["Gadget", 4, 10])
    ws.append(["Doohickey", 7, 1])
    return _save(wb, tmp_path / "titled.xlsx")


@pytest.fixture()
def keyvalue_workbook(tmp_path: Path) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.title = "Settings"
    ws.append(["Name", "OldVal"])
    ws.append(["Owner", "Dana"])
    ws.append(["Budget", 5000])
    return _save(wb, tmp_path / "settings.xlsx")


@pytest.fixture()
def multi_sheet_workbook(tmp_path: Path) -> Path:
    """Three sheets; the middle one is hidden."""
    wb = Workbook()
    ws = wb.active
    ws.title = "First"
    ws.append(["a", "b", "c"])
    ws.append([1, 2, 3])
    hidden = wb.create_sheet("Hidden")
    hidden["A1"] = "secret"
    hidden.sheet_state = "hidden"
    last = wb.create_sheet("Last")
    last["B5"] = "x"
    return _save(wb, tmp_path / "multi.xlsx")


@pytest.fixture()
def single_row_workbook(tmp_path: Path) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.title = "Sheet1"
    ws.append(["x", "y"])
    return _save(wb, tmp_path / "single.xlsx")


@pytest.fixture()
def store(tmp_path: Path) -> WorkbookStore:
    return WorkbookStore(tmp_path)


@pytest.fixture()
def open_ctx():
    """Open a WorkbookContext and close it after the test."""
    opened: list[WorkbookContext] = []

    def _open(path: Path) -> WorkbookContext:
        ctx = WorkbookContext(path)
        opened.append(ctx)
        return ctx

    yield _open
    for ctx in opened:
        ctx.close()


@pytest.fixture()
def read_values():
    """Plain cell values of a saved workbook, row by row."""
    return _read_values
