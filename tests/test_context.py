"""Tests for WorkbookContext."""

from __future__ import annotations

from pathlib import Path

import pytest

from sheetpilot.contracts.common import SheetNotFound, WorkbookNotFound
from sheetpilot.engine.cells import CellKind
from sheetpilot.engine.context import WorkbookContext


def test_missing_file(tmp_path: Path):
    with pytest.raises(WorkbookNotFound):
        WorkbookContext(tmp_path / "missing.xlsx")


def test_first_sheet_by_default(multi_sheet_workbook: Path, open_ctx):
    ctx = open_ctx(multi_sheet_workbook)
    assert ctx.get_sheet().title == "First"
    assert ctx.get_sheet("Hidden").title == "Hidden"
    assert ctx.sheet_names == ["First", "Hidden", "Last"]


def test_sheet_names_are_exact(multi_sheet_workbook: Path, open_ctx):
    ctx = open_ctx(multi_sheet_workbook)
    with pytest.raises(SheetNotFound) as exc:
        ctx.get_sheet("first")
    assert exc.value.details["available"] == ["First", "Hidden", "Last"]


def test_read_cell_classifies(ledger_workbook: Path, open_ctx):
    ctx = open_ctx(ledger_workbook)
    ws = ctx.get_sheet()
    assert ctx.read_cell(ws, 2, 2).kind is CellKind.NUMBER
    assert ctx.read_cell(ws, 4, 2).kind is CellKind.TEXT
    assert ctx.read_cell(ws, 40, 40).is_null


def test_formula_without_cached_value(sales_workbook: Path, open_ctx):
    ctx = open_ctx(sales_workbook)
    ws = ctx.get_sheet()
    ws["C2"] = "=B2*2"
    cv = ctx.read_cell(ws, 2, 3)
    assert cv.kind is CellKind.FORMULA
    assert cv.cached is None


def test_mark_dirty_drops_cached_values(sales_workbook: Path, open_ctx):
    ctx = open_ctx(sales_workbook)
    assert ctx._values() is not None
    ctx.mark_dirty()
    assert ctx._values() is None


def test_save_moves_context_to_new_path(sales_workbook: Path, tmp_path: Path, open_ctx):
    ctx = open_ctx(sales_workbook)
    old_fp = ctx.fp
    ctx.get_sheet()["A2"] = "Ravi"
    ctx.mark_dirty()
    target = tmp_path / "copy.xlsx"
    data = ctx.save(target)
    assert data[:2] == b"PK"
    assert ctx.path == target.resolve()
    assert ctx.fp != old_fp
    assert ctx.dirty is False


def test_target(sales_workbook: Path, open_ctx):
    ctx = open_ctx(sales_workbook)
    t = ctx.target(sheet="Sales", ref=None)
    assert t.file == str(sales_workbook.resolve())
    assert t.sheet == "Sales"
    assert t.ref is None
