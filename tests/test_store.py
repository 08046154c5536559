"""Tests for workbook storage, snapshots and the session cache."""

from __future__ import annotations

import io
import json
from pathlib import Path

import portalocker
import pytest

from sheetpilot.contracts.common import InvalidRange, WorkbookCorruptError, WorkbookNotFound
from sheetpilot.engine.window import write_cell
from sheetpilot.io.fileops import WorkbookLock, check_lock, snapshot_path
from sheetpilot.io.store import SessionCache, WorkbookStore
from sheetpilot.observe.events import EventEmitter


def test_resolve_relative_to_root(sales_workbook, store):
    assert store.resolve("sales.xlsx") == sales_workbook.resolve()
    assert store.resolve(str(sales_workbook)) == sales_workbook.resolve()


def test_resolve_missing(store):
    with pytest.raises(WorkbookNotFound) as exc:
        store.resolve("nope.xlsx")
    assert exc.value.code == "ERR_WORKBOOK_NOT_FOUND"


def test_corrupt_workbook(tmp_path, store):
    bad = tmp_path / "bad.xlsx"
    bad.write_bytes(b"not a zip")
    with pytest.raises(WorkbookCorruptError):
        store.load("bad.xlsx")


def test_list_sheets_skips_hidden(multi_sheet_workbook, store):
    listing = store.list_sheets(multi_sheet_workbook)
    assert listing.to_wire() == {
        "sheets": [
            {"sheetId": "First", "name": "First", "totalRows": 2, "totalCols": 3},
            {"sheetId": "Last", "name": "Last", "totalRows": 5, "totalCols": 2},
        ]
    }


def test_persist_new_file_keeps_previous_snapshot(sales_workbook, store, read_values):
    before = sales_workbook.read_bytes()
    with store.session(sales_workbook) as ctx:
        write_cell(ctx, "Sales", 2, 2, 999)
        saved = store.persist(ctx)
    assert saved != sales_workbook.resolve()
    assert saved.name.startswith("sales_") and saved.suffix == ".xlsx"
    assert sales_workbook.read_bytes() == before
    assert read_values(saved)[1] == ["Raj", 999]


def test_persist_in_place(sales_workbook, tmp_path, read_values):
    store = WorkbookStore(tmp_path, snapshot_mode="in-place")
    with store.session(sales_workbook) as ctx:
        write_cell(ctx, "Sales", 2, 2, 5)
        saved = store.persist(ctx)
    assert saved == sales_workbook.resolve()
    assert read_values(sales_workbook)[1] == ["Raj", 5]


def test_unknown_snapshot_mode(tmp_path):
    with pytest.raises(ValueError):
        WorkbookStore(tmp_path, snapshot_mode="sideways")


def test_store_write_cell_persists_immediately(sales_workbook, store, read_values):
    change = store.write_cell("sales.xlsx", "Sales", 3, 1, "Ann")
    assert change.after == "Ann"
    assert read_values(sales_workbook)[2] == ["Ann", 300]


def test_store_write_cell_out_of_bounds_leaves_file(sales_workbook, store):
    before = sales_workbook.read_bytes()
    with pytest.raises(InvalidRange):
        store.write_cell("sales.xlsx", "Sales", 2000, 1, "x")
    assert sales_workbook.read_bytes() == before


def test_saved_event_is_emitted(sales_workbook, tmp_path):
    stream = io.StringIO()
    store = WorkbookStore(tmp_path, events=EventEmitter(enabled=True, stream=stream))
    store.write_cell(sales_workbook, "Sales", 2, 1, "R")
    event = json.loads(stream.getvalue().splitlines()[-1])
    assert event["event"] == "workbook.saved"
    assert event["data"]["path"] == str(sales_workbook.resolve())


def test_session_cache_defers_writes_until_flush(sales_workbook, store, read_values):
    cache = SessionCache(store)
    ctx = cache.get("sales.xlsx")
    assert cache.get(sales_workbook) is ctx
    write_cell(ctx, "Sales", 2, 2, 1)
    assert read_values(sales_workbook)[1] == ["Raj", 100]
    assert cache.dirty() == [str(sales_workbook.resolve())]

    written = cache.flush()
    assert written == [str(sales_workbook.resolve())]
    assert read_values(sales_workbook)[1] == ["Raj", 1]
    assert cache.dirty() == []
    assert cache.flush() == []
    cache.close_all()


def test_session_cache_evict(sales_workbook, store):
    cache = SessionCache(store)
    first = cache.get(sales_workbook)
    cache.evict(sales_workbook)
    assert cache.get(sales_workbook) is not first
    cache.close_all()


def test_snapshot_path_never_collides(tmp_path):
    base = tmp_path / "book.xlsx"
    first = snapshot_path(base)
    first.write_bytes(b"")
    second = snapshot_path(base)
    assert second != first
    assert not second.exists()


def test_lock_blocks_second_holder(sales_workbook, tmp_path):
    store = WorkbookStore(tmp_path, lock_timeout=0)
    with WorkbookLock(sales_workbook):
        assert check_lock(sales_workbook)["locked"] is True
        with pytest.raises(portalocker.LockException):
            store.write_cell(sales_workbook, "Sales", 2, 1, "x")
    assert check_lock(sales_workbook)["locked"] is False


def test_locking_disabled_by_default(sales_workbook, store):
    with store.locked(sales_workbook):
        pass
    assert not Path(str(sales_workbook.resolve()) + ".sheetpilot.lock").exists()
