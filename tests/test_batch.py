"""Tests for batch execution across snapshots."""

from __future__ import annotations

import io
import json

import pytest

from sheetpilot.contracts.actions import parse_actions
from sheetpilot.contracts.common import WorkbookNotFound
from sheetpilot.engine.batch import execute_batch, load_actions
from sheetpilot.io.store import WorkbookStore
from sheetpilot.observe.events import EventEmitter


def test_failure_stops_batch_and_keeps_earlier_steps(ledger_workbook, store, read_values):
    actions = parse_actions([
        {"action": "ADD_COLUMN", "params": {"columnName": "Margin", "formulaTemplate": "Revenue - Cost"}},
        {"action": "SORT_DATA", "params": {"column": "Profit"}},
        {"action": "SET_CELL", "params": {"address": "A1", "value": "never"}},
    ])
    result = execute_batch(store, ledger_workbook, actions)

    assert result.success is False
    assert result.steps_total == 3
    assert result.steps_completed == 1
    assert [r.success for r in result.results] == [True, False]
    assert result.results[1].code == "ERR_COLUMN_NOT_FOUND"

    snapshot = result.results[0].snapshot
    assert result.workbook == snapshot
    rows = read_values(snapshot)
    assert rows[0] == ["Region", "Revenue", "Cost", "Status", "Margin"]
    assert rows[1][4] == "=B2 - C2"


def test_each_step_sees_the_previous_snapshot(sales_workbook, store, read_values):
    actions = parse_actions({"actions": [
        {"action": "SET_CELL", "params": {"cell": "B4", "value": 50}},
        {"action": "SORT_DATA", "params": {"column": "Revenue", "order": "DESC"}},
    ]})
    result = execute_batch(store, sales_workbook, actions)

    assert result.success is True
    assert result.steps_completed == 2
    first, second = (r.snapshot for r in result.results)
    assert first != second
    assert read_values(second)[1:] == [["Amy", 300], ["Raj", 100], ["Z", 50]]
    assert read_values(sales_workbook)[3] == ["Z", None]


def test_in_place_mode_rewrites_the_workbook(sales_workbook, tmp_path, read_values):
    store = WorkbookStore(tmp_path, snapshot_mode="in-place")
    actions = parse_actions([{"action": "UPDATE_ROW_VALUES", "params": {
        "filterColumn": "Name", "filterValue": "raj", "operation": "+", "value": 1, "targetColumn": "Revenue",
    }}])
    result = execute_batch(store, "sales.xlsx", actions)
    assert result.workbook == str(sales_workbook.resolve())
    assert read_values(sales_workbook)[1] == ["Raj", 101]


def test_sheet_not_found_is_a_step_failure(sales_workbook, store):
    actions = parse_actions([{"action": "SET_CELL", "params": {"address": "A1", "value": 1}}])
    result = execute_batch(store, sales_workbook, actions, sheet_name="Nope")
    assert result.success is False
    assert result.results[0].code == "ERR_SHEET_NOT_FOUND"
    assert result.workbook == str(sales_workbook.resolve())


def test_missing_workbook_raises(store):
    actions = parse_actions([{"action": "SET_CELL", "params": {"address": "A1", "value": 1}}])
    with pytest.raises(WorkbookNotFound):
        execute_batch(store, "missing.xlsx", actions)


def test_wire_shape(sales_workbook, store):
    actions = parse_actions([{"action": "HIGHLIGHT_ROWS", "params": {"condition": "Revenue > 150"}}])
    wire = execute_batch(store, sales_workbook, actions).to_wire()
    assert wire["success"] is True
    assert wire["stepsTotal"] == 1
    assert wire["results"][0]["action"] == "HIGHLIGHT_ROWS"
    assert wire["results"][0]["change"]["after"]["rows"] == [3]


def test_events_trace_the_batch(sales_workbook, tmp_path):
    stream = io.StringIO()
    events = EventEmitter(enabled=True, stream=stream)
    store = WorkbookStore(tmp_path, events=events)
    actions = parse_actions([
        {"action": "SET_CELL", "params": {"address": "C1", "value": "Note"}},
        {"action": "FIND_AND_REPLACE", "params": {"findValue": "missing", "replaceValue": "x"}},
    ])
    execute_batch(store, sales_workbook, actions, events=events)
    names = [json.loads(line)["event"] for line in stream.getvalue().splitlines()]
    assert names == ["batch.start", "workbook.saved", "step.ok", "step.failed", "batch.done"]


def test_load_actions_from_yaml(tmp_path):
    path = tmp_path / "actions.yaml"
    path.write_text(
        "actions:\n"
        "  - action: SORT_DATA\n"
        "    params: {column: Revenue, order: desc}\n"
        "  - action: SET_CELL\n"
        "    params: {address: B2, value: 7}\n"
    )
    actions = load_actions(path)
    assert [a.action for a in actions] == ["SORT_DATA", "SET_CELL"]
    assert actions[0].params.order == "desc"


def test_load_actions_from_json(tmp_path):
    path = tmp_path / "actions.json"
    path.write_text(json.dumps([{"action": "SET_CELL", "params": {"cell": "A2", "value": "x"}}]))
    assert load_actions(path)[0].params.address == "A2"


def test_load_actions_empty_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    with pytest.raises(ValueError):
        load_actions(path)
