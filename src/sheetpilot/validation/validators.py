"""Preflight validation of action lists against a workbook."""

from __future__ import annotations

from typing import Any

from sheetpilot.adapters.openpyxl_engine import (
    check_operation,
    parse_address,
    parse_condition,
    solid_fill,
)
from sheetpilot.contracts.common import InvalidOperation, SheetNotFound, SheetPilotError
from sheetpilot.contracts.responses import ValidationResult
from sheetpilot.engine.context import WorkbookContext
from sheetpilot.engine.resolver import DEFAULT_SCAN_DEPTH, resolve_column


def _check(index: int, action: str, passed: bool, message: str, **extra: Any) -> dict[str, Any]:
    return {"type": "action_valid", "index": index, "action": action, "passed": passed, "message": message, **extra}


def validate_actions(
    ctx: WorkbookContext,
    actions: list[Any],
    *,
    sheet_name: str | None = None,
    scan_depth: int = DEFAULT_SCAN_DEPTH,
) -> ValidationResult:
    """Check that each action could run, without touching the workbook.

    Columns added by an earlier ``ADD_COLUMN`` count as present for the
    actions after it.
    """
    checks: list[dict[str, Any]] = []
    try:
        ws = ctx.get_sheet(sheet_name)
    except SheetNotFound as e:
        checks.append({"type": "sheet_exists", "target": sheet_name, "passed": False, "message": e.message})
        return ValidationResult(valid=False, checks=checks)
    checks.append({"type": "sheet_exists", "target": ws.title, "passed": True, "message": f"Sheet '{ws.title}' exists"})

    planned: set[str] = set()

    def known(name: str | None) -> bool:
        if not name:
            return False
        return name.strip().casefold() in planned or resolve_column(ws, name, scan_depth) is not None

    for index, action in enumerate(actions):
        name = action.action
        p = action.params
        missing: list[str] = []
        try:
            if name == "ADD_COLUMN":
                if known(p.column_name):
                    checks.append(_check(
                        index, name, True,
                        f"Column '{p.column_name}' already exists; a second one will be added",
                        severity="warning",
                    ))
                    continue
                planned.add(p.column_name.strip().casefold())
            elif name == "HIGHLIGHT_ROWS":
                column, _, _ = parse_condition(p.condition)
                if p.color is not None:
                    solid_fill(p.color)
                if not known(column):
                    checks.append(_check(
                        index, name, True,
                        f"Column '{column}' not found; no rows will be highlighted",
                        severity="warning",
                    ))
                    continue
            elif name == "SORT_DATA":
                missing = [c for c in (p.column,) if not known(c)]
            elif name == "UPDATE_ROW_VALUES":
                check_operation(p.operation, p.value)
                missing = [c for c in (p.filter_column,) if not known(c)]
                if p.operation == "SET":
                    if not p.target_column:
                        raise InvalidOperation("SET requires a targetColumn")
                    if not known(p.target_column):
                        missing.append(p.target_column)
            elif name == "UPDATE_COLUMN_VALUES":
                check_operation(p.operation, p.value)
                missing = [c for c in (p.column,) if not known(c)]
            elif name == "UPDATE_KEY_VALUE":
                missing = [c for c in (p.key_column,) if not known(c)]
            elif name == "SET_CELL":
                parse_address(p.address)
            elif name == "FIND_AND_REPLACE":
                if p.column and not known(p.column):
                    missing = [p.column]
        except SheetPilotError as e:
            checks.append(_check(index, name, False, e.message))
            continue

        if missing:
            checks.append(_check(
                index, name, False,
                f"Column(s) not found in sheet '{ws.title}': {', '.join(missing)}",
            ))
        else:
            checks.append(_check(index, name, True, f"Action {index} ({name}) is valid"))

    valid = all(c.get("passed", True) for c in checks)
    return ValidationResult(valid=valid, checks=checks)
