"""Batch engine for ``sheetpilot apply``: ordered actions, one snapshot per step."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import portalocker
import yaml

from sheetpilot.contracts.actions import parse_actions
from sheetpilot.contracts.common import SheetPilotError
from sheetpilot.contracts.responses import BatchResult, StepResult
from sheetpilot.engine.resolver import DEFAULT_SCAN_DEPTH
from sheetpilot.io.fileops import read_text_safe
from sheetpilot.io.store import WorkbookStore
from sheetpilot.observe.events import NULL_EMITTER, EventEmitter


def load_actions(path: str | Path) -> list[Any]:
    """Load an action list from a YAML or JSON file."""
    text = read_text_safe(path)
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"Cannot parse action file {path}: {e}") from e
    if data is None:
        raise ValueError("Action file is empty.")
    return parse_actions(data)


def execute_batch(
    store: WorkbookStore,
    identifier: str | Path,
    actions: list[Any],
    *,
    sheet_name: str | None = None,
    scan_depth: int = DEFAULT_SCAN_DEPTH,
    highlight_color: str = "FFFF00",
    events: EventEmitter | None = None,
) -> BatchResult:
    """Apply ``actions`` in order, each against the previous step's snapshot.

    A failing step is recorded and ends the batch; snapshots persisted by
    earlier steps stay on disk.
    """
    from sheetpilot.adapters.openpyxl_engine import apply_action

    events = events or NULL_EMITTER
    origin = store.resolve(identifier)
    current = origin
    results: list[StepResult] = []

    events.emit("batch.start", {"workbook": str(origin), "steps": len(actions)})
    with store.locked(origin):
        for index, action in enumerate(actions):
            step = StepResult(index=index, action=action.action, success=False)
            try:
                with store.session(current) as ctx:
                    change = apply_action(
                        ctx, action,
                        sheet_name=sheet_name,
                        scan_depth=scan_depth,
                        highlight_color=highlight_color,
                    )
                    current = store.persist(ctx)
            except SheetPilotError as e:
                step.code = e.code
                step.message = e.message
            except portalocker.LockException:
                step.code = "ERR_LOCK_HELD"
                step.message = f"Workbook is locked by another process: {current}"
            except (ValueError, TypeError, KeyError) as e:
                step.code = "ERR_INTERNAL"
                step.message = str(e)
            else:
                step.success = True
                step.snapshot = str(current)
                step.change = change.model_dump(mode="json")

            results.append(step)
            if not step.success:
                events.emit("step.failed", {"index": index, "action": step.action, "code": step.code})
                break
            events.emit("step.ok", {"index": index, "action": step.action, "snapshot": step.snapshot})

    completed = sum(1 for r in results if r.success)
    result = BatchResult(
        success=completed == len(actions),
        steps_total=len(actions),
        steps_completed=completed,
        results=results,
        workbook=str(current),
    )
    events.emit("batch.done", {"success": result.success, "completed": completed})
    return result
