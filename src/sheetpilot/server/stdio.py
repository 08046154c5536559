"""stdio server mode: JSON line-delimited protocol over stdin/stdout.

Workbooks stay open between requests.  ``cell.write`` and ``grid.write``
only touch the in-memory copy; ``flush`` (or ``close``) persists every
dirty workbook in place.
"""

from __future__ import annotations

import json
import sys
from typing import Any, TextIO

import portalocker

from sheetpilot.config import Settings
from sheetpilot.contracts.actions import parse_actions
from sheetpilot.contracts.common import SheetPilotError
from sheetpilot.engine.batch import execute_batch
from sheetpilot.engine.resolver import detect_sheet_context
from sheetpilot.engine.window import read_window, write_cell, write_grid
from sheetpilot.io.store import SessionCache, WorkbookStore
from sheetpilot.observe.events import EventEmitter
from sheetpilot.validation.validators import validate_actions


class StdioServer:
    """Simple JSON-RPC-like server over stdin/stdout."""

    def __init__(self, settings: Settings | None = None, events: EventEmitter | None = None) -> None:
        self.settings = settings or Settings()
        self.events = events or EventEmitter(enabled=self.settings.events)
        self.store = WorkbookStore.from_settings(self.settings, self.events)
        self.cache = SessionCache(self.store)

    def _close_all(self) -> list[str]:
        written = self.cache.flush()
        self.cache.close_all()
        return written

    def handle_request(self, request: dict[str, Any]) -> dict[str, Any]:
        req_id = request.get("id", "")
        command = request.get("command", "")
        args = request.get("args", {}) or {}
        bounds = self.settings.bounds

        try:
            if command == "flush":
                return {"id": req_id, "ok": True, "result": {"written": self.cache.flush(args.get("file"))}}

            if command == "close":
                return {"id": req_id, "ok": True, "result": {"written": self._close_all()}}

            file = args.get("file", "")
            if not file:
                return {"id": req_id, "ok": False, "error": "Missing 'file' in args"}

            if command == "wb.inspect":
                ctx = self.cache.get(file)
                return {"id": req_id, "ok": True, "result": ctx.list_sheets().to_wire()}

            elif command == "sheet.context":
                ctx = self.cache.get(file)
                ws = ctx.get_sheet(args.get("sheet"))
                context = detect_sheet_context(ws, self.settings.scan_depth)
                return {"id": req_id, "ok": True, "result": context.to_wire()}

            elif command == "window.read":
                ctx = self.cache.get(file)
                window = read_window(
                    ctx, args.get("sheet"),
                    int(args.get("rowStart", 1)), int(args.get("rowEnd", 50)),
                    int(args.get("colStart", 1)), int(args.get("colEnd", 26)),
                    bounds=bounds,
                )
                return {"id": req_id, "ok": True, "result": window.to_wire()}

            elif command == "cell.write":
                ctx = self.cache.get(file)
                change = write_cell(
                    ctx, args.get("sheet", ""), int(args["row"]), int(args["col"]), args.get("value"),
                    bounds=bounds,
                )
                return {"id": req_id, "ok": True, "result": change.model_dump(mode="json")}

            elif command == "grid.write":
                ctx = self.cache.get(file)
                change = write_grid(
                    ctx, args.get("sheet", ""), int(args.get("rowStart", 1)), int(args.get("colStart", 1)),
                    args.get("data") or [], bounds=bounds,
                )
                return {"id": req_id, "ok": True, "result": change.model_dump(mode="json")}

            elif command == "actions.validate":
                ctx = self.cache.get(file)
                actions = parse_actions(args.get("actions", []))
                result = validate_actions(ctx, actions, sheet_name=args.get("sheet"), scan_depth=self.settings.scan_depth)
                return {"id": req_id, "ok": True, "result": result.model_dump()}

            elif command == "actions.apply":
                actions = parse_actions(args.get("actions", []))
                # Pending edits must reach disk before the batch reloads the file.
                self.cache.flush(file)
                self.cache.evict(file)
                batch = execute_batch(
                    self.store, file, actions,
                    sheet_name=args.get("sheet"),
                    scan_depth=self.settings.scan_depth,
                    highlight_color=self.settings.highlight_color,
                    events=self.events,
                )
                return {"id": req_id, "ok": batch.success, "result": batch.to_wire()}

            else:
                return {"id": req_id, "ok": False, "error": f"Unknown command: {command}"}

        except SheetPilotError as e:
            return {"id": req_id, "ok": False, "code": e.code, "error": e.message}
        except portalocker.LockException:
            return {"id": req_id, "ok": False, "code": "ERR_LOCK_HELD", "error": f"Workbook is locked: {args.get('file')}"}
        except (KeyError, ValueError, TypeError) as e:
            return {"id": req_id, "ok": False, "code": "ERR_USAGE", "error": f"Bad arguments for {command}: {e}"}

    def run(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        """Main server loop: read JSON lines from stdin, write responses to stdout."""
        stdin = stdin or sys.stdin
        stdout = stdout or sys.stdout
        for line in stdin:
            line = line.strip()
            if not line:
                continue
            try:
                request = json.loads(line)
            except json.JSONDecodeError as e:
                response = {"ok": False, "error": f"Invalid JSON: {e}"}
            else:
                if isinstance(request, dict):
                    response = self.handle_request(request)
                else:
                    response = {"ok": False, "error": "Request must be a JSON object"}
            stdout.write(json.dumps(response, default=str) + "\n")
            stdout.flush()

        self._close_all()
