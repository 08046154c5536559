"""Workbook storage: identifier resolution, snapshots, sessions."""

from __future__ import annotations

from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import Any, ContextManager, Iterator

from sheetpilot.contracts.common import ChangeRecord, WorkbookNotFound
from sheetpilot.contracts.responses import WorkbookListing
from sheetpilot.engine.context import WorkbookContext
from sheetpilot.engine.window import DEFAULT_BOUNDS, VirtualBounds, write_cell
from sheetpilot.io.fileops import WorkbookLock, snapshot_path
from sheetpilot.observe.events import NULL_EMITTER, EventEmitter

SNAPSHOT_MODES = ("new-file", "in-place")


class WorkbookStore:
    """Loads and persists workbooks addressed by an opaque identifier.

    An identifier is an existing path, or a name relative to ``root``.
    In ``new-file`` mode every persisted mutation becomes a new sibling
    file, leaving the previous snapshot untouched; ``in-place`` rewrites
    the same file.  Either way the whole workbook is re-serialised.
    """

    def __init__(
        self,
        root: str | Path = ".",
        *,
        snapshot_mode: str = "new-file",
        lock_timeout: float | None = None,
        events: EventEmitter | None = None,
    ) -> None:
        if snapshot_mode not in SNAPSHOT_MODES:
            raise ValueError(f"Unknown snapshot_mode: {snapshot_mode}")
        self.root = Path(root)
        self.snapshot_mode = snapshot_mode
        self.lock_timeout = lock_timeout
        self.events = events or NULL_EMITTER

    @classmethod
    def from_settings(cls, settings: Any, events: EventEmitter | None = None) -> "WorkbookStore":
        return cls(
            settings.storage_root,
            snapshot_mode=settings.snapshot_mode,
            lock_timeout=settings.lock_timeout,
            events=events,
        )

    def resolve(self, identifier: str | Path) -> Path:
        candidate = Path(identifier)
        if not candidate.is_absolute() and not candidate.exists():
            candidate = self.root / candidate
        if not candidate.exists():
            raise WorkbookNotFound(f"Workbook not found: {identifier}", details={"identifier": str(identifier)})
        return candidate.resolve()

    def load(self, identifier: str | Path) -> WorkbookContext:
        return WorkbookContext(self.resolve(identifier))

    def locked(self, identifier: str | Path) -> ContextManager[Any]:
        """Exclusive per-workbook section, or a no-op when locking is off."""
        if self.lock_timeout is None:
            return nullcontext()
        return WorkbookLock(self.resolve(identifier), timeout=self.lock_timeout)

    @contextmanager
    def session(self, identifier: str | Path) -> Iterator[WorkbookContext]:
        ctx = self.load(identifier)
        try:
            yield ctx
        finally:
            ctx.close()

    def persist(self, ctx: WorkbookContext, *, in_place: bool | None = None) -> Path:
        """Serialise ``ctx``; returns the path that now holds the snapshot."""
        if in_place is None:
            in_place = self.snapshot_mode == "in-place"
        source = ctx.path
        target = source if in_place else snapshot_path(source)
        ctx.save(target)
        self.events.emit("workbook.saved", {"source": str(source), "path": str(target)})
        return target

    def list_sheets(self, identifier: str | Path) -> WorkbookListing:
        with self.session(identifier) as ctx:
            return ctx.list_sheets()

    def write_cell(
        self,
        identifier: str | Path,
        sheet_name: str,
        row: int,
        col: int,
        value: Any,
        *,
        bounds: VirtualBounds = DEFAULT_BOUNDS,
    ) -> ChangeRecord:
        """Write one cell and re-save the whole workbook in place.

        Every call costs a full load and save; callers making many edits
        should hold a :class:`SessionCache` and flush once.
        """
        with self.locked(identifier), self.session(identifier) as ctx:
            change = write_cell(ctx, sheet_name, row, col, value, bounds=bounds)
            self.persist(ctx, in_place=True)
        return change


class SessionCache:
    """Open workbooks kept across requests, keyed by identifier.

    Writes mark a context dirty; nothing reaches disk until :meth:`flush`.
    """

    def __init__(self, store: WorkbookStore) -> None:
        self.store = store
        self._open: dict[str, WorkbookContext] = {}

    def _key(self, identifier: str | Path) -> str:
        return str(self.store.resolve(identifier))

    def get(self, identifier: str | Path) -> WorkbookContext:
        key = self._key(identifier)
        if key not in self._open:
            self._open[key] = WorkbookContext(key)
        return self._open[key]

    def dirty(self) -> list[str]:
        return [key for key, ctx in self._open.items() if ctx.dirty]

    def flush(self, identifier: str | Path | None = None) -> list[str]:
        """Persist dirty workbooks in place. Returns the paths written."""
        keys = [self._key(identifier)] if identifier is not None else list(self._open)
        written: list[str] = []
        for key in keys:
            ctx = self._open.get(key)
            if ctx is None or not ctx.dirty:
                continue
            with self.store.locked(key):
                self.store.persist(ctx, in_place=True)
            written.append(key)
        return written

    def evict(self, identifier: str | Path) -> None:
        ctx = self._open.pop(self._key(identifier), None)
        if ctx is not None:
            ctx.close()

    def close_all(self) -> None:
        for ctx in self._open.values():
            ctx.close()
        self._open.clear()
