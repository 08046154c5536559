"""Command-specific result models.

Window, listing and batch shapes are consumed by rendering clients, so they
serialise with camelCase aliases (``model_dump(by_alias=True)``).
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SheetSummary(WireModel):
    """One visible sheet in a workbook listing."""

    sheet_id: str
    name: str
    total_rows: int
    total_cols: int


class WorkbookListing(WireModel):
    sheets: list[SheetSummary] = Field(default_factory=list)


class SheetContext(WireModel):
    """Detected header row and column labels of a sheet."""

    sheet_name: str | None = None
    header_row: int | None = None
    columns: list[str] = Field(default_factory=list)


class ColumnMatch(WireModel):
    column_index: int
    header_row: int
    column_letter: str = ""


class WindowBounds(WireModel):
    row_start: int
    row_end: int
    col_start: int
    col_end: int


class WindowMeta(WireModel):
    total_rows: int
    total_columns: int
    sheet_name: str
    window: WindowBounds


class WindowResponse(WireModel):
    data: list[list[Any]] = Field(default_factory=list)
    meta: WindowMeta

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class StepResult(WireModel):
    """Outcome of one action within a batch."""

    index: int
    action: str
    success: bool
    message: str | None = None
    code: str | None = None
    snapshot: str | None = None
    change: dict[str, Any] | None = None


class BatchResult(WireModel):
    success: bool
    steps_total: int
    steps_completed: int
    results: list[StepResult] = Field(default_factory=list)
    workbook: str | None = None


class ValidationResult(BaseModel):
    """Result of a preflight validation."""

    valid: bool = True
    checks: list[dict[str, Any]] = Field(default_factory=list)
