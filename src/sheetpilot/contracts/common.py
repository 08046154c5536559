"""Common Pydantic models: response envelope, errors, warnings, metrics."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class SheetPilotError(Exception):
    """Base class for recoverable engine errors surfaced to the caller."""

    code = "ERR_INTERNAL"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class WorkbookCorruptError(SheetPilotError):
    """Raised when a workbook file cannot be parsed."""

    code = "ERR_WORKBOOK_CORRUPT"


class WorkbookNotFound(SheetPilotError):
    code = "ERR_WORKBOOK_NOT_FOUND"


class SheetNotFound(SheetPilotError):
    """Raised when a sheet name is not present; details list the available names."""

    code = "ERR_SHEET_NOT_FOUND"

    def __init__(self, name: str, available: list[str]) -> None:
        super().__init__(
            f"Sheet not found: {name}. Available sheets: {', '.join(available) or '(none)'}",
            details={"sheet": name, "available": available},
        )


class ColumnNotFound(SheetPilotError):
    code = "ERR_COLUMN_NOT_FOUND"

    def __init__(self, name: str, sheet: str | None = None) -> None:
        where = f" in sheet '{sheet}'" if sheet else ""
        super().__init__(f"Column '{name}' not found{where}", details={"column": name, "sheet": sheet})


class NoMatchingRows(SheetPilotError):
    code = "ERR_NO_MATCHING_ROWS"


class InvalidAddress(SheetPilotError):
    code = "ERR_INVALID_ADDRESS"


class InvalidOperation(SheetPilotError):
    code = "ERR_INVALID_OPERATION"


class InvalidRange(SheetPilotError):
    code = "ERR_RANGE_INVALID"


class ActionValidationError(SheetPilotError):
    code = "ERR_ACTION_INVALID"


class Target(BaseModel):
    """Identifies the target workbook/sheet/cell for a command."""

    file: str | None = None
    sheet: str | None = None
    ref: str | None = None


class WarningDetail(BaseModel):
    """Structured warning."""

    code: str
    message: str
    path: str | None = None


class ErrorDetail(BaseModel):
    """Structured error."""

    code: str
    message: str
    details: dict[str, Any] | None = None

    @classmethod
    def from_exc(cls, exc: SheetPilotError) -> "ErrorDetail":
        return cls(code=exc.code, message=exc.message, details=exc.details)


class Metrics(BaseModel):
    """Execution metrics."""

    duration_ms: int = 0


class ChangeRecord(BaseModel):
    """Describes a single change made by an action or a write."""

    type: str
    target: str
    before: Any | None = None
    after: Any | None = None
    impact: dict[str, Any] | None = None
    warnings: list[WarningDetail] = Field(default_factory=list)


class ResponseEnvelope(BaseModel):
    """Standard response envelope returned by every command."""

    ok: bool = True
    command: str = ""
    target: Target = Field(default_factory=Target)
    result: Any = None
    changes: list[ChangeRecord] = Field(default_factory=list)
    warnings: list[WarningDetail] = Field(default_factory=list)
    errors: list[ErrorDetail] = Field(default_factory=list)
    metrics: Metrics = Field(default_factory=Metrics)
