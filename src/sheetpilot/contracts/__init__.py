"""Pydantic models for actions, responses, and errors."""

from sheetpilot.contracts.actions import (
    ACTION_NAMES,
    Action,
    parse_action,
    parse_actions,
)
from sheetpilot.contracts.common import (
    ActionValidationError,
    ChangeRecord,
    ColumnNotFound,
    ErrorDetail,
    InvalidAddress,
    InvalidOperation,
    InvalidRange,
    Metrics,
    NoMatchingRows,
    ResponseEnvelope,
    SheetNotFound,
    SheetPilotError,
    Target,
    WarningDetail,
    WorkbookCorruptError,
    WorkbookNotFound,
)
from sheetpilot.contracts.responses import (
    BatchResult,
    ColumnMatch,
    SheetContext,
    SheetSummary,
    StepResult,
    WindowBounds,
    WindowMeta,
    WindowResponse,
    WorkbookListing,
)

__all__ = [
    "ACTION_NAMES",
    "Action",
    "ActionValidationError",
    "BatchResult",
    "ChangeRecord",
    "ColumnMatch",
    "ColumnNotFound",
    "ErrorDetail",
    "InvalidAddress",
    "InvalidOperation",
    "InvalidRange",
    "Metrics",
    "NoMatchingRows",
    "ResponseEnvelope",
    "SheetContext",
    "SheetNotFound",
    "SheetPilotError",
    "SheetSummary",
    "StepResult",
    "Target",
    "WarningDetail",
    "WindowBounds",
    "WindowMeta",
    "WindowResponse",
    "WorkbookCorruptError",
    "WorkbookListing",
    "WorkbookNotFound",
    "parse_action",
    "parse_actions",
]
