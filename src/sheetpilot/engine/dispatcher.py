"""Command dispatch and response envelope helpers."""

from __future__ import annotations

import sys
from typing import Any

import orjson

from sheetpilot.contracts.common import (
    ErrorDetail,
    Metrics,
    ResponseEnvelope,
    SheetPilotError,
    Target,
)

# Exit code mapping
EXIT_CODES = {
    "success": 0,
    "validation": 10,
    "action": 20,
    "io": 50,
    "internal": 90,
}

VALIDATION_CODE_MARKERS = (
    "VALIDATION",
    "RANGE",
    "ACTION_INVALID",
    "CONFIG_INVALID",
    "INVALID_ADDRESS",
    "INVALID_OPERATION",
    "USAGE",
    "SHEET_NOT_FOUND",
)

# Well-formed requests that found nothing to act on.
ACTION_CODE_MARKERS = (
    "COLUMN_NOT_FOUND",
    "NO_MATCHING",
    "BATCH_FAILED",
)


def success_envelope(
    command: str,
    result: Any,
    *,
    target: Target | None = None,
    changes: list | None = None,
    warnings: list | None = None,
    duration_ms: int = 0,
) -> ResponseEnvelope:
    return ResponseEnvelope(
        ok=True,
        command=command,
        target=target or Target(),
        result=result,
        changes=changes or [],
        warnings=warnings or [],
        metrics=Metrics(duration_ms=duration_ms),
    )


def error_envelope(
    command: str,
    code: str,
    message: str,
    *,
    target: Target | None = None,
    details: dict | None = None,
    result: Any = None,
    duration_ms: int = 0,
) -> ResponseEnvelope:
    return ResponseEnvelope(
        ok=False,
        command=command,
        target=target or Target(),
        result=result,
        errors=[ErrorDetail(code=code, message=message, details=details)],
        metrics=Metrics(duration_ms=duration_ms),
    )


def envelope_for_error(
    command: str,
    exc: SheetPilotError,
    *,
    target: Target | None = None,
    duration_ms: int = 0,
) -> ResponseEnvelope:
    return error_envelope(
        command, exc.code, exc.message,
        target=target, details=exc.details, duration_ms=duration_ms,
    )


def output_json(envelope: ResponseEnvelope) -> str:
    """Serialize envelope to JSON string using orjson."""
    data = envelope.model_dump(mode="json")
    return orjson.dumps(data, option=orjson.OPT_INDENT_2).decode()


def print_response(envelope: ResponseEnvelope) -> None:
    """Print response as JSON to stdout."""
    sys.stdout.write(output_json(envelope) + "\n")


def exit_code_for(envelope: ResponseEnvelope) -> int:
    """Determine exit code from envelope errors."""
    if envelope.ok:
        return 0
    if not envelope.errors:
        return EXIT_CODES["internal"]
    code = envelope.errors[0].code.upper()
    if any(marker in code for marker in VALIDATION_CODE_MARKERS):
        return EXIT_CODES["validation"]
    if any(marker in code for marker in ACTION_CODE_MARKERS):
        return EXIT_CODES["action"]
    if code.startswith("ERR_IO") or "LOCK" in code or code.endswith("NOT_FOUND") or "CORRUPT" in code:
        return EXIT_CODES["io"]
    return EXIT_CODES["internal"]
