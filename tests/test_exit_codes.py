"""Exit code mapping regression tests."""

import json

import pytest

from sheetpilot.contracts.common import ColumnNotFound
from sheetpilot.engine.dispatcher import (
    envelope_for_error,
    error_envelope,
    exit_code_for,
    output_json,
    success_envelope,
)


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        ("ERR_RANGE_INVALID", 10),
        ("ERR_ACTION_INVALID", 10),
        ("ERR_INVALID_ADDRESS", 10),
        ("ERR_INVALID_OPERATION", 10),
        ("ERR_SHEET_NOT_FOUND", 10),
        ("ERR_CONFIG_INVALID", 10),
        ("ERR_VALIDATION_FAILED", 10),
        ("ERR_COLUMN_NOT_FOUND", 20),
        ("ERR_NO_MATCHING_ROWS", 20),
        ("ERR_BATCH_FAILED", 20),
        ("ERR_WORKBOOK_NOT_FOUND", 50),
        ("ERR_WORKBOOK_CORRUPT", 50),
        ("ERR_LOCK_HELD", 50),
        ("ERR_IO", 50),
        ("ERR_INTERNAL", 90),
    ],
)
def test_exit_code_classes(code, expected):
    env = error_envelope("x", code, "msg")
    assert exit_code_for(env) == expected


def test_exit_code_success():
    env = success_envelope("x", {})
    assert exit_code_for(env) == 0


def test_envelope_for_error_keeps_details():
    env = envelope_for_error("apply", ColumnNotFound("Profit", "Sales"))
    assert env.ok is False
    assert env.errors[0].code == "ERR_COLUMN_NOT_FOUND"
    assert env.errors[0].details == {"column": "Profit", "sheet": "Sales"}


def test_output_json_is_indented_json():
    text = output_json(success_envelope("version", {"version": "1"}, duration_ms=3))
    data = json.loads(text)
    assert data["metrics"]["duration_ms"] == 3
    assert "\n  " in text
