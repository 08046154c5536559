"""Cell value classification and coercions shared by actions and windows."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any

from openpyxl.cell.rich_text import CellRichText
from openpyxl.utils.datetime import to_excel
from openpyxl.worksheet.formula import ArrayFormula, DataTableFormula
from openpyxl.worksheet.worksheet import Worksheet


class CellKind(str, Enum):
    NULL = "null"
    NUMBER = "number"
    BOOLEAN = "boolean"
    TEXT = "text"
    DATE = "date"
    FORMULA = "formula"
    RICH_TEXT = "rich_text"


@dataclass(frozen=True)
class CellValue:
    """A classified cell value.

    ``raw`` is what openpyxl holds.  ``cached`` is the last computed result
    of a formula when the workbook carried one.
    """

    kind: CellKind
    raw: Any = None
    cached: Any = None

    @property
    def is_null(self) -> bool:
        return self.kind is CellKind.NULL

    @property
    def formula_text(self) -> str | None:
        if self.kind is not CellKind.FORMULA:
            return None
        if isinstance(self.raw, ArrayFormula):
            return self.raw.text
        if isinstance(self.raw, DataTableFormula):
            return None
        return self.raw


NULL = CellValue(CellKind.NULL)


def classify(raw: Any, cached: Any = None) -> CellValue:
    """Classify a raw openpyxl value into a :class:`CellValue`."""
    if isinstance(raw, CellValue):
        return raw
    if raw is None:
        return NULL
    if isinstance(raw, bool):
        return CellValue(CellKind.BOOLEAN, raw)
    if isinstance(raw, (int, float)):
        return CellValue(CellKind.NUMBER, raw)
    if isinstance(raw, (datetime, date, time, timedelta)):
        return CellValue(CellKind.DATE, raw)
    if isinstance(raw, CellRichText):
        return CellValue(CellKind.RICH_TEXT, raw)
    if isinstance(raw, (ArrayFormula, DataTableFormula)):
        return CellValue(CellKind.FORMULA, raw, cached)
    if isinstance(raw, str):
        if len(raw) > 1 and raw.startswith("="):
            return CellValue(CellKind.FORMULA, raw, cached)
        return CellValue(CellKind.TEXT, raw)
    return CellValue(CellKind.TEXT, str(raw))


def peek(ws: Worksheet, row: int, column: int) -> Any:
    """Return the raw value at (row, column) without materialising a cell."""
    cell = ws._cells.get((row, column))
    return None if cell is None else cell.value


def _number_text(n: int | float) -> str:
    if isinstance(n, float) and n.is_integer():
        return str(int(n))
    return str(n)


def _date_text(d: datetime | date | time | timedelta) -> str:
    if isinstance(d, timedelta):
        return str(d)
    return d.isoformat()


def to_text(value: Any) -> str:
    """Display text of a value; ``""`` for null."""
    cv = classify(value)
    if cv.kind is CellKind.NULL:
        return ""
    if cv.kind is CellKind.BOOLEAN:
        return "TRUE" if cv.raw else "FALSE"
    if cv.kind is CellKind.NUMBER:
        return _number_text(cv.raw)
    if cv.kind is CellKind.DATE:
        return _date_text(cv.raw)
    if cv.kind is CellKind.RICH_TEXT:
        return str(cv.raw)
    if cv.kind is CellKind.FORMULA:
        if cv.cached is not None:
            return to_text(cv.cached)
        return cv.formula_text or ""
    return cv.raw


def to_number(value: Any) -> float | None:
    """Strict numeric coercion; ``None`` when the value is not a number.

    Text must parse completely once trimmed; empty text is not a number.
    Dates coerce to Excel serials so they order chronologically.
    """
    cv = classify(value)
    if cv.kind is CellKind.NUMBER:
        n = float(cv.raw)
        return None if math.isnan(n) else n
    if cv.kind is CellKind.BOOLEAN:
        return float(cv.raw)
    if cv.kind is CellKind.DATE:
        serial = to_excel(cv.raw)
        return None if serial is None else float(serial)
    if cv.kind in (CellKind.TEXT, CellKind.RICH_TEXT):
        text = str(cv.raw).strip()
        if not text:
            return None
        try:
            n = float(text)
        except ValueError:
            return None
        return None if math.isnan(n) else n
    if cv.kind is CellKind.FORMULA and cv.cached is not None:
        return to_number(cv.cached)
    return None


_LEADING_FLOAT = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def parse_leading_float(value: Any) -> float | None:
    """Lenient parse: the longest numeric prefix of the text, if any."""
    cv = classify(value)
    if cv.kind is CellKind.NUMBER:
        return to_number(cv)
    if cv.kind in (CellKind.NULL, CellKind.BOOLEAN, CellKind.DATE):
        return None
    m = _LEADING_FLOAT.match(to_text(cv).strip())
    return float(m.group(0)) if m else None


def normalize_number(n: float) -> int | float:
    """Collapse integral floats back to ``int`` for storage."""
    if isinstance(n, float) and n.is_integer():
        return int(n)
    return n


def loose_match(a: Any, b: Any) -> bool:
    """Native equality, or equal non-empty trimmed case-insensitive text."""
    raw_a = a.raw if isinstance(a, CellValue) else a
    raw_b = b.raw if isinstance(b, CellValue) else b
    if (
        raw_a is not None
        and raw_b is not None
        and not isinstance(raw_a, bool)
        and not isinstance(raw_b, bool)
        and raw_a == raw_b
    ):
        return True
    text_a = to_text(a).strip()
    text_b = to_text(b).strip()
    return bool(text_a) and bool(text_b) and text_a.casefold() == text_b.casefold()


def to_window_value(value: Any) -> Any:
    """Read-path coercion of a cell value into a JSON primitive."""
    cv = classify(value)
    if cv.kind is CellKind.NULL:
        return None
    if cv.kind is CellKind.DATE:
        return _date_text(cv.raw)
    if cv.kind is CellKind.FORMULA:
        if cv.cached is not None:
            return to_window_value(cv.cached)
        return cv.formula_text
    if cv.kind is CellKind.RICH_TEXT:
        return str(cv.raw)
    return cv.raw
