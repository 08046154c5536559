"""Header-name substitution for formula templates."""

from __future__ import annotations

import re

from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from sheetpilot.engine.cells import peek, to_text


def build_header_map(ws: Worksheet, header_row: int = 1) -> dict[str, int]:
    """Map lowercased header text to its column index.

    The leftmost column wins when two headers share the same text.
    """
    headers: dict[str, int] = {}
    for col in range(1, ws.max_column + 1):
        text = to_text(peek(ws, header_row, col)).strip().lower()
        if text and text not in headers:
            headers[text] = col
    return headers


def _header_pattern(header: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(header)}(?!\w)", re.IGNORECASE)


def rewrite_formula(header_map: dict[str, int], template: str, target_row: int) -> str:
    """Replace each whole-word header name in ``template`` with its cell ref.

    ``"Revenue - Cost"`` with Revenue in B and Cost in C becomes
    ``"B7 - C7"`` for row 7.  Longer headers are substituted first so a
    header that contains another ("Net Cost" / "Cost") is not split.
    """
    rewritten = template
    for header in sorted(header_map, key=len, reverse=True):
        ref = f"{get_column_letter(header_map[header])}{target_row}"
        rewritten = _header_pattern(header).sub(ref, rewritten)
    return rewritten
